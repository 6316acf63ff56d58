"""
Prompt templates for assessment generation, grading and study material.

All builders return chat messages (`[{"role": ..., "content": ...}]`) so every
generation adapter receives the same shape.
"""
from __future__ import annotations

from typing import List, Optional

MAX_DOCUMENT_CHARS = 50_000
QUIZ_QUESTION_COUNT = 25
FINAL_TEST_TOTAL_MARKS = 50

# (title, count, marks per question, type)
FINAL_TEST_SECTIONS = (
    ("Section A: Multiple Choice Questions", 10, 1, "mcq"),
    ("Section B: True/False", 5, 1, "true_false"),
    ("Section C: Short Answer Questions", 5, 3, "short_answer"),
    ("Section D: Case Study/Comprehension", 2, 5, "case_study"),
    ("Section E: Extended Response/Essay", 1, 10, "essay"),
)

_METRICS_BLOCK = """Also generate AI metrics:
- Practicality/Theoretical split (e.g., "60% Theoretical / 40% Practical")
- Predictability rating (e.g., "Moderately Predictable")
- Difficulty level (e.g., "Intermediate Graduate Level")
- Alignment percentage (e.g., "100% Aligned with designated resources")
- Estimated learning time (e.g., "45-60 minutes")
- Proficiency required (e.g., "Deep understanding of {topic}")"""

_METRICS_SCHEMA = """  "metrics": {
    "practicalityTheoretical": "percentage split",
    "predictability": "rating",
    "difficulty": "level description",
    "alignment": "percentage aligned",
    "learningTime": "time estimate",
    "proficiency": "required level"
  }"""

GRADING_SYSTEM_PROMPT = """You are an expert grader for educational assessments. Grade the submitted document and provide:
1. A score out of 100
2. Detailed feedback on strengths and areas for improvement
3. Specific comments on content quality, understanding, and completeness

Format your response as JSON with this structure:
{
  "score": <number 0-100>,
  "feedback": "<detailed feedback text>",
  "total_marks": 100
}"""

FLASHCARDS_SYSTEM_PROMPT = (
    "You are an expert at creating educational flashcards. Generate clear, focused "
    "question-answer pairs from the provided document content."
)

PRESENTATION_SYSTEM_PROMPT = (
    "You are an expert at creating educational presentations. Generate clear, concise "
    "slides from the provided document content."
)


def truncate_document(text: str, limit: int = MAX_DOCUMENT_CHARS) -> str:
    return (text or "")[:limit]


def quiz_prompt(topic: str) -> str:
    return f"""Generate {QUIZ_QUESTION_COUNT} high-quality multiple choice questions about "{topic}".

Focus on quality over quantity. Mix theoretical and practical questions.

{_METRICS_BLOCK.format(topic=topic)}

Return as JSON:
{{
  "questions": [
    {{
      "question": "detailed question text",
      "type": "mcq",
      "options": ["Option A", "Option B", "Option C", "Option D"],
      "correctAnswer": 0,
      "marks": 1
    }}
  ],
{_METRICS_SCHEMA}
}}"""


def final_test_prompt(topic: str) -> str:
    sections: List[str] = []
    for title, count, marks, _qtype in FINAL_TEST_SECTIONS:
        unit = "mark" if marks == 1 else "marks"
        sections.append(f"**{title} ({count * marks} marks)**\n- Generate {count} questions\n- {marks} {unit} each")
    body = "\n\n".join(sections)
    return f"""Generate a comprehensive final test for the topic "{topic}" with a total of {FINAL_TEST_TOTAL_MARKS} marks.

Structure the test based on international assessment standards (IGCSE/A-Level format):

{body}

{_METRICS_BLOCK.format(topic=topic)}

Return as JSON:
{{
  "questions": [
    {{
      "question": "question text",
      "type": "mcq" | "true_false" | "short_answer" | "case_study" | "essay",
      "options": ["Option A", "Option B", "Option C", "Option D"] (only for mcq and true_false),
      "correctAnswer": 0 (for mcq/true_false) or "sample answer" (for written questions),
      "marks": number of marks for this question,
      "sectionTitle": "Section A: Multiple Choice Questions"
    }}
  ],
{_METRICS_SCHEMA}
}}"""


def assessment_messages(topic: str, quiz_type: str) -> List[dict]:
    prompt = final_test_prompt(topic) if quiz_type == "final_test" else quiz_prompt(topic)
    return [{"role": "user", "content": prompt}]


def grading_messages(
    *,
    assessment_context: str,
    file_name: str,
    word_count: Optional[int],
    page_count: Optional[int],
    document_text: str = "",
) -> List[dict]:
    user = (
        f"{assessment_context}\n\nPlease grade this submission. The document is a {file_name} file "
        f"with approximately {word_count or 'unknown'} words across {page_count or 'unknown'} pages."
    )
    if document_text:
        user += f"\n\nDocument content:\n{truncate_document(document_text)}"
    return [
        {"role": "system", "content": GRADING_SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]


def flashcards_messages(*, topic: Optional[str], document_text: str) -> List[dict]:
    user = (
        "Create 15-20 flashcards based on this document content. Each flashcard should have a clear "
        "question and a concise answer. Focus on key concepts, definitions, and important facts. "
        f"Topic: {topic or 'unknown'}\n\n"
        'Return as JSON: {"flashcards": [{"question": "...", "answer": "..."}]}\n\n'
        f"Document content:\n{truncate_document(document_text)}"
    )
    return [
        {"role": "system", "content": FLASHCARDS_SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]


def presentation_messages(*, topic: Optional[str], document_text: str) -> List[dict]:
    user = (
        "Create a presentation with 8-12 slides based on this document content. Each slide should have "
        "a clear title and concise bullet points or content. "
        f"Topic: {topic or 'unknown'}\n\n"
        'Return as JSON: {"slides": [{"title": "...", "content": "..."}]}\n\n'
        f"Document content:\n{truncate_document(document_text)}"
    )
    return [
        {"role": "system", "content": PRESENTATION_SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]


__all__ = [
    "MAX_DOCUMENT_CHARS",
    "QUIZ_QUESTION_COUNT",
    "FINAL_TEST_TOTAL_MARKS",
    "FINAL_TEST_SECTIONS",
    "GRADING_SYSTEM_PROMPT",
    "truncate_document",
    "quiz_prompt",
    "final_test_prompt",
    "assessment_messages",
    "grading_messages",
    "flashcards_messages",
    "presentation_messages",
]
