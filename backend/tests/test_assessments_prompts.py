"""Prompt builders: structure of the final test and document truncation."""
from __future__ import annotations

from backend.assessments import prompts


def test_final_test_sections_add_up_to_fifty_marks():
    total = sum(count * marks for _title, count, marks, _qtype in prompts.FINAL_TEST_SECTIONS)
    assert total == prompts.FINAL_TEST_TOTAL_MARKS == 50


def test_assessment_messages_pick_prompt_by_quiz_type():
    quiz = prompts.assessment_messages("Photosynthesis", "quiz")[0]["content"]
    final = prompts.assessment_messages("Photosynthesis", "final_test")[0]["content"]
    assert "Generate 25 high-quality multiple choice questions" in quiz
    assert '"Photosynthesis"' in quiz
    assert "final test" in final
    assert "Section E: Extended Response/Essay (10 marks)" in final
    assert "- 1 mark each" in final and "- 3 marks each" in final


def test_grading_messages_include_context_and_truncated_document():
    messages = prompts.grading_messages(
        assessment_context="Assignment Questions: [1]",
        file_name="essay.docx",
        word_count=1200,
        page_count=None,
        document_text="x" * (prompts.MAX_DOCUMENT_CHARS + 10),
    )
    assert messages[0] == {"role": "system", "content": prompts.GRADING_SYSTEM_PROMPT}
    user = messages[1]["content"]
    assert user.startswith("Assignment Questions: [1]")
    assert "approximately 1200 words across unknown pages" in user
    assert user.endswith("x" * prompts.MAX_DOCUMENT_CHARS)
    assert "x" * (prompts.MAX_DOCUMENT_CHARS + 1) not in user


def test_study_material_prompts_mention_topic():
    cards = prompts.flashcards_messages(topic="Cells", document_text="body")
    slides = prompts.presentation_messages(topic=None, document_text="body")
    assert "Topic: Cells" in cards[1]["content"]
    assert "Topic: unknown" in slides[1]["content"]
    assert "8-12 slides" in slides[1]["content"]
