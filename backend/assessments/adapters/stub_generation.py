"""
Deterministic generation adapter for local development and tests.

Intent:
    Answer every prompt kind (quiz, final test, grading, flashcards,
    presentation) with well-formed JSON without calling a model, so the whole
    pipeline runs offline.
"""

from __future__ import annotations

import json
from typing import List, Sequence

from backend.assessments.prompts import FINAL_TEST_SECTIONS, QUIZ_QUESTION_COUNT


def _text(messages: Sequence[dict]) -> str:
    return "\n".join(str(m.get("content") or "") for m in messages)


def _quiz() -> dict:
    questions = [
        {
            "question": f"Placeholder question {i + 1}?",
            "type": "mcq",
            "options": ["Option A", "Option B", "Option C", "Option D"],
            "correctAnswer": 0,
            "marks": 1,
        }
        for i in range(QUIZ_QUESTION_COUNT)
    ]
    return {"questions": questions, "metrics": {"difficulty": "Stub"}}


def _final_test() -> dict:
    questions: List[dict] = []
    for title, count, marks, qtype in FINAL_TEST_SECTIONS:
        for i in range(count):
            item = {"question": f"{title} item {i + 1}", "type": qtype, "marks": marks, "sectionTitle": title}
            if qtype == "mcq":
                item["options"] = ["Option A", "Option B", "Option C", "Option D"]
                item["correctAnswer"] = 0
            elif qtype == "true_false":
                item["options"] = ["True", "False"]
                item["correctAnswer"] = 0
            else:
                item["correctAnswer"] = "Sample answer"
            questions.append(item)
    return {"questions": questions, "metrics": {"difficulty": "Stub"}}


class StubGenerationAdapter:
    """Pick a canned response from the prompt kind."""

    def complete(self, *, messages: Sequence[dict], timeout: int) -> str:
        text = _text(messages)
        if "expert grader" in text:
            payload: dict = {"score": 80, "feedback": "Stub feedback: solid structure.", "total_marks": 100}
        elif "flashcards" in text:
            payload = {"flashcards": [{"question": f"Term {i + 1}?", "answer": f"Definition {i + 1}."} for i in range(15)]}
        elif "presentation" in text:
            payload = {"slides": [{"title": f"Slide {i + 1}", "content": "- key point"} for i in range(8)]}
        elif "final test" in text:
            payload = _final_test()
        else:
            payload = _quiz()
        return json.dumps(payload)


def build() -> StubGenerationAdapter:
    """Factory used by the use cases to instantiate the adapter."""
    return StubGenerationAdapter()
