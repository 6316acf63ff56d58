"""
Parsing of AI model output into assessment types.

Models frequently wrap JSON in Markdown fences or surround it with prose.
`parse_ai_json` undoes both: it strips a leading ```json / ``` fence and a
trailing fence, tries a direct parse, then falls back to the outermost
`{...}` slice and finally the outermost `[...]` slice.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List

from .ports import (
    AIResponseFormatError,
    Flashcard,
    GeneratedAssessment,
    GeneratedQuestion,
    GradingResult,
    Slide,
)

LOG = logging.getLogger(__name__)

DEFAULT_GRADING_SCORE = 75
DEFAULT_TOTAL_MARKS = 100

_LEADING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"```$")
_QUESTION_TYPES = {"mcq", "true_false", "short_answer", "case_study", "essay"}


def strip_code_fences(text: str) -> str:
    cleaned = (text or "").strip()
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned)
    return cleaned.strip()


def parse_ai_json(text: str) -> Any:
    """Decode JSON from raw model text or raise AIResponseFormatError."""
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except ValueError:
        pass

    candidates: List[str] = []
    obj_start, obj_end = cleaned.find("{"), cleaned.rfind("}")
    if obj_start != -1 and obj_end > obj_start:
        candidates.append(cleaned[obj_start : obj_end + 1])
    arr_start, arr_end = cleaned.find("["), cleaned.rfind("]")
    if arr_start != -1 and arr_end > arr_start:
        candidates.append(cleaned[arr_start : arr_end + 1])
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    raise AIResponseFormatError("parse_failed")


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("bool is not a number")
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value.strip():
        return int(float(value.strip()))
    raise ValueError("not a number")


def _parse_question(raw: Any) -> GeneratedQuestion:
    if not isinstance(raw, dict):
        raise AIResponseFormatError("question_not_object")
    text = raw.get("question")
    qtype = str(raw.get("type") or "mcq").strip().lower()
    if not isinstance(text, str) or not text.strip():
        raise AIResponseFormatError("question_missing_text")
    if qtype not in _QUESTION_TYPES:
        raise AIResponseFormatError("question_invalid_type")
    try:
        marks = _as_int(raw.get("marks", 1))
    except ValueError as exc:
        raise AIResponseFormatError("question_invalid_marks") from exc
    options = raw.get("options")
    if options is not None:
        if not isinstance(options, list):
            raise AIResponseFormatError("question_invalid_options")
        options = [str(opt) for opt in options]
    section = raw.get("sectionTitle")
    return GeneratedQuestion(
        question=text.strip(),
        type=qtype,
        marks=max(0, marks),
        options=options,
        correct_answer=raw.get("correctAnswer"),
        section_title=str(section) if section else None,
    )


def parse_generated_assessment(text: str) -> GeneratedAssessment:
    """Parse a generated quiz/final test; raise AIResponseFormatError on bad shape."""
    data = parse_ai_json(text)
    if isinstance(data, list):
        data = {"questions": data}
    if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
        raise AIResponseFormatError("missing_questions")
    questions = [_parse_question(item) for item in data["questions"]]
    if not questions:
        raise AIResponseFormatError("empty_questions")
    metrics_raw = data.get("metrics")
    metrics: Dict[str, str] = {}
    if isinstance(metrics_raw, dict):
        metrics = {str(k): str(v) for k, v in metrics_raw.items() if v is not None}
    return GeneratedAssessment(questions=questions, metrics=metrics)


def parse_grading_result(text: str) -> GradingResult:
    """Parse a grading response; never raises.

    Behavior:
        - Uses the model's `score`, `total_marks` and `feedback` when all three
          are usable and the score lies within 0..total_marks.
        - Otherwise returns the default score (75 of 100) with the raw text as
          feedback and `parse_status="fallback"`.
    """
    try:
        data = parse_ai_json(text)
        if not isinstance(data, dict):
            raise AIResponseFormatError("not_object")
        score = _as_int(data.get("score"))
        total = _as_int(data.get("total_marks", DEFAULT_TOTAL_MARKS))
        feedback = data.get("feedback")
        if not isinstance(feedback, str) or not feedback.strip():
            raise AIResponseFormatError("missing_feedback")
        if total <= 0 or score < 0 or score > total:
            raise AIResponseFormatError("score_out_of_range")
        return GradingResult(score=score, total_marks=total, feedback=feedback.strip(), parse_status="model")
    except (AIResponseFormatError, ValueError) as exc:
        LOG.info("assessments.grading.parse_fallback reason=%s", exc)
        return GradingResult(
            score=DEFAULT_GRADING_SCORE,
            total_marks=DEFAULT_TOTAL_MARKS,
            feedback=(text or "").strip(),
            parse_status="fallback",
        )


def _items(data: Any, field_name: str) -> list:
    if isinstance(data, dict):
        data = data.get(field_name)
    if not isinstance(data, list):
        raise AIResponseFormatError(f"missing_{field_name}")
    return data


def parse_flashcards(text: str) -> List[Flashcard]:
    cards: List[Flashcard] = []
    for raw in _items(parse_ai_json(text), "flashcards"):
        if not isinstance(raw, dict):
            continue
        question, answer = raw.get("question"), raw.get("answer")
        if isinstance(question, str) and question.strip() and isinstance(answer, str) and answer.strip():
            cards.append(Flashcard(question=question.strip(), answer=answer.strip()))
    if not cards:
        raise AIResponseFormatError("empty_flashcards")
    return cards


def parse_slides(text: str) -> List[Slide]:
    slides: List[Slide] = []
    for raw in _items(parse_ai_json(text), "slides"):
        if not isinstance(raw, dict):
            continue
        title, content = raw.get("title"), raw.get("content")
        if isinstance(title, str) and title.strip():
            slides.append(Slide(title=title.strip(), content=str(content or "").strip()))
    if not slides:
        raise AIResponseFormatError("empty_slides")
    return slides


__all__ = [
    "DEFAULT_GRADING_SCORE",
    "DEFAULT_TOTAL_MARKS",
    "strip_code_fences",
    "parse_ai_json",
    "parse_generated_assessment",
    "parse_grading_result",
    "parse_flashcards",
    "parse_slides",
]
