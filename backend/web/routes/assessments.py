"""
Assessment API routes: AI quiz/final-test generation and document processing.

Why:
    Instructors generate quizzes (25 MCQs) and 50-mark final tests for a
    module topic. Uploaded documents are graded by the model, or turned into
    flashcards and a slide deck for the module.

Security:
    Same-origin enforced on all POSTs when the browser sends Origin/Referer.
    Students may only process their own submissions; graders any.

Notes:
    Model calls block for up to `AI_TIMEOUT_GENERATION` seconds, so use cases
    run in a worker thread to keep the event loop responsive.
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

from fastapi import APIRouter, Request

from backend.assessments.config import load_ai_config
from backend.assessments.ports import AIError, AIResponseFormatError, DocumentProcessingError, GenerationAdapterProtocol
from backend.assessments.usecases import (
    GenerateAssessmentInput,
    GenerateAssessmentUseCase,
    GenerateFlashcardsUseCase,
    GeneratePresentationUseCase,
    GradeDocumentInput,
    GradeDocumentUseCase,
    ProcessDocumentInput,
    load_generation_adapter,
)
from backend.grading.repo import HAVE_PSYCOPG, DBGradingRepo, GradingRepoProtocol, InMemoryGradingRepo
from backend.identity_access.domain import GRADER_ROLES
from backend.storage.ports import BinaryReadStorage, FilesystemStorage, NullStorage

from .security import _error, _is_same_origin, _private_json, _require_roles

LOG = logging.getLogger(__name__)

assessments_router = APIRouter(tags=["Assessments"])

DOCUMENT_ROLES = ("student", "instructor", "admin")

_REPO: GradingRepoProtocol | None = None
_ADAPTER: GenerationAdapterProtocol | None = None
STORAGE_ADAPTER: BinaryReadStorage = NullStorage()

_dev_storage_dir = (os.getenv("ASSESSMENT_STORAGE_DIR") or "").strip()
if _dev_storage_dir:
    STORAGE_ADAPTER = FilesystemStorage(_dev_storage_dir)


def _get_repo() -> GradingRepoProtocol:
    global _REPO
    if _REPO is None:
        if HAVE_PSYCOPG and (os.getenv("GRADING_DATABASE_URL") or os.getenv("DATABASE_URL")):
            _REPO = DBGradingRepo()
        else:
            LOG.warning("assessments.repo.in_memory")
            _REPO = InMemoryGradingRepo()
    return _REPO


def set_repo(repo: GradingRepoProtocol | None) -> None:  # pragma: no cover - used in tests
    global _REPO
    _REPO = repo


def set_storage_adapter(adapter: BinaryReadStorage) -> None:
    """Allow tests or startup code to provide a concrete storage adapter."""
    global STORAGE_ADAPTER
    STORAGE_ADAPTER = adapter


def _get_adapter() -> GenerationAdapterProtocol:
    global _ADAPTER
    if _ADAPTER is None:
        _ADAPTER = load_generation_adapter(load_ai_config())
    return _ADAPTER


def set_adapter(adapter: GenerationAdapterProtocol | None) -> None:
    """Swap the generation adapter (tests inject fakes; None reloads from env)."""
    global _ADAPTER
    _ADAPTER = adapter


def _timeout() -> int:
    return load_ai_config().timeout_generation_seconds


def _submission_id(payload: dict[str, Any]) -> str:
    value = payload.get("submissionId")
    return value.strip() if isinstance(value, str) else ""


def _owner_scope(user: dict) -> str | None:
    roles = user.get("roles") or []
    if any(str(r).lower() in GRADER_ROLES for r in roles):
        return None
    return str(user.get("sub", ""))


@assessments_router.post("/api/assessments/generate")
async def generate_assessment(request: Request, payload: dict[str, Any]):
    """Generate a quiz or final test for a topic.

    Parameters:
        payload: `{"topic": str, "quizType": "quiz" | "final_test"}`.

    Returns:
        200 `{"questions": [...], "totalMarks": int}`; 400 on invalid input;
        502 when the model fails or answers with malformed JSON.

    Permissions:
        Caller must be an instructor or admin.
    """
    if not _is_same_origin(request):
        return _error(403, "forbidden", "csrf_violation")
    _, error = _require_roles(request, GRADER_ROLES)
    if error:
        return error
    topic = payload.get("topic")
    quiz_type = payload.get("quizType") or "quiz"
    if not isinstance(topic, str) or not isinstance(quiz_type, str):
        return _error(400, "bad_request", "invalid_input")

    use_case = GenerateAssessmentUseCase(_get_adapter(), timeout=_timeout())
    try:
        assessment = await asyncio.to_thread(
            use_case.execute, GenerateAssessmentInput(topic=topic, quiz_type=quiz_type)
        )
    except AIResponseFormatError:
        return _error(502, "bad_gateway", "invalid_ai_response")
    except AIError as exc:
        LOG.warning("assessments.generate.failed reason=%s", exc.__class__.__name__)
        return _error(502, "bad_gateway", "ai_unavailable")
    except ValueError as exc:
        return _error(400, "bad_request", str(exc))
    body = assessment.as_dict()
    body["totalMarks"] = assessment.total_marks
    return _private_json(body)


async def _run_document(request: Request, payload: dict[str, Any], use_case_cls, input_cls):
    if not _is_same_origin(request):
        return None, _error(403, "forbidden", "csrf_violation")
    user, error = _require_roles(request, DOCUMENT_ROLES)
    if error:
        return None, error
    submission_id = _submission_id(payload)
    if not submission_id:
        return None, _error(400, "bad_request", "missing_submission_id")
    try:
        use_case = use_case_cls(_get_repo(), STORAGE_ADAPTER, _get_adapter(), timeout=_timeout())
        req = input_cls(submission_id=submission_id, owner_sub=_owner_scope(user))
        result = await asyncio.to_thread(use_case.execute, req)
    except LookupError:
        return None, _error(404, "not_found")
    except DocumentProcessingError as exc:
        return None, _error(500, "processing_failed", exc.detail)
    except AIResponseFormatError:
        return None, _error(502, "bad_gateway", "invalid_ai_response")
    except ValueError as exc:
        return None, _error(400, "bad_request", str(exc))
    return result, None


@assessments_router.post("/api/assessments/grade-document")
async def grade_document(request: Request, payload: dict[str, Any]):
    """Grade an uploaded document submission with the AI grader.

    Returns:
        200 `{"success": true, "score", "totalMarks", "feedback"}`; 400 without
        `submissionId`; 404 for unknown (or foreign) submissions; 500 with the
        stored failure reason when download or grading fails.
    """
    result, error = await _run_document(request, payload, GradeDocumentUseCase, GradeDocumentInput)
    if error:
        return error
    return _private_json(
        {"success": True, "score": result.score, "totalMarks": result.total_marks, "feedback": result.feedback}
    )


@assessments_router.post("/api/assessments/flashcards")
async def generate_flashcards(request: Request, payload: dict[str, Any]):
    """Create flashcards for the submission's module from the uploaded document."""
    cards, error = await _run_document(request, payload, GenerateFlashcardsUseCase, ProcessDocumentInput)
    if error:
        return error
    return _private_json(
        {"success": True, "flashcards": [{"question": c.question, "answer": c.answer} for c in cards]}
    )


@assessments_router.post("/api/assessments/presentation")
async def generate_presentation(request: Request, payload: dict[str, Any]):
    """Create a slide deck for the submission's module from the uploaded document."""
    result, error = await _run_document(request, payload, GeneratePresentationUseCase, ProcessDocumentInput)
    if error:
        return error
    presentation_id, slides = result
    return _private_json(
        {
            "success": True,
            "presentationId": presentation_id,
            "slides": [{"title": s.title, "content": s.content} for s in slides],
        }
    )
