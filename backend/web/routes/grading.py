"""Grading API routes: instructors review and score assignment submissions."""
from __future__ import annotations

import logging
import os
from typing import Any

from fastapi import APIRouter, Request

from backend.grading.repo import HAVE_PSYCOPG, DBGradingRepo, GradingRepoProtocol, InMemoryGradingRepo
from backend.grading.usecases import (
    GradeAssignmentInput,
    GradeAssignmentSubmissionUseCase,
    ListAssignmentSubmissionsUseCase,
)
from backend.identity_access.domain import GRADER_ROLES

from .security import _error, _is_same_origin, _private_json, _require_roles

LOG = logging.getLogger(__name__)

grading_router = APIRouter(tags=["Grading"])

_REPO: GradingRepoProtocol | None = None


def _get_repo() -> GradingRepoProtocol:
    global _REPO
    if _REPO is None:
        if HAVE_PSYCOPG and (os.getenv("GRADING_DATABASE_URL") or os.getenv("DATABASE_URL")):
            _REPO = DBGradingRepo()
        else:
            LOG.warning("grading.repo.in_memory")
            _REPO = InMemoryGradingRepo()
    return _REPO


def set_repo(repo: GradingRepoProtocol | None) -> None:  # pragma: no cover - used in tests
    global _REPO
    _REPO = repo


@grading_router.get("/api/grading/submissions")
async def list_submissions(request: Request):
    """List assignment submissions, newest first, with pending/graded counts.

    Permissions:
        Caller must be an instructor or admin.
    """
    _, error = _require_roles(request, GRADER_ROLES)
    if error:
        return error
    listing = ListAssignmentSubmissionsUseCase(_get_repo()).execute()
    return _private_json(listing.as_dict())


@grading_router.patch("/api/grading/submissions/{submission_id}")
async def grade_submission(request: Request, submission_id: str, payload: dict[str, Any]):
    """Record a score and feedback for one submission.

    Parameters:
        payload: `{"score": int, "feedback": str}`; score within 0..total_marks.

    Returns:
        200 with the updated submission; 400 invalid score; 404 unknown id.
    """
    if not _is_same_origin(request):
        return _error(403, "forbidden", "csrf_violation")
    user, error = _require_roles(request, GRADER_ROLES)
    if error:
        return error
    feedback = payload.get("feedback")
    if feedback is not None and not isinstance(feedback, str):
        return _error(400, "bad_request", "invalid_feedback")
    try:
        updated = GradeAssignmentSubmissionUseCase(_get_repo()).execute(
            GradeAssignmentInput(submission_id=submission_id, score=payload.get("score"), feedback=feedback or "")
        )
    except LookupError:
        return _error(404, "not_found")
    except ValueError as exc:
        return _error(400, "bad_request", str(exc))
    LOG.info("grading.submission.patched submission_id=%s grader=%s", submission_id, user.get("sub"))
    return _private_json(updated.as_dict())
