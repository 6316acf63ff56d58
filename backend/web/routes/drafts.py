"""
Drafts API routes: per-user, per-module work in progress.

Why:
    The client-side sync engine flushes assignment answers, quiz answers,
    flashcards and presentations here. Drafts are private to their author;
    the server assigns `updated_at`, which clients use as their conflict
    baseline.

Permissions:
    Authenticated students, instructors and admins; each caller only ever sees
    their own drafts (rows are scoped by the session `sub`).
"""
from __future__ import annotations

import logging
import os
from typing import Any

from fastapi import APIRouter, Request, Response

from backend.drafts.config import load_sync_config
from backend.drafts.ports import DraftValidationError
from backend.drafts.repo import DBDraftRepo, DraftRepoProtocol, HAVE_PSYCOPG, InMemoryDraftRepo
from backend.drafts.usecases import (
    DeleteDraftUseCase,
    DraftRef,
    GetDraftUseCase,
    SaveDraftInput,
    SaveDraftUseCase,
)

from .security import _error, _is_same_origin, _private_headers, _private_json, _require_roles

LOG = logging.getLogger(__name__)

drafts_router = APIRouter(tags=["Drafts"])

DRAFT_ROLES = ("student", "instructor", "admin")

_REPO: DraftRepoProtocol | None = None


def _get_repo() -> DraftRepoProtocol:
    global _REPO
    if _REPO is None:
        dsn_configured = bool(os.getenv("DRAFTS_DATABASE_URL") or os.getenv("DATABASE_URL"))
        if HAVE_PSYCOPG and dsn_configured:
            _REPO = DBDraftRepo()
        else:
            LOG.warning("drafts.repo.in_memory reason=%s", "no_dsn" if HAVE_PSYCOPG else "no_psycopg")
            _REPO = InMemoryDraftRepo()
    return _REPO


def set_repo(repo: DraftRepoProtocol | None) -> None:
    """Allow tests or startup code to provide a concrete drafts repo."""
    global _REPO
    _REPO = repo


def _ref(user: dict, module_id: str, draft_type: str, variant: str | None) -> DraftRef:
    return DraftRef(user_id=str(user.get("sub", "")), module_id=module_id, draft_type=draft_type, variant=variant or None)


@drafts_router.get("/api/modules/{module_id}/drafts/{draft_type}")
async def get_draft(request: Request, module_id: str, draft_type: str, variant: str | None = None):
    """Return the caller's draft as `{"data", "updated_at"}` or 404."""
    user, error = _require_roles(request, DRAFT_ROLES)
    if error:
        return error
    try:
        record = GetDraftUseCase(_get_repo()).execute(_ref(user, module_id, draft_type, variant))
    except DraftValidationError as exc:
        return _error(400, "bad_request", str(exc))
    except LookupError:
        return _error(404, "not_found")
    return _private_json({"data": record.payload, "updated_at": record.updated_at.isoformat()})


@drafts_router.put("/api/modules/{module_id}/drafts/{draft_type}")
async def put_draft(
    request: Request,
    module_id: str,
    draft_type: str,
    payload: dict[str, Any],
    variant: str | None = None,
):
    """Create or replace the caller's draft.

    Parameters:
        payload: JSON object `{"data": <any JSON value>}`.

    Returns:
        200 `{"updated_at": iso8601}` with the server-assigned modification time.

    Security:
        Same-origin enforced when the browser sends Origin/Referer.
    """
    if not _is_same_origin(request):
        return _error(403, "forbidden", "csrf_violation")
    user, error = _require_roles(request, DRAFT_ROLES)
    if error:
        return error
    ref = _ref(user, module_id, draft_type, variant)
    use_case = SaveDraftUseCase(_get_repo(), max_payload_bytes=load_sync_config().max_payload_bytes)
    try:
        updated_at = use_case.execute(
            SaveDraftInput(
                user_id=ref.user_id,
                module_id=ref.module_id,
                draft_type=ref.draft_type,
                variant=ref.variant,
                data=payload.get("data"),
            )
        )
    except DraftValidationError as exc:
        if str(exc) == "payload_too_large":
            return _error(413, "payload_too_large")
        return _error(400, "bad_request", str(exc))
    return _private_json({"updated_at": updated_at.isoformat()})


@drafts_router.delete("/api/modules/{module_id}/drafts/{draft_type}")
async def delete_draft(request: Request, module_id: str, draft_type: str, variant: str | None = None):
    """Delete the caller's draft; 204 on success, 404 when absent."""
    if not _is_same_origin(request):
        return _error(403, "forbidden", "csrf_violation")
    user, error = _require_roles(request, DRAFT_ROLES)
    if error:
        return error
    try:
        DeleteDraftUseCase(_get_repo()).execute(_ref(user, module_id, draft_type, variant))
    except DraftValidationError as exc:
        return _error(400, "bad_request", str(exc))
    except LookupError:
        return _error(404, "not_found")
    return Response(status_code=204, headers=_private_headers())
