"""Operations endpoints (internal tooling for instructors/operators)."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Request

from backend.drafts import telemetry
from backend.drafts.keys import DRAFT_TYPES

from . import drafts as drafts_routes
from .security import _private_json, _require_roles

LOG = logging.getLogger(__name__)

operations_router = APIRouter(tags=["Operations"])


def _sync_outcome_totals() -> dict[str, int]:
    return {
        outcome: sum(
            telemetry.counter_value("draft_sync_total", outcome=outcome, draft_type=draft_type)
            for draft_type in sorted(DRAFT_TYPES)
        )
        for outcome in telemetry.SYNC_OUTCOMES
    }


def _probe_repo() -> tuple[str, str | None]:
    repo = drafts_routes._get_repo()
    ping = getattr(repo, "ping", None)
    if ping is None:
        return "ok", None
    try:
        return ("ok", None) if ping() else ("failed", "ping_false")
    except Exception as exc:
        LOG.warning("operations.sync_health.repo_failed reason=%s", exc.__class__.__name__)
        return "failed", exc.__class__.__name__


@operations_router.get("/internal/health/sync")
async def sync_health(request: Request):
    """
    Return diagnostics for the draft sync backend.

    Behavior:
        - `checks` holds the drafts repo readiness probe (200 when ok, else 503).
        - `outcomes` aggregates sync attempts recorded in this process.

    Permissions:
        Caller must have `instructor` or `operator` role (auth via modulearn_session).
    """
    _, error = _require_roles(request, ("instructor", "operator"))
    if error:
        return error

    status, detail = await asyncio.to_thread(_probe_repo)
    body = {
        "status": "healthy" if status == "ok" else "unhealthy",
        "checks": [{"check": "drafts_repo", "status": status, "detail": detail}],
        "outcomes": _sync_outcome_totals(),
        "queueSize": telemetry.gauge_value("draft_queue_size"),
    }
    return _private_json(body, status_code=200 if status == "ok" else 503)
