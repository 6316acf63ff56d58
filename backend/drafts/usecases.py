from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import json
import logging
from typing import Any, Optional

from .keys import make_draft_key
from .ports import DraftValidationError, RemoteDraftRecord
from .repo import DraftRepoProtocol

LOG = logging.getLogger(__name__)

DEFAULT_MAX_PAYLOAD_BYTES = 256 * 1024


def _key_or_raise(module_id: str, draft_type: str, variant: Optional[str]):
    try:
        return make_draft_key(module_id, draft_type, variant)
    except ValueError as exc:
        raise DraftValidationError(str(exc)) from exc


@dataclass
class DraftRef:
    user_id: str
    module_id: str
    draft_type: str
    variant: Optional[str] = None


@dataclass
class SaveDraftInput:
    user_id: str
    module_id: str
    draft_type: str
    variant: Optional[str]
    data: Any


class GetDraftUseCase:
    def __init__(self, repo: DraftRepoProtocol) -> None:
        self._repo = repo

    def execute(self, req: DraftRef) -> RemoteDraftRecord:
        """Return the caller's draft or raise LookupError when none exists."""
        key = _key_or_raise(req.module_id, req.draft_type, req.variant)
        record = self._repo.get(req.user_id, key)
        if record is None:
            raise LookupError("draft_not_found")
        return record


class SaveDraftUseCase:
    def __init__(self, repo: DraftRepoProtocol, *, max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES) -> None:
        self._repo = repo
        self._max_payload_bytes = max_payload_bytes

    def execute(self, req: SaveDraftInput) -> datetime:
        """Upsert the caller's draft and return the server-assigned `updated_at`.

        Intent:
            The server clock is the single source for `updated_at`; clients use
            it as their conflict baseline on the next flush.

        Behavior:
            - Validates draft type and quiz variant.
            - Rejects payloads that are not JSON-serialisable or exceed the
              configured size limit (`DraftValidationError`).
            - Last write wins; conflict detection happens client-side.

        Permissions:
            Drafts are private; the route passes the authenticated user's id.
        """
        key = _key_or_raise(req.module_id, req.draft_type, req.variant)
        if req.data is None:
            raise DraftValidationError("missing_data")
        try:
            encoded = json.dumps(req.data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise DraftValidationError("invalid_data") from exc
        if len(encoded) > self._max_payload_bytes:
            raise DraftValidationError("payload_too_large")
        updated_at = self._repo.upsert(req.user_id, key, req.data)
        LOG.debug("drafts.saved key=%s bytes=%s", key, len(encoded))
        return updated_at


class DeleteDraftUseCase:
    def __init__(self, repo: DraftRepoProtocol) -> None:
        self._repo = repo

    def execute(self, req: DraftRef) -> None:
        key = _key_or_raise(req.module_id, req.draft_type, req.variant)
        if not self._repo.delete(req.user_id, key):
            raise LookupError("draft_not_found")
