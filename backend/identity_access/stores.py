"""
In-memory session store for development and tests.

Why: Keep sessions opaque to the client. For production, replace with a
Redis/DB-backed store exposing the same methods.

Security: Cookies carry only an opaque session id. Session data stays server-side.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional
import secrets
import time

from .domain import ALLOWED_ROLES


def _now() -> int:
    return int(time.time())


@dataclass
class SessionRecord:
    session_id: str
    sub: str
    name: str
    roles: list[str]
    expires_at: Optional[int] = None


class SessionStore:
    def __init__(self):
        self._data: Dict[str, SessionRecord] = {}

    def create(self, *, sub: str, roles: list[str], name: str = "", ttl_seconds: int = 3600) -> SessionRecord:
        unknown = [r for r in roles if r not in ALLOWED_ROLES]
        if unknown:
            raise ValueError(f"unknown roles: {unknown}")
        sid = secrets.token_urlsafe(24)
        rec = SessionRecord(session_id=sid, sub=sub, name=name, roles=list(roles), expires_at=_now() + ttl_seconds)
        self._data[sid] = rec
        return rec

    def get(self, session_id: str) -> Optional[SessionRecord]:
        rec = self._data.get(session_id)
        if not rec:
            return None
        if rec.expires_at and rec.expires_at < _now():
            self._data.pop(session_id, None)
            return None
        return rec

    def delete(self, session_id: str) -> None:
        self._data.pop(session_id, None)


__all__ = ["SessionRecord", "SessionStore"]
