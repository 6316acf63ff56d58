"""
Server-side persistence for module drafts.

Table:
    public.module_progress_drafts(
        user_id text, module_id text, draft_type text, quiz_type text,
        data jsonb, updated_at timestamptz,
        unique (user_id, module_id, draft_type, quiz_type)
    )

`quiz_type` holds the quiz variant and is the empty string for non-quiz
drafts so the unique constraint applies to every draft type.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
import os
from threading import Lock
from typing import Any, Dict, Optional, Protocol, Tuple

try:  # pragma: no cover - optional dependency
    import psycopg
    from psycopg.types.json import Json

    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover
    psycopg = None  # type: ignore
    Json = None  # type: ignore
    HAVE_PSYCOPG = False

from .keys import DraftKey
from .ports import RemoteDraftRecord


class DraftRepoProtocol(Protocol):
    def get(self, user_id: str, key: DraftKey) -> Optional[RemoteDraftRecord]:
        ...

    def upsert(self, user_id: str, key: DraftKey, payload: Any) -> datetime:
        ...

    def delete(self, user_id: str, key: DraftKey) -> bool:
        ...


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class InMemoryDraftRepo:
    """Dict-backed repo for development and tests.

    `updated_at` is strictly increasing per process so two writes within the
    same clock tick still order correctly.
    """

    def __init__(self) -> None:
        self._rows: Dict[Tuple[str, str], RemoteDraftRecord] = {}
        self._last: Optional[datetime] = None
        self._lock = Lock()

    def _next_timestamp(self) -> datetime:
        now = _utcnow()
        if self._last is not None and now <= self._last:
            now = self._last + timedelta(microseconds=1)
        self._last = now
        return now

    def get(self, user_id: str, key: DraftKey) -> Optional[RemoteDraftRecord]:
        with self._lock:
            return self._rows.get((user_id, key.as_string()))

    def upsert(self, user_id: str, key: DraftKey, payload: Any) -> datetime:
        with self._lock:
            updated_at = self._next_timestamp()
            self._rows[(user_id, key.as_string())] = RemoteDraftRecord(key=key, payload=payload, updated_at=updated_at)
            return updated_at

    def delete(self, user_id: str, key: DraftKey) -> bool:
        with self._lock:
            return self._rows.pop((user_id, key.as_string()), None) is not None

    def ping(self) -> bool:
        return True


def _dsn() -> str:
    env = (os.getenv("MODULEARN_ENV", "dev") or "dev").lower()
    for candidate in (os.getenv("DRAFTS_DATABASE_URL"), os.getenv("DATABASE_URL")):
        if candidate:
            return candidate
    if env == "prod":
        raise RuntimeError("Database DSN unavailable for drafts repo")
    host = os.getenv("TEST_DB_HOST", "127.0.0.1")
    port = os.getenv("TEST_DB_PORT", "54322")
    user = os.getenv("APP_DB_USER", "modulearn_app")
    password = os.getenv("APP_DB_PASSWORD", "CHANGE_ME_DEV")
    return f"postgresql://{user}:{password}@{host}:{port}/postgres"


class DBDraftRepo:
    """Postgres-backed drafts repo (psycopg3, one short connection per call)."""

    def __init__(self, dsn: Optional[str] = None) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBDraftRepo")
        self._dsn = dsn or _dsn()

    @staticmethod
    def _params(user_id: str, key: DraftKey) -> tuple:
        return (user_id, key.module_id, key.draft_type, key.variant or "")

    def get(self, user_id: str, key: DraftKey) -> Optional[RemoteDraftRecord]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    select data, updated_at
                      from public.module_progress_drafts
                     where user_id = %s and module_id = %s and draft_type = %s and quiz_type = %s
                    """,
                    self._params(user_id, key),
                )
                row = cur.fetchone()
        if not row:
            return None
        return RemoteDraftRecord(key=key, payload=row[0], updated_at=row[1])

    def upsert(self, user_id: str, key: DraftKey, payload: Any) -> datetime:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    insert into public.module_progress_drafts
                        (user_id, module_id, draft_type, quiz_type, data, updated_at)
                    values (%s, %s, %s, %s, %s, now())
                    on conflict (user_id, module_id, draft_type, quiz_type)
                    do update set data = excluded.data, updated_at = now()
                    returning updated_at
                    """,
                    (*self._params(user_id, key), Json(payload)),
                )
                row = cur.fetchone()
            conn.commit()
        return row[0]

    def delete(self, user_id: str, key: DraftKey) -> bool:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    delete from public.module_progress_drafts
                     where user_id = %s and module_id = %s and draft_type = %s and quiz_type = %s
                    """,
                    self._params(user_id, key),
                )
                deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def ping(self) -> bool:
        try:
            with psycopg.connect(self._dsn, connect_timeout=3) as conn:
                with conn.cursor() as cur:
                    cur.execute("select 1 from public.module_progress_drafts limit 1")
            return True
        except Exception:
            return False


__all__ = ["DraftRepoProtocol", "InMemoryDraftRepo", "DBDraftRepo", "HAVE_PSYCOPG"]
