"""
File-backed local draft store.

Intent:
    Durably hold the most recent in-progress state per draft key on the current
    device, independent of network availability. Every key is one JSON file;
    writes go through a temporary file and an atomic replace so a crash never
    leaves a half-written record behind.

Failure policy:
    This store is best-effort. Losing a single autosave must not crash the
    session, therefore read/write failures are logged and reported through
    return values instead of raised. Payload contents are never logged.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging
import os
from pathlib import Path
import tempfile
from typing import Any, Callable, Iterator, List, Optional
from urllib.parse import quote, unquote

from .keys import DraftKey, parse_draft_key

LOG = logging.getLogger(__name__)

_SUFFIX = ".json"
_RECOVERY_DIR = "recovery"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Any) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class StoredDraft:
    """Snapshot of one persisted draft.

    Parameters:
        key: Draft identity.
        payload: Opaque answer set / UI state as saved by the owner.
        timestamp: Time of the last local save.
        remote_updated_at: Latest server timestamp this device has seen for the key.
        synced_at: Start time of the last successful flush, if any.
    """

    key: DraftKey
    payload: Any
    timestamp: datetime
    remote_updated_at: Optional[datetime] = None
    synced_at: Optional[datetime] = None

    @property
    def pending(self) -> bool:
        return self.synced_at is None or self.synced_at < self.timestamp


class LocalDraftStore:
    """Persist draft payloads under `root`, one file per key."""

    def __init__(self, root: Path | str, *, clock: Callable[[], datetime] | None = None) -> None:
        self._root = Path(root)
        self._clock = clock or _utcnow

    @property
    def root(self) -> Path:
        return self._root

    # --- Helpers -----------------------------------------------------------------

    def _path(self, key: DraftKey, *, recovery: bool = False) -> Path:
        name = quote(key.as_string(), safe="") + _SUFFIX
        base = self._root / _RECOVERY_DIR if recovery else self._root
        return base / name

    def _write(self, path: Path, document: dict) -> bool:
        try:
            raw = json.dumps(document, ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            LOG.warning("drafts.local_store.serialize_failed path=%s reason=%s", path.name, exc.__class__.__name__)
            return False
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=str(path.parent), suffix=".tmp", delete=False
            ) as fp:
                tmp_name = fp.name
                fp.write(raw)
            os.replace(tmp_name, path)
            return True
        except OSError as exc:
            LOG.warning("drafts.local_store.write_failed path=%s reason=%s", path.name, exc.__class__.__name__)
            if tmp_name:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
            return False

    def _read(self, path: Path) -> Optional[dict]:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            LOG.warning("drafts.local_store.read_failed path=%s reason=%s", path.name, exc.__class__.__name__)
            return None
        try:
            document = json.loads(raw)
        except ValueError:
            LOG.warning("drafts.local_store.corrupt_record path=%s", path.name)
            return None
        if not isinstance(document, dict) or "payload" not in document:
            LOG.warning("drafts.local_store.corrupt_record path=%s", path.name)
            return None
        return document

    def _to_stored(self, key: DraftKey, document: dict) -> Optional[StoredDraft]:
        try:
            timestamp = _parse_iso(document.get("timestamp")) or self._clock()
            return StoredDraft(
                key=key,
                payload=document.get("payload"),
                timestamp=timestamp,
                remote_updated_at=_parse_iso(document.get("remote_updated_at")),
                synced_at=_parse_iso(document.get("synced_at")),
            )
        except ValueError:
            LOG.warning("drafts.local_store.corrupt_record key=%s", key)
            return None

    # --- Public API --------------------------------------------------------------

    def load(self, key: DraftKey) -> Optional[StoredDraft]:
        """Return the last persisted draft for `key` or None (never raises)."""
        document = self._read(self._path(key))
        if document is None:
            return None
        return self._to_stored(key, document)

    def save(
        self,
        key: DraftKey,
        payload: Any,
        *,
        remote_updated_at: Optional[datetime] = None,
        synced: bool = False,
    ) -> bool:
        """Overwrite the record for `key` and stamp it with the current time.

        Behavior:
            - Keeps the previously seen remote timestamp unless a new one is given.
            - `synced=True` marks the record as matching the server copy (used
              when seeding from the remote store).
            - Returns False (and logs) when the write fails; never raises.
        """
        now = self._clock()
        previous = self.load(key)
        seen = remote_updated_at or (previous.remote_updated_at if previous else None)
        synced_at = now if synced else (previous.synced_at if previous else None)
        document = {
            "key": key.as_string(),
            "payload": payload,
            "timestamp": _iso(now),
            "remote_updated_at": _iso(seen),
            "synced_at": _iso(synced_at),
        }
        return self._write(self._path(key), document)

    def mark_synced(self, key: DraftKey, remote_updated_at: datetime, *, as_of: datetime) -> bool:
        """Record a successful flush that started at `as_of`.

        Edits saved after `as_of` keep the record pending.
        """
        path = self._path(key)
        document = self._read(path)
        if document is None:
            return False
        document["remote_updated_at"] = _iso(remote_updated_at)
        document["synced_at"] = _iso(as_of)
        return self._write(path, document)

    def clear(self, key: DraftKey) -> None:
        """Remove the record for `key`; a missing record is not an error."""
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            LOG.warning("drafts.local_store.clear_failed key=%s reason=%s", key, exc.__class__.__name__)

    def iter_keys(self) -> Iterator[DraftKey]:
        if not self._root.is_dir():
            return
        for path in sorted(self._root.glob(f"*{_SUFFIX}")):
            try:
                yield parse_draft_key(unquote(path.name[: -len(_SUFFIX)]))
            except ValueError:
                LOG.warning("drafts.local_store.unknown_file path=%s", path.name)

    def pending_keys(self) -> List[DraftKey]:
        """Keys whose latest local save has not been flushed yet."""
        pending: List[DraftKey] = []
        for key in self.iter_keys():
            stored = self.load(key)
            if stored is not None and stored.pending:
                pending.append(key)
        return pending

    # --- Recovery slot -----------------------------------------------------------

    def save_recovery(self, key: DraftKey, payload: Any) -> bool:
        """Keep a copy of local edits that are about to be replaced by a newer remote version."""
        document = {
            "key": key.as_string(),
            "payload": payload,
            "timestamp": _iso(self._clock()),
        }
        return self._write(self._path(key, recovery=True), document)

    def load_recovery(self, key: DraftKey) -> Optional[StoredDraft]:
        document = self._read(self._path(key, recovery=True))
        if document is None:
            return None
        return self._to_stored(key, document)

    def clear_recovery(self, key: DraftKey) -> None:
        try:
            self._path(key, recovery=True).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            LOG.warning("drafts.local_store.clear_failed key=%s reason=%s", key, exc.__class__.__name__)


__all__ = ["LocalDraftStore", "StoredDraft"]
