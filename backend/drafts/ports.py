"""
Ports for the draft sync engine: shared data types, protocols, and errors.

Intent:
    Keep the sync queue, the local store and the remote gateways decoupled.
    The queue only ever sees these types; it transports payloads and never
    inspects their shape.

Design:
    - Data: DraftItem (unsynced work), RemoteDraftRecord (server copy),
      SyncStats (aggregate result of one pass)
    - Protocol: RemoteDraftGatewayProtocol (async get/upsert)
    - Errors: DraftRemoteError (transient), DraftValidationError (rejected input)
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol

from .keys import DraftKey


# ----------------------------- Data types -----------------------------------


@dataclass
class DraftItem:
    """One unit of unsynced work held by the sync queue.

    Parameters:
        key: Draft identity (module + type + variant).
        data: Opaque payload snapshot from the last flush attempt.
        timestamp: Local modification time (UTC) of the latest edit.
        retry_count: Consecutive failed remote writes.
        next_retry_at: Earliest time a retry is permitted; never before `timestamp`.
        last_sync_attempt: Time of the last remote write attempt.
    """

    key: DraftKey
    data: Any
    timestamp: datetime
    retry_count: int = 0
    next_retry_at: Optional[datetime] = None
    last_sync_attempt: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.next_retry_at is None or self.next_retry_at < self.timestamp:
            self.next_retry_at = self.timestamp


@dataclass(frozen=True)
class RemoteDraftRecord:
    """Server-held draft with its server-assigned modification time."""

    key: DraftKey
    payload: Any
    updated_at: datetime


@dataclass(frozen=True)
class SyncStats:
    """Aggregate outcome of one `sync_all()` pass."""

    success: int = 0
    failed: int = 0
    total: int = 0
    conflicts: int = 0

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "failed": self.failed,
            "total": self.total,
            "conflicts": self.conflicts,
        }


# ----------------------------- Protocols ------------------------------------


class RemoteDraftGatewayProtocol(Protocol):
    """Remote draft endpoint as seen by the client-side sync engine."""

    async def get(self, key: DraftKey) -> Optional[RemoteDraftRecord]:
        ...

    async def upsert(self, key: DraftKey, payload: Any) -> datetime:
        ...


# ------------------------------ Errors --------------------------------------


class DraftSyncError(Exception):
    """Base class for draft sync failures."""


class DraftRemoteError(DraftSyncError):
    """Network or server failure; the queue retries with backoff."""


class DraftValidationError(DraftSyncError, ValueError):
    """The server rejected the key or payload."""


__all__ = [
    "DraftItem",
    "RemoteDraftRecord",
    "SyncStats",
    "RemoteDraftGatewayProtocol",
    "DraftSyncError",
    "DraftRemoteError",
    "DraftValidationError",
]
