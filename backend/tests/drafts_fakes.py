"""Shared fakes for the draft sync tests."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from backend.drafts.keys import DraftKey
from backend.drafts.ports import DraftRemoteError, RemoteDraftRecord


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeGateway:
    """In-memory remote store with failure injection and optional gates on reads and writes.

    `updated_at` comes from the shared clock plus a per-write tick so two writes
    never share a timestamp.
    """

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.records: Dict[str, RemoteDraftRecord] = {}
        self.fail_keys: set[str] = set()
        self.get_calls: List[str] = []
        self.upserts: List[tuple[str, Any]] = []
        self.gate: Optional[asyncio.Event] = None
        self.get_gate: Optional[asyncio.Event] = None
        self._ticks = 0

    def seed(self, key: DraftKey, payload: Any, updated_at: datetime) -> None:
        self.records[key.as_string()] = RemoteDraftRecord(key=key, payload=payload, updated_at=updated_at)

    async def get(self, key: DraftKey) -> Optional[RemoteDraftRecord]:
        self.get_calls.append(key.as_string())
        if self.get_gate is not None:
            await self.get_gate.wait()
        if key.as_string() in self.fail_keys:
            raise DraftRemoteError("offline")
        return self.records.get(key.as_string())

    async def upsert(self, key: DraftKey, payload: Any) -> datetime:
        if self.gate is not None:
            await self.gate.wait()
        if key.as_string() in self.fail_keys:
            raise DraftRemoteError("offline")
        self._ticks += 1
        updated_at = self.clock() + timedelta(microseconds=self._ticks)
        self.records[key.as_string()] = RemoteDraftRecord(key=key, payload=payload, updated_at=updated_at)
        self.upserts.append((key.as_string(), payload))
        return updated_at
