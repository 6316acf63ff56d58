"""
Batch sync queue: reconcile registered draft producers with the remote store.

Intent:
    Every open module view registers one producer per draft (a callback that
    returns the current in-memory payload). The queue flushes dirty drafts to
    the remote endpoint on a fixed cadence, on reconnect and on demand, keeps
    failed drafts queued with exponential backoff, and reports conflicts when
    another device wrote a newer version first.

Scheduling:
    Single event loop, no locks. Suspension points are the gateway calls and
    the timer sleep. Per key at most one flush is in flight; across keys the
    flushes run concurrently via `asyncio.gather` and are independent.

Conflict policy:
    Before writing, the remote record's `updated_at` is compared against the
    newest timestamp this queue has seen for the key (from load or a previous
    flush); without one, the local edit time is used. A strictly newer remote
    copy wins: the local write is dropped, the item leaves the queue, and the
    conflict callback fires once per key until acknowledged.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from . import telemetry
from .config import DraftSyncConfig
from .keys import DraftKey, tab_label
from .ports import (
    DraftItem,
    DraftRemoteError,
    RemoteDraftGatewayProtocol,
    RemoteDraftRecord,
    SyncStats,
)

LOG = logging.getLogger(__name__)

Producer = Callable[[], Any]
ConflictCallback = Callable[[str], None]
SyncedHook = Callable[[DraftKey, datetime, datetime], None]
ConflictRecordHook = Callable[[DraftItem, RemoteDraftRecord], None]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def compute_backoff(retry_count: int, *, base_seconds: float, max_seconds: float) -> float:
    """Return the retry delay in seconds: `min(max, base * 2**retry_count)`."""
    if retry_count < 0:
        raise ValueError("retry_count must be >= 0")
    # Cap the exponent; the result is clamped anyway.
    exponent = min(retry_count, 62)
    return min(max_seconds, base_seconds * (2 ** exponent))


@dataclass
class _Registration:
    key: DraftKey
    producer: Producer
    label: str


class BatchSyncQueue:
    """Registry of draft producers plus the retry queue that flushes them."""

    def __init__(
        self,
        gateway: RemoteDraftGatewayProtocol,
        *,
        config: DraftSyncConfig | None = None,
        on_conflict: ConflictCallback | None = None,
        current_user: Callable[[], Optional[str]] | None = None,
        clock: Callable[[], datetime] | None = None,
        on_synced: SyncedHook | None = None,
        on_conflict_record: ConflictRecordHook | None = None,
    ) -> None:
        self._gateway = gateway
        self._config = config or DraftSyncConfig()
        self._on_conflict = on_conflict
        self._current_user = current_user
        self._clock = clock or _utcnow
        self._on_synced = on_synced
        self._on_conflict_record = on_conflict_record

        self._registrations: Dict[str, _Registration] = {}
        self._items: Dict[str, DraftItem] = {}
        self._last_seen: Dict[str, datetime] = {}
        self._inflight: Set[str] = set()
        self._conflicted: Set[str] = set()

        self._reported_size = 0
        self._syncing = False
        self._stats = SyncStats()
        self._last_batch_sync: Optional[datetime] = None
        self._timer: Optional[asyncio.Task] = None

    # --- Registry ----------------------------------------------------------------

    def register(
        self,
        key: DraftKey,
        producer: Producer,
        *,
        label: str | None = None,
        edited_at: datetime | None = None,
    ) -> None:
        """Add or replace the producer for `key` and queue its current state.

        `edited_at` is the time of the latest local edit when the state was
        restored from storage; it defaults to now.
        """
        name = key.as_string()
        self._registrations[name] = _Registration(key=key, producer=producer, label=label or tab_label(key))
        self._enqueue(key, edited_at=edited_at)

    def unregister(self, key: DraftKey) -> None:
        """Stop scheduling flushes for `key`; an in-flight attempt still completes."""
        name = key.as_string()
        self._registrations.pop(name, None)
        self._items.pop(name, None)
        self._conflicted.discard(name)
        self._update_queue_gauge()

    def mark_dirty(self, key: DraftKey) -> bool:
        """Queue `key` after a local edit. Returns False for unknown keys."""
        if key.as_string() not in self._registrations:
            LOG.debug("drafts.sync.mark_dirty_unregistered key=%s", key)
            return False
        self._enqueue(key)
        return True

    def observe(self, key: DraftKey, updated_at: datetime) -> None:
        """Record a remote timestamp seen by this session (load or flush)."""
        name = key.as_string()
        current = self._last_seen.get(name)
        if current is None or updated_at > current:
            self._last_seen[name] = updated_at

    def acknowledge_conflict(self, key: DraftKey) -> None:
        self._conflicted.discard(key.as_string())

    def _enqueue(self, key: DraftKey, *, edited_at: datetime | None = None) -> None:
        name = key.as_string()
        now = self._clock()
        stamp = edited_at or now
        item = self._items.get(name)
        if item is None:
            self._items[name] = DraftItem(key=key, data=None, timestamp=stamp)
        else:
            # Last write wins locally; retry bookkeeping is kept.
            item.timestamp = max(item.timestamp, stamp)
            if item.next_retry_at is None or item.next_retry_at < now:
                item.next_retry_at = now
        self._update_queue_gauge()

    # --- Introspection -----------------------------------------------------------

    @property
    def syncing(self) -> bool:
        return self._syncing

    @property
    def sync_stats(self) -> SyncStats:
        return self._stats

    @property
    def last_batch_sync(self) -> Optional[datetime]:
        return self._last_batch_sync

    @property
    def registered_count(self) -> int:
        return len(self._registrations)

    @property
    def queue_size(self) -> int:
        return len(self._items)

    @property
    def queue_items(self) -> List[DraftItem]:
        """Copies of the queued items for diagnostics."""
        return [replace(item) for item in self._items.values()]

    @property
    def has_pending(self) -> bool:
        return bool(self._items)

    @property
    def next_retry_time(self) -> Optional[datetime]:
        retries = [item.next_retry_at for item in self._items.values() if item.retry_count > 0 and item.next_retry_at]
        return min(retries) if retries else None

    def label_for(self, key: DraftKey) -> str:
        registration = self._registrations.get(key.as_string())
        return registration.label if registration else tab_label(key)

    def _update_queue_gauge(self) -> None:
        # Every open queue contributes its own depth to the process-wide gauge.
        size = len(self._items)
        delta, self._reported_size = size - self._reported_size, size
        telemetry.adjust_gauge("draft_queue_size", delta)

    # --- Flushing ----------------------------------------------------------------

    async def sync_all(self, *, force: bool = False) -> SyncStats:
        """Flush every registered draft that is due, concurrently and independently.

        Behavior:
            - Without a signed-in user this is a no-op.
            - Items still inside their backoff window are skipped unless `force`.
            - A key whose previous attempt is still outstanding is skipped.
            - A full pass never overlaps another one; the running pass wins.
            - Returns the stats of this pass and stores them in `sync_stats`
              when at least one key was attempted.
        """
        if self._syncing:
            LOG.debug("drafts.sync.pass_skipped reason=already_running")
            return self._stats
        if self._current_user is not None and not self._current_user():
            LOG.debug("drafts.sync.pass_skipped reason=no_user")
            return SyncStats()

        now = self._clock()
        due: List[DraftItem] = []
        for name, item in self._items.items():
            if name not in self._registrations or name in self._inflight:
                continue
            if not force and item.next_retry_at is not None and item.next_retry_at > now:
                continue
            due.append(item)
        if not due:
            return SyncStats()

        self._syncing = True
        try:
            outcomes = await asyncio.gather(*(self._flush_one(item) for item in due))
        finally:
            self._syncing = False

        stats = SyncStats(
            success=outcomes.count("success"),
            failed=outcomes.count("failed"),
            conflicts=outcomes.count("conflict"),
            total=len(outcomes) - outcomes.count("discarded"),
        )
        self._stats = stats
        self._last_batch_sync = self._clock()
        self._update_queue_gauge()
        if stats.failed:
            LOG.warning(
                "drafts.sync.pass_completed success=%s failed=%s conflicts=%s total=%s",
                stats.success,
                stats.failed,
                stats.conflicts,
                stats.total,
            )
        else:
            LOG.info(
                "drafts.sync.pass_completed success=%s failed=%s conflicts=%s total=%s",
                stats.success,
                stats.failed,
                stats.conflicts,
                stats.total,
            )
        return stats

    async def _flush_one(self, item: DraftItem) -> str:
        """Run one flush attempt for `item` and return its outcome label."""
        key = item.key
        name = key.as_string()
        registration = self._registrations.get(name)
        if registration is None:
            # Unregistered between scheduling and start.
            telemetry.record_sync_outcome("discarded", draft_type=key.draft_type)
            return "discarded"
        started = self._clock()
        item.last_sync_attempt = started
        self._inflight.add(name)
        try:
            try:
                payload = registration.producer()
            except Exception as exc:
                LOG.warning("drafts.sync.producer_failed key=%s reason=%s", key, exc.__class__.__name__)
                return self._record_failure(item, started)
            item.data = payload

            try:
                remote = await self._gateway.get(key)
                if remote is not None and self._is_conflict(item, remote):
                    return self._record_conflict(item, remote)
                updated_at = await self._gateway.upsert(key, payload)
            except (DraftRemoteError, asyncio.TimeoutError) as exc:
                LOG.info("drafts.sync.remote_failed key=%s reason=%s", key, exc.__class__.__name__)
                return self._record_failure(item, started)
            except Exception:
                # A failed draft stays queued; the rest of the pass is unaffected.
                LOG.exception("drafts.sync.flush_failed key=%s", key)
                return self._record_failure(item, started)
            return self._record_success(item, updated_at, started)
        finally:
            self._inflight.discard(name)

    def _is_conflict(self, item: DraftItem, remote: RemoteDraftRecord) -> bool:
        baseline = self._last_seen.get(item.key.as_string()) or item.timestamp
        return remote.updated_at > baseline

    def _still_queued(self, item: DraftItem) -> bool:
        name = item.key.as_string()
        return name in self._registrations and self._items.get(name) is item

    def _record_success(self, item: DraftItem, updated_at: datetime, started: datetime) -> str:
        key = item.key
        name = key.as_string()
        self.observe(key, updated_at)
        if self._on_synced is not None:
            self._run_hook("on_synced", self._on_synced, key, updated_at, started)
        if not self._still_queued(item):
            telemetry.record_sync_outcome("discarded", draft_type=key.draft_type)
            return "discarded"

        self._conflicted.discard(name)
        if item.timestamp > started:
            # Edited while the write was in flight: keep a fresh item for the newer state.
            self._items[name] = DraftItem(key=key, data=None, timestamp=item.timestamp)
        else:
            self._items.pop(name, None)
        telemetry.record_sync_outcome("success", draft_type=key.draft_type)
        LOG.debug("drafts.sync.flushed key=%s updated_at=%s", key, updated_at.isoformat())
        return "success"

    def _record_failure(self, item: DraftItem, started: datetime) -> str:
        key = item.key
        if not self._still_queued(item):
            telemetry.record_sync_outcome("discarded", draft_type=key.draft_type)
            return "discarded"
        item.retry_count += 1
        delay = compute_backoff(
            item.retry_count,
            base_seconds=self._config.base_backoff_seconds,
            max_seconds=self._config.max_backoff_seconds,
        )
        now = self._clock()
        next_retry = now + timedelta(seconds=delay)
        item.next_retry_at = max(next_retry, item.timestamp)
        telemetry.record_sync_outcome("failed", draft_type=key.draft_type)
        LOG.warning(
            "drafts.sync.retry_scheduled key=%s retry=%s next_retry_at=%s",
            key,
            item.retry_count,
            item.next_retry_at.isoformat(),
        )
        return "failed"

    def _record_conflict(self, item: DraftItem, remote: RemoteDraftRecord) -> str:
        key = item.key
        name = key.as_string()
        self.observe(key, remote.updated_at)
        if not self._still_queued(item):
            telemetry.record_sync_outcome("discarded", draft_type=key.draft_type)
            return "discarded"

        self._items.pop(name, None)
        telemetry.record_sync_outcome("conflict", draft_type=key.draft_type)
        LOG.warning(
            "drafts.sync.conflict key=%s remote_updated_at=%s",
            key,
            remote.updated_at.isoformat(),
        )
        if self._on_conflict_record is not None:
            self._run_hook("on_conflict_record", self._on_conflict_record, item, remote)
        if name not in self._conflicted:
            self._conflicted.add(name)
            if self._on_conflict is not None:
                self._run_hook("on_conflict", self._on_conflict, self.label_for(key))
        return "conflict"

    def _run_hook(self, name: str, hook: Callable[..., None], *args: Any) -> None:
        # The outcome is already decided; a failing observer must not change it.
        try:
            hook(*args)
        except Exception:
            LOG.exception("drafts.sync.hook_failed hook=%s", name)

    # --- Timer -------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic flush task on the running event loop (idempotent)."""
        if self._timer is not None and not self._timer.done():
            return
        self._timer = asyncio.get_running_loop().create_task(self._run_timer())

    async def stop(self) -> None:
        """Cancel the periodic flush task and wait until it is gone."""
        timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.cancel()
        try:
            await timer
        except asyncio.CancelledError:
            pass

    async def close(self) -> None:
        """Stop the timer and drop every registration and queued item."""
        await self.stop()
        self._registrations.clear()
        self._items.clear()
        self._conflicted.clear()
        self._update_queue_gauge()

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def _run_timer(self) -> None:
        interval = self._config.interval_seconds
        while True:
            await asyncio.sleep(interval)
            if not self.has_pending:
                continue
            try:
                await self.sync_all()
            except Exception:
                # Keep the cadence alive; the next tick retries.
                LOG.exception("drafts.sync.timer_pass_failed")


__all__ = ["BatchSyncQueue", "compute_backoff"]
