"""
Module draft session: ties the local store, the sync queue and connectivity
together for one open module view.

Intent:
    A module view (quiz, final test, assignment, flashcards, presentation tabs)
    enters a session, seeds each tab from the server or the local store, tracks
    producers while the user edits, and leaves the session when the view
    closes. Leaving always stops the timer and drops every registration.

Conflicts:
    When another device wrote a newer version, the local edits are copied to
    the recovery slot, the server copy replaces the local record, and the tab
    label is collected for a single combined notice.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from .config import DraftSyncConfig
from .connectivity import ConnectivityDetector
from .keys import DraftKey, make_draft_key, parse_draft_key
from .local_store import LocalDraftStore
from .ports import DraftItem, DraftRemoteError, RemoteDraftGatewayProtocol, RemoteDraftRecord, SyncStats
from .sync_queue import BatchSyncQueue, Producer

LOG = logging.getLogger(__name__)


def join_labels(labels: List[str]) -> str:
    """Join labels as prose: "A", "A and B", "A, B, and C"."""
    if not labels:
        return ""
    if len(labels) == 1:
        return labels[0]
    if len(labels) == 2:
        return f"{labels[0]} and {labels[1]}"
    return ", ".join(labels[:-1]) + f", and {labels[-1]}"


class ModuleDraftSession:
    """Own one sync queue for the drafts of a single module view."""

    def __init__(
        self,
        module_id: str,
        gateway: RemoteDraftGatewayProtocol,
        store: LocalDraftStore,
        *,
        config: DraftSyncConfig | None = None,
        on_conflict: Callable[[str], None] | None = None,
        current_user: Callable[[], Optional[str]] | None = None,
        detector: ConnectivityDetector | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.module_id = module_id
        self._gateway = gateway
        self._store = store
        self._user_on_conflict = on_conflict
        self._detector = detector
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._producers: Dict[str, Producer] = {}
        self._conflicts: Dict[str, str] = {}
        self._tasks: Set[asyncio.Task] = set()
        self.queue = BatchSyncQueue(
            gateway,
            config=config,
            on_conflict=self._handle_conflict_label,
            current_user=current_user,
            clock=clock,
            on_synced=self._handle_synced,
            on_conflict_record=self._handle_conflict_record,
        )

    async def __aenter__(self) -> "ModuleDraftSession":
        self.queue.start()
        if self._detector is not None:
            self._unsubscribe = self._detector.subscribe(self._handle_connectivity)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        await self.queue.close()
        self._producers.clear()

    # --- Loading -----------------------------------------------------------------

    def key(self, draft_type: str, variant: Optional[str] = None) -> DraftKey:
        return make_draft_key(self.module_id, draft_type, variant)

    async def bootstrap(self, draft_type: str, variant: Optional[str] = None) -> Any:
        """Return the initial payload for a tab, or None when nothing exists yet.

        Behavior:
            - The server copy wins and becomes the conflict baseline, unless the
              local record holds unsynced edits made on top of that same server
              version.
            - Server failures fall back to the local store.
        """
        key = self.key(draft_type, variant)
        local = self._store.load(key)
        try:
            remote = await self._gateway.get(key)
        except DraftRemoteError as exc:
            LOG.info("drafts.session.bootstrap_remote_failed key=%s reason=%s", key, exc.__class__.__name__)
            remote = None
        if remote is not None:
            self.queue.observe(key, remote.updated_at)
            if (
                local is not None
                and local.pending
                and local.remote_updated_at is not None
                and remote.updated_at <= local.remote_updated_at
            ):
                return local.payload
            self._store.save(key, remote.payload, remote_updated_at=remote.updated_at, synced=True)
            return remote.payload
        if local is None:
            return None
        if local.remote_updated_at is not None:
            self.queue.observe(key, local.remote_updated_at)
        return local.payload

    # --- Tracking ----------------------------------------------------------------

    def track(
        self,
        draft_type: str,
        variant: Optional[str],
        producer: Producer,
        *,
        label: str | None = None,
    ) -> DraftKey:
        """Register the tab's producer; a stored local record keeps its edit time."""
        key = self.key(draft_type, variant)
        self._producers[key.as_string()] = producer
        local = self._store.load(key)
        edited_at = None
        if local is not None:
            if local.remote_updated_at is not None:
                self.queue.observe(key, local.remote_updated_at)
            edited_at = local.timestamp
        self.queue.register(key, producer, label=label, edited_at=edited_at)
        return key

    def untrack(self, key: DraftKey) -> None:
        self._producers.pop(key.as_string(), None)
        self.queue.unregister(key)

    def changed(self, key: DraftKey) -> bool:
        """Autosave the tab's current state locally and queue it for the next flush."""
        producer = self._producers.get(key.as_string())
        if producer is None:
            return False
        self._store.save(key, producer())
        return self.queue.mark_dirty(key)

    def discard(self, key: DraftKey) -> None:
        """Explicit discard: forget the local record and stop syncing the tab."""
        self._store.clear(key)
        self.untrack(key)
        self._conflicts.pop(key.as_string(), None)

    async def sync_now(self) -> SyncStats:
        return await self.queue.sync_all(force=True)

    # --- Conflicts ---------------------------------------------------------------

    @property
    def conflicted_tabs(self) -> List[str]:
        return list(dict.fromkeys(self._conflicts.values()))

    def conflict_message(self) -> Optional[str]:
        tabs = self.conflicted_tabs
        if not tabs:
            return None
        return (
            f"Your local changes to {join_labels(tabs)} were not saved "
            "because a newer version exists from another device."
        )

    def dismiss_conflicts(self) -> None:
        for name in list(self._conflicts):
            self.queue.acknowledge_conflict(parse_draft_key(name))
        self._conflicts.clear()

    def recovered(self, key: DraftKey) -> Any:
        """Local edits set aside by the last conflict for `key`, if any."""
        stored = self._store.load_recovery(key)
        return stored.payload if stored is not None else None

    async def reload(self, key: DraftKey) -> Any:
        """Fetch the server copy again, adopt it locally and clear the conflict for `key`."""
        payload = await self.bootstrap(key.draft_type, key.variant)
        self.queue.acknowledge_conflict(key)
        self._conflicts.pop(key.as_string(), None)
        return payload

    # --- Queue hooks -------------------------------------------------------------

    def _handle_synced(self, key: DraftKey, updated_at: datetime, started: datetime) -> None:
        self._store.mark_synced(key, updated_at, as_of=started)

    def _handle_conflict_record(self, item: DraftItem, remote: RemoteDraftRecord) -> None:
        key = item.key
        # Autosaves that landed while the flush was in flight are newer than `item.data`.
        local = self._store.load(key)
        recovered = item.data
        if (
            local is not None
            and local.pending
            and item.last_sync_attempt is not None
            and local.timestamp > item.last_sync_attempt
        ):
            recovered = local.payload
        if recovered is not None:
            self._store.save_recovery(key, recovered)
        self._store.save(key, remote.payload, remote_updated_at=remote.updated_at, synced=True)
        self._conflicts[key.as_string()] = self.queue.label_for(key)

    def _handle_conflict_label(self, label: str) -> None:
        if self._user_on_conflict is not None:
            self._user_on_conflict(label)

    def _handle_connectivity(self, online: bool) -> None:
        if not online:
            return
        LOG.info("drafts.session.reconnected module_id=%s", self.module_id)
        task = asyncio.get_running_loop().create_task(self.queue.sync_all(force=True))
        self._tasks.add(task)
        task.add_done_callback(self._reap_task)

    def _reap_task(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOG.error("drafts.session.reconnect_sync_failed module_id=%s", self.module_id, exc_info=exc)


__all__ = ["ModuleDraftSession", "join_labels"]
