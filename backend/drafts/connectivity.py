"""
Connectivity detection with debounce.

Intent:
    Turn noisy network signals (OS events, failed probes) into a stable
    online/offline state. Subscribers only hear about committed transitions,
    so a connection that flaps several times within the debounce window
    produces at most one notification.

Scheduling:
    Runs on the caller's event loop via `loop.call_later`; a newer report
    cancels the pending one.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

import httpx

LOG = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivityDetector:
    """Debounced online/offline state with change listeners."""

    def __init__(self, *, debounce_seconds: float = 1.0, initial_online: bool = True) -> None:
        if debounce_seconds < 0:
            raise ValueError("debounce_seconds must be >= 0")
        self._debounce = debounce_seconds
        self._online = initial_online
        self._listeners: List[Listener] = []
        self._pending: Optional[asyncio.TimerHandle] = None

    @property
    def online(self) -> bool:
        return self._online

    @property
    def settling(self) -> bool:
        """True while a reported change waits out the debounce window."""
        return self._pending is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener(online)` and return a function that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def report(self, online: bool) -> None:
        """Feed a raw signal; the state commits after `debounce_seconds` of quiet."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        if online == self._online:
            return
        if self._debounce == 0:
            self._commit(online)
            return
        loop = asyncio.get_running_loop()
        self._pending = loop.call_later(self._debounce, self._commit, online)

    def close(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._listeners.clear()

    def _commit(self, online: bool) -> None:
        self._pending = None
        if online == self._online:
            return
        self._online = online
        LOG.info("drafts.connectivity.changed online=%s", online)
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                LOG.exception("drafts.connectivity.listener_failed")


class HttpConnectivityProbe:
    """Poll a health endpoint and feed the result into a detector.

    Parameters:
        detector: Receives one `report()` per probe.
        base_url: Server origin, e.g. `https://lms.example`.
        path: Endpoint that answers 2xx when the backend is reachable.
        timeout: Per-probe timeout in seconds.
        client: Optional shared `httpx.AsyncClient` (tests pass an ASGI transport).
    """

    def __init__(
        self,
        detector: ConnectivityDetector,
        *,
        base_url: str,
        path: str = "/health",
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._detector = detector
        self._url = base_url.rstrip("/") + path
        self._timeout = timeout
        self._client = client

    async def probe_once(self) -> bool:
        try:
            if self._client is not None:
                resp = await self._client.get(self._url, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.get(self._url)
            online = 200 <= resp.status_code < 300
        except httpx.HTTPError as exc:
            LOG.debug("drafts.connectivity.probe_failed reason=%s", exc.__class__.__name__)
            online = False
        self._detector.report(online)
        return online

    async def run(self, *, interval_seconds: float = 15.0) -> None:
        """Probe forever; cancel the surrounding task to stop."""
        while True:
            await self.probe_once()
            await asyncio.sleep(interval_seconds)


__all__ = ["ConnectivityDetector", "HttpConnectivityProbe"]
