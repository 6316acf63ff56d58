"""
HTTP gateway from the client-side sync engine to the drafts API.

Routes:
    GET /api/modules/{module_id}/drafts/{draft_type}?variant=...
    PUT /api/modules/{module_id}/drafts/{draft_type}?variant=...   body {"data": ...}

Error mapping:
    - 404 on GET means "no draft yet" and returns None.
    - Transport errors, timeouts and any other non-2xx status raise
      DraftRemoteError so the queue retries with backoff.
"""
from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Optional

import httpx

from .keys import DraftKey
from .ports import DraftRemoteError, RemoteDraftRecord

LOG = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "modulearn_session"


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str) or not value:
        raise DraftRemoteError("missing updated_at")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise DraftRemoteError("invalid updated_at") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class HttpDraftGateway:
    """RemoteDraftGatewayProtocol implementation backed by `httpx.AsyncClient`."""

    def __init__(
        self,
        base_url: str,
        *,
        session_cookie: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._cookies = {SESSION_COOKIE_NAME: session_cookie} if session_cookie else None
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _path(self, key: DraftKey) -> str:
        return f"{self._base_url}/api/modules/{key.module_id}/drafts/{key.draft_type}"

    def _params(self, key: DraftKey) -> dict:
        return {"variant": key.variant} if key.variant else {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, cookies=self._cookies)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, key: DraftKey, **kwargs: Any) -> httpx.Response:
        client = self._get_client()
        if self._cookies and not self._owns_client:
            kwargs.setdefault("cookies", self._cookies)
        try:
            return await client.request(method, self._path(key), params=self._params(key), **kwargs)
        except httpx.HTTPError as exc:
            LOG.info("drafts.remote.transport_error method=%s key=%s reason=%s", method, key, exc.__class__.__name__)
            raise DraftRemoteError(exc.__class__.__name__) from exc

    async def get(self, key: DraftKey) -> Optional[RemoteDraftRecord]:
        resp = await self._request("GET", key)
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise DraftRemoteError(f"unexpected status {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise DraftRemoteError("invalid json") from exc
        if not isinstance(body, dict):
            raise DraftRemoteError("invalid body")
        return RemoteDraftRecord(key=key, payload=body.get("data"), updated_at=_parse_timestamp(body.get("updated_at")))

    async def upsert(self, key: DraftKey, payload: Any) -> datetime:
        resp = await self._request("PUT", key, json={"data": payload})
        if resp.status_code not in (200, 201):
            raise DraftRemoteError(f"unexpected status {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise DraftRemoteError("invalid json") from exc
        return _parse_timestamp((body or {}).get("updated_at") if isinstance(body, dict) else None)


__all__ = ["HttpDraftGateway", "SESSION_COOKIE_NAME"]
