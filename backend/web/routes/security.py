"""
Shared web security helpers for the API routers.

Contains the same-origin check for state-changing requests, the private JSON
response helper and role guards. Keeping a single implementation avoids
security drift between routers.
"""
from __future__ import annotations

import os
from typing import Iterable, Optional
from urllib.parse import urlparse

from fastapi import Request
from fastapi.responses import JSONResponse


def _private_headers() -> dict[str, str]:
    # Responses carry per-user data: never store them in shared caches.
    return {"Cache-Control": "private, no-store", "Vary": "Origin"}


def _private_json(body: object, *, status_code: int = 200) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers=_private_headers())


def _error(status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    body = {"error": error}
    if detail:
        body["detail"] = detail
    return _private_json(body, status_code=status_code)


def _current_user(request: Request) -> Optional[dict]:
    user = getattr(request.state, "user", None)
    return user if isinstance(user, dict) else None


def _require_roles(request: Request, allowed: Iterable[str]):
    """Return `(user, None)` for callers holding one of `allowed`, else `(None, error_response)`."""
    user = _current_user(request)
    if not user:
        return None, _error(401, "unauthenticated")
    roles = user.get("roles")
    wanted = {r.lower() for r in allowed}
    if not isinstance(roles, list) or not any(str(r).lower() in wanted for r in roles):
        return None, _error(403, "forbidden")
    return user, None


def _require_user(request: Request):
    user = _current_user(request)
    if not user or not user.get("sub"):
        return None, _error(401, "unauthenticated")
    return user, None


def _parse_origin(url: str) -> tuple[str, str, int]:
    p = urlparse(url)
    if not p.scheme or not p.hostname:
        raise ValueError("invalid_origin")
    scheme = p.scheme.lower()
    port = p.port if p.port is not None else (443 if scheme == "https" else 80)
    return scheme, p.hostname.lower(), int(port)


def _server_origin(req: Request) -> tuple[str, str, int]:
    trust_proxy = (os.getenv("MODULEARN_TRUST_PROXY", "false") or "").lower() == "true"
    if trust_proxy:
        scheme = (req.headers.get("x-forwarded-proto") or req.url.scheme or "http").split(",")[0].strip().lower()
        host_raw = (req.headers.get("x-forwarded-host") or req.headers.get("host") or "").split(",")[0].strip()
        default = 443 if scheme == "https" else 80
        if ":" in host_raw:
            host, port_str = host_raw.rsplit(":", 1)
            try:
                port = int(port_str)
            except ValueError:
                port = default
        else:
            host = host_raw or (req.url.hostname or "")
            port = default
        return scheme, host.lower(), port
    scheme = (req.url.scheme or "http").lower()
    host = (req.url.hostname or "").lower()
    port = int(req.url.port) if req.url.port else (443 if scheme == "https" else 80)
    return scheme, host, port


def _is_same_origin(request: Request) -> bool:
    """Verify same-origin using Origin or Referer headers.

    Behavior:
    - If Origin is present, require exact scheme/host/port match with server.
    - Else if Referer is present, validate its origin similarly.
    - Else (no headers): allow, so non-browser clients (sync engine, CLI) work.
    Proxy awareness: Only trust X-Forwarded-* when MODULEARN_TRUST_PROXY=true.
    """
    try:
        server = _server_origin(request)
        origin_val = request.headers.get("origin")
        if origin_val:
            return _parse_origin(origin_val) == server
        referer_val = request.headers.get("referer")
        if referer_val:
            return _parse_origin(referer_val) == server
        return True
    except ValueError:
        return False
