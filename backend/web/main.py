"modulearn API"
from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from backend.identity_access.domain import primary_role
from backend.identity_access.stores import SessionStore
from backend.web.auth_utils import cookie_opts


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out/opt-in via MODULEARN_ENABLE_DOTENV (default true
      outside pytest).
    """
    import sys
    # Under pytest, do not load .env – tests provide their own env.
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("MODULEARN_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


from dotenv import load_dotenv

if _should_load_dotenv():
    load_dotenv()

# Minimal production safety checks (fail-fast on insecure config)
from backend.web import config as _cfg

_cfg.ensure_secure_config_on_startup()

logger = logging.getLogger("modulearn.web")
SESSION_COOKIE_NAME = "modulearn_session"
SESSION_STORE = SessionStore()


def _environment() -> str:
    return (os.getenv("MODULEARN_ENV", "dev") or "dev").lower()


app = FastAPI(title="modulearn", description="Module drafts, AI assessments and grading", version="0.1.0")

from backend.web.routes.assessments import assessments_router
from backend.web.routes.drafts import drafts_router
from backend.web.routes.grading import grading_router
from backend.web.routes.operations import operations_router
from backend.web.routes.security import _error, _is_same_origin, _private_headers
from backend.web.storage_wiring import wire_supabase_adapter_if_configured as _wire_storage

# Call wiring early so routes receive the adapter before first request handling.
_wire_storage()

# --- Auth Middleware -----------------------------------------------------------


def _is_public_path(path: str) -> bool:
    return path in ("/health", "/favicon.ico")


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    path = request.url.path
    if _is_public_path(path):
        return await call_next(request)

    sid = request.cookies.get(SESSION_COOKIE_NAME)
    rec = None
    if sid:
        try:
            rec = SESSION_STORE.get(sid)
        except Exception as exc:
            logger.warning("Session store get failed: %s", exc.__class__.__name__)

    if not rec:
        return JSONResponse({"error": "unauthenticated"}, status_code=401, headers=_private_headers())

    # Expose minimal, read-only user context for downstream handlers.
    request.state.user = {"sub": rec.sub, "name": rec.name, "role": primary_role(rec.roles), "roles": rec.roles}
    return await call_next(request)


# --- Security Headers Middleware ----------------------------------------------


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    # HSTS: always on (dev = prod)
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


# --- Routes --------------------------------------------------------------------

app.include_router(drafts_router)
app.include_router(assessments_router)
app.include_router(grading_router)
app.include_router(operations_router)


@app.get("/health")
async def health_check():
    # Minimal health endpoint used by orchestrators and the sync engine's probe.
    return JSONResponse({"status": "healthy"}, headers={"Cache-Control": "private, no-store"})


@app.post("/api/session/logout")
async def logout(request: Request):
    """End the caller's session and expire the cookie."""
    if not _is_same_origin(request):
        return _error(403, "forbidden", "csrf_violation")
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    if sid:
        SESSION_STORE.delete(sid)
    response = Response(status_code=204, headers=_private_headers())
    opts = cookie_opts(_environment())
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path="/",
        secure=opts["secure"],
        httponly=True,
        samesite=opts["samesite"],
    )
    return response
