"""
Configuration and startup security checks for the modulearn backend.

Why: Student work and grades must not end up behind an insecure deployment.
This module provides a single guard that enforces minimal production safety
constraints without burdening local development.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/stage only):
    - Supabase Service Role key must be set and not a known dummy placeholder.
    - DATABASE_URL must be set and must not explicitly disable TLS.
    - AI_BACKEND must not be the stub; the gateway needs https and a key.
    - Draft/AI config must parse (invalid values abort startup).
    """
    env = os.getenv("MODULEARN_ENV", "dev")
    if not _is_prod_like(env):
        return  # dev/test remain permissive

    # 1) Supabase Service Role key
    srole = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip()
    if not srole or srole.upper() == "DUMMY_DO_NOT_USE":
        raise SystemExit(
            "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is unset or a dummy placeholder in production."
        )

    # 2) Postgres DSN present and without an explicit TLS disable
    dsn = os.getenv("DATABASE_URL", "")
    if not dsn:
        raise SystemExit("Refusing to start: DATABASE_URL is required in production.")
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: DATABASE_URL contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )

    # 3) AI backend safety: stub adapters must never run in prod/stage.
    ai_backend = (os.getenv("AI_BACKEND") or "stub").strip().lower()
    if ai_backend == "stub":
        raise SystemExit(
            "Refusing to start: AI_BACKEND=stub is not allowed in production/staging. Configure a real adapter."
        )

    # 4) Config modules validate their own ranges; surface errors as startup failures.
    from backend.assessments.config import load_ai_config
    from backend.drafts.config import load_sync_config

    try:
        load_ai_config()
        load_sync_config()
    except ValueError as exc:
        raise SystemExit(f"Refusing to start: {exc}")
