"""
Shared helper for wiring the Supabase-backed storage adapter.

Why:
    Uploaded assessment documents live in a private Supabase bucket. The app
    may start before Supabase is reachable locally, so wiring is idempotent
    and keeps the Null adapter (documents cannot be processed) on failure.

Security:
    Requires SUPABASE_SERVICE_ROLE_KEY and SUPABASE_URL environment variables.
    The helper only wires server-side adapters; no secrets are exposed to clients.
"""
from __future__ import annotations

import logging
import os
from urllib.parse import urlparse


def _is_local_host(url: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return host in {"127.0.0.1", "localhost"}


def wire_supabase_adapter_if_configured() -> bool:
    """Attempt to wire the Supabase storage adapter into the assessment routes.

    Behavior:
        - Returns True when wiring succeeds (adapter injected).
        - Returns False when not configured or the client cannot be built.
        - Safe and idempotent to call multiple times.

    Logging:
        - On success, logs an info message.
        - On failure, logs a warning including the exception class.
    """
    logger = logging.getLogger("modulearn.web")
    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not url or not key:
        return False

    from backend.storage.supabase_adapter import SupabaseStorageAdapter
    from backend.web.routes import assessments as _assessments

    adapter = None
    try:
        from supabase import create_client

        adapter = SupabaseStorageAdapter(create_client(url, key))
    except Exception as exc:
        # supabase-py rejects the non-JWT keys of a local `supabase start`.
        logger.warning("Supabase client unavailable: %s", exc.__class__.__name__)

    if adapter is None:
        force = (os.getenv("SUPABASE_FALLBACK_STORAGE3", "false").lower() == "true")
        if not force and not _is_local_host(url):
            return False
        from storage3._sync.client import SyncStorageClient

        storage_url = f"{url.rstrip('/')}/storage/v1"
        headers = {"Authorization": f"Bearer {key}", "apikey": key}
        adapter = SupabaseStorageAdapter(SyncStorageClient(storage_url, headers))

    _assessments.set_storage_adapter(adapter)
    logger.info("Storage adapter wired: Supabase")
    return True


__all__ = ["wire_supabase_adapter_if_configured"]
