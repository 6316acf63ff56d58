"""
Draft sync configuration.

Intent:
    Read the timer cadence, backoff bounds, connectivity debounce and local
    store location from environment variables in one place so the queue, the
    session and the CLI stay consistent.
"""
from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path


@dataclass(frozen=True)
class DraftSyncConfig:
    interval_seconds: float = 30.0
    base_backoff_seconds: float = 2.0
    max_backoff_seconds: float = 300.0
    debounce_seconds: float = 1.0
    store_dir: Path = Path(".modulearn") / "drafts"
    max_payload_bytes: int = 256 * 1024


def _float_env(name: str, default: float, *, minimum: float, maximum: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got: {raw!r}")
    if value < minimum or value > maximum:
        raise ValueError(f"{name} out of range ({minimum}..{maximum}), got: {value}")
    return value


def _int_env(name: str, default: int, *, minimum: int, maximum: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}")
    if value < minimum or value > maximum:
        raise ValueError(f"{name} out of range ({minimum}..{maximum}), got: {value}")
    return value


def load_sync_config() -> DraftSyncConfig:
    """
    Parse and validate draft sync settings from the environment.

    Behavior:
        - `DRAFT_SYNC_INTERVAL_SECONDS` periodic flush cadence (default 30).
        - `DRAFT_SYNC_BASE_BACKOFF_SECONDS` / `DRAFT_SYNC_MAX_BACKOFF_SECONDS`
          bound the exponential retry delay; base must not exceed max.
        - `DRAFT_CONNECTIVITY_DEBOUNCE_SECONDS` collapses flapping network events.
        - `DRAFT_STORE_DIR` is where the local draft store keeps its files.
        - `DRAFT_MAX_PAYLOAD_BYTES` caps a single serialized draft (server side).
    """
    interval = _float_env("DRAFT_SYNC_INTERVAL_SECONDS", 30.0, minimum=1.0, maximum=3600.0)
    base = _float_env("DRAFT_SYNC_BASE_BACKOFF_SECONDS", 2.0, minimum=0.1, maximum=3600.0)
    max_backoff = _float_env("DRAFT_SYNC_MAX_BACKOFF_SECONDS", 300.0, minimum=1.0, maximum=86400.0)
    if base > max_backoff:
        raise ValueError("DRAFT_SYNC_BASE_BACKOFF_SECONDS must not exceed DRAFT_SYNC_MAX_BACKOFF_SECONDS")
    debounce = _float_env("DRAFT_CONNECTIVITY_DEBOUNCE_SECONDS", 1.0, minimum=0.0, maximum=60.0)
    store_dir = Path((os.getenv("DRAFT_STORE_DIR") or "").strip() or DraftSyncConfig.store_dir)
    max_payload = _int_env("DRAFT_MAX_PAYLOAD_BYTES", 256 * 1024, minimum=1024, maximum=5 * 1024 * 1024)
    return DraftSyncConfig(
        interval_seconds=interval,
        base_backoff_seconds=base,
        max_backoff_seconds=max_backoff,
        debounce_seconds=debounce,
        store_dir=store_dir,
        max_payload_bytes=max_payload,
    )


__all__ = ["DraftSyncConfig", "load_sync_config"]
