"""Command line entry point for flushing locally saved drafts to the server.

Why:
    Drafts written while offline stay in the local store until a module view
    flushes them. This CLI pushes every pending draft in one forced pass, e.g.
    before wiping a lab machine or after a long outage.
"""
from __future__ import annotations

import asyncio
from collections import defaultdict
import logging
import os
from pathlib import Path
from typing import Dict, List

import click

from backend.drafts.config import DraftSyncConfig, load_sync_config
from backend.drafts.keys import DraftKey
from backend.drafts.local_store import LocalDraftStore
from backend.drafts.ports import RemoteDraftGatewayProtocol, SyncStats
from backend.drafts.remote_http import HttpDraftGateway
from backend.drafts.session import ModuleDraftSession

logger = logging.getLogger("modulearn.tools.flush_drafts")


def _group_by_module(keys: List[DraftKey]) -> Dict[str, List[DraftKey]]:
    grouped: Dict[str, List[DraftKey]] = defaultdict(list)
    for key in keys:
        grouped[key.module_id].append(key)
    return dict(grouped)


async def flush_pending(
    store: LocalDraftStore,
    gateway: RemoteDraftGatewayProtocol,
    *,
    user: str,
    config: DraftSyncConfig | None = None,
) -> SyncStats:
    """Register every pending local draft and run one forced sync pass per module.

    Conflicts behave exactly as in the app: the newer server copy is kept and
    the local edits move to the recovery slot.
    """
    success = failed = total = conflicts = 0
    for module_id, keys in sorted(_group_by_module(store.pending_keys()).items()):
        session = ModuleDraftSession(module_id, gateway, store, config=config, current_user=lambda: user)
        try:
            for key in keys:
                stored = store.load(key)
                if stored is None:
                    continue
                # `track` restores the stored edit time and last seen server version.
                payload = stored.payload
                session.track(key.draft_type, key.variant, lambda payload=payload: payload)
            stats = await session.sync_now()
            for tab in session.conflicted_tabs:
                logger.warning("flush.conflict module_id=%s tab=%s", module_id, tab)
        finally:
            await session.close()
        success += stats.success
        failed += stats.failed
        total += stats.total
        conflicts += stats.conflicts
    return SyncStats(success=success, failed=failed, total=total, conflicts=conflicts)


async def _run(base_url: str, store_dir: Path, session_cookie: str, timeout: float, config: DraftSyncConfig) -> SyncStats:
    store = LocalDraftStore(store_dir)
    gateway = HttpDraftGateway(base_url, session_cookie=session_cookie, timeout=timeout)
    try:
        # The cookie authenticates; the server scopes drafts by the session's user.
        return await flush_pending(store, gateway, user="session", config=config)
    finally:
        await gateway.aclose()


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--base-url", required=True, help="Base URL of the modulearn API (e.g. https://app.localhost).")
@click.option(
    "--store-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Local draft store directory (default: DRAFT_STORE_DIR or .modulearn/drafts).",
)
@click.option("--session", "session_cookie", envvar="MODULEARN_SESSION", required=True, help="Value of the modulearn_session cookie.")
@click.option("--timeout", type=float, default=10.0, show_default=True, help="HTTP timeout per request in seconds.")
@click.option("--log-level", default=lambda: os.getenv("LOG_LEVEL", "INFO"), show_default="LOG_LEVEL or INFO")
def cli(base_url: str, store_dir: Path | None, session_cookie: str, timeout: float, log_level: str) -> None:
    """Push every pending local draft to the server in one forced pass."""
    logging.basicConfig(level=log_level.upper(), format="%(levelname)s:%(name)s:%(message)s")
    try:
        config = load_sync_config()
    except ValueError as exc:
        raise click.ClickException(str(exc))
    stats = asyncio.run(_run(base_url, store_dir or config.store_dir, session_cookie, timeout, config))
    if not stats.total:
        click.echo("No pending drafts; nothing to do.")
        return
    click.echo(
        "Flushed drafts success={success}, failed={failed}, conflicts={conflicts}, total={total}".format(
            **stats.as_dict()
        )
    )
    if stats.failed:
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover - manual entry
    cli()
