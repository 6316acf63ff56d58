"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend (the sync engine is asyncio-only)
and reset process-wide state (telemetry, route singletons, env toggles) so
tests stay independent in full-suite runs.
"""
import importlib
import sys
from pathlib import Path

import pytest

# Ensure `backend.*` imports resolve from the repository root.
REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Clear env toggles that would leak between tests.

    Behavior:
        - Default to the dev environment with the stub AI backend.
        - Drop DSNs so route repos never reach for a live database.
        - Drop draft sync overrides and proxy trust.
    """
    for var in (
        "MODULEARN_ENV",
        "MODULEARN_TRUST_PROXY",
        "AI_BACKEND",
        "AI_GENERATION_ADAPTER",
        "AI_GENERATION_MODEL",
        "AI_TIMEOUT_GENERATION",
        "AI_GATEWAY_URL",
        "AI_GATEWAY_API_KEY",
        "OLLAMA_BASE_URL",
        "DATABASE_URL",
        "DRAFTS_DATABASE_URL",
        "GRADING_DATABASE_URL",
        "SUPABASE_URL",
        "SUPABASE_SERVICE_ROLE_KEY",
        "SUPABASE_FALLBACK_STORAGE3",
        "MODULEARN_SESSION",
        "ASSESSMENT_STORAGE_BUCKET",
        "ASSESSMENT_STORAGE_DIR",
        "DRAFT_SYNC_INTERVAL_SECONDS",
        "DRAFT_SYNC_BASE_BACKOFF_SECONDS",
        "DRAFT_SYNC_MAX_BACKOFF_SECONDS",
        "DRAFT_CONNECTIVITY_DEBOUNCE_SECONDS",
        "DRAFT_STORE_DIR",
        "DRAFT_MAX_PAYLOAD_BYTES",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_telemetry():
    from backend.drafts import telemetry

    telemetry.reset_for_tests()
    yield
    telemetry.reset_for_tests()


@pytest.fixture(autouse=True)
def _reset_route_singletons():
    """Give every test fresh in-memory repos, the stub adapter and no storage.

    Tests that need seeded data call `set_repo(...)` themselves afterwards.
    """
    try:
        drafts = importlib.import_module("backend.web.routes.drafts")
        assessments = importlib.import_module("backend.web.routes.assessments")
        grading = importlib.import_module("backend.web.routes.grading")
    except ImportError:
        yield
        return
    from backend.assessments.adapters.stub_generation import StubGenerationAdapter
    from backend.drafts.repo import InMemoryDraftRepo
    from backend.grading.repo import InMemoryGradingRepo
    from backend.storage.ports import NullStorage

    drafts.set_repo(InMemoryDraftRepo())
    assessments.set_repo(InMemoryGradingRepo())
    assessments.set_adapter(StubGenerationAdapter())
    assessments.set_storage_adapter(NullStorage())
    grading.set_repo(InMemoryGradingRepo())
    yield


@pytest.fixture(autouse=True)
def _reset_session_store(monkeypatch: pytest.MonkeyPatch):
    """Install a fresh SESSION_STORE on the app module per test."""
    try:
        main = importlib.import_module("backend.web.main")
    except ImportError:
        yield
        return
    from backend.identity_access.stores import SessionStore

    monkeypatch.setattr(main, "SESSION_STORE", SessionStore(), raising=False)
    yield
