"""
Module draft session: bootstrap, autosave, conflicts and reconnect.

Guards:
    - the server copy seeds a tab unless local unsynced edits sit on top of it
    - a conflict keeps the server copy and moves local edits to recovery
    - conflicting tabs share one notice
    - reconnect forces a sync pass even inside the backoff window
    - a flapping connection settles into a single reconnect sync
"""
from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from backend.drafts.config import DraftSyncConfig
from backend.drafts.connectivity import ConnectivityDetector
from backend.drafts.local_store import LocalDraftStore
from backend.drafts.session import ModuleDraftSession, join_labels

from drafts_fakes import FakeClock, FakeGateway

pytestmark = pytest.mark.anyio

CONFIG = DraftSyncConfig(interval_seconds=30.0, base_backoff_seconds=2.0, max_backoff_seconds=300.0)


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway(clock):
    return FakeGateway(clock)


@pytest.fixture
def store(tmp_path, clock):
    return LocalDraftStore(tmp_path / "drafts", clock=clock)


def _session(gateway, store, clock, **kwargs) -> ModuleDraftSession:
    kwargs.setdefault("current_user", lambda: "student-1")
    return ModuleDraftSession("mod-1", gateway, store, config=CONFIG, clock=clock, **kwargs)


def test_join_labels():
    assert join_labels([]) == ""
    assert join_labels(["Quiz"]) == "Quiz"
    assert join_labels(["Quiz", "Assignment"]) == "Quiz and Assignment"
    assert join_labels(["Quiz", "Assignment", "Flashcards"]) == "Quiz, Assignment, and Flashcards"


async def test_bootstrap_without_any_copy_returns_none(gateway, store, clock):
    session = _session(gateway, store, clock)
    assert await session.bootstrap("assignment") is None
    await session.close()


async def test_bootstrap_adopts_server_copy(gateway, store, clock):
    session = _session(gateway, store, clock)
    key = session.key("assignment")
    gateway.seed(key, {"answer": "server"}, clock.now)

    assert await session.bootstrap("assignment") == {"answer": "server"}

    stored = store.load(key)
    assert stored.payload == {"answer": "server"}
    assert stored.remote_updated_at == clock.now
    assert stored.pending is False
    await session.close()


async def test_bootstrap_keeps_unsynced_local_edits_on_same_server_version(gateway, store, clock):
    session = _session(gateway, store, clock)
    key = session.key("quiz", "final_test")
    seen = clock.now
    gateway.seed(key, {"q1": "server"}, seen)
    store.save(key, {"q1": "server"}, remote_updated_at=seen, synced=True)
    clock.advance(5)
    store.save(key, {"q1": "local edit"})

    assert await session.bootstrap("quiz", "final_test") == {"q1": "local edit"}
    assert store.load(key).pending is True
    await session.close()


async def test_bootstrap_prefers_newer_server_copy(gateway, store, clock):
    session = _session(gateway, store, clock)
    key = session.key("flashcards")
    seen = clock.now
    store.save(key, {"cards": 1}, remote_updated_at=seen, synced=True)
    clock.advance(5)
    store.save(key, {"cards": 2})
    gateway.seed(key, {"cards": 9}, clock.now)

    assert await session.bootstrap("flashcards") == {"cards": 9}
    assert store.load(key).payload == {"cards": 9}
    await session.close()


async def test_bootstrap_falls_back_to_local_when_server_unreachable(gateway, store, clock):
    session = _session(gateway, store, clock)
    key = session.key("presentation")
    store.save(key, {"slides": ["intro"]})
    gateway.fail_keys.add(key.as_string())

    assert await session.bootstrap("presentation") == {"slides": ["intro"]}
    await session.close()


async def test_changed_autosaves_locally_and_sync_marks_synced(gateway, store, clock):
    session = _session(gateway, store, clock)
    state = {"answer": "draft 1"}
    key = session.track("assignment", None, lambda: dict(state))

    state["answer"] = "draft 2"
    clock.advance(1)
    assert session.changed(key) is True
    assert store.load(key).payload == {"answer": "draft 2"}
    assert store.load(key).pending is True

    clock.advance(1)
    stats = await session.sync_now()

    assert stats.success == 1
    assert gateway.records[key.as_string()].payload == {"answer": "draft 2"}
    assert store.load(key).pending is False
    await session.close()


async def test_changed_for_untracked_key_is_ignored(gateway, store, clock):
    session = _session(gateway, store, clock)
    assert session.changed(session.key("assignment")) is False
    assert store.load(session.key("assignment")) is None
    await session.close()


async def test_conflicts_keep_server_copy_and_share_one_notice(gateway, store, clock):
    notices = []
    session = _session(gateway, store, clock, on_conflict=notices.append)
    quiz = session.key("quiz")
    assignment = session.key("assignment")
    gateway.seed(quiz, {"q": "v1"}, clock.now)
    gateway.seed(assignment, {"a": "v1"}, clock.now)
    await session.bootstrap("quiz")
    await session.bootstrap("assignment")

    session.track("quiz", None, lambda: {"q": "mine"})
    session.track("assignment", None, lambda: {"a": "mine"})
    clock.advance(10)
    gateway.seed(quiz, {"q": "other device"}, clock.now)
    gateway.seed(assignment, {"a": "other device"}, clock.now)
    clock.advance(1)

    stats = await session.sync_now()

    assert stats.conflicts == 2
    assert sorted(session.conflicted_tabs) == ["Assignment", "Quiz"]
    assert sorted(notices) == ["Assignment", "Quiz"]
    message = session.conflict_message()
    assert message.startswith("Your local changes to ")
    assert message.endswith(" were not saved because a newer version exists from another device.")
    assert " and " in message
    assert store.load(quiz).payload == {"q": "other device"}
    assert session.recovered(quiz) == {"q": "mine"}
    assert session.recovered(assignment) == {"a": "mine"}
    assert gateway.records[quiz.as_string()].payload == {"q": "other device"}

    session.dismiss_conflicts()
    assert session.conflict_message() is None
    await session.close()


async def test_reload_adopts_server_copy_and_clears_conflict(gateway, store, clock):
    session = _session(gateway, store, clock)
    key = session.key("assignment")
    gateway.seed(key, {"a": "v1"}, clock.now)
    await session.bootstrap("assignment")
    session.track("assignment", None, lambda: {"a": "mine"})
    clock.advance(5)
    gateway.seed(key, {"a": "v2"}, clock.now)
    clock.advance(1)
    await session.sync_now()
    assert session.conflicted_tabs == ["Assignment"]

    assert await session.reload(key) == {"a": "v2"}
    assert session.conflicted_tabs == []
    await session.close()


async def test_discard_forgets_local_record_and_registration(gateway, store, clock):
    session = _session(gateway, store, clock)
    key = session.track("flashcards", None, lambda: {"cards": []})
    session.changed(key)
    session.discard(key)

    assert store.load(key) is None
    assert session.queue.registered_count == 0
    assert session.changed(key) is False
    await session.close()


async def test_reconnect_forces_sync_inside_backoff_window(gateway, store, clock):
    detector = ConnectivityDetector(debounce_seconds=0, initial_online=False)
    session = _session(gateway, store, clock, detector=detector)
    async with session:
        key = session.track("assignment", None, lambda: {"a": "offline work"})
        gateway.fail_keys.add(key.as_string())
        stats = await session.sync_now()
        assert stats.failed == 1

        gateway.fail_keys.clear()
        detector.report(True)
        await _settle()

        assert gateway.records[key.as_string()].payload == {"a": "offline work"}
        assert session.queue.queue_size == 0

    assert session.queue.timer_running is False
    assert session.queue.registered_count == 0


async def test_going_offline_does_not_trigger_sync(gateway, store, clock):
    detector = ConnectivityDetector(debounce_seconds=0)
    session = _session(gateway, store, clock, detector=detector)
    async with session:
        session.track("assignment", None, lambda: {"a": 1})
        detector.report(False)
        await _settle()
        assert gateway.upserts == []


async def test_offline_draft_never_synced_yields_to_newer_server_copy(gateway, store, clock):
    notices = []
    session = _session(gateway, store, clock, on_conflict=notices.append)
    key = session.key("quiz")
    edited = clock.now
    store.save(key, {"q1": "offline edit"})
    gateway.fail_keys.add(key.as_string())
    assert await session.bootstrap("quiz") == {"q1": "offline edit"}

    gateway.fail_keys.clear()
    gateway.seed(key, {"q1": "other device"}, edited + timedelta(seconds=2))
    clock.advance(60)
    session.track("quiz", None, lambda: {"q1": "offline edit"})

    stats = await session.sync_now()

    assert (stats.success, stats.conflicts) == (0, 1)
    assert gateway.upserts == []
    assert gateway.records[key.as_string()].payload == {"q1": "other device"}
    assert session.recovered(key) == {"q1": "offline edit"}
    assert notices == ["Quiz"]
    await session.close()


async def test_conflict_recovers_edits_autosaved_during_flush(gateway, store, clock):
    session = _session(gateway, store, clock)
    key = session.key("assignment")
    gateway.seed(key, {"a": "v1"}, clock.now)
    await session.bootstrap("assignment")
    state = {"a": "first"}
    session.track("assignment", None, lambda: dict(state))
    clock.advance(1)
    gateway.seed(key, {"a": "other device"}, clock.now)

    gateway.get_gate = asyncio.Event()
    flush = asyncio.create_task(session.sync_now())
    await _settle()
    clock.advance(1)
    state["a"] = "second"
    session.changed(key)
    gateway.get_gate.set()
    stats = await flush

    assert stats.conflicts == 1
    assert session.recovered(key) == {"a": "second"}
    assert store.load(key).payload == {"a": "other device"}
    await session.close()


async def test_reconnect_after_flapping_runs_exactly_one_sync(gateway, store, clock):
    detector = ConnectivityDetector(debounce_seconds=0.05, initial_online=False)
    session = _session(gateway, store, clock, detector=detector)
    async with session:
        quiz = session.track("quiz", None, lambda: {"q": "offline"})
        assignment = session.track("assignment", None, lambda: {"a": "offline"})
        assert session.queue.queue_size == 2

        calls = []
        sync_all = session.queue.sync_all

        async def counting_sync_all(**kwargs):
            calls.append(kwargs)
            return await sync_all(**kwargs)

        session.queue.sync_all = counting_sync_all
        for online in (True, False, True, False, True):
            detector.report(online)
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.15)
        await _settle()

        assert calls == [{"force": True}]
        assert session.queue.queue_size == 0
        assert gateway.records[quiz.as_string()].payload == {"q": "offline"}
        assert gateway.records[assignment.as_string()].payload == {"a": "offline"}
