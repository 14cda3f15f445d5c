"""
tests/test_memory_session_store.py

Pytest tests for InMemorySessionStore.

Coverage
--------
- Concurrent appends and progress increments are lossless
- Stale progress commits are rejected; snapshots are immutable
- Status transition rules and completed_at stamping
- Duplicate ids and unknown sessions
- Listing order and filters
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from app.domain.scrape_session import Business, LogEntry, ProgressDelta, SessionConfig, SessionStatus
from app.scraping.errors import InvalidStatusTransitionError, SessionNotFoundError, StaleProgressError


def _create(memory_store, session_id: str = "s-1", owner_id: str = "user-1", towns=("A", "B", "C")):
    return memory_store.create(
        session_id=session_id,
        owner_id=owner_id,
        towns=list(towns),
        industries=["x", "y"],
        config=SessionConfig(),
    )


def test_concurrent_writes_are_lossless(memory_store) -> None:
    _create(memory_store, towns=["T"] * 200)

    def _write(index: int) -> None:
        memory_store.append_log("s-1", LogEntry.create(f"log {index}"))
        memory_store.append_businesses(
            "s-1",
            [Business(name=f"Shop {index}", phone="", town="T", industry="x")],
        )
        memory_store.update_progress("s-1", ProgressDelta(completed_towns=1, total_businesses=1))

    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(_write, range(200)))

    session = memory_store.get("s-1")
    assert len(session.logs) == 200
    assert len(session.results) == 200
    assert session.progress.completed_towns == 200
    assert session.progress.total_businesses == 200


def test_create_sets_totals_and_rejects_duplicates(memory_store) -> None:
    session = _create(memory_store)

    assert session.status == SessionStatus.PENDING
    assert session.progress.total_towns == 3
    assert session.progress.total_industries == 6
    with pytest.raises(ValueError):
        _create(memory_store)


def test_completed_towns_never_exceed_total(memory_store) -> None:
    _create(memory_store)

    progress = memory_store.update_progress("s-1", ProgressDelta(completed_towns=10))

    assert progress.completed_towns == 3


def test_progress_commit_rejects_stale_town_count(memory_store) -> None:
    _create(memory_store)
    memory_store.update_progress("s-1", ProgressDelta(completed_towns=1, expected_completed_towns=0))

    with pytest.raises(StaleProgressError):
        memory_store.update_progress(
            "s-1",
            ProgressDelta(completed_towns=1, total_businesses=4, expected_completed_towns=0),
        )

    progress = memory_store.get("s-1").progress
    assert progress.completed_towns == 1
    assert progress.total_businesses == 0


def test_snapshots_are_not_affected_by_later_appends(memory_store) -> None:
    _create(memory_store)
    memory_store.append_log("s-1", LogEntry.create("first"))
    before = memory_store.get("s-1")

    memory_store.append_log("s-1", LogEntry.create("second"))
    memory_store.append_businesses("s-1", [Business(name="Shop", phone="", town="A", industry="x")])

    assert [entry.message for entry in before.logs] == ["first"]
    assert before.results == ()
    after = memory_store.get("s-1")
    assert [entry.message for entry in after.logs] == ["first", "second"]
    assert [business.name for business in after.results] == ["Shop"]


def test_status_transitions(memory_store) -> None:
    _create(memory_store)

    running = memory_store.update_status("s-1", SessionStatus.RUNNING)
    with pytest.raises(InvalidStatusTransitionError):
        memory_store.update_status("s-1", SessionStatus.PENDING)
    completed = memory_store.update_status("s-1", SessionStatus.COMPLETED)

    assert running.completed_at is None
    assert completed.completed_at is not None
    with pytest.raises(InvalidStatusTransitionError):
        memory_store.update_status("s-1", SessionStatus.STOPPED)


def test_unknown_session(memory_store) -> None:
    assert memory_store.get("missing") is None
    with pytest.raises(SessionNotFoundError):
        memory_store.update_status("missing", SessionStatus.RUNNING)
    with pytest.raises(SessionNotFoundError):
        memory_store.append_log("missing", LogEntry.create("hello"))


def test_list_sessions_newest_first_with_filters(memory_store) -> None:
    _create(memory_store, "s-1", "user-1")
    _create(memory_store, "s-2", "user-2")
    _create(memory_store, "s-3", "user-1")
    memory_store.update_status("s-3", SessionStatus.STOPPED)

    assert [session.id for session in memory_store.list_sessions()] == ["s-3", "s-2", "s-1"]
    assert [session.id for session in memory_store.list_sessions(owner_id="user-1")] == ["s-3", "s-1"]
    assert [session.id for session in memory_store.list_sessions(statuses=SessionStatus.ACTIVE)] == ["s-2", "s-1"]
