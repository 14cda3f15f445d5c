"""
tests/test_event_bus.py

Pytest tests for ProgressEventBus, the publishing store decorator and the
SSE frame stream.

Coverage
--------
- Initial synthetic progress event reflects persisted progress
- Terminal sessions also get an immediate complete event
- Store mutations become log / progress / complete events
- Subscriptions are per session and deregister on close
- Slow subscribers drop their oldest events
- SSE framing, heartbeat on idle, close after complete, release on disconnect
"""

from __future__ import annotations

import asyncio
import json

import pytest

from app.domain.scrape_session import LogEntry, LogLevel, ProgressDelta, SessionConfig, SessionStatus
from app.scraping.errors import SessionNotFoundError
from app.services.event_bus import HEARTBEAT_FRAME, EventType, ProgressEventBus, stream_events


@pytest.fixture()
def session(store):
    return store.create(
        session_id="s-1",
        owner_id="user-1",
        towns=["A", "B", "C", "D"],
        industries=["x"],
        config=SessionConfig(),
    )


def _collect(agen) -> list[str]:
    async def _run() -> list[str]:
        return [frame async for frame in agen]

    return asyncio.run(_run())


# ---------------------------------------------------------------------------
# Subscription
# ---------------------------------------------------------------------------


class TestSubscribe:
    def test_unknown_session_raises(self, event_bus) -> None:
        with pytest.raises(SessionNotFoundError):
            event_bus.subscribe("missing")
        assert event_bus.subscriber_count("missing") == 0

    def test_initial_event_reflects_persisted_progress(self, store, event_bus, session) -> None:
        store.update_status(session.id, SessionStatus.RUNNING)
        store.update_progress(session.id, ProgressDelta(completed_towns=1, total_businesses=7, processing_seconds=30.0))

        with event_bus.subscribe(session.id) as subscription:
            first = subscription.get(timeout=0.1)

        assert first.type == EventType.PROGRESS
        assert first.data["completed_towns"] == 1
        assert first.data["total_towns"] == 4
        assert first.data["towns_remaining"] == 3
        assert first.data["businesses_scraped"] == 7
        assert first.data["percentage"] == 25
        assert first.data["estimated_seconds_remaining"] == 90.0

    def test_terminal_session_gets_complete_event(self, store, event_bus, session) -> None:
        store.update_status(session.id, SessionStatus.STOPPED)

        with event_bus.subscribe(session.id) as subscription:
            events = [subscription.get(timeout=0.1), subscription.get(timeout=0.1)]

        assert [event.type for event in events] == [EventType.PROGRESS, EventType.COMPLETE]
        assert events[1].data["status"] == SessionStatus.STOPPED
        assert events[1].data["businesses"] == []

    def test_close_deregisters_and_is_idempotent(self, event_bus, session) -> None:
        subscription = event_bus.subscribe(session.id)
        assert event_bus.subscriber_count(session.id) == 1

        subscription.close()
        subscription.close()

        assert subscription.closed is True
        assert event_bus.subscriber_count(session.id) == 0

    def test_channels_are_per_session(self, store, event_bus, session) -> None:
        store.create(session_id="s-2", owner_id="user-1", towns=["A"], industries=["x"], config=SessionConfig())
        first = event_bus.subscribe(session.id)
        second = event_bus.subscribe("s-2")
        first.get(timeout=0.1)
        second.get(timeout=0.1)

        delivered = event_bus.publish("s-2", EventType.LOG, {"message": "only s-2"})

        assert delivered == 1
        assert first.get(timeout=0.01) is None
        assert second.get(timeout=0.1).data == {"message": "only s-2"}
        first.close()
        second.close()

    def test_full_queue_drops_oldest(self, memory_store, session) -> None:
        bus = ProgressEventBus(session_loader=memory_store.get, queue_size=2)
        subscription = bus.subscribe(session.id)

        bus.publish(session.id, EventType.LOG, {"n": 1})
        bus.publish(session.id, EventType.LOG, {"n": 2})

        assert subscription.get(timeout=0.1).data == {"n": 1}
        assert subscription.get(timeout=0.1).data == {"n": 2}
        subscription.close()


# ---------------------------------------------------------------------------
# Publishing store
# ---------------------------------------------------------------------------


class TestPublishingStore:
    def test_mutations_become_events(self, store, event_bus, session) -> None:
        subscription = event_bus.subscribe(session.id)
        subscription.get(timeout=0.1)

        store.update_status(session.id, SessionStatus.RUNNING)
        store.append_log(session.id, LogEntry.create("Processing town: A (1/4)"))
        store.update_progress(session.id, ProgressDelta(completed_towns=1, total_businesses=2))
        store.update_status(session.id, SessionStatus.COMPLETED)

        events = []
        while (event := subscription.get(timeout=0.05)) is not None:
            events.append(event)

        assert [event.type for event in events] == [
            EventType.PROGRESS,
            EventType.LOG,
            EventType.PROGRESS,
            EventType.PROGRESS,
            EventType.COMPLETE,
        ]
        assert events[1].data["message"] == "Processing town: A (1/4)"
        assert events[1].data["level"] == LogLevel.INFO
        assert events[2].data["completed_towns"] == 1
        assert events[4].data["status"] == SessionStatus.COMPLETED
        subscription.close()

    def test_repeated_status_publishes_nothing(self, store, event_bus, session) -> None:
        subscription = event_bus.subscribe(session.id)
        subscription.get(timeout=0.1)

        store.update_status(session.id, SessionStatus.PENDING)

        assert subscription.get(timeout=0.01) is None
        subscription.close()


# ---------------------------------------------------------------------------
# SSE stream
# ---------------------------------------------------------------------------


class TestStreamEvents:
    def test_frames_and_close_after_complete(self, store, event_bus, session) -> None:
        store.update_status(session.id, SessionStatus.RUNNING)
        store.update_status(session.id, SessionStatus.COMPLETED)
        subscription = event_bus.subscribe(session.id)

        frames = _collect(
            stream_events(subscription, heartbeat_seconds=5.0, close_delay_seconds=0.0, poll_seconds=0.01)
        )

        assert len(frames) == 2
        assert frames[0].startswith("event: progress\ndata: ")
        assert frames[0].endswith("\n\n")
        payload = json.loads(frames[0].split("data: ", 1)[1])
        assert payload["status"] == SessionStatus.COMPLETED
        assert frames[1].startswith("event: complete\n")
        assert event_bus.subscriber_count(session.id) == 0

    def test_heartbeat_on_idle_and_release_on_disconnect(self, event_bus, session) -> None:
        subscription = event_bus.subscribe(session.id)
        checks = {"count": 0}

        async def is_disconnected() -> bool:
            checks["count"] += 1
            return checks["count"] > 30

        frames = _collect(
            stream_events(
                subscription,
                heartbeat_seconds=0.05,
                close_delay_seconds=0.0,
                is_disconnected=is_disconnected,
                poll_seconds=0.01,
            )
        )

        assert frames[0].startswith("event: progress\n")
        assert HEARTBEAT_FRAME in frames
        assert event_bus.subscriber_count(session.id) == 0
