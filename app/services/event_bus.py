"""
app/services/event_bus.py

Per-session publish/subscribe channel for live scrape progress.

Observers subscribe to one session id and receive ``progress``, ``log``,
``error`` and ``complete`` events.  Every new subscription first receives a
synthetic ``progress`` event built from the persisted session, so a late
observer never waits for the next step to see where the session stands.
``stream_events`` renders a subscription as Server-Sent Event frames.
"""

from __future__ import annotations

import asyncio
import json
import logging
import queue
import threading
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from fastapi.concurrency import run_in_threadpool

from app.domain.scrape_session import ScrapeSession, SessionProgress
from app.scraping.errors import SessionNotFoundError
from app.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

HEARTBEAT_FRAME = ": heartbeat\n\n"


class EventType:
    PROGRESS = "progress"
    LOG = "log"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class SessionEvent:
    type: str
    data: dict[str, Any]

    def to_sse(self) -> str:
        return f"event: {self.type}\ndata: {json.dumps(self.data, default=str)}\n\n"


def progress_payload(status: str, progress: SessionProgress) -> dict[str, Any]:
    return {
        "status": status,
        "percentage": progress.percentage,
        "completed_towns": progress.completed_towns,
        "total_towns": progress.total_towns,
        "towns_remaining": progress.towns_remaining,
        "businesses_scraped": progress.total_businesses,
        "estimated_seconds_remaining": progress.estimated_seconds_remaining,
    }


def complete_payload(session: ScrapeSession) -> dict[str, Any]:
    return {
        "status": session.status,
        "progress": session.progress.to_dict(),
        "businesses": [business.to_dict() for business in session.results],
    }


class Subscription:
    """
    Bounded event queue registered on one session channel.

    When the queue is full the oldest event is dropped so publishers never
    block on a slow observer.
    """

    def __init__(self, bus: ProgressEventBus, session_id: str, *, maxsize: int) -> None:
        self.session_id = session_id
        self._bus = bus
        self._queue: queue.Queue[SessionEvent] = queue.Queue(maxsize=max(1, maxsize))
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, event: SessionEvent) -> None:
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass

    def get(self, timeout: float | None = None) -> SessionEvent | None:
        """
        Return the next event, or None when nothing arrives within `timeout`.
        """

        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus._remove(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ProgressEventBus:
    """
    Session-scoped fan-out of progress events.
    """

    def __init__(
        self,
        *,
        session_loader: Callable[[str], ScrapeSession | None],
        queue_size: int = 1000,
    ) -> None:
        self._session_loader = session_loader
        self._queue_size = queue_size
        self._channels: dict[str, set[Subscription]] = {}
        self._lock = threading.Lock()

    def publish(self, session_id: str, event_type: str, data: dict[str, Any]) -> int:
        """
        Deliver an event to every current subscriber of `session_id`.
        """

        event = SessionEvent(type=event_type, data=data)
        with self._lock:
            subscribers = list(self._channels.get(session_id, ()))
        for subscription in subscribers:
            subscription.offer(event)
        return len(subscribers)

    def subscribe(self, session_id: str) -> Subscription:
        """
        Register an observer and seed it with the persisted progress.

        Raises SessionNotFoundError for unknown sessions.
        """

        subscription = Subscription(self, session_id, maxsize=self._queue_size)
        # The snapshot is read under the channel lock so no published event
        # can reach this subscriber ahead of its initial progress event.
        with self._lock:
            session = self._session_loader(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            subscription.offer(
                SessionEvent(
                    type=EventType.PROGRESS,
                    data=progress_payload(session.status, session.progress),
                )
            )
            if session.is_terminal:
                subscription.offer(SessionEvent(type=EventType.COMPLETE, data=complete_payload(session)))
            self._channels.setdefault(session_id, set()).add(subscription)

        log_event(logger, logging.DEBUG, "event_subscriber_added", session_id=session_id)
        return subscription

    def subscriber_count(self, session_id: str) -> int:
        with self._lock:
            return len(self._channels.get(session_id, ()))

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._channels.get(subscription.session_id)
            if subscribers is None:
                return
            subscribers.discard(subscription)
            if not subscribers:
                del self._channels[subscription.session_id]
        log_event(logger, logging.DEBUG, "event_subscriber_removed", session_id=subscription.session_id)


async def stream_events(
    subscription: Subscription,
    *,
    heartbeat_seconds: float,
    close_delay_seconds: float,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    poll_seconds: float = 1.0,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for a subscription until completion or disconnect.

    A heartbeat comment is sent after `heartbeat_seconds` without events.
    The stream ends `close_delay_seconds` after a ``complete`` event and the
    subscription is always released on exit.
    """

    wait_seconds = max(0.01, min(poll_seconds, heartbeat_seconds))
    idle_seconds = 0.0
    try:
        while True:
            if is_disconnected is not None and await is_disconnected():
                break
            event = await run_in_threadpool(subscription.get, wait_seconds)
            if event is None:
                idle_seconds += wait_seconds
                if idle_seconds >= heartbeat_seconds:
                    idle_seconds = 0.0
                    yield HEARTBEAT_FRAME
                continue

            idle_seconds = 0.0
            yield event.to_sse()
            if event.type == EventType.COMPLETE:
                if close_delay_seconds > 0:
                    await asyncio.sleep(close_delay_seconds)
                break
    finally:
        subscription.close()
