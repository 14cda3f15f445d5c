"""
Session store decorator that publishes mutations to the event bus.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from app.domain.scrape_session import (
    Business,
    LogEntry,
    ProgressDelta,
    ScrapeSession,
    SessionConfig,
    SessionProgress,
    SessionStatus,
)
from app.scraping.storage.base import SessionStore
from app.services.event_bus import EventType, ProgressEventBus, complete_payload, progress_payload


class EventPublishingSessionStore(SessionStore):
    """
    Forward every call to `inner` and publish the resulting state change.

    Events are published only after the write succeeds.
    """

    def __init__(self, *, inner: SessionStore, event_bus: ProgressEventBus) -> None:
        self._inner = inner
        self._event_bus = event_bus

    def create(
        self,
        *,
        session_id: str,
        owner_id: str,
        towns: Sequence[str],
        industries: Sequence[str],
        config: SessionConfig,
    ) -> ScrapeSession:
        return self._inner.create(
            session_id=session_id,
            owner_id=owner_id,
            towns=towns,
            industries=industries,
            config=config,
        )

    def get(self, session_id: str) -> ScrapeSession | None:
        return self._inner.get(session_id)

    def update_status(self, session_id: str, status: str) -> ScrapeSession:
        previous = self._inner.get(session_id)
        session = self._inner.update_status(session_id, status)
        if previous is not None and previous.status == session.status:
            return session

        self._event_bus.publish(
            session_id,
            EventType.PROGRESS,
            progress_payload(session.status, session.progress),
        )
        if session.status in SessionStatus.TERMINAL:
            self._event_bus.publish(session_id, EventType.COMPLETE, complete_payload(session))
        return session

    def update_progress(self, session_id: str, delta: ProgressDelta) -> SessionProgress:
        progress = self._inner.update_progress(session_id, delta)
        session = self._inner.get(session_id)
        status = session.status if session is not None else SessionStatus.RUNNING
        self._event_bus.publish(session_id, EventType.PROGRESS, progress_payload(status, progress))
        return progress

    def append_businesses(self, session_id: str, businesses: Sequence[Business]) -> int:
        return self._inner.append_businesses(session_id, businesses)

    def append_log(self, session_id: str, entry: LogEntry) -> None:
        self._inner.append_log(session_id, entry)
        self._event_bus.publish(session_id, EventType.LOG, entry.to_dict())

    def list_sessions(
        self,
        *,
        owner_id: str | None = None,
        statuses: Iterable[str] | None = None,
    ) -> list[ScrapeSession]:
        return self._inner.list_sessions(owner_id=owner_id, statuses=statuses)
