"""
Process-local session store.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from dataclasses import replace

from app.domain.scrape_session import (
    Business,
    LogEntry,
    ProgressDelta,
    ScrapeSession,
    SessionConfig,
    SessionProgress,
    SessionStatus,
    can_transition,
    utc_now,
)
from app.scraping.errors import InvalidStatusTransitionError, SessionNotFoundError, StaleProgressError
from app.scraping.storage.base import SessionStore


class InMemorySessionStore(SessionStore):
    """
    Dict-backed store guarded by a re-entrant lock.

    Every mutation is a read-modify-write under the lock, which keeps
    concurrent appends and increments lossless within one process.
    Logs and results grow in lists; readers get tuple snapshots.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, ScrapeSession] = {}
        self._logs: dict[str, list[LogEntry]] = {}
        self._results: dict[str, list[Business]] = {}
        self._lock = threading.RLock()

    def create(
        self,
        *,
        session_id: str,
        owner_id: str,
        towns: Sequence[str],
        industries: Sequence[str],
        config: SessionConfig,
    ) -> ScrapeSession:
        now = utc_now()
        session = ScrapeSession(
            id=session_id,
            owner_id=owner_id,
            towns=tuple(towns),
            industries=tuple(industries),
            config=config,
            status=SessionStatus.PENDING,
            progress=SessionProgress(
                total_towns=len(towns),
                total_industries=len(towns) * len(industries),
            ),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            if session_id in self._sessions:
                raise ValueError(f"Session '{session_id}' already exists.")
            self._sessions[session_id] = session
            self._logs[session_id] = []
            self._results[session_id] = []
        return session

    def get(self, session_id: str) -> ScrapeSession | None:
        with self._lock:
            if session_id not in self._sessions:
                return None
            return self._snapshot(session_id)

    def update_status(self, session_id: str, status: str) -> ScrapeSession:
        with self._lock:
            session = self._require(session_id)
            if session.status != status:
                if not can_transition(session.status, status):
                    raise InvalidStatusTransitionError(current=session.status, target=status)
                now = utc_now()
                self._sessions[session_id] = replace(
                    session,
                    status=status,
                    updated_at=now,
                    completed_at=now if status in SessionStatus.TERMINAL else session.completed_at,
                )
            return self._snapshot(session_id)

    def update_progress(self, session_id: str, delta: ProgressDelta) -> SessionProgress:
        with self._lock:
            session = self._require(session_id)
            expected = delta.expected_completed_towns
            if expected is not None and session.progress.completed_towns != expected:
                raise StaleProgressError(
                    session_id=session_id,
                    expected=expected,
                    actual=session.progress.completed_towns,
                )
            progress = session.progress.apply(delta)
            self._sessions[session_id] = replace(session, progress=progress, updated_at=utc_now())
            return progress

    def append_businesses(self, session_id: str, businesses: Sequence[Business]) -> int:
        if not businesses:
            return 0
        with self._lock:
            session = self._require(session_id)
            self._results[session_id].extend(businesses)
            self._sessions[session_id] = replace(session, updated_at=utc_now())
        return len(businesses)

    def append_log(self, session_id: str, entry: LogEntry) -> None:
        with self._lock:
            self._require(session_id)
            self._logs[session_id].append(entry)

    def list_sessions(
        self,
        *,
        owner_id: str | None = None,
        statuses: Iterable[str] | None = None,
    ) -> list[ScrapeSession]:
        status_filter = set(statuses) if statuses is not None else None
        with self._lock:
            sessions = [
                self._snapshot(session.id)
                for session in self._sessions.values()
                if (owner_id is None or session.owner_id == owner_id)
                and (status_filter is None or session.status in status_filter)
            ]
        # Newest first; ties keep reverse insertion order.
        sessions.sort(key=lambda session: session.created_at)
        sessions.reverse()
        return sessions

    def _snapshot(self, session_id: str) -> ScrapeSession:
        return replace(
            self._sessions[session_id],
            logs=tuple(self._logs[session_id]),
            results=tuple(self._results[session_id]),
        )

    def _require(self, session_id: str) -> ScrapeSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session
