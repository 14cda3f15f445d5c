"""
Storage layer interfaces for scrape sessions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence

from app.domain.scrape_session import (
    Business,
    LogEntry,
    ProgressDelta,
    ScrapeSession,
    SessionConfig,
    SessionProgress,
)


class SessionStore(ABC):
    """
    Durable session state shared by every step invocation.

    Appends never overwrite earlier entries and progress increments are
    applied atomically so concurrent writers cannot lose updates.
    """

    @abstractmethod
    def create(
        self,
        *,
        session_id: str,
        owner_id: str,
        towns: Sequence[str],
        industries: Sequence[str],
        config: SessionConfig,
    ) -> ScrapeSession:
        """
        Persist a new pending session with zeroed progress.
        """

    @abstractmethod
    def get(self, session_id: str) -> ScrapeSession | None:
        """
        Return the session with its logs and results, or None.
        """

    @abstractmethod
    def update_status(self, session_id: str, status: str) -> ScrapeSession:
        """
        Move a session to `status` and return the updated snapshot.
        """

    @abstractmethod
    def update_progress(self, session_id: str, delta: ProgressDelta) -> SessionProgress:
        """
        Apply progress increments and return the resulting counters.
        """

    @abstractmethod
    def append_businesses(self, session_id: str, businesses: Sequence[Business]) -> int:
        """
        Append businesses to the session results and return the count added.
        """

    @abstractmethod
    def append_log(self, session_id: str, entry: LogEntry) -> None:
        """
        Append one audit log entry.
        """

    @abstractmethod
    def list_sessions(
        self,
        *,
        owner_id: str | None = None,
        statuses: Iterable[str] | None = None,
    ) -> list[ScrapeSession]:
        """
        Return sessions newest first, optionally filtered by owner and status.
        """
