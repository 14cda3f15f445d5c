"""
Session lifecycle operations: start, stop and read.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any

from app.domain.scrape_session import LogEntry, LogLevel, ScrapeSession, SessionStatus
from app.scraping.errors import InvalidStatusTransitionError, SessionNotFoundError
from app.scraping.logging_utils import log_event
from app.scraping.storage.base import SessionStore
from app.validators.scrape_session_validator import ScrapeSessionValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StopResult:
    status: str
    businesses_collected: int


class ScrapeSessionService:
    """
    Creates, stops and reads sessions on behalf of API callers.
    """

    def __init__(
        self,
        *,
        store: SessionStore,
        validator: ScrapeSessionValidator | None = None,
    ) -> None:
        self._store = store
        self._validator = validator or ScrapeSessionValidator()

    def start(
        self,
        *,
        owner_id: str,
        towns: Sequence[str] | None,
        industries: Sequence[str] | None,
        config: Mapping[str, Any] | None = None,
    ) -> ScrapeSession:
        """
        Validate the request and persist a new pending session.
        """

        request = self._validator.validate(towns=towns, industries=industries, config=config)
        session_id = str(uuid.uuid4())
        session = self._store.create(
            session_id=session_id,
            owner_id=owner_id,
            towns=request.towns,
            industries=request.industries,
            config=request.config,
        )
        self._store.append_log(
            session_id,
            LogEntry.create(
                f"Session created: {len(request.towns)} towns x {len(request.industries)} industries"
            ),
        )
        log_event(
            logger,
            logging.INFO,
            "session_started",
            session_id=session_id,
            owner_id=owner_id,
            towns=len(request.towns),
            industries=len(request.industries),
        )
        return session

    def stop(self, session_id: str) -> StopResult:
        """
        Stop a pending or running session.

        Stopping a terminal session changes nothing and reports its current
        status.
        """

        session = self.get(session_id)
        if session.status in SessionStatus.ACTIVE:
            try:
                session = self._store.update_status(session_id, SessionStatus.STOPPED)
            except InvalidStatusTransitionError:
                # Completed by a concurrent step between the read and the update.
                session = self.get(session_id)
                return StopResult(status=session.status, businesses_collected=len(session.results))
            self._store.append_log(session_id, LogEntry.create("Scraping stopped by user", LogLevel.WARNING))
            log_event(
                logger,
                logging.INFO,
                "session_stopped",
                session_id=session_id,
                businesses=session.progress.total_businesses,
            )
        return StopResult(status=session.status, businesses_collected=len(session.results))

    def get(self, session_id: str) -> ScrapeSession:
        session = self._store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def snapshot(self, session_id: str, *, log_limit: int) -> ScrapeSession:
        """
        Return the session with only its most recent `log_limit` log entries.
        """

        session = self.get(session_id)
        if len(session.logs) <= log_limit:
            return session
        return replace(session, logs=session.logs[-log_limit:])

    def list_sessions(self, *, owner_id: str | None = None) -> list[ScrapeSession]:
        return self._store.list_sessions(owner_id=owner_id)
