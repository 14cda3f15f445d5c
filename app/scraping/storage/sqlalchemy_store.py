"""
SQLAlchemy-backed session store.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

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
from app.scraping.errors import (
    InvalidStatusTransitionError,
    PersistenceError,
    SessionNotFoundError,
    StaleProgressError,
)
from app.scraping.logging_utils import log_event
from app.scraping.storage.base import SessionStore
from db.models.scrape_session import ScrapedBusinessRecord, ScrapeLogRecord, ScrapeSessionRecord
from db.repositories.scrape_session_repository import ScrapeSessionRepository

logger = logging.getLogger(__name__)


class SQLAlchemySessionStore(SessionStore):
    """
    Persist sessions through the repository, one transaction per call.

    Results and logs are row inserts, progress is a single UPDATE with
    column arithmetic, and status changes lock the session row.
    """

    def __init__(self, *, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self, operation: str, session_id: str | None = None) -> Iterator[ScrapeSessionRepository]:
        db = self._session_factory()
        try:
            yield ScrapeSessionRepository(db)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            log_event(
                logger,
                logging.ERROR,
                "session_store_failed",
                operation=operation,
                session_id=session_id,
                error=str(exc),
            )
            raise PersistenceError(f"Session store {operation} failed.") from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def create(
        self,
        *,
        session_id: str,
        owner_id: str,
        towns: Sequence[str],
        industries: Sequence[str],
        config: SessionConfig,
    ) -> ScrapeSession:
        with self._transaction("create", session_id) as repository:
            record = repository.create_session(
                session_id=session_id,
                owner_id=owner_id,
                status=SessionStatus.PENDING,
                towns=towns,
                industries=industries,
                config=config.to_dict(),
            )
            return _to_session(record)

    def get(self, session_id: str) -> ScrapeSession | None:
        with self._transaction("get", session_id) as repository:
            record = repository.get_session(session_id)
            if record is None:
                return None
            return _to_session(
                record,
                logs=repository.list_logs(session_id),
                businesses=repository.list_businesses(session_id),
            )

    def update_status(self, session_id: str, status: str) -> ScrapeSession:
        with self._transaction("update_status", session_id) as repository:
            record = repository.get_session(session_id, for_update=True)
            if record is None:
                raise SessionNotFoundError(session_id)
            if record.status != status:
                if not can_transition(record.status, status):
                    raise InvalidStatusTransitionError(current=record.status, target=status)
                repository.set_status(
                    record,
                    status=status,
                    completed_at=utc_now() if status in SessionStatus.TERMINAL else None,
                )
            return _to_session(
                record,
                logs=repository.list_logs(session_id),
                businesses=repository.list_businesses(session_id),
            )

    def update_progress(self, session_id: str, delta: ProgressDelta) -> SessionProgress:
        with self._transaction("update_progress", session_id) as repository:
            record = repository.increment_progress(
                session_id=session_id,
                completed_towns=max(0, delta.completed_towns),
                total_businesses=max(0, delta.total_businesses),
                completed_industries=max(0, delta.completed_industries),
                processing_seconds=max(0.0, delta.processing_seconds),
                expected_completed_towns=delta.expected_completed_towns,
            )
            if record is None:
                current = repository.get_session(session_id)
                if current is None:
                    raise SessionNotFoundError(session_id)
                raise StaleProgressError(
                    session_id=session_id,
                    expected=delta.expected_completed_towns,
                    actual=current.completed_towns,
                )
            return _to_progress(record)

    def append_businesses(self, session_id: str, businesses: Sequence[Business]) -> int:
        if not businesses:
            return 0
        with self._transaction("append_businesses", session_id) as repository:
            if repository.get_session(session_id) is None:
                raise SessionNotFoundError(session_id)
            return repository.add_businesses(
                session_id=session_id,
                rows=[business.to_dict() for business in businesses],
            )

    def append_log(self, session_id: str, entry: LogEntry) -> None:
        with self._transaction("append_log", session_id) as repository:
            if repository.get_session(session_id) is None:
                raise SessionNotFoundError(session_id)
            repository.add_log(
                session_id=session_id,
                logged_at=entry.timestamp,
                level=entry.level,
                message=entry.message,
            )

    def list_sessions(
        self,
        *,
        owner_id: str | None = None,
        statuses: Iterable[str] | None = None,
    ) -> list[ScrapeSession]:
        with self._transaction("list_sessions") as repository:
            return [
                _to_session(record)
                for record in repository.list_sessions(owner_id=owner_id, statuses=statuses)
            ]


def _to_progress(record: ScrapeSessionRecord) -> SessionProgress:
    return SessionProgress(
        completed_towns=record.completed_towns,
        total_towns=record.total_towns,
        total_businesses=record.total_businesses,
        completed_industries=record.completed_industries,
        total_industries=record.total_industries,
        processing_seconds=record.processing_seconds,
    )


def _to_session(
    record: ScrapeSessionRecord,
    *,
    logs: Sequence[ScrapeLogRecord] = (),
    businesses: Sequence[ScrapedBusinessRecord] = (),
) -> ScrapeSession:
    return ScrapeSession(
        id=record.id,
        owner_id=record.owner_id,
        towns=tuple(record.towns),
        industries=tuple(record.industries),
        config=SessionConfig.from_dict(record.config),
        status=record.status,
        progress=_to_progress(record),
        created_at=record.created_at,
        updated_at=record.updated_at,
        completed_at=record.completed_at,
        logs=tuple(
            LogEntry(timestamp=log.logged_at, message=log.message, level=log.level) for log in logs
        ),
        results=tuple(
            Business(
                name=business.name,
                phone=business.phone,
                town=business.town,
                industry=business.industry,
                address=business.address,
                map_reference=business.map_reference,
                provider=business.provider,
            )
            for business in businesses
        ),
    )
