"""
Repository for scrape session persistence.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, case, select, update
from sqlalchemy.orm import Session

from db.models.scrape_session import ScrapedBusinessRecord, ScrapeLogRecord, ScrapeSessionRecord


class ScrapeSessionRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_session(
        self,
        *,
        session_id: str,
        owner_id: str,
        status: str,
        towns: Sequence[str],
        industries: Sequence[str],
        config: dict[str, Any],
    ) -> ScrapeSessionRecord:
        record = ScrapeSessionRecord(
            id=session_id,
            owner_id=owner_id,
            status=status,
            towns=list(towns),
            industries=list(industries),
            config=config,
            completed_towns=0,
            total_towns=len(towns),
            total_businesses=0,
            completed_industries=0,
            total_industries=len(towns) * len(industries),
            processing_seconds=0.0,
        )
        self._session.add(record)
        self._session.flush()
        self._session.refresh(record)
        return record

    def get_session(self, session_id: str, *, for_update: bool = False) -> ScrapeSessionRecord | None:
        stmt = select(ScrapeSessionRecord).where(ScrapeSessionRecord.id == session_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self._session.scalars(stmt.execution_options(populate_existing=True)).first()

    def list_sessions(
        self,
        *,
        owner_id: str | None = None,
        statuses: Iterable[str] | None = None,
        limit: int = 500,
    ) -> list[ScrapeSessionRecord]:
        stmt: Select[tuple[ScrapeSessionRecord]] = select(ScrapeSessionRecord)

        if owner_id:
            stmt = stmt.where(ScrapeSessionRecord.owner_id == owner_id)
        if statuses is not None:
            stmt = stmt.where(ScrapeSessionRecord.status.in_(list(statuses)))

        stmt = stmt.order_by(ScrapeSessionRecord.created_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def set_status(
        self,
        record: ScrapeSessionRecord,
        *,
        status: str,
        completed_at: datetime | None = None,
    ) -> ScrapeSessionRecord:
        record.status = status
        if completed_at is not None:
            record.completed_at = completed_at
        self._session.flush()
        return record

    def increment_progress(
        self,
        *,
        session_id: str,
        completed_towns: int = 0,
        total_businesses: int = 0,
        completed_industries: int = 0,
        processing_seconds: float = 0.0,
        expected_completed_towns: int | None = None,
    ) -> ScrapeSessionRecord | None:
        """
        Apply counter increments in one UPDATE statement.

        completed_towns is clamped to total_towns inside the statement.
        With `expected_completed_towns` the row only matches while its
        completed_towns still equals that value. Returns None when no row
        was updated.
        """

        advanced_towns = ScrapeSessionRecord.completed_towns + completed_towns
        stmt = update(ScrapeSessionRecord).where(ScrapeSessionRecord.id == session_id)
        if expected_completed_towns is not None:
            stmt = stmt.where(ScrapeSessionRecord.completed_towns == expected_completed_towns)
        stmt = (
            stmt.values(
                completed_towns=case(
                    (advanced_towns > ScrapeSessionRecord.total_towns, ScrapeSessionRecord.total_towns),
                    else_=advanced_towns,
                ),
                total_businesses=ScrapeSessionRecord.total_businesses + total_businesses,
                completed_industries=ScrapeSessionRecord.completed_industries + completed_industries,
                processing_seconds=ScrapeSessionRecord.processing_seconds + processing_seconds,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return self.get_session(session_id)

    def add_businesses(self, *, session_id: str, rows: Sequence[dict[str, str]]) -> int:
        for row in rows:
            self._session.add(ScrapedBusinessRecord(session_id=session_id, **row))
        self._session.flush()
        return len(rows)

    def add_log(self, *, session_id: str, logged_at: datetime, level: str, message: str) -> None:
        self._session.add(
            ScrapeLogRecord(
                session_id=session_id,
                logged_at=logged_at,
                level=level,
                message=message,
            )
        )
        self._session.flush()

    def list_businesses(self, session_id: str) -> list[ScrapedBusinessRecord]:
        stmt = (
            select(ScrapedBusinessRecord)
            .where(ScrapedBusinessRecord.session_id == session_id)
            .order_by(ScrapedBusinessRecord.id.asc())
        )
        return list(self._session.scalars(stmt).all())

    def list_logs(self, session_id: str) -> list[ScrapeLogRecord]:
        stmt = (
            select(ScrapeLogRecord)
            .where(ScrapeLogRecord.session_id == session_id)
            .order_by(ScrapeLogRecord.id.asc())
        )
        return list(self._session.scalars(stmt).all())

