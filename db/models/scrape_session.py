"""
db/models/scrape_session.py

Scrape session, scraped business and session log models.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite test databases).
JSONDocument = JSONB().with_variant(JSON(), "sqlite")
AutoIncrementId = BigInteger().with_variant(Integer(), "sqlite")


class ScrapeSessionRecord(Base, TimestampMixin):
    __tablename__ = "scrape_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="pending, running, stopped, completed",
    )
    towns: Mapped[list[str]] = mapped_column(JSONDocument, nullable=False)
    industries: Mapped[list[str]] = mapped_column(JSONDocument, nullable=False)
    config: Mapped[dict[str, Any]] = mapped_column(
        JSONDocument,
        nullable=False,
        comment="Concurrency and retry settings",
    )
    completed_towns: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_towns: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_businesses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_industries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_industries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processing_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_scrape_sessions_owner_id", "owner_id"),
        Index("ix_scrape_sessions_status", "status"),
        Index("ix_scrape_sessions_created_at", "created_at"),
    )


class ScrapedBusinessRecord(Base):
    __tablename__ = "scraped_businesses"

    id: Mapped[int] = mapped_column(AutoIncrementId, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("scrape_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    phone: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    provider: Mapped[str] = mapped_column(String(100), nullable=False)
    town: Mapped[str] = mapped_column(String(255), nullable=False)
    industry: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    map_reference: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (Index("ix_scraped_businesses_session_id", "session_id"),)


class ScrapeLogRecord(Base):
    __tablename__ = "scrape_logs"

    id: Mapped[int] = mapped_column(AutoIncrementId, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("scrape_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    logged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    level: Mapped[str] = mapped_column(String(16), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("ix_scrape_logs_session_id", "session_id"),)
