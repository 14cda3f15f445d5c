"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.scrape_session import ScrapedBusinessRecord, ScrapeLogRecord, ScrapeSessionRecord

__all__ = [
    "ScrapeLogRecord",
    "ScrapeSessionRecord",
    "ScrapedBusinessRecord",
]
