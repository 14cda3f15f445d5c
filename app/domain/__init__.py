"""
app/domain package marker.
"""

from app.domain.scrape_session import (
    Business,
    LogEntry,
    ScrapeSession,
    SessionConfig,
    SessionProgress,
    SessionStatus,
    StepResult,
)

__all__ = [
    "Business",
    "LogEntry",
    "ScrapeSession",
    "SessionConfig",
    "SessionProgress",
    "SessionStatus",
    "StepResult",
]
