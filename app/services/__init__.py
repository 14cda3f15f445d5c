"""
app/services package marker.
"""

from app.services.event_bus import ProgressEventBus
from app.services.scrape_orchestrator import ScrapeOrchestrator, drive_session
from app.services.scrape_session_service import ScrapeSessionService, StopResult

__all__ = [
    "ProgressEventBus",
    "ScrapeOrchestrator",
    "ScrapeSessionService",
    "StopResult",
    "drive_session",
]
