"""
Repository layer exports.
"""

from db.repositories.scrape_session_repository import ScrapeSessionRepository

__all__ = ["ScrapeSessionRepository"]
