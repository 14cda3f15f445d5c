"""
Storage layer exports.
"""

from app.scraping.storage.base import SessionStore
from app.scraping.storage.memory_store import InMemorySessionStore
from app.scraping.storage.sqlalchemy_store import SQLAlchemySessionStore

__all__ = ["InMemorySessionStore", "SQLAlchemySessionStore", "SessionStore"]
