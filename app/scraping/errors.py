"""
Error taxonomy for scrape sessions.
"""

from __future__ import annotations


class ScrapeError(RuntimeError):
    """Base exception for scrape session failures."""


class UnitScrapeError(ScrapeError):
    """
    Raised when one (town, industry) unit cannot be scraped.

    Unit failures are recovered by the orchestrator and never fail a session.
    """

    def __init__(self, message: str, *, town: str | None = None, industry: str | None = None) -> None:
        super().__init__(message)
        self.town = town
        self.industry = industry


class BrowserLaunchError(UnitScrapeError):
    """Raised when a headless browser cannot be started."""


class NavigationTimeoutError(UnitScrapeError):
    """Raised when the search page or its result list does not load in time."""


class ProviderLookupError(ScrapeError):
    """Raised when a carrier lookup request fails."""


class PersistenceError(ScrapeError):
    """Raised when the session store cannot read or write."""


class SessionNotFoundError(LookupError):
    """Raised when a session id is not known to the store."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session '{session_id}' not found.")
        self.session_id = session_id


class InvalidStatusTransitionError(ValueError):
    """Raised when a session status change is not allowed."""

    def __init__(self, *, current: str, target: str) -> None:
        super().__init__(f"Cannot move session from '{current}' to '{target}'.")
        self.current = current
        self.target = target


class StaleProgressError(ValueError):
    """Raised when a progress commit expects a town count the session has moved past."""

    def __init__(self, *, session_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Session '{session_id}' has {actual} completed towns; step expected {expected}."
        )
        self.session_id = session_id
        self.expected = expected
        self.actual = actual
