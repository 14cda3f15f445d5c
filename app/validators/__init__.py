"""
app/validators package marker.
"""

from app.validators.scrape_session_validator import (
    ScrapeRequestErrorDetail,
    ScrapeRequestValidationError,
    ScrapeSessionValidator,
)

__all__ = [
    "ScrapeRequestErrorDetail",
    "ScrapeRequestValidationError",
    "ScrapeSessionValidator",
]
