"""
app/api/routers package marker.
"""

from app.api.routers.scrape_sessions import router as scrape_sessions_router

__all__ = ["scrape_sessions_router"]
