from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import get_scrape_session_settings, get_worker_settings

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _verify_session_database() -> None:
    """
    Fail startup when the database session store is unusable.

    The database must answer SELECT 1 and already contain every session
    table; migrations are never applied here.
    """
    from sqlalchemy import inspect as sa_inspect
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    import db.models  # noqa: F401 registers the session tables on Base.metadata
    from db.base import Base
    from db.session import get_engine

    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        present = set(sa_inspect(engine).get_table_names())
    except SQLAlchemyError as exc:
        raise RuntimeError("Session database unavailable.") from exc

    missing = sorted(set(Base.metadata.tables) - present)
    if missing:
        logger.critical(
            "Session tables missing from the database: %s. Run 'alembic upgrade head' and restart.",
            ", ".join(missing),
        )
        raise RuntimeError(f"Session tables missing: {', '.join(missing)}. Run migrations and restart.")
    logger.info("Session database verified")


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Verify the session database when it is the backend and run the worker if enabled."""
    if get_scrape_session_settings().backend == "database":
        _verify_session_database()

    scheduler = None
    worker_settings = get_worker_settings()
    if worker_settings.enabled:
        from app.scheduler.jobs import build_scheduler

        scheduler = build_scheduler(interval_seconds=worker_settings.interval_seconds)
        scheduler.start()
        logger.info("Session worker started, interval=%ss", worker_settings.interval_seconds)
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=True)
            logger.info("Session worker shut down")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _configure_logging()

    application = FastAPI(
        title="Scrape Session API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import scrape_sessions_router

    application.include_router(scrape_sessions_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
