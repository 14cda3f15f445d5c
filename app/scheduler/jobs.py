"""
app/scheduler/jobs.py

APScheduler-based worker that keeps active scrape sessions moving.

Session discovery
-----------------
Every tick reads all ``pending`` and ``running`` sessions from the session
store and advances each by one step through the same orchestrator the
``/scrape/process`` endpoint uses.  Sessions stopped or completed between
ticks are skipped by the orchestrator itself.

Schedule
--------
  scrape_session_worker: every ``SCRAPE_WORKER_INTERVAL_SECONDS`` seconds,
  one instance at a time, so a slow town never overlaps the next tick.

Lifecycle
---------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py
when ``SCRAPE_WORKER_ENABLED`` is true.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.domain.scrape_session import SessionStatus
from app.scraping.errors import PersistenceError, SessionNotFoundError
from app.services.scrape_orchestrator import ScrapeOrchestrator
from app.scraping.storage.base import SessionStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job: step active sessions
# ---------------------------------------------------------------------------


def step_active_sessions(*, store: SessionStore, orchestrator: ScrapeOrchestrator) -> int:
    """
    Advance every pending or running session by one step.

    Returns the number of sessions stepped.  A failure on one session is
    logged and does not prevent the others from advancing.
    """
    try:
        sessions = store.list_sessions(statuses=SessionStatus.ACTIVE)
    except PersistenceError as exc:
        logger.error("Scheduler: scrape_session_worker could not list sessions: %s", exc)
        return 0

    if not sessions:
        logger.debug("Scheduler: scrape_session_worker found no active sessions")
        return 0

    stepped = 0
    # Oldest first so earlier sessions finish first.
    for session in reversed(sessions):
        try:
            result = orchestrator.step(session.id)
        except SessionNotFoundError:
            continue
        except Exception:  # noqa: BLE001
            logger.exception("Scheduler: scrape_session_worker step failed session_id=%s", session.id)
            continue
        stepped += 1
        logger.info(
            "Scheduler: scrape_session_worker session_id=%s status=%s towns=%d/%d",
            session.id,
            result.status,
            result.progress.completed_towns,
            result.progress.total_towns,
        )
    return stepped


def run_scrape_session_worker() -> None:
    """
    Scheduler entry point bound to the process-wide runtime.
    """
    from app.services.scrape_runtime import get_scrape_runtime

    runtime = get_scrape_runtime()
    step_active_sessions(store=runtime.store, orchestrator=runtime.orchestrator)


def build_scheduler(*, interval_seconds: float = 5.0) -> BackgroundScheduler:
    """
    Build and register the session worker job.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_scrape_session_worker,
        trigger="interval",
        seconds=interval_seconds,
        id="scrape_session_worker",
        name="Scrape session worker",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    return scheduler
