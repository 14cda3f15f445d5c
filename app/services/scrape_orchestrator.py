"""
app/services/scrape_orchestrator.py

Step processor that advances a scrape session by exactly one town.

Each ``step`` call is stateless: everything it needs is read from the
session store and everything it learns is written back before it returns,
so any driver (HTTP polling loop, scheduler job, CLI) can resume a session
where the previous call left it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, wait

from app.domain.scrape_session import (
    Business,
    LogEntry,
    LogLevel,
    ProgressDelta,
    ScrapeSession,
    SessionConfig,
    SessionStatus,
    StepResult,
)
from app.scraping.errors import (
    InvalidStatusTransitionError,
    ProviderLookupError,
    SessionNotFoundError,
    StaleProgressError,
    UnitScrapeError,
)
from app.scraping.logging_utils import log_event
from app.scraping.providers.lookup_service import ProviderLookupService
from app.scraping.storage.base import SessionStore
from app.scraping.unit_scraper import UnitScraper
from app.services.event_bus import EventType, ProgressEventBus

logger = logging.getLogger(__name__)

# Share of the step budget reserved for carrier lookups.
LOOKUP_BUDGET_SHARE = 0.25


class ScrapeOrchestrator:
    """
    Advances sessions one town per call.
    """

    def __init__(
        self,
        *,
        store: SessionStore,
        scraper_factory: Callable[[], UnitScraper],
        lookup_service_factory: Callable[[SessionConfig], ProviderLookupService],
        event_bus: ProgressEventBus | None = None,
        step_budget_seconds: float = 280.0,
    ) -> None:
        self._store = store
        self._scraper_factory = scraper_factory
        self._lookup_service_factory = lookup_service_factory
        self._event_bus = event_bus
        self._step_budget_seconds = step_budget_seconds

    def step(self, session_id: str) -> StepResult:
        """
        Process the next unprocessed town of a session.

        Stopped and completed sessions are returned unchanged.  When every
        town is done the session is moved to completed instead.  A step
        whose town was already committed by an overlapping step discards
        its results.
        """

        session = self._store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        if session.is_terminal:
            return StepResult(status=session.status, progress=session.progress, has_more=False)

        if session.progress.completed_towns >= session.progress.total_towns:
            return self._complete(session)

        if session.status == SessionStatus.PENDING:
            try:
                self._store.update_status(session_id, SessionStatus.RUNNING)
            except InvalidStatusTransitionError as exc:
                return self._terminal_result(session_id, exc)

        town_index = session.progress.completed_towns
        town = session.towns[town_index]
        started = time.monotonic()
        deadline = started + self._step_budget_seconds
        scrape_deadline = started + self._step_budget_seconds * (1.0 - LOOKUP_BUDGET_SHARE)

        self._log(session_id, f"Processing town: {town} ({town_index + 1}/{len(session.towns)})")
        log_event(
            logger,
            logging.INFO,
            "town_started",
            session_id=session_id,
            town=town,
            town_index=town_index,
            industries=len(session.industries),
        )

        businesses = self._scrape_town(session, town=town, deadline=scrape_deadline)
        businesses = self._assign_providers(session, town=town, businesses=businesses, deadline=deadline)

        elapsed = time.monotonic() - started
        try:
            progress = self._store.update_progress(
                session_id,
                ProgressDelta(
                    completed_towns=1,
                    total_businesses=len(businesses),
                    completed_industries=len(session.industries),
                    processing_seconds=elapsed,
                    expected_completed_towns=town_index,
                ),
            )
        except StaleProgressError as exc:
            self._log(
                session_id,
                f"Discarded {len(businesses)} businesses for {town}: town already committed",
                LogLevel.WARNING,
            )
            log_event(
                logger,
                logging.WARNING,
                "town_superseded",
                session_id=session_id,
                town=town,
                expected_completed_towns=exc.expected,
                completed_towns=exc.actual,
            )
            return self._current_result(session_id)

        self._store.append_businesses(session_id, businesses)
        self._log(session_id, f"Completed {town}: {len(businesses)} businesses found", LogLevel.SUCCESS)
        log_event(
            logger,
            logging.INFO,
            "town_completed",
            session_id=session_id,
            town=town,
            businesses=len(businesses),
            duration_seconds=round(elapsed, 2),
        )

        current = self._store.get(session_id)
        status = current.status if current is not None else SessionStatus.RUNNING
        has_more = status not in SessionStatus.TERMINAL and progress.completed_towns < progress.total_towns
        return StepResult(status=status, progress=progress, has_more=has_more)

    def _complete(self, session: ScrapeSession) -> StepResult:
        self._log(
            session.id,
            f"Scraping completed! Total businesses: {session.progress.total_businesses}",
            LogLevel.SUCCESS,
        )
        try:
            if session.status == SessionStatus.PENDING:
                self._store.update_status(session.id, SessionStatus.RUNNING)
            completed = self._store.update_status(session.id, SessionStatus.COMPLETED)
        except InvalidStatusTransitionError as exc:
            return self._terminal_result(session.id, exc)
        log_event(
            logger,
            logging.INFO,
            "session_completed",
            session_id=session.id,
            businesses=completed.progress.total_businesses,
        )
        return StepResult(status=completed.status, progress=completed.progress, has_more=False)

    def _current_result(self, session_id: str) -> StepResult:
        current = self._store.get(session_id)
        if current is None:
            raise SessionNotFoundError(session_id)
        has_more = not current.is_terminal and current.progress.completed_towns < current.progress.total_towns
        return StepResult(status=current.status, progress=current.progress, has_more=has_more)

    def _terminal_result(self, session_id: str, error: InvalidStatusTransitionError) -> StepResult:
        """
        Report a session that reached a terminal status while this step ran.
        """

        current = self._store.get(session_id)
        if current is None:
            raise SessionNotFoundError(session_id) from error
        if not current.is_terminal:
            raise error
        log_event(
            logger,
            logging.INFO,
            "step_preempted",
            session_id=session_id,
            status=current.status,
            attempted=error.target,
        )
        return StepResult(status=current.status, progress=current.progress, has_more=False)

    def _scrape_town(self, session: ScrapeSession, *, town: str, deadline: float) -> list[Business]:
        """
        Scrape all industries of a town concurrently.

        Results keep the supplied industry order; a failed or unfinished
        unit contributes nothing.
        """

        industries = session.industries
        workers = max(1, min(session.config.simultaneous_industries, len(industries)))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="unit-scraper")
        try:
            futures = [
                executor.submit(self._scrape_unit, session.id, town, industry) for industry in industries
            ]
            _, not_done = wait(futures, timeout=max(0.0, deadline - time.monotonic()))

            businesses: list[Business] = []
            for industry, future in zip(industries, futures):
                if future in not_done:
                    future.cancel()
                    self._log(
                        session.id,
                        f"Skipped {industry} in {town}: step time budget exhausted",
                        LogLevel.WARNING,
                    )
                    continue
                try:
                    found = future.result()
                except UnitScrapeError as exc:
                    self._report_unit_failure(session.id, town, industry, exc, LogLevel.WARNING)
                    continue
                except Exception as exc:  # noqa: BLE001
                    self._report_unit_failure(session.id, town, industry, exc, LogLevel.ERROR)
                    continue
                self._log(
                    session.id,
                    f"Found {len(found)} businesses for {industry} in {town}",
                    LogLevel.SUCCESS,
                )
                businesses.extend(found)
            return businesses
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _scrape_unit(self, session_id: str, town: str, industry: str) -> list[Business]:
        self._log(session_id, f"Scraping {industry} in {town}...")
        return self._scraper_factory().scrape(town=town, industry=industry)

    def _assign_providers(
        self,
        session: ScrapeSession,
        *,
        town: str,
        businesses: Sequence[Business],
        deadline: float,
    ) -> list[Business]:
        phones = list(dict.fromkeys(business.phone for business in businesses if business.phone.strip()))
        if not phones:
            return list(businesses)

        self._log(session.id, f"Looking up providers for {len(phones)} numbers in {town}")
        lookup_service = self._lookup_service_factory(session.config)
        try:
            providers = lookup_service.lookup_providers(phones, deadline=deadline)
        except ProviderLookupError as exc:
            self._log(session.id, f"Provider lookup failed for {town}: {exc}", LogLevel.WARNING)
            providers = {}
        finally:
            lookup_service.cleanup()

        return [business.with_provider(providers.get(business.phone)) for business in businesses]

    def _report_unit_failure(
        self,
        session_id: str,
        town: str,
        industry: str,
        error: Exception,
        level: str,
    ) -> None:
        message = f"Error scraping {industry} in {town}: {error}"
        self._log(session_id, message, level)
        log_event(
            logger,
            logging.WARNING if level == LogLevel.WARNING else logging.ERROR,
            "unit_failed",
            session_id=session_id,
            town=town,
            industry=industry,
            error_type=type(error).__name__,
            error=str(error),
        )
        if self._event_bus is not None:
            self._event_bus.publish(
                session_id,
                EventType.ERROR,
                {
                    "town": town,
                    "industry": industry,
                    "error_type": type(error).__name__,
                    "message": message,
                },
            )

    def _log(self, session_id: str, message: str, level: str = LogLevel.INFO) -> None:
        self._store.append_log(session_id, LogEntry.create(message, level))


def drive_session(
    orchestrator: ScrapeOrchestrator,
    session_id: str,
    *,
    max_steps: int | None = None,
    on_step: Callable[[StepResult], None] | None = None,
) -> StepResult:
    """
    Call ``step`` until the session reaches a terminal status.
    """

    steps = 0
    while True:
        result = orchestrator.step(session_id)
        steps += 1
        if on_step is not None:
            on_step(result)
        if result.status in SessionStatus.TERMINAL:
            return result
        if max_steps is not None and steps >= max_steps:
            return result
