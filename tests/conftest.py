"""
Shared fakes and fixtures for scrape session tests.

Nothing here launches a browser or reaches the network: unit scrapes and
carrier lookups are served from in-memory tables.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

import pytest

from app.domain.scrape_session import Business, SessionConfig
from app.scraping.errors import ProviderLookupError
from app.scraping.providers.carrier_client import CarrierLookupClient
from app.scraping.providers.lookup_service import ProviderLookupConfig, ProviderLookupService
from app.scraping.storage.memory_store import InMemorySessionStore
from app.scraping.storage.publishing_store import EventPublishingSessionStore
from app.scraping.unit_scraper import UnitScraper
from app.services.event_bus import ProgressEventBus
from app.services.scrape_orchestrator import ScrapeOrchestrator
from app.services.scrape_session_service import ScrapeSessionService


def make_business(name: str, phone: str, *, town: str, industry: str) -> Business:
    return Business(name=name, phone=phone, town=town, industry=industry)


class ConcurrencyTracker:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def enter(self) -> None:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)

    def exit(self) -> None:
        with self._lock:
            self.active -= 1


class FakeUnitScraper(UnitScraper):
    """
    Returns canned businesses per (town, industry); exceptions are raised.
    """

    def __init__(
        self,
        outcomes: dict[tuple[str, str], list[Business] | Exception] | None = None,
        *,
        delays: dict[str, float] | None = None,
        tracker: ConcurrencyTracker | None = None,
    ) -> None:
        self.outcomes = outcomes or {}
        self.delays = delays or {}
        self.tracker = tracker or ConcurrencyTracker()
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def scrape(self, *, town: str, industry: str) -> list[Business]:
        with self._lock:
            self.calls.append((town, industry))
        self.tracker.enter()
        try:
            delay = self.delays.get(industry, 0.0)
            if delay:
                time.sleep(delay)
            outcome = self.outcomes.get((town, industry), [])
            if isinstance(outcome, Exception):
                raise outcome
            return list(outcome)
        finally:
            self.tracker.exit()


class FakeCarrierClient(CarrierLookupClient):
    """
    Carrier table lookup with scripted failures.

    `failures` maps a phone to the number of attempts that fail before it
    succeeds; a negative count fails forever.
    """

    def __init__(
        self,
        providers: dict[str, str] | None = None,
        *,
        failures: dict[str, int] | None = None,
        delay: float = 0.0,
        default: str = "Vodacom",
    ) -> None:
        self.providers = providers or {}
        self.failures = dict(failures or {})
        self.delay = delay
        self.default = default
        self.calls: list[str] = []
        self.close_calls = 0
        self.tracker = ConcurrencyTracker()
        self._lock = threading.Lock()

    def lookup(self, phone: str) -> str:
        self.tracker.enter()
        try:
            with self._lock:
                self.calls.append(phone)
                remaining = self.failures.get(phone, 0)
                if remaining != 0:
                    self.failures[phone] = remaining - 1
            if self.delay:
                time.sleep(self.delay)
            if remaining != 0:
                raise ProviderLookupError(f"lookup failed for {phone}")
            return self.providers.get(phone, self.default)
        finally:
            self.tracker.exit()

    def close(self) -> None:
        self.close_calls += 1


@pytest.fixture()
def memory_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture()
def event_bus(memory_store: InMemorySessionStore) -> ProgressEventBus:
    return ProgressEventBus(session_loader=memory_store.get, queue_size=100)


@pytest.fixture()
def store(memory_store: InMemorySessionStore, event_bus: ProgressEventBus) -> EventPublishingSessionStore:
    return EventPublishingSessionStore(inner=memory_store, event_bus=event_bus)


@pytest.fixture()
def session_service(store: EventPublishingSessionStore) -> ScrapeSessionService:
    return ScrapeSessionService(store=store)


@pytest.fixture()
def carrier_client() -> FakeCarrierClient:
    return FakeCarrierClient()


@pytest.fixture()
def lookup_factory(carrier_client: FakeCarrierClient) -> Callable[[SessionConfig], ProviderLookupService]:
    def _factory(config: SessionConfig) -> ProviderLookupService:
        return ProviderLookupService(
            config=ProviderLookupConfig.from_session_config(config),
            client_factory=lambda: carrier_client,
            sleep=lambda _seconds: None,
        )

    return _factory


@pytest.fixture()
def build_orchestrator(
    store: EventPublishingSessionStore,
    event_bus: ProgressEventBus,
    lookup_factory: Callable[[SessionConfig], ProviderLookupService],
) -> Callable[..., ScrapeOrchestrator]:
    def _build(scraper: UnitScraper, *, step_budget_seconds: float = 60.0) -> ScrapeOrchestrator:
        return ScrapeOrchestrator(
            store=store,
            scraper_factory=lambda: scraper,
            lookup_service_factory=lookup_factory,
            event_bus=event_bus,
            step_budget_seconds=step_budget_seconds,
        )

    return _build
