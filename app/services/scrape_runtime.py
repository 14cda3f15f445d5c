"""
Process-wide wiring of the scrape session components.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache

from app.config import (
    ScrapeSessionSettings,
    get_browser_settings,
    get_carrier_lookup_settings,
    get_event_stream_settings,
    get_scrape_session_settings,
)
from app.domain.scrape_session import SessionConfig
from app.scraping.providers.carrier_client import HTTPCarrierLookupClient
from app.scraping.providers.lookup_service import ProviderLookupConfig, ProviderLookupService
from app.scraping.storage import InMemorySessionStore, SessionStore, SQLAlchemySessionStore
from app.scraping.storage.publishing_store import EventPublishingSessionStore
from app.scraping.unit_scraper import MapsUnitScraper
from app.services.event_bus import ProgressEventBus
from app.services.scrape_orchestrator import ScrapeOrchestrator
from app.services.scrape_session_service import ScrapeSessionService
from app.validators.scrape_session_validator import ScrapeSessionValidator


@dataclass(frozen=True)
class ScrapeRuntime:
    store: SessionStore
    event_bus: ProgressEventBus
    session_service: ScrapeSessionService
    orchestrator: ScrapeOrchestrator
    settings: ScrapeSessionSettings
    lookup_service_factory: Callable[[SessionConfig], ProviderLookupService]


def build_lookup_service(config: SessionConfig) -> ProviderLookupService:
    carrier_settings = get_carrier_lookup_settings()
    return ProviderLookupService(
        config=ProviderLookupConfig.from_session_config(config),
        client_factory=lambda: HTTPCarrierLookupClient(settings=carrier_settings),
    )


def build_session_store(settings: ScrapeSessionSettings) -> SessionStore:
    if settings.backend == "database":
        from db.session import SessionLocal

        return SQLAlchemySessionStore(session_factory=SessionLocal)
    return InMemorySessionStore()


def default_session_config(settings: ScrapeSessionSettings) -> SessionConfig:
    return SessionConfig(
        simultaneous_towns=settings.default_simultaneous_towns,
        simultaneous_industries=settings.default_simultaneous_industries,
        simultaneous_lookups=settings.default_simultaneous_lookups,
        retry_attempts=settings.default_retry_attempts,
        retry_delay_ms=settings.default_retry_delay_ms,
        lookup_batch_size=settings.default_lookup_batch_size,
    )


@lru_cache(maxsize=1)
def get_scrape_runtime() -> ScrapeRuntime:
    """
    Return the cached store, bus, service and orchestrator for this process.
    """

    settings = get_scrape_session_settings()
    browser_settings = get_browser_settings()
    inner_store = build_session_store(settings)
    event_bus = ProgressEventBus(
        session_loader=inner_store.get,
        queue_size=get_event_stream_settings().subscriber_queue_size,
    )
    store = EventPublishingSessionStore(inner=inner_store, event_bus=event_bus)
    return ScrapeRuntime(
        store=store,
        event_bus=event_bus,
        session_service=ScrapeSessionService(
            store=store,
            validator=ScrapeSessionValidator(defaults=default_session_config(settings)),
        ),
        orchestrator=ScrapeOrchestrator(
            store=store,
            scraper_factory=lambda: MapsUnitScraper(settings=browser_settings),
            lookup_service_factory=build_lookup_service,
            event_bus=event_bus,
            step_budget_seconds=settings.step_budget_seconds,
        ),
        settings=settings,
        lookup_service_factory=build_lookup_service,
    )
