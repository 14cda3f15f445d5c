"""
Scraper for one (town, industry) unit of a session.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import Any
from urllib.parse import quote

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from app.config import BrowserSettings
from app.domain.scrape_session import Business
from app.scraping.browser import browser_page
from app.scraping.errors import BrowserLaunchError, NavigationTimeoutError, UnitScrapeError
from app.scraping.logging_utils import log_event
from app.scraping.parsing.listing_parser import (
    FEED_SELECTOR,
    count_cards,
    page_reached_end,
    parse_listing_cards,
)

logger = logging.getLogger(__name__)

SEARCH_URL_TEMPLATE = "https://www.google.com/maps/search/{query}"
SCROLL_FEED_SCRIPT = """
(selector) => {
    const feed = document.querySelector(selector);
    if (feed) {
        feed.scrollTop = feed.scrollHeight;
    }
}
"""

PageFactory = Callable[[], AbstractContextManager[Any]]


def build_search_url(*, town: str, industry: str) -> str:
    return SEARCH_URL_TEMPLATE.format(query=quote(f"{industry} in {town}"))


class UnitScraper(ABC):
    """
    Scrapes every listing for one industry in one town.

    Implementations do not retry; failures surface as UnitScrapeError
    subclasses and the caller decides what to do with them.
    """

    @abstractmethod
    def scrape(self, *, town: str, industry: str) -> list[Business]:
        """
        Return the businesses found for the unit.
        """


class MapsUnitScraper(UnitScraper):
    """
    Headless-browser scraper for map search listings.
    """

    def __init__(
        self,
        *,
        settings: BrowserSettings,
        page_factory: PageFactory | None = None,
    ) -> None:
        self._settings = settings
        self._page_factory = page_factory or (lambda: browser_page(settings))

    def scrape(self, *, town: str, industry: str) -> list[Business]:
        url = build_search_url(town=town, industry=industry)
        started = time.monotonic()
        try:
            with self._page_factory() as page:
                self._open_results(page, url=url, town=town, industry=industry)
                html = self._load_all_results(page)
        except BrowserLaunchError as exc:
            exc.town, exc.industry = town, industry
            raise
        except UnitScrapeError:
            raise
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeoutError(
                f"Timed out scraping {industry} in {town}: {exc}",
                town=town,
                industry=industry,
            ) from exc
        except PlaywrightError as exc:
            raise UnitScrapeError(
                f"Browser error scraping {industry} in {town}: {exc}",
                town=town,
                industry=industry,
            ) from exc

        businesses = [
            Business(
                name=card.name,
                phone=card.phone,
                town=town,
                industry=industry,
                address=card.address,
                map_reference=card.map_reference,
            )
            for card in parse_listing_cards(html)
        ]
        log_event(
            logger,
            logging.INFO,
            "unit_scraped",
            town=town,
            industry=industry,
            businesses=len(businesses),
            duration_seconds=round(time.monotonic() - started, 2),
        )
        return businesses

    def _open_results(self, page: Any, *, url: str, town: str, industry: str) -> None:
        try:
            page.goto(url, wait_until="networkidle", timeout=self._settings.navigation_timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeoutError(
                f"Navigation to results for {industry} in {town} timed out.",
                town=town,
                industry=industry,
            ) from exc

        try:
            page.wait_for_selector(FEED_SELECTOR, timeout=self._settings.results_timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeoutError(
                f"Result list for {industry} in {town} did not appear.",
                town=town,
                industry=industry,
            ) from exc

    def _load_all_results(self, page: Any) -> str:
        """
        Scroll the result feed until the end marker shows or no new cards load.
        """

        html = page.content()
        previous_count = count_cards(html)
        stale_rounds = 0
        for _ in range(self._settings.max_scroll_rounds):
            if page_reached_end(html):
                break
            page.evaluate(SCROLL_FEED_SCRIPT, FEED_SELECTOR)
            page.wait_for_timeout(self._settings.scroll_pause_ms)
            html = page.content()
            current_count = count_cards(html)
            if current_count <= previous_count:
                stale_rounds += 1
                if stale_rounds >= self._settings.stale_scroll_rounds:
                    break
            else:
                stale_rounds = 0
            previous_count = current_count
        return html
