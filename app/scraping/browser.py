"""
Scoped headless browser acquisition.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page, sync_playwright

from app.config import BrowserSettings
from app.scraping.errors import BrowserLaunchError
from app.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

LAUNCH_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
)


@contextmanager
def browser_page(settings: BrowserSettings) -> Iterator[Page]:
    """
    Yield a fresh page in its own Chromium instance.

    The browser and the Playwright driver are released on every exit path,
    including exceptions raised by the caller.
    """

    try:
        playwright = sync_playwright().start()
    except PlaywrightError as exc:
        raise BrowserLaunchError(f"Playwright driver failed to start: {exc}") from exc

    try:
        try:
            browser = playwright.chromium.launch(headless=settings.headless, args=list(LAUNCH_ARGS))
        except PlaywrightError as exc:
            raise BrowserLaunchError(f"Chromium failed to launch: {exc}") from exc

        try:
            context = browser.new_context(
                user_agent=settings.user_agent,
                locale=settings.locale,
                viewport={"width": settings.viewport_width, "height": settings.viewport_height},
            )
            page = context.new_page()
            page.set_default_timeout(settings.results_timeout_ms)
            yield page
        finally:
            try:
                browser.close()
            except PlaywrightError as exc:
                log_event(logger, logging.WARNING, "browser_close_failed", error=str(exc))
    finally:
        playwright.stop()
