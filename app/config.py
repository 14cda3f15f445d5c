"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files

_ALLOWED_SESSION_BACKENDS = {"memory", "database"}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _get_csv_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """
    Read a comma-separated list of lower-cased tokens.
    """

    raw = _get_optional_str_env(name)
    if raw is None:
        return default
    tokens = tuple(token.strip().lower() for token in raw.split(",") if token.strip())
    return tokens or default


def _require_session_backend() -> str:
    """
    Read and validate SCRAPE_SESSION_BACKEND.

    Unknown values raise RuntimeError instead of silently falling back to
    the in-memory store.
    """

    raw = _get_str_env("SCRAPE_SESSION_BACKEND", "memory")
    backend = raw.lower()
    if backend not in _ALLOWED_SESSION_BACKENDS:
        raise RuntimeError(
            f"SCRAPE_SESSION_BACKEND '{raw}' is not valid. "
            f"Allowed values: {sorted(_ALLOWED_SESSION_BACKENDS)}."
        )
    return backend


@dataclass(frozen=True)
class ScrapeSessionSettings:
    """
    Runtime settings for scrape session storage and stepping.
    """

    backend: str = "memory"
    step_budget_seconds: float = 280.0
    log_snapshot_limit: int = 300
    default_simultaneous_towns: int = 1
    default_simultaneous_industries: int = 2
    default_simultaneous_lookups: int = 3
    default_retry_attempts: int = 3
    default_retry_delay_ms: int = 2000
    default_lookup_batch_size: int = 5


@dataclass(frozen=True)
class BrowserSettings:
    """
    Headless browser settings for map listing scrapes.
    """

    headless: bool = True
    navigation_timeout_ms: int = 60000
    results_timeout_ms: int = 20000
    scroll_pause_ms: int = 1500
    max_scroll_rounds: int = 40
    stale_scroll_rounds: int = 3
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    )
    locale: str = "en-ZA"
    viewport_width: int = 1366
    viewport_height: int = 900


@dataclass(frozen=True)
class CarrierLookupSettings:
    """
    Carrier lookup HTTP endpoint settings.
    """

    base_url: str = "https://api.numlookupapi.com/v1/validate"
    api_key: str | None = None
    api_key_header: str = "apikey"
    country_code: str = "ZA"
    timeout_seconds: float = 10.0
    rate_limit_per_second: float = 5.0


@dataclass(frozen=True)
class EventStreamSettings:
    """
    Live progress stream settings.
    """

    heartbeat_seconds: float = 30.0
    close_delay_seconds: float = 2.0
    subscriber_queue_size: int = 1000


@dataclass(frozen=True)
class AuthSettings:
    """
    Role gate for scraper endpoints.
    """

    allowed_roles: tuple[str, ...] = ("admin", "manager")


@dataclass(frozen=True)
class WorkerSettings:
    """
    In-process worker that steps active sessions on an interval.
    """

    enabled: bool = False
    interval_seconds: float = 5.0


@lru_cache(maxsize=1)
def get_scrape_session_settings() -> ScrapeSessionSettings:
    """
    Return cached scrape session settings from environment variables.

    Raises RuntimeError if SCRAPE_SESSION_BACKEND is not a known backend.
    """

    return ScrapeSessionSettings(
        backend=_require_session_backend(),
        step_budget_seconds=max(1.0, _get_float_env("SCRAPE_STEP_BUDGET_SECONDS", 280.0)),
        log_snapshot_limit=max(1, _get_int_env("SCRAPE_LOG_SNAPSHOT_LIMIT", 300)),
        default_simultaneous_towns=_get_int_env("SCRAPE_DEFAULT_SIMULTANEOUS_TOWNS", 1),
        default_simultaneous_industries=_get_int_env("SCRAPE_DEFAULT_SIMULTANEOUS_INDUSTRIES", 2),
        default_simultaneous_lookups=_get_int_env("SCRAPE_DEFAULT_SIMULTANEOUS_LOOKUPS", 3),
        default_retry_attempts=_get_int_env("SCRAPE_DEFAULT_RETRY_ATTEMPTS", 3),
        default_retry_delay_ms=_get_int_env("SCRAPE_DEFAULT_RETRY_DELAY_MS", 2000),
        default_lookup_batch_size=_get_int_env("SCRAPE_DEFAULT_LOOKUP_BATCH_SIZE", 5),
    )


@lru_cache(maxsize=1)
def get_browser_settings() -> BrowserSettings:
    """
    Return cached browser settings from environment variables.
    """

    defaults = BrowserSettings()
    return BrowserSettings(
        headless=_get_bool_env("BROWSER_HEADLESS", True),
        navigation_timeout_ms=max(1000, _get_int_env("BROWSER_NAVIGATION_TIMEOUT_MS", 60000)),
        results_timeout_ms=max(1000, _get_int_env("BROWSER_RESULTS_TIMEOUT_MS", 20000)),
        scroll_pause_ms=max(0, _get_int_env("BROWSER_SCROLL_PAUSE_MS", 1500)),
        max_scroll_rounds=max(1, _get_int_env("BROWSER_MAX_SCROLL_ROUNDS", 40)),
        stale_scroll_rounds=max(1, _get_int_env("BROWSER_STALE_SCROLL_ROUNDS", 3)),
        user_agent=_get_str_env("BROWSER_USER_AGENT", defaults.user_agent),
        locale=_get_str_env("BROWSER_LOCALE", defaults.locale),
        viewport_width=max(320, _get_int_env("BROWSER_VIEWPORT_WIDTH", 1366)),
        viewport_height=max(320, _get_int_env("BROWSER_VIEWPORT_HEIGHT", 900)),
    )


@lru_cache(maxsize=1)
def get_carrier_lookup_settings() -> CarrierLookupSettings:
    """
    Return cached carrier lookup settings from environment variables.
    """

    defaults = CarrierLookupSettings()
    return CarrierLookupSettings(
        base_url=_get_str_env("CARRIER_LOOKUP_URL", defaults.base_url),
        api_key=_get_optional_str_env("CARRIER_LOOKUP_API_KEY"),
        api_key_header=_get_str_env("CARRIER_LOOKUP_API_KEY_HEADER", defaults.api_key_header),
        country_code=_get_str_env("CARRIER_LOOKUP_COUNTRY_CODE", defaults.country_code),
        timeout_seconds=max(1.0, _get_float_env("CARRIER_LOOKUP_TIMEOUT_SECONDS", 10.0)),
        rate_limit_per_second=max(0.1, _get_float_env("CARRIER_LOOKUP_RATE_LIMIT_PER_SECOND", 5.0)),
    )


@lru_cache(maxsize=1)
def get_event_stream_settings() -> EventStreamSettings:
    """
    Return cached live event stream settings.
    """

    return EventStreamSettings(
        heartbeat_seconds=max(1.0, _get_float_env("SCRAPE_STREAM_HEARTBEAT_SECONDS", 30.0)),
        close_delay_seconds=max(0.0, _get_float_env("SCRAPE_STREAM_CLOSE_DELAY_SECONDS", 2.0)),
        subscriber_queue_size=max(1, _get_int_env("SCRAPE_STREAM_QUEUE_SIZE", 1000)),
    )


@lru_cache(maxsize=1)
def get_auth_settings() -> AuthSettings:
    """
    Return cached role gate settings.
    """

    return AuthSettings(
        allowed_roles=_get_csv_env("SCRAPER_ALLOWED_ROLES", ("admin", "manager")),
    )


@lru_cache(maxsize=1)
def get_worker_settings() -> WorkerSettings:
    """
    Return cached in-process worker settings.
    """

    return WorkerSettings(
        enabled=_get_bool_env("SCRAPE_WORKER_ENABLED", False),
        interval_seconds=max(1.0, _get_float_env("SCRAPE_WORKER_INTERVAL_SECONDS", 5.0)),
    )
