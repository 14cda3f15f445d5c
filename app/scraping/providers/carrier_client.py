"""
HTTP client for mobile carrier lookups.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import requests

from app.config import CarrierLookupSettings
from app.domain.scrape_session import UNKNOWN_PROVIDER
from app.scraping.errors import ProviderLookupError
from app.scraping.providers.phone import normalize_phone
from app.scraping.rate_limiter import HostRateLimiter

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
PROVIDER_FIELDS = ("provider", "carrier", "network", "network_name")

# Lower-cased substrings mapped to the carrier's trading name.
KNOWN_CARRIERS = (
    ("vodacom", "Vodacom"),
    ("mtn", "MTN"),
    ("cell c", "Cell C"),
    ("cellc", "Cell C"),
    ("telkom", "Telkom"),
    ("rain", "Rain"),
)


def canonical_provider_name(raw: str | None) -> str:
    if not raw or not raw.strip():
        return UNKNOWN_PROVIDER
    lowered = raw.strip().lower()
    for needle, name in KNOWN_CARRIERS:
        if needle in lowered:
            return name
    return raw.strip()


class CarrierLookupClient(ABC):
    """
    Resolves one phone number to its carrier name.
    """

    @abstractmethod
    def lookup(self, phone: str) -> str:
        """
        Return the provider name or raise ProviderLookupError.
        """

    def close(self) -> None:
        """
        Release pooled resources. Safe to call more than once.
        """


class HTTPCarrierLookupClient(CarrierLookupClient):
    """
    Single-attempt JSON lookup against the configured carrier endpoint.

    Retries belong to the caller; every failure surfaces as
    ProviderLookupError.
    """

    def __init__(
        self,
        *,
        settings: CarrierLookupSettings,
        session: requests.Session | None = None,
        rate_limiter: HostRateLimiter | None = None,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._rate_limiter = rate_limiter or HostRateLimiter(
            rate_limit_per_second=settings.rate_limit_per_second
        )
        self._closed = False

    def lookup(self, phone: str) -> str:
        number = normalize_phone(phone)
        if not number:
            raise ProviderLookupError(f"Phone '{phone}' has no digits to look up.")

        payload = self._request_json(number)
        for field_name in PROVIDER_FIELDS:
            value = payload.get(field_name) if isinstance(payload, dict) else None
            if isinstance(value, str) and value.strip():
                return canonical_provider_name(value)
        return UNKNOWN_PROVIDER

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._session.close()

    def _request_json(self, number: str) -> Any:
        url = self._settings.base_url
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._settings.api_key:
            headers[self._settings.api_key_header] = self._settings.api_key
        params = {"number": number, "country_code": self._settings.country_code}

        self._rate_limiter.wait(url)
        try:
            response = self._session.get(
                url,
                params=params,
                headers=headers,
                timeout=self._settings.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise ProviderLookupError(f"Carrier lookup transport failure: {exc}") from exc

        if response.status_code in RETRYABLE_STATUS_CODES:
            raise ProviderLookupError(f"Retryable HTTP status code: {response.status_code}")
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            logger.error(
                "Carrier lookup failed status=%s url=%s error=%s",
                response.status_code,
                url,
                exc,
            )
            raise ProviderLookupError(f"Carrier lookup rejected with status {response.status_code}.") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderLookupError("Carrier lookup response was not valid JSON.") from exc
