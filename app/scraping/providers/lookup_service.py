"""
Bounded-concurrency batch resolution of phone numbers to carriers.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass

from app.domain.scrape_session import UNKNOWN_PROVIDER, SessionConfig
from app.scraping.errors import ProviderLookupError
from app.scraping.logging_utils import log_event
from app.scraping.providers.carrier_client import CarrierLookupClient
from app.scraping.providers.phone import normalize_phone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderLookupConfig:
    max_concurrent_batches: int = 3
    batch_size: int = 5
    retry_attempts: int = 3
    retry_delay_ms: int = 2000

    @classmethod
    def from_session_config(cls, config: SessionConfig) -> ProviderLookupConfig:
        return cls(
            max_concurrent_batches=config.simultaneous_lookups,
            batch_size=config.lookup_batch_size,
            retry_attempts=config.retry_attempts,
            retry_delay_ms=config.retry_delay_ms,
        )


class ProviderLookupService:
    """
    Resolve phones in contiguous batches with at most
    ``max_concurrent_batches`` batches in flight.

    Every distinct input phone appears in the result; numbers that cannot be
    resolved map to ``"Unknown"``.  One instance serves one lookup session
    and must be released with ``cleanup()``.
    """

    def __init__(
        self,
        *,
        config: ProviderLookupConfig,
        client_factory: Callable[[], CarrierLookupClient],
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._client_factory = client_factory
        self._sleep = sleep
        self._client: CarrierLookupClient | None = None
        self._client_lock = threading.Lock()
        self._active_lock = threading.Lock()
        self._active_batches = 0
        self.peak_active_batches = 0
        self._closed = False

    def lookup_providers(
        self,
        phones: Iterable[str],
        *,
        deadline: float | None = None,
    ) -> dict[str, str]:
        """
        Map each distinct phone to a provider name.

        `deadline` is a ``time.monotonic()`` value; batches still running when
        it passes leave their phones as ``"Unknown"``.
        """

        distinct = list(dict.fromkeys(phones))
        resolved: dict[str, str] = {}
        if not distinct:
            return resolved

        batch_size = max(1, self._config.batch_size)
        batches = [distinct[start : start + batch_size] for start in range(0, len(distinct), batch_size)]

        executor = ThreadPoolExecutor(
            max_workers=max(1, self._config.max_concurrent_batches),
            thread_name_prefix="provider-lookup",
        )
        try:
            futures = {executor.submit(self._run_batch, batch): batch for batch in batches}
            timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
            done, not_done = wait(futures, timeout=timeout)

            for future in done:
                batch = futures[future]
                try:
                    resolved.update(future.result())
                except Exception as exc:  # noqa: BLE001
                    log_event(
                        logger,
                        logging.WARNING,
                        "provider_batch_failed",
                        batch_size=len(batch),
                        error=str(exc),
                    )

            if not_done:
                log_event(
                    logger,
                    logging.WARNING,
                    "provider_lookup_deadline_exceeded",
                    pending_batches=len(not_done),
                )
                for future in not_done:
                    future.cancel()
        finally:
            executor.shutdown(wait=deadline is None, cancel_futures=True)

        return {phone: resolved.get(phone, UNKNOWN_PROVIDER) for phone in distinct}

    def lookup_single(self, phone: str) -> tuple[str, str]:
        """
        Resolve one number with retries; returns (normalized_phone, provider).
        """

        return normalize_phone(phone), self._lookup_with_retry(phone)

    def cleanup(self) -> None:
        """
        Release the pooled carrier client. Idempotent.
        """

        with self._client_lock:
            if self._closed:
                return
            self._closed = True
            client, self._client = self._client, None
        if client is not None:
            client.close()

    def _get_client(self) -> CarrierLookupClient:
        with self._client_lock:
            if self._closed:
                raise ProviderLookupError("Lookup service has been cleaned up.")
            if self._client is None:
                self._client = self._client_factory()
            return self._client

    def _run_batch(self, batch: Sequence[str]) -> dict[str, str]:
        with self._active_lock:
            self._active_batches += 1
            self.peak_active_batches = max(self.peak_active_batches, self._active_batches)
        try:
            return {phone: self._lookup_with_retry(phone) for phone in batch}
        finally:
            with self._active_lock:
                self._active_batches -= 1

    def _lookup_with_retry(self, phone: str) -> str:
        if not phone or not phone.strip():
            return UNKNOWN_PROVIDER

        attempts = max(1, self._config.retry_attempts)
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                provider = self._get_client().lookup(phone)
                return provider or UNKNOWN_PROVIDER
            except ProviderLookupError as exc:
                last_error = exc
            if attempt < attempts and self._config.retry_delay_ms > 0:
                self._sleep(self._config.retry_delay_ms / 1000.0)

        log_event(
            logger,
            logging.WARNING,
            "provider_lookup_exhausted",
            phone=phone,
            attempts=attempts,
            error=str(last_error),
        )
        return UNKNOWN_PROVIDER
