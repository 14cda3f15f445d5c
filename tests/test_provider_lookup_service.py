"""
tests/test_provider_lookup_service.py

Pytest tests for ProviderLookupService, phone normalization and the HTTP
carrier client.

Coverage
--------
- Result keys equal the distinct input phones
- Bounded in-flight batches
- Per-phone retries with delay, exhaustion falls back to Unknown
- Batch-level failures and deadlines fall back to Unknown
- cleanup() idempotent and safe before any lookup
- Phone normalization to national form
- HTTP client response parsing and error mapping
"""

from __future__ import annotations

import time

import pytest
import requests

from app.config import CarrierLookupSettings
from app.domain.scrape_session import UNKNOWN_PROVIDER, SessionConfig
from app.scraping.errors import ProviderLookupError
from app.scraping.providers.carrier_client import HTTPCarrierLookupClient, canonical_provider_name
from app.scraping.providers.lookup_service import ProviderLookupConfig, ProviderLookupService
from app.scraping.providers.phone import normalize_phone
from tests.conftest import FakeCarrierClient


def _service(client, *, sleeps=None, **overrides) -> ProviderLookupService:
    config = ProviderLookupConfig(
        max_concurrent_batches=overrides.get("max_concurrent_batches", 2),
        batch_size=overrides.get("batch_size", 2),
        retry_attempts=overrides.get("retry_attempts", 3),
        retry_delay_ms=overrides.get("retry_delay_ms", 0),
    )
    recorded = sleeps if sleeps is not None else []
    return ProviderLookupService(config=config, client_factory=lambda: client, sleep=recorded.append)


# ---------------------------------------------------------------------------
# Result shape
# ---------------------------------------------------------------------------


class TestLookupResults:
    def test_keys_are_distinct_inputs(self) -> None:
        client = FakeCarrierClient({"a": "MTN"})
        service = _service(client)

        result = service.lookup_providers(["a", "b", "a", "c"])

        assert set(result) == {"a", "b", "c"}
        assert result["a"] == "MTN"
        assert result["b"] == "Vodacom"
        assert client.calls.count("a") == 1

    def test_empty_input_returns_empty_mapping(self) -> None:
        assert _service(FakeCarrierClient()).lookup_providers([]) == {}

    def test_config_from_session(self) -> None:
        config = ProviderLookupConfig.from_session_config(
            SessionConfig(simultaneous_lookups=7, lookup_batch_size=4, retry_attempts=2, retry_delay_ms=10)
        )
        assert config == ProviderLookupConfig(
            max_concurrent_batches=7,
            batch_size=4,
            retry_attempts=2,
            retry_delay_ms=10,
        )


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestBoundedConcurrency:
    def test_in_flight_batches_never_exceed_limit(self) -> None:
        client = FakeCarrierClient(delay=0.02)
        service = _service(client, max_concurrent_batches=2, batch_size=2)
        phones = [f"08200000{index:02d}" for index in range(12)]

        result = service.lookup_providers(phones)

        assert len(result) == 12
        assert 1 <= service.peak_active_batches <= 2
        assert client.tracker.peak <= 2

    def test_single_batch_limit_serializes(self) -> None:
        client = FakeCarrierClient(delay=0.01)
        service = _service(client, max_concurrent_batches=1, batch_size=3)

        service.lookup_providers([str(index) for index in range(7)])

        assert service.peak_active_batches == 1
        assert client.tracker.peak == 1


# ---------------------------------------------------------------------------
# Retries and fallbacks
# ---------------------------------------------------------------------------


class TestRetries:
    def test_transient_failure_is_retried_with_delay(self) -> None:
        client = FakeCarrierClient({"p": "Cell C"}, failures={"p": 2})
        sleeps: list[float] = []
        service = _service(client, sleeps=sleeps, retry_attempts=3, retry_delay_ms=500)

        result = service.lookup_providers(["p"])

        assert result == {"p": "Cell C"}
        assert client.calls == ["p", "p", "p"]
        assert sleeps == [0.5, 0.5]

    def test_exhausted_retries_yield_unknown(self) -> None:
        client = FakeCarrierClient(failures={"p": -1})
        service = _service(client, retry_attempts=2)

        result = service.lookup_providers(["p", "q"])

        assert result == {"p": UNKNOWN_PROVIDER, "q": "Vodacom"}
        assert client.calls.count("p") == 2

    def test_unexpected_batch_error_yields_unknown(self) -> None:
        class ExplodingClient(FakeCarrierClient):
            def lookup(self, phone: str) -> str:
                if phone == "bad":
                    raise ValueError("malformed payload")
                return super().lookup(phone)

        service = _service(ExplodingClient(), batch_size=2)

        result = service.lookup_providers(["ok", "bad", "fine"])

        assert result["ok"] == UNKNOWN_PROVIDER
        assert result["bad"] == UNKNOWN_PROVIDER
        assert result["fine"] == "Vodacom"

    def test_deadline_leaves_unfinished_batches_unknown(self) -> None:
        client = FakeCarrierClient(delay=0.5)
        service = _service(client, max_concurrent_batches=1, batch_size=1)

        started = time.monotonic()
        result = service.lookup_providers(["a", "b"], deadline=time.monotonic() + 0.05)

        assert time.monotonic() - started < 0.5
        assert result == {"a": UNKNOWN_PROVIDER, "b": UNKNOWN_PROVIDER}

    def test_lookup_single_normalizes(self) -> None:
        service = _service(FakeCarrierClient({"+27 82 123 4567": "Vodacom"}))

        assert service.lookup_single("+27 82 123 4567") == ("0821234567", "Vodacom")


# ---------------------------------------------------------------------------
# Cleanup
# ---------------------------------------------------------------------------


class TestCleanup:
    def test_cleanup_before_lookup_is_safe(self) -> None:
        client = FakeCarrierClient()
        service = _service(client)

        service.cleanup()
        service.cleanup()

        assert client.close_calls == 0

    def test_cleanup_closes_client_once(self) -> None:
        client = FakeCarrierClient()
        service = _service(client)
        service.lookup_providers(["a"])

        service.cleanup()
        service.cleanup()

        assert client.close_calls == 1

    def test_lookup_after_cleanup_yields_unknown(self) -> None:
        service = _service(FakeCarrierClient())
        service.cleanup()

        assert service.lookup_providers(["a"]) == {"a": UNKNOWN_PROVIDER}


# ---------------------------------------------------------------------------
# Phone normalization
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("+27 82 123 4567", "0821234567"),
        ("27821234567", "0821234567"),
        ("082 123 4567", "0821234567"),
        ("(011) 555-0100", "0115550100"),
        ("No phone", ""),
        ("   ", ""),
        (None, ""),
    ],
)
def test_normalize_phone(raw, expected) -> None:
    assert normalize_phone(raw) == expected


# ---------------------------------------------------------------------------
# HTTP carrier client
# ---------------------------------------------------------------------------


class _Response:
    def __init__(self, status_code: int, payload=None, *, invalid_json: bool = False) -> None:
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    def json(self):
        if self._invalid_json:
            raise ValueError("not json")
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}")


class _Session:
    def __init__(self, outcome) -> None:
        self.outcome = outcome
        self.requests: list[dict] = []
        self.closed = 0

    def get(self, url, **kwargs):
        self.requests.append({"url": url, **kwargs})
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome

    def close(self) -> None:
        self.closed += 1


def _client(outcome, **settings) -> tuple[HTTPCarrierLookupClient, _Session]:
    session = _Session(outcome)
    client = HTTPCarrierLookupClient(
        settings=CarrierLookupSettings(rate_limit_per_second=1000.0, api_key="secret", **settings),
        session=session,  # type: ignore[arg-type]
    )
    return client, session


class TestHTTPCarrierLookupClient:
    def test_parses_carrier_field(self) -> None:
        client, session = _client(_Response(200, {"valid": True, "carrier": "Vodacom (Pty) Ltd"}))

        assert client.lookup("+27 82 123 4567") == "Vodacom"
        assert session.requests[0]["params"]["number"] == "0821234567"
        assert session.requests[0]["headers"]["apikey"] == "secret"

    def test_missing_provider_field_is_unknown(self) -> None:
        client, _ = _client(_Response(200, {"valid": False}))

        assert client.lookup("0821234567") == UNKNOWN_PROVIDER

    @pytest.mark.parametrize(
        "outcome",
        [
            _Response(503, {}),
            _Response(404, {}),
            _Response(200, invalid_json=True),
            requests.Timeout("slow"),
            requests.ConnectionError("down"),
            requests.exceptions.ChunkedEncodingError("truncated body"),
            requests.TooManyRedirects("redirect loop"),
            requests.exceptions.InvalidURL("bad endpoint"),
        ],
    )
    def test_failures_raise_provider_lookup_error(self, outcome) -> None:
        client, _ = _client(outcome)

        with pytest.raises(ProviderLookupError):
            client.lookup("0821234567")

    def test_blank_phone_raises(self) -> None:
        client, session = _client(_Response(200, {"carrier": "MTN"}))

        with pytest.raises(ProviderLookupError):
            client.lookup("No phone")
        assert session.requests == []

    def test_close_is_idempotent(self) -> None:
        client, session = _client(_Response(200, {}))

        client.close()
        client.close()

        assert session.closed == 1


def test_canonical_provider_name() -> None:
    assert canonical_provider_name("MTN Group") == "MTN"
    assert canonical_provider_name("cell c limited") == "Cell C"
    assert canonical_provider_name("Unheard Mobile") == "Unheard Mobile"
    assert canonical_provider_name("") == UNKNOWN_PROVIDER
