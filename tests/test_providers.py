from decimal import Decimal

import pytest

from fxcore.core.config import Settings
from fxcore.services.http_client import HttpError
from fxcore.services.money import divide
from fxcore.services.rates.exceptions import ProviderError
from fxcore.services.rates.providers import (
    ExchangeRateAPIProvider,
    FallbackProvider,
    FixerIOProvider,
    OpenExchangeProvider,
    make_rate_providers,
)


class FakeWire:
    """Stands in for http_client.get_json / probe."""

    def __init__(self, payload=None, error=None, alive=True):
        self.payload = payload
        self.error = error
        self.alive = alive
        self.requests = []
        self.retries = []

    def get_json(self, url, *, params=None, timeout=None, retries=None):
        self.requests.append((url, dict(params or {}), timeout))
        self.retries.append(retries)
        if self.error:
            raise self.error
        return self.payload

    def probe(self, url, *, params=None, timeout=None):
        self.requests.append((url, dict(params or {}), timeout))
        return self.alive


def _provider(cls, wire, **kwargs):
    return cls(
        "key-123",
        fetch_json=wire.get_json,
        probe_url=wire.probe,
        fetch_timeout=15.0,
        availability_timeout=5.0,
        **kwargs,
    )


def test_exchange_rate_api_normalizes_payload():
    wire = FakeWire({"base": "USD", "date": "2026-01-15", "rates": {"INR": 83.12, "EUR": 0.92}})
    p = _provider(ExchangeRateAPIProvider, wire)
    assert p.get_rate("USD", "INR") == Decimal("83.12")
    url, params, timeout = wire.requests[-1]
    assert url.endswith("/latest/USD")
    assert params == {"access_key": "key-123"}
    assert timeout == 15.0


def test_missing_target_is_provider_error_not_one():
    wire = FakeWire({"rates": {"EUR": 0.92}})
    p = _provider(ExchangeRateAPIProvider, wire)
    with pytest.raises(ProviderError):
        p.get_rate("USD", "INR")


def test_http_failure_maps_to_provider_error():
    wire = FakeWire(error=HttpError("HTTP 500"))
    p = _provider(FixerIOProvider, wire)
    with pytest.raises(ProviderError) as exc:
        p.get_rate("EUR", "USD")
    assert exc.value.provider == "Fixer.io"


def test_unsuccessful_payload_rejected():
    wire = FakeWire({"success": False, "error": {"info": "invalid access key"}})
    p = _provider(FixerIOProvider, wire)
    with pytest.raises(ProviderError, match="invalid access key"):
        p.get_all_rates("EUR")


@pytest.mark.parametrize("payload", [{}, {"rates": []}, {"rates": {"INR": "abc"}}])
def test_malformed_payloads(payload):
    p = _provider(ExchangeRateAPIProvider, FakeWire(payload))
    with pytest.raises(ProviderError):
        p.get_rate("USD", "INR")


def test_open_exchange_cross_rates():
    wire = FakeWire({"base": "USD", "rates": {"EUR": 0.8, "INR": 80}})
    p = _provider(OpenExchangeProvider, wire)
    assert p.get_rate("EUR", "INR") == Decimal("100")
    rates = p.get_all_rates("EUR")
    assert rates["USD"] == Decimal("1.25")
    assert rates["EUR"] == Decimal("1")


def test_availability_probe_uses_short_timeout():
    wire = FakeWire(alive=False)
    p = _provider(ExchangeRateAPIProvider, wire)
    assert p.is_available() is False
    assert wire.requests[-1][2] == 5.0


def test_fallback_direct_pivot_and_unknown():
    fb = FallbackProvider()
    assert fb.is_available() is True
    assert fb.get_rate("USD", "INR") == Decimal("83.45")
    assert fb.get_rate("EUR", "INR") == Decimal("90.71")
    # INR -> EUR is not listed; routed through USD
    assert fb.get_rate("INR", "EUR") == divide("0.92", "83.45")
    assert fb.get_rate("JPY", "JPY") == Decimal("1")
    with pytest.raises(ProviderError):
        fb.get_rate("USD", "XAU")


def test_fallback_all_rates_excludes_base():
    rates = FallbackProvider().get_all_rates("USD")
    assert "USD" not in rates
    assert rates["INR"] == Decimal("83.45")


def test_chain_only_registers_configured_keys(tmp_path):
    settings = Settings(db_path=tmp_path / "x.db", fixer_io_api_key="abc")
    chain = make_rate_providers(settings)
    assert [p.name for p in chain] == ["Fixer.io", "Fallback"]


def test_chain_sorted_by_priority(tmp_path):
    settings = Settings(
        db_path=tmp_path / "x.db",
        open_exchange_api_key="c",
        fixer_io_api_key="b",
        exchange_rate_api_key="a",
    )
    names = [p.name for p in make_rate_providers(settings)]
    assert names == ["ExchangeRate-API", "Fixer.io", "OpenExchange", "Fallback"]


def test_failover_fetch_is_single_attempt_by_default(tmp_path):
    wire = FakeWire({"rates": {"INR": 83.1}})
    p = ExchangeRateAPIProvider("key-123", fetch_json=wire.get_json, probe_url=wire.probe)
    p.get_rate("USD", "INR")
    assert wire.retries == [0]
    assert wire.requests[-1][2] == 15.0

    settings = Settings(db_path=tmp_path / "x.db", fixer_io_api_key="abc")
    assert make_rate_providers(settings)[0].retries == 0
