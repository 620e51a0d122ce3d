import threading
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from fxcore.models.rates import ConversionRequest
from fxcore.services.rates.cache_service import RateCache
from fxcore.services.rates.conversion import ConversionEngine, classify_conversion_case
from fxcore.services.rates.exceptions import NoProviderAvailable, RestrictedCurrency
from fxcore.services.rates.providers import FallbackProvider
from conftest import MockProvider


def _request(amount, entered, account, primary, **kw):
    return ConversionRequest(
        amount=Decimal(str(amount)),
        entered_currency=entered,
        account_currency=account,
        primary_currency=primary,
        **kw,
    )


@pytest.mark.parametrize(
    "entered,account,primary,expected",
    [
        ("INR", "INR", "INR", "all_same"),
        ("USD", "USD", "INR", "entered_equals_account"),
        ("USD", "INR", "USD", "entered_equals_primary"),
        ("USD", "INR", "INR", "account_equals_primary"),
        ("USD", "EUR", "INR", "all_different"),
    ],
)
def test_classify_conversion_case(entered, account, primary, expected):
    assert classify_conversion_case(entered, account, primary) == expected


def test_all_same_touches_no_provider_or_cache(usd_inr_provider):
    cache = MagicMock(spec=RateCache)
    engine = ConversionEngine([usd_inr_provider], cache)
    result = engine.convert(_request(1500, "INR", "INR", "INR"))
    assert result.conversion_case == "all_same"
    assert result.account_amount == Decimal("1500.00")
    assert result.primary_amount == Decimal("1500.00")
    assert result.exchange_rate == Decimal(1)
    assert result.conversion_source == "same_currency"
    assert usd_inr_provider.calls == 0
    cache.get.assert_not_called()
    cache.put.assert_not_called()


def test_account_equals_primary_scenario(engine, usd_inr_provider):
    result = engine.convert(_request(500, "USD", "INR", "INR"))
    assert result.conversion_case == "account_equals_primary"
    assert result.account_amount == Decimal("41500.00")
    assert result.primary_amount == Decimal("41500.00")
    assert result.exchange_rate == Decimal("83.0")
    assert result.conversion_source == "Primary"
    assert result.account_symbol == "₹"
    # second leg was served from cache
    assert usd_inr_provider.rate_calls == 1


def test_legs_computed_independently(clock):
    # USD->JPY and USD->KWD fetched separately; no chaining through account currency
    provider = MockProvider(
        "Primary", 1, {("USD", "JPY"): "150.456", ("USD", "KWD"): "0.30712"}
    )
    engine = ConversionEngine([provider], RateCache(clock=clock))
    result = engine.convert(_request("10.01", "USD", "JPY", "KWD"))
    assert result.conversion_case == "all_different"
    assert result.account_amount == Decimal("1506")  # 1506.06456 -> 0 places
    assert result.primary_amount == Decimal("3.074")  # 3.0742712 -> 3 places
    assert result.account_rate_record.to_currency == "JPY"
    assert result.primary_rate_record.to_currency == "KWD"


def test_entered_equals_account_uses_primary_leg_as_effective_rate(engine):
    result = engine.convert(_request(10, "USD", "USD", "INR"))
    assert result.conversion_case == "entered_equals_account"
    assert result.account_amount == Decimal("10.00")
    assert result.primary_amount == Decimal("830.00")
    assert result.exchange_rate == Decimal("83.0")
    assert result.rate_record.to_currency == "INR"


def test_fee_math(engine):
    result = engine.convert(
        _request(1000, "INR", "INR", "INR", include_fees=True, fee_percentage=Decimal("0.0025"))
    )
    assert result.conversion_fee == Decimal("2.50")
    assert result.total_cost == Decimal("1002.50")


def test_fee_defaults_to_engine_percentage(engine):
    result = engine.convert(_request(1000, "INR", "INR", "INR", include_fees=True))
    assert result.conversion_fee == Decimal("2.50")


def test_no_fees_is_exact_zero(engine):
    result = engine.convert(_request(1000, "INR", "INR", "INR"))
    assert result.conversion_fee == 0
    assert str(result.conversion_fee) == "0"
    assert result.total_cost == Decimal("1000.00")


@pytest.mark.parametrize("field", ["entered", "account", "primary"])
def test_restricted_currency_rejected_before_any_io(field, usd_inr_provider):
    cache = MagicMock(spec=RateCache)
    engine = ConversionEngine([usd_inr_provider, FallbackProvider()], cache)
    codes = {"entered": "USD", "account": "INR", "primary": "EUR"}
    codes[field] = "IRR"
    with pytest.raises(RestrictedCurrency):
        engine.convert(_request(1, codes["entered"], codes["account"], codes["primary"]))
    assert usd_inr_provider.calls == 0
    cache.get.assert_not_called()


def test_failover_reaches_fallback(cache):
    p1 = MockProvider("P1", 1, fail=True)
    p2 = MockProvider("P2", 2, available=False)
    engine = ConversionEngine([FallbackProvider(), p2, p1], cache)
    assert [p.name for p in engine.providers] == ["P1", "P2", "Fallback"]
    result = engine.convert(_request(100, "USD", "INR", "INR"))
    assert result.conversion_source == "Fallback"
    assert result.primary_amount == Decimal("8345.00")
    assert p1.rate_calls == 1
    assert p2.rate_calls == 0
    assert cache.get("USD", "INR").source == "Fallback"


def test_first_successful_provider_wins(cache):
    p1 = MockProvider("P1", 1, {("USD", "INR"): "83.1"})
    p2 = MockProvider("P2", 2, {("USD", "INR"): "99"})
    engine = ConversionEngine([p2, p1, FallbackProvider()], cache)
    assert engine.get_exchange_rate("USD", "INR").source == "P1"
    assert p2.calls == 0


def test_no_rate_is_an_error_not_one(cache):
    engine = ConversionEngine([MockProvider("P1", 1, fail=True), FallbackProvider()], cache)
    with pytest.raises(NoProviderAvailable) as exc:
        engine.convert(_request(5, "USD", "XAU", "XAU"))
    assert [name for name, _ in exc.value.attempts] == ["P1", "Fallback"]


def test_expired_cache_served_before_static_fallback(cache, clock):
    good = MockProvider("P1", 1, {("USD", "INR"): "83.2"})
    engine = ConversionEngine([good, FallbackProvider()], cache)
    engine.get_exchange_rate("USD", "INR")
    clock.advance(hours=2)
    good.fail = True
    rate = engine.get_exchange_rate("USD", "INR")
    assert rate.source == "P1"
    assert rate.from_expired_cache is True
    assert rate.rate == Decimal("83.2")


def test_stale_cache_triggers_fresh_fetch(cache, clock, usd_inr_provider, engine):
    engine.get_exchange_rate("USD", "INR")
    clock.advance(days=8)
    engine.get_exchange_rate("USD", "INR")
    assert usd_inr_provider.rate_calls == 2


def test_recent_cache_served_without_fetch(engine, clock, usd_inr_provider):
    engine.get_exchange_rate("USD", "INR")
    clock.advance(minutes=50)
    engine.get_exchange_rate("USD", "INR")
    assert usd_inr_provider.rate_calls == 1


def test_idempotent_amounts_distinct_audit_ids(engine):
    req = _request(500, "USD", "INR", "INR", audit_context="widget")
    a = engine.convert(req)
    b = engine.convert(req)
    assert a.primary_amount == b.primary_amount
    assert a.account_amount == b.account_amount
    assert a.audit_id != b.audit_id
    assert a.audit_id.startswith("widget_")


def test_round_trip_within_rounding_error(engine):
    there = engine.convert(_request("123.45", "USD", "INR", "INR"))
    back = engine.convert(_request(there.account_amount, "INR", "USD", "USD"))
    assert back.rate_record.inverse is True
    assert abs(back.account_amount - Decimal("123.45")) <= Decimal("0.01")


def test_refresh_rates_bulk_loads_cache(cache):
    p1 = MockProvider("P1", 1, {("USD", "INR"): "83", ("USD", "EUR"): "0.9", ("USD", "IRR"): "42000"})
    engine = ConversionEngine([p1, FallbackProvider()], cache)
    provider, count = engine.refresh_rates("usd")
    assert (provider, count) == ("P1", 2)
    assert cache.get("USD", "EUR").rate == Decimal("0.9")
    assert cache.get("USD", "IRR") is None


def test_concurrent_conversions_share_cache(cache):
    provider = MockProvider("P1", 1, {("USD", "INR"): "83"})
    engine = ConversionEngine([provider, FallbackProvider()], cache)
    results, errors = [], []

    def work():
        try:
            results.append(engine.convert(_request(2, "USD", "INR", "INR")).primary_amount)
        except Exception as e:  # pragma: no cover - surfaced by assertion below
            errors.append(e)

    threads = [threading.Thread(target=work) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []
    assert set(results) == {Decimal("166.00")}
    assert provider.rate_calls >= 1


def test_engine_exposes_table_lookups(engine):
    assert engine.get_currency_precision("JPY") == 0
    assert engine.is_currency_restricted("CUP")
    assert engine.format_amount(Decimal("5"), "GBP") == "£5.00"
    assert engine.convert_amount(2, "USD", "INR") == Decimal("166.00")


def test_huge_amounts_convert_without_decimal_errors(engine):
    result = engine.convert(_request("1E+26", "USD", "INR", "INR"))
    assert result.entered_amount == Decimal("100000000000000000000000000.00")
    assert result.account_amount == Decimal("8300000000000000000000000000.00")

    same = engine.convert(_request("12345678901234567890123456789", "USD", "USD", "USD"))
    assert same.conversion_case == "all_same"
    assert same.entered_amount == Decimal("12345678901234567890123456789.00")
    assert same.primary_amount == same.total_cost
