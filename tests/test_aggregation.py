from decimal import Decimal

import pytest

from fxcore.models.rates import AggregateItem
from fxcore.services.aggregation import DashboardAggregator
from fxcore.services.rates.conversion import ConversionEngine
from fxcore.services.rates.exceptions import NoProviderAvailable, RestrictedCurrency
from fxcore.services.rates.providers import FallbackProvider
from conftest import MockProvider


class CountingEngine:
    def __init__(self, engine):
        self.engine = engine
        self.requests = []

    def convert(self, request):
        self.requests.append(request)
        return self.engine.convert(request)


def _items(*pairs):
    return [AggregateItem(amount=Decimal(a), currency=c) for a, c in pairs]


def test_one_conversion_per_distinct_currency(cache):
    provider = MockProvider("P1", 1, {("USD", "INR"): "83", ("EUR", "INR"): "90"})
    counting = CountingEngine(ConversionEngine([provider, FallbackProvider()], cache))
    result = DashboardAggregator(counting).aggregate(
        _items(("10", "USD"), ("5", "USD"), ("2.5", "USD"), ("100", "EUR"), ("1000", "INR")),
        "inr",
    )
    assert sorted(r.entered_currency for r in counting.requests) == ["EUR", "USD"]
    assert result.primary_currency == "INR"
    # 17.5 * 83 + 100 * 90 + 1000
    assert result.total == Decimal("11452.50")
    usd = next(b for b in result.breakdown if b.currency == "USD")
    assert usd.count == 3
    assert usd.amount == Decimal("17.50")
    assert usd.converted_amount == Decimal("1452.50")
    assert usd.rate == Decimal("83")
    inr = next(b for b in result.breakdown if b.currency == "INR")
    assert inr.source == "same_currency"
    assert sum(b.percentage for b in result.breakdown) == pytest.approx(Decimal("100"), abs=Decimal("0.02"))


def test_empty_items(engine):
    result = DashboardAggregator(engine).aggregate([], "USD")
    assert result.total == Decimal("0.00")
    assert result.breakdown == []


def test_unconvertible_group_fails_the_aggregate(cache):
    engine = ConversionEngine([MockProvider("P1", 1, fail=True), FallbackProvider()], cache)
    with pytest.raises(NoProviderAvailable):
        DashboardAggregator(engine).aggregate(_items(("1", "XAU"), ("5", "USD")), "USD")


def test_restricted_primary_rejected(engine):
    with pytest.raises(RestrictedCurrency):
        DashboardAggregator(engine).aggregate(_items(("1", "USD")), "SYP")
