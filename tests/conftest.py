from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Tuple

import pytest

from fxcore.services.rates.base import RateProvider
from fxcore.services.rates.cache_service import RateCache
from fxcore.services.rates.conversion import ConversionEngine
from fxcore.services.rates.exceptions import ProviderError
from fxcore.services.rates.providers import FallbackProvider
from fxcore.services.rates.store import SQLiteRateStore
from fxcore.db.migrate import apply_migrations

T0 = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class MockProvider(RateProvider):
    """Table-backed provider that records every call."""

    def __init__(
        self,
        name: str,
        priority: int,
        rates: Dict[Tuple[str, str], str] | None = None,
        *,
        available: bool = True,
        fail: bool = False,
    ):
        self.name = name
        self.priority = priority
        self.rates = {k: Decimal(v) for k, v in (rates or {}).items()}
        self.available = available
        self.fail = fail
        self.availability_calls = 0
        self.rate_calls = 0

    @property
    def calls(self) -> int:
        return self.availability_calls + self.rate_calls

    def is_available(self) -> bool:
        self.availability_calls += 1
        return self.available

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        self.rate_calls += 1
        if self.fail:
            raise ProviderError(self.name, "boom")
        try:
            return self.rates[(from_currency, to_currency)]
        except KeyError:
            raise ProviderError(self.name, f"no rate for {to_currency}") from None

    def get_all_rates(self, base: str) -> Dict[str, Decimal]:
        self.rate_calls += 1
        if self.fail:
            raise ProviderError(self.name, "boom")
        return {to: r for (frm, to), r in self.rates.items() if frm == base}


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store(tmp_path):
    db_path = tmp_path / "rates.sqlite3"
    apply_migrations(db_path)
    return SQLiteRateStore(db_path)


@pytest.fixture
def cache(store, clock):
    return RateCache(store, clock=clock)


@pytest.fixture
def usd_inr_provider():
    return MockProvider("Primary", 1, {("USD", "INR"): "83.0", ("USD", "EUR"): "0.92"})


@pytest.fixture
def engine(usd_inr_provider, cache):
    return ConversionEngine([usd_inr_provider, FallbackProvider()], cache)
