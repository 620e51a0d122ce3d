from __future__ import annotations

"""Concrete rate providers and the provider-chain factory.

Network providers are only registered when their API key is configured;
``FallbackProvider`` is always registered and always sorts last.
"""
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, Dict, List, Mapping, Optional

from fxcore.services.http_client import HttpError, get_json, probe
from fxcore.services.money import ONE, divide, reciprocal
from .base import RateProvider

if TYPE_CHECKING:  # pragma: no cover
    from fxcore.core.config import Settings

logger = logging.getLogger("fxcore.rates.providers")

JsonFetcher = Callable[..., Dict]
Prober = Callable[..., bool]


class HTTPRateProvider(RateProvider):
    """Shared plumbing for JSON-over-HTTP providers.

    ``fetch_json`` / ``probe_url`` are injectable so tests can stub the wire.
    """

    base_url: str = ""

    def __init__(
        self,
        api_key: str,
        *,
        availability_timeout: float = 5.0,
        fetch_timeout: float = 15.0,
        retries: int = 0,
        fetch_json: JsonFetcher = get_json,
        probe_url: Prober = probe,
    ):
        self.api_key = api_key
        self.availability_timeout = availability_timeout
        self.fetch_timeout = fetch_timeout
        self.retries = retries
        self._fetch_json = fetch_json
        self._probe = probe_url

    def _probe_target(self) -> tuple[str, Dict[str, str]]:
        raise NotImplementedError

    def is_available(self) -> bool:
        url, params = self._probe_target()
        return self._probe(url, params=params, timeout=self.availability_timeout)

    def _fetch(self, url: str, params: Mapping[str, str]) -> Dict[str, Decimal]:
        try:
            payload = self._fetch_json(
                url, params=params, timeout=self.fetch_timeout, retries=self.retries
            )
        except HttpError as e:
            raise self._error(str(e)) from e
        return self._parse_rates(payload)


class ExchangeRateAPIProvider(HTTPRateProvider):
    name = "ExchangeRate-API"
    priority = 1
    base_url = "https://api.exchangerate-api.com/v4/latest"

    def _probe_target(self) -> tuple[str, Dict[str, str]]:
        return f"{self.base_url}/USD", {"access_key": self.api_key}

    def get_all_rates(self, base: str) -> Dict[str, Decimal]:
        return self._fetch(f"{self.base_url}/{base}", {"access_key": self.api_key})

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        return self._pick(self.get_all_rates(from_currency), to_currency)


class FixerIOProvider(HTTPRateProvider):
    name = "Fixer.io"
    priority = 2
    base_url = "http://data.fixer.io/api/latest"

    def _probe_target(self) -> tuple[str, Dict[str, str]]:
        return self.base_url, {"access_key": self.api_key}

    def get_all_rates(self, base: str) -> Dict[str, Decimal]:
        return self._fetch(self.base_url, {"access_key": self.api_key, "base": base})

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        rates = self._fetch(
            self.base_url,
            {"access_key": self.api_key, "base": from_currency, "symbols": to_currency},
        )
        return self._pick(rates, to_currency)


class OpenExchangeProvider(HTTPRateProvider):
    """openexchangerates.org; the free tier only serves USD-based rates, so
    other bases are derived by cross division."""

    name = "OpenExchange"
    priority = 3
    base_url = "https://openexchangerates.org/api/latest.json"

    def _probe_target(self) -> tuple[str, Dict[str, str]]:
        return self.base_url, {"app_id": self.api_key}

    def _usd_rates(self) -> Dict[str, Decimal]:
        rates = self._fetch(self.base_url, {"app_id": self.api_key})
        rates.setdefault("USD", ONE)
        return rates

    def get_all_rates(self, base: str) -> Dict[str, Decimal]:
        usd = self._usd_rates()
        base_rate = self._pick(usd, base)
        return {code: divide(rate, base_rate) for code, rate in usd.items()}

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        usd = self._usd_rates()
        return divide(self._pick(usd, to_currency), self._pick(usd, from_currency))


# Static snapshot, one entry per pair. Source rows: USD seed snapshot of the
# exchange_rates table; EUR/GBP rows kept consistent with it.
FALLBACK_PIVOT = "USD"
FALLBACK_RATES: Dict[str, Dict[str, Decimal]] = {
    "USD": {
        code: Decimal(value)
        for code, value in {
            "EUR": "0.92", "GBP": "0.79", "INR": "83.45", "CNY": "7.24",
            "AUD": "1.53", "NZD": "1.65", "JPY": "150.0", "CAD": "1.36",
            "SGD": "1.35", "HKD": "7.82", "KRW": "1350", "AED": "3.67",
            "CHF": "0.88", "BRL": "5.15", "RUB": "92.5", "IDR": "15650",
            "MYR": "4.75", "THB": "36.5", "VND": "24500", "NPR": "133.5",
            "MXN": "17.1", "ZAR": "18.6", "SAR": "3.75", "PHP": "56.2",
            "BDT": "110.0", "PKR": "280.0", "LKR": "300.0", "SEK": "10.5",
            "NOK": "10.6", "DKK": "6.87", "PLN": "3.98", "TRY": "32.0",
            "TWD": "31.8", "QAR": "3.64", "KWD": "0.307", "BHD": "0.376",
        }.items()
    },
    "EUR": {
        code: Decimal(value)
        for code, value in {
            "USD": "1.087", "GBP": "0.859", "INR": "90.71", "JPY": "163.0",
            "CHF": "0.957", "CNY": "7.87", "SGD": "1.467",
        }.items()
    },
    "GBP": {
        code: Decimal(value)
        for code, value in {
            "USD": "1.266", "EUR": "1.165", "INR": "105.63", "JPY": "189.9",
            "CHF": "1.114", "CNY": "9.16", "SGD": "1.709",
        }.items()
    },
}


class FallbackProvider(RateProvider):
    name = "Fallback"
    priority = 999
    is_fallback = True

    def __init__(self, table: Optional[Mapping[str, Mapping[str, Decimal]]] = None):
        self._table = table if table is not None else FALLBACK_RATES

    def is_available(self) -> bool:
        return True

    def _pivot_rate(self, currency: str) -> Decimal:
        if currency == FALLBACK_PIVOT:
            return ONE
        pivot = self._table.get(FALLBACK_PIVOT, {})
        if currency in pivot:
            return pivot[currency]
        # pivot -> X unknown, but X -> pivot may be listed directly
        direct = self._table.get(currency, {}).get(FALLBACK_PIVOT)
        if direct is not None:
            return reciprocal(direct)
        raise self._error(f"no static rate for {currency}")

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        if from_currency == to_currency:
            return ONE
        direct = self._table.get(from_currency, {}).get(to_currency)
        if direct is not None:
            return direct
        return divide(self._pivot_rate(to_currency), self._pivot_rate(from_currency))

    def get_all_rates(self, base: str) -> Dict[str, Decimal]:
        codes = set(self._table.get(FALLBACK_PIVOT, {})) | {FALLBACK_PIVOT}
        rates: Dict[str, Decimal] = {}
        for code in sorted(codes - {base}):
            rates[code] = self.get_rate(base, code)
        return rates


_PROVIDER_REGISTRY = {
    "exchange_rate_api_key": ExchangeRateAPIProvider,
    "fixer_io_api_key": FixerIOProvider,
    "open_exchange_api_key": OpenExchangeProvider,
}


def sort_providers(providers: List[RateProvider]) -> List[RateProvider]:
    return sorted(providers, key=lambda p: p.priority)


def make_rate_providers(settings: "Settings") -> List[RateProvider]:
    """Build the failover chain from configured API keys (missing key = skipped)."""
    providers: List[RateProvider] = []
    for key_field, cls in _PROVIDER_REGISTRY.items():
        api_key = getattr(settings, key_field, None)
        if not api_key:
            logger.info("rate provider %s disabled (no API key)", cls.name)
            continue
        providers.append(
            cls(
                api_key,
                availability_timeout=settings.availability_timeout_seconds,
                fetch_timeout=settings.fetch_timeout_seconds,
                retries=settings.http_retries,
            )
        )
    providers.append(FallbackProvider())
    return sort_providers(providers)
