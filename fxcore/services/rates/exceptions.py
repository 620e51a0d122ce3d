"""Error taxonomy for rate acquisition and conversion.

Only ``RestrictedCurrency`` and ``NoProviderAvailable`` ever reach callers of
``ConversionEngine.convert``. ``ProviderError`` is consumed by the failover
loop and ``PersistenceError`` by the rate cache.
"""

from __future__ import annotations

from typing import List, Tuple


class CurrencyError(Exception):
    """Base class for conversion subsystem errors."""


class RestrictedCurrency(CurrencyError):
    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(
            f"Currency {currency} is restricted and cannot be converted"
        )


class ProviderError(CurrencyError):
    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class NoProviderAvailable(CurrencyError):
    def __init__(
        self,
        from_currency: str,
        to_currency: str,
        attempts: List[Tuple[str, str]] | None = None,
    ):
        self.from_currency = from_currency
        self.to_currency = to_currency
        # (provider name, reason) for every provider tried
        self.attempts = attempts or []
        super().__init__(
            f"No rate providers available for {from_currency}-{to_currency}"
        )


class PersistenceError(CurrencyError):
    """Rate store read/write failure."""
