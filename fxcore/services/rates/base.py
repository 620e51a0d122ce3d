from __future__ import annotations

"""Rate provider abstraction.

Every external rate source implements ``RateProvider``. Providers are pure
fetchers: they know nothing about caching, failover or rounding. The engine
owns an ordered list of them (ascending ``priority``) and walks it per cache
miss.
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Mapping

from fxcore.services.money import to_decimal
from .exceptions import ProviderError


class RateProvider(ABC):
    name: str = "base"
    priority: int = 100
    is_fallback: bool = False

    @abstractmethod
    def is_available(self) -> bool:
        """Cheap, time-bounded liveness probe. Never raises."""
        raise NotImplementedError

    @abstractmethod
    def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        """Units of ``to_currency`` per 1 ``from_currency``.

        Raises ProviderError on non-2xx, timeout or malformed payload.
        """
        raise NotImplementedError

    @abstractmethod
    def get_all_rates(self, base: str) -> Dict[str, Decimal]:
        """Mapping currency -> units per 1 ``base``. Same failure modes as get_rate."""
        raise NotImplementedError

    # Helpers ---------------------------------------------------
    def _error(self, message: str) -> ProviderError:
        return ProviderError(self.name, message)

    def _parse_rates(self, payload: Mapping[str, Any]) -> Dict[str, Decimal]:
        """Normalize a ``{success, rates, base, date}`` payload to Decimal rates."""
        if payload.get("success", True) is False:
            err = payload.get("error")
            info = err.get("info") if isinstance(err, Mapping) else err
            raise self._error(str(info or "unsuccessful response"))
        rates = payload.get("rates")
        if not isinstance(rates, Mapping) or not rates:
            raise self._error("payload has no rates")
        parsed: Dict[str, Decimal] = {}
        for code, value in rates.items():
            try:
                d = to_decimal(str(value))
            except ValueError as e:
                raise self._error(f"malformed rate for {code}: {value!r}") from e
            if d > 0:
                parsed[str(code).upper()] = d
        return parsed

    def _pick(self, rates: Mapping[str, Decimal], currency: str) -> Decimal:
        rate = rates.get(currency)
        if rate is None:
            raise self._error(f"no rate for {currency}")
        return rate

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"<{type(self).__name__} name={self.name!r} priority={self.priority}>"
