from __future__ import annotations

"""Conversion engine.

Responsibilities:
    - Reject restricted currencies before any cache or network access.
    - Resolve rates: identity short-circuit, then cache, then the provider
      failover chain (ascending priority, Fallback last).
    - Compute account and primary amounts independently from the entered
      amount at working precision; round half-up only on output.
    - Apply optional fees and stamp every result with a unique audit id.

A missing rate is always an error (``NoProviderAvailable``), never a silent
rate of 1; the only rate-1 results come from same-currency lookups.
"""

import logging
import time
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from fxcore.models.constants import SAME_CURRENCY_SOURCE
from fxcore.models.rates import ConversionRequest, ConversionResult, ExchangeRate
from fxcore.services import currency
from fxcore.services.money import ONE, ZERO, Number, add, multiply, to_decimal
from .base import RateProvider
from .cache_service import RateCache, utcnow
from .exceptions import NoProviderAvailable, ProviderError
from .providers import sort_providers

logger = logging.getLogger("fxcore.rates.conversion")

ALL_SAME = "all_same"
ENTERED_EQUALS_ACCOUNT = "entered_equals_account"
ENTERED_EQUALS_PRIMARY = "entered_equals_primary"
ACCOUNT_EQUALS_PRIMARY = "account_equals_primary"
ALL_DIFFERENT = "all_different"
UNKNOWN = "unknown"

IDENTITY_TTL = timedelta(hours=1)


def classify_conversion_case(entered: str, account: str, primary: str) -> str:
    if entered == account and account == primary:
        return ALL_SAME
    if entered == account and account != primary:
        return ENTERED_EQUALS_ACCOUNT
    if entered == primary and account != primary:
        return ENTERED_EQUALS_PRIMARY
    if entered != account and account == primary:
        return ACCOUNT_EQUALS_PRIMARY
    if entered != account and account != primary and entered != primary:
        return ALL_DIFFERENT
    return UNKNOWN


def make_audit_id(context: str) -> str:
    return f"{context}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _at_least_minor_units(amount: Decimal, code: str) -> Decimal:
    """Pad to the currency precision without discarding extra entered digits."""
    if -amount.as_tuple().exponent >= currency.get_currency_precision(code):
        return amount
    return currency.round_for_currency(amount, code)


class ConversionEngine:
    def __init__(
        self,
        providers: Iterable[RateProvider],
        cache: RateCache,
        *,
        default_fee_percentage: Number = Decimal("0.0025"),
    ):
        self._providers: List[RateProvider] = sort_providers(list(providers))
        self._cache = cache
        self.default_fee_percentage = to_decimal(default_fee_percentage)

    @property
    def providers(self) -> List[RateProvider]:
        return list(self._providers)

    @property
    def cache(self) -> RateCache:
        return self._cache

    # Table lookups (inbound interface) ------------------------
    get_currency_precision = staticmethod(currency.get_currency_precision)
    get_currency_symbol = staticmethod(currency.get_currency_symbol)
    is_currency_restricted = staticmethod(currency.is_currency_restricted)
    format_amount = staticmethod(currency.format_amount)

    # Rate resolution -------------------------------------------
    def _identity(self, code: str) -> ExchangeRate:
        return ExchangeRate(
            from_currency=code,
            to_currency=code,
            rate=ONE,
            source=SAME_CURRENCY_SOURCE,
            timestamp=utcnow(),
            ttl=IDENTITY_TTL,
        )

    def _fetch_from_chain(self, from_currency: str, to_currency: str) -> ExchangeRate:
        attempts: List[Tuple[str, str]] = []
        for provider in self._providers:
            if provider.is_fallback:
                degraded = self._cache.get(from_currency, to_currency, allow_expired=True)
                if degraded is not None:
                    logger.warning(
                        "network providers failed for %s-%s; serving expired %s rate",
                        from_currency,
                        to_currency,
                        degraded.source,
                    )
                    return degraded.model_copy(update={"from_expired_cache": True})
            if not provider.is_available():
                attempts.append((provider.name, "unavailable"))
                logger.warning("rate provider %s unavailable", provider.name)
                continue
            try:
                value = provider.get_rate(from_currency, to_currency)
            except ProviderError as e:
                attempts.append((provider.name, str(e)))
                logger.warning(
                    "rate provider %s failed for %s-%s: %s",
                    provider.name,
                    from_currency,
                    to_currency,
                    e,
                    extra={"provider": provider.name, "pair": f"{from_currency}-{to_currency}"},
                )
                continue
            record = ExchangeRate(
                from_currency=from_currency,
                to_currency=to_currency,
                rate=value,
                source=provider.name,
                timestamp=self._cache.now(),
                ttl=self._cache.ttl_for(from_currency, to_currency),
            )
            self._cache.put(record)
            return record
        raise NoProviderAvailable(from_currency, to_currency, attempts)

    def get_exchange_rate(self, from_currency: str, to_currency: str) -> ExchangeRate:
        from_currency = currency.normalize_code(from_currency)
        to_currency = currency.normalize_code(to_currency)
        currency.ensure_not_restricted(from_currency, to_currency)
        if from_currency == to_currency:
            return self._identity(from_currency)
        cached = self._cache.get(from_currency, to_currency)
        if cached is not None:
            return cached
        return self._fetch_from_chain(from_currency, to_currency)

    def refresh_rates(self, base: str) -> Tuple[str, int]:
        """Bulk-load every rate quoted against ``base`` from the first working provider.

        Returns ``(provider name, rates cached)``.
        """
        base = currency.normalize_code(base)
        currency.ensure_not_restricted(base)
        attempts: List[Tuple[str, str]] = []
        for provider in self._providers:
            if not provider.is_available():
                attempts.append((provider.name, "unavailable"))
                continue
            try:
                rates = provider.get_all_rates(base)
            except ProviderError as e:
                attempts.append((provider.name, str(e)))
                logger.warning("bulk refresh via %s failed: %s", provider.name, e)
                continue
            now = self._cache.now()
            stored = 0
            for code, value in rates.items():
                if code == base or currency.is_currency_restricted(code):
                    continue
                self._cache.put(
                    ExchangeRate(
                        from_currency=base,
                        to_currency=code,
                        rate=value,
                        source=provider.name,
                        timestamp=now,
                        ttl=self._cache.ttl_for(base, code),
                    )
                )
                stored += 1
            logger.info("refreshed %d %s rates via %s", stored, base, provider.name)
            return provider.name, stored
        raise NoProviderAvailable(base, "*", attempts)

    # Conversion ------------------------------------------------
    def convert(self, request: ConversionRequest) -> ConversionResult:
        entered = request.entered_currency
        account = request.account_currency
        primary = request.primary_currency
        currency.ensure_not_restricted(entered, account, primary)

        case = classify_conversion_case(entered, account, primary)
        account_rate = self.get_exchange_rate(entered, account)
        primary_rate = self.get_exchange_rate(entered, primary)

        amount = to_decimal(request.amount)
        account_full = multiply(amount, account_rate.rate)
        primary_full = multiply(amount, primary_rate.rate)

        if request.include_fees:
            fee_pct = request.fee_percentage
            if fee_pct is None:
                fee_pct = self.default_fee_percentage
            fee_full = multiply(primary_full, fee_pct)
            conversion_fee = currency.round_for_currency(fee_full, primary)
        else:
            fee_full = ZERO
            conversion_fee = ZERO
        total_cost = currency.round_for_currency(add(primary_full, fee_full), primary)

        effective = account_rate if entered != account else primary_rate
        audit_id = make_audit_id(request.audit_context)
        logger.info(
            "conversion %s: %s %s -> %s/%s case=%s source=%s",
            audit_id,
            amount,
            entered,
            account,
            primary,
            case,
            effective.source,
            extra={"audit_id": audit_id, "provider": effective.source},
        )
        return ConversionResult(
            entered_amount=_at_least_minor_units(amount, entered),
            entered_currency=entered,
            entered_symbol=currency.get_currency_symbol(entered),
            account_amount=currency.round_for_currency(account_full, account),
            account_currency=account,
            account_symbol=currency.get_currency_symbol(account),
            primary_amount=currency.round_for_currency(primary_full, primary),
            primary_currency=primary,
            primary_symbol=currency.get_currency_symbol(primary),
            exchange_rate=effective.rate,
            exchange_rate_used=effective.rate,
            conversion_source=effective.source,
            conversion_timestamp=effective.timestamp,
            conversion_case=case,
            conversion_fee=conversion_fee,
            total_cost=total_cost,
            rate_record=effective,
            account_rate_record=account_rate,
            primary_rate_record=primary_rate,
            audit_id=audit_id,
        )

    def convert_amount(
        self, amount: Number, from_currency: str, to_currency: str
    ) -> Decimal:
        """Shorthand for a single-leg conversion rounded to ``to_currency``."""
        rate = self.get_exchange_rate(from_currency, to_currency)
        return currency.round_for_currency(multiply(amount, rate.rate), to_currency)

    def statistics(self) -> Dict[str, object]:
        stats = self._cache.statistics()
        stats["chain"] = [p.name for p in self._providers]
        return stats

