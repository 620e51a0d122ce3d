"""Dashboard aggregation helpers.

Groups holdings by currency and asks the conversion engine once per distinct
non-primary currency, so rate lookups scale with the number of currencies
rather than the number of line items. Conversion failures propagate; an
unconvertible group is never counted at face value.
"""

from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal
from typing import Dict, Iterable, List, Protocol, Tuple

from fxcore.models.constants import SAME_CURRENCY_SOURCE
from fxcore.models.rates import (
    AggregateItem,
    AggregateResult,
    ConversionRequest,
    ConversionResult,
    CurrencyBreakdown,
)
from fxcore.services.currency import (
    ensure_not_restricted,
    normalize_code,
    round_for_currency,
)
from fxcore.services.money import ONE, ZERO, add, divide, multiply, quantize


class SupportsConvert(Protocol):
    def convert(self, request: ConversionRequest) -> ConversionResult: ...


def _group(items: Iterable[AggregateItem]) -> "OrderedDict[str, List[Decimal]]":
    groups: "OrderedDict[str, List[Decimal]]" = OrderedDict()
    for item in items:
        groups.setdefault(normalize_code(item.currency), []).append(item.amount)
    return groups


class DashboardAggregator:
    def __init__(self, engine: SupportsConvert, audit_context: str = "dashboard"):
        self._engine = engine
        self._audit_context = audit_context

    def aggregate(
        self, items: Iterable[AggregateItem], primary_currency: str
    ) -> AggregateResult:
        primary = normalize_code(primary_currency)
        ensure_not_restricted(primary)
        converted: Dict[str, Tuple[int, Decimal, Decimal, Decimal, str]] = {}
        for code, amounts in _group(items).items():
            subtotal = ZERO
            for a in amounts:
                subtotal = add(subtotal, a)
            if code == primary:
                converted[code] = (len(amounts), subtotal, subtotal, ONE, SAME_CURRENCY_SOURCE)
                continue
            result = self._engine.convert(
                ConversionRequest(
                    amount=ONE,
                    entered_currency=code,
                    account_currency=primary,
                    primary_currency=primary,
                    audit_context=self._audit_context,
                )
            )
            rate = result.primary_rate_record.rate
            converted[code] = (
                len(amounts),
                subtotal,
                multiply(subtotal, rate),
                rate,
                result.primary_rate_record.source,
            )

        total = ZERO
        for _, _, value, _, _ in converted.values():
            total = add(total, value)

        breakdown = []
        for code, (count, subtotal, value, rate, source) in converted.items():
            pct = multiply(divide(value, total), 100) if total else ZERO
            breakdown.append(
                CurrencyBreakdown(
                    currency=code,
                    count=count,
                    amount=round_for_currency(subtotal, code),
                    converted_amount=round_for_currency(value, primary),
                    rate=rate,
                    source=source,
                    percentage=quantize(pct, 2),
                )
            )
        return AggregateResult(
            primary_currency=primary,
            total=round_for_currency(total, primary),
            breakdown=breakdown,
        )
