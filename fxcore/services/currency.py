"""Currency precision, symbol and restriction lookups."""

from __future__ import annotations

from decimal import Decimal
from typing import List

from fxcore.models.constants import (
    CURRENCY_PRECISION,
    CURRENCY_SYMBOLS,
    DEFAULT_PRECISION,
    DEFAULT_SYMBOL,
    RESTRICTED_CURRENCIES,
    STABLE_CURRENCIES,
)
from fxcore.services.money import Number, quantize
from fxcore.services.rates.exceptions import RestrictedCurrency


def normalize_code(code: str) -> str:
    return code.strip().upper()


def get_currency_precision(code: str) -> int:
    return CURRENCY_PRECISION.get(normalize_code(code), DEFAULT_PRECISION)


def get_currency_symbol(code: str) -> str:
    return CURRENCY_SYMBOLS.get(normalize_code(code), DEFAULT_SYMBOL)


def is_currency_restricted(code: str) -> bool:
    return normalize_code(code) in RESTRICTED_CURRENCIES


def is_stable_pair(from_currency: str, to_currency: str) -> bool:
    return (
        normalize_code(from_currency) in STABLE_CURRENCIES
        and normalize_code(to_currency) in STABLE_CURRENCIES
    )


def ensure_not_restricted(*codes: str) -> None:
    for code in codes:
        if is_currency_restricted(code):
            raise RestrictedCurrency(normalize_code(code))


def round_for_currency(amount: Number, code: str) -> Decimal:
    return quantize(amount, get_currency_precision(code))


def format_amount(amount: Number, code: str) -> str:
    """Render ``symbol + amount`` at the currency's minor-unit precision.

    >>> format_amount(Decimal("1234.5"), "INR")
    '₹1234.50'
    """
    return f"{get_currency_symbol(code)}{round_for_currency(amount, code):f}"


def list_currencies() -> List[str]:
    return sorted(c for c in CURRENCY_PRECISION if c not in RESTRICTED_CURRENCIES)
