"""Pydantic domain models for the currency conversion core."""

from .constants import (
    CURRENCY_PRECISION,
    CURRENCY_SYMBOLS,
    RESTRICTED_CURRENCIES,
    STABLE_CURRENCIES,
)  # re-export
from .rates import (
    AggregateItem,
    AggregateRequest,
    AggregateResult,
    ConversionRequest,
    ConversionResult,
    CurrencyBreakdown,
    CurrencyInfo,
    ExchangeRate,
    ManualRatePayload,
)

__all__ = [
    "CURRENCY_PRECISION",
    "CURRENCY_SYMBOLS",
    "RESTRICTED_CURRENCIES",
    "STABLE_CURRENCIES",
    "AggregateItem",
    "AggregateRequest",
    "AggregateResult",
    "ConversionRequest",
    "ConversionResult",
    "CurrencyBreakdown",
    "CurrencyInfo",
    "ExchangeRate",
    "ManualRatePayload",
]
