"""Money / rounding helpers.

Centralized so conversion, fees, aggregation and formatting share identical
rounding semantics: arithmetic runs in ``WORKING_CONTEXT`` (28 significant
digits) and only final amounts are quantized, half-up, to the currency's
minor unit.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation, localcontext
from typing import Union

Number = Union[Decimal, int, float, str]

WORKING_PRECISION = 28
WORKING_CONTEXT = Context(prec=WORKING_PRECISION, rounding=ROUND_HALF_UP)
ZERO = Decimal(0)
ONE = Decimal(1)


def to_decimal(value: Number) -> Decimal:
    """Coerce to Decimal, going through ``str`` for floats to avoid binary noise."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        try:
            result = Decimal(value)
        except InvalidOperation as e:
            raise ValueError(f"not a decimal amount: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"amount must be finite, got {value!r}")
    return result


def multiply(a: Number, b: Number) -> Decimal:
    with localcontext(WORKING_CONTEXT):
        return to_decimal(a) * to_decimal(b)


def add(a: Number, b: Number) -> Decimal:
    with localcontext(WORKING_CONTEXT):
        return to_decimal(a) + to_decimal(b)


def reciprocal(value: Number) -> Decimal:
    with localcontext(WORKING_CONTEXT):
        d = to_decimal(value)
        if d <= 0:
            raise ValueError("reciprocal requires a positive value")
        return ONE / d


def divide(a: Number, b: Number) -> Decimal:
    with localcontext(WORKING_CONTEXT):
        return to_decimal(a) / to_decimal(b)


def quantize(value: Number, places: int) -> Decimal:
    """Round half-up to ``places`` decimals.

    The context grows with the integer part so amounts past the working
    precision still quantize instead of raising ``InvalidOperation``.
    """
    d = to_decimal(value)
    exponent = ONE.scaleb(-places)
    with localcontext(WORKING_CONTEXT) as ctx:
        ctx.prec = max(WORKING_PRECISION, d.adjusted() + places + 2)
        return d.quantize(exponent, rounding=ROUND_HALF_UP)


def round2(value: Number) -> Decimal:
    return quantize(value, 2)
