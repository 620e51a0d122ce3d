from __future__ import annotations

from decimal import Decimal
from typing import List

from fastapi import APIRouter, HTTPException, Query

from fxcore.models.rates import CurrencyInfo
from fxcore.services import currency
from .deps import parse_code

router = APIRouter(prefix="/currencies", tags=["currencies"])


@router.get("", summary="Currencies that may be converted")
def list_currencies() -> List[str]:
    return currency.list_currencies()


@router.get("/{code}", response_model=CurrencyInfo, summary="Precision, symbol, policy")
def currency_info(code: str) -> CurrencyInfo:
    code = parse_code(code)
    known = code in currency.CURRENCY_PRECISION
    return CurrencyInfo(
        code=code,
        precision=currency.get_currency_precision(code),
        symbol=currency.get_currency_symbol(code),
        restricted=currency.is_currency_restricted(code),
        stable=currency.is_stable_pair(code, "USD"),
        note=None if known else "unknown currency; default precision and symbol",
    )


@router.get("/{code}/format", summary="Format an amount for display")
def format_amount(code: str, amount: Decimal = Query(...)):
    code = parse_code(code)
    if not amount.is_finite():
        raise HTTPException(status_code=400, detail="amount must be finite")
    return {"currency": code, "formatted": currency.format_amount(amount, code)}
