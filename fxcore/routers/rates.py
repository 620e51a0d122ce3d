from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException

from fxcore.models.rates import ExchangeRate, ManualRatePayload
from fxcore.services.rates.cache_service import RateCache
from fxcore.services.rates.conversion import ConversionEngine
from .deps import get_cache, get_engine, parse_code, require_manual_rates_enabled

"""Rates router: cache inspection, maintenance and manual rates.

Manual-rate endpoints (guarded by settings.enable_manual_rates):
    - GET /rates/manual                         -> list live manual rates
    - POST /rates/manual                        -> set {from, to, rate, ttl_seconds}
    - DELETE /rates/manual/{from}/{to}          -> clear manual rate

Manual rates carry source 'manual' and are preferred over provider fetches
until their validity window ends.
"""

router = APIRouter(prefix="/rates", tags=["rates"])


@router.get("/cached", summary="Rates currently held in memory")
def cached_rates(cache: RateCache = Depends(get_cache)) -> List[ExchangeRate]:
    return cache.snapshot()


@router.get("/stats", summary="Cache statistics and provider chain")
def rate_stats(engine: ConversionEngine = Depends(get_engine)) -> Dict[str, Any]:
    return engine.statistics()


@router.get("/{from_currency}/{to_currency}", summary="Resolve a single rate")
def get_rate(
    from_currency: str,
    to_currency: str,
    engine: ConversionEngine = Depends(get_engine),
) -> ExchangeRate:
    return engine.get_exchange_rate(parse_code(from_currency), parse_code(to_currency))


@router.post("/sweep", summary="Delete rates past the retention window")
def sweep(cache: RateCache = Depends(get_cache)):
    return {"removed": cache.sweep_expired()}


@router.post("/refresh/{base}", summary="Bulk-load rates for a base currency")
def refresh(base: str, engine: ConversionEngine = Depends(get_engine)):
    base = parse_code(base)
    provider, count = engine.refresh_rates(base)
    return {"base": base, "provider": provider, "cached": count}


@router.get("/manual", summary="List active manual rates")
def list_manual(
    _: bool = Depends(require_manual_rates_enabled),
    cache: RateCache = Depends(get_cache),
) -> List[ExchangeRate]:
    return cache.list_manual_rates()


@router.post("/manual", summary="Set a manual rate")
def set_manual(
    payload: ManualRatePayload,
    _: bool = Depends(require_manual_rates_enabled),
    cache: RateCache = Depends(get_cache),
):
    try:
        record = cache.set_manual_rate(
            payload.from_currency, payload.to_currency, payload.rate, payload.ttl_seconds
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"status": "ok", "rate": record}


@router.delete("/manual/{from_currency}/{to_currency}", summary="Clear a manual rate")
def clear_manual(
    from_currency: str,
    to_currency: str,
    _: bool = Depends(require_manual_rates_enabled),
    cache: RateCache = Depends(get_cache),
):
    from_currency, to_currency = parse_code(from_currency), parse_code(to_currency)
    if not cache.clear_manual_rate(from_currency, to_currency):
        raise HTTPException(status_code=404, detail="manual rate not found")
    return {
        "status": "deleted",
        "from_currency": from_currency,
        "to_currency": to_currency,
    }
