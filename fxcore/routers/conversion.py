from __future__ import annotations

from fastapi import APIRouter, Depends

from fxcore.models.rates import (
    AggregateRequest,
    AggregateResult,
    ConversionRequest,
    ConversionResult,
)
from fxcore.services.aggregation import DashboardAggregator
from fxcore.services.rates.conversion import ConversionEngine
from .deps import get_aggregator, get_engine

"""Conversion router.

Endpoints are sync so FastAPI runs them in its threadpool; provider calls
block on network I/O and many conversions may be in flight at once.
"""

router = APIRouter(tags=["conversion"])


@router.post("/convert", response_model=ConversionResult, summary="Convert an amount")
def convert(
    payload: ConversionRequest, engine: ConversionEngine = Depends(get_engine)
) -> ConversionResult:
    return engine.convert(payload)


@router.post(
    "/aggregate",
    response_model=AggregateResult,
    summary="Total holdings in the primary currency",
)
def aggregate(
    payload: AggregateRequest,
    aggregator: DashboardAggregator = Depends(get_aggregator),
) -> AggregateResult:
    return aggregator.aggregate(payload.items, payload.primary_currency)
