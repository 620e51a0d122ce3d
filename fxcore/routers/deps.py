import re

from fastapi import Depends, HTTPException, Request

from fxcore.core.config import Settings
from fxcore.models.rates import CURRENCY_PATTERN
from fxcore.services import currency
from fxcore.services.aggregation import DashboardAggregator
from fxcore.services.container import FXServices
from fxcore.services.rates.cache_service import RateCache
from fxcore.services.rates.conversion import ConversionEngine


def get_services(request: Request) -> FXServices:
    return request.app.state.fx


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_engine(services: FXServices = Depends(get_services)) -> ConversionEngine:
    return services.engine


def get_cache(services: FXServices = Depends(get_services)) -> RateCache:
    return services.cache


def get_aggregator(services: FXServices = Depends(get_services)) -> DashboardAggregator:
    return services.aggregator


def require_manual_rates_enabled(settings: Settings = Depends(get_app_settings)) -> bool:
    if not settings.enable_manual_rates:
        raise HTTPException(status_code=403, detail="manual rate feature disabled")
    return True


def parse_code(code: str) -> str:
    code = currency.normalize_code(code)
    if not re.match(CURRENCY_PATTERN, code):
        raise HTTPException(status_code=400, detail=f"invalid currency code '{code}'")
    return code
