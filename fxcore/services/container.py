"""Composition root for the conversion core.

One ``FXServices`` bundle is built per application at startup and owned by it
(``app.state.fx``); there is no module-level singleton.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from fxcore.core.config import Settings
from fxcore.db.migrate import apply_migrations
from fxcore.services.aggregation import DashboardAggregator
from fxcore.services.rates.base import RateProvider
from fxcore.services.rates.cache_service import RateCache
from fxcore.services.rates.conversion import ConversionEngine
from fxcore.services.rates.providers import make_rate_providers
from fxcore.services.rates.store import SQLiteRateStore


@dataclass
class FXServices:
    store: SQLiteRateStore
    cache: RateCache
    engine: ConversionEngine
    aggregator: DashboardAggregator


def build_services(
    settings: Settings, providers: Optional[List[RateProvider]] = None
) -> FXServices:
    """Wire store -> cache -> engine -> aggregator from settings.

    ``providers`` replaces the key-derived chain (tests, scripts).
    """
    apply_migrations(settings.db_path)  # type: ignore[arg-type]
    store = SQLiteRateStore(settings.db_path)  # type: ignore[arg-type]
    cache = RateCache(
        store,
        ttl=settings.cache_ttl,
        stable_ttl=settings.stable_ttl,
        stale_threshold=settings.stale_threshold,
        retention=settings.retention,
    )
    chain = providers if providers is not None else make_rate_providers(settings)
    engine = ConversionEngine(
        chain, cache, default_fee_percentage=settings.default_fee_percentage
    )
    return FXServices(
        store=store,
        cache=cache,
        engine=engine,
        aggregator=DashboardAggregator(engine),
    )
