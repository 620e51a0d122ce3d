import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from .core.config import get_settings, Settings
from .core.logging import init_logging, request_context_middleware
from .core import errors
from .routers import conversion, currencies, health, rates
from .services.container import FXServices, build_services
from .services.rates.base import RateProvider
from .services.rates.exceptions import NoProviderAvailable, RestrictedCurrency

logger = logging.getLogger("fxcore")


async def _sweep_periodically(services: FXServices, interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await run_in_threadpool(services.cache.sweep_expired)
        except Exception:
            logger.exception("periodic rate sweep failed")


def create_app(
    settings_override: Settings | None = None,
    providers: Optional[List[RateProvider]] = None,
) -> FastAPI:
    """Application factory and composition root.

    settings_override: pass an already constructed Settings instance for tests
    to isolate environment (e.g., temp DB). Falls back to cached get_settings().
    providers: explicit provider chain; defaults to the one derived from the
    configured API keys.
    """
    settings = settings_override or get_settings()
    if settings.db_path is None:
        settings.init_post_load()
    init_logging(debug=settings.debug)

    try:
        services = build_services(settings, providers)
    except Exception:
        logger.exception("failed to initialise rate services on startup")
        raise

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if settings.rates_sweep_interval_seconds > 0:
            task = asyncio.create_task(
                _sweep_periodically(services, settings.rates_sweep_interval_seconds)
            )
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            services.cache.clear()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.fx = services

    # Middleware (request id / structured logging)
    app.middleware("http")(request_context_middleware)

    # Error handlers
    app.add_exception_handler(StarletteHTTPException, errors.http_error_handler)
    app.add_exception_handler(RequestValidationError, errors.validation_error_handler)
    app.add_exception_handler(RestrictedCurrency, errors.restricted_currency_handler)
    app.add_exception_handler(NoProviderAvailable, errors.rate_unavailable_handler)
    app.add_exception_handler(Exception, errors.server_error_handler)

    # Routers
    app.include_router(health.router)
    app.include_router(conversion.router)
    app.include_router(currencies.router)
    app.include_router(rates.router)

    @app.get("/")
    async def root():
        return {"message": settings.app_name, "version": settings.version}

    return app
