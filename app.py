"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the pricing, availability and recurrence services, registers
routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend.controllers.admin_controller import router as admin_router
from backend.controllers.booking_controller import router as booking_router
from backend.repository.data_repository import DataRepository
from backend.services.auth_service import AuthService
from backend.services.availability_service import AvailabilityService
from backend.services.pricing_service import PricingService
from backend.services.recurrence_service import RecurrenceService
from backend.services.reporting_service import ReportingService
from backend.services.settings_service import SettingsCache
from backend.utils.config import Settings, get_settings
from backend.utils.logger import configure_logging, get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every service is constructed here and exposed through app.state, so the
    dependency graph is traceable from this one function.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    repository = DataRepository(settings)
    settings_cache = SettingsCache(
        loader=repository.load_pricing_settings,
        ttl_seconds=settings.pricing_settings_cache_ttl_seconds,
    )

    pricing_service = PricingService(repository=repository, settings_cache=settings_cache)
    availability_service = AvailabilityService(
        repository=repository,
        settings_cache=settings_cache,
    )
    recurrence_service = RecurrenceService(
        repository=repository,
        settings_cache=settings_cache,
    )
    reporting_service = ReportingService(repository=repository)
    auth_service = AuthService(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(booking_router)
    app.include_router(admin_router)

    app.state.settings = settings
    app.state.repository = repository
    app.state.settings_cache = settings_cache
    app.state.pricing_service = pricing_service
    app.state.availability_service = availability_service
    app.state.recurrence_service = recurrence_service
    app.state.reporting_service = reporting_service
    app.state.auth_service = auth_service

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    The schema must exist before demo rows are seeded; seeding is skipped
    for tables that already hold data.
    """
    settings: Settings = app.state.settings
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema | path=%s", repository.database_path)
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo cleaners")
        repository.seed_demo_data()

    app.state.settings_cache.invalidate()
    logger.info("Startup complete | app=%s | version=%s", settings.app_name, settings.app_version)


# Module-level app object for uvicorn
app = create_app()
