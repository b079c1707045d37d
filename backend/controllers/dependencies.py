"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.repository.data_repository import DataRepository
from backend.services.auth_service import (
    AdminTokenNotConfiguredError,
    AuthService,
    InvalidAdminTokenError,
)
from backend.services.availability_service import AvailabilityService
from backend.services.pricing_service import PricingService
from backend.services.recurrence_service import RecurrenceService
from backend.services.reporting_service import ReportingService
from backend.services.settings_service import SettingsCache


bearer_scheme = HTTPBearer(auto_error=False)


def _state_service(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_repository(request: Request) -> DataRepository:
    return _state_service(request, "repository", "Repository")


def get_settings_cache(request: Request) -> SettingsCache:
    return _state_service(request, "settings_cache", "Pricing settings")


def get_pricing_service(request: Request) -> PricingService:
    return _state_service(request, "pricing_service", "Pricing service")


def get_availability_service(request: Request) -> AvailabilityService:
    return _state_service(request, "availability_service", "Availability service")


def get_recurrence_service(request: Request) -> RecurrenceService:
    return _state_service(request, "recurrence_service", "Recurrence service")


def get_reporting_service(request: Request) -> ReportingService:
    return _state_service(request, "reporting_service", "Reporting service")


def get_auth_service(request: Request) -> AuthService:
    return _state_service(request, "auth_service", "Auth service")


async def require_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    if not auth_service.auth_enabled:
        return
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header with Bearer token is required",
        )
    try:
        auth_service.validate_bearer_token(credentials.credentials)
    except (AdminTokenNotConfiguredError, InvalidAdminTokenError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
