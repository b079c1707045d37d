"""Controller layer for admin operations: login, pricing settings, roster, reports."""

from __future__ import annotations

from dataclasses import fields
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator, model_validator

from backend.controllers.dependencies import (
    get_auth_service,
    get_reporting_service,
    get_repository,
    get_settings_cache,
    require_admin,
)
from backend.domain.constraints import InvalidInputError
from backend.repository.data_repository import DataRepository
from backend.services.auth_service import (
    AdminTokenNotConfiguredError,
    AuthService,
    InvalidAdminTokenError,
)
from backend.services.reporting_service import ReportingService
from backend.services.settings_service import PricingSettings, SettingsCache
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["admin"])

KNOWN_SETTING_KEYS = frozenset(setting.name for setting in fields(PricingSettings))


class LoginRequest(BaseModel):
    admin_token: str = Field(min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class PricingSettingsUpdate(BaseModel):
    values: dict[str, Any] = Field(min_length=1)

    @field_validator("values")
    @classmethod
    def validate_known_keys(cls, value: dict[str, Any]) -> dict[str, Any]:
        unknown = sorted(set(value) - KNOWN_SETTING_KEYS)
        if unknown:
            raise ValueError(f"unknown pricing settings: {', '.join(unknown)}")
        return value


class PricingSettingsResponse(BaseModel):
    values: dict[str, Any]


class CleanerCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    active: bool = True


class CleanerCreateResponse(BaseModel):
    cleaner_id: int = Field(gt=0)


class CleanerStatusUpdate(BaseModel):
    active: bool


class TimeOffCreateRequest(BaseModel):
    cleaner_id: int = Field(gt=0)
    start_date: date
    end_date: date
    reason: str | None = None

    @model_validator(mode="after")
    def validate_range(self) -> "TimeOffCreateRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class TimeOffCreateResponse(BaseModel):
    time_off_id: int = Field(gt=0)


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    try:
        token = auth_service.login(payload.admin_token)
    except AdminTokenNotConfiguredError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except InvalidAdminTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
    return LoginResponse(access_token=token)


@router.get(
    "/admin/pricing_settings",
    response_model=PricingSettingsResponse,
    dependencies=[Depends(require_admin)],
)
async def get_pricing_settings(
    settings_cache: SettingsCache = Depends(get_settings_cache),
) -> PricingSettingsResponse:
    """Effective settings, with defaults filled in for anything not stored."""
    return PricingSettingsResponse(values=settings_cache.get().to_mapping())


@router.put(
    "/admin/pricing_settings",
    response_model=PricingSettingsResponse,
    dependencies=[Depends(require_admin)],
)
async def update_pricing_settings(
    payload: PricingSettingsUpdate,
    repository: DataRepository = Depends(get_repository),
    settings_cache: SettingsCache = Depends(get_settings_cache),
) -> PricingSettingsResponse:
    rejected = PricingSettings.invalid_keys(payload.values)
    if rejected:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"invalid values for: {', '.join(rejected)}",
        )

    merged = {**repository.load_pricing_settings(), **payload.values}
    conflicting = PricingSettings.conflicting_keys(merged)
    if conflicting:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"inconsistent values for: {', '.join(conflicting)} "
                "(booking_lead_days must not exceed booking_max_days)"
            ),
        )

    repository.upsert_pricing_settings(payload.values)
    settings_cache.invalidate()
    return PricingSettingsResponse(values=settings_cache.get().to_mapping())


@router.post(
    "/admin/cleaners",
    response_model=CleanerCreateResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_cleaner(
    payload: CleanerCreateRequest,
    repository: DataRepository = Depends(get_repository),
) -> CleanerCreateResponse:
    cleaner_id = repository.create_cleaner(payload.name, active=payload.active)
    logger.info("Cleaner created | cleaner_id=%s | active=%s", cleaner_id, payload.active)
    return CleanerCreateResponse(cleaner_id=cleaner_id)


@router.patch(
    "/admin/cleaners/{cleaner_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def update_cleaner_status(
    cleaner_id: int,
    payload: CleanerStatusUpdate,
    repository: DataRepository = Depends(get_repository),
) -> None:
    """Deactivated cleaners stop counting toward slot capacity."""
    if repository.get_cleaner(cleaner_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"cleaner_id {cleaner_id} not found",
        )
    repository.set_cleaner_active(cleaner_id, payload.active)
    logger.info("Cleaner status updated | cleaner_id=%s | active=%s", cleaner_id, payload.active)


@router.post(
    "/admin/time_off",
    response_model=TimeOffCreateResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_time_off(
    payload: TimeOffCreateRequest,
    repository: DataRepository = Depends(get_repository),
) -> TimeOffCreateResponse:
    if repository.get_cleaner(payload.cleaner_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"cleaner_id {payload.cleaner_id} not found",
        )
    time_off_id = repository.create_time_off(
        payload.cleaner_id,
        payload.start_date,
        payload.end_date,
        payload.reason,
    )
    logger.info(
        "Time off recorded | cleaner_id=%s | start=%s | end=%s",
        payload.cleaner_id,
        payload.start_date,
        payload.end_date,
    )
    return TimeOffCreateResponse(time_off_id=time_off_id)


@router.get("/admin/utilization", dependencies=[Depends(require_admin)])
async def utilization(
    start: date,
    end: date,
    service: ReportingService = Depends(get_reporting_service),
) -> dict[str, list[dict[str, object]]]:
    try:
        return service.utilization_report(start, end)
    except InvalidInputError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
