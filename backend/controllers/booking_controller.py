"""HTTP controller layer for the customer booking flow."""

from __future__ import annotations

from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import (
    get_availability_service,
    get_pricing_service,
    get_recurrence_service,
    get_settings_cache,
)
from backend.domain.constraints import InvalidInputError
from backend.domain.dates import format_iso_date
from backend.domain.models import (
    CalendarMonth,
    DayCell,
    Frequency,
    PropertyFacts,
    SubscriptionPlan,
    TimeSlot,
)
from backend.services.availability_service import (
    BOOKING_RACE_LOST,
    AvailabilityService,
)
from backend.services.pricing_service import PricingService
from backend.services.recurrence_service import (
    RecurrenceService,
    SubscriptionConflictError,
    next_occurrence_after,
    serialize_dates,
)
from backend.services.settings_service import SettingsCache
from backend.utils.config import get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(tags=["booking"])


class PropertyRequest(BaseModel):
    sqft: float = Field(gt=0)
    bedrooms: int = Field(ge=1)
    bathrooms: float = Field(ge=1)

    def to_facts(self) -> PropertyFacts:
        return PropertyFacts(sqft=self.sqft, bedrooms=self.bedrooms, bathrooms=self.bathrooms)


class QuoteRequest(PropertyRequest):
    frequency: Frequency
    addon_ids: list[str] = Field(default_factory=list)


class PriceBreakdownResponse(BaseModel):
    frequency: Frequency
    base_price: int = Field(ge=0)
    discount: float = Field(ge=0.0, le=1.0)
    first_clean_price: int = Field(ge=0)
    addons_price: int = Field(ge=0)
    first_clean_total: int = Field(ge=0)
    recurring_price: int = Field(ge=0)
    savings_per_visit: int = Field(ge=0)
    deposit: int = Field(ge=0)
    remaining: int = Field(ge=0)


class QuoteResponse(BaseModel):
    price: PriceBreakdownResponse
    first_clean_duration_minutes: int = Field(ge=30)
    recurring_duration_minutes: int = Field(ge=30)
    cleaners_required: int = Field(ge=1)


class DurationRequest(PropertyRequest):
    is_first_clean: bool = False
    addon_ids: list[str] = Field(default_factory=list)


class DurationResponse(BaseModel):
    minutes: int = Field(ge=30)
    is_first_clean: bool


class BookableWindowResponse(BaseModel):
    earliest: date
    latest: date


class SlotResponse(BaseModel):
    label: str
    capacity: int = Field(ge=0)
    booked: int = Field(ge=0)
    slots_remaining: int = Field(ge=0)
    available: bool


class DayCellResponse(BaseModel):
    day: date
    in_month: bool
    is_bookable: bool
    is_working_day: bool
    has_available_slots: bool
    slots: dict[TimeSlot, SlotResponse] | None = None


class CalendarResponse(BaseModel):
    year: int
    month: int
    earliest: date
    latest: date
    weeks: list[list[DayCellResponse]]


class BookingRequest(QuoteRequest):
    customer_id: str = Field(min_length=1)
    scheduled_date: date
    time_slot: TimeSlot


class BookingResponse(BaseModel):
    status: str
    job_id: int | None = None
    message: str
    first_clean_total: int | None = None
    deposit: int | None = None


class CancellationFeeRequest(BaseModel):
    scheduled_date: date
    time_slot: TimeSlot
    job_price: float = Field(ge=0.0)
    cancelled_at: datetime | None = None
    no_show: bool = False


class CancellationFeeResponse(BaseModel):
    fee: float = Field(ge=0.0)
    band: str
    reason: str


class SubscriptionPlanRequest(BaseModel):
    frequency: Frequency
    preferred_day: int | str
    preferred_time_slot: TimeSlot
    months_ahead: int = Field(default=settings.default_subscription_months_ahead, gt=0, le=24)
    start_date: date | None = None

    def to_plan(self) -> SubscriptionPlan:
        return SubscriptionPlan(
            frequency=self.frequency,
            preferred_day_of_week=self.preferred_day,
            preferred_time_slot=self.preferred_time_slot,
            months_ahead=self.months_ahead,
        )


class SubscriptionPreviewRequest(SubscriptionPlanRequest):
    customer_id: str | None = None


class SubscriptionPreviewResponse(BaseModel):
    dates: list[str]


class SubscriptionRequest(SubscriptionPlanRequest, PropertyRequest):
    customer_id: str = Field(min_length=1)


class SubscriptionResponse(BaseModel):
    subscription_id: int = Field(gt=0)
    jobs_created: int = Field(ge=0)
    next_cleaning_date: str | None
    dates: list[str]
    price_per_visit: int = Field(ge=0)
    duration_minutes: int = Field(ge=30)


class NextDateRequest(BaseModel):
    from_date: date
    frequency: Frequency
    preferred_day: int | str


class NextDateResponse(BaseModel):
    next_date: date


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _cell_response(cell: DayCell) -> DayCellResponse:
    slots = None
    if cell.availability is not None:
        slots = {
            slot: SlotResponse(
                label=slot.label,
                capacity=value.capacity,
                booked=value.booked,
                slots_remaining=value.slots_remaining,
                available=value.available,
            )
            for slot, value in cell.availability.slots.items()
        }
    return DayCellResponse(
        day=cell.day,
        in_month=cell.in_month,
        is_bookable=cell.is_bookable,
        is_working_day=cell.is_working_day,
        has_available_slots=cell.has_available_slots,
        slots=slots,
    )


def _calendar_response(calendar_month: CalendarMonth) -> CalendarResponse:
    return CalendarResponse(
        year=calendar_month.year,
        month=calendar_month.month,
        earliest=calendar_month.window.earliest,
        latest=calendar_month.window.latest,
        weeks=[[_cell_response(cell) for cell in week] for week in calendar_month.weeks],
    )


@router.post("/quote", response_model=QuoteResponse, status_code=status.HTTP_200_OK)
async def quote(
    payload: QuoteRequest,
    service: PricingService = Depends(get_pricing_service),
) -> QuoteResponse:
    """Price breakdown and duration estimates for the quote step."""
    try:
        breakdown, first_clean, recurring, cleaners = service.quote(
            payload.to_facts(),
            payload.frequency,
            payload.addon_ids,
        )
    except InvalidInputError as exc:
        raise _bad_request(exc) from exc
    return QuoteResponse(
        price=PriceBreakdownResponse(**breakdown.to_dict()),
        first_clean_duration_minutes=first_clean.minutes,
        recurring_duration_minutes=recurring.minutes,
        cleaners_required=cleaners,
    )


@router.post("/duration", response_model=DurationResponse, status_code=status.HTTP_200_OK)
async def duration(
    payload: DurationRequest,
    service: PricingService = Depends(get_pricing_service),
) -> DurationResponse:
    try:
        estimate = service.duration(
            payload.to_facts(),
            payload.is_first_clean,
            payload.addon_ids,
        )
    except InvalidInputError as exc:
        raise _bad_request(exc) from exc
    return DurationResponse(minutes=estimate.minutes, is_first_clean=estimate.is_first_clean)


@router.get("/bookable_window", response_model=BookableWindowResponse)
async def bookable_window(
    service: AvailabilityService = Depends(get_availability_service),
) -> BookableWindowResponse:
    window = service.bookable_window()
    return BookableWindowResponse(earliest=window.earliest, latest=window.latest)


@router.get("/calendar/{year}/{month}", response_model=CalendarResponse)
async def calendar(
    year: int,
    month: int,
    service: AvailabilityService = Depends(get_availability_service),
) -> CalendarResponse:
    """Month grid with per-slot availability for the schedule step."""
    if not 2000 <= year <= 2100:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="year out of range")
    try:
        return _calendar_response(service.calendar_month(year, month))
    except InvalidInputError as exc:
        raise _bad_request(exc) from exc


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingRequest,
    pricing_service: PricingService = Depends(get_pricing_service),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> BookingResponse:
    """Book the first clean; prices and duration are recomputed server-side."""
    try:
        breakdown, first_clean, _, _ = pricing_service.quote(
            payload.to_facts(),
            payload.frequency,
            payload.addon_ids,
        )
        outcome = availability_service.book_job(
            customer_id=payload.customer_id,
            scheduled_date=payload.scheduled_date,
            time_slot=payload.time_slot,
            duration_minutes=first_clean.minutes,
            price=breakdown.first_clean_total,
        )
    except InvalidInputError as exc:
        raise _bad_request(exc) from exc
    except RuntimeError as exc:
        logger.exception("Booking write failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking",
        ) from exc

    if not outcome.booked:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "status": outcome.status,
                "message": outcome.message,
                "recompute_availability": outcome.status == BOOKING_RACE_LOST,
            },
        )
    return BookingResponse(
        status=outcome.status,
        job_id=outcome.job_id,
        message=outcome.message,
        first_clean_total=breakdown.first_clean_total,
        deposit=breakdown.deposit,
    )


@router.post("/cancellation_fee", response_model=CancellationFeeResponse)
async def cancellation_fee(
    payload: CancellationFeeRequest,
    service: PricingService = Depends(get_pricing_service),
) -> CancellationFeeResponse:
    scheduled_at = datetime.combine(payload.scheduled_date, time(hour=payload.time_slot.start_hour))
    cancelled_at = payload.cancelled_at or datetime.now()
    if cancelled_at.tzinfo is not None:
        # Jobs are scheduled in server-local wall-clock time.
        cancelled_at = cancelled_at.astimezone().replace(tzinfo=None)
    try:
        fee = service.cancellation_fee(
            scheduled_at,
            cancelled_at,
            payload.job_price,
            no_show=payload.no_show,
        )
    except InvalidInputError as exc:
        raise _bad_request(exc) from exc
    return CancellationFeeResponse(fee=fee.fee, band=fee.band, reason=fee.reason)


@router.post("/subscriptions/preview", response_model=SubscriptionPreviewResponse)
async def preview_subscription(
    payload: SubscriptionPreviewRequest,
    service: RecurrenceService = Depends(get_recurrence_service),
) -> SubscriptionPreviewResponse:
    try:
        dates = service.preview(
            payload.to_plan(),
            payload.start_date or date.today(),
            customer_id=payload.customer_id,
        )
    except InvalidInputError as exc:
        raise _bad_request(exc) from exc
    return SubscriptionPreviewResponse(dates=serialize_dates(dates))


@router.post(
    "/subscriptions",
    response_model=SubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_subscription(
    payload: SubscriptionRequest,
    pricing_service: PricingService = Depends(get_pricing_service),
    recurrence_service: RecurrenceService = Depends(get_recurrence_service),
) -> SubscriptionResponse:
    """Start a recurring plan and seed its future jobs."""
    try:
        breakdown, _, recurring, _ = pricing_service.quote(payload.to_facts(), payload.frequency)
        result = recurrence_service.setup_subscription(
            customer_id=payload.customer_id,
            plan=payload.to_plan(),
            base_price=breakdown.recurring_price,
            duration_minutes=recurring.minutes,
            start_date=payload.start_date,
        )
    except InvalidInputError as exc:
        raise _bad_request(exc) from exc
    except SubscriptionConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RuntimeError as exc:
        logger.exception("Subscription setup failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create subscription",
        ) from exc

    next_date = result.next_cleaning_date
    return SubscriptionResponse(
        subscription_id=result.subscription_id,
        jobs_created=result.jobs_created,
        next_cleaning_date=format_iso_date(next_date) if next_date else None,
        dates=serialize_dates(result.occurrence_dates),
        price_per_visit=breakdown.recurring_price,
        duration_minutes=recurring.minutes,
    )


@router.post("/subscriptions/next_date", response_model=NextDateResponse)
async def next_date(
    payload: NextDateRequest,
    availability_service: AvailabilityService = Depends(get_availability_service),
    settings_cache: SettingsCache = Depends(get_settings_cache),
) -> NextDateResponse:
    pricing = settings_cache.get()
    try:
        value = next_occurrence_after(
            payload.from_date,
            payload.frequency,
            payload.preferred_day,
            availability_service.bookable_window(),
            working_days=pricing.working_days,
            monthly_rule=pricing.monthly_recurrence_rule,
        )
    except InvalidInputError as exc:
        raise _bad_request(exc) from exc
    return NextDateResponse(next_date=value)
