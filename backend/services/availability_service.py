"""Slot capacity, bookable calendars and capacity-checked bookings."""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime
from typing import Iterable, Optional, Sequence

from backend.domain.constraints import InvalidInputError
from backend.domain.dates import (
    DEFAULT_WORKING_DAYS,
    add_days,
    is_working_day,
    month_grid,
    to_date,
)
from backend.domain.models import (
    BookableWindow,
    BookingOutcome,
    CalendarMonth,
    CleanerRecord,
    DayAvailability,
    DayCell,
    ScheduledJob,
    SlotAvailability,
    TimeOffInterval,
    TimeSlot,
)
from backend.repository.data_repository import DataRepository, SlotCapacityExceededError
from backend.services.settings_service import SettingsCache
from backend.utils.logger import get_logger


logger = get_logger(__name__)

BOOKING_BOOKED = "booked"
BOOKING_UNAVAILABLE = "unavailable"
BOOKING_RACE_LOST = "race_lost"


def compute_bookable_window(
    now: datetime | date,
    lead_days: int,
    max_days: int,
) -> BookableWindow:
    if lead_days < 0 or max_days < lead_days:
        raise InvalidInputError("booking window requires 0 <= lead_days <= max_days")
    today = to_date(now)
    return BookableWindow(earliest=add_days(today, lead_days), latest=add_days(today, max_days))


def count_capacity(
    day: date,
    cleaners: Iterable[CleanerRecord],
    time_off: Iterable[TimeOffInterval],
) -> int:
    """Active cleaners with no time-off interval covering ``day``."""
    off_today = {interval.cleaner_id for interval in time_off if interval.covers(day)}
    return sum(
        1
        for cleaner in cleaners
        if cleaner.active and cleaner.cleaner_id not in off_today
    )


def compute_slot_availability(
    day: date,
    jobs: Iterable[ScheduledJob],
    cleaners: Sequence[CleanerRecord],
    time_off: Sequence[TimeOffInterval],
) -> DayAvailability:
    """Per-slot capacity for one day.

    With no eligible cleaners the capacity is zero and every slot is closed.
    """
    capacity = count_capacity(day, cleaners, time_off)
    booked = Counter(
        job.time_slot
        for job in jobs
        if job.scheduled_date == day and job.consumes_capacity
    )
    slots: dict[TimeSlot, SlotAvailability] = {}
    for slot in TimeSlot:
        remaining = max(0, capacity - booked[slot])
        slots[slot] = SlotAvailability(
            capacity=capacity,
            booked=booked[slot],
            slots_remaining=remaining,
            available=remaining > 0,
        )
    return DayAvailability(day=day, slots=slots)


def is_date_bookable(
    day: date,
    window: BookableWindow,
    working_days: Iterable[int] = DEFAULT_WORKING_DAYS,
) -> bool:
    return window.contains(day) and is_working_day(day, working_days)


def build_calendar_month(
    year: int,
    month: int,
    jobs: Sequence[ScheduledJob],
    cleaners: Sequence[CleanerRecord],
    time_off: Sequence[TimeOffInterval],
    window: BookableWindow,
    working_days: Iterable[int] = DEFAULT_WORKING_DAYS,
) -> CalendarMonth:
    """Lay out a Sunday-first month grid with availability on bookable days."""
    working = frozenset(working_days)
    jobs_by_day: dict[date, list[ScheduledJob]] = {}
    for job in jobs:
        jobs_by_day.setdefault(job.scheduled_date, []).append(job)

    weeks: list[list[DayCell]] = []
    for week in month_grid(year, month):
        cells: list[DayCell] = []
        for day in week:
            if day.month != month:
                cells.append(DayCell(day=day, in_month=False))
                continue
            bookable = is_date_bookable(day, window, working)
            availability = (
                compute_slot_availability(day, jobs_by_day.get(day, []), cleaners, time_off)
                if bookable
                else None
            )
            cells.append(
                DayCell(
                    day=day,
                    in_month=True,
                    is_bookable=bookable,
                    is_working_day=day.weekday() in working,
                    availability=availability,
                )
            )
        weeks.append(cells)
    return CalendarMonth(year=year, month=month, window=window, weeks=weeks)


class AvailabilityService:
    """Loads roster, time-off and job snapshots and applies the slot engine."""

    def __init__(
        self,
        repository: DataRepository,
        settings_cache: SettingsCache,
    ) -> None:
        self._repository = repository
        self._settings_cache = settings_cache

    def bookable_window(self, now: Optional[datetime | date] = None) -> BookableWindow:
        pricing = self._settings_cache.get()
        return compute_bookable_window(
            now or date.today(),
            pricing.booking_lead_days,
            pricing.booking_max_days,
        )

    def calendar_month(
        self,
        year: int,
        month: int,
        now: Optional[datetime | date] = None,
    ) -> CalendarMonth:
        pricing = self._settings_cache.get()
        window = self.bookable_window(now)
        grid = month_grid(year, month)
        first_day, last_day = grid[0][0], grid[-1][-1]

        calendar_month = build_calendar_month(
            year,
            month,
            jobs=self._repository.list_jobs(first_day, last_day),
            cleaners=self._repository.list_cleaners(),
            time_off=self._repository.list_time_off(first_day, last_day),
            window=window,
            working_days=pricing.working_days,
        )
        logger.debug(
            "Calendar built | year=%s | month=%s | earliest=%s | latest=%s",
            year,
            month,
            window.earliest,
            window.latest,
        )
        return calendar_month

    def day_availability(self, day: date) -> DayAvailability:
        return compute_slot_availability(
            day,
            self._repository.list_jobs(day, day),
            self._repository.list_cleaners(),
            self._repository.list_time_off(day, day),
        )

    def book_job(
        self,
        *,
        customer_id: str,
        scheduled_date: date,
        time_slot: TimeSlot,
        duration_minutes: int,
        price: float,
        now: Optional[datetime | date] = None,
    ) -> BookingOutcome:
        """Claim one cleaner-slot unit for a first clean or one-time job."""
        if not customer_id.strip():
            raise InvalidInputError("customer_id is required")
        if duration_minutes <= 0:
            raise InvalidInputError("duration_minutes must be > 0")
        if price < 0:
            raise InvalidInputError("price must be >= 0")

        pricing = self._settings_cache.get()
        window = self.bookable_window(now)
        if not is_date_bookable(scheduled_date, window, pricing.working_days):
            logger.info(
                "Booking rejected outside bookable window | date=%s | earliest=%s | latest=%s",
                scheduled_date,
                window.earliest,
                window.latest,
            )
            return BookingOutcome(
                status=BOOKING_UNAVAILABLE,
                message="This date cannot be booked. Please choose another day.",
            )

        slot = self.day_availability(scheduled_date).slots[time_slot]
        if not slot.available:
            logger.info(
                "Booking rejected, slot full | date=%s | slot=%s | capacity=%s | booked=%s",
                scheduled_date,
                time_slot.value,
                slot.capacity,
                slot.booked,
            )
            return BookingOutcome(
                status=BOOKING_UNAVAILABLE,
                message="This time slot is fully booked. Please choose another slot.",
            )

        try:
            job_id = self._repository.claim_slot(
                customer_id=customer_id,
                scheduled_date=scheduled_date,
                time_slot=time_slot,
                duration_minutes=duration_minutes,
                price=price,
            )
        except SlotCapacityExceededError as exc:
            logger.warning(
                "Booking lost slot race | date=%s | slot=%s | detail=%s",
                scheduled_date,
                time_slot.value,
                exc,
            )
            return BookingOutcome(
                status=BOOKING_RACE_LOST,
                message="This slot was just taken. Please pick another slot.",
            )

        logger.info(
            "Job booked | job_id=%s | customer_id=%s | date=%s | slot=%s",
            job_id,
            customer_id,
            scheduled_date,
            time_slot.value,
        )
        return BookingOutcome(status=BOOKING_BOOKED, job_id=job_id, message="Booked")
