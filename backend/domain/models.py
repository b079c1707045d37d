"""Domain models for pricing, availability and recurring schedules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional


class Frequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    ONETIME = "onetime"

    @property
    def is_recurring(self) -> bool:
        return self is not Frequency.ONETIME


class TimeSlot(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"

    @property
    def label(self) -> str:
        return TIME_SLOT_LABELS[self]

    @property
    def start_hour(self) -> int:
        return TIME_SLOT_START_HOURS[self]


TIME_SLOT_LABELS = {
    TimeSlot.MORNING: "Morning (9am - 12pm)",
    TimeSlot.AFTERNOON: "Afternoon (1pm - 5pm)",
}

TIME_SLOT_START_HOURS = {
    TimeSlot.MORNING: 9,
    TimeSlot.AFTERNOON: 13,
}

STATUS_SCHEDULED = "scheduled"
STATUS_CONFIRMED = "confirmed"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_NO_SHOW = "no_show"

NON_CONSUMING_STATUSES = frozenset({STATUS_CANCELLED, STATUS_NO_SHOW})
UPCOMING_STATUSES = frozenset({STATUS_SCHEDULED, STATUS_CONFIRMED})


@dataclass(frozen=True)
class PropertyFacts:
    sqft: float
    bedrooms: int
    bathrooms: float


@dataclass(frozen=True)
class Addon:
    addon_id: str
    name: str
    price: float
    duration_minutes: int


@dataclass(frozen=True)
class CleanerRecord:
    cleaner_id: int
    active: bool


@dataclass(frozen=True)
class TimeOffInterval:
    cleaner_id: int
    start_date: date
    end_date: date

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class ScheduledJob:
    scheduled_date: date
    time_slot: TimeSlot
    status: str = STATUS_SCHEDULED

    @property
    def consumes_capacity(self) -> bool:
        return self.status not in NON_CONSUMING_STATUSES


@dataclass(frozen=True)
class SubscriptionPlan:
    frequency: Frequency
    preferred_day_of_week: int | str | None
    preferred_time_slot: TimeSlot
    months_ahead: int = 3


@dataclass(frozen=True)
class PriceBreakdown:
    frequency: Frequency
    base_price: int
    discount: float
    first_clean_price: int
    addons_price: int
    first_clean_total: int
    recurring_price: int
    savings_per_visit: int
    deposit: int
    remaining: int

    def to_dict(self) -> dict[str, float | int | str]:
        return {
            "frequency": self.frequency.value,
            "base_price": self.base_price,
            "discount": self.discount,
            "first_clean_price": self.first_clean_price,
            "addons_price": self.addons_price,
            "first_clean_total": self.first_clean_total,
            "recurring_price": self.recurring_price,
            "savings_per_visit": self.savings_per_visit,
            "deposit": self.deposit,
            "remaining": self.remaining,
        }


@dataclass(frozen=True)
class DurationEstimate:
    minutes: int
    is_first_clean: bool


@dataclass(frozen=True)
class CancellationFee:
    fee: float
    band: str
    reason: str


@dataclass(frozen=True)
class BookableWindow:
    earliest: date
    latest: date

    def contains(self, day: date) -> bool:
        return self.earliest <= day <= self.latest


@dataclass(frozen=True)
class SlotAvailability:
    capacity: int
    booked: int
    slots_remaining: int
    available: bool


@dataclass(frozen=True)
class DayAvailability:
    day: date
    slots: dict[TimeSlot, SlotAvailability]

    @property
    def has_available_slots(self) -> bool:
        return any(slot.available for slot in self.slots.values())


@dataclass(frozen=True)
class DayCell:
    day: date
    in_month: bool
    is_bookable: bool = False
    is_working_day: bool = False
    availability: Optional[DayAvailability] = None

    @property
    def has_available_slots(self) -> bool:
        return self.availability is not None and self.availability.has_available_slots


@dataclass(frozen=True)
class CalendarMonth:
    year: int
    month: int
    window: BookableWindow
    weeks: list[list[DayCell]] = field(default_factory=list)

    def cell_for(self, day: date) -> Optional[DayCell]:
        for week in self.weeks:
            for cell in week:
                if cell.in_month and cell.day == day:
                    return cell
        return None


@dataclass(frozen=True)
class BookingOutcome:
    status: str
    job_id: Optional[int] = None
    message: str = ""

    @property
    def booked(self) -> bool:
        return self.status == "booked"


@dataclass(frozen=True)
class SubscriptionSetupResult:
    subscription_id: int
    jobs_created: int
    occurrence_dates: list[date]

    @property
    def next_cleaning_date(self) -> Optional[date]:
        return self.occurrence_dates[0] if self.occurrence_dates else None
