"""Recurring job date generation and subscription seeding."""

from __future__ import annotations

from datetime import date, datetime
from typing import AbstractSet, Iterable, Optional

from backend.domain.constraints import (
    InvalidInputError,
    validate_subscription_plan,
)
from backend.domain.dates import (
    DEFAULT_WORKING_DAYS,
    WEEKDAY_NAMES,
    add_days,
    add_months,
    first_of_next_month,
    format_iso_date,
    next_weekday_on_or_after,
    nth_weekday_of_month,
    parse_weekday,
    to_date,
    weekday_ordinal,
)
from backend.domain.models import (
    BookableWindow,
    Frequency,
    SubscriptionPlan,
    SubscriptionSetupResult,
)
from backend.repository.data_repository import DataRepository
from backend.services.settings_service import (
    MONTHLY_RULE_SAME_ORDINAL,
    PricingSettings,
    SettingsCache,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class SubscriptionConflictError(Exception):
    """Raised when a customer already has an active subscription."""


def _step(
    current: date,
    frequency: Frequency,
    weekday: int,
    ordinal: int,
    monthly_rule: str,
) -> date:
    if frequency is Frequency.WEEKLY:
        return add_days(current, 7)
    if frequency is Frequency.BIWEEKLY:
        return add_days(current, 14)
    if frequency is Frequency.MONTHLY:
        next_month = first_of_next_month(current)
        if monthly_rule == MONTHLY_RULE_SAME_ORDINAL:
            return nth_weekday_of_month(next_month.year, next_month.month, weekday, ordinal)
        return next_weekday_on_or_after(next_month, weekday)
    raise InvalidInputError(f"{frequency.value} bookings do not recur")


def generate_occurrences(
    plan: SubscriptionPlan,
    existing_job_dates: AbstractSet[date],
    start_date: date,
    settings: PricingSettings,
) -> list[date]:
    """Future visit dates for a subscription, skipping dates that already hold a job.

    Dates run from ``start_date`` up to and including ``start_date`` plus
    ``plan.months_ahead`` months. Monthly plans land on the first preferred
    weekday of each month unless the settings select ``same_ordinal``, which
    keeps the n-th weekday of the first visit (e.g. the 3rd Monday).
    """
    validate_subscription_plan(plan)
    weekday = parse_weekday(plan.preferred_day_of_week)
    horizon = add_months(start_date, plan.months_ahead)

    current = next_weekday_on_or_after(start_date, weekday)
    ordinal = weekday_ordinal(current)
    occurrences: list[date] = []
    while current <= horizon:
        if current not in existing_job_dates:
            occurrences.append(current)
        current = _step(
            current,
            plan.frequency,
            weekday,
            ordinal,
            settings.monthly_recurrence_rule,
        )
    return occurrences


def serialize_dates(dates: Iterable[date]) -> list[str]:
    return [format_iso_date(value) for value in dates]


def _advance_visit(
    current: date,
    frequency: Frequency,
    weekday: int,
    ordinal: int,
    monthly_rule: str,
) -> date:
    if frequency is Frequency.MONTHLY and monthly_rule != MONTHLY_RULE_SAME_ORDINAL:
        # Same day-of-month next month, then forward to the preferred weekday.
        return next_weekday_on_or_after(add_months(current, 1), weekday)
    return next_weekday_on_or_after(
        _step(current, frequency, weekday, ordinal, monthly_rule),
        weekday,
    )


def next_occurrence_after(
    from_date: date,
    frequency: Frequency,
    preferred_day: int | str,
    window: BookableWindow,
    working_days: Iterable[int] = DEFAULT_WORKING_DAYS,
    monthly_rule: str = "",
) -> date:
    """The next visit after ``from_date`` that a customer could still book.

    Monthly plans move one calendar month and then forward to the preferred
    weekday, unless ``monthly_rule`` is ``same_ordinal``. Raises
    ``InvalidInputError`` when that visit falls past ``window.latest``.
    """
    if not frequency.is_recurring:
        raise InvalidInputError("one-time bookings do not recur")
    weekday = parse_weekday(preferred_day)
    working = frozenset(working_days)
    if not working:
        raise InvalidInputError("working_days must not be empty")

    ordinal = weekday_ordinal(from_date)
    candidate = _advance_visit(from_date, frequency, weekday, ordinal, monthly_rule)
    while candidate < window.earliest:
        candidate = _advance_visit(candidate, frequency, weekday, ordinal, monthly_rule)
    while candidate.weekday() not in working:
        candidate = add_days(candidate, 1)
    if candidate > window.latest:
        raise InvalidInputError(
            f"next {frequency.value} visit {format_iso_date(candidate)} is past the "
            f"booking window ending {format_iso_date(window.latest)}"
        )
    return candidate


class RecurrenceService:
    """Creates a subscription and materializes its future jobs."""

    def __init__(
        self,
        repository: DataRepository,
        settings_cache: SettingsCache,
    ) -> None:
        self._repository = repository
        self._settings_cache = settings_cache

    def preview(
        self,
        plan: SubscriptionPlan,
        start_date: date,
        customer_id: Optional[str] = None,
    ) -> list[date]:
        existing = (
            self._repository.list_customer_job_dates(customer_id, start_date)
            if customer_id
            else set()
        )
        return generate_occurrences(plan, existing, start_date, self._settings_cache.get())

    def setup_subscription(
        self,
        *,
        customer_id: str,
        plan: SubscriptionPlan,
        base_price: float,
        duration_minutes: int,
        start_date: Optional[date] = None,
        now: Optional[datetime | date] = None,
    ) -> SubscriptionSetupResult:
        if not customer_id.strip():
            raise InvalidInputError("customer_id is required")
        if base_price <= 0:
            raise InvalidInputError("base_price must be > 0")
        if duration_minutes <= 0:
            raise InvalidInputError("duration_minutes must be > 0")
        validate_subscription_plan(plan)

        existing_subscription = self._repository.get_active_subscription_id(customer_id)
        if existing_subscription is not None:
            raise SubscriptionConflictError(
                f"customer {customer_id} already has active subscription {existing_subscription}"
            )

        start = start_date or add_days(to_date(now or date.today()), 1)
        existing_dates = self._repository.list_customer_job_dates(customer_id, start)
        occurrences = generate_occurrences(
            plan,
            existing_dates,
            start,
            self._settings_cache.get(),
        )
        subscription_id = self._repository.create_subscription_with_jobs(
            customer_id=customer_id,
            plan=plan,
            preferred_day=WEEKDAY_NAMES[parse_weekday(plan.preferred_day_of_week)],
            base_price=base_price,
            duration_minutes=duration_minutes,
            job_dates=occurrences,
        )
        logger.info(
            "Subscription created | subscription_id=%s | customer_id=%s | frequency=%s | jobs_created=%s | existing_job_dates=%s",
            subscription_id,
            customer_id,
            plan.frequency.value,
            len(occurrences),
            len(existing_dates),
        )
        return SubscriptionSetupResult(
            subscription_id=subscription_id,
            jobs_created=len(occurrences),
            occurrence_dates=occurrences,
        )
