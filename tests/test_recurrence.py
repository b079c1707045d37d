from __future__ import annotations

from dataclasses import replace
from datetime import date

import pytest

from backend.domain.constraints import InvalidInputError
from backend.domain.models import BookableWindow, Frequency, SubscriptionPlan, TimeSlot
from backend.repository.data_repository import DataRepository
from backend.services.recurrence_service import (
    RecurrenceService,
    SubscriptionConflictError,
    generate_occurrences,
    next_occurrence_after,
    serialize_dates,
)
from backend.services.settings_service import (
    MONTHLY_RULE_SAME_ORDINAL,
    PricingSettings,
    SettingsCache,
)
from backend.utils.config import get_settings


DEFAULTS = PricingSettings()
SAME_ORDINAL = replace(DEFAULTS, monthly_recurrence_rule=MONTHLY_RULE_SAME_ORDINAL)

MONDAY = date(2026, 3, 2)


def plan(frequency: Frequency, day="monday", months_ahead: int = 3) -> SubscriptionPlan:
    return SubscriptionPlan(
        frequency=frequency,
        preferred_day_of_week=day,
        preferred_time_slot=TimeSlot.MORNING,
        months_ahead=months_ahead,
    )


def _build_test_settings(tmp_path, filename: str):
    base = get_settings()
    return replace(base, database_path=tmp_path / filename, seed_demo_data=False)


# --- generate_occurrences ---

def test_biweekly_one_month_from_monday() -> None:
    dates = generate_occurrences(plan(Frequency.BIWEEKLY, months_ahead=1), set(), MONDAY, DEFAULTS)

    assert 2 <= len(dates) <= 3
    assert dates == [date(2026, 3, 2), date(2026, 3, 16), date(2026, 3, 30)]
    assert all(value.weekday() == 0 for value in dates)
    assert all((b - a).days == 14 for a, b in zip(dates, dates[1:]))


def test_weekly_dates_are_seven_days_apart_on_same_weekday() -> None:
    start = date(2026, 3, 4)
    dates = generate_occurrences(plan(Frequency.WEEKLY, day="friday"), set(), start, DEFAULTS)

    assert dates[0] == date(2026, 3, 6)
    assert dates[-1] <= date(2026, 6, 4)
    assert all(value.weekday() == 4 for value in dates)
    assert all((b - a).days == 7 for a, b in zip(dates, dates[1:]))
    assert len(dates) == 13


def test_existing_job_dates_are_skipped() -> None:
    existing = {date(2026, 3, 9), date(2026, 3, 23)}
    dates = generate_occurrences(plan(Frequency.WEEKLY, months_ahead=1), existing, MONDAY, DEFAULTS)

    assert dates == [date(2026, 3, 2), date(2026, 3, 16), date(2026, 3, 30)]
    assert not existing & set(dates)


def test_no_dates_before_start_or_after_horizon() -> None:
    start = date(2026, 1, 31)
    dates = generate_occurrences(plan(Frequency.WEEKLY, day=5, months_ahead=1), set(), start, DEFAULTS)

    assert dates[0] == start
    # Jan 31 plus one month clamps to Feb 28.
    assert dates[-1] == date(2026, 2, 28)
    assert dates == sorted(set(dates))


def test_monthly_first_weekday_of_each_month() -> None:
    dates = generate_occurrences(plan(Frequency.MONTHLY), set(), date(2026, 3, 18), DEFAULTS)
    assert dates == [date(2026, 3, 23), date(2026, 4, 6), date(2026, 5, 4), date(2026, 6, 1)]


def test_monthly_same_ordinal_keeps_nth_weekday() -> None:
    dates = generate_occurrences(plan(Frequency.MONTHLY), set(), date(2026, 3, 18), SAME_ORDINAL)
    assert dates == [date(2026, 3, 23), date(2026, 4, 27), date(2026, 5, 25)]


def test_monthly_same_ordinal_clamps_fifth_weekday() -> None:
    dates = generate_occurrences(
        plan(Frequency.MONTHLY, months_ahead=2), set(), date(2026, 3, 30), SAME_ORDINAL
    )
    assert dates == [date(2026, 3, 30), date(2026, 4, 27), date(2026, 5, 25)]


def test_onetime_is_rejected() -> None:
    with pytest.raises(InvalidInputError):
        generate_occurrences(plan(Frequency.ONETIME), set(), MONDAY, DEFAULTS)


@pytest.mark.parametrize("day", [None, "funday", 7, True])
def test_invalid_preferred_day_is_rejected(day) -> None:
    with pytest.raises(InvalidInputError):
        generate_occurrences(plan(Frequency.WEEKLY, day=day), set(), MONDAY, DEFAULTS)


def test_serialize_dates_is_date_only() -> None:
    assert serialize_dates([date(2026, 3, 2), date(2026, 12, 31)]) == ["2026-03-02", "2026-12-31"]


# --- next_occurrence_after ---

def test_next_occurrence_respects_bookable_window() -> None:
    window = BookableWindow(earliest=date(2026, 3, 20), latest=date(2026, 5, 1))
    assert next_occurrence_after(MONDAY, Frequency.WEEKLY, "monday", window) == date(2026, 3, 23)


def test_next_occurrence_moves_off_non_working_day() -> None:
    window = BookableWindow(earliest=date(2026, 3, 1), latest=date(2026, 5, 1))
    assert next_occurrence_after(MONDAY, Frequency.WEEKLY, "saturday", window) == date(2026, 3, 16)


def test_next_occurrence_rejects_onetime() -> None:
    window = BookableWindow(earliest=date(2026, 3, 1), latest=date(2026, 5, 1))
    with pytest.raises(InvalidInputError):
        next_occurrence_after(MONDAY, Frequency.ONETIME, "monday", window)


# --- RecurrenceService ---

def test_setup_subscription_seeds_jobs_and_blocks_second_plan(tmp_path) -> None:
    settings = _build_test_settings(tmp_path, "recurrence.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    service = RecurrenceService(
        repository=repository,
        settings_cache=SettingsCache(repository.load_pricing_settings),
    )

    result = service.setup_subscription(
        customer_id="cust-1",
        plan=plan(Frequency.BIWEEKLY, months_ahead=1),
        base_price=128,
        duration_minutes=120,
        start_date=MONDAY,
    )

    assert result.jobs_created == 3
    assert result.next_cleaning_date == MONDAY
    assert repository.count_jobs("cust-1") == 3
    assert repository.get_active_subscription_id("cust-1") == result.subscription_id
    assert repository.list_customer_job_dates("cust-1", MONDAY) == set(result.occurrence_dates)

    with pytest.raises(SubscriptionConflictError):
        service.setup_subscription(
            customer_id="cust-1",
            plan=plan(Frequency.WEEKLY),
            base_price=128,
            duration_minutes=120,
            start_date=MONDAY,
        )


def test_preview_skips_customer_existing_jobs(tmp_path) -> None:
    settings = _build_test_settings(tmp_path, "preview.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.create_cleaner("Avery")
    repository.claim_slot(
        customer_id="cust-2",
        scheduled_date=date(2026, 3, 9),
        time_slot=TimeSlot.MORNING,
        duration_minutes=180,
        price=200,
    )
    service = RecurrenceService(
        repository=repository,
        settings_cache=SettingsCache(repository.load_pricing_settings),
    )

    dates = service.preview(plan(Frequency.WEEKLY, months_ahead=1), MONDAY, customer_id="cust-2")

    assert date(2026, 3, 9) not in dates
    assert dates[0] == MONDAY


def test_next_monthly_occurrence_moves_one_calendar_month() -> None:
    window = BookableWindow(earliest=date(2026, 3, 1), latest=date(2026, 6, 30))
    # Apr 18 is a Saturday, so the visit moves on to Monday Apr 20.
    assert next_occurrence_after(
        date(2026, 3, 18), Frequency.MONTHLY, "monday", window
    ) == date(2026, 4, 20)


def test_next_monthly_occurrence_pushes_past_lead_time() -> None:
    window = BookableWindow(earliest=date(2026, 5, 1), latest=date(2026, 6, 30))
    assert next_occurrence_after(
        date(2026, 3, 18), Frequency.MONTHLY, "monday", window
    ) == date(2026, 5, 25)


def test_next_monthly_occurrence_same_ordinal_rule() -> None:
    window = BookableWindow(earliest=date(2026, 3, 1), latest=date(2026, 6, 30))
    from_date = date(2026, 3, 30)

    assert next_occurrence_after(from_date, Frequency.MONTHLY, "monday", window) == date(2026, 5, 4)
    assert next_occurrence_after(
        from_date, Frequency.MONTHLY, "monday", window, monthly_rule=MONTHLY_RULE_SAME_ORDINAL
    ) == date(2026, 4, 27)


def test_next_occurrence_past_window_is_rejected() -> None:
    window = BookableWindow(earliest=date(2026, 3, 1), latest=date(2026, 4, 10))
    with pytest.raises(InvalidInputError):
        next_occurrence_after(date(2026, 3, 18), Frequency.MONTHLY, "monday", window)
