"""Calendar-date helpers.

Every helper takes and returns ``datetime.date`` values, which are immutable,
so stepping through a schedule always produces new values instead of
mutating a cursor. Serialization is date-only (``YYYY-MM-DD``).
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Iterable, Iterator

from dateutil.relativedelta import relativedelta

from backend.domain.constraints import InvalidInputError


WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

DEFAULT_WORKING_DAYS = frozenset({0, 1, 2, 3, 4})


def to_date(value: date | datetime | str) -> date:
    """Normalize a date, datetime or ISO string to a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return parse_iso_date(value)
    raise InvalidInputError(f"unsupported date value: {value!r}")


def parse_iso_date(value: str) -> date:
    try:
        return datetime.strptime(value.strip()[:10], "%Y-%m-%d").date()
    except ValueError as exc:
        raise InvalidInputError("date must follow YYYY-MM-DD format") from exc


def format_iso_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def add_months(value: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's length."""
    return value + relativedelta(months=months)


def first_of_next_month(value: date) -> date:
    return add_months(value.replace(day=1), 1)


def next_weekday_on_or_after(value: date, weekday: int) -> date:
    return value + timedelta(days=(weekday - value.weekday()) % 7)


def nth_weekday_of_month(year: int, month: int, weekday: int, ordinal: int) -> date:
    """Return the ``ordinal``-th (1-based) weekday of a month.

    When the month has fewer such weekdays the last one is returned.
    """
    first = next_weekday_on_or_after(date(year, month, 1), weekday)
    candidate = first + timedelta(weeks=ordinal - 1)
    while candidate.month != month:
        candidate -= timedelta(weeks=1)
    return candidate


def weekday_ordinal(value: date) -> int:
    """1 for the first such weekday of its month, 2 for the second, ..."""
    return (value.day - 1) // 7 + 1


def parse_weekday(value: int | str | None) -> int:
    """Resolve a weekday name or Python weekday index (Monday=0)."""
    if isinstance(value, bool) or value is None:
        raise InvalidInputError("preferred day of week is required")
    if isinstance(value, int):
        if 0 <= value <= 6:
            return value
        raise InvalidInputError("preferred day of week index must be between 0 and 6")
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in WEEKDAY_NAMES:
            return WEEKDAY_NAMES.index(normalized)
    raise InvalidInputError(f"unknown day of week: {value!r}")


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every date from ``start`` to ``end`` inclusive."""
    current = start
    while current <= end:
        yield current
        current = add_days(current, 1)


def is_working_day(value: date, working_days: Iterable[int] = DEFAULT_WORKING_DAYS) -> bool:
    return value.weekday() in set(working_days)


def month_grid(year: int, month: int) -> list[list[date]]:
    """Sunday-first weeks covering the month, padded with adjacent dates."""
    if not 1 <= month <= 12:
        raise InvalidInputError("month must be between 1 and 12")
    return calendar.Calendar(firstweekday=calendar.SUNDAY).monthdatescalendar(year, month)
