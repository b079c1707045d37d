from __future__ import annotations

from datetime import date, datetime

import pytest

from backend.domain.constraints import InvalidInputError
from backend.domain.dates import (
    add_months,
    format_iso_date,
    nth_weekday_of_month,
    parse_iso_date,
    parse_weekday,
    to_date,
    weekday_ordinal,
)


def test_add_months_clamps_to_month_end() -> None:
    assert add_months(date(2026, 1, 31), 1) == date(2026, 2, 28)
    assert add_months(date(2028, 1, 31), 1) == date(2028, 2, 29)
    assert add_months(date(2026, 11, 15), 3) == date(2027, 2, 15)


def test_nth_weekday_clamps_to_last_occurrence() -> None:
    assert nth_weekday_of_month(2026, 3, 0, 3) == date(2026, 3, 16)
    assert nth_weekday_of_month(2026, 4, 0, 5) == date(2026, 4, 27)


def test_weekday_ordinal() -> None:
    assert weekday_ordinal(date(2026, 3, 2)) == 1
    assert weekday_ordinal(date(2026, 3, 30)) == 5


def test_iso_dates_are_timezone_naive() -> None:
    assert parse_iso_date("2026-03-02T23:30:00-08:00") == date(2026, 3, 2)
    assert format_iso_date(date(2026, 3, 2)) == "2026-03-02"
    assert to_date(datetime(2026, 3, 2, 23, 59)) == date(2026, 3, 2)


def test_malformed_iso_date_raises() -> None:
    with pytest.raises(InvalidInputError):
        parse_iso_date("03/02/2026")


@pytest.mark.parametrize("value,expected", [("Monday", 0), (" sunday ", 6), (3, 3)])
def test_parse_weekday(value, expected: int) -> None:
    assert parse_weekday(value) == expected
