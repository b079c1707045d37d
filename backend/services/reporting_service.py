"""Capacity utilisation summaries for the admin schedule view."""

from __future__ import annotations

from datetime import date
from typing import Sequence

import numpy as np
import pandas as pd

from backend.domain.constraints import InvalidInputError
from backend.domain.dates import format_iso_date, iter_days
from backend.domain.models import CleanerRecord, ScheduledJob, TimeOffInterval, TimeSlot
from backend.repository.data_repository import DataRepository
from backend.services.availability_service import compute_slot_availability
from backend.utils.logger import get_logger


logger = get_logger(__name__)

MAX_REPORT_DAYS = 366

_DAILY_COLUMNS = [
    "date",
    "time_slot",
    "capacity",
    "booked",
    "slots_remaining",
    "utilization",
]


def summarize_utilization(
    jobs: Sequence[ScheduledJob],
    cleaners: Sequence[CleanerRecord],
    time_off: Sequence[TimeOffInterval],
    start: date,
    end: date,
) -> pd.DataFrame:
    """One row per day and slot with capacity, bookings and utilisation."""
    if end < start:
        raise InvalidInputError("end must not be before start")
    if (end - start).days + 1 > MAX_REPORT_DAYS:
        raise InvalidInputError(f"report range is limited to {MAX_REPORT_DAYS} days")

    jobs_by_day: dict[date, list[ScheduledJob]] = {}
    for job in jobs:
        jobs_by_day.setdefault(job.scheduled_date, []).append(job)

    rows = []
    for day in iter_days(start, end):
        availability = compute_slot_availability(
            day, jobs_by_day.get(day, []), cleaners, time_off
        )
        for slot in TimeSlot:
            slot_availability = availability.slots[slot]
            rows.append(
                {
                    "date": pd.Timestamp(day),
                    "time_slot": slot.value,
                    "capacity": slot_availability.capacity,
                    "booked": slot_availability.booked,
                    "slots_remaining": slot_availability.slots_remaining,
                }
            )

    frame = pd.DataFrame(rows, columns=_DAILY_COLUMNS[:-1])
    # Overbooked slots (capacity dropped after booking) report above 1.0.
    frame["utilization"] = np.where(
        frame["capacity"] > 0,
        frame["booked"] / frame["capacity"].where(frame["capacity"] > 0, 1),
        0.0,
    )
    return frame[_DAILY_COLUMNS]


def weekly_utilization(frame: pd.DataFrame) -> pd.DataFrame:
    """Aggregate a daily frame into Monday-start weeks."""
    if frame.empty:
        return pd.DataFrame(
            columns=["week_start", "capacity", "booked", "slots_remaining", "utilization"]
        )
    weekly = frame.copy()
    weekly["week_start"] = weekly["date"] - pd.to_timedelta(
        weekly["date"].dt.dayofweek, unit="D"
    )
    grouped = (
        weekly.groupby("week_start", sort=True)[["capacity", "booked", "slots_remaining"]]
        .sum()
        .reset_index()
    )
    grouped["utilization"] = np.where(
        grouped["capacity"] > 0,
        grouped["booked"] / grouped["capacity"].where(grouped["capacity"] > 0, 1),
        0.0,
    )
    return grouped


class ReportingService:
    def __init__(self, repository: DataRepository) -> None:
        self._repository = repository

    def utilization_report(self, start: date, end: date) -> dict[str, list[dict[str, object]]]:
        daily = summarize_utilization(
            self._repository.list_jobs(start, end),
            self._repository.list_cleaners(),
            self._repository.list_time_off(start, end),
            start,
            end,
        )
        weekly = weekly_utilization(daily)
        logger.info(
            "Utilization report built | start=%s | end=%s | rows=%s | mean_utilization=%.3f",
            start,
            end,
            len(daily),
            float(daily["utilization"].mean()) if not daily.empty else 0.0,
        )
        return {
            "daily": [
                {
                    "date": format_iso_date(row.date.date()),
                    "time_slot": row.time_slot,
                    "capacity": int(row.capacity),
                    "booked": int(row.booked),
                    "slots_remaining": int(row.slots_remaining),
                    "utilization": round(float(row.utilization), 4),
                }
                for row in daily.itertuples(index=False)
            ],
            "weekly": [
                {
                    "week_start": format_iso_date(row.week_start.date()),
                    "capacity": int(row.capacity),
                    "booked": int(row.booked),
                    "slots_remaining": int(row.slots_remaining),
                    "utilization": round(float(row.utilization), 4),
                }
                for row in weekly.itertuples(index=False)
            ],
        }
