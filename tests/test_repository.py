from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date

import pytest

from backend.domain.models import STATUS_CANCELLED, TimeSlot
from backend.repository.data_repository import (
    DEFAULT_ADDONS,
    DEMO_CLEANERS,
    DataRepository,
    SlotCapacityExceededError,
)
from backend.utils.config import get_settings


DAY = date(2026, 4, 15)


def _build_repository(tmp_path, filename: str) -> DataRepository:
    settings = replace(get_settings(), database_path=tmp_path / filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    return repository


def _claim(repository: DataRepository, customer_id: str, slot: TimeSlot = TimeSlot.MORNING) -> int:
    return repository.claim_slot(
        customer_id=customer_id,
        scheduled_date=DAY,
        time_slot=slot,
        duration_minutes=120,
        price=160,
    )


def test_claim_slot_stops_at_capacity(tmp_path):
    repository = _build_repository(tmp_path, "claim.db")
    repository.create_cleaner("Avery")
    repository.create_cleaner("Jordan")

    _claim(repository, "cust-1")
    _claim(repository, "cust-2")
    with pytest.raises(SlotCapacityExceededError):
        _claim(repository, "cust-3")

    # The other half-day slot has its own capacity.
    _claim(repository, "cust-3", TimeSlot.AFTERNOON)
    assert repository.count_jobs() == 3


def test_claim_slot_counts_time_off_and_inactive_cleaners(tmp_path):
    repository = _build_repository(tmp_path, "time_off.db")
    on_leave = repository.create_cleaner("Avery")
    repository.create_cleaner("Jordan", active=False)
    repository.create_time_off(on_leave, date(2026, 4, 14), date(2026, 4, 16), "vacation")

    with pytest.raises(SlotCapacityExceededError):
        _claim(repository, "cust-1")
    assert repository.count_jobs() == 0


def test_cancelled_job_releases_capacity(tmp_path):
    repository = _build_repository(tmp_path, "cancel.db")
    repository.create_cleaner("Avery")

    job_id = _claim(repository, "cust-1")
    repository.update_job_status(job_id, STATUS_CANCELLED)
    _claim(repository, "cust-2")

    statuses = [job.status for job in repository.list_jobs(DAY, DAY)]
    assert sorted(statuses) == ["cancelled", "scheduled"]


def test_list_time_off_returns_overlapping_intervals(tmp_path):
    repository = _build_repository(tmp_path, "overlap.db")
    cleaner_id = repository.create_cleaner("Avery")
    repository.create_time_off(cleaner_id, date(2026, 4, 1), date(2026, 4, 10))
    repository.create_time_off(cleaner_id, date(2026, 4, 20), date(2026, 4, 22))

    intervals = repository.list_time_off(date(2026, 4, 10), date(2026, 4, 19))

    assert len(intervals) == 1
    assert intervals[0].start_date == date(2026, 4, 1)
    assert intervals[0].covers(date(2026, 4, 10))


def test_pricing_settings_round_trip_as_json(tmp_path):
    repository = _build_repository(tmp_path, "settings.db")
    repository.upsert_pricing_settings({"weekly_discount": 0.3, "working_days": [0, 2, 4]})
    repository.upsert_pricing_settings({"weekly_discount": 0.25})

    assert repository.load_pricing_settings() == {
        "weekly_discount": 0.25,
        "working_days": [0, 2, 4],
    }


def test_seed_demo_data_is_idempotent(tmp_path):
    repository = _build_repository(tmp_path, "seed.db")
    repository.seed_demo_data()
    repository.seed_demo_data()

    assert len(repository.list_cleaners()) == len(DEMO_CLEANERS)
    assert [addon.addon_id for addon in repository.list_addons()] == sorted(
        addon_id for addon_id, *_ in DEFAULT_ADDONS
    )


def test_concurrent_claims_for_last_unit_book_once(tmp_path):
    repository = _build_repository(tmp_path, "race.db")
    repository.create_cleaner("Avery")
    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    lock = threading.Lock()

    def _book(customer_id: str) -> None:
        barrier.wait()
        try:
            _claim(repository, customer_id)
            result = "booked"
        except SlotCapacityExceededError:
            result = "full"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=_book, args=(f"cust-{n}",)) for n in (1, 2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["booked", "full"]
    assert repository.count_jobs() == 1
