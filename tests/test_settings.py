"""Tests for pricing settings parsing and the read-through cache."""

from __future__ import annotations

import pytest

from backend.services.settings_service import (
    MONTHLY_RULE_SAME_ORDINAL,
    PricingSettings,
    SettingsCache,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_empty_mapping_uses_documented_defaults() -> None:
    settings = PricingSettings.from_mapping({})
    assert settings == PricingSettings()
    assert settings.base_rate_per_500_sqft == 40
    assert settings.deposit_percentage == 0.20
    assert settings.working_days == frozenset({0, 1, 2, 3, 4})


def test_numeric_strings_are_accepted() -> None:
    settings = PricingSettings.from_mapping(
        {"base_rate_per_500_sqft": "45", "weekly_discount": " 0.3 "}
    )
    assert settings.base_rate_per_500_sqft == 45
    assert settings.weekly_discount == 0.3


@pytest.mark.parametrize(
    "key,value",
    [
        ("base_rate_per_500_sqft", "abc"),
        ("min_first_clean_price", -5),
        ("weekly_discount", 1.5),
        ("first_clean_multiplier", 0),
        ("booking_lead_days", 2.5),
        ("extra_bedroom_price", True),
        ("deposit_percentage", None),
        ("working_days", []),
        ("monthly_recurrence_rule", "every_other"),
    ],
)
def test_malformed_values_fall_back_to_default(key: str, value: object) -> None:
    settings = PricingSettings.from_mapping({key: value})
    assert getattr(settings, key) == getattr(PricingSettings(), key)


def test_unknown_keys_are_ignored() -> None:
    assert PricingSettings.from_mapping({"surge_multiplier": 2}) == PricingSettings()


def test_working_days_accept_names_and_indexes() -> None:
    settings = PricingSettings.from_mapping({"working_days": ["monday", 2, "Saturday"]})
    assert settings.working_days == frozenset({0, 2, 5})
    assert settings.to_mapping()["working_days"] == [0, 2, 5]


def test_monthly_rule_is_case_insensitive() -> None:
    settings = PricingSettings.from_mapping({"monthly_recurrence_rule": "Same_Ordinal"})
    assert settings.monthly_recurrence_rule == MONTHLY_RULE_SAME_ORDINAL


def test_invalid_keys_reports_unknown_and_unparseable() -> None:
    invalid = PricingSettings.invalid_keys(
        {"weekly_discount": 2, "base_rate_per_500_sqft": 50, "bogus": 1}
    )
    assert invalid == ["bogus", "weekly_discount"]


def test_cache_serves_cached_value_within_ttl() -> None:
    clock = FakeClock()
    calls = []

    def loader():
        calls.append(1)
        return {"base_rate_per_500_sqft": 40 + len(calls)}

    cache = SettingsCache(loader, ttl_seconds=60, clock=clock)
    assert cache.get().base_rate_per_500_sqft == 41
    clock.now = 59
    assert cache.get().base_rate_per_500_sqft == 41
    clock.now = 60
    assert cache.get().base_rate_per_500_sqft == 42
    assert len(calls) == 2


def test_cache_invalidate_forces_reload() -> None:
    stored = {"min_recurring_price": 100}
    cache = SettingsCache(lambda: dict(stored), ttl_seconds=3600, clock=FakeClock())

    assert cache.get().min_recurring_price == 100
    stored["min_recurring_price"] = 110
    assert cache.get().min_recurring_price == 100
    cache.invalidate()
    assert cache.get().min_recurring_price == 110


def test_cache_falls_back_when_loader_fails() -> None:
    state = {"fail": False}

    def loader():
        if state["fail"]:
            raise RuntimeError("database is locked")
        return {"cancellation_24_48h": 30}

    clock = FakeClock()
    cache = SettingsCache(loader, ttl_seconds=1, clock=clock)
    assert cache.get().cancellation_24_48h == 30

    state["fail"] = True
    clock.now = 5
    assert cache.get().cancellation_24_48h == 30

    cache.invalidate()
    assert cache.get() == PricingSettings()


@pytest.mark.parametrize(
    "raw",
    [
        {"booking_lead_days": 90},
        {"booking_max_days": 3},
        {"booking_lead_days": 30, "booking_max_days": "10"},
    ],
)
def test_inverted_booking_window_falls_back_to_defaults(raw) -> None:
    settings = PricingSettings.from_mapping(raw)
    assert settings.booking_lead_days == 7
    assert settings.booking_max_days == 60


def test_consistent_booking_window_is_kept() -> None:
    settings = PricingSettings.from_mapping({"booking_lead_days": 2, "booking_max_days": 2})
    assert (settings.booking_lead_days, settings.booking_max_days) == (2, 2)


def test_conflicting_keys_uses_defaults_for_missing_bounds() -> None:
    assert PricingSettings.conflicting_keys({"booking_lead_days": 61}) == [
        "booking_lead_days",
        "booking_max_days",
    ]
    assert PricingSettings.conflicting_keys({"booking_lead_days": 60}) == []
    assert PricingSettings.conflicting_keys({"booking_max_days": "oops"}) == []
