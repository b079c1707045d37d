"""Tests for booking input validation."""

from __future__ import annotations

import pytest

from backend.domain.constraints import (
    InvalidInputError,
    validate_addons,
    validate_property_facts,
    validate_subscription_plan,
)
from backend.domain.models import Addon, Frequency, PropertyFacts, SubscriptionPlan, TimeSlot


def plan(**overrides) -> SubscriptionPlan:
    """Return a valid baseline SubscriptionPlan, optionally overriding fields."""
    defaults = {
        "frequency": Frequency.WEEKLY,
        "preferred_day_of_week": "monday",
        "preferred_time_slot": TimeSlot.MORNING,
        "months_ahead": 3,
    }
    defaults.update(overrides)
    return SubscriptionPlan(**defaults)


# --- Property facts ---

def test_valid_property_facts_pass() -> None:
    validate_property_facts(PropertyFacts(sqft=1200, bedrooms=2, bathrooms=1.5))


@pytest.mark.parametrize("sqft", [0, -10, float("nan"), float("inf")])
def test_non_positive_or_non_finite_sqft_raises(sqft: float) -> None:
    with pytest.raises(InvalidInputError):
        validate_property_facts(PropertyFacts(sqft=sqft, bedrooms=2, bathrooms=1))


@pytest.mark.parametrize("bedrooms", [0, 2.5, True])
def test_bad_bedrooms_raise(bedrooms) -> None:
    with pytest.raises(InvalidInputError):
        validate_property_facts(PropertyFacts(sqft=1200, bedrooms=bedrooms, bathrooms=1))


@pytest.mark.parametrize("bathrooms", [0.5, 1.25, 2.3])
def test_bad_bathrooms_raise(bathrooms: float) -> None:
    with pytest.raises(InvalidInputError):
        validate_property_facts(PropertyFacts(sqft=1200, bedrooms=2, bathrooms=bathrooms))


# --- Add-ons ---

def test_negative_addon_price_raises() -> None:
    with pytest.raises(InvalidInputError):
        validate_addons([Addon(addon_id="oven", name="Oven", price=-1, duration_minutes=20)])


def test_negative_addon_duration_raises() -> None:
    with pytest.raises(InvalidInputError):
        validate_addons([Addon(addon_id="oven", name="Oven", price=25, duration_minutes=-5)])


# --- Subscription plans ---

def test_valid_plan_passes() -> None:
    validate_subscription_plan(plan())


def test_onetime_plan_raises() -> None:
    with pytest.raises(InvalidInputError):
        validate_subscription_plan(plan(frequency=Frequency.ONETIME))


@pytest.mark.parametrize("day", [None, ""])
def test_missing_preferred_day_raises(day) -> None:
    with pytest.raises(InvalidInputError):
        validate_subscription_plan(plan(preferred_day_of_week=day))


@pytest.mark.parametrize("months_ahead", [0, -1, 1.5])
def test_non_positive_months_ahead_raises(months_ahead) -> None:
    with pytest.raises(InvalidInputError):
        validate_subscription_plan(plan(months_ahead=months_ahead))
