"""Domain-level validation rules for booking inputs."""

from __future__ import annotations

import math
from typing import Iterable, TYPE_CHECKING

if TYPE_CHECKING:
    from backend.domain.models import Addon, PropertyFacts, SubscriptionPlan


class InvalidInputError(ValueError):
    """Raised when caller-supplied facts are malformed."""


def _is_number(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def validate_property_facts(facts: "PropertyFacts") -> None:
    if not _is_number(facts.sqft) or facts.sqft <= 0:
        raise InvalidInputError("sqft must be a positive number")
    if (
        isinstance(facts.bedrooms, bool)
        or not isinstance(facts.bedrooms, int)
        or facts.bedrooms < 1
    ):
        raise InvalidInputError("bedrooms must be an integer >= 1")
    if not _is_number(facts.bathrooms) or facts.bathrooms < 1:
        raise InvalidInputError("bathrooms must be a number >= 1")
    if (facts.bathrooms * 2) != int(facts.bathrooms * 2):
        raise InvalidInputError("bathrooms must be in 0.5 increments")


def validate_addons(addons: Iterable["Addon"]) -> None:
    seen: set[str] = set()
    for addon in addons:
        if addon.addon_id in seen:
            raise InvalidInputError(f"add-on {addon.addon_id} selected more than once")
        seen.add(addon.addon_id)
        if not _is_number(addon.price) or addon.price < 0:
            raise InvalidInputError(f"add-on {addon.addon_id} price must be >= 0")
        if not _is_number(addon.duration_minutes) or addon.duration_minutes < 0:
            raise InvalidInputError(f"add-on {addon.addon_id} duration must be >= 0")


def validate_subscription_plan(plan: "SubscriptionPlan") -> None:
    if not plan.frequency.is_recurring:
        raise InvalidInputError("one-time bookings do not generate recurring jobs")
    if plan.preferred_day_of_week is None or plan.preferred_day_of_week == "":
        raise InvalidInputError("recurring plans require a preferred day of week")
    if (
        isinstance(plan.months_ahead, bool)
        or not isinstance(plan.months_ahead, int)
        or plan.months_ahead <= 0
    ):
        raise InvalidInputError("months_ahead must be a positive integer")
