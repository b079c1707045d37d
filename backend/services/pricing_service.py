"""Quote pricing, duration estimation and cancellation fees."""

from __future__ import annotations

import math
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

from backend.domain.constraints import InvalidInputError, validate_addons, validate_property_facts
from backend.domain.models import (
    Addon,
    CancellationFee,
    DurationEstimate,
    Frequency,
    PriceBreakdown,
    PropertyFacts,
)
from backend.repository.data_repository import DataRepository
from backend.services.settings_service import PricingSettings, SettingsCache
from backend.utils.logger import get_logger


logger = get_logger(__name__)

SQFT_UNIT = 500
DURATION_STEP_MINUTES = 30

FREE_CANCELLATION_HOURS = 48
LATE_CANCELLATION_HOURS = 24

BAND_FREE = "free"
BAND_LATE = "late"
BAND_FULL = "full"


def round_half_away(value: float) -> int:
    """Round to a whole number, sending .5 away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def size_units(facts: PropertyFacts) -> int:
    return math.ceil(facts.sqft / SQFT_UNIT)


def _extra_rooms(facts: PropertyFacts, settings: PricingSettings) -> tuple[float, float]:
    extra_bathrooms = max(0.0, facts.bathrooms - settings.included_bathrooms)
    extra_bedrooms = max(0.0, facts.bedrooms - settings.included_bedrooms)
    return extra_bathrooms, extra_bedrooms


def compute_base_price(facts: PropertyFacts, settings: PricingSettings) -> float:
    extra_bathrooms, extra_bedrooms = _extra_rooms(facts, settings)
    return (
        size_units(facts) * settings.base_rate_per_500_sqft
        + extra_bathrooms * settings.extra_bathroom_price
        + extra_bedrooms * settings.extra_bedroom_price
    )


def compute_price(
    facts: PropertyFacts,
    frequency: Frequency,
    addons: Sequence[Addon],
    settings: PricingSettings,
) -> PriceBreakdown:
    """Price a first clean plus the per-visit price for the chosen cadence."""
    validate_property_facts(facts)
    validate_addons(addons)

    base_price = compute_base_price(facts, settings)
    first_clean_price = max(
        round_half_away(base_price * settings.first_clean_multiplier),
        round_half_away(settings.min_first_clean_price),
    )
    addons_price = round_half_away(sum(addon.price for addon in addons))
    first_clean_total = first_clean_price + addons_price

    discount = settings.discount_for(frequency)
    recurring_price = max(
        round_half_away(base_price * (1 - discount)),
        round_half_away(settings.min_recurring_price),
    )
    savings_per_visit = max(0, first_clean_price - recurring_price)

    deposit = round_half_away(first_clean_total * settings.deposit_percentage)
    remaining = first_clean_total - deposit

    return PriceBreakdown(
        frequency=frequency,
        base_price=round_half_away(base_price),
        discount=discount,
        first_clean_price=first_clean_price,
        addons_price=addons_price,
        first_clean_total=first_clean_total,
        recurring_price=recurring_price,
        savings_per_visit=savings_per_visit,
        deposit=deposit,
        remaining=remaining,
    )


def estimate_duration(
    facts: PropertyFacts,
    is_first_clean: bool,
    addons: Sequence[Addon],
    settings: PricingSettings,
) -> int:
    """Minutes on site, rounded up to the next half hour."""
    validate_property_facts(facts)
    validate_addons(addons)

    extra_bathrooms, extra_bedrooms = _extra_rooms(facts, settings)
    minutes = (
        size_units(facts) * settings.base_minutes_per_500_sqft
        + extra_bathrooms * settings.extra_bathroom_minutes
        + extra_bedrooms * settings.extra_bedroom_minutes
    )
    if is_first_clean:
        minutes *= settings.first_clean_hours_multiplier
    minutes += sum(addon.duration_minutes for addon in addons)

    # Guard against float noise such as 90.00000000001 bumping a full step.
    steps = math.ceil(round(minutes / DURATION_STEP_MINUTES, 9))
    return max(DURATION_STEP_MINUTES, steps * DURATION_STEP_MINUTES)


def recommended_cleaner_count(facts: PropertyFacts, settings: PricingSettings) -> int:
    return 2 if facts.sqft > settings.solo_cleaner_max_sqft else 1


def compute_cancellation_fee(
    scheduled_at: datetime | date,
    now: datetime,
    job_price: float,
    settings: PricingSettings,
    *,
    no_show: bool = False,
) -> CancellationFee:
    """Classify a cancellation into free, late-fee or full-charge bands.

    Exactly 48 hours out is still free and exactly 24 hours out still pays
    only the flat late fee.
    """
    if job_price < 0:
        raise InvalidInputError("job_price must be >= 0")
    if not isinstance(scheduled_at, datetime):
        scheduled_at = datetime.combine(scheduled_at, time.min)
    if (scheduled_at.tzinfo is None) != (now.tzinfo is None):
        raise InvalidInputError("scheduled_at and now must both be naive or both be aware")

    if no_show:
        return CancellationFee(fee=job_price, band=BAND_FULL, reason="No-show: full charge")

    hours_until_job = (scheduled_at - now).total_seconds() / 3600
    if hours_until_job >= FREE_CANCELLATION_HOURS:
        return CancellationFee(
            fee=0, band=BAND_FREE, reason="Free cancellation (48+ hours notice)"
        )
    if hours_until_job >= LATE_CANCELLATION_HOURS:
        late_fee = min(settings.cancellation_24_48h, job_price)
        return CancellationFee(
            fee=late_fee,
            band=BAND_LATE,
            reason=f"${late_fee:g} late cancellation fee (24-48 hours notice)",
        )
    return CancellationFee(
        fee=job_price, band=BAND_FULL, reason="Full charge (less than 24 hours notice)"
    )


class PricingService:
    """Resolves add-ons and current settings before calling the pure pricing functions."""

    def __init__(
        self,
        repository: DataRepository,
        settings_cache: SettingsCache,
    ) -> None:
        self._repository = repository
        self._settings_cache = settings_cache

    def resolve_addons(self, addon_ids: Optional[Iterable[str]]) -> list[Addon]:
        requested = list(addon_ids or [])
        if len(set(requested)) != len(requested):
            raise InvalidInputError("an add-on may be selected at most once")
        if not requested:
            return []
        catalogue = {addon.addon_id: addon for addon in self._repository.list_addons()}
        unknown = [addon_id for addon_id in requested if addon_id not in catalogue]
        if unknown:
            raise InvalidInputError(f"unknown add-on ids: {', '.join(unknown)}")
        return [catalogue[addon_id] for addon_id in requested]

    def quote(
        self,
        facts: PropertyFacts,
        frequency: Frequency,
        addon_ids: Optional[Iterable[str]] = None,
    ) -> tuple[PriceBreakdown, DurationEstimate, DurationEstimate, int]:
        settings = self._settings_cache.get()
        addons = self.resolve_addons(addon_ids)
        breakdown = compute_price(facts, frequency, addons, settings)
        first_clean = DurationEstimate(
            minutes=estimate_duration(facts, True, addons, settings),
            is_first_clean=True,
        )
        recurring = DurationEstimate(
            minutes=estimate_duration(facts, False, [], settings),
            is_first_clean=False,
        )
        cleaners = recommended_cleaner_count(facts, settings)
        logger.info(
            "Quote computed | sqft=%s | bedrooms=%s | bathrooms=%s | frequency=%s | first_clean_total=%s | recurring_price=%s",
            facts.sqft,
            facts.bedrooms,
            facts.bathrooms,
            frequency.value,
            breakdown.first_clean_total,
            breakdown.recurring_price,
        )
        return breakdown, first_clean, recurring, cleaners

    def duration(
        self,
        facts: PropertyFacts,
        is_first_clean: bool,
        addon_ids: Optional[Iterable[str]] = None,
    ) -> DurationEstimate:
        settings = self._settings_cache.get()
        addons = self.resolve_addons(addon_ids)
        return DurationEstimate(
            minutes=estimate_duration(facts, is_first_clean, addons, settings),
            is_first_clean=is_first_clean,
        )

    def cancellation_fee(
        self,
        scheduled_at: datetime | date,
        now: datetime,
        job_price: float,
        *,
        no_show: bool = False,
    ) -> CancellationFee:
        return compute_cancellation_fee(
            scheduled_at,
            now,
            job_price,
            self._settings_cache.get(),
            no_show=no_show,
        )
