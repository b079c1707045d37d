"""Typed pricing settings and the read-through cache that supplies them.

The store keeps pricing parameters as loose key/value rows edited from the
admin screen. ``PricingSettings.from_mapping`` turns those rows into a fixed
schema: every known key has a default, and a missing or unparseable value
falls back to that default instead of failing the quote.
"""

from __future__ import annotations

import math
import time
from dataclasses import Field, dataclass, field, fields, replace
from threading import RLock
from typing import Any, Callable, Mapping, Optional

from backend.domain.dates import DEFAULT_WORKING_DAYS, parse_weekday
from backend.domain.constraints import InvalidInputError
from backend.domain.models import Frequency
from backend.utils.logger import get_logger


logger = get_logger(__name__)

MONTHLY_RULE_FIRST_WEEKDAY = "first_weekday"
MONTHLY_RULE_SAME_ORDINAL = "same_ordinal"
MONTHLY_RULES = (MONTHLY_RULE_FIRST_WEEKDAY, MONTHLY_RULE_SAME_ORDINAL)

# Value kinds drive parsing and range checks in ``from_mapping``.
_AMOUNT = "amount"
_FRACTION = "fraction"
_MULTIPLIER = "multiplier"
_COUNT = "count"

_WINDOW_KEYS = ("booking_lead_days", "booking_max_days")


def _setting(default: Any, kind: str) -> Any:
    return field(default=default, metadata={"kind": kind})


@dataclass(frozen=True)
class PricingSettings:
    base_rate_per_500_sqft: float = _setting(40, _AMOUNT)
    min_first_clean_price: float = _setting(150, _AMOUNT)
    min_recurring_price: float = _setting(120, _AMOUNT)
    first_clean_multiplier: float = _setting(1.25, _MULTIPLIER)
    extra_bathroom_price: float = _setting(15, _AMOUNT)
    extra_bedroom_price: float = _setting(10, _AMOUNT)
    included_bathrooms: float = _setting(2, _AMOUNT)
    included_bedrooms: float = _setting(3, _AMOUNT)
    weekly_discount: float = _setting(0.35, _FRACTION)
    biweekly_discount: float = _setting(0.20, _FRACTION)
    monthly_discount: float = _setting(0.10, _FRACTION)
    deposit_percentage: float = _setting(0.20, _FRACTION)
    base_minutes_per_500_sqft: float = _setting(30, _AMOUNT)
    extra_bathroom_minutes: float = _setting(15, _AMOUNT)
    extra_bedroom_minutes: float = _setting(10, _AMOUNT)
    first_clean_hours_multiplier: float = _setting(1.5, _MULTIPLIER)
    solo_cleaner_max_sqft: float = _setting(1999, _AMOUNT)
    cancellation_24_48h: float = _setting(25, _AMOUNT)
    booking_lead_days: int = _setting(7, _COUNT)
    booking_max_days: int = _setting(60, _COUNT)
    working_days: frozenset[int] = field(default=DEFAULT_WORKING_DAYS)
    monthly_recurrence_rule: str = field(default=MONTHLY_RULE_FIRST_WEEKDAY)

    def discount_for(self, frequency: Frequency) -> float:
        discounts = {
            Frequency.WEEKLY: self.weekly_discount,
            Frequency.BIWEEKLY: self.biweekly_discount,
            Frequency.MONTHLY: self.monthly_discount,
        }
        return discounts.get(frequency, 0.0)

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "PricingSettings":
        """Build settings from loose key/value rows, defaulting bad entries."""
        raw = raw or {}
        defaults = cls()
        values: dict[str, Any] = {}

        for setting_field in fields(cls):
            name = setting_field.name
            default = getattr(defaults, name)
            if name not in raw:
                logger.debug("Pricing setting missing, using default | key=%s", name)
                continue

            try:
                values[name] = _parse_value(setting_field, raw[name])
            except (TypeError, ValueError) as exc:
                logger.warning(
                    "Malformed pricing setting, using default | key=%s | value=%r | default=%r | error=%s",
                    name,
                    raw[name],
                    default,
                    exc,
                )

        conflicting = cls.conflicting_keys(values)
        if conflicting:
            logger.warning(
                "Inconsistent booking window, using defaults | booking_lead_days=%r | booking_max_days=%r",
                values.get("booking_lead_days"),
                values.get("booking_max_days"),
            )
            for name in conflicting:
                values.pop(name, None)

        return replace(defaults, **values)

    @classmethod
    def invalid_keys(cls, raw: Mapping[str, Any]) -> list[str]:
        """Keys in ``raw`` whose values would be replaced by the default."""
        by_name = {setting_field.name: setting_field for setting_field in fields(cls)}
        invalid = []
        for name, value in raw.items():
            if name not in by_name:
                invalid.append(name)
                continue
            try:
                _parse_value(by_name[name], value)
            except (TypeError, ValueError):
                invalid.append(name)
        return sorted(invalid)

    @classmethod
    def conflicting_keys(cls, raw: Mapping[str, Any]) -> list[str]:
        """Keys whose combined values break ``booking_lead_days <= booking_max_days``.

        Missing or unparseable entries are taken at their default.
        """
        defaults = cls()
        by_name = {setting_field.name: setting_field for setting_field in fields(cls)}
        bounds: dict[str, int] = {}
        for name in _WINDOW_KEYS:
            default = getattr(defaults, name)
            try:
                bounds[name] = _parse_value(by_name[name], raw[name]) if name in raw else default
            except (TypeError, ValueError):
                bounds[name] = default
        if bounds["booking_lead_days"] > bounds["booking_max_days"]:
            return list(_WINDOW_KEYS)
        return []

    def to_mapping(self) -> dict[str, Any]:
        mapping: dict[str, Any] = {}
        for setting_field in fields(self):
            value = getattr(self, setting_field.name)
            if isinstance(value, frozenset):
                value = sorted(value)
            mapping[setting_field.name] = value
        return mapping


def _parse_value(setting_field: Field, value: Any) -> Any:
    if setting_field.name == "working_days":
        return _parse_working_days(value)
    if setting_field.name == "monthly_recurrence_rule":
        return _parse_monthly_rule(value)
    return _parse_numeric(value, setting_field.metadata["kind"])


def _parse_numeric(value: Any, kind: str) -> float | int:
    if isinstance(value, bool):
        raise ValueError("boolean is not a numeric setting")
    if isinstance(value, str):
        value = float(value.strip())
    if not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {type(value).__name__}")
    number = float(value)
    if not math.isfinite(number) or number < 0:
        raise ValueError("setting must be a finite non-negative number")
    if kind == _FRACTION and number > 1:
        raise ValueError("fraction settings must be between 0 and 1")
    if kind == _MULTIPLIER and number <= 0:
        raise ValueError("multiplier settings must be > 0")
    if kind == _COUNT:
        if number != int(number):
            raise ValueError("count settings must be whole numbers")
        return int(number)
    return int(number) if number.is_integer() else number


def _parse_working_days(value: Any) -> frozenset[int]:
    if isinstance(value, str):
        value = [item for item in value.split(",") if item.strip()]
    if not isinstance(value, (list, tuple, set, frozenset)) or not value:
        raise ValueError("working_days must be a non-empty list of weekdays")
    try:
        return frozenset(parse_weekday(item) for item in value)
    except InvalidInputError as exc:
        raise ValueError(str(exc)) from exc


def _parse_monthly_rule(value: Any) -> str:
    if not isinstance(value, str) or value.strip().lower() not in MONTHLY_RULES:
        raise ValueError(f"monthly_recurrence_rule must be one of {MONTHLY_RULES}")
    return value.strip().lower()


class SettingsCache:
    """Read-through cache for pricing settings with explicit invalidation.

    One instance is created per application and handed to the services that
    need it; tests build their own with a fixed loader and clock.
    """

    def __init__(
        self,
        loader: Callable[[], Mapping[str, Any]],
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = RLock()
        self._cached: Optional[PricingSettings] = None
        self._loaded_at: Optional[float] = None

    def get(self, force_refresh: bool = False) -> PricingSettings:
        with self._lock:
            now = self._clock()
            if (
                not force_refresh
                and self._cached is not None
                and self._loaded_at is not None
                and now - self._loaded_at < self._ttl_seconds
            ):
                return self._cached

            try:
                raw = self._loader()
            except RuntimeError as exc:
                logger.warning("Pricing settings unavailable, using defaults | error=%s", exc)
                return self._cached or PricingSettings()

            self._cached = PricingSettings.from_mapping(raw)
            self._loaded_at = now
            logger.debug("Pricing settings loaded | ttl_seconds=%s", self._ttl_seconds)
            return self._cached

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None
            self._loaded_at = None
