"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    admin_token: str | None
    pricing_settings_cache_ttl_seconds: int
    default_subscription_months_ahead: int
    seed_demo_data: bool


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read settings once per process; call ``cache_clear`` to reload."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Cleaning Booking Engine"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_path=Path(os.getenv("DATABASE_PATH", "data/bookings.db")),
        admin_token=os.getenv("ADMIN_TOKEN") or None,
        pricing_settings_cache_ttl_seconds=_env_int(
            "PRICING_SETTINGS_CACHE_TTL_SECONDS", 60
        ),
        default_subscription_months_ahead=_env_int(
            "DEFAULT_SUBSCRIPTION_MONTHS_AHEAD", 3
        ),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
    )
