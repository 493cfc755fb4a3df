"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_path(name: str) -> Optional[Path]:
    raw = os.getenv(name)
    if not raw:
        return None
    return Path(raw)


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    hotel_timezone: str
    business_day_cutoff_hour: int
    allocation_max_write_attempts: int
    feed_fetch_timeout_seconds: float
    feed_skip_past_events: bool
    feed_sync_max_workers: int
    feed_export_calendar_name: str
    room_alias_table_path: Optional[Path]
    room_catalog_seed_path: Optional[Path]


def validate_settings(settings: Settings) -> None:
    if not 0 <= settings.business_day_cutoff_hour <= 23:
        raise ValueError("business_day_cutoff_hour must be between 0 and 23")
    if settings.allocation_max_write_attempts < 1:
        raise ValueError("allocation_max_write_attempts must be >= 1")
    if settings.feed_fetch_timeout_seconds <= 0:
        raise ValueError("feed_fetch_timeout_seconds must be > 0")
    if settings.feed_sync_max_workers < 1:
        raise ValueError("feed_sync_max_workers must be >= 1")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process from environment variables."""
    settings = Settings(
        app_name=os.getenv("APP_NAME", "Lodging Allocation Engine"),
        app_version=os.getenv("APP_VERSION", "0.1.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_path=Path(
            os.getenv(
                "LODGING_DATABASE_PATH",
                str(PROJECT_ROOT / "data" / "lodging.db"),
            )
        ),
        hotel_timezone=os.getenv("HOTEL_TIMEZONE", "America/Guatemala"),
        business_day_cutoff_hour=int(os.getenv("BUSINESS_DAY_CUTOFF_HOUR", "6")),
        allocation_max_write_attempts=int(os.getenv("ALLOCATION_MAX_WRITE_ATTEMPTS", "3")),
        feed_fetch_timeout_seconds=float(os.getenv("FEED_FETCH_TIMEOUT_SECONDS", "15")),
        feed_skip_past_events=_env_bool("FEED_SKIP_PAST_EVENTS", True),
        feed_sync_max_workers=int(os.getenv("FEED_SYNC_MAX_WORKERS", "4")),
        feed_export_calendar_name=os.getenv("FEED_EXPORT_CALENDAR_NAME", "Mandalas Hostal"),
        room_alias_table_path=_env_path("ROOM_ALIAS_TABLE_PATH"),
        room_catalog_seed_path=_env_path("ROOM_CATALOG_SEED_PATH"),
    )
    validate_settings(settings)
    return settings
