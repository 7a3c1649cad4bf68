"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _env_optional_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None:
        return default
    if not value.strip() or value.strip().lower() == "none":
        return None
    return _env_int(name, 0)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_path: Path
    log_level: str
    log_format: str
    admin_token: Optional[str]
    admin_session_ttl_minutes: int
    seed_demo_rooms: bool
    sqlite_busy_timeout_seconds: float

    # Values used to seed RuleConfig row 1 on first startup.
    default_open_hour: int
    default_close_hour: int
    default_time_slot_interval_minutes: int
    default_min_duration_minutes: int
    default_max_duration_minutes: int
    default_max_active_bookings: int
    default_max_consecutive: Optional[int]
    default_cooldown_minutes: Optional[int]
    default_min_notice_minutes: int
    default_max_days_ahead: int

    policy_enforce_slot_alignment: bool
    search_max_window_hours: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests call ``cache_clear`` to rebuild."""
    database_path = Path(
        _env_str("ROOMBOOK_DATABASE_PATH", str(PROJECT_ROOT / "data" / "roombook.db"))
    )
    admin_token = os.getenv("ADMIN_TOKEN") or None
    return Settings(
        app_name=_env_str("ROOMBOOK_APP_NAME", "Room Booking Service"),
        app_version=_env_str("ROOMBOOK_APP_VERSION", "1.0.0"),
        database_path=database_path,
        log_level=_env_str("LOG_LEVEL", "INFO"),
        log_format=_env_str(
            "LOG_FORMAT",
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        ),
        admin_token=admin_token,
        admin_session_ttl_minutes=_env_int("ROOMBOOK_ADMIN_SESSION_TTL_MINUTES", 480),
        seed_demo_rooms=_env_bool("ROOMBOOK_SEED_DEMO_ROOMS", True),
        sqlite_busy_timeout_seconds=float(_env_int("ROOMBOOK_SQLITE_BUSY_TIMEOUT", 5)),
        default_open_hour=_env_int("ROOMBOOK_OPEN_HOUR", 8),
        default_close_hour=_env_int("ROOMBOOK_CLOSE_HOUR", 22),
        default_time_slot_interval_minutes=_env_int("ROOMBOOK_SLOT_MINUTES", 15),
        default_min_duration_minutes=_env_int("ROOMBOOK_MIN_DURATION_MINUTES", 30),
        default_max_duration_minutes=_env_int("ROOMBOOK_MAX_DURATION_MINUTES", 120),
        default_max_active_bookings=_env_int("ROOMBOOK_MAX_ACTIVE_BOOKINGS", 3),
        default_max_consecutive=_env_optional_int("ROOMBOOK_MAX_CONSECUTIVE", None),
        default_cooldown_minutes=_env_optional_int("ROOMBOOK_COOLDOWN_MINUTES", None),
        default_min_notice_minutes=_env_int("ROOMBOOK_MIN_NOTICE_MINUTES", 30),
        default_max_days_ahead=_env_int("ROOMBOOK_MAX_DAYS_AHEAD", 14),
        policy_enforce_slot_alignment=_env_bool("ROOMBOOK_ENFORCE_SLOT_ALIGNMENT", False),
        search_max_window_hours=_env_int("ROOMBOOK_SEARCH_MAX_WINDOW_HOURS", 24),
    )
