"""Shared builders for the test suite."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from roombook.domain.models import Interval, PolicyConfig
from roombook.utils.config import Settings, get_settings


# Fixed reference clock: Monday 2026-03-02 07:00 UTC.
NOW = datetime(2026, 3, 2, 7, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day_offset: int = 1) -> datetime:
    """UTC datetime ``day_offset`` days after NOW's date at ``hour:minute``."""
    base = NOW.replace(hour=0, minute=0) + timedelta(days=day_offset)
    return base.replace(hour=hour, minute=minute)


def span(start_hour: int, start_minute: int, minutes: int, day_offset: int = 1) -> Interval:
    start = at(start_hour, start_minute, day_offset)
    return Interval(start, start + timedelta(minutes=minutes))


def default_policy(**overrides) -> PolicyConfig:
    values = {
        "open_hour": 8,
        "close_hour": 22,
        "time_slot_interval_minutes": 15,
        "min_duration_minutes": 30,
        "max_duration_minutes": 120,
        "max_active_bookings": 3,
        "max_consecutive": None,
        "cooldown_minutes": None,
        "min_notice_minutes": 30,
        "max_days_ahead": 14,
    }
    values.update(overrides)
    return PolicyConfig(**values)


def build_test_settings(tmp_path, filename: str = "roombook_test.db", **overrides) -> Settings:
    get_settings.cache_clear()
    base = get_settings()
    values = {
        "database_path": tmp_path / filename,
        "admin_token": None,
        "seed_demo_rooms": False,
    }
    values.update(overrides)
    return replace(base, **values)
