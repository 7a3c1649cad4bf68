#!/usr/bin/env python3
"""Validate local room booking environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from importlib.metadata import version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from roombook.domain.models import Interval
from roombook.repository.data_repository import DataRepository
from roombook.services.booking_service import BookingService
from roombook.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def _smoke_interval(now: datetime, open_hour: int) -> Interval:
    start = (now + timedelta(days=1)).replace(hour=open_hour + 1, minute=0, second=0, microsecond=0)
    return Interval(start, start + timedelta(minutes=60))


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="roombook-env-")

    # CHECK 1: Python version >= 3.11
    if sys.version_info >= (3, 11):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.11",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("pandas", "pandas"),
        ("requests", "requests"),
        ("streamlit", "streamlit"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except Exception as exc:  # pragma: no cover - runtime guard
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "roombook_validation.db",
        )
        repository = DataRepository(validation_settings)

        # CHECK 3: Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Default rules and demo rooms
        try:
            repository.seed_default_rules()
            seeded_rooms = repository.seed_demo_rooms()
            if repository.get_policy() is None:
                raise RuntimeError("rule config row missing after seeding")
            if seeded_rooms == 0:
                raise RuntimeError("no demo rooms were seeded")
            ok, line = _print_result("Seed data", True, f": {seeded_rooms} rooms")
        except Exception as exc:
            ok, line = _print_result("Seed data", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Smoke booking
        try:
            service = BookingService(repository=repository, settings=validation_settings)
            room = next(room for room in repository.list_rooms() if room.status == "active")
            now = datetime.now(timezone.utc)
            interval = _smoke_interval(now, repository.get_policy().open_hour)
            booking = service.create_booking("validation-user", room.room_id, interval, now=now)
            service.cancel_booking(booking.booking_id, "validation-user", now=now)
            ok, line = _print_result("Smoke booking", True, f": {room.name}")
        except Exception as exc:
            ok, line = _print_result("Smoke booking", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Room Booking Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
