"""Interval conflict detection for bookings and maintenance blocks."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Iterable, Optional

from roombook.domain.models import BookingStatus, Interval, MaintenanceBlock, is_active
from roombook.repository.data_repository import DataRepository, ScheduleEntry
from roombook.utils.config import Settings, get_settings
from roombook.utils.logger import get_logger


logger = get_logger(__name__)


def intervals_overlap(a: Interval, b: Interval) -> bool:
    """Strict overlap on half-open ranges; touching endpoints do not conflict."""
    return a.start < b.end and b.start < a.end


def _blocks_time(
    entry: ScheduleEntry,
    exclude_booking_id: Optional[str],
    now: Optional[datetime] = None,
) -> bool:
    if isinstance(entry, MaintenanceBlock):
        return True
    if entry.booking_id == exclude_booking_id:
        return False
    if now is not None:
        return is_active(entry, now)
    return entry.status == BookingStatus.CONFIRMED


def find_conflicts(
    interval: Interval,
    entries: Iterable[ScheduleEntry],
    exclude_booking_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[ScheduleEntry]:
    """Return every confirmed booking or maintenance block overlapping ``interval``.

    Given ``now``, a confirmed booking that has already ended counts as expired
    and no longer blocks.
    """
    return [
        entry
        for entry in entries
        if _blocks_time(entry, exclude_booking_id, now)
        and intervals_overlap(interval, entry.interval)
    ]


def has_conflict(
    interval: Interval,
    entries: Iterable[ScheduleEntry],
    exclude_booking_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    return any(
        _blocks_time(entry, exclude_booking_id, now) and intervals_overlap(interval, entry.interval)
        for entry in entries
    )


class ConflictDetectionService:
    """Answers whether a room is already taken for an interval."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def conflicts(
        self,
        room_id: str,
        interval: Interval,
        exclude_booking_id: Optional[str] = None,
        connection: Optional[sqlite3.Connection] = None,
    ) -> bool:
        entries = self._repository.list_overlapping(room_id, interval, connection=connection)
        clashing = find_conflicts(interval, entries, exclude_booking_id=exclude_booking_id)
        if clashing:
            logger.info(
                "Conflict detected | room_id=%s | start=%s | end=%s | clashes=%s",
                room_id,
                interval.start.isoformat(),
                interval.end.isoformat(),
                len(clashing),
            )
        return bool(clashing)
