"""Room availability search over a time window."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Mapping, Optional, Sequence

from roombook.domain.errors import SearchValidationError
from roombook.domain.models import (
    AvailabilityStatus,
    Interval,
    Room,
    RoomAvailability,
    RoomStatus,
    to_utc,
    utcnow,
)
from roombook.repository.data_repository import DataRepository, ScheduleEntry
from roombook.services.conflict_service import has_conflict
from roombook.services.rule_service import RuleService
from roombook.utils.config import Settings, get_settings
from roombook.utils.logger import get_logger


logger = get_logger(__name__)

SORT_FIELDS = ("id", "name", "capacity")


def build_search_window(start: datetime, end: datetime) -> Interval:
    try:
        return Interval(start, end)
    except ValueError as exc:
        raise SearchValidationError("Search start must be before end") from exc


def partition_window(window: Interval, slot_minutes: int) -> list[Interval]:
    """Split ``window`` into consecutive slots; the last one is cut at the window end."""
    if slot_minutes <= 0:
        raise ValueError("slot_minutes must be positive")
    step = timedelta(minutes=slot_minutes)
    slots: list[Interval] = []
    cursor = window.start
    while cursor < window.end:
        slot_end = min(cursor + step, window.end)
        slots.append(Interval(cursor, slot_end))
        cursor = slot_end
    return slots


def classify_room(
    room: Room,
    slots: Sequence[Interval],
    entries: Iterable[ScheduleEntry],
    now: Optional[datetime] = None,
) -> RoomAvailability:
    if room.status == RoomStatus.MAINTENANCE:
        return RoomAvailability(room=room, availability_status=AvailabilityStatus.MAINTENANCE)

    entries = list(entries)
    free = tuple(slot for slot in slots if not has_conflict(slot, entries, now=now))
    if len(free) == len(slots):
        status = AvailabilityStatus.AVAILABLE
    elif not free:
        status = AvailabilityStatus.UNAVAILABLE
    else:
        status = AvailabilityStatus.PARTIALLY_AVAILABLE
    return RoomAvailability(room=room, availability_status=status, available_slots=free)


def search_availability(
    window: Interval,
    slot_minutes: int,
    rooms: Iterable[Room],
    entries_by_room: Mapping[str, Iterable[ScheduleEntry]],
    min_capacity: Optional[int] = None,
    required_capabilities: Optional[Iterable[str]] = None,
    sort_by: str = "id",
    descending: bool = False,
    now: Optional[datetime] = None,
) -> list[RoomAvailability]:
    """Classify every eligible room over ``window``.

    Archived rooms never appear. Rooms below ``min_capacity`` or missing any of
    ``required_capabilities`` are filtered out before classification. Given
    ``now``, bookings that have already ended are treated as expired whether or
    not the expiry sweep has stored that yet.
    """
    if sort_by not in SORT_FIELDS:
        raise ValueError(f"sort_by must be one of {', '.join(SORT_FIELDS)}")
    required = frozenset(required_capabilities or ())
    slots = partition_window(window, slot_minutes)

    results: list[RoomAvailability] = []
    for room in rooms:
        if room.status == RoomStatus.ARCHIVED:
            continue
        if min_capacity is not None and room.capacity < min_capacity:
            continue
        if not required <= room.capabilities:
            continue
        results.append(classify_room(room, slots, entries_by_room.get(room.room_id, ()), now=now))

    # stable sorts: ties on name or capacity stay ascending by room id
    results.sort(key=lambda item: item.room.room_id, reverse=descending and sort_by == "id")
    if sort_by != "id":
        results.sort(key=_primary_key(sort_by), reverse=descending)
    return results


def _primary_key(sort_by: str):
    if sort_by == "name":
        return lambda item: item.room.name
    return lambda item: item.room.capacity


class AvailabilityService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        rule_service: Optional[RuleService] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._rules = rule_service or RuleService(self._repository, self._settings)

    def _validate_window(self, window: Interval) -> None:
        max_window = timedelta(hours=self._settings.search_max_window_hours)
        if window.duration > max_window:
            raise SearchValidationError(
                f"Search window cannot exceed {self._settings.search_max_window_hours} hours"
            )

    def search_rooms(
        self,
        window: Interval,
        min_capacity: Optional[int] = None,
        required_capabilities: Optional[Iterable[str]] = None,
        sort_by: str = "id",
        descending: bool = False,
        now: Optional[datetime] = None,
    ) -> list[RoomAvailability]:
        now = to_utc(now) if now is not None else utcnow()
        self._validate_window(window)
        if sort_by not in SORT_FIELDS:
            raise SearchValidationError(
                f"sort_by must be one of {', '.join(SORT_FIELDS)}"
            )
        if min_capacity is not None and min_capacity <= 0:
            raise SearchValidationError("min_capacity must be positive")

        config = self._rules.get_rules()
        rooms = self._repository.list_rooms(include_archived=False)
        entries_by_room = self._repository.list_overlapping_by_room(
            [room.room_id for room in rooms], window
        )
        results = search_availability(
            window=window,
            slot_minutes=config.time_slot_interval_minutes,
            rooms=rooms,
            entries_by_room=entries_by_room,
            min_capacity=min_capacity,
            required_capabilities=required_capabilities,
            sort_by=sort_by,
            descending=descending,
            now=now,
        )
        logger.info(
            "Availability search completed | start=%s | end=%s | rooms=%s | available=%s",
            window.start.isoformat(),
            window.end.isoformat(),
            len(results),
            sum(1 for item in results if item.availability_status == AvailabilityStatus.AVAILABLE),
        )
        return results
