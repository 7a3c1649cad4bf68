"""Availability search tests: slot partitioning, classification and ordering."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from helpers import NOW, at, span
from roombook.domain.errors import SearchValidationError
from roombook.domain.models import (
    AvailabilityStatus,
    Booking,
    BookingStatus,
    MaintenanceBlock,
    Room,
    RoomStatus,
)
from roombook.services.availability_service import (
    AvailabilityService,
    build_search_window,
    partition_window,
    search_availability,
)
from roombook.services.booking_service import BookingService


def _room(room_id: str, name: str, capacity: int, capabilities=(), status=RoomStatus.ACTIVE) -> Room:
    return Room(
        room_id=room_id,
        name=name,
        capacity=capacity,
        capabilities=frozenset(capabilities),
        status=status,
    )


def _booking(room_id: str, interval, booking_id: str = "b1") -> Booking:
    return Booking(booking_id=booking_id, requester_id="alice", room_id=room_id, interval=interval)


# --- slot partitioning ---

def test_window_is_split_into_consecutive_slots() -> None:
    slots = partition_window(span(9, 0, 60), 15)
    assert len(slots) == 4
    assert slots[0].start == at(9, 0)
    assert all(left.end == right.start for left, right in zip(slots, slots[1:]))
    assert slots[-1].end == at(10, 0)


def test_last_slot_is_truncated_at_window_end() -> None:
    slots = partition_window(span(9, 0, 40), 15)
    assert [slot.duration_minutes for slot in slots] == [15, 15, 10]


# --- classification ---

def test_rooms_are_classified_by_conflicting_slots() -> None:
    window = span(9, 0, 60)
    rooms = [
        _room("r1", "Free", 4),
        _room("r2", "Half", 4),
        _room("r3", "Full", 4),
        _room("r4", "Closed", 4, status=RoomStatus.MAINTENANCE),
    ]
    entries = {
        "r2": [_booking("r2", span(9, 0, 30))],
        "r3": [MaintenanceBlock(block_id="m1", room_id="r3", interval=span(8, 0, 180))],
    }
    results = {item.room.room_id: item for item in search_availability(window, 15, rooms, entries)}

    assert results["r1"].availability_status == AvailabilityStatus.AVAILABLE
    assert len(results["r1"].available_slots) == 4
    assert results["r2"].availability_status == AvailabilityStatus.PARTIALLY_AVAILABLE
    assert [slot.start for slot in results["r2"].available_slots] == [at(9, 30), at(9, 45)]
    assert results["r3"].availability_status == AvailabilityStatus.UNAVAILABLE
    assert results["r3"].available_slots == ()
    assert results["r4"].availability_status == AvailabilityStatus.MAINTENANCE


def test_cancelled_booking_leaves_room_available() -> None:
    cancelled = replace(_booking("r1", span(9, 0, 60)), status=BookingStatus.CANCELLED)
    results = search_availability(span(9, 0, 60), 15, [_room("r1", "A", 4)], {"r1": [cancelled]})
    assert results[0].availability_status == AvailabilityStatus.AVAILABLE


def test_adding_a_booking_never_improves_availability() -> None:
    window = span(9, 0, 120)
    rank = {
        AvailabilityStatus.AVAILABLE: 0,
        AvailabilityStatus.PARTIALLY_AVAILABLE: 1,
        AvailabilityStatus.UNAVAILABLE: 2,
    }
    rooms = [_room("r1", "A", 4)]
    entries: list = []
    previous = 0
    for index, (hour, minute) in enumerate([(9, 0), (9, 30), (10, 0), (10, 30)]):
        entries.append(_booking("r1", span(hour, minute, 30), f"b{index}"))
        status = search_availability(window, 15, rooms, {"r1": entries})[0].availability_status
        assert rank[status] >= previous
        previous = rank[status]
    assert previous == rank[AvailabilityStatus.UNAVAILABLE]


# --- filters and ordering ---

def test_archived_and_filtered_rooms_are_excluded() -> None:
    rooms = [
        _room("r1", "Small", 2, ["whiteboard"]),
        _room("r2", "Big", 10, ["projector", "whiteboard"]),
        _room("r3", "Old", 50, ["projector"], status=RoomStatus.ARCHIVED),
        _room("r4", "Bare", 12),
    ]
    results = search_availability(
        span(9, 0, 60),
        15,
        rooms,
        {},
        min_capacity=4,
        required_capabilities=["projector"],
    )
    assert [item.room.room_id for item in results] == ["r2"]


def test_default_ordering_is_by_room_id() -> None:
    rooms = [_room("r3", "A", 4), _room("r1", "B", 4), _room("r2", "C", 4)]
    results = search_availability(span(9, 0, 60), 15, rooms, {})
    assert [item.room.room_id for item in results] == ["r1", "r2", "r3"]


@pytest.mark.parametrize(
    ("sort_by", "descending", "expected"),
    [
        ("capacity", False, ["r2", "r3", "r1"]),
        ("capacity", True, ["r1", "r2", "r3"]),
        ("name", False, ["r3", "r1", "r2"]),
        ("id", True, ["r3", "r2", "r1"]),
    ],
)
def test_sorting_breaks_ties_on_room_id(sort_by: str, descending: bool, expected: list[str]) -> None:
    rooms = [
        _room("r1", "Beta", 20),
        _room("r2", "Gamma", 8),
        _room("r3", "Alpha", 8),
    ]
    results = search_availability(
        span(9, 0, 60), 15, rooms, {}, sort_by=sort_by, descending=descending
    )
    assert [item.room.room_id for item in results] == expected


# --- service ---

def test_inverted_window_is_rejected() -> None:
    with pytest.raises(SearchValidationError) as exc:
        build_search_window(at(11, 0), at(9, 0))
    assert exc.value.code == "INVALID_SEARCH_WINDOW"


def test_service_rejects_oversized_window(repository, settings) -> None:
    service = AvailabilityService(repository=repository, settings=settings)
    window = build_search_window(at(0, 0), at(0, 0, day_offset=3))
    with pytest.raises(SearchValidationError):
        service.search_rooms(window)


def test_service_reflects_committed_bookings(repository, settings) -> None:
    first = repository.create_room("Room A", 6, ["projector"], room_id="room-a")
    repository.create_room("Room B", 10, ["projector"], room_id="room-b")
    repository.create_room("Room C", 10, ["projector"], room_id="room-c", status=RoomStatus.ARCHIVED)
    BookingService(repository=repository, settings=settings).create_booking(
        "alice", first.room_id, span(9, 0, 30), now=NOW
    )

    service = AvailabilityService(repository=repository, settings=settings)
    results = service.search_rooms(
        span(9, 0, 60), required_capabilities=["projector"], now=NOW
    )

    assert [item.room.room_id for item in results] == ["room-a", "room-b"]
    assert results[0].availability_status == AvailabilityStatus.PARTIALLY_AVAILABLE
    assert results[1].availability_status == AvailabilityStatus.AVAILABLE


def test_ended_booking_does_not_block_before_or_after_sweep(repository, settings) -> None:
    room = repository.create_room("Room A", 6, room_id="room-a")
    bookings = BookingService(repository=repository, settings=settings)
    bookings.create_booking("alice", room.room_id, span(10, 0, 60), now=NOW)
    service = AvailabilityService(repository=repository, settings=settings)
    later = NOW + timedelta(days=2)

    upcoming = service.search_rooms(span(10, 0, 60), now=NOW)
    assert upcoming[0].availability_status == AvailabilityStatus.UNAVAILABLE

    before_sweep = service.search_rooms(span(10, 0, 60), now=later)
    assert bookings.expire_past_bookings(now=later) == 1
    after_sweep = service.search_rooms(span(10, 0, 60), now=later)

    assert before_sweep[0].availability_status == AvailabilityStatus.AVAILABLE
    assert after_sweep == before_sweep


def test_classification_applies_expiry_at_read_time() -> None:
    ended = _booking("r1", span(9, 0, 60))
    rooms = [_room("r1", "A", 4)]
    window = span(9, 0, 60)

    assert search_availability(window, 15, rooms, {"r1": [ended]})[0].availability_status == (
        AvailabilityStatus.UNAVAILABLE
    )
    after_end = search_availability(window, 15, rooms, {"r1": [ended]}, now=at(12, 0))
    assert after_end[0].availability_status == AvailabilityStatus.AVAILABLE
