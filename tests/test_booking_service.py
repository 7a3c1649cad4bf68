"""Booking lifecycle tests against a temporary SQLite database."""

from __future__ import annotations

import sqlite3
import threading
from datetime import timedelta

import pytest

from helpers import NOW, span
from roombook.domain.errors import (
    AlreadyCancelledError,
    BookingConflictError,
    BookingNotFoundError,
    BookingQueryError,
    PolicyViolationError,
    RoomNotFoundError,
    RoomUnavailableError,
)
from roombook.domain.models import BookingStatus, RoomStatus
from roombook.services.booking_service import BookingService


@pytest.fixture
def service(repository, settings) -> BookingService:
    return BookingService(repository=repository, settings=settings)


@pytest.fixture
def room(repository):
    return repository.create_room("Room A", 6, ["whiteboard"], room_id="room-a")


# --- scenario: 08-22 hours, 15 minute slots, 30-120 minute bookings ---

def test_default_rules_scenario(service, room) -> None:
    booking = service.create_booking("alice", room.room_id, span(10, 0, 60), now=NOW)
    assert booking.status == BookingStatus.CONFIRMED

    with pytest.raises(BookingConflictError) as conflict:
        service.create_booking("bob", room.room_id, span(10, 30, 60), now=NOW)
    assert conflict.value.code == "BOOKING_CONFLICT"

    with pytest.raises(PolicyViolationError) as hours:
        service.create_booking("bob", room.room_id, span(6, 0, 60), now=NOW)
    assert hours.value.code == "OUTSIDE_OPERATING_HOURS"

    with pytest.raises(PolicyViolationError) as short:
        service.create_booking("bob", room.room_id, span(10, 0, 10), now=NOW)
    assert short.value.code == "DURATION_TOO_SHORT"


def test_back_to_back_bookings_both_succeed(service, room) -> None:
    service.create_booking("alice", room.room_id, span(10, 0, 60), now=NOW)
    second = service.create_booking("bob", room.room_id, span(11, 0, 60), now=NOW)
    assert second.status == BookingStatus.CONFIRMED


# --- scenario: quota of three, freed again by a cancel ---

def test_quota_scenario_recovers_after_cancel(service, room) -> None:
    created = [
        service.create_booking("alice", room.room_id, span(9, 0, 60, day_offset=day), now=NOW)
        for day in (1, 2, 3)
    ]
    fourth = span(9, 0, 60, day_offset=4)

    with pytest.raises(PolicyViolationError) as quota:
        service.create_booking("alice", room.room_id, fourth, now=NOW)
    assert quota.value.code == "MAX_ACTIVE_BOOKINGS_EXCEEDED"

    service.cancel_booking(created[0].booking_id, "alice", now=NOW)
    booking = service.create_booking("alice", room.room_id, fourth, now=NOW)
    assert booking.status == BookingStatus.CONFIRMED


# --- room checks ---

def test_unknown_room_is_rejected(service) -> None:
    with pytest.raises(RoomNotFoundError) as exc:
        service.create_booking("alice", "missing", span(10, 0, 60), now=NOW)
    assert exc.value.code == "ROOM_NOT_FOUND"


@pytest.mark.parametrize("status", [RoomStatus.MAINTENANCE, RoomStatus.ARCHIVED])
def test_inactive_room_is_unavailable(repository, service, status) -> None:
    room = repository.create_room("Closed", 4, status=status)
    with pytest.raises(RoomUnavailableError) as exc:
        service.create_booking("alice", room.room_id, span(10, 0, 60), now=NOW)
    assert exc.value.code == "ROOM_UNAVAILABLE"


def test_maintenance_block_blocks_booking(repository, service, room) -> None:
    repository.create_maintenance_block(room.room_id, span(9, 0, 180), "painting")
    with pytest.raises(BookingConflictError):
        service.create_booking("alice", room.room_id, span(10, 0, 60), now=NOW)
    assert repository.count_bookings(room.room_id) == 0


# --- concurrency ---

def test_concurrent_overlapping_creates_commit_exactly_once(service, room) -> None:
    workers = 8
    barrier = threading.Barrier(workers)
    outcomes: list[str] = []
    outcomes_lock = threading.Lock()

    def attempt(index: int) -> None:
        barrier.wait()
        try:
            service.create_booking(f"user-{index}", room.room_id, span(10, 0, 60), now=NOW)
            result = "created"
        except BookingConflictError as exc:
            result = str(exc.code)
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt, args=(index,)) for index in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["BOOKING_CONFLICT"] * (workers - 1) + ["created"]


def test_room_lock_does_not_block_other_rooms(repository, service, room) -> None:
    other = repository.create_room("Room B", 6, room_id="room-b")
    finished = threading.Event()

    def book_other_room() -> None:
        service.create_booking("bob", other.room_id, span(10, 0, 60), now=NOW)
        finished.set()

    with repository.room_transaction(room.room_id):
        worker = threading.Thread(target=book_other_room)
        worker.start()
        assert finished.wait(timeout=10)
    worker.join(timeout=10)
    assert repository.count_bookings(other.room_id) == 1


def test_storage_failure_propagates_unchanged(repository, service, room, monkeypatch) -> None:
    def failing_insert(booking, connection):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(repository, "insert_booking", failing_insert)
    with pytest.raises(sqlite3.OperationalError):
        service.create_booking("alice", room.room_id, span(10, 0, 60), now=NOW)
    assert repository.count_bookings() == 0
    assert not repository.room_locks.is_held(room.room_id)


# --- cancellation ---

def test_cancel_sets_actor_and_timestamp(service, room) -> None:
    booking = service.create_booking("alice", room.room_id, span(10, 0, 60), now=NOW)
    cancelled = service.cancel_booking(booking.booking_id, "alice", now=NOW)
    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancelled_by == "alice"
    assert cancelled.cancelled_at == NOW


def test_double_cancel_keeps_first_timestamp(repository, service, room) -> None:
    booking = service.create_booking("alice", room.room_id, span(10, 0, 60), now=NOW)
    service.cancel_booking(booking.booking_id, "alice", now=NOW)

    with pytest.raises(AlreadyCancelledError) as exc:
        service.cancel_booking(booking.booking_id, "admin", now=NOW + timedelta(minutes=5))
    assert exc.value.code == "ALREADY_CANCELLED"

    stored = repository.get_booking(booking.booking_id)
    assert stored.cancelled_at == NOW
    assert stored.cancelled_by == "alice"


def test_cancel_after_end_reports_already_cancelled(service, room) -> None:
    booking = service.create_booking("alice", room.room_id, span(10, 0, 60), now=NOW)
    later = NOW + timedelta(days=2)
    with pytest.raises(AlreadyCancelledError):
        service.cancel_booking(booking.booking_id, "alice", now=later)


def test_cancel_unknown_booking(service) -> None:
    with pytest.raises(BookingNotFoundError) as exc:
        service.cancel_booking("missing", "alice", now=NOW)
    assert exc.value.code == "BOOKING_NOT_FOUND"


def test_cancelled_slot_can_be_rebooked(service, room) -> None:
    booking = service.create_booking("alice", room.room_id, span(10, 0, 60), now=NOW)
    service.cancel_booking(booking.booking_id, "alice", now=NOW)
    again = service.create_booking("bob", room.room_id, span(10, 0, 60), now=NOW)
    assert again.requester_id == "bob"


# --- expiry and listings ---

def test_history_derives_expiry_before_sweep(service, room) -> None:
    booking = service.create_booking("alice", room.room_id, span(10, 0, 60), now=NOW)
    later = NOW + timedelta(days=2)

    history = service.list_booking_history("alice", now=later)
    assert [item.status for item in history] == [BookingStatus.EXPIRED]
    assert service.list_active_bookings("alice", now=later) == []
    assert service.get_booking(booking.booking_id, now=NOW).status == BookingStatus.CONFIRMED


def test_expiry_sweep_persists_status_and_audits(repository, service, room) -> None:
    past = service.create_booking("alice", room.room_id, span(10, 0, 60), now=NOW)
    future = service.create_booking("alice", room.room_id, span(10, 0, 60, day_offset=5), now=NOW)
    later = NOW + timedelta(days=2)

    assert service.expire_past_bookings(now=later) == 1
    assert repository.get_booking(past.booking_id).status == BookingStatus.EXPIRED
    assert repository.get_booking(future.booking_id).status == BookingStatus.CONFIRMED
    assert service.expire_past_bookings(now=later) == 0

    entries = repository.list_audit_entries(action="bookings_expired")
    assert len(entries) == 1
    assert entries[0].payload["booking_ids"] == [past.booking_id]


def test_create_and_cancel_are_audited(repository, service, room) -> None:
    booking = service.create_booking("alice", room.room_id, span(10, 0, 60), now=NOW)
    service.cancel_booking(booking.booking_id, "alice", now=NOW)

    entries = repository.list_audit_entries(entity_type="booking", entity_id=booking.booking_id)
    assert sorted(entry.action for entry in entries) == ["booking_cancelled", "booking_created"]
    assert all(entry.actor_id == "alice" for entry in entries)


def test_admin_listing_filters_pages_and_derives_expiry(service, room) -> None:
    ended = service.create_booking("alice", room.room_id, span(10, 0, 60), now=NOW)
    dropped = service.create_booking("bob", room.room_id, span(12, 0, 60), now=NOW)
    service.cancel_booking(dropped.booking_id, "bob", now=NOW)
    upcoming = service.create_booking("alice", room.room_id, span(10, 0, 60, day_offset=5), now=NOW)
    later = NOW + timedelta(days=2)

    everything, total = service.list_all_bookings(now=later)
    assert total == 3
    assert [item.booking_id for item in everything] == [
        upcoming.booking_id,
        dropped.booking_id,
        ended.booking_id,
    ]
    assert everything[-1].status == BookingStatus.EXPIRED

    def ids(**filters) -> list[str]:
        bookings, _ = service.list_all_bookings(now=later, **filters)
        return [item.booking_id for item in bookings]

    assert ids(status=BookingStatus.EXPIRED) == [ended.booking_id]
    assert ids(status=BookingStatus.CONFIRMED) == [upcoming.booking_id]
    assert ids(status=BookingStatus.CANCELLED) == [dropped.booking_id]
    assert ids(requester_id="alice", room_id=room.room_id) == [upcoming.booking_id, ended.booking_id]

    second_page, total = service.list_all_bookings(page=2, limit=2, now=later)
    assert total == 3
    assert [item.booking_id for item in second_page] == [ended.booking_id]

    service.expire_past_bookings(now=later)
    assert ids(status=BookingStatus.EXPIRED) == [ended.booking_id]


@pytest.mark.parametrize(("page", "limit"), [(0, 50), (1, 0), (1, 101)])
def test_admin_listing_rejects_bad_paging(service, page: int, limit: int) -> None:
    with pytest.raises(BookingQueryError) as exc:
        service.list_all_bookings(page=page, limit=limit, now=NOW)
    assert exc.value.code == "INVALID_INPUT"
