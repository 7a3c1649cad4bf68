"""Booking lifecycle: create under per-room exclusion, cancel, expire."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Optional
from uuid import uuid4

from roombook.domain.errors import (
    AlreadyCancelledError,
    BookingConflictError,
    BookingNotFoundError,
    BookingQueryError,
    PolicyViolationError,
    RoomNotFoundError,
    RoomUnavailableError,
)
from roombook.domain.models import (
    Booking,
    BookingStatus,
    Interval,
    RoomStatus,
    effective_status,
    is_active,
    to_utc,
    utcnow,
)
from roombook.repository.data_repository import DataRepository
from roombook.services.audit_service import AuditLogService
from roombook.services.conflict_service import ConflictDetectionService
from roombook.services.policy_service import evaluate_usage_policy
from roombook.services.rule_service import RuleService
from roombook.utils.config import Settings, get_settings
from roombook.utils.logger import get_logger


logger = get_logger(__name__)

MAX_BOOKING_PAGE_SIZE = 100


class BookingService:
    """Sole writer of booking state.

    ``create_booking`` validates against a policy snapshot first, then re-checks
    conflicts and inserts inside ``DataRepository.room_transaction`` so that two
    overlapping requests for the same room cannot both commit.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        rule_service: Optional[RuleService] = None,
        conflict_service: Optional[ConflictDetectionService] = None,
        audit_service: Optional[AuditLogService] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._audit = audit_service or AuditLogService(self._repository, self._settings)
        self._rules = rule_service or RuleService(
            self._repository, self._settings, audit_service=self._audit
        )
        self._conflicts = conflict_service or ConflictDetectionService(
            self._repository, self._settings
        )

    def create_booking(
        self,
        requester_id: str,
        room_id: str,
        interval: Interval,
        now: Optional[datetime] = None,
    ) -> Booking:
        now = to_utc(now) if now is not None else utcnow()
        config = self._rules.get_rules()
        history = self._repository.list_active_bookings(requester_id, now)

        room = self._repository.get_room(room_id)
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} was not found")
        if room.status != RoomStatus.ACTIVE:
            raise RoomUnavailableError(f"Room {room.name} is not available for booking")

        decision = evaluate_usage_policy(
            requester_id=requester_id,
            room_id=room_id,
            interval=interval,
            now=now,
            history=history,
            config=config,
            enforce_slot_alignment=self._settings.policy_enforce_slot_alignment,
        )
        if not decision.allowed:
            logger.info(
                "Booking rejected by policy | requester_id=%s | room_id=%s | code=%s",
                requester_id,
                room_id,
                decision.code,
            )
            raise PolicyViolationError(decision.message or "Booking violates policy", decision.code)

        booking = Booking(
            booking_id=str(uuid4()),
            requester_id=requester_id,
            room_id=room_id,
            interval=interval,
            status=BookingStatus.CONFIRMED,
            created_at=now,
        )
        with self._repository.room_transaction(room_id) as connection:
            if self._conflicts.conflicts(room_id, interval, connection=connection):
                raise BookingConflictError("Time slot is already booked for this room")
            self._repository.insert_booking(booking, connection)

        self._audit.record(
            action="booking_created",
            entity_type="booking",
            entity_id=booking.booking_id,
            actor_id=requester_id,
            payload={
                "room_id": room_id,
                "start": interval.start.isoformat(),
                "end": interval.end.isoformat(),
            },
        )
        logger.info(
            "Booking created | booking_id=%s | requester_id=%s | room_id=%s | start=%s | end=%s",
            booking.booking_id,
            requester_id,
            room_id,
            interval.start.isoformat(),
            interval.end.isoformat(),
        )
        return booking

    def get_booking(self, booking_id: str, now: Optional[datetime] = None) -> Booking:
        booking = self._repository.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} was not found")
        return self._with_effective_status(booking, now)

    def cancel_booking(
        self,
        booking_id: str,
        actor_id: str,
        now: Optional[datetime] = None,
    ) -> Booking:
        """Cancel a confirmed, unexpired booking.

        Whether ``actor_id`` may cancel it is decided by the caller.
        """
        now = to_utc(now) if now is not None else utcnow()
        existing = self._repository.get_booking(booking_id)
        if existing is None:
            raise BookingNotFoundError(f"Booking {booking_id} was not found")
        if not is_active(existing, now):
            raise AlreadyCancelledError(
                f"Booking is already {effective_status(existing, now)}"
            )

        if not self._repository.mark_booking_cancelled(booking_id, actor_id, now):
            # lost a race with another cancel, or the booking ended meanwhile
            current = self._repository.get_booking(booking_id)
            if current is None:
                raise BookingNotFoundError(f"Booking {booking_id} was not found")
            raise AlreadyCancelledError(f"Booking is already {effective_status(current, now)}")

        cancelled = self._repository.get_booking(booking_id)
        if cancelled is None:
            raise BookingNotFoundError(f"Booking {booking_id} was not found")

        self._audit.record(
            action="booking_cancelled",
            entity_type="booking",
            entity_id=booking_id,
            actor_id=actor_id,
            payload={"room_id": cancelled.room_id, "requester_id": cancelled.requester_id},
        )
        logger.info(
            "Booking cancelled | booking_id=%s | actor_id=%s | room_id=%s",
            booking_id,
            actor_id,
            cancelled.room_id,
        )
        return cancelled

    def list_active_bookings(
        self,
        requester_id: str,
        now: Optional[datetime] = None,
    ) -> list[Booking]:
        now = to_utc(now) if now is not None else utcnow()
        return self._repository.list_active_bookings(requester_id, now)

    def list_booking_history(
        self,
        requester_id: str,
        now: Optional[datetime] = None,
    ) -> list[Booking]:
        """Every booking of the requester, newest first, with expiry applied."""
        now = to_utc(now) if now is not None else utcnow()
        return [
            self._with_effective_status(booking, now)
            for booking in self._repository.list_bookings_for_requester(requester_id)
        ]

    def list_all_bookings(
        self,
        *,
        requester_id: Optional[str] = None,
        room_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        starts_from: Optional[datetime] = None,
        ends_by: Optional[datetime] = None,
        page: int = 1,
        limit: int = 50,
        now: Optional[datetime] = None,
    ) -> tuple[list[Booking], int]:
        """Admin view across every requester: one page of bookings and the total count."""
        if page < 1:
            raise BookingQueryError("page must be a positive integer")
        if not 0 < limit <= MAX_BOOKING_PAGE_SIZE:
            raise BookingQueryError(f"limit must be between 1 and {MAX_BOOKING_PAGE_SIZE}")
        if (
            starts_from is not None
            and ends_by is not None
            and to_utc(starts_from) >= to_utc(ends_by)
        ):
            raise BookingQueryError("start filter must be before end filter")

        now = to_utc(now) if now is not None else utcnow()
        bookings, total = self._repository.list_all_bookings(
            now,
            requester_id=requester_id,
            room_id=room_id,
            status=status,
            starts_from=starts_from,
            ends_by=ends_by,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return [self._with_effective_status(booking, now) for booking in bookings], total

    def expire_past_bookings(self, now: Optional[datetime] = None) -> int:
        now = to_utc(now) if now is not None else utcnow()
        expired_ids = self._repository.expire_bookings(now)
        if expired_ids:
            self._audit.record(
                action="bookings_expired",
                entity_type="booking",
                payload={"count": len(expired_ids), "booking_ids": expired_ids},
            )
        logger.info("Expiry sweep completed | expired=%s", len(expired_ids))
        return len(expired_ids)

    @staticmethod
    def _with_effective_status(booking: Booking, now: Optional[datetime]) -> Booking:
        status = effective_status(booking, now if now is not None else utcnow())
        if status == booking.status:
            return booking
        return replace(booking, status=status)
