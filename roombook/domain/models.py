"""Domain models for room booking, policy and availability."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Optional


class RoomStatus(StrEnum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    ARCHIVED = "archived"


class BookingStatus(StrEnum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class AvailabilityStatus(StrEnum):
    AVAILABLE = "available"
    PARTIALLY_AVAILABLE = "partially_available"
    UNAVAILABLE = "unavailable"
    MAINTENANCE = "maintenance"


def to_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Interval:
    """Half-open time range ``[start, end)`` at minute granularity."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        start = to_utc(self.start).replace(second=0, microsecond=0)
        end = to_utc(self.end).replace(second=0, microsecond=0)
        if start >= end:
            raise ValueError("interval start must be before end")
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def duration_minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)


@dataclass(frozen=True)
class Room:
    room_id: str
    name: str
    capacity: int
    capabilities: frozenset[str] = field(default_factory=frozenset)
    status: RoomStatus = RoomStatus.ACTIVE


@dataclass(frozen=True)
class Booking:
    booking_id: str
    requester_id: str
    room_id: str
    interval: Interval
    status: BookingStatus = BookingStatus.CONFIRMED
    created_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None


@dataclass(frozen=True)
class MaintenanceBlock:
    block_id: str
    room_id: str
    interval: Interval
    reason: Optional[str] = None


@dataclass(frozen=True)
class PolicyConfig:
    open_hour: int
    close_hour: int
    time_slot_interval_minutes: int
    min_duration_minutes: int
    max_duration_minutes: int
    max_active_bookings: int
    max_consecutive: Optional[int]
    cooldown_minutes: Optional[int]
    min_notice_minutes: int
    max_days_ahead: int

    def to_dict(self) -> dict[str, Optional[int]]:
        return {
            "open_hour": self.open_hour,
            "close_hour": self.close_hour,
            "time_slot_interval_minutes": self.time_slot_interval_minutes,
            "min_duration_minutes": self.min_duration_minutes,
            "max_duration_minutes": self.max_duration_minutes,
            "max_active_bookings": self.max_active_bookings,
            "max_consecutive": self.max_consecutive,
            "cooldown_minutes": self.cooldown_minutes,
            "min_notice_minutes": self.min_notice_minutes,
            "max_days_ahead": self.max_days_ahead,
        }


POLICY_FIELDS: tuple[str, ...] = (
    "open_hour",
    "close_hour",
    "time_slot_interval_minutes",
    "min_duration_minutes",
    "max_duration_minutes",
    "max_active_bookings",
    "max_consecutive",
    "cooldown_minutes",
    "min_notice_minutes",
    "max_days_ahead",
)

OPTIONAL_POLICY_FIELDS: frozenset[str] = frozenset({"max_consecutive", "cooldown_minutes"})


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    code: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls(valid=True)

    @classmethod
    def fail(cls, code: str, message: str) -> ValidationResult:
        return cls(valid=False, code=code, message=message)


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    code: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def allow(cls) -> PolicyDecision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, code: str, message: str) -> PolicyDecision:
        return cls(allowed=False, code=code, message=message)


@dataclass(frozen=True)
class RoomAvailability:
    room: Room
    availability_status: AvailabilityStatus
    available_slots: tuple[Interval, ...] = ()


@dataclass(frozen=True)
class AuditEntry:
    entry_id: str
    actor_id: Optional[str]
    action: str
    entity_type: str
    entity_id: Optional[str]
    payload: Optional[dict]
    created_at: datetime


def effective_status(booking: Booking, now: datetime) -> BookingStatus:
    """Read-time status: a confirmed booking whose end has passed is expired."""
    if booking.status == BookingStatus.CONFIRMED and booking.interval.end <= to_utc(now):
        return BookingStatus.EXPIRED
    return booking.status


def is_active(booking: Booking, now: datetime) -> bool:
    return effective_status(booking, now) == BookingStatus.CONFIRMED
