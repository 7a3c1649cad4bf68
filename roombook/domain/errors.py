"""Stable error codes and the typed exceptions that carry them."""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class ErrorCode(StrEnum):
    # policy config validation
    INVALID_HOURS = "INVALID_HOURS"
    INVALID_TIME_SLOT_INTERVAL = "INVALID_TIME_SLOT_INTERVAL"
    INVALID_MIN_DURATION = "INVALID_MIN_DURATION"
    INVALID_MAX_DURATION = "INVALID_MAX_DURATION"
    INVALID_DURATION_RANGE = "INVALID_DURATION_RANGE"
    INVALID_MAX_ACTIVE_BOOKINGS = "INVALID_MAX_ACTIVE_BOOKINGS"
    INVALID_MAX_CONSECUTIVE = "INVALID_MAX_CONSECUTIVE"
    INVALID_COOLDOWN = "INVALID_COOLDOWN"
    INVALID_MIN_NOTICE = "INVALID_MIN_NOTICE"
    INVALID_MAX_DAYS_AHEAD = "INVALID_MAX_DAYS_AHEAD"
    UNKNOWN_FIELD = "UNKNOWN_FIELD"

    # usage policy
    INVALID_TIME_RANGE = "INVALID_TIME_RANGE"
    OUTSIDE_OPERATING_HOURS = "OUTSIDE_OPERATING_HOURS"
    INVALID_TIME_SLOT = "INVALID_TIME_SLOT"
    DURATION_TOO_SHORT = "DURATION_TOO_SHORT"
    DURATION_TOO_LONG = "DURATION_TOO_LONG"
    INSUFFICIENT_NOTICE = "INSUFFICIENT_NOTICE"
    TOO_FAR_AHEAD = "TOO_FAR_AHEAD"
    MAX_ACTIVE_BOOKINGS_EXCEEDED = "MAX_ACTIVE_BOOKINGS_EXCEEDED"
    MAX_CONSECUTIVE_EXCEEDED = "MAX_CONSECUTIVE_EXCEEDED"
    COOLDOWN_VIOLATION = "COOLDOWN_VIOLATION"

    # booking transaction
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    ROOM_UNAVAILABLE = "ROOM_UNAVAILABLE"
    BOOKING_CONFLICT = "BOOKING_CONFLICT"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    NOT_BOOKING_OWNER = "NOT_BOOKING_OWNER"

    # search and maintenance administration
    INVALID_SEARCH_WINDOW = "INVALID_SEARCH_WINDOW"
    INVALID_INPUT = "INVALID_INPUT"
    MAINTENANCE_BLOCK_NOT_FOUND = "MAINTENANCE_BLOCK_NOT_FOUND"


class BookingCoreError(Exception):
    """Base failure carrying a stable ``code`` and a human-readable message."""

    default_code: Optional[ErrorCode] = None

    def __init__(self, message: str, code: ErrorCode | str | None = None) -> None:
        super().__init__(message)
        resolved = code if code is not None else self.default_code
        if resolved is None:
            raise TypeError(f"{type(self).__name__} requires an explicit error code")
        self.code = ErrorCode(resolved)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": str(self.code), "message": self.message}


class PolicyViolationError(BookingCoreError):
    """Raised when the usage policy rejects a booking request; always carries the rule's code."""


class RuleValidationError(BookingCoreError):
    """Raised when a proposed policy config is internally inconsistent."""


class RoomNotFoundError(BookingCoreError):
    default_code = ErrorCode.ROOM_NOT_FOUND


class RoomUnavailableError(BookingCoreError):
    default_code = ErrorCode.ROOM_UNAVAILABLE


class BookingConflictError(BookingCoreError):
    default_code = ErrorCode.BOOKING_CONFLICT


class BookingNotFoundError(BookingCoreError):
    default_code = ErrorCode.BOOKING_NOT_FOUND


class AlreadyCancelledError(BookingCoreError):
    default_code = ErrorCode.ALREADY_CANCELLED


class NotBookingOwnerError(BookingCoreError):
    default_code = ErrorCode.NOT_BOOKING_OWNER


class SearchValidationError(BookingCoreError):
    default_code = ErrorCode.INVALID_SEARCH_WINDOW


class MaintenanceBlockNotFoundError(BookingCoreError):
    default_code = ErrorCode.MAINTENANCE_BLOCK_NOT_FOUND


class MaintenanceValidationError(BookingCoreError):
    default_code = ErrorCode.INVALID_TIME_RANGE


class BookingQueryError(BookingCoreError):
    default_code = ErrorCode.INVALID_INPUT
