"""HTTP controller layer for creating, cancelling and listing bookings."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from roombook.controllers.dependencies import (
    get_booking_service,
    get_is_admin,
    get_requester_id,
    http_error_from,
    require_admin,
    require_whole_minutes,
)
from roombook.domain.errors import BookingCoreError, ErrorCode, NotBookingOwnerError
from roombook.domain.models import Booking, BookingStatus, Interval
from roombook.services.booking_service import BookingService
from roombook.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["bookings"])


class CreateBookingRequest(BaseModel):
    room_id: str = Field(min_length=1)
    start: datetime
    end: datetime

    @field_validator("room_id")
    @classmethod
    def strip_room_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("room_id must be non-empty")
        return value


class BookingResponse(BaseModel):
    booking_id: str
    requester_id: str
    room_id: str
    start: datetime
    end: datetime
    status: str
    created_at: datetime | None = None
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None

    @classmethod
    def from_domain(cls, booking: Booking) -> BookingResponse:
        return cls(
            booking_id=booking.booking_id,
            requester_id=booking.requester_id,
            room_id=booking.room_id,
            start=booking.interval.start,
            end=booking.interval.end,
            status=str(booking.status),
            created_at=booking.created_at,
            cancelled_by=booking.cancelled_by,
            cancelled_at=booking.cancelled_at,
        )


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]


class BookingPageResponse(BaseModel):
    bookings: list[BookingResponse]
    total: int
    page: int
    limit: int
    total_pages: int


@router.post(
    "/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    payload: CreateBookingRequest,
    requester_id: str = Depends(get_requester_id),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    require_whole_minutes(payload.start, payload.end)
    try:
        interval = Interval(payload.start, payload.end)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": str(ErrorCode.INVALID_TIME_RANGE),
                "message": "End time must be after start time",
            },
        ) from exc

    try:
        booking = service.create_booking(
            requester_id=requester_id,
            room_id=payload.room_id,
            interval=interval,
        )
        return BookingResponse.from_domain(booking)
    except BookingCoreError as exc:
        raise http_error_from(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected booking creation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking",
        ) from exc


@router.post(
    "/bookings/{booking_id}/cancel",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
def cancel_booking(
    booking_id: str,
    requester_id: str = Depends(get_requester_id),
    is_admin: bool = Depends(get_is_admin),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Owners cancel their own bookings; an admin session may cancel any."""
    try:
        existing = service.get_booking(booking_id)
        if existing.requester_id != requester_id and not is_admin:
            raise NotBookingOwnerError("You can only cancel your own bookings")
        booking = service.cancel_booking(booking_id=booking_id, actor_id=requester_id)
        return BookingResponse.from_domain(booking)
    except BookingCoreError as exc:
        raise http_error_from(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected booking cancellation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel booking",
        ) from exc


@router.get(
    "/bookings/me",
    response_model=BookingListResponse,
    status_code=status.HTTP_200_OK,
)
def list_my_bookings(
    include_history: bool = Query(default=False),
    requester_id: str = Depends(get_requester_id),
    service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    if include_history:
        bookings = service.list_booking_history(requester_id)
    else:
        bookings = service.list_active_bookings(requester_id)
    return BookingListResponse(
        bookings=[BookingResponse.from_domain(booking) for booking in bookings]
    )


@router.get(
    "/bookings/all",
    response_model=BookingPageResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
def list_all_bookings(
    requester_id: str | None = Query(default=None),
    room_id: str | None = Query(default=None),
    booking_status: Literal["confirmed", "cancelled", "expired"] | None = Query(
        default=None, alias="status"
    ),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    page: int = Query(default=1),
    limit: int = Query(default=50),
    service: BookingService = Depends(get_booking_service),
) -> BookingPageResponse:
    """Every booking across requesters, newest first, with expiry applied."""
    try:
        bookings, total = service.list_all_bookings(
            requester_id=requester_id,
            room_id=room_id,
            status=BookingStatus(booking_status) if booking_status else None,
            starts_from=start,
            ends_by=end,
            page=page,
            limit=limit,
        )
    except BookingCoreError as exc:
        raise http_error_from(exc) from exc
    return BookingPageResponse(
        bookings=[BookingResponse.from_domain(booking) for booking in bookings],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit),
    )
