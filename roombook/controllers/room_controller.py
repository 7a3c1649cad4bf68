"""HTTP controller layer for room search and maintenance blocks."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from roombook.controllers.dependencies import (
    get_availability_service,
    get_maintenance_service,
    http_error_from,
    require_admin,
    require_whole_minutes,
)
from roombook.domain.errors import BookingCoreError
from roombook.domain.models import Interval, MaintenanceBlock, RoomAvailability
from roombook.services.availability_service import AvailabilityService, build_search_window
from roombook.services.maintenance_service import MaintenanceService
from roombook.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["rooms"])


class SlotResponse(BaseModel):
    start: datetime
    end: datetime

    @classmethod
    def from_domain(cls, interval: Interval) -> SlotResponse:
        return cls(start=interval.start, end=interval.end)


class RoomAvailabilityResponse(BaseModel):
    room_id: str
    name: str
    capacity: int = Field(gt=0)
    capabilities: list[str]
    room_status: str
    availability_status: str
    available_slots: list[SlotResponse]

    @classmethod
    def from_domain(cls, item: RoomAvailability) -> RoomAvailabilityResponse:
        return cls(
            room_id=item.room.room_id,
            name=item.room.name,
            capacity=item.room.capacity,
            capabilities=sorted(item.room.capabilities),
            room_status=str(item.room.status),
            availability_status=str(item.availability_status),
            available_slots=[SlotResponse.from_domain(slot) for slot in item.available_slots],
        )


class RoomSearchResponse(BaseModel):
    rooms: list[RoomAvailabilityResponse]


class CreateMaintenanceBlockRequest(BaseModel):
    room_id: str = Field(min_length=1)
    start: datetime
    end: datetime
    reason: str | None = Field(default=None, max_length=500)

    @field_validator("reason")
    @classmethod
    def blank_reason_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()


class MaintenanceBlockResponse(BaseModel):
    block_id: str
    room_id: str
    start: datetime
    end: datetime
    reason: str | None = None

    @classmethod
    def from_domain(cls, block: MaintenanceBlock) -> MaintenanceBlockResponse:
        return cls(
            block_id=block.block_id,
            room_id=block.room_id,
            start=block.interval.start,
            end=block.interval.end,
            reason=block.reason,
        )


class MaintenanceBlockListResponse(BaseModel):
    blocks: list[MaintenanceBlockResponse]


@router.get(
    "/rooms/search",
    response_model=RoomSearchResponse,
    status_code=status.HTTP_200_OK,
)
def search_rooms(
    start: datetime,
    end: datetime,
    min_capacity: int | None = Query(default=None, gt=0),
    capabilities: list[str] | None = Query(default=None),
    sort_by: Literal["id", "name", "capacity"] = Query(default="id"),
    descending: bool = Query(default=False),
    service: AvailabilityService = Depends(get_availability_service),
) -> RoomSearchResponse:
    """Classify every non-archived room over the requested window."""
    try:
        window = build_search_window(start, end)
        results = service.search_rooms(
            window=window,
            min_capacity=min_capacity,
            required_capabilities=capabilities,
            sort_by=sort_by,
            descending=descending,
        )
        return RoomSearchResponse(
            rooms=[RoomAvailabilityResponse.from_domain(item) for item in results]
        )
    except BookingCoreError as exc:
        raise http_error_from(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected room search failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to search rooms",
        ) from exc


@router.post(
    "/maintenance_blocks",
    response_model=MaintenanceBlockResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_maintenance_block(
    payload: CreateMaintenanceBlockRequest,
    service: MaintenanceService = Depends(get_maintenance_service),
) -> MaintenanceBlockResponse:
    require_whole_minutes(payload.start, payload.end)
    try:
        block = service.create_block(
            room_id=payload.room_id,
            start=payload.start,
            end=payload.end,
            reason=payload.reason,
            actor_id="admin",
        )
        return MaintenanceBlockResponse.from_domain(block)
    except BookingCoreError as exc:
        raise http_error_from(exc) from exc


@router.get(
    "/maintenance_blocks",
    response_model=MaintenanceBlockListResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
def list_maintenance_blocks(
    room_id: str | None = Query(default=None),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    service: MaintenanceService = Depends(get_maintenance_service),
) -> MaintenanceBlockListResponse:
    blocks = service.list_blocks(room_id=room_id, start=start, end=end)
    return MaintenanceBlockListResponse(
        blocks=[MaintenanceBlockResponse.from_domain(block) for block in blocks]
    )


@router.delete(
    "/maintenance_blocks/{block_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_maintenance_block(
    block_id: str,
    service: MaintenanceService = Depends(get_maintenance_service),
) -> None:
    try:
        service.delete_block(block_id, actor_id="admin")
    except BookingCoreError as exc:
        raise http_error_from(exc) from exc
