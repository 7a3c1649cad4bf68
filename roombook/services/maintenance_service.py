"""Administration of maintenance blocks that take rooms out of service."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from roombook.domain.errors import (
    MaintenanceBlockNotFoundError,
    MaintenanceValidationError,
    RoomNotFoundError,
)
from roombook.domain.models import Interval, MaintenanceBlock
from roombook.repository.data_repository import DataRepository
from roombook.services.audit_service import AuditLogService
from roombook.utils.config import Settings, get_settings
from roombook.utils.logger import get_logger


logger = get_logger(__name__)


class MaintenanceService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        audit_service: Optional[AuditLogService] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._audit = audit_service or AuditLogService(self._repository, self._settings)

    def create_block(
        self,
        room_id: str,
        start: datetime,
        end: datetime,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> MaintenanceBlock:
        try:
            interval = Interval(start, end)
        except ValueError as exc:
            raise MaintenanceValidationError("Start time must be before end time") from exc

        if self._repository.get_room(room_id) is None:
            raise RoomNotFoundError(f"Room {room_id} was not found")

        block = self._repository.create_maintenance_block(room_id, interval, reason)
        self._audit.record(
            action="maintenance_block_created",
            entity_type="maintenance_block",
            entity_id=block.block_id,
            actor_id=actor_id,
            payload={
                "room_id": room_id,
                "start": interval.start.isoformat(),
                "end": interval.end.isoformat(),
                "reason": block.reason,
            },
        )
        logger.info(
            "Maintenance block created | block_id=%s | room_id=%s | start=%s | end=%s",
            block.block_id,
            room_id,
            interval.start.isoformat(),
            interval.end.isoformat(),
        )
        return block

    def delete_block(self, block_id: str, actor_id: Optional[str] = None) -> None:
        existing = self._repository.get_maintenance_block(block_id)
        if existing is None or not self._repository.delete_maintenance_block(block_id):
            raise MaintenanceBlockNotFoundError(f"Maintenance block {block_id} was not found")
        self._audit.record(
            action="maintenance_block_deleted",
            entity_type="maintenance_block",
            entity_id=block_id,
            actor_id=actor_id,
            payload={"room_id": existing.room_id},
        )
        logger.info("Maintenance block deleted | block_id=%s | room_id=%s", block_id, existing.room_id)

    def list_blocks(
        self,
        room_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[MaintenanceBlock]:
        return self._repository.list_maintenance_blocks(room_id=room_id, start=start, end=end)
