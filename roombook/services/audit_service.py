"""Append-only audit trail for booking, rule and maintenance changes."""

from __future__ import annotations

from typing import Any, Optional

from roombook.domain.models import AuditEntry
from roombook.repository.data_repository import DataRepository
from roombook.utils.config import Settings, get_settings
from roombook.utils.logger import get_logger


logger = get_logger(__name__)

MAX_AUDIT_PAGE_SIZE = 500


class AuditValidationError(Exception):
    """Raised when audit log filters are invalid."""


class AuditLogService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def record(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> AuditEntry:
        entry = self._repository.save_audit_entry(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            payload=payload,
        )
        logger.info(
            "Audit recorded | action=%s | entity_type=%s | entity_id=%s | actor_id=%s",
            action,
            entity_type,
            entity_id,
            actor_id,
        )
        return entry

    def list_entries(
        self,
        *,
        actor_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditEntry]:
        if not 0 < limit <= MAX_AUDIT_PAGE_SIZE:
            raise AuditValidationError(f"limit must be between 1 and {MAX_AUDIT_PAGE_SIZE}")
        if offset < 0:
            raise AuditValidationError("offset must be non-negative")
        return self._repository.list_audit_entries(
            actor_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            limit=limit,
            offset=offset,
        )
