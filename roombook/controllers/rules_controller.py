"""HTTP controller layer for admin login, policy rules and the audit log."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, Field

from roombook.controllers.dependencies import (
    bearer_scheme,
    get_audit_service,
    get_auth_service,
    get_rule_service,
    http_error_from,
    require_admin,
)
from roombook.domain.errors import BookingCoreError
from roombook.domain.models import PolicyConfig
from roombook.services.audit_service import AuditLogService, AuditValidationError
from roombook.services.auth_service import (
    AdminTokenNotConfiguredError,
    AuthService,
    InvalidAdminTokenError,
)
from roombook.services.rule_service import RuleService
from roombook.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["rules"])


class LoginRequest(BaseModel):
    admin_token: str = Field(min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class RulesResponse(BaseModel):
    open_hour: int
    close_hour: int
    time_slot_interval_minutes: int
    min_duration_minutes: int
    max_duration_minutes: int
    max_active_bookings: int
    max_consecutive: int | None = None
    cooldown_minutes: int | None = None
    min_notice_minutes: int
    max_days_ahead: int

    @classmethod
    def from_domain(cls, config: PolicyConfig) -> RulesResponse:
        return cls(**config.to_dict())


class AuditEntryResponse(BaseModel):
    entry_id: str
    actor_id: str | None = None
    action: str
    entity_type: str
    entity_id: str | None = None
    payload: dict[str, Any] | None = None
    created_at: datetime


class AuditLogResponse(BaseModel):
    entries: list[AuditEntryResponse]


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    try:
        token = auth_service.login(payload.admin_token)
        return LoginResponse(access_token=token)
    except AdminTokenNotConfiguredError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except InvalidAdminTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    if credentials is not None:
        auth_service.logout(credentials.credentials)


@router.get("/rules", response_model=RulesResponse, status_code=status.HTTP_200_OK)
def get_rules(service: RuleService = Depends(get_rule_service)) -> RulesResponse:
    return RulesResponse.from_domain(service.get_rules())


@router.put(
    "/rules",
    response_model=RulesResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
def update_rules(
    payload: dict[str, Any] = Body(...),
    service: RuleService = Depends(get_rule_service),
) -> RulesResponse:
    """Partial update: omitted fields keep their stored values."""
    try:
        return RulesResponse.from_domain(service.update_rules(payload, actor_id="admin"))
    except BookingCoreError as exc:
        raise http_error_from(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected rule update failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update rules",
        ) from exc


@router.get(
    "/audit_logs",
    response_model=AuditLogResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
def list_audit_logs(
    actor_id: str | None = Query(default=None),
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    action: str | None = Query(default=None),
    limit: int = Query(default=100),
    offset: int = Query(default=0),
    service: AuditLogService = Depends(get_audit_service),
) -> AuditLogResponse:
    try:
        entries = service.list_entries(
            actor_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            limit=limit,
            offset=offset,
        )
    except AuditValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return AuditLogResponse(
        entries=[
            AuditEntryResponse(
                entry_id=entry.entry_id,
                actor_id=entry.actor_id,
                action=entry.action,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                payload=entry.payload,
                created_at=entry.created_at,
            )
            for entry in entries
        ]
    )
