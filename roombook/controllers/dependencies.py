"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from roombook.domain.errors import BookingCoreError, ErrorCode
from roombook.services.audit_service import AuditLogService
from roombook.services.auth_service import (
    AdminTokenNotConfiguredError,
    AuthService,
    InvalidAdminTokenError,
)
from roombook.services.availability_service import AvailabilityService
from roombook.services.booking_service import BookingService
from roombook.services.maintenance_service import MaintenanceService
from roombook.services.rule_service import RuleService
from roombook.utils.config import get_settings


bearer_scheme = HTTPBearer(auto_error=False)

_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.NOT_BOOKING_OWNER: status.HTTP_403_FORBIDDEN,
    ErrorCode.ROOM_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BOOKING_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.MAINTENANCE_BLOCK_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BOOKING_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.ROOM_UNAVAILABLE: status.HTTP_409_CONFLICT,
    ErrorCode.MAX_ACTIVE_BOOKINGS_EXCEEDED: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_CANCELLED: status.HTTP_409_CONFLICT,
}


def http_error_from(exc: BookingCoreError) -> HTTPException:
    """Map a typed core failure to an HTTP error; everything unlisted is a 400."""
    return HTTPException(
        status_code=_STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST),
        detail=exc.to_dict(),
    )


def require_whole_minutes(*values: datetime) -> None:
    """Reject request times carrying seconds instead of truncating them."""
    if any(value.second or value.microsecond for value in values):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": str(ErrorCode.INVALID_TIME_RANGE),
                "message": "Start and end times must be whole minutes",
            },
        )


def _service_from_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} service is not initialized",
        )
    return service


def get_auth_service(request: Request) -> AuthService:
    service = getattr(request.app.state, "auth_service", None)
    if service is None:
        service = AuthService(settings=get_settings())
        request.app.state.auth_service = service
    return service


def get_booking_service(request: Request) -> BookingService:
    return _service_from_state(request, "booking_service", "Booking")


def get_availability_service(request: Request) -> AvailabilityService:
    return _service_from_state(request, "availability_service", "Availability")


def get_rule_service(request: Request) -> RuleService:
    return _service_from_state(request, "rule_service", "Rule")


def get_maintenance_service(request: Request) -> MaintenanceService:
    return _service_from_state(request, "maintenance_service", "Maintenance")


def get_audit_service(request: Request) -> AuditLogService:
    return _service_from_state(request, "audit_service", "Audit")


async def get_requester_id(x_user_id: str | None = Header(default=None)) -> str:
    """Identity is asserted by the upstream auth proxy through X-User-Id."""
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required",
        )
    return x_user_id.strip()


async def get_is_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> bool:
    if credentials is None:
        return False
    return auth_service.is_admin(credentials.credentials)


async def require_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    if not auth_service.auth_enabled:
        return
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header with Bearer token is required",
        )
    try:
        auth_service.validate_bearer_token(credentials.credentials)
    except (AdminTokenNotConfiguredError, InvalidAdminTokenError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
