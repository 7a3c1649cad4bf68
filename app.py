"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from roombook.controllers.booking_controller import router as booking_router
from roombook.controllers.room_controller import router as room_router
from roombook.controllers.rules_controller import router as rules_router
from roombook.repository.data_repository import DataRepository
from roombook.services.audit_service import AuditLogService
from roombook.services.auth_service import AuthService
from roombook.services.availability_service import AvailabilityService
from roombook.services.booking_service import BookingService
from roombook.services.conflict_service import ConflictDetectionService
from roombook.services.maintenance_service import MaintenanceService
from roombook.services.rule_service import RuleService
from roombook.utils.config import Settings, get_settings
from roombook.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    All services share one repository, and therefore one room lock registry,
    and are exposed to controllers through app.state.
    """
    settings = settings or get_settings()

    repository = DataRepository(settings)

    audit_service = AuditLogService(repository=repository, settings=settings)
    rule_service = RuleService(
        repository=repository,
        settings=settings,
        audit_service=audit_service,
    )
    conflict_service = ConflictDetectionService(repository=repository, settings=settings)
    booking_service = BookingService(
        repository=repository,
        settings=settings,
        rule_service=rule_service,
        conflict_service=conflict_service,
        audit_service=audit_service,
    )
    availability_service = AvailabilityService(
        repository=repository,
        settings=settings,
        rule_service=rule_service,
    )
    maintenance_service = MaintenanceService(
        repository=repository,
        settings=settings,
        audit_service=audit_service,
    )
    auth_service = AuthService(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(booking_router)
    app.include_router(room_router)
    app.include_router(rules_router)

    app.state.settings = settings
    app.state.repository = repository
    app.state.audit_service = audit_service
    app.state.rule_service = rule_service
    app.state.booking_service = booking_service
    app.state.availability_service = availability_service
    app.state.maintenance_service = maintenance_service
    app.state.auth_service = auth_service

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema first, then the rule row every booking depends on, then optional
    demo rooms, then a sweep that persists expiry for bookings that ended
    while the server was down.
    """
    settings: Settings = app.state.settings
    repository: DataRepository = app.state.repository
    booking_service: BookingService = app.state.booking_service

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    logger.info("Startup: seeding default rule config (skipped if present)")
    repository.seed_default_rules()

    if settings.seed_demo_rooms:
        logger.info("Startup: seeding demo rooms (skipped if Rooms table not empty)")
        repository.seed_demo_rooms()

    logger.info("Startup: persisting expiry for past bookings")
    booking_service.expire_past_bookings()

    logger.info("Startup complete, system ready")


# Module-level app object for uvicorn
app = create_app()
