"""Admin session tokens backed by the configured ADMIN_TOKEN secret."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from threading import Lock
from typing import Callable, Optional

from roombook.domain.models import utcnow
from roombook.utils.config import Settings, get_settings
from roombook.utils.logger import get_logger


logger = get_logger(__name__)


class AuthenticationError(Exception):
    """Base authentication failure."""


class AdminTokenNotConfiguredError(AuthenticationError):
    """Raised when ADMIN_TOKEN is missing."""


class InvalidAdminTokenError(AuthenticationError):
    """Raised when a login secret or bearer token is rejected."""


class AuthService:
    """Exchanges the admin secret for bearer session tokens.

    Each session lives for ``admin_session_ttl_minutes`` after login. When
    ADMIN_TOKEN is unset, admin routes are open; this is meant for local
    development only.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or utcnow
        self._sessions: dict[str, datetime] = {}
        self._lock = Lock()

    @property
    def auth_enabled(self) -> bool:
        return bool(self._settings.admin_token)

    def _expected_secret(self) -> str:
        if not self._settings.admin_token:
            raise AdminTokenNotConfiguredError(
                "ADMIN_TOKEN is not configured. Set ADMIN_TOKEN in environment variables."
            )
        return self._settings.admin_token

    def _prune_expired(self, now: datetime) -> None:
        # caller holds self._lock
        for token in [token for token, expires_at in self._sessions.items() if expires_at <= now]:
            del self._sessions[token]

    def login(self, provided_admin_token: str) -> str:
        expected = self._expected_secret()
        if not secrets.compare_digest(provided_admin_token, expected):
            logger.info("Admin login rejected")
            raise InvalidAdminTokenError("Invalid admin token")
        token = secrets.token_urlsafe(32)
        now = self._clock()
        with self._lock:
            self._prune_expired(now)
            self._sessions[token] = now + timedelta(
                minutes=self._settings.admin_session_ttl_minutes
            )
            active = len(self._sessions)
        logger.info("Admin login completed | sessions=%s", active)
        return token

    def logout(self, bearer_token: str) -> None:
        with self._lock:
            self._sessions.pop(bearer_token, None)

    def active_session_count(self) -> int:
        with self._lock:
            self._prune_expired(self._clock())
            return len(self._sessions)

    def validate_bearer_token(self, bearer_token: str) -> None:
        if not self.auth_enabled:
            return
        with self._lock:
            self._prune_expired(self._clock())
            known = any(secrets.compare_digest(bearer_token, token) for token in self._sessions)
        if not known:
            raise InvalidAdminTokenError("Invalid or expired bearer token. Login first.")

    def is_admin(self, bearer_token: Optional[str]) -> bool:
        """True only for a live session; open dev mode grants no override rights."""
        if not self.auth_enabled or not bearer_token:
            return False
        try:
            self.validate_bearer_token(bearer_token)
        except InvalidAdminTokenError:
            return False
        return True
