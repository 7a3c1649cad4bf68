"""Cached access to the singleton scheduling policy config."""

from __future__ import annotations

from threading import RLock
from typing import Any, Mapping, Optional

from roombook.domain.constraints import build_effective_config, validate_policy_update
from roombook.domain.errors import RuleValidationError
from roombook.domain.models import PolicyConfig, ValidationResult
from roombook.repository.data_repository import DataRepository
from roombook.services.audit_service import AuditLogService
from roombook.utils.config import Settings, get_settings
from roombook.utils.logger import get_logger


logger = get_logger(__name__)


class RuleService:
    """Serves policy snapshots and applies validated partial updates.

    The cached config is an immutable value. Updates build a new value, persist
    it in one statement and then swap the reference under the lock, so readers
    see either the old config or the new one.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        audit_service: Optional[AuditLogService] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._audit = audit_service or AuditLogService(self._repository, self._settings)
        self._lock = RLock()
        self._cached: Optional[PolicyConfig] = None

    def get_rules(self) -> PolicyConfig:
        with self._lock:
            if self._cached is None:
                config = self._repository.get_policy()
                if config is None:
                    raise RuntimeError("Rule config is not initialized; seed defaults first")
                self._cached = config
            return self._cached

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None

    def validate(self, candidate: Mapping[str, Any]) -> ValidationResult:
        """Dry-run a partial update against the current config."""
        return validate_policy_update(candidate, self.get_rules())

    def update_rules(
        self,
        candidate: Mapping[str, Any],
        actor_id: Optional[str] = None,
    ) -> PolicyConfig:
        with self._lock:
            current = self.get_rules()
            result = validate_policy_update(candidate, current)
            if not result.valid:
                logger.info(
                    "Rule update rejected | code=%s | actor_id=%s", result.code, actor_id
                )
                raise RuleValidationError(result.message or "Invalid rule config", result.code)

            updated = build_effective_config(candidate, current)
            self._repository.replace_policy(updated)
            self._cached = updated

        changed = {
            key: {"from": getattr(current, key), "to": getattr(updated, key)}
            for key in candidate
            if getattr(current, key) != getattr(updated, key)
        }
        self._audit.record(
            action="rules_updated",
            entity_type="rule_config",
            entity_id="1",
            actor_id=actor_id,
            payload={"changes": changed},
        )
        logger.info("Rule update completed | actor_id=%s | changed=%s", actor_id, sorted(changed))
        return updated
