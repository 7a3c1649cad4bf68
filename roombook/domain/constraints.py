"""Domain-level validation rules for the scheduling policy config."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping, Optional

from roombook.domain.errors import ErrorCode
from roombook.domain.models import (
    OPTIONAL_POLICY_FIELDS,
    POLICY_FIELDS,
    PolicyConfig,
    ValidationResult,
)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def build_effective_config(
    candidate: Mapping[str, Any],
    current: PolicyConfig,
) -> PolicyConfig:
    """Merge a partial update over the stored config without mutating either."""
    updates = {key: value for key, value in candidate.items() if key in POLICY_FIELDS}
    return replace(current, **updates)


def validate_policy_fields(fields: Mapping[str, Any]) -> ValidationResult:
    """Check the fields that are present; pairs only when both sides are present.

    Rules run in a fixed order and the first violation is returned.
    """
    shape_result = _validate_shape(fields)
    if not shape_result.valid:
        return shape_result

    for name, value in fields.items():
        if value is None and name in OPTIONAL_POLICY_FIELDS:
            continue
        if not _is_int(value):
            return ValidationResult.fail(
                _type_error_code(name),
                f"{name} must be an integer",
            )

    open_hour = fields.get("open_hour")
    close_hour = fields.get("close_hour")
    if open_hour is not None and not 0 <= open_hour < 24:
        return ValidationResult.fail(
            ErrorCode.INVALID_HOURS, "open_hour must be between 0 and 23"
        )
    if close_hour is not None and not 0 < close_hour <= 24:
        return ValidationResult.fail(
            ErrorCode.INVALID_HOURS, "close_hour must be between 1 and 24"
        )
    if open_hour is not None and close_hour is not None and open_hour >= close_hour:
        return ValidationResult.fail(
            ErrorCode.INVALID_HOURS, "open_hour must be less than close_hour"
        )

    slot = fields.get("time_slot_interval_minutes")
    if slot is not None and slot <= 0:
        return ValidationResult.fail(
            ErrorCode.INVALID_TIME_SLOT_INTERVAL,
            "time_slot_interval_minutes must be positive",
        )

    min_duration = fields.get("min_duration_minutes")
    max_duration = fields.get("max_duration_minutes")
    if min_duration is not None and min_duration <= 0:
        return ValidationResult.fail(
            ErrorCode.INVALID_MIN_DURATION, "min_duration_minutes must be positive"
        )
    if max_duration is not None and max_duration <= 0:
        return ValidationResult.fail(
            ErrorCode.INVALID_MAX_DURATION, "max_duration_minutes must be positive"
        )
    if min_duration is not None and max_duration is not None and min_duration > max_duration:
        return ValidationResult.fail(
            ErrorCode.INVALID_DURATION_RANGE,
            "min_duration_minutes must be less than or equal to max_duration_minutes",
        )

    max_active = fields.get("max_active_bookings")
    if max_active is not None and max_active <= 0:
        return ValidationResult.fail(
            ErrorCode.INVALID_MAX_ACTIVE_BOOKINGS, "max_active_bookings must be positive"
        )

    max_consecutive = fields.get("max_consecutive")
    if max_consecutive is not None and max_consecutive <= 0:
        return ValidationResult.fail(
            ErrorCode.INVALID_MAX_CONSECUTIVE, "max_consecutive must be positive or null"
        )

    cooldown = fields.get("cooldown_minutes")
    if cooldown is not None and cooldown < 0:
        return ValidationResult.fail(
            ErrorCode.INVALID_COOLDOWN, "cooldown_minutes must be non-negative or null"
        )

    min_notice = fields.get("min_notice_minutes")
    if min_notice is not None and min_notice < 0:
        return ValidationResult.fail(
            ErrorCode.INVALID_MIN_NOTICE, "min_notice_minutes must be non-negative"
        )

    max_days_ahead = fields.get("max_days_ahead")
    if max_days_ahead is not None and max_days_ahead <= 0:
        return ValidationResult.fail(
            ErrorCode.INVALID_MAX_DAYS_AHEAD, "max_days_ahead must be positive"
        )

    return ValidationResult.ok()


def validate_policy_update(
    candidate: Mapping[str, Any],
    current: Optional[PolicyConfig] = None,
) -> ValidationResult:
    """Validate a partial policy update.

    With ``current`` the candidate is merged into an effective config first, so
    cross-field pairs see the stored value for the side that was not supplied.
    """
    if current is None:
        return validate_policy_fields(candidate)

    # merging drops unknown keys, so report them against the raw candidate
    shape_result = _validate_shape(candidate)
    if not shape_result.valid:
        return shape_result
    effective = build_effective_config(candidate, current)
    return validate_policy_fields(effective.to_dict())


def validate_policy_config(config: PolicyConfig) -> ValidationResult:
    return validate_policy_fields(config.to_dict())


def _validate_shape(candidate: Mapping[str, Any]) -> ValidationResult:
    unknown = sorted(key for key in candidate if key not in POLICY_FIELDS)
    if unknown:
        return ValidationResult.fail(
            ErrorCode.UNKNOWN_FIELD,
            f"Unknown policy field(s): {', '.join(unknown)}",
        )
    return ValidationResult.ok()


def _type_error_code(name: str) -> ErrorCode:
    return {
        "open_hour": ErrorCode.INVALID_HOURS,
        "close_hour": ErrorCode.INVALID_HOURS,
        "time_slot_interval_minutes": ErrorCode.INVALID_TIME_SLOT_INTERVAL,
        "min_duration_minutes": ErrorCode.INVALID_MIN_DURATION,
        "max_duration_minutes": ErrorCode.INVALID_MAX_DURATION,
        "max_active_bookings": ErrorCode.INVALID_MAX_ACTIVE_BOOKINGS,
        "max_consecutive": ErrorCode.INVALID_MAX_CONSECUTIVE,
        "cooldown_minutes": ErrorCode.INVALID_COOLDOWN,
        "min_notice_minutes": ErrorCode.INVALID_MIN_NOTICE,
        "max_days_ahead": ErrorCode.INVALID_MAX_DAYS_AHEAD,
    }[name]
