"""Fair-usage policy evaluation for booking requests.

Everything here is a pure function of its arguments: the caller supplies the
requester's booking history and the policy snapshot, and nothing is read from
storage. The checks run in a fixed order and the first failure is returned.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Iterable, Optional

from roombook.domain.errors import ErrorCode
from roombook.domain.models import (
    Booking,
    Interval,
    PolicyConfig,
    PolicyDecision,
    is_active,
    to_utc,
)


def _minute_of_day(value: datetime) -> int:
    return value.hour * 60 + value.minute


def check_operating_hours(
    interval: Interval,
    config: PolicyConfig,
    enforce_slot_alignment: bool = False,
) -> Optional[PolicyDecision]:
    if interval.end <= interval.start:
        return PolicyDecision.deny(ErrorCode.INVALID_TIME_RANGE, "End time must be after start time")

    start_minute = _minute_of_day(interval.start)
    if start_minute < config.open_hour * 60:
        return PolicyDecision.deny(
            ErrorCode.OUTSIDE_OPERATING_HOURS,
            f"Bookings cannot start before {config.open_hour:02d}:00 UTC",
        )

    day_after = interval.start.date() + timedelta(days=1)
    if interval.end.date() == interval.start.date():
        end_minute = _minute_of_day(interval.end)
    elif interval.end.date() == day_after and _minute_of_day(interval.end) == 0:
        end_minute = 24 * 60
    else:
        return PolicyDecision.deny(
            ErrorCode.OUTSIDE_OPERATING_HOURS,
            "Bookings must start and end on the same day",
        )
    if end_minute > config.close_hour * 60:
        return PolicyDecision.deny(
            ErrorCode.OUTSIDE_OPERATING_HOURS,
            f"Bookings must end by {config.close_hour:02d}:00 UTC",
        )

    if enforce_slot_alignment and start_minute % config.time_slot_interval_minutes != 0:
        return PolicyDecision.deny(
            ErrorCode.INVALID_TIME_SLOT,
            f"Start time must align to {config.time_slot_interval_minutes}-minute slots",
        )
    return None


def check_duration(interval: Interval, config: PolicyConfig) -> Optional[PolicyDecision]:
    minutes = interval.duration_minutes
    if minutes < config.min_duration_minutes:
        return PolicyDecision.deny(
            ErrorCode.DURATION_TOO_SHORT,
            f"Booking must be at least {config.min_duration_minutes} minutes",
        )
    if minutes > config.max_duration_minutes:
        return PolicyDecision.deny(
            ErrorCode.DURATION_TOO_LONG,
            f"Booking cannot exceed {config.max_duration_minutes} minutes",
        )
    return None


def check_booking_window(
    interval: Interval,
    now: datetime,
    config: PolicyConfig,
) -> Optional[PolicyDecision]:
    lead_time = interval.start - to_utc(now)
    if lead_time < timedelta(minutes=config.min_notice_minutes):
        return PolicyDecision.deny(
            ErrorCode.INSUFFICIENT_NOTICE,
            f"Bookings require at least {config.min_notice_minutes} minutes notice",
        )
    if lead_time > timedelta(days=config.max_days_ahead):
        return PolicyDecision.deny(
            ErrorCode.TOO_FAR_AHEAD,
            f"Bookings cannot be made more than {config.max_days_ahead} days ahead",
        )
    return None


def count_consecutive_chain(interval: Interval, active: list[Booking]) -> int:
    """Length of the longest zero-gap run of active bookings around ``interval``.

    Rooms are ignored: back-to-back bookings in different rooms still chain.
    Parallel bookings sharing an endpoint branch the run; the longest branch
    in each direction counts.
    """
    by_end: dict[datetime, list[Booking]] = defaultdict(list)
    by_start: dict[datetime, list[Booking]] = defaultdict(list)
    for booking in active:
        by_end[booking.interval.end].append(booking)
        by_start[booking.interval.start].append(booking)

    # every step moves strictly away from ``interval``, so the walks terminate
    @lru_cache(maxsize=None)
    def run_ending_at(moment: datetime) -> int:
        return max(
            (1 + run_ending_at(booking.interval.start) for booking in by_end.get(moment, ())),
            default=0,
        )

    @lru_cache(maxsize=None)
    def run_starting_at(moment: datetime) -> int:
        return max(
            (1 + run_starting_at(booking.interval.end) for booking in by_start.get(moment, ())),
            default=0,
        )

    return run_ending_at(interval.start) + run_starting_at(interval.end)


def check_cooldown(
    interval: Interval,
    active: list[Booking],
    cooldown_minutes: int,
) -> Optional[PolicyDecision]:
    cooldown = timedelta(minutes=cooldown_minutes)
    for booking in active:
        ends_just_before = interval.start - cooldown < booking.interval.end <= interval.start
        starts_just_after = interval.end <= booking.interval.start < interval.end + cooldown
        if ends_just_before or starts_just_after:
            return PolicyDecision.deny(
                ErrorCode.COOLDOWN_VIOLATION,
                f"Bookings must be at least {cooldown_minutes} minutes apart",
            )
    return None


def evaluate_usage_policy(
    requester_id: str,
    room_id: str,
    interval: Interval,
    now: datetime,
    history: Iterable[Booking],
    config: PolicyConfig,
    enforce_slot_alignment: bool = False,
) -> PolicyDecision:
    """Decide whether ``requester_id`` may book ``room_id`` for ``interval``.

    ``history`` may contain any bookings; only the requester's active ones
    (confirmed and ending after ``now``) count toward quota, chains and cooldown.
    """
    for decision in (
        check_operating_hours(interval, config, enforce_slot_alignment),
        check_duration(interval, config),
        check_booking_window(interval, now, config),
    ):
        if decision is not None:
            return decision

    active = [
        booking
        for booking in history
        if booking.requester_id == requester_id and is_active(booking, now)
    ]

    if len(active) >= config.max_active_bookings:
        return PolicyDecision.deny(
            ErrorCode.MAX_ACTIVE_BOOKINGS_EXCEEDED,
            f"Maximum of {config.max_active_bookings} active bookings reached",
        )

    if config.max_consecutive is not None:
        chain = count_consecutive_chain(interval, active)
        if chain >= config.max_consecutive:
            return PolicyDecision.deny(
                ErrorCode.MAX_CONSECUTIVE_EXCEEDED,
                f"Cannot book more than {config.max_consecutive} consecutive slots",
            )

    if config.cooldown_minutes:
        decision = check_cooldown(interval, active, config.cooldown_minutes)
        if decision is not None:
            return decision

    return PolicyDecision.allow()
