"""Read-only projections and validation over a child's ScheduleConfig."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from naptrack.core.constants import (
    NAPS_PER_SCHEDULE,
    WAKE_WINDOW_MIN_MINUTES, WAKE_WINDOW_MAX_MINUTES,
    NAP_DURATION_MIN_MINUTES, NAP_DURATION_MAX_MINUTES,
    DAY_SLEEP_CAP_MAX_MINUTES,
    MINIMUM_CRIB_MINUTES_MIN, MINIMUM_CRIB_MINUTES_MAX,
    REMINDER_MINUTES_MIN, REMINDER_MINUTES_MAX, WAKE_DEADLINE_REMINDER_MINUTES_MAX,
    BEDTIME_WAKE_WINDOW_FALLBACK,
    TRANSITION_START_NAP_TIME, TRANSITION_GOAL_NAP_END_BY, TRANSITION_GOAL_MAX_NAP_MINUTES,
    TRANSITION_MAX_WAKE_WINDOW_MINUTES, TRANSITION_BEDTIME_WAKE_WINDOW, TRANSITION_TEMPORARY_MAX_WAKE_TIME,
)
from naptrack.core.errors import FormatError, ScheduleValidationError
from naptrack.db.models import ScheduleConfig, ScheduleType
from naptrack.utils.time_math import parse_time_to_minutes

logger = logging.getLogger(__name__)

TIME_FIELDS = (
    "nap1_earliest", "nap1_latest_start", "nap1_end_by",
    "nap2_earliest", "nap2_latest_start", "nap2_end_by",
    "nap3_earliest", "nap3_latest_start", "nap3_end_by",
    "bedtime_earliest", "bedtime_latest", "bedtime_goal_start", "bedtime_goal_end",
    "wake_time_earliest", "wake_time_latest",
)

# (earliest field, latest field) pairs that must satisfy earliest <= latest
TIME_BOUND_PAIRS = (
    ("nap1_earliest", "nap1_latest_start"),
    ("nap2_earliest", "nap2_latest_start"),
    ("nap3_earliest", "nap3_latest_start"),
    ("nap1_latest_start", "nap1_end_by"),
    ("nap2_latest_start", "nap2_end_by"),
    ("nap3_latest_start", "nap3_end_by"),
    ("bedtime_earliest", "bedtime_latest"),
    ("bedtime_goal_start", "bedtime_goal_end"),
    ("wake_time_earliest", "wake_time_latest"),
)


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str


@dataclass(frozen=True)
class NapWindow:
    nap_number: int
    earliest: Optional[str]
    latest_start: Optional[str]
    max_duration: Optional[int]
    end_by: Optional[str]


def nap_count(config: ScheduleConfig) -> int:
    return NAPS_PER_SCHEDULE[config.type.value]


# Used by: schedule_service.replace_schedule, api PUT /schedule
def validate(config: ScheduleConfig) -> List[ValidationIssue]:
    """Every broken invariant in one pass. Empty list means the schedule is usable."""
    issues: List[ValidationIssue] = []
    minutes = {}

    for name in TIME_FIELDS:
        value = getattr(config, name)
        if value is None:
            continue
        try:
            minutes[name] = parse_time_to_minutes(value)
        except FormatError as e:
            issues.append(ValidationIssue(name, e.message))

    for earliest_field, latest_field in TIME_BOUND_PAIRS:
        if earliest_field in minutes and latest_field in minutes:
            if minutes[earliest_field] > minutes[latest_field]:
                issues.append(ValidationIssue(
                    earliest_field,
                    f"{earliest_field} ({getattr(config, earliest_field)}) is after "
                    f"{latest_field} ({getattr(config, latest_field)})",
                ))

    for n in (1, 2, 3):
        low = getattr(config, f"wake_window{n}_min")
        high = getattr(config, f"wake_window{n}_max")
        if (low is None) != (high is None):
            issues.append(ValidationIssue(f"wake_window{n}_min", f"Wake window {n} needs both min and max"))
            continue
        if low is None:
            continue
        for name, value in ((f"wake_window{n}_min", low), (f"wake_window{n}_max", high)):
            if not WAKE_WINDOW_MIN_MINUTES <= value <= WAKE_WINDOW_MAX_MINUTES:
                issues.append(ValidationIssue(
                    name, f"Must be between {WAKE_WINDOW_MIN_MINUTES} and {WAKE_WINDOW_MAX_MINUTES} minutes"
                ))
        if low > high:
            issues.append(ValidationIssue(f"wake_window{n}_min", f"Wake window {n} min ({low}) exceeds max ({high})"))

    for name in ("nap1_max_duration", "nap2_max_duration", "nap3_max_duration", "nap2_exception_duration"):
        value = getattr(config, name)
        if value is not None and not NAP_DURATION_MIN_MINUTES <= value <= NAP_DURATION_MAX_MINUTES:
            issues.append(ValidationIssue(
                name, f"Must be between {NAP_DURATION_MIN_MINUTES} and {NAP_DURATION_MAX_MINUTES} minutes"
            ))

    if not 0 <= config.day_sleep_cap <= DAY_SLEEP_CAP_MAX_MINUTES:
        issues.append(ValidationIssue("day_sleep_cap", f"Must be between 0 and {DAY_SLEEP_CAP_MAX_MINUTES} minutes"))

    if not MINIMUM_CRIB_MINUTES_MIN <= config.minimum_crib_minutes <= MINIMUM_CRIB_MINUTES_MAX:
        issues.append(ValidationIssue(
            "minimum_crib_minutes",
            f"Must be between {MINIMUM_CRIB_MINUTES_MIN} and {MINIMUM_CRIB_MINUTES_MAX} minutes",
        ))

    reminder_limits = (
        ("nap_reminder_minutes", REMINDER_MINUTES_MAX),
        ("bedtime_reminder_minutes", REMINDER_MINUTES_MAX),
        ("wake_deadline_reminder_minutes", WAKE_DEADLINE_REMINDER_MINUTES_MAX),
    )
    for name, upper in reminder_limits:
        value = getattr(config, name)
        if not REMINDER_MINUTES_MIN <= value <= upper:
            issues.append(ValidationIssue(name, f"Must be between {REMINDER_MINUTES_MIN} and {upper} minutes"))

    # Naps beyond the schedule type's count must not carry a wake window
    if nap_count(config) < 2 and config.type != ScheduleType.TRANSITION and config.wake_window3_min is not None:
        issues.append(ValidationIssue("wake_window3_min", f"{config.type.value} schedules use at most two wake windows"))

    return issues


def ensure_valid(config: ScheduleConfig) -> ScheduleConfig:
    issues = validate(config)
    if issues:
        logger.warning(f"Rejected schedule for child {config.child_id}: {len(issues)} issue(s)")
        raise ScheduleValidationError(issues)
    return config


# Used by: schedule_predictor, sleep-debt rule
def nap_window_for(config: ScheduleConfig, nap_number: int) -> Optional[NapWindow]:
    """Bounds for one nap, or None when the schedule type has no such nap."""
    if nap_number < 1 or nap_number > nap_count(config):
        return None
    return NapWindow(
        nap_number=nap_number,
        earliest=getattr(config, f"nap{nap_number}_earliest"),
        latest_start=getattr(config, f"nap{nap_number}_latest_start"),
        max_duration=getattr(config, f"nap{nap_number}_max_duration"),
        end_by=getattr(config, f"nap{nap_number}_end_by"),
    )


def wake_window_for(config: ScheduleConfig, slot: int) -> Optional[Tuple[int, int]]:
    """(min, max) for wake window `slot` (1-based), None if unset or beyond the third."""
    if slot < 1 or slot > 3:
        return None
    low = getattr(config, f"wake_window{slot}_min")
    high = getattr(config, f"wake_window{slot}_max")
    if low is None or high is None:
        return None
    return low, high


def bedtime_wake_window(config: ScheduleConfig, naps_taken: Optional[int] = None) -> Tuple[int, int]:
    """Window leading into bedtime: the slot after the last nap, then earlier slots, then the fallback."""
    slot = (naps_taken if naps_taken is not None else nap_count(config)) + 1
    for candidate in range(min(slot, 3), 1, -1):
        window = wake_window_for(config, candidate)
        if window:
            return window
    return BEDTIME_WAKE_WINDOW_FALLBACK


# Used by: schedule_service.start_transition (child starting from a TWO_NAP schedule)
def default_transition_schedule(child_id: Optional[int] = None, wake_time_earliest: str = "06:30") -> ScheduleConfig:
    """Stock 2-to-1 schedule: 5-5.5h to a single 11:30+ nap, 2.5h cap, 08:00 latest wake."""
    return ScheduleConfig(
        child_id=child_id,
        type=ScheduleType.TRANSITION,
        wake_window1_min=300,
        wake_window1_max=TRANSITION_MAX_WAKE_WINDOW_MINUTES,
        wake_window2_min=TRANSITION_BEDTIME_WAKE_WINDOW[0],
        wake_window2_max=TRANSITION_BEDTIME_WAKE_WINDOW[1],
        nap1_earliest=TRANSITION_START_NAP_TIME,
        nap1_latest_start="13:00",
        nap1_max_duration=TRANSITION_GOAL_MAX_NAP_MINUTES,
        nap1_end_by=TRANSITION_GOAL_NAP_END_BY,
        bedtime_earliest="18:45",
        bedtime_latest="19:30",
        bedtime_goal_start="19:00",
        bedtime_goal_end="19:30",
        day_sleep_cap=TRANSITION_GOAL_MAX_NAP_MINUTES,
        wake_time_earliest=wake_time_earliest,
        wake_time_latest=TRANSITION_TEMPORARY_MAX_WAKE_TIME,
    )
