"""HH:mm wall-clock strings, duration tokens, and instant differences. No timezone conversion happens here."""

import math
import re
from datetime import datetime, timedelta

from naptrack.core.constants import DURATION_UNIT_MS
from naptrack.core.errors import FormatError

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
DURATION_PATTERN = re.compile(r"^(\d+)([a-zA-Z]+)$")


# Used by: schedule_model, schedule_predictor, transition_tracker
def parse_time_to_minutes(time_str: str) -> int:
    """"07:45" -> 465. Raises FormatError unless strictly HH:mm within 00:00-23:59."""
    if not isinstance(time_str, str):
        raise FormatError(f"Time must be a string in HH:mm format, got {time_str!r}")
    match = TIME_PATTERN.match(time_str)
    if not match:
        raise FormatError(f"Time must be in HH:mm format, got {time_str!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


# Used by: transition_tracker (suggested nap times), schedule_predictor (reasons)
def minutes_to_time_string(minutes: int) -> str:
    """465 -> "07:45". Values of 1440 and above are rendered as next-day overflow ("24:15")."""
    if minutes < 0:
        raise FormatError(f"Minutes since midnight cannot be negative, got {minutes}")
    hours, mins = divmod(int(minutes), 60)
    return f"{hours:02d}:{mins:02d}"


# Used by: duration_token_to_timedelta (settings)
def parse_duration_token(token: str) -> int:
    """"15m" -> 900000. Units: s, m, h, d. Returns milliseconds."""
    if not isinstance(token, str):
        raise FormatError(f"Duration must be a string like '15m', got {token!r}")
    match = DURATION_PATTERN.match(token.strip())
    if not match:
        raise FormatError(f"Invalid duration token {token!r}")
    count, unit = match.groups()
    if unit not in DURATION_UNIT_MS:
        raise FormatError(f"Unknown duration unit {unit!r} in {token!r}")
    return int(count) * DURATION_UNIT_MS[unit]


def duration_token_to_timedelta(token: str) -> timedelta:
    return timedelta(milliseconds=parse_duration_token(token))


def whole_days_between(start: datetime, end: datetime) -> int:
    """Elapsed full days from start to end (floored, never rounded up)."""
    return math.floor((end - start).total_seconds() / 86400)


def minutes_between(start: datetime, end: datetime) -> int:
    """Rounded elapsed minutes; negative when end precedes start."""
    return round((end - start).total_seconds() / 60)


def at_wall_clock(reference: datetime, time_str: str) -> datetime:
    """The given HH:mm on reference's calendar date."""
    minutes = parse_time_to_minutes(time_str)
    midnight = reference.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight + timedelta(minutes=minutes)
