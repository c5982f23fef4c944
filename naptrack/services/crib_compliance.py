"""Minimum-crib-time rule: a nap counts once the child has stayed in the crib long enough."""

from dataclasses import dataclass
from datetime import datetime

from ..core.errors import InvalidArgumentError
from ..db.models import SleepSession


@dataclass(frozen=True)
class CribCompliance:
    compliant: bool
    minutes_in_crib: int
    remaining_minutes: int
    required_minutes: int
    recommendation: str


# Used by: schedule_service.crib_compliance
def check_compliance(session: SleepSession, required_minutes: int, now: datetime) -> CribCompliance:
    """
    Compare time in crib against the rule.

    A finished session is measured put-down to out-of-crib; one still in
    progress is measured against `now`. No put-down time means zero minutes.
    """
    if required_minutes < 0:
        raise InvalidArgumentError(f"required_minutes cannot be negative, got {required_minutes}")

    minutes_in_crib = 0
    if session.put_down_at is not None:
        end = session.out_of_crib_at or now
        minutes_in_crib = max(0, round((end - session.put_down_at).total_seconds() / 60))

    compliant = minutes_in_crib >= required_minutes
    remaining = max(0, required_minutes - minutes_in_crib)

    if compliant:
        recommendation = f"Crib {required_minutes} rule met!"
    else:
        recommendation = f"Keep in crib for {remaining} more minutes to meet crib {required_minutes} rule"

    return CribCompliance(
        compliant=compliant,
        minutes_in_crib=minutes_in_crib,
        remaining_minutes=remaining,
        required_minutes=required_minutes,
        recommendation=recommendation,
    )
