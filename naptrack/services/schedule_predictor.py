"""Next-action recommendation (NAP / BEDTIME / WAIT / WAKE) and full-day plans from a child's schedule."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from ..core.constants import (
    NAP_MAX_DURATION_FALLBACK, SINGLE_NAP_MAX_DURATION_FALLBACK, NAP_WAKE_WINDOW_FALLBACK,
    SLEEP_DEBT_SHORTFALL_FRACTION, SLEEP_DEBT_BEDTIME_SHIFT_MINUTES,
    TRANSITION_NAP_TOLERANCE_MINUTES, SHORT_NAP_MINUTES,
)
from ..db.models import ScheduleConfig, ScheduleTransition, SleepSession
from ..utils.time_math import at_wall_clock, minutes_between
from .schedule_model import bedtime_wake_window, nap_count, nap_window_for, wake_window_for
from .session_stats import AggregateStats, TodayNap

logger = logging.getLogger(__name__)


class Action(str, Enum):
    NAP = "NAP"
    BEDTIME = "BEDTIME"
    WAIT = "WAIT"
    WAKE = "WAKE"


@dataclass(frozen=True)
class Recommendation:
    action: Action
    earliest: Optional[datetime]
    latest: Optional[datetime]
    target: Optional[datetime]
    reason: str
    nap_number: Optional[int] = None
    overtired: bool = False
    wake_deadline: Optional[datetime] = None
    notes: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TimeWindow:
    earliest: datetime
    latest: datetime
    recommended: datetime


@dataclass(frozen=True)
class NapPlan:
    nap_number: int
    put_down_window: TimeWindow
    max_duration: int
    end_by: Optional[datetime]
    notes: List[str]


@dataclass(frozen=True)
class BedtimePlan:
    put_down_window: TimeWindow
    notes: List[str]


@dataclass(frozen=True)
class DayPlan:
    date: date
    wake_time: datetime
    naps: List[NapPlan]
    bedtime: BedtimePlan
    day_sleep_cap: int
    warnings: List[str]


def _midpoint(start: datetime, end: datetime) -> datetime:
    return start + timedelta(minutes=round(minutes_between(start, end) / 2))


def _clamp(moment: datetime, earliest: Optional[datetime], latest: Optional[datetime]) -> datetime:
    if earliest is not None and moment < earliest:
        return earliest
    if latest is not None and moment > latest:
        return latest
    return moment


def _hhmm(moment: datetime) -> str:
    return moment.strftime("%H:%M")


def _uses_transition_slot(config: ScheduleConfig, transition: Optional[ScheduleTransition], nap_number: int) -> bool:
    return transition is not None and transition.is_active and nap_count(config) == 1 and nap_number == 1


def _nap_max_duration(config: ScheduleConfig, nap_number: int) -> int:
    window = nap_window_for(config, nap_number)
    if window is not None and window.max_duration is not None:
        return window.max_duration
    return SINGLE_NAP_MAX_DURATION_FALLBACK if nap_count(config) == 1 else NAP_MAX_DURATION_FALLBACK


def _nap_wake_window(config: ScheduleConfig, nap_number: int) -> Tuple[int, int]:
    return wake_window_for(config, nap_number) or NAP_WAKE_WINDOW_FALLBACK


def _nap_slot(
        config: ScheduleConfig,
        nap_number: int,
        reference: datetime,
        transition: Optional[ScheduleTransition],
        notes: List[str]
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Wall-clock bounds a nap may start within, from the schedule or the running transition."""
    window = nap_window_for(config, nap_number)
    slot_earliest = slot_latest = None

    if _uses_transition_slot(config, transition, nap_number):
        target = at_wall_clock(reference, transition.current_nap_time)
        slot_earliest = target - timedelta(minutes=TRANSITION_NAP_TOLERANCE_MINUTES)
        slot_latest = target + timedelta(minutes=TRANSITION_NAP_TOLERANCE_MINUTES)
        notes.append(f"Transition week {transition.current_week}: targeting {transition.current_nap_time}")
    elif window is not None and window.earliest:
        slot_earliest = at_wall_clock(reference, window.earliest)

    if window is not None and window.latest_start:
        latest_start = at_wall_clock(reference, window.latest_start)
        if slot_latest is None or latest_start < slot_latest:
            slot_latest = latest_start

    return slot_earliest, slot_latest


# Used by: recommend_next, plan_day
def has_sleep_debt(config: ScheduleConfig, todays_naps: Sequence[TodayNap]) -> bool:
    """True when any nap today fell short of its max duration by more than 20%."""
    for nap in todays_naps:
        if nap_window_for(config, nap.nap_number) is None:
            continue
        max_duration = _nap_max_duration(config, nap.nap_number)
        if nap.sleep_minutes < max_duration * (1 - SLEEP_DEBT_SHORTFALL_FRACTION):
            return True
    return False


def _wake_deadline_recommendation(
        config: ScheduleConfig,
        deadline: datetime,
        now: datetime,
        current_session: Optional[SleepSession]
) -> Optional[Recommendation]:
    """WAKE once the morning deadline passes with no wake logged, WAIT before it."""
    if now >= deadline:
        logger.info(f"Wake deadline {config.wake_time_latest} passed at {now.isoformat()}")
        return Recommendation(
            action=Action.WAKE,
            earliest=now,
            latest=now,
            target=now,
            reason=f"Past wake deadline {config.wake_time_latest} - wake child now",
            wake_deadline=deadline,
            notes=["Waking by the deadline protects the nap schedule"],
        )

    if current_session is not None:
        return Recommendation(
            action=Action.WAIT,
            earliest=None,
            latest=deadline,
            target=None,
            reason="Child is sleeping",
            wake_deadline=deadline,
            notes=[f"Wake by {config.wake_time_latest} at the latest"],
        )

    morning = at_wall_clock(now, config.wake_time_earliest)
    return Recommendation(
        action=Action.WAIT,
        earliest=morning,
        latest=deadline,
        target=morning if morning > now else now,
        reason=f"Waiting for morning wake ({config.wake_time_earliest}-{config.wake_time_latest})",
        wake_deadline=deadline,
    )


# Used by: schedule_service.recommendation
def recommend_next(
        config: ScheduleConfig,
        stats: AggregateStats,
        last_session_end: Optional[datetime],
        now: datetime,
        *,
        current_session: Optional[SleepSession] = None,
        transition: Optional[ScheduleTransition] = None
) -> Recommendation:
    """
    What the caregiver should do next.

    Precedence: in-progress nap -> morning wake deadline -> wake-window math
    for the next nap (or bedtime once naps or the day-sleep cap are used up).
    """
    in_progress = current_session if current_session is not None and not current_session.is_completed else None
    deadline = at_wall_clock(now, config.wake_time_latest)

    if in_progress is not None:
        started = in_progress.put_down_at or now
        if not in_progress.is_nap and started < deadline:
            return _wake_deadline_recommendation(config, deadline, now, in_progress)
        return Recommendation(
            action=Action.WAIT,
            earliest=None,
            latest=None,
            target=None,
            reason="Child is sleeping",
            nap_number=in_progress.nap_number,
            notes=["Monitor for wake signs"],
        )

    if last_session_end is None or last_session_end.date() < now.date():
        return _wake_deadline_recommendation(config, deadline, now, None)

    notes: List[str] = []
    nap_number = stats.naps_completed_today + 1
    cap_reached = stats.day_sleep_minutes_today >= config.day_sleep_cap
    is_bedtime = cap_reached or nap_number > nap_count(config)

    if is_bedtime:
        if cap_reached and nap_number <= nap_count(config):
            notes.append(f"Day sleep cap of {config.day_sleep_cap} min reached - skipping to bedtime")
        window_min, window_max = bedtime_wake_window(config)
        slot_earliest = at_wall_clock(now, config.bedtime_earliest)
        slot_latest = at_wall_clock(now, config.bedtime_latest)
        action = Action.BEDTIME
        slot_name = "Bedtime"
        nap_number = None
    else:
        window_min, window_max = _nap_wake_window(config, nap_number)
        slot_earliest, slot_latest = _nap_slot(config, nap_number, now, transition, notes)
        action = Action.NAP
        slot_name = f"Nap {nap_number}"

    elapsed = minutes_between(last_session_end, now)
    window_earliest = last_session_end + timedelta(minutes=window_min)
    window_latest = last_session_end + timedelta(minutes=window_max)

    if elapsed > window_max:
        logger.info(f"{slot_name} overdue: {elapsed} min awake, window max {window_max}")
        return Recommendation(
            action=action,
            earliest=now,
            latest=now,
            target=now,
            reason=f"Overtired: awake {elapsed} min (max {window_max}) - put down now",
            nap_number=nap_number,
            overtired=True,
            notes=notes,
        )

    earliest = max(window_earliest, slot_earliest) if slot_earliest else window_earliest
    latest = min(window_latest, slot_latest) if slot_latest else window_latest
    if slot_earliest and earliest == slot_earliest and slot_earliest > window_earliest:
        notes.append(f"{slot_name} held until {_hhmm(slot_earliest)} per schedule")
    if latest < earliest:
        latest = earliest
        notes.append("Wake window extended to fit the schedule")

    target = _clamp(_midpoint(window_earliest, window_latest), slot_earliest, slot_latest)
    target = _clamp(target, earliest, latest)

    if is_bedtime and has_sleep_debt(config, stats.todays_naps):
        shifted = target - timedelta(minutes=SLEEP_DEBT_BEDTIME_SHIFT_MINUTES)
        target = max(shifted, slot_earliest)
        earliest = min(earliest, target)
        notes.append("Earlier bedtime recommended due to short nap today")

    if elapsed < window_min:
        minutes_until = minutes_between(now, window_earliest)
        return Recommendation(
            action=Action.WAIT,
            earliest=window_earliest,
            latest=latest,
            target=target,
            reason=f"{slot_name} in {minutes_until} minutes",
            nap_number=nap_number,
            notes=notes + [f"Target put down: {_hhmm(target)}"],
        )

    reason = f"Time for nap {nap_number}" if action == Action.NAP else "Time for bedtime"
    return Recommendation(
        action=action,
        earliest=earliest,
        latest=latest,
        target=target,
        reason=reason,
        nap_number=nap_number,
        notes=notes,
    )


def _plan_bedtime(
        config: ScheduleConfig,
        last_nap_end: datetime,
        reference: datetime,
        sleep_debt: bool
) -> BedtimePlan:
    notes: List[str] = []
    window_min, window_max = bedtime_wake_window(config)
    bedtime_earliest = at_wall_clock(reference, config.bedtime_earliest)
    bedtime_latest = at_wall_clock(reference, config.bedtime_latest)

    earliest = last_nap_end + timedelta(minutes=window_min)
    latest = last_nap_end + timedelta(minutes=window_max)
    if earliest < bedtime_earliest:
        earliest = bedtime_earliest
        notes.append(f"Bedtime held until {config.bedtime_earliest} per schedule")
    if latest > bedtime_latest:
        latest = bedtime_latest
        notes.append(f"Bedtime capped at {config.bedtime_latest} per schedule")
    if latest < earliest:
        latest = earliest

    if config.bedtime_goal_start and config.bedtime_goal_end:
        goal = _midpoint(
            at_wall_clock(reference, config.bedtime_goal_start),
            at_wall_clock(reference, config.bedtime_goal_end),
        )
        recommended = _clamp(goal, earliest, latest)
    else:
        recommended = _midpoint(earliest, latest)

    if sleep_debt:
        recommended = max(recommended - timedelta(minutes=SLEEP_DEBT_BEDTIME_SHIFT_MINUTES), bedtime_earliest)
        earliest = min(earliest, recommended)
        notes.append("Earlier bedtime recommended due to short nap")

    return BedtimePlan(put_down_window=TimeWindow(earliest, latest, recommended), notes=notes)


# Used by: schedule_service.day_plan
def plan_day(
        config: ScheduleConfig,
        wake_time: datetime,
        transition: Optional[ScheduleTransition] = None,
        actual_nap_minutes: Optional[Sequence[int]] = None
) -> DayPlan:
    """Lay out every nap and bedtime for the day, each nap chained off the previous one's estimated end."""
    actual = list(actual_nap_minutes or [])
    naps: List[NapPlan] = []
    warnings: List[str] = []
    previous_end = wake_time
    previous_duration: Optional[int] = None
    expected_total = 0

    for nap_number in range(1, nap_count(config) + 1):
        notes: List[str] = []
        window_min, window_max = _nap_wake_window(config, nap_number)
        earliest = previous_end + timedelta(minutes=window_min)
        latest = previous_end + timedelta(minutes=window_max)

        slot_earliest, slot_latest = _nap_slot(config, nap_number, wake_time, transition, notes)
        if _uses_transition_slot(config, transition, nap_number):
            earliest, latest = slot_earliest, slot_latest
        elif slot_earliest and slot_earliest > earliest:
            earliest = slot_earliest
            notes.append(f"Nap {nap_number} held until {_hhmm(slot_earliest)} per schedule")
        if slot_latest and slot_latest < latest:
            latest = slot_latest
        if latest < earliest:
            latest = earliest
            notes.append("Wake window extended - nap timing compressed")

        recommended = _midpoint(earliest, latest)
        max_duration = _nap_max_duration(config, nap_number)
        if nap_number == 2 and previous_duration is not None and previous_duration < SHORT_NAP_MINUTES \
                and config.nap2_exception_duration:
            max_duration = config.nap2_exception_duration
            notes.append("Extended nap 2 allowed due to short nap 1")

        window = nap_window_for(config, nap_number)
        end_by = at_wall_clock(wake_time, window.end_by) if window and window.end_by else None

        naps.append(NapPlan(
            nap_number=nap_number,
            put_down_window=TimeWindow(earliest, latest, recommended),
            max_duration=max_duration,
            end_by=end_by,
            notes=notes,
        ))

        duration = actual[nap_number - 1] if nap_number <= len(actual) else max_duration
        expected_total += duration
        previous_duration = duration
        previous_end = recommended + timedelta(minutes=duration)

    if expected_total > config.day_sleep_cap:
        warnings.append(f"Day sleep may exceed {config.day_sleep_cap} min cap")

    taken = [TodayNap(n, minutes) for n, minutes in enumerate(actual, start=1)]
    bedtime = _plan_bedtime(config, previous_end, wake_time, has_sleep_debt(config, taken))

    for nap in naps:
        warnings.extend(nap.notes)
    warnings.extend(bedtime.notes)

    return DayPlan(
        date=wake_time.date(),
        wake_time=wake_time,
        naps=naps,
        bedtime=bedtime,
        day_sleep_cap=config.day_sleep_cap,
        warnings=warnings,
    )
