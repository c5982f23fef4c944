"""
2-to-1 nap transition: phase, progress and push readiness.

Phases follow elapsed days since the transition started:
week1_2 (hold the nap at 11:30, crib 90 rule) -> week2_plus (push the nap
15 minutes later whenever the child copes) -> final (nap reached the goal,
waiting for the caregiver to mark it complete).

Standard pace runs ~6 weeks with pushes every 3-7 days. Fast-track
(target <= 4 weeks) may jump to 12:00 during the first two weeks and
pushes every 2-3 days.

Every function here is pure. Mutations come back as TransitionMutation
values for the persistence layer to apply.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from ..core.constants import (
    TRANSITION_START_NAP_TIME, TRANSITION_FAST_TRACK_NAP_TIME, TRANSITION_GOAL_NAP_TIME,
    TRANSITION_GOAL_NAP_END_BY, TRANSITION_GOAL_MAX_NAP_MINUTES, TRANSITION_CRIB_RULE_MINUTES,
    TRANSITION_MAX_WAKE_WINDOW_MINUTES, TRANSITION_PUSH_MINUTES, TRANSITION_PUSH_INTERVAL_DAYS,
    TRANSITION_FAST_PUSH_INTERVAL_DAYS, TRANSITION_BEDTIME_WAKE_WINDOW, TRANSITION_TEMPORARY_MAX_WAKE_TIME,
    TRANSITION_HOLD_DAYS, TRANSITION_TARGET_WEEKS_DEFAULT, TRANSITION_TARGET_WEEKS_MIN,
    TRANSITION_TARGET_WEEKS_MAX, TRANSITION_FAST_TRACK_MAX_WEEKS, TRANSITION_EXPECTED_WEEKS,
    TRANSITION_NOTES_MAX_CHARS, PUSH_MIN_GOOD_NAPS, PUSH_MIN_TOTAL_NAPS, FAST_TRACK_MIN_GOOD_NAPS,
    HISTORY_WINDOW_DAYS_DEFAULT,
)
from ..core.errors import InvalidArgumentError, InvalidStateError, NotFoundError
from ..db.models import (
    ScheduleConfig, ScheduleTransition, ScheduleType, SleepSession, TransitionPace, TransitionPhase,
)
from ..utils.time_math import minutes_to_time_string, parse_time_to_minutes, whole_days_between
from .crib_compliance import check_compliance
from .schedule_model import default_transition_schedule
from .session_stats import aggregate, iter_window

logger = logging.getLogger(__name__)

SUPPORTED_TRANSITIONS = {(ScheduleType.TWO_NAP, ScheduleType.ONE_NAP)}


@dataclass(frozen=True)
class TransitionConfig:
    """Rules for one transition plan. Pass an alternate instance to any function below to change them."""
    # Weeks 1-2
    min_nap_earliest: str = TRANSITION_START_NAP_TIME
    crib_rule_minutes: int = TRANSITION_CRIB_RULE_MINUTES
    max_wake_window_minutes: int = TRANSITION_MAX_WAKE_WINDOW_MINUTES
    hold_days: int = TRANSITION_HOLD_DAYS
    # Weeks 2+
    week2_plus_nap_earliest: str = TRANSITION_FAST_TRACK_NAP_TIME
    push_minutes: int = TRANSITION_PUSH_MINUTES
    push_interval_days: Tuple[int, int] = TRANSITION_PUSH_INTERVAL_DAYS
    fast_push_interval_days: Tuple[int, int] = TRANSITION_FAST_PUSH_INTERVAL_DAYS
    fast_track_nap_time: str = TRANSITION_FAST_TRACK_NAP_TIME
    fast_track_max_weeks: int = TRANSITION_FAST_TRACK_MAX_WEEKS
    # Goal
    goal_nap_time: str = TRANSITION_GOAL_NAP_TIME
    goal_max_nap_minutes: int = TRANSITION_GOAL_MAX_NAP_MINUTES
    goal_nap_end_by: str = TRANSITION_GOAL_NAP_END_BY
    bedtime_wake_window: Tuple[int, int] = TRANSITION_BEDTIME_WAKE_WINDOW
    expected_weeks: Tuple[int, int] = TRANSITION_EXPECTED_WEEKS
    # Temporary allowance while transitioning
    temporary_max_wake_time: str = TRANSITION_TEMPORARY_MAX_WAKE_TIME
    # Readiness evidence
    history_window_days: int = HISTORY_WINDOW_DAYS_DEFAULT
    push_min_good_naps: int = PUSH_MIN_GOOD_NAPS
    push_min_total_naps: int = PUSH_MIN_TOTAL_NAPS
    fast_track_min_good_naps: int = FAST_TRACK_MIN_GOOD_NAPS


DEFAULT_TRANSITION_CONFIG = TransitionConfig()


class MutationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class TransitionMutation:
    """Intent for the persistence layer. `schedule` replaces the active schedule when set."""
    kind: MutationKind
    transition: ScheduleTransition
    schedule_type: Optional[ScheduleType] = None
    schedule: Optional[ScheduleConfig] = None


@dataclass(frozen=True)
class TransitionPatch:
    new_nap_time: Optional[str] = None
    current_week: Optional[int] = None
    notes: Optional[str] = None
    complete: bool = False


@dataclass(frozen=True)
class Milestone:
    description: str
    target_date: Optional[datetime]
    action: str


@dataclass(frozen=True)
class TransitionProgress:
    transition: ScheduleTransition
    current_phase: TransitionPhase
    pace: TransitionPace
    current_week: int
    weeks_completed: int
    total_expected_weeks: Tuple[int, int]
    percent_complete: int
    min_nap_earliest: str
    crib_rule_minutes: int
    target_nap_time: str
    next_milestone: Milestone
    recommendations: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class NapPushRecommendation:
    should_push: bool
    current_nap_time: str
    suggested_new_time: Optional[str]
    reason: str
    days_since_last_push: int
    good_nap_count: int
    total_naps: int
    readiness_indicators: List[str] = field(default_factory=list)


def pace_of(transition: ScheduleTransition, transition_config: TransitionConfig = DEFAULT_TRANSITION_CONFIG) -> TransitionPace:
    if transition.target_weeks <= transition_config.fast_track_max_weeks:
        return TransitionPace.FAST_TRACK
    return TransitionPace.STANDARD


def current_week_for(transition: ScheduleTransition, now: datetime) -> int:
    """ceil(days since start / 7), never below week 1."""
    days = whole_days_between(transition.started_at, now)
    return max(1, math.ceil(days / 7))


def days_since_last_push(transition: ScheduleTransition, now: datetime) -> int:
    """Whole days since the nap last moved; a never-pushed transition counts from its start."""
    reference = transition.last_pushed_at or transition.started_at
    return max(0, whole_days_between(reference, now))


def phase_for(
        transition: ScheduleTransition,
        now: datetime,
        transition_config: TransitionConfig = DEFAULT_TRANSITION_CONFIG
) -> TransitionPhase:
    if current_week_for(transition, now) <= 2:
        return TransitionPhase.WEEK1_2
    if parse_time_to_minutes(transition.current_nap_time) >= parse_time_to_minutes(transition_config.goal_nap_time):
        return TransitionPhase.FINAL
    return TransitionPhase.WEEK2_PLUS


def percent_complete(nap_time: str, transition_config: TransitionConfig = DEFAULT_TRANSITION_CONFIG) -> int:
    """Share of the way from the 11:30 start to the goal nap time, 0-100."""
    start = parse_time_to_minutes(transition_config.min_nap_earliest)
    goal = parse_time_to_minutes(transition_config.goal_nap_time)
    if goal <= start:
        return 100
    progress = (parse_time_to_minutes(nap_time) - start) / (goal - start) * 100
    return round(min(100.0, max(0.0, progress)))


def crib_rule_for(config: Optional[ScheduleConfig], transition_config: TransitionConfig = DEFAULT_TRANSITION_CONFIG) -> int:
    """Crib minutes enforced during the transition: the plan's rule or the schedule's own, whichever is longer."""
    if config is None:
        return transition_config.crib_rule_minutes
    return max(transition_config.crib_rule_minutes, config.minimum_crib_minutes)


def _push_interval(pace: TransitionPace, transition_config: TransitionConfig) -> Tuple[int, int]:
    if pace == TransitionPace.FAST_TRACK:
        return transition_config.fast_push_interval_days
    return transition_config.push_interval_days


# Used by: schedule_service.transition_progress
def compute_progress(
        transition: ScheduleTransition,
        config: Optional[ScheduleConfig],
        now: datetime,
        transition_config: TransitionConfig = DEFAULT_TRANSITION_CONFIG
) -> TransitionProgress:
    current_week = current_week_for(transition, now)
    phase = phase_for(transition, now, transition_config)
    pace = pace_of(transition, transition_config)
    interval_min, interval_max = _push_interval(pace, transition_config)
    current_minutes = parse_time_to_minutes(transition.current_nap_time)
    goal_minutes = parse_time_to_minutes(transition_config.goal_nap_time)
    crib_rule = crib_rule_for(config, transition_config)
    recommendations: List[str] = []

    if phase == TransitionPhase.WEEK1_2:
        min_nap_earliest = transition_config.min_nap_earliest
        recommendations.append(f"Keep nap no earlier than {transition_config.min_nap_earliest}")
        recommendations.append(f"Enforce the crib {crib_rule} rule - minimum {crib_rule} minutes in crib")
        if pace == TransitionPace.FAST_TRACK:
            recommendations.append(
                f"Fast-track: move the nap to {transition_config.fast_track_nap_time} "
                f"once a {transition_config.min_nap_earliest} nap goes well"
            )
        else:
            recommendations.append("Expect some adjustment difficulties this week")
        if config is not None:
            recommendations.append(f"Wake by {config.wake_time_latest} at the latest")
        milestone = Milestone(
            description="Complete first 2 weeks of transition",
            target_date=transition.started_at + timedelta(days=transition_config.hold_days),
            action=f"Maintain consistent schedule and crib {crib_rule} rule",
        )
    elif phase == TransitionPhase.WEEK2_PLUS:
        min_nap_earliest = transition_config.week2_plus_nap_earliest
        recommendations.append(f"Can push nap later every {interval_min}-{interval_max} days")
        recommendations.append("Watch for signs baby is ready: waking happy, good nap length")
        next_time = minutes_to_time_string(min(current_minutes + transition_config.push_minutes, goal_minutes))
        milestone = Milestone(
            description=f"Push nap time to {next_time}",
            target_date=now + timedelta(days=interval_min),
            action=f"Push nap {transition_config.push_minutes} minutes later when ready",
        )
    else:
        min_nap_earliest = transition_config.goal_nap_time
        recommendations.append("Transition nearly complete!")
        recommendations.append("Maintain consistent nap timing")
        recommendations.append("Consider completing transition if baby is thriving")
        milestone = Milestone(
            description="Complete transition",
            target_date=None,
            action="Mark transition as complete when baby is consistently thriving",
        )

    if pace == TransitionPace.FAST_TRACK:
        expected = (TRANSITION_TARGET_WEEKS_MIN, transition.target_weeks)
    else:
        expected = transition_config.expected_weeks

    return TransitionProgress(
        transition=transition,
        current_phase=phase,
        pace=pace,
        current_week=current_week,
        weeks_completed=current_week - 1,
        total_expected_weeks=expected,
        percent_complete=percent_complete(transition.current_nap_time, transition_config),
        min_nap_earliest=min_nap_earliest,
        crib_rule_minutes=crib_rule,
        target_nap_time=transition.current_nap_time,
        next_milestone=milestone,
        recommendations=recommendations,
    )


# Used by: schedule_service.push_readiness
def analyze_push_readiness(
        transition: ScheduleTransition,
        recent_sessions: Iterable[SleepSession],
        config: Optional[ScheduleConfig],
        now: datetime,
        transition_config: TransitionConfig = DEFAULT_TRANSITION_CONFIG
) -> NapPushRecommendation:
    """
    Should the single nap move later? First matching rule wins:

    1. weeks 1-2, standard pace, nap still at the start time -> hold
    2. weeks 1-2, fast-track, nap before 12:00, 2+ good naps -> 12:00
    3. weeks 1-2, fast-track, nap at/after 12:00 -> push if interval and naps allow
    4. nap at goal -> no push, suggest completing
    5. too soon since the last push -> wait
    6. too few good naps -> wait
    7. otherwise push, capped at the goal
    """
    naps = [s for s in recent_sessions if s.is_nap]
    stats = aggregate(naps, transition_config.history_window_days, now)
    good_naps = stats.good_nap_count
    total_naps = stats.completed_nap_count
    days_since = days_since_last_push(transition, now)
    current_week = current_week_for(transition, now)
    pace = pace_of(transition, transition_config)
    fast = pace == TransitionPace.FAST_TRACK
    interval_min = _push_interval(pace, transition_config)[0]

    current = parse_time_to_minutes(transition.current_nap_time)
    start = parse_time_to_minutes(transition_config.min_nap_earliest)
    fast_time = parse_time_to_minutes(transition_config.fast_track_nap_time)
    goal = parse_time_to_minutes(transition_config.goal_nap_time)
    pushed = minutes_to_time_string(min(current + transition_config.push_minutes, goal))

    indicators = [
        f"{good_naps} of {total_naps} naps in the last {transition_config.history_window_days} days were 90+ minutes",
        f"Average nap length: {round(stats.average_sleep_minutes)} minutes",
        f"{days_since} days since last schedule change",
    ]
    if good_naps >= transition_config.push_min_good_naps and total_naps >= transition_config.push_min_total_naps:
        indicators.append("Good nap lengths (90+ min) consistently")
    crib_rule = crib_rule_for(config, transition_config)
    crib_kept = sum(
        1 for s in iter_window(naps, transition_config.history_window_days, now)
        if check_compliance(s, crib_rule, now).compliant
    )
    indicators.append(f"{crib_kept} of {total_naps} naps kept the crib {crib_rule} rule")
    if stats.qualified_rest_minutes_today:
        indicators.append(f"Qualified rest today: {stats.qualified_rest_minutes_today} minutes")

    def decide(should_push: bool, suggested: Optional[str], reason: str) -> NapPushRecommendation:
        logger.info(
            f"Push readiness for transition {transition.id}: push={should_push} "
            f"({transition.current_nap_time} -> {suggested}) - {reason}"
        )
        return NapPushRecommendation(
            should_push=should_push,
            current_nap_time=transition.current_nap_time,
            suggested_new_time=suggested,
            reason=reason,
            days_since_last_push=days_since,
            good_nap_count=good_naps,
            total_naps=total_naps,
            readiness_indicators=indicators,
        )

    if current_week <= 2:
        if not fast and current <= start:
            return decide(False, None, "Still in first 2 weeks of transition - maintain current schedule")
        if fast and current < fast_time:
            if good_naps >= transition_config.fast_track_min_good_naps:
                return decide(
                    True,
                    minutes_to_time_string(min(fast_time, goal)),
                    f"Fast-track: {good_naps} good naps at {transition.current_nap_time} - "
                    f"move to {transition_config.fast_track_nap_time}",
                )
            return decide(
                False, None,
                f"Fast-track: wait for {transition_config.fast_track_min_good_naps} good naps "
                f"before moving to {transition_config.fast_track_nap_time}",
            )
        if fast and current < goal:
            fast_interval = transition_config.fast_push_interval_days[0]
            if days_since >= fast_interval and good_naps >= transition_config.fast_track_min_good_naps:
                return decide(True, pushed, "Fast-track: baby adapting well, push nap later")
            return decide(
                False, None,
                f"Fast-track: wait {fast_interval} days and {transition_config.fast_track_min_good_naps} "
                f"good naps between pushes ({days_since} days, {good_naps} good naps so far)",
            )

    if current >= goal:
        return decide(False, None, "Nap time has reached goal - consider completing transition")

    if days_since < interval_min:
        return decide(
            False, None,
            f"Wait at least {interval_min} days between pushes "
            f"({days_since} days so far, {interval_min - days_since} to go)",
        )

    if good_naps < transition_config.push_min_good_naps or total_naps < transition_config.push_min_total_naps:
        return decide(False, None, "Wait for more consistent good naps before pushing later")

    return decide(True, pushed, "Baby showing good signs of readiness")


# Used by: progress_transition (complete=True)
def one_nap_schedule_from(
        config: ScheduleConfig,
        transition_config: TransitionConfig = DEFAULT_TRANSITION_CONFIG
) -> ScheduleConfig:
    """The ONE_NAP schedule that replaces a finished transition: goal nap start, goal length, goal end-by."""
    goal = transition_config.goal_nap_time
    latest_start = config.nap1_latest_start
    if latest_start is None or parse_time_to_minutes(latest_start) < parse_time_to_minutes(goal):
        latest_start = goal
    return config.model_copy(update={
        "id": None,
        "type": ScheduleType.ONE_NAP,
        "is_active": True,
        "wake_window2_min": transition_config.bedtime_wake_window[0],
        "wake_window2_max": transition_config.bedtime_wake_window[1],
        "wake_window3_min": None,
        "wake_window3_max": None,
        "nap1_earliest": goal,
        "nap1_latest_start": latest_start,
        "nap1_max_duration": transition_config.goal_max_nap_minutes,
        "nap1_end_by": transition_config.goal_nap_end_by,
        "nap2_earliest": None,
        "nap2_latest_start": None,
        "nap2_max_duration": None,
        "nap2_end_by": None,
        "nap2_exception_duration": None,
        "nap3_earliest": None,
        "nap3_latest_start": None,
        "nap3_max_duration": None,
        "nap3_end_by": None,
        "day_sleep_cap": transition_config.goal_max_nap_minutes,
        "created_at": None,
        "updated_at": None,
    })


# Used by: schedule_service.start_transition
def start_transition(
        active: Optional[ScheduleTransition],
        from_type: ScheduleType,
        to_type: ScheduleType,
        start_nap_time: str,
        now: datetime,
        target_weeks: int = TRANSITION_TARGET_WEEKS_DEFAULT,
        *,
        child_id: Optional[int] = None,
        config: Optional[ScheduleConfig] = None,
        notes: Optional[str] = None,
        transition_config: TransitionConfig = DEFAULT_TRANSITION_CONFIG
) -> TransitionMutation:
    if active is not None and active.is_active:
        raise InvalidStateError("A transition is already in progress", code="TRANSITION_IN_PROGRESS")

    from_type, to_type = ScheduleType(from_type), ScheduleType(to_type)
    if (from_type, to_type) not in SUPPORTED_TRANSITIONS:
        raise InvalidStateError(f"Unsupported transition {from_type.value} -> {to_type.value}")

    start = parse_time_to_minutes(start_nap_time)
    if not parse_time_to_minutes(transition_config.min_nap_earliest) <= start \
            <= parse_time_to_minutes(transition_config.goal_nap_time):
        raise InvalidArgumentError(
            f"Start nap time must be between {transition_config.min_nap_earliest} "
            f"and {transition_config.goal_nap_time}, got {start_nap_time}"
        )
    if not TRANSITION_TARGET_WEEKS_MIN <= target_weeks <= TRANSITION_TARGET_WEEKS_MAX:
        raise InvalidArgumentError(
            f"Target weeks must be between {TRANSITION_TARGET_WEEKS_MIN} and {TRANSITION_TARGET_WEEKS_MAX}"
        )
    _check_notes(notes)

    transition = ScheduleTransition(
        child_id=child_id,
        from_type=from_type,
        to_type=to_type,
        started_at=now,
        current_week=1,
        target_weeks=target_weeks,
        current_nap_time=start_nap_time,
        notes=notes,
        created_at=now,
        updated_at=now,
    )
    schedule = None
    if config is not None:
        schedule = default_transition_schedule(child_id, config.wake_time_earliest)

    logger.info(
        f"Starting {pace_of(transition, transition_config).value} transition for child {child_id} "
        f"at {start_nap_time} over {target_weeks} weeks"
    )
    return TransitionMutation(MutationKind.CREATE, transition, ScheduleType.TRANSITION, schedule)


def _check_notes(notes: Optional[str]) -> None:
    if notes is not None and len(notes) > TRANSITION_NOTES_MAX_CHARS:
        raise InvalidArgumentError(f"Notes cannot exceed {TRANSITION_NOTES_MAX_CHARS} characters")


# Used by: schedule_service.progress_transition
def progress_transition(
        transition: Optional[ScheduleTransition],
        patch: TransitionPatch,
        now: datetime,
        config: Optional[ScheduleConfig] = None,
        transition_config: TransitionConfig = DEFAULT_TRANSITION_CONFIG
) -> TransitionMutation:
    """Push the nap, set the week, edit notes or complete. Nap time only ever moves later."""
    if transition is None:
        raise NotFoundError("No active transition found", code="NO_ACTIVE_TRANSITION")
    if not transition.is_active:
        raise InvalidStateError("Transition is already completed")

    update = {"updated_at": now}

    if patch.new_nap_time is not None:
        new_minutes = parse_time_to_minutes(patch.new_nap_time)
        current_minutes = parse_time_to_minutes(transition.current_nap_time)
        if new_minutes < current_minutes:
            raise InvalidArgumentError(
                f"Nap time can only move later: {patch.new_nap_time} is before {transition.current_nap_time}"
            )
        if new_minutes > parse_time_to_minutes(transition_config.goal_nap_time):
            raise InvalidArgumentError(
                f"Nap time {patch.new_nap_time} is past the goal {transition_config.goal_nap_time}"
            )
        if new_minutes > current_minutes:
            update["current_nap_time"] = patch.new_nap_time
            update["last_pushed_at"] = now

    if patch.current_week is not None:
        if patch.current_week < 1:
            raise InvalidArgumentError(f"Week must be 1 or later, got {patch.current_week}")
        update["current_week"] = patch.current_week

    if patch.notes is not None:
        _check_notes(patch.notes)
        update["notes"] = patch.notes

    schedule_type = None
    schedule = None
    if patch.complete:
        update["completed_at"] = now
        schedule_type = ScheduleType.ONE_NAP
        base = config if config is not None else default_transition_schedule(transition.child_id)
        schedule = one_nap_schedule_from(base, transition_config)
        logger.info(f"Transition {transition.id} completed at {transition.current_nap_time}")

    return TransitionMutation(MutationKind.UPDATE, transition.model_copy(update=update), schedule_type, schedule)


# Used by: schedule_service.cancel_transition
def cancel_transition(transition: Optional[ScheduleTransition]) -> TransitionMutation:
    if transition is None or not transition.is_active:
        raise NotFoundError("No active transition found", code="NO_ACTIVE_TRANSITION")
    logger.info(f"Cancelling transition {transition.id} for child {transition.child_id}")
    return TransitionMutation(MutationKind.DELETE, transition, ScheduleType.TWO_NAP)


# Used by: tasks.sync_transition_weeks
def sync_transition_week(transition: ScheduleTransition, now: datetime) -> Optional[ScheduleTransition]:
    """Stored week brought up to date with elapsed days; None when already current or finished."""
    if not transition.is_active:
        return None
    week = current_week_for(transition, now)
    if week == transition.current_week:
        return None
    return transition.model_copy(update={"current_week": week})
