"""Rolling-window statistics over completed sleep sessions."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from statistics import mean
from typing import Iterable, Iterator, List, Optional

from ..core.constants import GOOD_NAP_MINUTES, HISTORY_WINDOW_DAYS_DEFAULT
from ..core.errors import InvalidArgumentError
from ..db.models import SleepSession
from .sleep_state import compute_durations

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TodayNap:
    nap_number: int
    sleep_minutes: int


@dataclass(frozen=True)
class AggregateStats:
    total_sessions: int = 0
    completed_nap_count: int = 0
    average_sleep_minutes: float = 0.0
    good_nap_count: int = 0
    qualified_rest_minutes_today: int = 0
    naps_completed_today: int = 0
    day_sleep_minutes_today: int = 0
    todays_naps: List[TodayNap] = field(default_factory=list)


# Used by: aggregate
def iter_window(
        sessions: Iterable[SleepSession],
        window_days: int = HISTORY_WINDOW_DAYS_DEFAULT,
        as_of: Optional[datetime] = None
) -> Iterator[SleepSession]:
    """Completed sessions recorded in (as_of - window_days, as_of]. Restartable: call again for a fresh pass."""
    if as_of is None:
        raise InvalidArgumentError("as_of is required")
    start = as_of - timedelta(days=window_days)
    for session in sessions:
        recorded = session.recorded_at
        if not session.is_completed or recorded is None:
            continue
        if start < recorded <= as_of:
            yield session


# Used by: schedule_predictor.recommend_next, transition_tracker.analyze_push_readiness
def aggregate(
        sessions: Iterable[SleepSession],
        window_days: int = HISTORY_WINDOW_DAYS_DEFAULT,
        as_of: Optional[datetime] = None
) -> AggregateStats:
    if as_of is None:
        raise InvalidArgumentError("as_of is required")

    today = as_of.date()
    total_sessions = 0
    nap_sleep: List[int] = []
    good_naps = 0
    qualified_today = 0
    todays_naps: List[TodayNap] = []

    ordered = sorted(iter_window(sessions, window_days, as_of), key=lambda s: s.recorded_at)
    for session in ordered:
        total_sessions += 1
        if not session.is_nap:
            continue

        sleep = session.sleep_minutes
        if sleep is None:
            sleep = compute_durations(session).sleep_minutes or 0
        nap_sleep.append(sleep)
        if sleep >= GOOD_NAP_MINUTES:
            good_naps += 1

        if session.recorded_at.date() == today:
            qualified_today += compute_durations(session).qualified_rest_minutes or 0
            todays_naps.append(TodayNap(
                nap_number=session.nap_number or len(todays_naps) + 1,
                sleep_minutes=sleep,
            ))

    average = round(mean(nap_sleep), 1) if nap_sleep else 0.0

    return AggregateStats(
        total_sessions=total_sessions,
        completed_nap_count=len(nap_sleep),
        average_sleep_minutes=average,
        good_nap_count=good_naps,
        qualified_rest_minutes_today=qualified_today,
        naps_completed_today=len(todays_naps),
        day_sleep_minutes_today=sum(n.sleep_minutes for n in todays_naps),
        todays_naps=todays_naps,
    )
