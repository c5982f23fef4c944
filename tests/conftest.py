"""
Pytest fixtures for schedule, session and transition tests.
"""

import pytest
from datetime import datetime, timedelta
from typing import List, Optional

from naptrack.core.errors import ConflictError
from naptrack.db.models import (
    ScheduleConfig, ScheduleTransition, ScheduleType, SessionState, SessionType, SleepSession,
)
from naptrack.services.transition_tracker import MutationKind, TransitionMutation


# Tuesday afternoon; every test pins its clock to this or an offset of it
NOW = datetime(2024, 3, 12, 14, 0)


def build_two_nap_schedule(**overrides) -> ScheduleConfig:
    fields = dict(
        child_id=1,
        type=ScheduleType.TWO_NAP,
        wake_window1_min=150,
        wake_window1_max=180,
        wake_window2_min=180,
        wake_window2_max=210,
        wake_window3_min=240,
        wake_window3_max=270,
        nap1_earliest="09:00",
        nap1_latest_start="10:00",
        nap1_max_duration=90,
        nap1_end_by="11:30",
        nap2_earliest="13:00",
        nap2_latest_start="14:30",
        nap2_max_duration=90,
        nap2_end_by="16:00",
        nap2_exception_duration=120,
        bedtime_earliest="18:30",
        bedtime_latest="19:30",
        bedtime_goal_start="19:00",
        bedtime_goal_end="19:30",
        wake_time_earliest="06:30",
        wake_time_latest="07:30",
        day_sleep_cap=180,
    )
    fields.update(overrides)
    return ScheduleConfig(**fields)


def build_one_nap_schedule(**overrides) -> ScheduleConfig:
    fields = dict(
        child_id=1,
        type=ScheduleType.ONE_NAP,
        wake_window1_min=300,
        wake_window1_max=330,
        wake_window2_min=240,
        wake_window2_max=300,
        nap1_earliest="12:00",
        nap1_latest_start="14:00",
        nap1_max_duration=150,
        nap1_end_by="15:30",
        bedtime_earliest="18:45",
        bedtime_latest="19:30",
        wake_time_earliest="06:30",
        wake_time_latest="07:30",
        day_sleep_cap=150,
    )
    fields.update(overrides)
    return ScheduleConfig(**fields)


def build_nap(
        start: datetime,
        sleep_minutes: int = 95,
        nap_number: Optional[int] = 1,
        settle: int = 5,
        post_wake: int = 5,
        **overrides
) -> SleepSession:
    """Completed crib nap put down at `start`."""
    asleep = start + timedelta(minutes=settle)
    woke = asleep + timedelta(minutes=sleep_minutes)
    out = woke + timedelta(minutes=post_wake)
    fields = dict(
        child_id=1,
        session_type=SessionType.NAP,
        nap_number=nap_number,
        state=SessionState.COMPLETED,
        put_down_at=start,
        asleep_at=asleep,
        woke_up_at=woke,
        out_of_crib_at=out,
        total_minutes=settle + sleep_minutes + post_wake,
        sleep_minutes=sleep_minutes,
        created_at=start,
    )
    fields.update(overrides)
    return SleepSession(**fields)


def build_night(start: datetime, end: datetime, **overrides) -> SleepSession:
    """Completed night sleep from `start` until out of crib at `end`."""
    fields = dict(
        child_id=1,
        session_type=SessionType.NIGHT_SLEEP,
        state=SessionState.COMPLETED,
        put_down_at=start,
        asleep_at=start + timedelta(minutes=10),
        woke_up_at=end,
        out_of_crib_at=end,
        created_at=start,
    )
    fields.update(overrides)
    return SleepSession(**fields)


def build_transition(**overrides) -> ScheduleTransition:
    fields = dict(
        id=7,
        child_id=1,
        from_type=ScheduleType.TWO_NAP,
        to_type=ScheduleType.ONE_NAP,
        started_at=NOW - timedelta(days=10),
        current_week=2,
        target_weeks=6,
        current_nap_time="11:30",
        created_at=NOW - timedelta(days=10),
        updated_at=NOW - timedelta(days=10),
    )
    fields.update(overrides)
    return ScheduleTransition(**fields)


class FakeChildStore:
    """In-memory stand-in for ChildDataManager holding one child's data."""

    def __init__(
            self,
            schedule: Optional[ScheduleConfig] = None,
            sessions: Optional[List[SleepSession]] = None,
            transition: Optional[ScheduleTransition] = None
    ):
        self.schedule = schedule
        self.sessions = list(sessions or [])
        self.transition = transition
        self.mutations: List[TransitionMutation] = []
        self.replaced: List[ScheduleConfig] = []
        self.week_updates: List[ScheduleTransition] = []
        self.next_id = 100

    def _active_transition(self) -> Optional[ScheduleTransition]:
        if self.transition is not None and self.transition.is_active:
            return self.transition
        return None

    async def get_active_schedule(self, child_id):
        return self.schedule

    async def get_recent_sessions(self, child_id, since_days, now):
        since = now - timedelta(days=since_days)
        window = [s for s in self.sessions if since < s.recorded_at <= now]
        return sorted(window, key=lambda s: s.recorded_at)

    async def get_current_session(self, child_id):
        open_sessions = [s for s in self.sessions if not s.is_completed]
        return open_sessions[-1] if open_sessions else None

    async def get_session(self, child_id, session_id):
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    async def insert_session(self, child_id, session):
        self.next_id += 1
        created = session.model_copy(update={"id": self.next_id, "child_id": child_id})
        self.sessions.append(created)
        return created

    async def update_session(self, session):
        self.sessions = [session if s.id == session.id else s for s in self.sessions]
        return session

    async def get_active_transition(self, child_id):
        return self._active_transition()

    async def list_active_transitions(self):
        active = self._active_transition()
        return [active] if active else []

    async def update_transition_week(self, transition):
        self.week_updates.append(transition)
        self.transition = self.transition.model_copy(update={"current_week": transition.current_week})

    async def replace_active_schedule(self, child_id, config):
        self.next_id += 1
        saved = config.model_copy(update={"id": self.next_id, "child_id": child_id, "is_active": True})
        self.schedule = saved
        self.replaced.append(saved)
        return saved

    async def apply_transition_mutation(self, child_id, mutation):
        self.mutations.append(mutation)
        if mutation.kind == MutationKind.CREATE:
            if self._active_transition() is not None:
                raise ConflictError("A transition is already in progress for this child")
            self.next_id += 1
            result = mutation.transition.model_copy(update={"id": self.next_id})
            self.transition = result
        elif mutation.kind == MutationKind.UPDATE:
            active = self._active_transition()
            if active is None or active.id != mutation.transition.id:
                raise ConflictError("Transition is no longer active")
            result = mutation.transition
            self.transition = result
        else:
            result = mutation.transition
            self.transition = None

        if mutation.schedule is not None:
            await self.replace_active_schedule(child_id, mutation.schedule)
        elif mutation.schedule_type is not None and self.schedule is not None:
            self.schedule = self.schedule.model_copy(update={"type": mutation.schedule_type})
        return result


@pytest.fixture
def two_nap_schedule():
    """TWO_NAP schedule: 2.5-3h / 3-3.5h / 4-4.5h wake windows, 180 min day cap."""
    return build_two_nap_schedule()


@pytest.fixture
def one_nap_schedule():
    """ONE_NAP schedule: 5-5.5h to the nap, 4-5h to bedtime."""
    return build_one_nap_schedule()


@pytest.fixture
def standard_transition():
    """Standard-pace transition started 10 days ago, nap at 11:30."""
    return build_transition()


@pytest.fixture
def week_of_good_naps():
    """Six 95-minute naps at 12:00 on the six days before NOW."""
    return [
        build_nap(datetime(2024, 3, 12, 12, 0) - timedelta(days=d), sleep_minutes=95, id=d)
        for d in range(1, 7)
    ]
