"""Fetches a child's schedule, sessions and transition, runs the pure core on them, and writes mutations back."""

import logging
from datetime import datetime
from typing import List, Optional, Sequence

import pytz

from ..core.constants import MINIMUM_CRIB_MINUTES_DEFAULT, TRANSITION_TARGET_WEEKS_DEFAULT
from ..core.errors import NotFoundError
from ..core.settings import settings
from ..db.models import (
    NapLocation, ScheduleConfig, ScheduleTransition, ScheduleType, SessionEvent, SessionType, SleepSession,
)
from ..utils.time_math import at_wall_clock
from .children_data import ChildDataManager
from .crib_compliance import CribCompliance, check_compliance
from .schedule_model import ensure_valid
from .schedule_predictor import DayPlan, Recommendation, plan_day, recommend_next
from .session_stats import aggregate
from .sleep_state import apply_event, correct_timestamps, put_down, start_ad_hoc_nap
from .transition_tracker import (
    DEFAULT_TRANSITION_CONFIG, NapPushRecommendation, TransitionConfig, TransitionPatch, TransitionProgress,
    analyze_push_readiness, cancel_transition, compute_progress, crib_rule_for, progress_transition,
    start_transition,
)

logger = logging.getLogger(__name__)


# Used by: api/schedule.py (default clock), tasks.sync_transition_weeks
def local_now(timezone: Optional[str] = None) -> datetime:
    """Wall-clock now in the child's zone, tz-naive, as stored in the database."""
    zone = pytz.timezone(timezone or settings.CHILD_TIMEZONE)
    return datetime.now(zone).replace(tzinfo=None)


def session_end(session: SleepSession) -> Optional[datetime]:
    return session.out_of_crib_at or session.woke_up_at


def last_session_end(sessions: Sequence[SleepSession]) -> Optional[datetime]:
    ends = [session_end(s) for s in sessions if s.is_completed and session_end(s) is not None]
    return max(ends) if ends else None


class ScheduleService:
    """All methods take an explicit `now`; none reads the clock."""

    def __init__(
            self,
            store=None,
            history_days: Optional[int] = None,
            transition_config: TransitionConfig = DEFAULT_TRANSITION_CONFIG
    ):
        self.store = store if store is not None else ChildDataManager()
        self.history_days = history_days or settings.history_window_days
        self.transition_config = transition_config

    async def _require_schedule(self, child_id: int) -> ScheduleConfig:
        config = await self.store.get_active_schedule(child_id)
        if config is None:
            raise NotFoundError(f"No active schedule for child {child_id}", code="NO_ACTIVE_SCHEDULE")
        return config

    async def _require_transition(self, child_id: int) -> ScheduleTransition:
        transition = await self.store.get_active_transition(child_id)
        if transition is None:
            raise NotFoundError("No active transition found", code="NO_ACTIVE_TRANSITION")
        return transition

    async def _require_session(self, child_id: int, session_id: int) -> SleepSession:
        session = await self.store.get_session(child_id, session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found", code="SESSION_NOT_FOUND")
        return session

    # Used by: GET /children/{child_id}/recommendation
    async def recommendation(self, child_id: int, now: datetime) -> Recommendation:
        config = await self._require_schedule(child_id)
        sessions = await self.store.get_recent_sessions(child_id, self.history_days, now)
        current = await self.store.get_current_session(child_id)
        transition = await self.store.get_active_transition(child_id)

        stats = aggregate(sessions, self.history_days, now)
        result = recommend_next(
            config,
            stats,
            last_session_end(sessions),
            now,
            current_session=current,
            transition=transition,
        )
        logger.info(f"Child {child_id}: {result.action.value} - {result.reason}")
        return result

    # Used by: GET /children/{child_id}/day-plan
    async def day_plan(self, child_id: int, now: datetime, wake_time: Optional[datetime] = None) -> DayPlan:
        config = await self._require_schedule(child_id)
        transition = await self.store.get_active_transition(child_id)
        sessions = await self.store.get_recent_sessions(child_id, self.history_days, now)

        if wake_time is None:
            morning_ends = [
                session_end(s) for s in sessions
                if s.session_type == SessionType.NIGHT_SLEEP and s.is_completed
                and session_end(s) is not None and session_end(s).date() == now.date()
            ]
            wake_time = max(morning_ends) if morning_ends else at_wall_clock(now, config.wake_time_earliest)

        stats = aggregate(sessions, self.history_days, now)
        actual: List[int] = [nap.sleep_minutes for nap in sorted(stats.todays_naps, key=lambda n: n.nap_number)]
        return plan_day(config, wake_time, transition=transition, actual_nap_minutes=actual)

    # Used by: PUT /children/{child_id}/schedule
    async def replace_schedule(self, child_id: int, config: ScheduleConfig) -> ScheduleConfig:
        config = ensure_valid(config.model_copy(update={"child_id": child_id, "is_active": True}))
        saved = await self.store.replace_active_schedule(child_id, config)
        logger.info(f"Replaced schedule for child {child_id} with {saved.type.value}")
        return saved

    # Used by: GET /children/{child_id}/sessions/{session_id}/crib-compliance
    async def crib_compliance(self, child_id: int, session_id: int, now: datetime) -> CribCompliance:
        session = await self._require_session(child_id, session_id)
        config = await self.store.get_active_schedule(child_id)
        required = config.minimum_crib_minutes if config is not None else MINIMUM_CRIB_MINUTES_DEFAULT
        if session.is_nap and await self.store.get_active_transition(child_id) is not None:
            required = crib_rule_for(config, self.transition_config)
        return check_compliance(session, required, now)

    # Used by: POST /children/{child_id}/sessions
    async def create_session(
            self,
            child_id: int,
            session_type: SessionType,
            now: datetime,
            nap_number: Optional[int] = None,
            notes: Optional[str] = None
    ) -> SleepSession:
        session = put_down(session_type, now, child_id=child_id, nap_number=nap_number, notes=notes)
        created = await self.store.insert_session(child_id, session)
        logger.info(f"Child {child_id}: {created.session_type.value} session {created.id} put down at {now:%H:%M}")
        return created

    # Used by: POST /children/{child_id}/sessions/ad-hoc
    async def create_ad_hoc_session(
            self,
            child_id: int,
            location: NapLocation,
            asleep_at: datetime,
            woke_up_at: Optional[datetime] = None,
            notes: Optional[str] = None
    ) -> SleepSession:
        session = start_ad_hoc_nap(location, asleep_at, woke_up_at, child_id=child_id, notes=notes)
        created = await self.store.insert_session(child_id, session)
        logger.info(f"Child {child_id}: ad-hoc {created.location.value} nap {created.id} ({created.state.value})")
        return created

    # Used by: POST /children/{child_id}/sessions/{session_id}/events
    async def record_session_event(
            self,
            child_id: int,
            session_id: int,
            event: SessionEvent,
            now: datetime
    ) -> SleepSession:
        session = await self._require_session(child_id, session_id)
        updated = apply_event(session, event, now)
        return await self.store.update_session(updated)

    # Used by: PATCH /children/{child_id}/sessions/{session_id}
    async def correct_session(self, child_id: int, session_id: int, **timestamps: Optional[datetime]) -> SleepSession:
        session = await self._require_session(child_id, session_id)
        updated = correct_timestamps(session, **timestamps)
        logger.info(f"Corrected {', '.join(sorted(timestamps))} on session {session_id}")
        return await self.store.update_session(updated)

    # Used by: GET /children/{child_id}/transition/progress
    async def transition_progress(self, child_id: int, now: datetime) -> TransitionProgress:
        transition = await self._require_transition(child_id)
        config = await self.store.get_active_schedule(child_id)
        return compute_progress(transition, config, now, self.transition_config)

    # Used by: GET /children/{child_id}/transition/push-readiness
    async def push_readiness(self, child_id: int, now: datetime) -> NapPushRecommendation:
        transition = await self._require_transition(child_id)
        config = await self.store.get_active_schedule(child_id)
        sessions = await self.store.get_recent_sessions(child_id, self.transition_config.history_window_days, now)
        return analyze_push_readiness(transition, sessions, config, now, self.transition_config)

    # Used by: POST /children/{child_id}/transition
    async def start_transition(
            self,
            child_id: int,
            start_nap_time: str,
            now: datetime,
            from_type: ScheduleType = ScheduleType.TWO_NAP,
            to_type: ScheduleType = ScheduleType.ONE_NAP,
            target_weeks: int = TRANSITION_TARGET_WEEKS_DEFAULT,
            notes: Optional[str] = None
    ) -> ScheduleTransition:
        active = await self.store.get_active_transition(child_id)
        config = await self.store.get_active_schedule(child_id)
        mutation = start_transition(
            active,
            from_type,
            to_type,
            start_nap_time,
            now,
            target_weeks,
            child_id=child_id,
            config=config,
            notes=notes,
            transition_config=self.transition_config,
        )
        return await self.store.apply_transition_mutation(child_id, mutation)

    # Used by: PATCH /children/{child_id}/transition
    async def progress_transition(self, child_id: int, patch: TransitionPatch, now: datetime) -> ScheduleTransition:
        transition = await self.store.get_active_transition(child_id)
        config = await self.store.get_active_schedule(child_id)
        mutation = progress_transition(transition, patch, now, config, self.transition_config)
        return await self.store.apply_transition_mutation(child_id, mutation)

    # Used by: DELETE /children/{child_id}/transition
    async def cancel_transition(self, child_id: int) -> None:
        transition = await self.store.get_active_transition(child_id)
        mutation = cancel_transition(transition)
        await self.store.apply_transition_mutation(child_id, mutation)


_schedule_service: Optional[ScheduleService] = None


def get_schedule_service() -> ScheduleService:
    global _schedule_service
    if _schedule_service is None:
        _schedule_service = ScheduleService()
    return _schedule_service
