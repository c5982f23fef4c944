"""Pydantic records mirroring the naptrack schema (see schema.sql)."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from naptrack.core.constants import (
    MINIMUM_CRIB_MINUTES_DEFAULT,
    NAP_REMINDER_MINUTES_DEFAULT,
    BEDTIME_REMINDER_MINUTES_DEFAULT,
    WAKE_DEADLINE_REMINDER_MINUTES_DEFAULT,
    TRANSITION_TARGET_WEEKS_DEFAULT,
)


class ScheduleType(str, Enum):
    THREE_NAP = "THREE_NAP"
    TWO_NAP = "TWO_NAP"
    ONE_NAP = "ONE_NAP"
    TRANSITION = "TRANSITION"


class SessionType(str, Enum):
    NAP = "NAP"
    NIGHT_SLEEP = "NIGHT_SLEEP"


class SessionState(str, Enum):
    PENDING = "PENDING"
    ASLEEP = "ASLEEP"
    AWAKE = "AWAKE"
    COMPLETED = "COMPLETED"


class SessionEvent(str, Enum):
    FELL_ASLEEP = "fell_asleep"
    WOKE_UP = "woke_up"
    OUT_OF_CRIB = "out_of_crib"


class NapLocation(str, Enum):
    CRIB = "CRIB"
    CAR = "CAR"
    STROLLER = "STROLLER"
    CARRIER = "CARRIER"
    SWING = "SWING"
    PLAYPEN = "PLAYPEN"
    OTHER = "OTHER"


class TransitionPhase(str, Enum):
    WEEK1_2 = "week1_2"
    WEEK2_PLUS = "week2_plus"
    FINAL = "final"


class TransitionPace(str, Enum):
    STANDARD = "standard"
    FAST_TRACK = "fast_track"


# Used by: schedule_model, schedule_predictor, transition_tracker, children_data
class ScheduleConfig(BaseModel):
    """One child's active schedule. Replaced wholesale on edit, never mutated in place."""
    id: Optional[int] = None
    child_id: Optional[int] = None
    type: ScheduleType
    is_active: bool = True

    # Wake windows (minutes)
    wake_window1_min: int
    wake_window1_max: int
    wake_window2_min: Optional[int] = None
    wake_window2_max: Optional[int] = None
    wake_window3_min: Optional[int] = None
    wake_window3_max: Optional[int] = None

    nap1_earliest: Optional[str] = None
    nap1_latest_start: Optional[str] = None
    nap1_max_duration: Optional[int] = None
    nap1_end_by: Optional[str] = None

    nap2_earliest: Optional[str] = None
    nap2_latest_start: Optional[str] = None
    nap2_max_duration: Optional[int] = None
    nap2_end_by: Optional[str] = None
    nap2_exception_duration: Optional[int] = None

    nap3_earliest: Optional[str] = None
    nap3_latest_start: Optional[str] = None
    nap3_max_duration: Optional[int] = None
    nap3_end_by: Optional[str] = None

    bedtime_earliest: str
    bedtime_latest: str
    bedtime_goal_start: Optional[str] = None
    bedtime_goal_end: Optional[str] = None

    wake_time_earliest: str
    wake_time_latest: str

    day_sleep_cap: int
    minimum_crib_minutes: int = MINIMUM_CRIB_MINUTES_DEFAULT

    nap_reminder_minutes: int = NAP_REMINDER_MINUTES_DEFAULT
    bedtime_reminder_minutes: int = BEDTIME_REMINDER_MINUTES_DEFAULT
    wake_deadline_reminder_minutes: int = WAKE_DEADLINE_REMINDER_MINUTES_DEFAULT

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        frozen = True


# Used by: sleep_state, session_stats, crib_compliance, transition_tracker
class SleepSession(BaseModel):
    id: Optional[int] = None
    child_id: Optional[int] = None
    session_type: SessionType
    nap_number: Optional[int] = None
    state: SessionState = SessionState.PENDING
    is_ad_hoc: bool = False
    location: NapLocation = NapLocation.CRIB

    put_down_at: Optional[datetime] = None
    asleep_at: Optional[datetime] = None
    woke_up_at: Optional[datetime] = None
    out_of_crib_at: Optional[datetime] = None

    crying_minutes: Optional[int] = None
    total_minutes: Optional[int] = None
    sleep_minutes: Optional[int] = None
    notes: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        frozen = True

    @property
    def is_nap(self) -> bool:
        return self.session_type == SessionType.NAP

    @property
    def is_completed(self) -> bool:
        return self.state == SessionState.COMPLETED

    @property
    def recorded_at(self) -> Optional[datetime]:
        """created_at, falling back to put_down_at for sessions logged without one."""
        return self.created_at or self.put_down_at


# Used by: transition_tracker, schedule_service, children_data
class ScheduleTransition(BaseModel):
    id: Optional[int] = None
    child_id: Optional[int] = None
    from_type: ScheduleType = ScheduleType.TWO_NAP
    to_type: ScheduleType = ScheduleType.ONE_NAP
    started_at: datetime
    current_week: int = 1
    target_weeks: int = TRANSITION_TARGET_WEEKS_DEFAULT
    current_nap_time: str
    last_pushed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        frozen = True

    @property
    def is_active(self) -> bool:
        return self.completed_at is None
