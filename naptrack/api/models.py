"""Pydantic request/response models for the schedule and transition endpoints."""

from pydantic import BaseModel
from datetime import datetime, date
from typing import List, Optional

from ..db.models import NapLocation, ScheduleType, SessionEvent, SessionType, TransitionPace, TransitionPhase
from ..services.schedule_predictor import Action


# Recommendation models

class RecommendationResponse(BaseModel):
    action: Action
    earliest: Optional[datetime] = None
    latest: Optional[datetime] = None
    target: Optional[datetime] = None
    reason: str
    nap_number: Optional[int] = None
    overtired: bool = False
    wake_deadline: Optional[datetime] = None
    notes: List[str] = []


class TimeWindowResponse(BaseModel):
    earliest: datetime
    latest: datetime
    recommended: datetime


class NapPlanResponse(BaseModel):
    nap_number: int
    put_down_window: TimeWindowResponse
    max_duration: int
    end_by: Optional[datetime] = None
    notes: List[str] = []


class BedtimePlanResponse(BaseModel):
    put_down_window: TimeWindowResponse
    notes: List[str] = []


class DayPlanResponse(BaseModel):
    date: date
    wake_time: datetime
    naps: List[NapPlanResponse]
    bedtime: BedtimePlanResponse
    day_sleep_cap: int
    warnings: List[str] = []


# Session models

class CreateSessionRequest(BaseModel):
    session_type: SessionType
    nap_number: Optional[int] = None
    put_down_at: Optional[datetime] = None
    notes: Optional[str] = None


class AdHocSessionRequest(BaseModel):
    location: NapLocation
    asleep_at: datetime
    woke_up_at: Optional[datetime] = None
    notes: Optional[str] = None


class SessionEventRequest(BaseModel):
    event: SessionEvent


class SessionCorrectionRequest(BaseModel):
    put_down_at: Optional[datetime] = None
    asleep_at: Optional[datetime] = None
    woke_up_at: Optional[datetime] = None
    out_of_crib_at: Optional[datetime] = None


class CribComplianceResponse(BaseModel):
    session_id: int
    compliant: bool
    minutes_in_crib: int
    remaining_minutes: int
    required_minutes: int
    recommendation: str


# Transition models

class StartTransitionRequest(BaseModel):
    from_type: ScheduleType = ScheduleType.TWO_NAP
    to_type: ScheduleType = ScheduleType.ONE_NAP
    start_nap_time: str
    target_weeks: int = 6
    notes: Optional[str] = None


class ProgressTransitionRequest(BaseModel):
    new_nap_time: Optional[str] = None
    current_week: Optional[int] = None
    notes: Optional[str] = None
    complete: bool = False


class TransitionResponse(BaseModel):
    id: Optional[int] = None
    child_id: Optional[int] = None
    from_type: ScheduleType
    to_type: ScheduleType
    started_at: datetime
    current_week: int
    target_weeks: int
    pace: TransitionPace
    current_nap_time: str
    last_pushed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None


class ExpectedWeeks(BaseModel):
    min: int
    max: int


class TransitionRules(BaseModel):
    min_nap_earliest: str
    crib_rule: int
    target_nap_time: str


class MilestoneResponse(BaseModel):
    description: str
    target_date: Optional[datetime] = None
    action: str


class TransitionProgressResponse(BaseModel):
    transition: TransitionResponse
    current_phase: TransitionPhase
    current_week: int
    weeks_completed: int
    total_expected_weeks: ExpectedWeeks
    percent_complete: int
    current_rules: TransitionRules
    next_milestone: MilestoneResponse
    recommendations: List[str]


class PushReadinessResponse(BaseModel):
    should_push: bool
    current_nap_time: str
    suggested_new_time: Optional[str] = None
    reason: str
    days_since_last_push: int
    good_nap_count: int
    total_naps: int
    readiness_indicators: List[str]


class DeleteResponse(BaseModel):
    success: bool
    message: str
