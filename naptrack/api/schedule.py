"""
Schedule API: recommendations, day plans, crib rule and the 2-to-1 nap transition.

Routes (/children):
  GET    /{child_id}/recommendation                          - Next action (NAP / BEDTIME / WAIT / WAKE)
  GET    /{child_id}/day-plan                                - Full-day nap and bedtime windows
  PUT    /{child_id}/schedule                                - Validate and replace the active schedule
  POST   /{child_id}/sessions                                - Put down for a nap or the night (PENDING)
  POST   /{child_id}/sessions/ad-hoc                         - Car / stroller nap, live or logged afterwards
  POST   /{child_id}/sessions/{session_id}/events            - Advance a session (asleep, awake, out of crib)
  PATCH  /{child_id}/sessions/{session_id}                   - Correct logged session times
  GET    /{child_id}/sessions/{session_id}/crib-compliance   - Minimum crib time check
  GET    /{child_id}/transition/progress                     - Phase, percent complete, next milestone
  GET    /{child_id}/transition/push-readiness               - Should the nap move later
  POST   /{child_id}/transition                              - Start a transition
  PATCH  /{child_id}/transition                              - Push nap / set week / notes / complete
  DELETE /{child_id}/transition                              - Cancel the active transition

Every GET accepts an optional `at` timestamp that replaces the server clock.
"""

import logging
from datetime import datetime
from typing import Optional

import pytz
from fastapi import APIRouter, Depends, Query

from .models import (
    RecommendationResponse, DayPlanResponse, NapPlanResponse, BedtimePlanResponse, TimeWindowResponse,
    CribComplianceResponse, StartTransitionRequest, ProgressTransitionRequest, TransitionResponse,
    TransitionProgressResponse, ExpectedWeeks, TransitionRules, MilestoneResponse, PushReadinessResponse,
    DeleteResponse, SessionEventRequest, SessionCorrectionRequest, CreateSessionRequest, AdHocSessionRequest,
)
from ..core.errors import InvalidArgumentError
from ..core.settings import settings
from ..db.models import ScheduleConfig, ScheduleTransition, SleepSession
from ..services.schedule_predictor import TimeWindow
from ..services.schedule_service import ScheduleService, get_schedule_service, local_now
from ..services.transition_tracker import TransitionPatch, pace_of

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/children", tags=["schedule"])


def _resolve_now(at: Optional[datetime]) -> datetime:
    """Explicit `at` (converted to the child's wall clock when zoned) or the current local time."""
    if at is None:
        return local_now()
    if at.tzinfo is not None:
        return at.astimezone(pytz.timezone(settings.CHILD_TIMEZONE)).replace(tzinfo=None)
    return at


def _window(window: TimeWindow) -> TimeWindowResponse:
    return TimeWindowResponse(earliest=window.earliest, latest=window.latest, recommended=window.recommended)


def _transition(transition: ScheduleTransition) -> TransitionResponse:
    return TransitionResponse(
        id=transition.id,
        child_id=transition.child_id,
        from_type=transition.from_type,
        to_type=transition.to_type,
        started_at=transition.started_at,
        current_week=transition.current_week,
        target_weeks=transition.target_weeks,
        pace=pace_of(transition),
        current_nap_time=transition.current_nap_time,
        last_pushed_at=transition.last_pushed_at,
        completed_at=transition.completed_at,
        notes=transition.notes,
    )


# Used by: Dashboard (next action card)
@router.get("/{child_id}/recommendation", response_model=RecommendationResponse)
async def get_recommendation(
    child_id: int,
    at: Optional[datetime] = Query(None, description="Evaluate at this time instead of now"),
    service: ScheduleService = Depends(get_schedule_service)
):
    rec = await service.recommendation(child_id, _resolve_now(at))
    return RecommendationResponse(
        action=rec.action,
        earliest=rec.earliest,
        latest=rec.latest,
        target=rec.target,
        reason=rec.reason,
        nap_number=rec.nap_number,
        overtired=rec.overtired,
        wake_deadline=rec.wake_deadline,
        notes=rec.notes,
    )


# Used by: Schedule page (today's timeline)
@router.get("/{child_id}/day-plan", response_model=DayPlanResponse)
async def get_day_plan(
    child_id: int,
    at: Optional[datetime] = Query(None, description="Evaluate at this time instead of now"),
    wake_time: Optional[datetime] = Query(None, description="Morning wake time; defaults to today's logged wake"),
    service: ScheduleService = Depends(get_schedule_service)
):
    now = _resolve_now(at)
    plan = await service.day_plan(child_id, now, wake_time=_resolve_now(wake_time) if wake_time else None)
    return DayPlanResponse(
        date=plan.date,
        wake_time=plan.wake_time,
        naps=[
            NapPlanResponse(
                nap_number=nap.nap_number,
                put_down_window=_window(nap.put_down_window),
                max_duration=nap.max_duration,
                end_by=nap.end_by,
                notes=nap.notes,
            )
            for nap in plan.naps
        ],
        bedtime=BedtimePlanResponse(put_down_window=_window(plan.bedtime.put_down_window), notes=plan.bedtime.notes),
        day_sleep_cap=plan.day_sleep_cap,
        warnings=plan.warnings,
    )


# Used by: Schedule page (save)
@router.put("/{child_id}/schedule", response_model=ScheduleConfig)
async def put_schedule(
    child_id: int,
    config: ScheduleConfig,
    service: ScheduleService = Depends(get_schedule_service)
):
    return await service.replace_schedule(child_id, config)


# Used by: Crib countdown on an open nap
@router.get("/{child_id}/sessions/{session_id}/crib-compliance", response_model=CribComplianceResponse)
async def get_crib_compliance(
    child_id: int,
    session_id: int,
    at: Optional[datetime] = Query(None, description="Evaluate at this time instead of now"),
    service: ScheduleService = Depends(get_schedule_service)
):
    result = await service.crib_compliance(child_id, session_id, _resolve_now(at))
    return CribComplianceResponse(
        session_id=session_id,
        compliant=result.compliant,
        minutes_in_crib=result.minutes_in_crib,
        remaining_minutes=result.remaining_minutes,
        required_minutes=result.required_minutes,
        recommendation=result.recommendation,
    )


# Used by: Sleep timer ("put down" button)
@router.post("/{child_id}/sessions", response_model=SleepSession, status_code=201)
async def post_session(
    child_id: int,
    request: CreateSessionRequest,
    at: Optional[datetime] = Query(None, description="Put-down time instead of now"),
    service: ScheduleService = Depends(get_schedule_service)
):
    put_down_at = request.put_down_at if request.put_down_at is not None else at
    return await service.create_session(
        child_id,
        request.session_type,
        _resolve_now(put_down_at),
        nap_number=request.nap_number,
        notes=request.notes,
    )


# Used by: "Nap on the go" sheet (car, stroller, carrier)
@router.post("/{child_id}/sessions/ad-hoc", response_model=SleepSession, status_code=201)
async def post_ad_hoc_session(
    child_id: int,
    request: AdHocSessionRequest,
    service: ScheduleService = Depends(get_schedule_service)
):
    return await service.create_ad_hoc_session(
        child_id,
        request.location,
        _resolve_now(request.asleep_at),
        woke_up_at=_resolve_now(request.woke_up_at) if request.woke_up_at else None,
        notes=request.notes,
    )


# Used by: Sleep timer buttons (asleep / awake / out of crib)
@router.post("/{child_id}/sessions/{session_id}/events", response_model=SleepSession)
async def post_session_event(
    child_id: int,
    session_id: int,
    request: SessionEventRequest,
    at: Optional[datetime] = Query(None, description="Event time instead of now"),
    service: ScheduleService = Depends(get_schedule_service)
):
    return await service.record_session_event(child_id, session_id, request.event, _resolve_now(at))


# Used by: Session history (fix a logged time)
@router.patch("/{child_id}/sessions/{session_id}", response_model=SleepSession)
async def patch_session(
    child_id: int,
    session_id: int,
    request: SessionCorrectionRequest,
    service: ScheduleService = Depends(get_schedule_service)
):
    timestamps = {name: _resolve_now(value) for name, value in request.model_dump(exclude_none=True).items()}
    if not timestamps:
        raise InvalidArgumentError("No timestamps to correct")
    return await service.correct_session(child_id, session_id, **timestamps)


# Used by: Transition card (progress bar and milestone)
@router.get("/{child_id}/transition/progress", response_model=TransitionProgressResponse)
async def get_transition_progress(
    child_id: int,
    at: Optional[datetime] = Query(None, description="Evaluate at this time instead of now"),
    service: ScheduleService = Depends(get_schedule_service)
):
    progress = await service.transition_progress(child_id, _resolve_now(at))
    expected_min, expected_max = progress.total_expected_weeks
    return TransitionProgressResponse(
        transition=_transition(progress.transition),
        current_phase=progress.current_phase,
        current_week=progress.current_week,
        weeks_completed=progress.weeks_completed,
        total_expected_weeks=ExpectedWeeks(min=expected_min, max=expected_max),
        percent_complete=progress.percent_complete,
        current_rules=TransitionRules(
            min_nap_earliest=progress.min_nap_earliest,
            crib_rule=progress.crib_rule_minutes,
            target_nap_time=progress.target_nap_time,
        ),
        next_milestone=MilestoneResponse(
            description=progress.next_milestone.description,
            target_date=progress.next_milestone.target_date,
            action=progress.next_milestone.action,
        ),
        recommendations=progress.recommendations,
    )


# Used by: Transition card ("push nap later?" prompt)
@router.get("/{child_id}/transition/push-readiness", response_model=PushReadinessResponse)
async def get_push_readiness(
    child_id: int,
    at: Optional[datetime] = Query(None, description="Evaluate at this time instead of now"),
    service: ScheduleService = Depends(get_schedule_service)
):
    result = await service.push_readiness(child_id, _resolve_now(at))
    return PushReadinessResponse(
        should_push=result.should_push,
        current_nap_time=result.current_nap_time,
        suggested_new_time=result.suggested_new_time,
        reason=result.reason,
        days_since_last_push=result.days_since_last_push,
        good_nap_count=result.good_nap_count,
        total_naps=result.total_naps,
        readiness_indicators=result.readiness_indicators,
    )


# Used by: Transition wizard (start)
@router.post("/{child_id}/transition", response_model=TransitionResponse, status_code=201)
async def post_transition(
    child_id: int,
    request: StartTransitionRequest,
    at: Optional[datetime] = Query(None, description="Start time instead of now"),
    service: ScheduleService = Depends(get_schedule_service)
):
    transition = await service.start_transition(
        child_id,
        request.start_nap_time,
        _resolve_now(at),
        from_type=request.from_type,
        to_type=request.to_type,
        target_weeks=request.target_weeks,
        notes=request.notes,
    )
    return _transition(transition)


# Used by: Transition card (push nap, edit notes, complete)
@router.patch("/{child_id}/transition", response_model=TransitionResponse)
async def patch_transition(
    child_id: int,
    request: ProgressTransitionRequest,
    at: Optional[datetime] = Query(None, description="Apply at this time instead of now"),
    service: ScheduleService = Depends(get_schedule_service)
):
    patch = TransitionPatch(
        new_nap_time=request.new_nap_time,
        current_week=request.current_week,
        notes=request.notes,
        complete=request.complete,
    )
    transition = await service.progress_transition(child_id, patch, _resolve_now(at))
    return _transition(transition)


# Used by: Transition card (cancel)
@router.delete("/{child_id}/transition", response_model=DeleteResponse)
async def delete_transition(
    child_id: int,
    service: ScheduleService = Depends(get_schedule_service)
):
    await service.cancel_transition(child_id)
    logger.info(f"Transition cancelled for child {child_id}")
    return DeleteResponse(success=True, message="Transition cancelled")
