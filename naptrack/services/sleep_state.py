"""
Sleep session lifecycle: PENDING -> ASLEEP -> AWAKE -> COMPLETED, plus per-session durations.

Crib sessions start PENDING at put-down. Ad-hoc naps (car, stroller, ...) start ASLEEP
and complete on wake-up.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from ..core.constants import AD_HOC_MIN_CREDIT_MINUTES, SESSION_NAP_NUMBER_MAX, SESSION_NOTES_MAX_CHARS
from ..core.errors import InvalidArgumentError, InvalidStateError
from ..db.models import NapLocation, SessionEvent, SessionState, SessionType, SleepSession

logger = logging.getLogger(__name__)

# event -> (required current state, resulting state, timestamp field it sets)
EVENT_TRANSITIONS: Dict[SessionEvent, tuple] = {
    SessionEvent.FELL_ASLEEP: (SessionState.PENDING, SessionState.ASLEEP, "asleep_at"),
    SessionEvent.WOKE_UP: (SessionState.ASLEEP, SessionState.AWAKE, "woke_up_at"),
    SessionEvent.OUT_OF_CRIB: (SessionState.AWAKE, SessionState.COMPLETED, "out_of_crib_at"),
}

TIMESTAMP_ORDER = ("put_down_at", "asleep_at", "woke_up_at", "out_of_crib_at")


@dataclass(frozen=True)
class SessionDurations:
    total_minutes: Optional[int]
    sleep_minutes: Optional[int]
    settling_minutes: Optional[int]
    post_wake_minutes: Optional[int]
    awake_crib_minutes: Optional[int]
    qualified_rest_minutes: Optional[int]


def _elapsed(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    if start is None or end is None:
        return None
    return max(0, round((end - start).total_seconds() / 60))


def _check_order(values: Dict[str, Optional[datetime]]) -> None:
    previous_name, previous = None, None
    for name in TIMESTAMP_ORDER:
        value = values.get(name)
        if value is None:
            continue
        if previous is not None and value < previous:
            raise InvalidArgumentError(f"{name} ({value.isoformat()}) cannot precede {previous_name} ({previous.isoformat()})")
        previous_name, previous = name, value


# Used by: apply_event, session_stats.aggregate (qualified rest today)
def compute_durations(session: SleepSession) -> SessionDurations:
    """
    Time in crib, actual sleep and qualified rest for one session.

    Crib sessions: qualified rest = sleep + (woke_up -> out_of_crib) / 2.
    Ad-hoc naps (car, stroller) have no crib time: under 15 minutes of sleep
    earns nothing, otherwise half the sleep counts.
    """
    total = _elapsed(session.put_down_at, session.out_of_crib_at)
    sleep = _elapsed(session.asleep_at, session.woke_up_at)

    if session.is_ad_hoc:
        qualified = None
        if sleep is not None:
            qualified = 0 if sleep < AD_HOC_MIN_CREDIT_MINUTES else round(sleep / 2)
        return SessionDurations(total, sleep, None, None, None, qualified)

    settling = _elapsed(session.put_down_at, session.asleep_at)
    post_wake = _elapsed(session.woke_up_at, session.out_of_crib_at)

    awake_crib = None
    if settling is not None or post_wake is not None:
        awake_crib = (settling or 0) + (post_wake or 0)

    qualified = None
    if sleep is not None or post_wake is not None:
        qualified = round((sleep or 0) + (post_wake or 0) / 2)

    return SessionDurations(total, sleep, settling, post_wake, awake_crib, qualified)


def _check_notes(notes: Optional[str]) -> None:
    if notes is not None and len(notes) > SESSION_NOTES_MAX_CHARS:
        raise InvalidArgumentError(f"Notes cannot exceed {SESSION_NOTES_MAX_CHARS} characters")


def _with_durations(session: SleepSession) -> SleepSession:
    durations = compute_durations(session)
    return session.model_copy(update={
        "total_minutes": durations.total_minutes,
        "sleep_minutes": durations.sleep_minutes,
    })


# Used by: schedule_service.create_session
def put_down(
        session_type: SessionType,
        at: datetime,
        *,
        child_id: Optional[int] = None,
        nap_number: Optional[int] = None,
        notes: Optional[str] = None
) -> SleepSession:
    """New crib session, PENDING from the moment the child goes into the crib."""
    session_type = SessionType(session_type)
    if nap_number is not None:
        if session_type != SessionType.NAP:
            raise InvalidArgumentError("Only naps take a nap number")
        if not 1 <= nap_number <= SESSION_NAP_NUMBER_MAX:
            raise InvalidArgumentError(f"Nap number must be between 1 and {SESSION_NAP_NUMBER_MAX}, got {nap_number}")
    _check_notes(notes)

    return SleepSession(
        child_id=child_id,
        session_type=session_type,
        nap_number=nap_number,
        state=SessionState.PENDING,
        put_down_at=at,
        notes=notes,
        created_at=at,
    )


# Used by: schedule_service.create_ad_hoc_session
def start_ad_hoc_nap(
        location: NapLocation,
        asleep_at: datetime,
        woke_up_at: Optional[datetime] = None,
        *,
        child_id: Optional[int] = None,
        notes: Optional[str] = None
) -> SleepSession:
    """
    Nap outside the crib. Without `woke_up_at` it is tracked live from ASLEEP;
    with it the nap is logged after the fact as COMPLETED.

    Ad-hoc naps carry no nap number and have no settling or post-wake time.
    """
    location = NapLocation(location)
    if location == NapLocation.CRIB:
        raise InvalidArgumentError("Crib naps start with a put-down, not as ad-hoc naps")
    _check_notes(notes)

    session = SleepSession(
        child_id=child_id,
        session_type=SessionType.NAP,
        state=SessionState.ASLEEP,
        is_ad_hoc=True,
        location=location,
        put_down_at=asleep_at,
        asleep_at=asleep_at,
        notes=notes,
        created_at=asleep_at,
    )
    if woke_up_at is None:
        return session
    return apply_event(session, SessionEvent.WOKE_UP, woke_up_at)


# Used by: schedule_service.record_session_event, start_ad_hoc_nap
def apply_event(session: SleepSession, event: SessionEvent, at: datetime) -> SleepSession:
    """Advance one step. Events may not skip or repeat a state, and `at` must keep timestamps ordered."""
    event = SessionEvent(event)
    if session.is_ad_hoc and event == SessionEvent.WOKE_UP:
        if session.state != SessionState.ASLEEP:
            raise InvalidStateError(f"Cannot apply woke_up to a session in state {session.state.value}")
        values = {name: getattr(session, name) for name in TIMESTAMP_ORDER}
        values.update(woke_up_at=at, out_of_crib_at=at)
        _check_order(values)
        finished = _with_durations(session.model_copy(update={
            "woke_up_at": at,
            "out_of_crib_at": at,
            "state": SessionState.COMPLETED,
        }))
        logger.info(f"Ad-hoc nap {session.id} ({session.location.value}) completed: {finished.sleep_minutes} min asleep")
        return finished

    required, next_state, field = EVENT_TRANSITIONS[event]
    if session.state != required:
        raise InvalidStateError(
            f"Cannot apply {event.value} to a session in state {session.state.value}"
        )

    values = {name: getattr(session, name) for name in TIMESTAMP_ORDER}
    values[field] = at
    _check_order(values)

    updated = session.model_copy(update={field: at, "state": next_state})
    if next_state == SessionState.COMPLETED:
        updated = _with_durations(updated)
        logger.info(
            f"Session {session.id} completed: {updated.sleep_minutes} min asleep, "
            f"{updated.total_minutes} min in crib"
        )
    return updated


# Used by: schedule_service.correct_session (caregiver edits of logged times)
def correct_timestamps(session: SleepSession, **timestamps: Optional[datetime]) -> SleepSession:
    unknown = set(timestamps) - set(TIMESTAMP_ORDER)
    if unknown:
        raise InvalidArgumentError(f"Unknown session timestamp(s): {', '.join(sorted(unknown))}")

    values = {name: getattr(session, name) for name in TIMESTAMP_ORDER}
    values.update(timestamps)
    _check_order(values)

    updated = session.model_copy(update=timestamps)
    if updated.state == SessionState.COMPLETED:
        updated = _with_durations(updated)
    return updated
