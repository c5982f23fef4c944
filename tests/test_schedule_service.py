"""
Tests for ScheduleService over an in-memory store.
"""

import asyncio
import pytest
from datetime import datetime, timedelta

from naptrack.core.errors import InvalidArgumentError, InvalidStateError, NotFoundError, ScheduleValidationError
from naptrack.db.models import NapLocation, ScheduleType, SessionEvent, SessionState, SessionType, SleepSession
from naptrack.services.schedule_model import default_transition_schedule
from naptrack.services.schedule_predictor import Action
from naptrack.services.schedule_service import ScheduleService, last_session_end
from naptrack.services.transition_tracker import TransitionPatch

from conftest import FakeChildStore, NOW, build_nap, build_night, build_transition, build_two_nap_schedule

MORNING = datetime(2024, 3, 12, 7, 30)


def run(coro):
    return asyncio.run(coro)


def service_for(store):
    return ScheduleService(store=store, history_days=7)


class TestLastSessionEnd:
    """Latest out-of-crib (or wake) among completed sessions."""

    def test_latest_end(self):
        night = build_night(datetime(2024, 3, 11, 19, 0), datetime(2024, 3, 12, 6, 30))
        nap = build_nap(datetime(2024, 3, 12, 9, 15))
        assert last_session_end([nap, night]) == nap.out_of_crib_at

    def test_empty(self):
        assert last_session_end([]) is None


class TestRecommendation:
    """Reads schedule, sessions and transition, then recommends."""

    def test_after_morning_wake(self, two_nap_schedule):
        night = build_night(datetime(2024, 3, 11, 19, 0), datetime(2024, 3, 12, 6, 30))
        store = FakeChildStore(schedule=two_nap_schedule, sessions=[night])
        rec = run(service_for(store).recommendation(1, MORNING))
        assert rec.action == Action.WAIT
        assert rec.reason == "Nap 1 in 90 minutes"

    def test_no_schedule(self):
        with pytest.raises(NotFoundError) as exc_info:
            run(service_for(FakeChildStore()).recommendation(1, MORNING))
        assert exc_info.value.code == "NO_ACTIVE_SCHEDULE"


class TestDayPlan:
    """Day plan anchored on this morning's logged wake."""

    def test_uses_logged_wake(self, two_nap_schedule):
        night = build_night(datetime(2024, 3, 11, 19, 0), datetime(2024, 3, 12, 6, 15))
        store = FakeChildStore(schedule=two_nap_schedule, sessions=[night])
        plan = run(service_for(store).day_plan(1, MORNING))
        assert plan.wake_time == datetime(2024, 3, 12, 6, 15)

    def test_defaults_to_schedule_wake(self, two_nap_schedule):
        plan = run(service_for(FakeChildStore(schedule=two_nap_schedule)).day_plan(1, MORNING))
        assert plan.wake_time == datetime(2024, 3, 12, 6, 30)

    def test_explicit_wake(self, two_nap_schedule):
        wake = datetime(2024, 3, 12, 7, 0)
        plan = run(service_for(FakeChildStore(schedule=two_nap_schedule)).day_plan(1, MORNING, wake_time=wake))
        assert plan.naps[0].put_down_window.earliest == datetime(2024, 3, 12, 9, 30)


class TestReplaceSchedule:
    """Validated wholesale replacement."""

    def test_saves_valid_schedule(self, one_nap_schedule):
        store = FakeChildStore()
        saved = run(service_for(store).replace_schedule(4, one_nap_schedule))
        assert saved.child_id == 4
        assert saved.id is not None
        assert store.schedule == saved

    def test_rejects_invalid_schedule(self):
        store = FakeChildStore()
        with pytest.raises(ScheduleValidationError):
            run(service_for(store).replace_schedule(1, build_two_nap_schedule(day_sleep_cap=-5)))
        assert store.replaced == []


class TestCribCompliance:
    """Crib rule switches to the transition rule while one is running."""

    def short_nap(self):
        return build_nap(datetime(2024, 3, 12, 12, 0), sleep_minutes=45, id=5)

    def test_schedule_rule(self, two_nap_schedule):
        store = FakeChildStore(schedule=two_nap_schedule, sessions=[self.short_nap()])
        result = run(service_for(store).crib_compliance(1, 5, NOW))
        assert result.required_minutes == 60
        assert result.remaining_minutes == 5

    def test_transition_rule(self, two_nap_schedule, standard_transition):
        store = FakeChildStore(schedule=two_nap_schedule, sessions=[self.short_nap()], transition=standard_transition)
        result = run(service_for(store).crib_compliance(1, 5, NOW))
        assert result.required_minutes == 90
        assert result.remaining_minutes == 35
        assert result.compliant is False

    def test_unknown_session(self, two_nap_schedule):
        with pytest.raises(NotFoundError) as exc_info:
            run(service_for(FakeChildStore(schedule=two_nap_schedule)).crib_compliance(1, 99, NOW))
        assert exc_info.value.code == "SESSION_NOT_FOUND"


class TestSessionUpdates:
    """New sessions, lifecycle events and time corrections are written back through the store."""

    def test_put_down_is_stored(self):
        store = FakeChildStore()
        created = run(service_for(store).create_session(1, SessionType.NAP, datetime(2024, 3, 12, 12, 0), nap_number=1))
        assert created.id == 101
        assert created.child_id == 1
        assert created.state == SessionState.PENDING
        assert store.sessions == [created]

    def test_put_down_then_events(self):
        store = FakeChildStore()
        service = service_for(store)
        put_down = datetime(2024, 3, 12, 12, 0)
        created = run(service.create_session(1, SessionType.NAP, put_down, nap_number=1))
        asleep = run(service.record_session_event(1, created.id, SessionEvent.FELL_ASLEEP, put_down + timedelta(minutes=6)))
        assert asleep.state == SessionState.ASLEEP

    def test_logged_ad_hoc_nap(self):
        store = FakeChildStore()
        asleep_at = datetime(2024, 3, 12, 12, 30)
        created = run(service_for(store).create_ad_hoc_session(
            1, NapLocation.CAR, asleep_at, woke_up_at=asleep_at + timedelta(minutes=25)
        ))
        assert created.state == SessionState.COMPLETED
        assert created.is_ad_hoc is True
        assert created.sleep_minutes == 25
        assert store.sessions[0].id == created.id

    def test_crib_ad_hoc_rejected(self):
        store = FakeChildStore()
        with pytest.raises(InvalidArgumentError):
            run(service_for(store).create_ad_hoc_session(1, NapLocation.CRIB, datetime(2024, 3, 12, 12, 30)))
        assert store.sessions == []

    def test_record_event(self):
        put_down = datetime(2024, 3, 12, 12, 0)
        pending = SleepSession(id=8, child_id=1, session_type=SessionType.NAP, put_down_at=put_down)
        store = FakeChildStore(sessions=[pending])
        updated = run(service_for(store).record_session_event(1, 8, SessionEvent.FELL_ASLEEP, put_down + timedelta(minutes=7)))
        assert updated.state == SessionState.ASLEEP
        assert store.sessions[0].asleep_at == put_down + timedelta(minutes=7)

    def test_event_on_unknown_session(self):
        with pytest.raises(NotFoundError):
            run(service_for(FakeChildStore()).record_session_event(1, 8, SessionEvent.WOKE_UP, NOW))

    def test_correct_times(self):
        nap = build_nap(datetime(2024, 3, 12, 12, 0), sleep_minutes=60, id=9)
        store = FakeChildStore(sessions=[nap])
        fixed = run(service_for(store).correct_session(1, 9, put_down_at=datetime(2024, 3, 12, 11, 50)))
        assert fixed.total_minutes == 80
        assert store.sessions[0].put_down_at == datetime(2024, 3, 12, 11, 50)


class TestTransitionReads:
    """Progress and push readiness."""

    def test_progress_without_transition(self):
        with pytest.raises(NotFoundError) as exc_info:
            run(service_for(FakeChildStore()).transition_progress(1, NOW))
        assert exc_info.value.code == "NO_ACTIVE_TRANSITION"

    def test_progress(self, standard_transition):
        progress = run(service_for(FakeChildStore(transition=standard_transition)).transition_progress(1, NOW))
        assert progress.current_week == 2

    def test_push_readiness(self, week_of_good_naps):
        transition = build_transition(current_nap_time="11:45", last_pushed_at=NOW - timedelta(days=4))
        store = FakeChildStore(sessions=week_of_good_naps, transition=transition)
        result = run(service_for(store).push_readiness(1, NOW))
        assert result.should_push is True
        assert result.suggested_new_time == "12:00"


class TestTransitionLifecycle:
    """Start, push, complete and cancel against the store."""

    def test_start_switches_schedule(self, two_nap_schedule):
        store = FakeChildStore(schedule=two_nap_schedule)
        transition = run(service_for(store).start_transition(1, "11:30", NOW))
        assert transition.id is not None
        assert transition.child_id == 1
        assert store.schedule.type == ScheduleType.TRANSITION

    def test_second_start_rejected(self, two_nap_schedule):
        store = FakeChildStore(schedule=two_nap_schedule)
        service = service_for(store)
        run(service.start_transition(1, "11:30", NOW))
        with pytest.raises(InvalidStateError):
            run(service.start_transition(1, "11:30", NOW))

    def test_push(self, two_nap_schedule):
        store = FakeChildStore(schedule=two_nap_schedule, transition=build_transition(current_nap_time="12:00"))
        updated = run(service_for(store).progress_transition(1, TransitionPatch(new_nap_time="12:15"), NOW))
        assert updated.current_nap_time == "12:15"
        assert store.transition.last_pushed_at == NOW

    def test_complete(self):
        store = FakeChildStore(
            schedule=default_transition_schedule(child_id=1),
            transition=build_transition(current_nap_time="12:30"),
        )
        done = run(service_for(store).progress_transition(1, TransitionPatch(complete=True), NOW))
        assert done.completed_at == NOW
        assert store.schedule.type == ScheduleType.ONE_NAP
        assert run(store.get_active_transition(1)) is None

    def test_cancel(self, two_nap_schedule, standard_transition):
        transition_schedule = two_nap_schedule.model_copy(update={"type": ScheduleType.TRANSITION})
        store = FakeChildStore(schedule=transition_schedule, transition=standard_transition)
        run(service_for(store).cancel_transition(1))
        assert store.transition is None
        assert store.schedule.type == ScheduleType.TWO_NAP

    def test_cancel_without_transition(self):
        with pytest.raises(NotFoundError):
            run(service_for(FakeChildStore()).cancel_transition(1))
