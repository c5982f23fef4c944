"""
Tests for the session lifecycle and per-session durations.
"""

import pytest
from datetime import datetime, timedelta

from naptrack.core.errors import InvalidArgumentError, InvalidStateError
from naptrack.db.models import NapLocation, SessionEvent, SessionState, SessionType, SleepSession
from naptrack.services.sleep_state import (
    apply_event, compute_durations, correct_timestamps, put_down, start_ad_hoc_nap,
)

from conftest import build_nap

PUT_DOWN = datetime(2024, 3, 12, 12, 0)


@pytest.fixture
def pending_nap():
    return SleepSession(
        id=1,
        child_id=1,
        session_type=SessionType.NAP,
        nap_number=1,
        put_down_at=PUT_DOWN,
        created_at=PUT_DOWN,
    )


class TestApplyEvent:
    """PENDING -> ASLEEP -> AWAKE -> COMPLETED, one step at a time."""

    def test_full_lifecycle(self, pending_nap):
        asleep = apply_event(pending_nap, SessionEvent.FELL_ASLEEP, PUT_DOWN + timedelta(minutes=10))
        assert asleep.state == SessionState.ASLEEP

        awake = apply_event(asleep, SessionEvent.WOKE_UP, PUT_DOWN + timedelta(minutes=100))
        assert awake.state == SessionState.AWAKE
        assert awake.sleep_minutes is None

        done = apply_event(awake, SessionEvent.OUT_OF_CRIB, PUT_DOWN + timedelta(minutes=110))
        assert done.state == SessionState.COMPLETED
        assert done.total_minutes == 110
        assert done.sleep_minutes == 90

    def test_input_session_unchanged(self, pending_nap):
        apply_event(pending_nap, SessionEvent.FELL_ASLEEP, PUT_DOWN + timedelta(minutes=10))
        assert pending_nap.state == SessionState.PENDING
        assert pending_nap.asleep_at is None

    def test_accepts_event_value(self, pending_nap):
        asleep = apply_event(pending_nap, "fell_asleep", PUT_DOWN + timedelta(minutes=5))
        assert asleep.state == SessionState.ASLEEP

    def test_cannot_skip_a_state(self, pending_nap):
        with pytest.raises(InvalidStateError):
            apply_event(pending_nap, SessionEvent.WOKE_UP, PUT_DOWN + timedelta(minutes=60))

    def test_cannot_repeat_an_event(self, pending_nap):
        asleep = apply_event(pending_nap, SessionEvent.FELL_ASLEEP, PUT_DOWN + timedelta(minutes=10))
        with pytest.raises(InvalidStateError):
            apply_event(asleep, SessionEvent.FELL_ASLEEP, PUT_DOWN + timedelta(minutes=20))

    def test_completed_session_is_final(self):
        done = build_nap(PUT_DOWN)
        with pytest.raises(InvalidStateError):
            apply_event(done, SessionEvent.OUT_OF_CRIB, PUT_DOWN + timedelta(hours=3))

    def test_timestamp_before_put_down(self, pending_nap):
        with pytest.raises(InvalidArgumentError):
            apply_event(pending_nap, SessionEvent.FELL_ASLEEP, PUT_DOWN - timedelta(minutes=1))

    def test_ad_hoc_wake_completes(self):
        """No crib to leave: waking up ends a car or stroller nap."""
        live = start_ad_hoc_nap(NapLocation.STROLLER, PUT_DOWN)
        done = apply_event(live, SessionEvent.WOKE_UP, PUT_DOWN + timedelta(minutes=40))
        assert done.state == SessionState.COMPLETED
        assert done.out_of_crib_at == done.woke_up_at
        assert done.sleep_minutes == 40
        with pytest.raises(InvalidStateError):
            apply_event(done, SessionEvent.OUT_OF_CRIB, PUT_DOWN + timedelta(minutes=45))


class TestComputeDurations:
    """Sleep, crib time and qualified rest."""

    def test_crib_nap(self):
        durations = compute_durations(build_nap(PUT_DOWN, sleep_minutes=80, settle=10, post_wake=20))
        assert durations.total_minutes == 110
        assert durations.sleep_minutes == 80
        assert durations.settling_minutes == 10
        assert durations.post_wake_minutes == 20
        assert durations.awake_crib_minutes == 30
        assert durations.qualified_rest_minutes == 90

    def test_in_progress_session(self, pending_nap):
        durations = compute_durations(pending_nap)
        assert durations.total_minutes is None
        assert durations.sleep_minutes is None
        assert durations.qualified_rest_minutes is None

    def test_ad_hoc_short_sleep_earns_nothing(self):
        session = build_nap(PUT_DOWN, sleep_minutes=10, is_ad_hoc=True)
        assert compute_durations(session).qualified_rest_minutes == 0

    def test_ad_hoc_half_credit(self):
        session = build_nap(PUT_DOWN, sleep_minutes=40, is_ad_hoc=True)
        durations = compute_durations(session)
        assert durations.qualified_rest_minutes == 20
        assert durations.awake_crib_minutes is None


class TestCorrectTimestamps:
    """Caregiver edits to logged times."""

    def test_recomputes_durations(self):
        nap = build_nap(PUT_DOWN, sleep_minutes=60)
        fixed = correct_timestamps(nap, woke_up_at=nap.asleep_at + timedelta(minutes=75),
                                   out_of_crib_at=nap.asleep_at + timedelta(minutes=80))
        assert fixed.sleep_minutes == 75
        assert fixed.total_minutes == 85

    def test_rejects_out_of_order(self):
        nap = build_nap(PUT_DOWN)
        with pytest.raises(InvalidArgumentError):
            correct_timestamps(nap, asleep_at=nap.out_of_crib_at + timedelta(minutes=1))

    def test_rejects_unknown_field(self):
        with pytest.raises(InvalidArgumentError):
            correct_timestamps(build_nap(PUT_DOWN), bedtime_at=PUT_DOWN)


class TestPutDown:
    """New crib sessions start PENDING at the put-down time."""

    def test_nap(self):
        nap = put_down(SessionType.NAP, PUT_DOWN, child_id=3, nap_number=2)
        assert nap.state == SessionState.PENDING
        assert nap.put_down_at == PUT_DOWN
        assert nap.created_at == PUT_DOWN
        assert nap.location == NapLocation.CRIB
        assert nap.is_ad_hoc is False

    def test_first_event_is_falling_asleep(self):
        night = put_down(SessionType.NIGHT_SLEEP, PUT_DOWN)
        asleep = apply_event(night, SessionEvent.FELL_ASLEEP, PUT_DOWN + timedelta(minutes=15))
        assert asleep.state == SessionState.ASLEEP

    def test_nap_number_range(self):
        with pytest.raises(InvalidArgumentError):
            put_down(SessionType.NAP, PUT_DOWN, nap_number=4)

    def test_night_has_no_nap_number(self):
        with pytest.raises(InvalidArgumentError):
            put_down(SessionType.NIGHT_SLEEP, PUT_DOWN, nap_number=1)

    def test_notes_length(self):
        with pytest.raises(InvalidArgumentError):
            put_down(SessionType.NAP, PUT_DOWN, notes="x" * 501)


class TestAdHocNap:
    """Naps in the car, stroller or carrier."""

    def test_live_nap_starts_asleep(self):
        nap = start_ad_hoc_nap(NapLocation.CAR, PUT_DOWN, child_id=3)
        assert nap.state == SessionState.ASLEEP
        assert nap.is_ad_hoc is True
        assert nap.nap_number is None
        assert nap.put_down_at == nap.asleep_at == PUT_DOWN

    def test_logged_after_the_fact(self):
        nap = start_ad_hoc_nap(NapLocation.CARRIER, PUT_DOWN, PUT_DOWN + timedelta(minutes=30))
        assert nap.state == SessionState.COMPLETED
        assert nap.total_minutes == 30
        assert nap.sleep_minutes == 30
        assert compute_durations(nap).qualified_rest_minutes == 15

    def test_short_nap_earns_no_credit(self):
        nap = start_ad_hoc_nap(NapLocation.CAR, PUT_DOWN, PUT_DOWN + timedelta(minutes=10))
        assert compute_durations(nap).qualified_rest_minutes == 0

    def test_wake_before_sleep(self):
        with pytest.raises(InvalidArgumentError):
            start_ad_hoc_nap(NapLocation.CAR, PUT_DOWN, PUT_DOWN - timedelta(minutes=5))

    def test_crib_is_not_ad_hoc(self):
        with pytest.raises(InvalidArgumentError):
            start_ad_hoc_nap(NapLocation.CRIB, PUT_DOWN)
