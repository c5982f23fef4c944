"""
Tests for the rolling-window session aggregation.
"""

import pytest
from datetime import datetime, timedelta

from naptrack.core.errors import InvalidArgumentError
from naptrack.db.models import SessionState
from naptrack.services.session_stats import aggregate, iter_window

from conftest import NOW, build_nap, build_night


class TestIterWindow:
    """Completed sessions recorded in (as_of - window, as_of]."""

    def test_excludes_old_and_future(self):
        inside = build_nap(NOW - timedelta(days=2))
        too_old = build_nap(NOW - timedelta(days=8))
        future = build_nap(NOW + timedelta(hours=1))
        assert list(iter_window([inside, too_old, future], 7, NOW)) == [inside]

    def test_window_start_is_exclusive(self):
        edge = build_nap(NOW - timedelta(days=7))
        assert list(iter_window([edge], 7, NOW)) == []

    def test_window_end_is_inclusive(self):
        edge = build_nap(NOW)
        assert list(iter_window([edge], 7, NOW)) == [edge]

    def test_skips_open_sessions(self):
        open_nap = build_nap(NOW - timedelta(hours=1), state=SessionState.ASLEEP)
        assert list(iter_window([open_nap], 7, NOW)) == []

    def test_restartable(self):
        sessions = [build_nap(NOW - timedelta(days=d)) for d in range(1, 4)]
        assert len(list(iter_window(sessions, 7, NOW))) == 3
        assert len(list(iter_window(sessions, 7, NOW))) == 3

    def test_requires_as_of(self):
        with pytest.raises(InvalidArgumentError):
            list(iter_window([], 7, None))


class TestAggregate:
    """Counts, averages and today's totals."""

    def test_empty(self):
        stats = aggregate([], as_of=NOW)
        assert stats.total_sessions == 0
        assert stats.completed_nap_count == 0
        assert stats.average_sleep_minutes == 0.0
        assert stats.todays_naps == []

    def test_good_naps_and_average(self, week_of_good_naps):
        short = build_nap(NOW - timedelta(days=1, hours=5), sleep_minutes=40)
        stats = aggregate(week_of_good_naps + [short], as_of=NOW)
        assert stats.completed_nap_count == 7
        assert stats.good_nap_count == 6
        assert stats.average_sleep_minutes == round((6 * 95 + 40) / 7, 1)

    def test_ninety_minutes_counts_as_good(self):
        stats = aggregate([build_nap(NOW - timedelta(days=1), sleep_minutes=90)], as_of=NOW)
        assert stats.good_nap_count == 1

    def test_night_counts_as_session_not_nap(self):
        night = build_night(datetime(2024, 3, 11, 19, 0), datetime(2024, 3, 12, 6, 45))
        stats = aggregate([night], as_of=NOW)
        assert stats.total_sessions == 1
        assert stats.completed_nap_count == 0

    def test_today_totals(self):
        nap1 = build_nap(datetime(2024, 3, 12, 9, 30), sleep_minutes=50, nap_number=1, post_wake=10)
        nap2 = build_nap(datetime(2024, 3, 12, 12, 30), sleep_minutes=70, nap_number=2, post_wake=0)
        yesterday = build_nap(datetime(2024, 3, 11, 12, 30), sleep_minutes=100)
        stats = aggregate([nap2, yesterday, nap1], as_of=NOW)

        assert stats.naps_completed_today == 2
        assert stats.day_sleep_minutes_today == 120
        assert [n.nap_number for n in stats.todays_naps] == [1, 2]
        assert stats.qualified_rest_minutes_today == 50 + 5 + 70

    def test_missing_nap_number_uses_order(self):
        nap = build_nap(datetime(2024, 3, 12, 10, 0), nap_number=None)
        stats = aggregate([nap], as_of=NOW)
        assert stats.todays_naps[0].nap_number == 1

    def test_requires_as_of(self):
        with pytest.raises(InvalidArgumentError):
            aggregate([])
