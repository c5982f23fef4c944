"""
Tests for the periodic transition week sync.
"""

import asyncio

from naptrack.services.tasks import sync_transition_weeks

from conftest import FakeChildStore, NOW, build_transition


class FailingStore(FakeChildStore):
    async def update_transition_week(self, transition):
        raise RuntimeError("connection lost")


class TestSyncTransitionWeeks:
    """Stored week catches up with elapsed days."""

    def test_updates_stale_week(self):
        store = FakeChildStore(transition=build_transition(current_week=1))
        result = asyncio.run(sync_transition_weeks(store, NOW))
        assert result == {"updated": 1, "failed": 0, "total": 1}
        assert store.transition.current_week == 2

    def test_current_week_untouched(self, standard_transition):
        store = FakeChildStore(transition=standard_transition)
        result = asyncio.run(sync_transition_weeks(store, NOW))
        assert result == {"updated": 0, "failed": 0, "total": 1}
        assert store.week_updates == []

    def test_no_transitions(self):
        result = asyncio.run(sync_transition_weeks(FakeChildStore(), NOW))
        assert result == {"updated": 0, "failed": 0, "total": 0}

    def test_failure_is_counted(self):
        store = FailingStore(transition=build_transition(current_week=1))
        result = asyncio.run(sync_transition_weeks(store, NOW))
        assert result == {"updated": 0, "failed": 1, "total": 1}
