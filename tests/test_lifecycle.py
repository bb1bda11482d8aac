"""
tests/test_lifecycle.py
────────────────────────
Tests for the insight state machine.
"""

import pytest

from config.insights import InsightStatus
from src.data.models import ReconcilePlan
from src.insights.errors import InsightNotFoundError, InvalidTransitionError
from src.insights.lifecycle import LifecycleManager, can_transition, transition


@pytest.fixture
def lifecycle(store, clock):
    return LifecycleManager(store, clock)


@pytest.fixture
def stored(store, make_insight):
    insight = make_insight()
    store.persist_insights(ReconcilePlan(machine_id=insight.machine_id, to_create=[insight]))
    return insight


class TestTransition:
    def test_active_can_go_anywhere_terminal(self):
        for target in (InsightStatus.APPLIED, InsightStatus.DISMISSED, InsightStatus.EXPIRED):
            assert can_transition(InsightStatus.ACTIVE, target)

    def test_terminal_states_are_final(self):
        assert not can_transition(InsightStatus.APPLIED, InsightStatus.ACTIVE)
        assert not can_transition(InsightStatus.EXPIRED, InsightStatus.APPLIED)
        assert not can_transition(InsightStatus.DISMISSED, InsightStatus.APPLIED)

    def test_applied_stamps_user(self, make_insight, now):
        moved = transition(make_insight(), InsightStatus.APPLIED, now, "u-1")
        assert moved.applied_at == now
        assert moved.applied_by == "u-1"
        assert moved.dismissed_at is None

    def test_illegal_raises(self, make_insight, now):
        with pytest.raises(InvalidTransitionError):
            transition(make_insight(status=InsightStatus.APPLIED), InsightStatus.DISMISSED, now)


class TestLifecycleManager:
    def test_apply(self, lifecycle, store, stored, clock):
        clock.advance(minutes=5)
        result = lifecycle.apply(stored.id, "u-1")
        assert result.status == InsightStatus.APPLIED
        assert result.applied_by == "u-1"
        persisted = store.get_insight(stored.id)
        assert persisted.status == InsightStatus.APPLIED
        assert persisted.applied_at == clock()

    def test_dismiss(self, lifecycle, store, stored):
        result = lifecycle.dismiss(stored.id, "u-2")
        assert result.status == InsightStatus.DISMISSED
        assert store.get_insight(stored.id).dismissed_by == "u-2"

    def test_second_action_is_noop(self, lifecycle, store, stored):
        lifecycle.apply(stored.id, "u-1")
        again = lifecycle.dismiss(stored.id, "u-2")
        assert again.status == InsightStatus.APPLIED
        assert again.dismissed_by is None
        assert store.get_insight(stored.id).applied_by == "u-1"

    def test_apply_twice_is_idempotent(self, lifecycle, stored):
        first = lifecycle.apply(stored.id, "u-1")
        second = lifecycle.apply(stored.id, "u-3")
        assert second.applied_by == first.applied_by == "u-1"

    def test_unknown_insight(self, lifecycle):
        with pytest.raises(InsightNotFoundError) as exc_info:
            lifecycle.apply("missing", "u-1")
        assert exc_info.value.insight_id == "missing"

    def test_overdue_insight_expires_instead_of_applying(self, lifecycle, store, stored, clock):
        clock.advance(days=8)
        result = lifecycle.apply(stored.id, "u-1")
        assert result.status == InsightStatus.EXPIRED
        assert result.applied_at is None
        assert store.get_insight(stored.id).status == InsightStatus.EXPIRED

    def test_sweep(self, lifecycle, store, stored, clock):
        assert lifecycle.expire_due() == 0
        clock.advance(days=7, seconds=1)
        assert lifecycle.expire_due() == 1
        assert store.get_insight(stored.id).status == InsightStatus.EXPIRED

    def test_sweep_leaves_open_ended_insights(self, lifecycle, store, make_insight, clock):
        onboarding = make_insight(type="setup", expires_at=None)
        store.persist_insights(ReconcilePlan(machine_id="m-001", to_create=[onboarding]))
        clock.advance(days=365)
        assert lifecycle.expire_due() == 0
        assert store.get_insight(onboarding.id).status == InsightStatus.ACTIVE

    def test_concurrent_terminal_write_wins(self, lifecycle, store, stored, now):
        # Another process dismisses between our read and our write
        store.save_transition(transition(stored, InsightStatus.DISMISSED, now, "other"))
        assert store.save_transition(transition(stored, InsightStatus.APPLIED, now, "u-1")) is False
        result = lifecycle.apply(stored.id, "u-1")
        assert result.status == InsightStatus.DISMISSED
        assert result.dismissed_by == "other"

    def test_expired_timestamp_is_expiry_time(self, lifecycle, store, stored, clock):
        clock.advance(days=30)
        lifecycle.dismiss(stored.id, "u-1")
        assert store.get_insight(stored.id).updated_at == stored.expires_at
