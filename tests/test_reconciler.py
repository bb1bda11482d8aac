"""
tests/test_reconciler.py
─────────────────────────
Tests for draft → create / refresh / expire planning.
"""
from datetime import timedelta

import pytest

from config.insights import InsightSeverity, InsightStatus, InsightType
from src.data.models import InsightDraft
from src.insights.reconciler import collapse_drafts, materialize, reconcile


@pytest.fixture
def make_draft():
    def _make(**overrides):
        fields = {
            "machine_id": "m-001",
            "type": InsightType.OPTIMIZATION,
            "severity": InsightSeverity.MEDIUM,
            "title": "OEE abaixo do ideal",
            "description": "nova descrição",
            "recommendation": "nova recomendação",
            "confidence": 80.0,
            "rule": "low_oee",
        }
        fields.update(overrides)
        return InsightDraft(**fields)
    return _make


class TestCollapseDrafts:
    def test_most_severe_wins(self, make_draft):
        waste = make_draft(rule="waste", severity=InsightSeverity.MEDIUM, confidence=90.0)
        low_oee = make_draft(rule="low_oee", severity=InsightSeverity.CRITICAL, confidence=60.0)
        assert [d.rule for d in collapse_drafts([waste, low_oee])] == ["low_oee"]

    def test_confidence_breaks_ties(self, make_draft):
        a = make_draft(rule="a", confidence=60.0)
        b = make_draft(rule="b", confidence=70.0)
        assert collapse_drafts([a, b])[0].rule == "b"

    def test_first_seen_kept_on_full_tie(self, make_draft):
        a = make_draft(rule="a")
        b = make_draft(rule="b")
        assert collapse_drafts([a, b])[0].rule == "a"

    def test_distinct_types_kept_in_order(self, make_draft):
        drafts = [make_draft(type=InsightType.PREDICTION), make_draft(type=InsightType.ANOMALY)]
        assert [d.type for d in collapse_drafts(drafts)] == [InsightType.PREDICTION, InsightType.ANOMALY]


class TestMaterialize:
    def test_new_active_insight(self, make_draft, now):
        insight = materialize(make_draft(), now, timedelta(days=7))
        assert insight.status == InsightStatus.ACTIVE
        assert insight.created_at == insight.updated_at == now
        assert insight.expires_at == now + timedelta(days=7)
        assert insight.data["rule"] == "low_oee"

    def test_onboarding_never_expires(self, make_draft, now):
        insight = materialize(make_draft(type=InsightType.SETUP, onboarding=True), now)
        assert insight.expires_at is None


class TestReconcile:
    def test_no_active_creates(self, make_draft, now):
        plan = reconcile([make_draft()], [], now)
        assert len(plan.to_create) == 1
        assert plan.to_refresh == []
        assert plan.machine_id == "m-001"

    def test_matching_active_refreshes(self, make_draft, make_insight, now):
        existing = make_insight()
        later = now + timedelta(hours=1)
        draft = make_draft(
            confidence=88.0,
            severity=InsightSeverity.CRITICAL,
            title="OEE crítico",
            data={"worst_component": "availability"},
        )
        plan = reconcile([draft], [existing], later, timedelta(days=7))
        assert plan.to_create == []
        refresh = plan.to_refresh[0]
        assert refresh.insight_id == existing.id
        assert refresh.description == "nova descrição"
        assert refresh.confidence == 88.0
        assert refresh.severity == InsightSeverity.CRITICAL
        assert refresh.title == "OEE crítico"
        assert refresh.data == {"worst_component": "availability", "rule": "low_oee"}
        assert refresh.updated_at == later
        assert refresh.expires_at == later + timedelta(days=7)

    def test_other_type_does_not_match(self, make_draft, make_insight, now):
        plan = reconcile([make_draft(type=InsightType.PREDICTION)], [make_insight()], now)
        assert len(plan.to_create) == 1
        assert plan.to_refresh == []

    def test_expired_active_is_expired_and_replaced(self, make_draft, make_insight, now):
        stale = make_insight(expires_at=now - timedelta(minutes=1))
        plan = reconcile([make_draft()], [stale], now)
        assert plan.to_expire == [stale.id]
        assert len(plan.to_create) == 1

    def test_live_at_exact_expiry(self, make_draft, make_insight, now):
        edge = make_insight(expires_at=now)
        plan = reconcile([make_draft()], [edge], now)
        assert plan.to_expire == []
        assert [r.insight_id for r in plan.to_refresh] == [edge.id]

    def test_expiry_without_drafts(self, make_insight, now):
        stale = make_insight(expires_at=now - timedelta(minutes=1))
        plan = reconcile([], [stale], now)
        assert plan.to_expire == [stale.id]
        assert not plan.is_empty

    def test_terminal_insights_ignored(self, make_draft, make_insight, now):
        applied = make_insight(status=InsightStatus.APPLIED)
        plan = reconcile([make_draft()], [applied], now)
        assert len(plan.to_create) == 1

    def test_no_drafts_no_work(self, make_insight, now):
        assert reconcile([], [make_insight()], now).is_empty

    def test_one_create_per_key(self, make_draft, now):
        drafts = [make_draft(rule="waste"), make_draft(rule="low_oee", severity=InsightSeverity.HIGH)]
        plan = reconcile(drafts, [], now)
        assert len(plan.to_create) == 1
        assert plan.to_create[0].severity == InsightSeverity.HIGH
