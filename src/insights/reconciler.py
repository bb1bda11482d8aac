"""
src/insights/reconciler.py
──────────────────────────
Turns rule drafts into a persistence plan against the machine's current
active insights.

Invariant: at most one `active` insight per (machine_id, type).

  draft matches a live active insight  → refresh in place
                                         (severity, title, description,
                                          recommendation, confidence, metrics,
                                          data, expires_at, updated_at)
  no live match                        → create (status active,
                                          expires now + TTL, none for onboarding)
  active insight already past expiry   → expire

Several drafts for the same key in one batch collapse to the most severe
(ties: higher confidence, then first emitted). The reconciler is pure and
never touches storage.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

from config.insights import SEVERITY_ORDER, InsightStatus, InsightType
from config.settings import settings
from src.data.models import Insight, InsightDraft, InsightRefresh, ReconcilePlan

logger = logging.getLogger(__name__)

Key = tuple[str | None, InsightType]


def default_ttl() -> timedelta:
    return timedelta(days=settings.INSIGHT_TTL_DAYS)


def _rank(draft: InsightDraft) -> tuple[int, float]:
    return (SEVERITY_ORDER[draft.severity], draft.confidence)


def collapse_drafts(drafts: Iterable[InsightDraft]) -> list[InsightDraft]:
    """Keep one draft per (machine_id, type), preserving first-seen order."""
    best: dict[Key, InsightDraft] = {}
    for draft in drafts:
        current = best.get(draft.key)
        if current is None or _rank(draft) > _rank(current):
            if current is not None:
                logger.debug("draft %s supersedes %s for %s", draft.rule, current.rule, draft.key)
            best[draft.key] = draft
    return list(best.values())


def materialize(draft: InsightDraft, now: datetime, ttl: timedelta | None = None) -> Insight:
    """Build a new active Insight from a draft."""
    ttl = ttl or default_ttl()
    return Insight(
        machine_id=draft.machine_id,
        type=draft.type,
        severity=draft.severity,
        title=draft.title,
        description=draft.description,
        recommendation=draft.recommendation,
        confidence=draft.confidence,
        status=InsightStatus.ACTIVE,
        created_at=now,
        updated_at=now,
        expires_at=None if draft.onboarding else now + ttl,
        metrics=draft.metrics,
        data={**draft.data, "rule": draft.rule},
        tags=list(draft.tags),
    )


def reconcile(
    drafts: Iterable[InsightDraft],
    active_for_machine: Iterable[Insight],
    now: datetime,
    ttl: timedelta | None = None,
) -> ReconcilePlan:
    """
    Decide create / refresh / expire for one machine.

    Args:
        drafts: Output of the rule catalog
        active_for_machine: Currently stored active insights for the machine
        now: Reconciliation timestamp (from the clock collaborator)
        ttl: Expiry horizon for created and refreshed insights

    Returns:
        ReconcilePlan for the persistence collaborator
    """
    ttl = ttl or default_ttl()
    collapsed = collapse_drafts(drafts)
    plan = ReconcilePlan(machine_id=collapsed[0].machine_id if collapsed else None)

    live: dict[Key, Insight] = {}
    for insight in active_for_machine:
        if insight.status != InsightStatus.ACTIVE:
            continue
        if insight.is_expired(now):
            plan.to_expire.append(insight.id)
            continue
        current = live.get(insight.key)
        if current is None or insight.updated_at > current.updated_at:
            live[insight.key] = insight

    for draft in collapsed:
        existing = live.get(draft.key)
        if existing is None:
            plan.to_create.append(materialize(draft, now, ttl))
            continue
        plan.to_refresh.append(
            InsightRefresh(
                insight_id=existing.id,
                severity=draft.severity,
                title=draft.title,
                description=draft.description,
                recommendation=draft.recommendation,
                confidence=draft.confidence,
                metrics=draft.metrics,
                data={**draft.data, "rule": draft.rule},
                expires_at=now + ttl,
                updated_at=now,
            )
        )

    logger.debug(
        "reconciled machine %s: %d create, %d refresh, %d expire",
        plan.machine_id, len(plan.to_create), len(plan.to_refresh), len(plan.to_expire),
    )
    return plan
