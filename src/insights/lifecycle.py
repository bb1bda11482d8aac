"""
src/insights/lifecycle.py
─────────────────────────
Insight state machine.

    active ──apply──▶ applied     (terminal)
    active ──dismiss─▶ dismissed  (terminal)
    active ──expiry──▶ expired    (terminal, now > expires_at)

apply / dismiss on a terminal insight are logged no-ops that return the
insight unchanged. Expiry runs lazily (before a user action and on
dashboard reads) and through the periodic sweep.
"""
from __future__ import annotations

import logging
from datetime import datetime

from config.insights import ALLOWED_TRANSITIONS, InsightStatus
from src.data.models import Insight
from src.data.store import InsightStore
from src.insights.clock import Clock, utc_now
from src.insights.errors import InsightNotFoundError, InvalidTransitionError

logger = logging.getLogger(__name__)


def can_transition(source: InsightStatus, target: InsightStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[source]


def transition(insight: Insight, target: InsightStatus, at: datetime, user_id: str | None = None) -> Insight:
    """Return a copy of `insight` moved to `target`, stamped with `at` and `user_id`."""
    if not can_transition(insight.status, target):
        raise InvalidTransitionError(insight.id, insight.status.value, target.value)
    update: dict = {"status": target, "updated_at": at}
    if target == InsightStatus.APPLIED:
        update |= {"applied_at": at, "applied_by": user_id}
    elif target == InsightStatus.DISMISSED:
        update |= {"dismissed_at": at, "dismissed_by": user_id}
    return insight.model_copy(update=update)


class LifecycleManager:
    def __init__(self, store: InsightStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def apply(self, insight_id: str, user_id: str) -> Insight:
        """User accepted the recommendation."""
        return self._act(insight_id, InsightStatus.APPLIED, user_id)

    def dismiss(self, insight_id: str, user_id: str) -> Insight:
        """User rejected the recommendation."""
        return self._act(insight_id, InsightStatus.DISMISSED, user_id)

    def expire_due(self, machine_id: str | None = None) -> int:
        """Sweep: expire every active insight past its horizon."""
        count = self._store.expire_due(self._clock(), machine_id)
        if count:
            logger.info("expired %d insight(s)%s", count, f" for machine {machine_id}" if machine_id else "")
        return count

    def _act(self, insight_id: str, target: InsightStatus, user_id: str) -> Insight:
        insight = self._store.get_insight(insight_id)
        if insight is None:
            raise InsightNotFoundError(insight_id)

        now = self._clock()
        if insight.is_expired(now):
            expired = transition(insight, InsightStatus.EXPIRED, insight.expires_at)
            if self._store.save_transition(expired):
                logger.info("insight %s expired before %s", insight_id, target.value)
            insight = self._store.get_insight(insight_id) or expired

        if insight.status != InsightStatus.ACTIVE:
            logger.info(
                "insight %s already %s; ignoring %s by %s",
                insight_id, insight.status.value, target.value, user_id,
            )
            return insight

        updated = transition(insight, target, now, user_id)
        if not self._store.save_transition(updated):
            # Another writer reached a terminal state first
            current = self._store.get_insight(insight_id)
            logger.info(
                "insight %s changed concurrently to %s; ignoring %s",
                insight_id, current.status.value if current else "?", target.value,
            )
            return current or insight

        logger.info("insight %s %s by %s", insight_id, target.value, user_id)
        return updated
