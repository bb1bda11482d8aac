"""
src/insights/engine.py
──────────────────────
Entry points the surrounding application calls.

  on_production_record_saved(record, machine)
      compute_oee → RuleCatalog.evaluate → reconcile → persist
  on_machine_created(machine)
      onboarding drafts → persist as new active insights
  apply_insight / dismiss_insight / list_insights
      user actions and the dashboard read path

The `on_*` adapters are best-effort: any failure is logged and swallowed
so the caller's own write (saving the record, creating the machine) is
never blocked. The `process_*` methods raise, which lets the deferred
worker retry.

Reconciliation for one machine runs under a per-machine lock; the store's
unique index covers writers in other processes.
"""
from __future__ import annotations

import logging
import threading
import weakref
from datetime import timedelta

import pandas as pd

from config.settings import settings
from src.analytics.metrics import compute_oee
from src.analytics.rules import RuleCatalog
from src.data.models import (
    Insight,
    InsightFilter,
    Machine,
    MetricsContext,
    ReconcilePlan,
    ShiftRecord,
)
from src.data.store import InsightStore
from src.insights.clock import Clock, utc_now
from src.insights.lifecycle import LifecycleManager
from src.insights.reconciler import default_ttl, materialize, reconcile

logger = logging.getLogger(__name__)


class InsightEngine:
    def __init__(
        self,
        store: InsightStore,
        clock: Clock = utc_now,
        catalog: RuleCatalog | None = None,
        lang: str | None = None,
        ttl: timedelta | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._catalog = catalog or RuleCatalog()
        self._lang = lang or settings.DEFAULT_LANG
        self._ttl = ttl or default_ttl()
        self.lifecycle = LifecycleManager(store, clock)
        self._locks: weakref.WeakValueDictionary[str | None, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _machine_lock(self, machine_id: str | None) -> threading.Lock:
        # Entries live only while some caller holds the lock object
        with self._locks_guard:
            lock = self._locks.get(machine_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[machine_id] = lock
            return lock

    # ── Raising pipeline ──────────────────────────────────────────────────────

    def process_production_record(self, record: ShiftRecord, machine: Machine) -> ReconcilePlan:
        metrics = compute_oee(record, machine.capacity.per_hour)
        ctx = MetricsContext(record=record, metrics=metrics, machine=machine, lang=self._lang)
        drafts = self._catalog.evaluate(ctx)
        logger.debug(
            "record %s on %s: OEE %.2f%%, %d draft(s)",
            record.id, machine.code, metrics.overall, len(drafts),
        )

        with self._machine_lock(machine.id):
            self._store.upsert_machine(machine)
            active = self._store.load_active_insights(machine.id)
            plan = reconcile(drafts, active, self._clock(), self._ttl)
            self._store.persist_insights(plan)
        return plan

    def process_machine_created(self, machine: Machine) -> list[Insight]:
        drafts = self._catalog.evaluate_onboarding(machine, self._lang)
        with self._machine_lock(machine.id):
            now = self._clock()
            insights = [materialize(d, now, self._ttl) for d in drafts]
            self._store.upsert_machine(machine)
            self._store.persist_insights(ReconcilePlan(machine_id=machine.id, to_create=insights))
        return insights

    # ── Best-effort adapters ──────────────────────────────────────────────────

    def on_production_record_saved(self, record: ShiftRecord, machine: Machine) -> ReconcilePlan | None:
        try:
            return self.process_production_record(record, machine)
        except Exception:
            logger.exception("insight generation failed for record %s (machine %s)", record.id, machine.id)
            return None

    def on_machine_created(self, machine: Machine) -> list[Insight]:
        try:
            return self.process_machine_created(machine)
        except Exception:
            logger.exception("onboarding insights failed for machine %s", machine.id)
            return []

    # ── User actions and reads ────────────────────────────────────────────────

    def apply_insight(self, insight_id: str, user_id: str) -> Insight:
        return self.lifecycle.apply(insight_id, user_id)

    def dismiss_insight(self, insight_id: str, user_id: str) -> Insight:
        return self.lifecycle.dismiss(insight_id, user_id)

    def list_insights(
        self,
        machine_id: str | None = None,
        limit: int | None = None,
        **filters,
    ) -> list[Insight]:
        """Newest-first insights; active by default, see InsightFilter for extra filters."""
        flt = InsightFilter(machine_id=machine_id, limit=limit, **filters)
        return self._store.list_insights(flt, self._clock())

    def insights_frame(self, **filters) -> pd.DataFrame:
        """Recent insights as a DataFrame, windowed on the engine clock."""
        return self._store.get_insights_frame(self._clock(), **filters)

    def expire_due(self) -> int:
        return self.lifecycle.expire_due()
