"""
tests/test_worker.py
─────────────────────
Tests for deferred insight generation and the expiry sweeper.
"""
import time
from datetime import timedelta

from config.insights import InsightStatus
from src.data.models import ReconcilePlan
from src.data.store import InsightStore
from src.insights.engine import InsightEngine
from src.insights.errors import PersistenceError
from src.insights.worker import ExpirySweeper, InsightWorker, MachineCreated, ProductionRecordSaved


class FlakyStore(InsightStore):
    """Fails the first `failures` persist calls."""

    def __init__(self, failures: int) -> None:
        super().__init__(":memory:")
        self.failures = failures
        self.calls = 0

    def persist_insights(self, plan):
        self.calls += 1
        if self.calls <= self.failures:
            raise PersistenceError("database is locked")
        super().persist_insights(plan)


class TestInsightWorker:
    def test_processes_jobs(self, engine, store, machine, scenario_a_record):
        with InsightWorker(engine) as worker:
            worker.submit(MachineCreated(machine))
            worker.submit(ProductionRecordSaved(scenario_a_record, machine))
            worker.join()
        assert worker.processed == 2
        assert worker.dropped == 0
        assert store.count_insights(machine.id, InsightStatus.ACTIVE) == 5

    def test_retries_transient_failure(self, clock, machine, scenario_a_record):
        store = FlakyStore(failures=2)
        engine = InsightEngine(store, clock=clock)
        with InsightWorker(engine, max_retries=3) as worker:
            worker.submit(ProductionRecordSaved(scenario_a_record, machine))
            worker.join()
        assert worker.processed == 1
        assert store.calls == 3
        assert store.count_insights(machine.id) == 2

    def test_drops_after_max_retries(self, clock, machine, scenario_a_record, caplog):
        store = FlakyStore(failures=100)
        engine = InsightEngine(store, clock=clock)
        with caplog.at_level("ERROR"), InsightWorker(engine, max_retries=2) as worker:
            worker.submit(ProductionRecordSaved(scenario_a_record, machine))
            worker.join()
        assert worker.processed == 0
        assert worker.dropped == 1
        assert store.calls == 3
        assert "dropping ProductionRecordSaved" in caplog.text

    def test_unknown_job_dropped(self, engine):
        with InsightWorker(engine) as worker:
            worker.submit("not-a-job")
            worker.join()
        assert worker.dropped == 1

    def test_stop_is_safe_twice(self, engine):
        worker = InsightWorker(engine)
        worker.start()
        worker.stop()
        worker.stop()


class TestExpirySweeper:
    def test_run_once(self, engine, store, make_insight, clock):
        insight = make_insight()
        store.persist_insights(ReconcilePlan(machine_id="m-001", to_create=[insight]))
        sweeper = ExpirySweeper(engine.lifecycle, interval_s=60)
        assert sweeper.run_once() == 0
        clock.advance(days=7, minutes=1)
        assert sweeper.run_once() == 1
        assert store.get_insight(insight.id).status == InsightStatus.EXPIRED

    def test_background_loop(self, engine, store, make_insight, clock):
        insight = make_insight(expires_at=clock() - timedelta(minutes=1))
        store.persist_insights(ReconcilePlan(machine_id="m-001", to_create=[insight]))
        sweeper = ExpirySweeper(engine.lifecycle, interval_s=0.01)
        sweeper.start()
        try:
            for _ in range(200):
                if store.get_insight(insight.id).status == InsightStatus.EXPIRED:
                    break
                time.sleep(0.01)
        finally:
            sweeper.stop()
        assert store.get_insight(insight.id).status == InsightStatus.EXPIRED

    def test_store_failure_does_not_kill_sweep(self, clock):
        store = InsightStore(":memory:")
        store.close()
        sweeper = ExpirySweeper(InsightEngine(store, clock=clock).lifecycle)
        assert sweeper.run_once() == 0

