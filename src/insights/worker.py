"""
src/insights/worker.py
──────────────────────
Deferred insight generation.

The save path enqueues an explicit job message and returns immediately;
a single daemon thread drains the queue and runs the engine's raising
pipeline. A failing job is re-queued up to `max_retries` times, then
logged and dropped. One consumer thread means jobs never reconcile
concurrently with each other.

ExpirySweeper periodically moves overdue active insights to `expired`.
"""
from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass

from config.settings import settings
from src.data.models import Machine, ShiftRecord
from src.insights.engine import InsightEngine
from src.insights.errors import PersistenceError
from src.insights.lifecycle import LifecycleManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductionRecordSaved:
    record: ShiftRecord
    machine: Machine


@dataclass(frozen=True)
class MachineCreated:
    machine: Machine


Job = ProductionRecordSaved | MachineCreated


@dataclass
class _Envelope:
    job: Job
    attempts: int = 0


class InsightWorker:
    def __init__(self, engine: InsightEngine, max_retries: int = settings.WORKER_MAX_RETRIES) -> None:
        self._engine = engine
        self._max_retries = max_retries
        self._queue: queue.Queue[_Envelope | None] = queue.Queue()
        self._thread: threading.Thread | None = None
        self.processed = 0
        self.dropped = 0

    def __enter__(self) -> InsightWorker:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name="insight-worker", daemon=True)
        self._thread.start()

    def submit(self, job: Job) -> None:
        """Enqueue a job. Never raises into the caller's write path."""
        self._queue.put(_Envelope(job))

    def join(self) -> None:
        """Block until every submitted job (retries included) has been handled."""
        self._queue.join()

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._queue.put(None)
        self._thread.join(timeout)
        self._thread = None

    def _run(self) -> None:
        while True:
            envelope = self._queue.get()
            try:
                if envelope is None:
                    return
                self._handle(envelope)
            finally:
                self._queue.task_done()

    def _handle(self, envelope: _Envelope) -> None:
        job = envelope.job
        try:
            if isinstance(job, ProductionRecordSaved):
                self._engine.process_production_record(job.record, job.machine)
            elif isinstance(job, MachineCreated):
                self._engine.process_machine_created(job.machine)
            else:
                logger.error("unknown job type %s; dropping", type(job).__name__)
                self.dropped += 1
                return
        except Exception:
            envelope.attempts += 1
            if envelope.attempts > self._max_retries:
                logger.error(
                    "dropping %s after %d attempts", type(job).__name__, envelope.attempts, exc_info=True
                )
                self.dropped += 1
            else:
                logger.warning(
                    "%s failed (attempt %d/%d); re-queued",
                    type(job).__name__, envelope.attempts, self._max_retries + 1, exc_info=True,
                )
                self._queue.put(envelope)
            return
        self.processed += 1


class ExpirySweeper:
    def __init__(self, lifecycle: LifecycleManager, interval_s: float = settings.SWEEP_INTERVAL_S) -> None:
        self._lifecycle = lifecycle
        self._interval = interval_s
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="insight-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self) -> int:
        try:
            return self._lifecycle.expire_due()
        except PersistenceError:
            logger.exception("expiry sweep failed; will retry next interval")
            return 0

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            self.run_once()
