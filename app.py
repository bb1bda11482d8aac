"""
app.py
──────
Production Insight Engine: demo entry point.

Startup sequence:
  1. Configure logging
  2. Open the SQLite insight store (DATABASE_URL)
  3. Register the simulated fleet (onboarding insights) through the worker
  4. Replay simulated shift records through the worker, then sweep expiries
  5. Print the active insights per machine
"""
import pandas as pd

from config.log import configure_logging
from config.settings import settings
from src.data.simulator import demo_machines, generate_history
from src.data.store import get_store
from src.insights.engine import InsightEngine
from src.insights.worker import InsightWorker, MachineCreated, ProductionRecordSaved


def main() -> None:
    # ── 1. Logging ────────────────────────────────────────────────────────────
    configure_logging()

    # ── 2. Store + engine ─────────────────────────────────────────────────────
    store = get_store()
    engine = InsightEngine(store)
    machines = demo_machines()
    history = generate_history(seed=settings.SIMULATION_SEED, days=settings.HISTORY_DAYS, machines=machines)

    # ── 3–4. Deferred generation ──────────────────────────────────────────────
    with InsightWorker(engine) as worker:
        for machine in machines:
            worker.submit(MachineCreated(machine))
        for machine in machines:
            for record in history[machine.id]:
                worker.submit(ProductionRecordSaved(record, machine))
        worker.join()
    engine.expire_due()

    # ── 5. Report ─────────────────────────────────────────────────────────────
    frame = engine.insights_frame(days=settings.HISTORY_DAYS + 1)
    if frame.empty:
        print("No insights generated.")
        return
    with pd.option_context("display.max_rows", 100, "display.width", 160):
        active = frame[frame["status"] == "active"]
        print(active[["machine_name", "type", "severity", "confidence", "title"]].to_string(index=False))


if __name__ == "__main__":
    main()
