"""
src/data/simulator.py
─────────────────────
Synthetic machines and shift records for demos and tests.

Generates:
  - A small fleet of packaging/extrusion machines
  - `days` × 3 shift records per machine (08 h shifts from 06:00 UTC)
  - Embedded degradation events (1–2 per machine) that raise downtime,
    waste or slow the line for a stretch of consecutive shifts

Design:
  - Reproducible with SIMULATION_SEED for consistent demos
  - Quantities are rounded to whole units; organic waste stays in kg
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import numpy as np
import pandas as pd

from config.insights import CapacityUnit, DowntimeReason, ShiftName
from config.settings import settings
from src.analytics.metrics import compute_oee
from src.data.models import (
    DowntimeEntry,
    Machine,
    MachineCapacity,
    MachineLocation,
    ShiftRecord,
)

SHIFT_MINUTES = 480
SHIFTS = (ShiftName.MORNING, ShiftName.AFTERNOON, ShiftName.NIGHT)

# ── Fleet ─────────────────────────────────────────────────────────────────────

FLEET: tuple[dict, ...] = (
    {"id": "m-ext-01", "name": "Extrusora 01", "code": "EXT-01", "capacity": 1_200.0,
     "unit": CapacityUnit.PCS_H, "area": "Extrusão", "line": "L1"},
    {"id": "m-emb-02", "name": "Embaladora 02", "code": "EMB-02", "capacity": 25.0,
     "unit": CapacityUnit.UNITS_MIN, "area": "Embalagem", "line": "L2"},
    {"id": "m-sel-03", "name": "Seladora 03", "code": "SEL-03", "capacity": 900.0,
     "unit": CapacityUnit.PCS_H, "area": "Embalagem", "line": "L2"},
)

# Normal operating points per machine code
BASELINES: dict[str, dict] = {
    "EXT-01": {"speed": 0.93, "film_waste": 0.020, "organic_kg": 6.0, "stops": 1.0},
    "EMB-02": {"speed": 0.90, "film_waste": 0.025, "organic_kg": 3.0, "stops": 1.5},
    "SEL-03": {"speed": 0.95, "film_waste": 0.015, "organic_kg": 2.0, "stops": 0.8},
}

_REASONS = [r.value for r in DowntimeReason]


def demo_machines() -> list[Machine]:
    return [
        Machine(
            id=spec["id"],
            name=spec["name"],
            code=spec["code"],
            capacity=MachineCapacity(value=spec["capacity"], unit=spec["unit"]),
            location=MachineLocation(plant="Planta 1", area=spec["area"], line=spec["line"]),
        )
        for spec in FLEET
    ]


@dataclass
class DegradationEvent:
    mode: str            # "downtime" | "waste" | "speed"
    start_shift: int     # index into the shift timeline
    duration_shifts: int
    severity: float      # 0..1 at the end of the event


def _plan_events(total_shifts: int, rng: np.random.Generator) -> list[DegradationEvent]:
    """Randomly plan 1–2 degradation events within the history window."""
    events: list[DegradationEvent] = []
    for _ in range(int(rng.integers(1, 3))):
        start = int(rng.integers(0, max(1, total_shifts - 3)))
        duration = min(int(rng.integers(3, 10)), total_shifts - start)
        events.append(
            DegradationEvent(
                mode=str(rng.choice(["downtime", "waste", "speed"])),
                start_shift=start,
                duration_shifts=max(1, duration),
                severity=float(rng.uniform(0.3, 0.9)),
            )
        )
    events.sort(key=lambda e: e.start_shift)
    return events


def _degradation_progress(shift_index: int, event: DegradationEvent) -> float | None:
    """Normalized progress t ∈ [0, 1] scaled by severity, or None outside the event."""
    if event.start_shift <= shift_index < event.start_shift + event.duration_shifts:
        raw = (shift_index - event.start_shift + 1) / event.duration_shifts
        return float(raw * event.severity)
    return None


def _generate_record(
    machine: Machine,
    shift_index: int,
    start: datetime,
    events: list[DegradationEvent],
    rng: np.random.Generator,
) -> ShiftRecord:
    base = BASELINES[machine.code]
    capacity = machine.capacity.per_hour

    speed = base["speed"] + rng.normal(0, 0.03)
    film_ratio = base["film_waste"] + rng.normal(0, 0.004)
    n_stops = int(rng.poisson(base["stops"]))
    stop_minutes = rng.integers(5, 35, size=n_stops).astype(float)

    for event in events:
        t = _degradation_progress(shift_index, event)
        if t is None:
            continue
        if event.mode == "downtime":
            stop_minutes = np.append(stop_minutes, 60.0 + t * 180.0)
        elif event.mode == "waste":
            film_ratio += t * 0.20
        elif event.mode == "speed":
            speed -= t * 0.45
        break  # only one active event at a time

    downtime = tuple(
        DowntimeEntry(reason=str(rng.choice(_REASONS)), duration_minutes=float(m))
        for m in stop_minutes
    )
    real_time = max(0.0, SHIFT_MINUTES - float(stop_minutes.sum()))
    total_units = real_time / 60.0 * capacity * float(np.clip(speed, 0.05, 1.1))
    film = round(total_units * float(np.clip(film_ratio, 0.0, 0.5)))
    good = max(0, round(total_units) - film)

    return ShiftRecord(
        machine_id=machine.id,
        shift=SHIFTS[shift_index % 3],
        start_time=start,
        end_time=start + timedelta(minutes=SHIFT_MINUTES),
        material_code="FLM-200",
        material_name="Filme 200 mm",
        good_production=float(good),
        waste_film=float(film),
        waste_organic=round(float(np.clip(base["organic_kg"] + rng.normal(0, 1.5), 0.0, None)), 1),
        production_target=float(round(capacity * SHIFT_MINUTES / 60.0 * 0.9)),
        planned_time=float(SHIFT_MINUTES),
        actual_time=float(SHIFT_MINUTES),
        downtime=downtime,
    )


# ── Public API ────────────────────────────────────────────────────────────────

def generate_history(
    seed: int = settings.SIMULATION_SEED,
    days: int = settings.HISTORY_DAYS,
    machines: list[Machine] | None = None,
) -> dict[str, list[ShiftRecord]]:
    """
    Generate `days` × 3 chronological shift records for each machine.
    Returns dict keyed by machine id.
    """
    rng = np.random.default_rng(seed)
    machines = machines or demo_machines()
    total_shifts = days * 3
    today = datetime.now(tz=UTC).replace(hour=6, minute=0, second=0, microsecond=0)
    first = today - timedelta(days=days)
    starts = [first + timedelta(minutes=SHIFT_MINUTES * i) for i in range(total_shifts)]

    history: dict[str, list[ShiftRecord]] = {}
    for machine in machines:
        events = _plan_events(total_shifts, rng)
        history[machine.id] = [
            _generate_record(machine, i, starts[i], events, rng) for i in range(total_shifts)
        ]
    return history


def to_dataframe(records: list[ShiftRecord], machine: Machine) -> pd.DataFrame:
    """Shift records of one machine with their OEE components as columns."""
    rows = []
    for record in records:
        metrics = compute_oee(record, machine.capacity.per_hour)
        rows.append({
            "record_id": record.id,
            "machine_id": machine.id,
            "shift": record.shift_name.value,
            "start_time": record.start_time,
            "good_production": record.good_production,
            "waste_film": record.waste_film,
            "waste_organic": record.waste_organic,
            "downtime_min": sum(e.duration_minutes for e in record.downtime),
            **metrics.model_dump(),
        })
    return pd.DataFrame(rows)
