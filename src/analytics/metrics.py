"""
src/analytics/metrics.py
────────────────────────
OEE metrics for a single shift record.

  real_time       = max(0, planned - Σ downtime)            [min]
  theoretical     = real_time / 60 × capacity_per_hour      [units]
  total           = good + film waste                       [units]

  Availability    = real_time / planned        × 100
  Performance     = total / theoretical        × 100
  Quality         = good / total               × 100
  OEE             = A × P × Q / 10 000

Organic waste is a mass and stays out of the unit-based quality ratio.

The calculator is total: negative quantities and non-positive capacity
are clamped to zero (logged at debug level) and every ratio guards its
denominator, so it never raises on a well-formed record.
"""
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, localcontext

import numpy as np

from src.data.models import OEEMetrics, ShiftRecord

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")


def round_half_up(value: float, places: Decimal = _CENTS) -> float:
    """Round to two decimals with half-up semantics (2.345 → 2.35)."""
    if not np.isfinite(value):
        return float(value)
    exact = Decimal(repr(value))
    with localcontext() as ctx:
        # Enough digits for the integer part plus the quantized fraction
        ctx.prec = max(ctx.prec, exact.adjusted() + 4)
        return float(exact.quantize(places, rounding=ROUND_HALF_UP))


def _non_negative(name: str, value: float, record_id: str) -> float:
    if value < 0:
        logger.debug("record %s: clamping negative %s=%s to 0", record_id, name, value)
        return 0.0
    return float(value)


def total_downtime(record: ShiftRecord) -> float:
    """Sum of downtime minutes, each entry clamped at zero."""
    return sum(
        _non_negative("downtime", entry.duration_minutes, record.id)
        for entry in record.downtime
    )


def compute_oee(record: ShiftRecord, capacity_per_hour: float) -> OEEMetrics:
    """
    Derive availability / performance / quality / overall for one shift.

    Args:
        record: Submitted shift record
        capacity_per_hour: Machine nominal capacity in units per hour

    Returns:
        Unclamped OEEMetrics, every field rounded half-up to 2 decimals
    """
    planned = _non_negative("planned_time", record.planned_time, record.id)
    good = _non_negative("good_production", record.good_production, record.id)
    film = _non_negative("waste_film", record.waste_film, record.id)
    capacity = _non_negative("capacity_per_hour", capacity_per_hour, record.id)

    downtime = total_downtime(record)
    real_time = max(0.0, planned - downtime)
    theoretical = (real_time / 60.0) * capacity
    total = good + film

    availability = (real_time / planned) * 100.0 if planned > 0 else 0.0
    performance = (total / theoretical) * 100.0 if theoretical > 0 else 0.0
    quality = (good / total) * 100.0 if total > 0 else 0.0
    overall = (availability / 100.0) * (performance / 100.0) * (quality / 100.0) * 100.0

    return OEEMetrics(
        availability=round_half_up(availability),
        performance=round_half_up(performance),
        quality=round_half_up(quality),
        overall=round_half_up(overall),
    )


def clamp_for_display(metrics: OEEMetrics) -> OEEMetrics:
    """Clip every component to [0, 100] for dashboards and reports."""
    return OEEMetrics(
        availability=float(np.clip(metrics.availability, 0.0, 100.0)),
        performance=float(np.clip(metrics.performance, 0.0, 100.0)),
        quality=float(np.clip(metrics.quality, 0.0, 100.0)),
        overall=float(np.clip(metrics.overall, 0.0, 100.0)),
    )
