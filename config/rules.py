"""
config/rules.py
───────────────
Fixed, explainable thresholds for the insight rules.

Each rule fires when its ratio crosses `warn` and escalates severity at
the `high` / `critical` boundaries. Confidence grows linearly from the
scale floor at the threshold to the scale ceiling at `extreme`.

World-class OEE component targets (Nakajima):
  Availability ≥ 90 %, Performance ≥ 95 %, Quality ≥ 99 %  → OEE ≈ 85 %
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class ConfidenceScale:
    floor: float    # confidence right at the threshold
    ceiling: float  # confidence at (or beyond) the extreme anchor


@dataclass(frozen=True)
class OEEThresholds:
    warn: float       # overall < warn → insight
    high: float       # overall < high → high
    critical: float   # overall < critical → critical
    excellent: float  # overall > excellent → recognition pattern
    extreme: float    # overall at which confidence saturates


@dataclass(frozen=True)
class WasteThresholds:
    warn: float     # waste / good > warn → insight
    high: float     # > high → high severity
    extreme: float


@dataclass(frozen=True)
class TargetThresholds:
    warn: float      # good / target < warn → insight
    high: float      # < high → high
    critical: float  # < critical → critical
    extreme: float


@dataclass(frozen=True)
class DowntimeThresholds:
    warn: float     # downtime / planned > warn → insight
    high: float     # > high → high
    extreme: float


@dataclass(frozen=True)
class ComponentTargets:
    availability: float
    performance: float
    quality: float


CONFIDENCE = ConfidenceScale(floor=50.0, ceiling=95.0)

OEE = OEEThresholds(warn=85.0, high=65.0, critical=50.0, excellent=95.0, extreme=0.0)
WASTE = WasteThresholds(warn=0.05, high=0.15, extreme=0.30)
TARGET = TargetThresholds(warn=0.85, high=0.70, critical=0.50, extreme=0.0)
DOWNTIME = DowntimeThresholds(warn=0.15, high=0.30, extreme=0.60)

WORLD_CLASS = ComponentTargets(availability=90.0, performance=95.0, quality=99.0)

# Rough monetary estimates carried over from the plant's savings sheet
SAVINGS_PER_OEE_POINT = 100.0
SAVINGS_PER_WASTE_UNIT = 2.0
