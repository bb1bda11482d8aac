"""
src/data/models.py
──────────────────
Pydantic v2 data models for machines, shift records, OEE metrics and
insights.

Shift quantities are deliberately unbounded: manual entry can produce
negative or inconsistent values, which the metrics calculator clamps
instead of rejecting.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from config.insights import (
    CAPACITY_PER_HOUR_FACTOR,
    CapacityUnit,
    InsightSeverity,
    InsightStatus,
    InsightType,
    MachineStatus,
    ShiftName,
)
from config.settings import settings


def _new_id() -> str:
    return str(uuid.uuid4())


def detect_shift(start: datetime) -> ShiftName:
    """Shift from the start hour: 06–14 morning, 14–22 afternoon, else night."""
    if 6 <= start.hour < 14:
        return ShiftName.MORNING
    if 14 <= start.hour < 22:
        return ShiftName.AFTERNOON
    return ShiftName.NIGHT


# ── Machines ──────────────────────────────────────────────────────────────────

class MachineCapacity(BaseModel):
    value: float
    unit: CapacityUnit = CapacityUnit.PCS_H

    @property
    def per_hour(self) -> float:
        return self.value * CAPACITY_PER_HOUR_FACTOR.get(self.unit, 1.0)


class MachineLocation(BaseModel):
    plant: str = ""
    area: str = ""
    line: str | None = None


class Machine(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    code: str
    capacity: MachineCapacity
    status: MachineStatus = MachineStatus.ACTIVE
    location: MachineLocation = Field(default_factory=MachineLocation)


# ── Shift records ─────────────────────────────────────────────────────────────

class DowntimeEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: str
    duration_minutes: float
    description: str | None = None


class ShiftRecord(BaseModel):
    """One operator-submitted production report. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    machine_id: str
    shift: ShiftName | None = None
    start_time: datetime
    end_time: datetime
    material_code: str = ""
    material_name: str = ""
    good_production: float = 0.0
    waste_film: float = 0.0
    waste_organic: float = 0.0      # mass, not a unit count
    production_target: float = 0.0
    planned_time: float = 480.0     # minutes
    actual_time: float | None = None
    downtime: tuple[DowntimeEntry, ...] = ()

    @model_validator(mode="after")
    def _check_window(self) -> ShiftRecord:
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def shift_name(self) -> ShiftName:
        return self.shift or detect_shift(self.start_time)

    @property
    def efficiency(self) -> float:
        """Good production against target, in percent (0 when no target)."""
        if self.production_target > 0:
            return round(self.good_production / self.production_target * 100.0, 2)
        return 0.0

    @property
    def waste_rate(self) -> float:
        """Film + organic waste over good + waste, in percent."""
        waste = self.waste_film + self.waste_organic
        total = self.good_production + waste
        if total > 0:
            return round(waste / total * 100.0, 2)
        return 0.0


# ── Metrics ───────────────────────────────────────────────────────────────────

class OEEMetrics(BaseModel):
    """
    Percentages, unclamped. `overall == availability * performance * quality / 10000`
    up to rounding. Use `clamped()` for display-facing consumers.
    """

    model_config = ConfigDict(frozen=True)

    availability: float
    performance: float
    quality: float
    overall: float

    def clamped(self) -> OEEMetrics:
        from src.analytics.metrics import clamp_for_display

        return clamp_for_display(self)


class MetricsContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    record: ShiftRecord
    metrics: OEEMetrics
    machine: Machine
    lang: str = settings.DEFAULT_LANG


# ── Insights ──────────────────────────────────────────────────────────────────

class MetricsImpact(BaseModel):
    impact_oee: float | None = Field(default=None, ge=-100.0, le=100.0)
    impact_availability: float | None = Field(default=None, ge=-100.0, le=100.0)
    impact_performance: float | None = Field(default=None, ge=-100.0, le=100.0)
    impact_quality: float | None = Field(default=None, ge=-100.0, le=100.0)
    estimated_savings: float | None = Field(default=None, ge=0.0)


class InsightDraft(BaseModel):
    """A candidate insight emitted by a rule, before reconciliation."""

    machine_id: str | None
    type: InsightType
    severity: InsightSeverity
    title: str
    description: str
    recommendation: str
    confidence: float = Field(ge=0.0, le=100.0)
    rule: str
    onboarding: bool = False
    metrics: MetricsImpact | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)

    @property
    def key(self) -> tuple[str | None, InsightType]:
        return (self.machine_id, self.type)


class Insight(BaseModel):
    id: str = Field(default_factory=_new_id)
    machine_id: str | None = None
    type: InsightType
    severity: InsightSeverity
    title: str
    description: str
    recommendation: str
    confidence: float = Field(ge=0.0, le=100.0)
    status: InsightStatus = InsightStatus.ACTIVE
    created_at: datetime
    updated_at: datetime
    expires_at: datetime | None = None
    applied_at: datetime | None = None
    applied_by: str | None = None
    dismissed_at: datetime | None = None
    dismissed_by: str | None = None
    metrics: MetricsImpact | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)

    @property
    def key(self) -> tuple[str | None, InsightType]:
        return (self.machine_id, self.type)

    def is_expired(self, now: datetime) -> bool:
        """True when still active but past its expiry horizon."""
        return (
            self.status == InsightStatus.ACTIVE
            and self.expires_at is not None
            and now > self.expires_at
        )


class InsightRefresh(BaseModel):
    """In-place update of an active insight that a new draft re-confirmed."""

    insight_id: str
    severity: InsightSeverity
    title: str
    description: str
    recommendation: str
    confidence: float = Field(ge=0.0, le=100.0)
    metrics: MetricsImpact | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    expires_at: datetime | None
    updated_at: datetime


class ReconcilePlan(BaseModel):
    machine_id: str | None = None
    to_create: list[Insight] = Field(default_factory=list)
    to_refresh: list[InsightRefresh] = Field(default_factory=list)
    to_expire: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_create or self.to_refresh or self.to_expire)


class InsightFilter(BaseModel):
    machine_id: str | None = None
    type: InsightType | None = None
    severity: InsightSeverity | None = None
    status: InsightStatus | None = InsightStatus.ACTIVE
    limit: int | None = Field(default=None, ge=1)
