"""
config/insights.py
──────────────────
Insight types, severity levels, lifecycle states and the machine /
shift vocabularies shared by the engine.
"""

from enum import Enum


class InsightType(str, Enum):
    SETUP = "setup"
    MONITORING = "monitoring"
    MAINTENANCE = "maintenance"
    OPTIMIZATION = "optimization"
    PATTERN = "pattern"
    ANOMALY = "anomaly"
    PREDICTION = "prediction"


class InsightSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class InsightStatus(str, Enum):
    ACTIVE = "active"
    APPLIED = "applied"
    DISMISSED = "dismissed"
    EXPIRED = "expired"


class MachineStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"
    STOPPED = "stopped"


class CapacityUnit(str, Enum):
    PCS_H = "pcs/h"
    KG_H = "kg/h"
    T_H = "t/h"
    L_H = "l/h"
    M3_H = "m³/h"
    UNITS_MIN = "unidades/min"
    OTHER = "outros"


class ShiftName(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    NIGHT = "night"


# Known downtime reasons. The set is open: records may carry other codes.
class DowntimeReason(str, Enum):
    EQUIPMENT_BREAKDOWN = "quebra-equipamento"
    MATERIAL_SHORTAGE = "falta-material"
    OPERATOR_SHORTAGE = "falta-operador"
    QUALITY_PROBLEM = "problema-qualidade"
    CLEANING = "limpeza"
    SETUP = "setup"
    MOLD_CHANGE = "troca-molde"
    PROCESS_ADJUSTMENT = "ajuste-processo"
    PREVENTIVE_MAINTENANCE = "manutencao-preventiva"
    CORRECTIVE_MAINTENANCE = "manutencao-corretiva"
    OTHER = "outros"


# Multiplier converting a capacity value into units per hour
CAPACITY_PER_HOUR_FACTOR: dict[str, float] = {
    CapacityUnit.PCS_H: 1.0,
    CapacityUnit.KG_H: 1.0,
    CapacityUnit.T_H: 1.0,
    CapacityUnit.L_H: 1.0,
    CapacityUnit.M3_H: 1.0,
    CapacityUnit.UNITS_MIN: 60.0,
    CapacityUnit.OTHER: 1.0,
}

# Severity ordering for sorting (higher = more severe)
SEVERITY_ORDER: dict[str, int] = {
    InsightSeverity.CRITICAL: 4,
    InsightSeverity.HIGH: 3,
    InsightSeverity.MEDIUM: 2,
    InsightSeverity.LOW: 1,
}

TERMINAL_STATUSES = frozenset(
    {InsightStatus.APPLIED, InsightStatus.DISMISSED, InsightStatus.EXPIRED}
)

# Legal lifecycle transitions: active is the only non-terminal state
ALLOWED_TRANSITIONS: dict[InsightStatus, frozenset[InsightStatus]] = {
    InsightStatus.ACTIVE: TERMINAL_STATUSES,
    InsightStatus.APPLIED: frozenset(),
    InsightStatus.DISMISSED: frozenset(),
    InsightStatus.EXPIRED: frozenset(),
}

MAX_INSIGHTS_LIST = 100
