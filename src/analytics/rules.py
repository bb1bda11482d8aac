"""
src/analytics/rules.py
──────────────────────
Insight rule catalog.

A rule is a plain function `(MetricsContext) -> InsightDraft | None`.
Rules are independent of each other and of their order; the catalog
maps them over a context and drops the `None`s. A rule that raises only
loses its own contribution.

Metric rules (thresholds in config/rules.py):

  low_oee        overall < 85             maintenance | optimization
  waste          (film+organic)/good > 5% optimization
  target_miss    good/target < 85%        prediction
  downtime       downtime/planned > 15%   anomaly
  excellent      overall > 95             pattern (recognition)

Onboarding rule set: three fixed drafts (setup, monitoring, maintenance)
emitted when a machine is created.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable

import numpy as np

from config import rules as thresholds
from config.insights import InsightSeverity, InsightType
from config.settings import settings
from src.analytics.metrics import total_downtime
from src.data.models import InsightDraft, Machine, MetricsContext, MetricsImpact, OEEMetrics
from src.i18n.translator import t

logger = logging.getLogger(__name__)

Rule = Callable[[MetricsContext], InsightDraft | None]


# ── Helpers ───────────────────────────────────────────────────────────────────

def scale_confidence(value: float, threshold: float, extreme: float) -> float:
    """
    Linear confidence from the scale floor at `threshold` to the ceiling
    at `extreme`, clipped to [floor, ceiling]. Works for rules that fire
    above their threshold (extreme > threshold) and below it.
    """
    floor, ceiling = thresholds.CONFIDENCE.floor, thresholds.CONFIDENCE.ceiling
    span = extreme - threshold
    if span == 0:
        return ceiling
    progress = (value - threshold) / span
    return round(float(np.clip(floor + progress * (ceiling - floor), floor, ceiling)), 1)


def _impact(value: float) -> float:
    return round(float(np.clip(value, -100.0, 100.0)), 2)


def _fmt(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def weakest_component(metrics: OEEMetrics) -> str:
    """OEE component furthest below its world-class target."""
    gaps = {
        "availability": thresholds.WORLD_CLASS.availability - metrics.availability,
        "performance": thresholds.WORLD_CLASS.performance - metrics.performance,
        "quality": thresholds.WORLD_CLASS.quality - metrics.quality,
    }
    return max(gaps, key=gaps.__getitem__)


# ── Metric rules ──────────────────────────────────────────────────────────────

def low_oee_rule(ctx: MetricsContext) -> InsightDraft | None:
    m = ctx.metrics
    overall = m.overall
    if overall >= thresholds.OEE.warn:
        return None

    if overall < thresholds.OEE.critical:
        severity = InsightSeverity.CRITICAL
    elif overall < thresholds.OEE.high:
        severity = InsightSeverity.HIGH
    else:
        severity = InsightSeverity.MEDIUM

    worst = weakest_component(m)
    insight_type = InsightType.MAINTENANCE if worst == "availability" else InsightType.OPTIMIZATION
    gap = thresholds.OEE.warn - overall

    return InsightDraft(
        machine_id=ctx.machine.id,
        type=insight_type,
        severity=severity,
        title=t("insights.low_oee.title", ctx.lang, machine=ctx.machine.name),
        description=t(
            f"insights.low_oee.description.{worst}",
            ctx.lang,
            overall=_fmt(overall),
            value=_fmt(getattr(m, worst)),
        ),
        recommendation=t(f"insights.low_oee.recommendation.{worst}", ctx.lang),
        confidence=scale_confidence(overall, thresholds.OEE.warn, thresholds.OEE.extreme),
        rule="low_oee",
        metrics=MetricsImpact(
            impact_oee=_impact(gap),
            estimated_savings=round(gap * thresholds.SAVINGS_PER_OEE_POINT, 2),
        ),
        data={
            "oee": m.model_dump(),
            "worst_component": worst,
            "record_id": ctx.record.id,
            "shift": ctx.record.shift_name.value,
        },
        tags=["oee", "performance", worst],
    )


def waste_rule(ctx: MetricsContext) -> InsightDraft | None:
    record = ctx.record
    film = max(0.0, record.waste_film)
    organic = max(0.0, record.waste_organic)
    total_waste = film + organic
    ratio = total_waste / max(1.0, record.good_production)
    if ratio <= thresholds.WASTE.warn:
        return None

    severity = InsightSeverity.HIGH if ratio > thresholds.WASTE.high else InsightSeverity.MEDIUM
    return InsightDraft(
        machine_id=ctx.machine.id,
        type=InsightType.OPTIMIZATION,
        severity=severity,
        title=t("insights.waste.title", ctx.lang, machine=ctx.machine.name),
        description=t(
            "insights.waste.description",
            ctx.lang,
            ratio=f"{ratio * 100:.1f}",
            total=_fmt(total_waste),
            film=_fmt(film),
            organic=_fmt(organic),
        ),
        recommendation=t("insights.waste.recommendation", ctx.lang),
        confidence=scale_confidence(ratio, thresholds.WASTE.warn, thresholds.WASTE.extreme),
        rule="waste",
        metrics=MetricsImpact(
            impact_quality=_impact(ratio * 100.0),
            estimated_savings=round(total_waste * thresholds.SAVINGS_PER_WASTE_UNIT, 2),
        ),
        data={
            "waste_percentage": round(ratio * 100.0, 2),
            "film_waste": film,
            "organic_waste": organic,
            "record_id": record.id,
            "shift": record.shift_name.value,
        },
        tags=["waste", "quality", "cost"],
    )


def target_miss_rule(ctx: MetricsContext) -> InsightDraft | None:
    record = ctx.record
    # No target set: nothing to miss
    if record.production_target <= 0:
        return None
    achievement = max(0.0, record.good_production) / max(1.0, record.production_target)
    if achievement >= thresholds.TARGET.warn:
        return None

    if achievement < thresholds.TARGET.critical:
        severity = InsightSeverity.CRITICAL
    elif achievement < thresholds.TARGET.high:
        severity = InsightSeverity.HIGH
    else:
        severity = InsightSeverity.MEDIUM

    return InsightDraft(
        machine_id=ctx.machine.id,
        type=InsightType.PREDICTION,
        severity=severity,
        title=t("insights.target.title", ctx.lang, machine=ctx.machine.name),
        description=t(
            "insights.target.description",
            ctx.lang,
            achievement=f"{achievement * 100:.1f}",
            good=_fmt(record.good_production),
            target=_fmt(record.production_target),
        ),
        recommendation=t("insights.target.recommendation", ctx.lang),
        confidence=scale_confidence(achievement, thresholds.TARGET.warn, thresholds.TARGET.extreme),
        rule="target_miss",
        metrics=MetricsImpact(impact_performance=_impact((1.0 - achievement) * 100.0)),
        data={
            "achieved": record.good_production,
            "target": record.production_target,
            "achievement_percentage": round(achievement * 100.0, 2),
            "record_id": record.id,
            "shift": record.shift_name.value,
        },
        tags=["target", "production", "planning"],
    )


def downtime_rule(ctx: MetricsContext) -> InsightDraft | None:
    record = ctx.record
    downtime = total_downtime(record)
    planned = max(0.0, record.planned_time)
    ratio = downtime / max(1.0, planned)
    if ratio <= thresholds.DOWNTIME.warn:
        return None

    by_reason: dict[str, float] = defaultdict(float)
    for entry in record.downtime:
        by_reason[entry.reason] += max(0.0, entry.duration_minutes)
    main_reason = max(by_reason, key=by_reason.__getitem__) if by_reason else "outros"

    severity = InsightSeverity.HIGH if ratio > thresholds.DOWNTIME.high else InsightSeverity.MEDIUM
    return InsightDraft(
        machine_id=ctx.machine.id,
        type=InsightType.ANOMALY,
        severity=severity,
        title=t("insights.downtime.title", ctx.lang, machine=ctx.machine.name),
        description=t(
            "insights.downtime.description",
            ctx.lang,
            downtime=_fmt(downtime),
            planned=_fmt(planned),
            ratio=f"{ratio * 100:.1f}",
            reason=main_reason,
        ),
        recommendation=t("insights.downtime.recommendation", ctx.lang),
        confidence=scale_confidence(ratio, thresholds.DOWNTIME.warn, thresholds.DOWNTIME.extreme),
        rule="downtime",
        metrics=MetricsImpact(impact_availability=_impact(ratio * 100.0)),
        data={
            "downtime_minutes": downtime,
            "planned_minutes": planned,
            "downtime_by_reason": dict(by_reason),
            "record_id": record.id,
            "shift": record.shift_name.value,
        },
        tags=["downtime", "availability", main_reason],
    )


def excellent_performance_rule(ctx: MetricsContext) -> InsightDraft | None:
    m = ctx.metrics
    if m.overall <= thresholds.OEE.excellent:
        return None
    return InsightDraft(
        machine_id=ctx.machine.id,
        type=InsightType.PATTERN,
        severity=InsightSeverity.LOW,
        title=t("insights.excellent.title", ctx.lang, machine=ctx.machine.name),
        description=t(
            "insights.excellent.description",
            ctx.lang,
            overall=_fmt(m.overall),
            availability=_fmt(m.availability),
            performance=_fmt(m.performance),
            quality=_fmt(m.quality),
        ),
        recommendation=t("insights.excellent.recommendation", ctx.lang),
        confidence=scale_confidence(m.overall, thresholds.OEE.excellent, 100.0),
        rule="excellent_performance",
        metrics=MetricsImpact(impact_oee=_impact(m.overall - thresholds.OEE.warn)),
        data={"oee": m.model_dump(), "record_id": ctx.record.id, "shift": ctx.record.shift_name.value},
        tags=["excellence", "best-practice", "oee"],
    )


DEFAULT_RULES: tuple[Rule, ...] = (
    low_oee_rule,
    waste_rule,
    target_miss_rule,
    downtime_rule,
    excellent_performance_rule,
)


# ── Onboarding ────────────────────────────────────────────────────────────────

# (type, severity, impact_oee, estimated_savings, tags)
_ONBOARDING = (
    (InsightType.SETUP, InsightSeverity.MEDIUM, 0.0, 0.0, ["configuracao", "nova-maquina", "setup"]),
    (InsightType.MONITORING, InsightSeverity.LOW, 5.0, 0.0, ["monitoramento", "baseline", "performance"]),
    (InsightType.MAINTENANCE, InsightSeverity.LOW, 10.0, 5000.0, ["manutencao", "preventiva", "cronograma"]),
)


def onboarding_drafts(machine: Machine, lang: str | None = None) -> list[InsightDraft]:
    """The fixed setup / monitoring / maintenance drafts for a new machine."""
    drafts = []
    for insight_type, severity, impact_oee, savings, tags in _ONBOARDING:
        prefix = f"insights.onboarding.{insight_type.value}"
        drafts.append(
            InsightDraft(
                machine_id=machine.id,
                type=insight_type,
                severity=severity,
                title=t(f"{prefix}.title", lang),
                description=t(f"{prefix}.description", lang, machine=machine.name),
                recommendation=t(f"{prefix}.recommendation", lang),
                confidence=settings.ONBOARDING_CONFIDENCE,
                rule=f"onboarding_{insight_type.value}",
                onboarding=True,
                metrics=MetricsImpact(impact_oee=impact_oee, estimated_savings=savings),
                data={"capacity_per_hour": machine.capacity.per_hour},
                tags=[*tags, "inicial"],
            )
        )
    return drafts


# ── Catalog ───────────────────────────────────────────────────────────────────

class RuleCatalog:
    """Ordered collection of independent rules."""

    def __init__(self, rules: Iterable[Rule] = DEFAULT_RULES) -> None:
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def evaluate(self, ctx: MetricsContext) -> list[InsightDraft]:
        drafts: list[InsightDraft] = []
        for rule in self._rules:
            name = getattr(rule, "__name__", repr(rule))
            try:
                draft = rule(ctx)
            except Exception:
                logger.warning(
                    "rule %s failed on record %s; dropping its contribution",
                    name, ctx.record.id, exc_info=True,
                )
                continue
            if draft is None:
                continue
            logger.debug("rule %s fired: %s/%s", name, draft.type.value, draft.severity.value)
            drafts.append(draft)
        return drafts

    def evaluate_onboarding(self, machine: Machine, lang: str | None = None) -> list[InsightDraft]:
        return onboarding_drafts(machine, lang)
