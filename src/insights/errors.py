"""
src/insights/errors.py
──────────────────────
Exception taxonomy for the insight engine.

Input anomalies are never raised (the calculator clamps them) and rule
failures are contained by the catalog, so only persistence and lifecycle
problems surface as exceptions.
"""


class InsightError(Exception):
    """Base class for insight engine errors."""


class InsightNotFoundError(InsightError, LookupError):
    def __init__(self, insight_id: str) -> None:
        super().__init__(f"insight {insight_id} not found")
        self.insight_id = insight_id


class InvalidTransitionError(InsightError):
    def __init__(self, insight_id: str, source: str, target: str) -> None:
        super().__init__(f"insight {insight_id}: illegal transition {source} -> {target}")
        self.insight_id = insight_id
        self.source = source
        self.target = target


class PersistenceError(InsightError):
    """The storage collaborator failed; the triggering write is unaffected."""


class ReconciliationConflict(PersistenceError):
    """A create lost the race for an active (machine, type) slot and no winner was found."""
