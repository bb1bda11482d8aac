"""
src/insights/clock.py
─────────────────────
Clock collaborator. Components take a `Clock` so tests can pin time.
"""
from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)
