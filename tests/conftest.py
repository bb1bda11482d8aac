"""
tests/conftest.py
─────────────────
Shared pytest fixtures for the insight engine test suite.
"""
import os
from datetime import datetime, timedelta, timezone

import pytest

# Use in-memory SQLite and a fixed language for tests
os.environ.setdefault("DATABASE_URL", ":memory:")
os.environ.setdefault("HISTORY_DAYS", "3")
os.environ.setdefault("SIMULATION_SEED", "42")
os.environ.setdefault("DEFAULT_LANG", "pt")


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now) -> FakeClock:
    return FakeClock(now)


@pytest.fixture
def machine():
    from src.data.models import Machine, MachineCapacity, MachineLocation
    return Machine(
        id="m-001",
        name="Extrusora 01",
        code="EXT-01",
        capacity=MachineCapacity(value=1000.0, unit="pcs/h"),
        location=MachineLocation(plant="Planta 1", area="Extrusão", line="L1"),
    )


@pytest.fixture
def make_record(now):
    """Factory for shift records starting at the fixed `now`."""
    from src.data.models import DowntimeEntry, ShiftRecord

    def _make(**overrides):
        downtime = overrides.pop("downtime", ())
        fields = {
            "machine_id": "m-001",
            "start_time": now - timedelta(hours=8),
            "end_time": now,
            "good_production": 950.0,
            "waste_film": 15.0,
            "waste_organic": 5.0,
            "production_target": 1000.0,
            "planned_time": 480.0,
            "actual_time": 480.0,
            "downtime": tuple(
                DowntimeEntry(reason=reason, duration_minutes=minutes) for reason, minutes in downtime
            ),
        }
        fields.update(overrides)
        return ShiftRecord(**fields)

    return _make


@pytest.fixture
def scenario_a_record(make_record):
    """600 good of 1000 target, 50 film + 30 organic waste, no downtime."""
    return make_record(good_production=600.0, waste_film=50.0, waste_organic=30.0)


@pytest.fixture
def store():
    from src.data.store import InsightStore
    s = InsightStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def engine(store, clock):
    from src.insights.engine import InsightEngine
    return InsightEngine(store, clock=clock, lang="pt")


@pytest.fixture
def make_insight(now):
    """Factory for stored-shape insights."""
    from src.data.models import Insight

    def _make(**overrides):
        fields = {
            "machine_id": "m-001",
            "type": "optimization",
            "severity": "medium",
            "title": "OEE abaixo do ideal",
            "description": "desc",
            "recommendation": "rec",
            "confidence": 70.0,
            "created_at": now,
            "updated_at": now,
            "expires_at": now + timedelta(days=7),
        }
        fields.update(overrides)
        return Insight(**fields)

    return _make
