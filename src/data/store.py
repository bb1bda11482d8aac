"""
src/data/store.py
─────────────────
SQLite persistence collaborator for insights and the machine registry.

Provides (InsightStore):
  - load_active_insights()  : Active insights of one machine (or system-wide)
  - persist_insights()      : Apply a ReconcilePlan atomically, idempotent under retry
  - get_insight()           : Fetch one insight by id
  - save_transition()       : Compare-and-set a lifecycle transition
  - expire_due()            : Mark active insights past expires_at as expired
  - list_insights()         : Filtered read path for dashboards
  - get_insights_frame()    : Same read path as a pandas DataFrame, joined to machines
  - upsert_machine() / get_machine() / delete_machine()

The partial unique index on (machine_id, type) WHERE status = 'active'
is the storage-level guard for the one-active-insight-per-type invariant.
A create that loses that race is converted into a refresh of the winner.

Thread safety: uses check_same_thread=False + a per-store lock.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import UTC, datetime, timedelta

import pandas as pd

from config.insights import MAX_INSIGHTS_LIST, InsightStatus, InsightType
from config.settings import settings
from src.data.models import (
    Insight,
    InsightFilter,
    InsightRefresh,
    Machine,
    MachineCapacity,
    MachineLocation,
    MetricsImpact,
    ReconcilePlan,
)
from src.insights.errors import PersistenceError, ReconciliationConflict

logger = logging.getLogger(__name__)


# ── Schema ────────────────────────────────────────────────────────────────────

_CREATE_INSIGHTS = """
CREATE TABLE IF NOT EXISTS insights (
    id              TEXT PRIMARY KEY,
    machine_id      TEXT,
    type            TEXT NOT NULL,
    severity        TEXT NOT NULL,
    title           TEXT NOT NULL,
    description     TEXT NOT NULL,
    recommendation  TEXT NOT NULL,
    confidence      REAL NOT NULL,
    status          TEXT NOT NULL DEFAULT 'active',
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    expires_at      TEXT,
    applied_at      TEXT,
    applied_by      TEXT,
    dismissed_at    TEXT,
    dismissed_by    TEXT,
    metrics         TEXT,
    data            TEXT NOT NULL DEFAULT '{}',
    tags            TEXT NOT NULL DEFAULT '[]'
);
"""

_CREATE_MACHINES = """
CREATE TABLE IF NOT EXISTS machines (
    id              TEXT PRIMARY KEY,
    name            TEXT NOT NULL,
    code            TEXT NOT NULL,
    capacity_value  REAL NOT NULL,
    capacity_unit   TEXT NOT NULL,
    status          TEXT NOT NULL,
    plant           TEXT NOT NULL DEFAULT '',
    area            TEXT NOT NULL DEFAULT '',
    line            TEXT
);
"""

_CREATE_IDX = """
CREATE UNIQUE INDEX IF NOT EXISTS uq_insights_active_key
    ON insights (COALESCE(machine_id, ''), type) WHERE status = 'active';
CREATE INDEX IF NOT EXISTS idx_insights_machine_status ON insights (machine_id, status);
CREATE INDEX IF NOT EXISTS idx_insights_created ON insights (created_at);
CREATE INDEX IF NOT EXISTS idx_insights_expires ON insights (expires_at);
"""

_INSIGHT_COLUMNS = (
    "id", "machine_id", "type", "severity", "title", "description", "recommendation",
    "confidence", "status", "created_at", "updated_at", "expires_at", "applied_at",
    "applied_by", "dismissed_at", "dismissed_by", "metrics", "data", "tags",
)


# ── Row conversion ────────────────────────────────────────────────────────────

def _iso(ts: datetime | None) -> str | None:
    """UTC ISO-8601 with fixed microsecond width, so text order == time order."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC).isoformat(timespec="microseconds")


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _insight_row(insight: Insight) -> tuple:
    return (
        insight.id,
        insight.machine_id,
        insight.type.value,
        insight.severity.value,
        insight.title,
        insight.description,
        insight.recommendation,
        insight.confidence,
        insight.status.value,
        _iso(insight.created_at),
        _iso(insight.updated_at),
        _iso(insight.expires_at),
        _iso(insight.applied_at),
        insight.applied_by,
        _iso(insight.dismissed_at),
        insight.dismissed_by,
        insight.metrics.model_dump_json() if insight.metrics else None,
        json.dumps(insight.data, default=str),
        json.dumps(insight.tags),
    )


def _row_to_insight(row: sqlite3.Row) -> Insight:
    return Insight(
        id=row["id"],
        machine_id=row["machine_id"],
        type=row["type"],
        severity=row["severity"],
        title=row["title"],
        description=row["description"],
        recommendation=row["recommendation"],
        confidence=row["confidence"],
        status=row["status"],
        created_at=_parse(row["created_at"]),
        updated_at=_parse(row["updated_at"]),
        expires_at=_parse(row["expires_at"]),
        applied_at=_parse(row["applied_at"]),
        applied_by=row["applied_by"],
        dismissed_at=_parse(row["dismissed_at"]),
        dismissed_by=row["dismissed_by"],
        metrics=MetricsImpact.model_validate_json(row["metrics"]) if row["metrics"] else None,
        data=json.loads(row["data"]),
        tags=json.loads(row["tags"]),
    )


def _row_to_machine(row: sqlite3.Row) -> Machine:
    return Machine(
        id=row["id"],
        name=row["name"],
        code=row["code"],
        capacity=MachineCapacity(value=row["capacity_value"], unit=row["capacity_unit"]),
        status=row["status"],
        location=MachineLocation(plant=row["plant"], area=row["area"], line=row["line"]),
    )


# ── Store ─────────────────────────────────────────────────────────────────────

class InsightStore:
    def __init__(self, database_url: str = settings.DATABASE_URL) -> None:
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(database_url, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._create_tables()

    def _create_tables(self) -> None:
        with self._lock, self._conn:
            self._conn.executescript(_CREATE_INSIGHTS + _CREATE_MACHINES + _CREATE_IDX)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ── Writes ────────────────────────────────────────────────────────────────

    def persist_insights(self, plan: ReconcilePlan) -> None:
        """
        Apply a reconcile plan in one transaction.

        Safe to retry: creates whose id already exists are skipped and
        refreshes/expiries only touch rows that are still active.

        Raises:
            PersistenceError: on any SQLite failure (transaction rolled back)
        """
        if plan.is_empty:
            return
        try:
            with self._lock, self._conn:
                for insight_id in plan.to_expire:
                    self._conn.execute(
                        """UPDATE insights
                           SET status = 'expired', updated_at = COALESCE(expires_at, updated_at)
                           WHERE id = ? AND status = 'active'""",
                        (insight_id,),
                    )
                for insight in plan.to_create:
                    self._insert_or_refresh(insight)
                for refresh in plan.to_refresh:
                    self._apply_refresh(refresh)
        except sqlite3.Error as exc:
            raise PersistenceError(f"persisting plan for machine {plan.machine_id} failed: {exc}") from exc

        logger.info(
            "machine %s: %d insight(s) created, %d refreshed, %d expired",
            plan.machine_id, len(plan.to_create), len(plan.to_refresh), len(plan.to_expire),
        )

    def _insert_or_refresh(self, insight: Insight) -> None:
        exists = self._conn.execute("SELECT 1 FROM insights WHERE id = ?", (insight.id,)).fetchone()
        if exists:
            return
        try:
            self._conn.execute(
                f"INSERT INTO insights ({', '.join(_INSIGHT_COLUMNS)}) "
                f"VALUES ({', '.join('?' * len(_INSIGHT_COLUMNS))})",
                _insight_row(insight),
            )
        except sqlite3.IntegrityError:
            winner = self._find_active(insight.machine_id, insight.type)
            if winner is None:
                raise ReconciliationConflict(
                    f"active slot for ({insight.machine_id}, {insight.type.value}) is taken but unreadable"
                ) from None
            logger.info(
                "create of %s/%s lost the race; refreshing %s instead",
                insight.machine_id, insight.type.value, winner,
            )
            self._apply_refresh(
                InsightRefresh(
                    insight_id=winner,
                    severity=insight.severity,
                    title=insight.title,
                    description=insight.description,
                    recommendation=insight.recommendation,
                    confidence=insight.confidence,
                    metrics=insight.metrics,
                    data=insight.data,
                    expires_at=insight.expires_at,
                    updated_at=insight.updated_at,
                )
            )

    def _find_active(self, machine_id: str | None, insight_type: InsightType) -> str | None:
        row = self._conn.execute(
            """SELECT id FROM insights
               WHERE COALESCE(machine_id, '') = COALESCE(?, '') AND type = ? AND status = 'active'""",
            (machine_id, insight_type.value),
        ).fetchone()
        return row["id"] if row else None

    def _apply_refresh(self, refresh: InsightRefresh) -> None:
        self._conn.execute(
            """UPDATE insights
               SET severity = ?, title = ?, description = ?, recommendation = ?,
                   confidence = ?, metrics = ?, data = ?, expires_at = ?, updated_at = ?
               WHERE id = ? AND status = 'active'""",
            (
                refresh.severity.value,
                refresh.title,
                refresh.description,
                refresh.recommendation,
                refresh.confidence,
                refresh.metrics.model_dump_json() if refresh.metrics else None,
                json.dumps(refresh.data, default=str),
                _iso(refresh.expires_at),
                _iso(refresh.updated_at),
                refresh.insight_id,
            ),
        )

    def save_transition(self, insight: Insight) -> bool:
        """
        Persist a lifecycle transition, only if the stored row is still active.
        Returns False when another writer moved it to a terminal state first.
        """
        try:
            with self._lock, self._conn:
                cur = self._conn.execute(
                    """UPDATE insights
                       SET status = ?, updated_at = ?, applied_at = ?, applied_by = ?,
                           dismissed_at = ?, dismissed_by = ?
                       WHERE id = ? AND status = 'active'""",
                    (
                        insight.status.value,
                        _iso(insight.updated_at),
                        _iso(insight.applied_at),
                        insight.applied_by,
                        _iso(insight.dismissed_at),
                        insight.dismissed_by,
                        insight.id,
                    ),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"saving transition of {insight.id} failed: {exc}") from exc
        return cur.rowcount == 1

    def expire_due(self, now: datetime, machine_id: str | None = None) -> int:
        """Expire active insights whose expires_at is before `now`. Returns count."""
        sql = """UPDATE insights
                 SET status = 'expired', updated_at = expires_at
                 WHERE status = 'active' AND expires_at IS NOT NULL AND expires_at < ?"""
        params: list = [_iso(now)]
        if machine_id is not None:
            sql += " AND machine_id = ?"
            params.append(machine_id)
        try:
            with self._lock, self._conn:
                return self._conn.execute(sql, params).rowcount
        except sqlite3.Error as exc:
            raise PersistenceError(f"expiry sweep failed: {exc}") from exc

    # ── Reads ─────────────────────────────────────────────────────────────────

    def load_active_insights(self, machine_id: str | None) -> list[Insight]:
        """All stored insights in status `active` for a machine, past-expiry ones included."""
        with self._lock:
            rows = self._conn.execute(
                """SELECT * FROM insights
                   WHERE COALESCE(machine_id, '') = COALESCE(?, '') AND status = 'active'
                   ORDER BY created_at ASC""",
                (machine_id,),
            ).fetchall()
        return [_row_to_insight(r) for r in rows]

    def get_insight(self, insight_id: str) -> Insight | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM insights WHERE id = ?", (insight_id,)).fetchone()
        return _row_to_insight(row) if row else None

    def list_insights(self, flt: InsightFilter, now: datetime) -> list[Insight]:
        """
        Newest-first listing. Active listings hide insights already past
        expires_at even if the sweep has not marked them yet.
        """
        where: list[str] = []
        params: list = []
        if flt.machine_id:
            where.append("machine_id = ?")
            params.append(flt.machine_id)
        if flt.type:
            where.append("type = ?")
            params.append(flt.type.value)
        if flt.severity:
            where.append("severity = ?")
            params.append(flt.severity.value)
        if flt.status:
            where.append("status = ?")
            params.append(flt.status.value)
            if flt.status == InsightStatus.ACTIVE:
                where.append("(expires_at IS NULL OR expires_at >= ?)")
                params.append(_iso(now))

        limit = min(flt.limit or settings.DEFAULT_LIST_LIMIT, MAX_INSIGHTS_LIST)
        sql = "SELECT * FROM insights"
        if where:
            sql += f" WHERE {' AND '.join(where)}"
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_insight(r) for r in rows]

    def count_insights(self, machine_id: str | None = None, status: InsightStatus | None = None) -> int:
        where = ["1 = 1"]
        params: list = []
        if machine_id:
            where.append("machine_id = ?")
            params.append(machine_id)
        if status:
            where.append("status = ?")
            params.append(status.value)
        with self._lock:
            return self._conn.execute(
                f"SELECT COUNT(*) FROM insights WHERE {' AND '.join(where)}", params
            ).fetchone()[0]

    def get_insights_frame(
        self,
        now: datetime,
        machine_id: str | None = None,
        status: InsightStatus | None = None,
        days: int = 30,
        limit: int = 500,
    ) -> pd.DataFrame:
        """
        Insights created in the `days` days before `now` with the machine name joined.
        Insights whose machine was deleted come back with machine_name = None.
        """
        since = _iso(now - timedelta(days=days))
        where = ["i.created_at >= ?"]
        params: list = [since]
        if machine_id:
            where.append("i.machine_id = ?")
            params.append(machine_id)
        if status:
            where.append("i.status = ?")
            params.append(status.value)

        sql = f"""SELECT i.id, i.machine_id, m.name AS machine_name, i.type, i.severity,
                         i.title, i.confidence, i.status, i.created_at, i.updated_at, i.expires_at
                  FROM insights i LEFT JOIN machines m ON m.id = i.machine_id
                  WHERE {' AND '.join(where)}
                  ORDER BY i.created_at DESC LIMIT ?"""
        params.append(limit)

        with self._lock:
            df = pd.read_sql_query(sql, self._conn, params=params)
        if not df.empty:
            for col in ("created_at", "updated_at", "expires_at"):
                df[col] = pd.to_datetime(df[col], utc=True, format="ISO8601")
        return df

    # ── Machines (weak registry) ──────────────────────────────────────────────

    def upsert_machine(self, machine: Machine) -> None:
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    """INSERT INTO machines
                       (id, name, code, capacity_value, capacity_unit, status, plant, area, line)
                       VALUES (?,?,?,?,?,?,?,?,?)
                       ON CONFLICT(id) DO UPDATE SET
                         name = excluded.name, code = excluded.code,
                         capacity_value = excluded.capacity_value,
                         capacity_unit = excluded.capacity_unit, status = excluded.status,
                         plant = excluded.plant, area = excluded.area, line = excluded.line""",
                    (
                        machine.id,
                        machine.name,
                        machine.code,
                        machine.capacity.value,
                        machine.capacity.unit.value,
                        machine.status.value,
                        machine.location.plant,
                        machine.location.area,
                        machine.location.line,
                    ),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"saving machine {machine.id} failed: {exc}") from exc

    def get_machine(self, machine_id: str) -> Machine | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM machines WHERE id = ?", (machine_id,)).fetchone()
        return _row_to_machine(row) if row else None

    def delete_machine(self, machine_id: str) -> None:
        """Remove a machine. Its insights stay, referencing a now-missing machine."""
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM machines WHERE id = ?", (machine_id,))


_STORE: InsightStore | None = None


def get_store() -> InsightStore:
    """Process-wide store on settings.DATABASE_URL."""
    global _STORE
    if _STORE is None:
        _STORE = InsightStore(settings.DATABASE_URL)
    return _STORE
