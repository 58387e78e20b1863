# src/tomato_focus/scheduling/alarms.py

from __future__ import annotations

"""
Durable alarm scheduler.

Alarms are rows in SQLite, so they survive process restarts. A small polling
loop (run()) fires every alarm whose due time has passed, including alarms
that came due while the process was not running:
- one-shot alarms are deleted, then dispatched
- periodic alarms are pushed to the next future slot, then dispatched

To stop the scheduler, cancel the run() coroutine/task.
"""

import asyncio
import contextlib
import inspect
import logging
import sqlite3
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ..core.ports import AlarmListener

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Alarm:
    name: str
    due_at: float
    period_minutes: float | None


class SqliteAlarmScheduler:
    def __init__(
            self,
            db_path: str | Path = "state.sqlite3",
            *,
            clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._listeners: list[AlarmListener] = []
        self._ensure_schema()
        logger.info("AlarmScheduler ready db=%s pending=%s", self._db_path, len(self.list_alarms()))

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS alarms (
                    name TEXT PRIMARY KEY,
                    due_at REAL NOT NULL,
                    period_minutes REAL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_alarms_due ON alarms(due_at)")
            conn.commit()
        finally:
            conn.close()

    def _upsert(self, name: str, due_at: float, period_minutes: float | None) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO alarms(name, due_at, period_minutes) VALUES(?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET due_at=excluded.due_at, period_minutes=excluded.period_minutes
                """,
                (name, float(due_at), period_minutes),
            )
            conn.commit()
        finally:
            conn.close()

    def _delete(self, name: str | None) -> None:
        conn = self._get_conn()
        try:
            if name is None:
                conn.execute("DELETE FROM alarms")
            else:
                conn.execute("DELETE FROM alarms WHERE name = ?", (name,))
            conn.commit()
        finally:
            conn.close()

    def list_alarms(self) -> list[Alarm]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT name, due_at, period_minutes FROM alarms ORDER BY due_at ASC").fetchall()
        finally:
            conn.close()
        return [Alarm(r["name"], float(r["due_at"]), r["period_minutes"]) for r in rows]

    def get_alarm(self, name: str) -> Alarm | None:
        for alarm in self.list_alarms():
            if alarm.name == name:
                return alarm
        return None

    def _claim_due(self, now_ts: float) -> list[Alarm]:
        """Remove/advance due alarms in one transaction and return them for dispatch."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT name, due_at, period_minutes FROM alarms WHERE due_at <= ? ORDER BY due_at ASC",
                (float(now_ts),),
            ).fetchall()
            due: list[Alarm] = []
            for r in rows:
                alarm = Alarm(r["name"], float(r["due_at"]), r["period_minutes"])
                if alarm.period_minutes:
                    period_s = float(alarm.period_minutes) * 60.0
                    next_due = alarm.due_at + period_s
                    # Missed periods collapse into a single firing.
                    while next_due <= now_ts:
                        next_due += period_s
                    conn.execute("UPDATE alarms SET due_at = ? WHERE name = ?", (next_due, alarm.name))
                else:
                    conn.execute("DELETE FROM alarms WHERE name = ?", (alarm.name,))
                due.append(alarm)
            conn.commit()
            return due
        finally:
            conn.close()

    # ---- Scheduler port ----

    async def create(
            self,
            name: str,
            *,
            at: float | None = None,
            every_minutes: float | None = None,
    ) -> None:
        if (at is None) == (every_minutes is None):
            raise ValueError("exactly one of at= / every_minutes= is required")

        if every_minutes is not None:
            period = float(every_minutes)
            if period <= 0:
                raise ValueError("every_minutes must be positive")
            due_at = self._clock() + period * 60.0
            await asyncio.to_thread(self._upsert, name, due_at, period)
            logger.debug("Alarm %s every %.1f min (next=%.0f)", name, period, due_at)
            return

        await asyncio.to_thread(self._upsert, name, float(at), None)
        logger.debug("Alarm %s at %.3f", name, float(at))

    async def clear(self, name: str) -> None:
        await asyncio.to_thread(self._delete, name)
        logger.debug("Alarm %s cleared", name)

    async def clear_all(self) -> None:
        await asyncio.to_thread(self._delete, None)

    def on_alarm(self, listener: AlarmListener) -> None:
        self._listeners.append(listener)

    # ---- dispatch ----

    async def fire_due(self, now_ts: float | None = None) -> list[str]:
        """Single scheduler pass. Returns the names that were dispatched."""
        now_ts = self._clock() if now_ts is None else now_ts
        try:
            due = await asyncio.to_thread(self._claim_due, now_ts)
        except Exception:
            logger.exception("claim of due alarms failed")
            return []

        for alarm in due:
            logger.info("Alarm fired: %s (due_at=%.0f)", alarm.name, alarm.due_at)
            for listener in list(self._listeners):
                try:
                    result = listener(alarm.name)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    logger.exception("alarm listener failed alarm=%s", alarm.name)
        return [a.name for a in due]

    async def run(self, *, interval_seconds: float = 1.0) -> None:
        sleep_s = max(0.05, float(interval_seconds))
        while True:
            await self.fire_due()
            await asyncio.sleep(sleep_s)
