# src/tomato_focus/stats/statistics.py

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Any

from ..core.ports import KeyValueStore

logger = logging.getLogger(__name__)

STATISTICS_KEY = "statistics"
RETENTION_DAYS = 30


@dataclass(slots=True)
class DailyStatistics:
    completed_today: int = 0
    focus_time_today: int = 0  # minutes

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Any) -> DailyStatistics:
        if not isinstance(raw, dict):
            return cls()
        return cls(
            completed_today=max(0, _as_int(raw.get("completed_today"))),
            focus_time_today=max(0, _as_int(raw.get("focus_time_today"))),
        )


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


# ---- pure helpers ----


def date_key(day: datetime | date | None = None) -> str:
    """Local calendar day as YYYY-MM-DD (deliberately not UTC-normalized)."""
    day = day or datetime.now()
    return f"{day.year:04d}-{day.month:02d}-{day.day:02d}"


def today_statistics(all_stats: dict[str, Any], now: datetime | None = None) -> DailyStatistics:
    return DailyStatistics.from_dict(all_stats.get(date_key(now)))


def with_completed_increment(stats: DailyStatistics) -> DailyStatistics:
    return DailyStatistics(stats.completed_today + 1, stats.focus_time_today)


def with_focus_time_added(stats: DailyStatistics, minutes: int) -> DailyStatistics:
    return DailyStatistics(stats.completed_today, stats.focus_time_today + int(minutes))


def prune_statistics_history(
    all_stats: dict[str, Any],
    retention_days: int = RETENTION_DAYS,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Drop every entry whose day is before now - retention_days. Keys that are not dates are kept."""
    now = now or datetime.now()
    cutoff = (now - timedelta(days=retention_days)).date()

    pruned: dict[str, Any] = {}
    for key, value in all_stats.items():
        try:
            day = date.fromisoformat(str(key))
        except ValueError:
            pruned[key] = value
            continue
        if day < cutoff:
            continue
        pruned[key] = value
    return pruned


class StatisticsStore:
    """Per-day counters in the key-value store, pruned on every write."""

    def __init__(self, kv: KeyValueStore, *, retention_days: int = RETENTION_DAYS) -> None:
        self._kv = kv
        self._retention_days = retention_days

    async def get_all_statistics(self) -> dict[str, Any]:
        try:
            data = await self._kv.get([STATISTICS_KEY])
        except Exception:
            logger.exception("Failed to get all statistics map")
            return {}
        raw = data.get(STATISTICS_KEY)
        return raw if isinstance(raw, dict) else {}

    async def get_statistics(self) -> DailyStatistics:
        return today_statistics(await self.get_all_statistics())

    async def _save_today(self, today: DailyStatistics) -> None:
        now = datetime.now()
        try:
            merged = {**await self.get_all_statistics(), date_key(now): today.to_dict()}
            pruned = prune_statistics_history(merged, self._retention_days, now)
            await self._kv.set({STATISTICS_KEY: pruned})
        except Exception:
            logger.exception("Failed to save statistics")

    async def increment_completed(self) -> DailyStatistics:
        nxt = with_completed_increment(await self.get_statistics())
        await self._save_today(nxt)
        return nxt

    async def add_focus_time(self, minutes: int) -> DailyStatistics:
        nxt = with_focus_time_added(await self.get_statistics(), minutes)
        await self._save_today(nxt)
        return nxt

    async def record_work_session(self, minutes: int) -> DailyStatistics:
        """One completed work session: count plus focus minutes in a single write."""
        nxt = with_focus_time_added(with_completed_increment(await self.get_statistics()), minutes)
        await self._save_today(nxt)
        return nxt

    async def clear_all(self) -> None:
        await self._kv.set({STATISTICS_KEY: {}})
        logger.info("All statistics data cleared")
