# src/tomato_focus/core/state.py

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any

from ..stats.statistics import DailyStatistics
from ..tasks.task_models import Task, tasks_from_raw, tasks_to_raw


@dataclass(frozen=True, slots=True)
class TimerSettings:
    """User-facing preferences, persisted inside the session state."""

    work_duration: int = 25
    short_break: int = 5
    long_break: int = 15
    long_break_interval: int = 4
    auto_start: bool = False
    theme: str = "system"
    pause_on_idle: bool = True
    play_sound: bool = True
    volume: float = 0.7
    jira_url: str = ""
    jira_username: str = ""
    jira_token: str = ""
    auto_sync_jira: bool = False
    jira_sync_interval: int = 30

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def merged_with(self, updates: dict[str, Any] | None) -> TimerSettings:
        """
        Field-by-field merge. Unknown keys are ignored, values that cannot be
        coerced to the field type keep the current value.
        """
        changes: dict[str, Any] = {}
        for f in fields(self):
            if not updates or f.name not in updates:
                continue
            coerced = _coerce(updates[f.name], getattr(self, f.name))
            if coerced is not None:
                changes[f.name] = coerced

        for name in ("work_duration", "short_break", "long_break", "long_break_interval"):
            if name in changes:
                changes[name] = max(1, changes[name])
        if "volume" in changes:
            changes["volume"] = max(0.0, min(1.0, changes["volume"]))

        return replace(self, **changes)

    @classmethod
    def from_dict(cls, raw: Any) -> TimerSettings:
        return cls().merged_with(raw if isinstance(raw, dict) else None)


def _coerce(value: Any, current: Any) -> Any:
    try:
        if isinstance(current, bool):
            if isinstance(value, str):
                return value.strip().lower() in {"1", "true", "yes", "y", "on"}
            return bool(value)
        if isinstance(current, int):
            return int(value)
        if isinstance(current, float):
            return float(value)
        if isinstance(current, str):
            return "" if value is None else str(value).strip()
    except (TypeError, ValueError):
        return None
    return value


def default_ui_preferences() -> dict[str, Any]:
    return {"hide_completed": False}


@dataclass(slots=True)
class SessionState:
    """
    The single timer/session record.

    Invariants kept by the controller:
    - time_left >= 0
    - end_time is not None  <=>  is_running
    - time_left is authoritative only while paused; while running the
      remaining time is derived from end_time.
    """

    is_running: bool = False
    time_left: int = TimerSettings().work_duration * 60
    end_time: float | None = None
    current_session: int = 1
    is_work_session: bool = True
    settings: TimerSettings = field(default_factory=TimerSettings)
    was_paused_for_idle: bool = False
    statistics: DailyStatistics = field(default_factory=DailyStatistics)
    current_task_id: str | None = None
    tasks: list[Task] = field(default_factory=list)
    ui_preferences: dict[str, Any] = field(default_factory=default_ui_preferences)

    def remaining_seconds(self, now: float) -> int:
        if self.end_time is None:
            return max(0, int(self.time_left))
        return max(0, math.ceil(self.end_time - now))

    def to_dict(self) -> dict[str, Any]:
        """Full persisted form."""
        return {
            "is_running": self.is_running,
            "time_left": self.time_left,
            "end_time": self.end_time,
            "current_session": self.current_session,
            "is_work_session": self.is_work_session,
            "settings": self.settings.to_dict(),
            "was_paused_for_idle": self.was_paused_for_idle,
            "statistics": self.statistics.to_dict(),
            "current_task_id": self.current_task_id,
            "tasks": tasks_to_raw(self.tasks),
            "ui_preferences": dict(self.ui_preferences),
        }

    def snapshot(self, now: float) -> dict[str, Any]:
        """Client-visible view returned by every command."""
        return {
            "is_running": self.is_running,
            "time_left": self.remaining_seconds(now),
            "current_session": self.current_session,
            "is_work_session": self.is_work_session,
            "settings": self.settings.to_dict(),
            "statistics": self.statistics.to_dict(),
            "tasks": tasks_to_raw(self.tasks),
            "current_task_id": self.current_task_id,
            "ui_preferences": dict(self.ui_preferences),
        }

    @classmethod
    def from_saved(cls, saved: dict[str, Any], now: float) -> SessionState:
        """
        Rebuild state after a (re)start.

        If end_time was persisted, time_left is recomputed from it: the process
        may not have been resident while the countdown elapsed.
        """
        state = cls()
        state.settings = TimerSettings.from_dict(saved.get("settings"))
        state.time_left = max(0, _int(saved.get("time_left"), state.settings.work_duration * 60))
        state.current_session = max(1, _int(saved.get("current_session"), 1))
        state.is_work_session = bool(saved.get("is_work_session", True))
        state.is_running = bool(saved.get("is_running", False))
        state.was_paused_for_idle = bool(saved.get("was_paused_for_idle", False))
        state.statistics = DailyStatistics.from_dict(saved.get("statistics"))
        current = saved.get("current_task_id")
        state.current_task_id = str(current) if current else None
        state.tasks = tasks_from_raw(saved.get("tasks"))

        prefs = saved.get("ui_preferences")
        state.ui_preferences = {**default_ui_preferences(), **(prefs if isinstance(prefs, dict) else {})}

        end_time = saved.get("end_time")
        if isinstance(end_time, (int, float)) and not isinstance(end_time, bool):
            state.time_left = max(0, math.ceil(float(end_time) - now))
            state.end_time = float(end_time) if state.is_running else None
        else:
            state.end_time = None
            state.is_running = False
        return state


def _int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
