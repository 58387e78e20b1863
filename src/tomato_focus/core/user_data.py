# src/tomato_focus/core/user_data.py

"""
Versioned user-data export.

The document is self-describing (schema id + version) so a later importer can
reject files it does not understand. Statistics are the full per-day history,
not just today's counters.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..stats.statistics import DailyStatistics
from .state import SessionState

USER_DATA_SCHEMA_ID = "com.tomatofocus.user-data"
USER_DATA_SCHEMA_VERSION = 1


def _normalize_statistics(history: Any) -> dict[str, dict[str, int]]:
    if not isinstance(history, dict):
        return {}
    return {str(day): DailyStatistics.from_dict(value).to_dict() for day, value in history.items()}


def export_user_data(
    state: SessionState,
    statistics_history: dict[str, Any] | None = None,
    *,
    exported_at: datetime | None = None,
) -> dict[str, Any]:
    exported_at = exported_at or datetime.now(timezone.utc)
    return {
        "schema_id": USER_DATA_SCHEMA_ID,
        "schema_version": USER_DATA_SCHEMA_VERSION,
        "exported_at": exported_at.isoformat(),
        "conflict_policy": "source_file_replaces_local",
        "data": {
            "settings": state.settings.to_dict(),
            "tasks": [t.to_dict() for t in state.tasks],
            "statistics": _normalize_statistics(statistics_history),
            "current_task_id": str(state.current_task_id) if state.current_task_id else None,
            "timer": {
                "is_running": state.is_running,
                "time_left": max(0, int(state.time_left)),
                "end_time": state.end_time,
                "current_session": max(1, int(state.current_session)),
                "is_work_session": state.is_work_session,
            },
            "ui_preferences": {"hide_completed": bool(state.ui_preferences.get("hide_completed"))},
        },
    }
