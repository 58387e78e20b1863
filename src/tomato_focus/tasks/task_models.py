# src/tomato_focus/tasks/task_models.py

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(slots=True)
class Task:
    """
    A unit of work the user focuses on.

    Notes:
    - completed_at is set iff is_completed; the transforms in task_core enforce it.
    - timestamps are ISO-8601 strings so the persisted JSON stays human-readable.
    """

    id: str
    title: str
    description: str
    estimated_pomodoros: int
    completed_pomodoros: int
    is_completed: bool
    created_at: str
    completed_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Task:
        completed_at = raw.get("completed_at")
        return cls(
            id=str(raw.get("id") or ""),
            title=str(raw.get("title") or "Untitled Task"),
            description=str(raw.get("description") or ""),
            estimated_pomodoros=max(1, _as_int(raw.get("estimated_pomodoros"), 1)),
            completed_pomodoros=max(0, _as_int(raw.get("completed_pomodoros"), 0)),
            is_completed=bool(raw.get("is_completed", False)),
            created_at=str(raw.get("created_at") or ""),
            completed_at=str(completed_at) if completed_at else None,
        )


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def tasks_from_raw(raw: Any) -> list[Task]:
    """Decode a persisted task list; anything that is not a list becomes []."""
    if not isinstance(raw, list):
        return []
    return [Task.from_dict(item) for item in raw if isinstance(item, dict)]


def tasks_to_raw(tasks: list[Task]) -> list[dict[str, Any]]:
    return [t.to_dict() for t in tasks]
