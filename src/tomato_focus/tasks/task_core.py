# src/tomato_focus/tasks/task_core.py

"""
Pure task-list transforms.

Every function here is total and side-effect free: it takes the current list
(or a single task) plus input and returns new values. TaskStore wraps them
with persistence.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from dataclasses import fields, replace
from datetime import datetime, timezone
from typing import Any

from .task_models import Task

UNTITLED = "Untitled Task"

_UPDATABLE = {f.name for f in fields(Task)} - {"id"}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_task_id() -> str:
    return uuid.uuid4().hex


def normalize_task_payload(data: dict[str, Any] | None) -> dict[str, Any]:
    """Trim title/description and coerce the estimate to a positive int."""
    data = dict(data or {})
    title = str(data.get("title") or "").strip()
    description = str(data.get("description") or "").strip()
    try:
        estimate = int(data.get("estimated_pomodoros") or 0)
    except (TypeError, ValueError):
        estimate = 0

    data["title"] = title or UNTITLED
    data["description"] = description
    data["estimated_pomodoros"] = estimate if estimate > 0 else 1
    return data


def create_task_record(
    data: dict[str, Any] | None,
    *,
    id_factory: Callable[[], str] = generate_task_id,
    now: str | None = None,
) -> Task:
    data = data or {}
    return Task(
        id=id_factory(),
        title=str(data.get("title") or UNTITLED),
        description=str(data.get("description") or ""),
        estimated_pomodoros=int(data.get("estimated_pomodoros") or 1),
        completed_pomodoros=0,
        is_completed=False,
        created_at=now or now_iso(),
        completed_at=None,
    )


def update_task_record(task: Task, updates: dict[str, Any] | None, *, now: str | None = None) -> Task:
    """
    Shallow-merge updates into a task.

    If is_completed is present, completed_at is derived from it (now / None);
    an explicit completed_at in the same update is ignored.
    """
    changes = {k: v for k, v in (updates or {}).items() if k in _UPDATABLE}

    if "is_completed" in changes:
        changes["is_completed"] = bool(changes["is_completed"])
        changes["completed_at"] = (now or now_iso()) if changes["is_completed"] else None

    return replace(task, **changes)


def complete_task_records(
    tasks: list[Task],
    task_ids: Iterable[Any],
    *,
    now: str | None = None,
) -> tuple[list[Task], bool]:
    """
    Mark matching tasks completed.

    completed_at is only backfilled when missing, so applying the same ids
    twice leaves the first timestamp untouched. Returns (tasks, changed).
    """
    ids = {str(i) for i in task_ids or []}
    if not ids:
        return tasks, False

    stamp = now or now_iso()
    changed = False
    out: list[Task] = []
    for task in tasks:
        if task.id not in ids:
            out.append(task)
            continue
        if not task.is_completed:
            task = replace(task, is_completed=True, completed_at=stamp)
            changed = True
        elif not task.completed_at:
            task = replace(task, completed_at=stamp)
            changed = True
        out.append(task)
    return out, changed


def delete_task_records(tasks: list[Task], task_ids: Iterable[Any]) -> list[Task]:
    # Unknown ids are ignored.
    ids = {str(i) for i in task_ids or []}
    if not ids:
        return tasks
    return [t for t in tasks if t.id not in ids]


def increment_task_pomodoro(task: Task) -> Task:
    # Never flips is_completed: completion is an explicit action.
    return replace(task, completed_pomodoros=task.completed_pomodoros + 1)


def clear_completed_records(tasks: list[Task]) -> list[Task]:
    return [t for t in tasks if not t.is_completed]
