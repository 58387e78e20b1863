# src/tomato_focus/tasks/task_store.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Any

from ..core.ports import KeyValueStore
from .task_core import (
    clear_completed_records,
    complete_task_records,
    create_task_record,
    delete_task_records,
    increment_task_pomodoro,
    normalize_task_payload,
    update_task_record,
)
from .task_models import Task, tasks_from_raw, tasks_to_raw

logger = logging.getLogger(__name__)

TASKS_KEY = "tasks"


class TaskStore:
    """
    Task list persisted as one JSON array in the key-value store.

    All rules (defaults, completion timestamps, dedupe-free increments) live in
    task_core; this class only loads, applies a transform, and saves.

    Concurrency:
    - the session controller and the sync orchestrator both write here,
      so every read-modify-write runs under one asyncio.Lock.
    """

    def __init__(self, kv: KeyValueStore, *, key: str = TASKS_KEY) -> None:
        self._kv = kv
        self._key = key
        self._lock = asyncio.Lock()

    # ---- low-level helpers ----

    async def _load(self) -> list[Task]:
        try:
            data = await self._kv.get([self._key])
        except Exception:
            logger.exception("Failed to load tasks")
            return []
        return tasks_from_raw(data.get(self._key, []))

    async def _save(self, tasks: list[Task]) -> None:
        await self._kv.set({self._key: tasks_to_raw(tasks)})

    # ---- public API ----

    async def get_tasks(self) -> list[Task]:
        return await self._load()

    async def get_task(self, task_id: str) -> Task | None:
        for task in await self._load():
            if task.id == task_id:
                return task
        return None

    async def create_task(self, data: dict[str, Any] | None) -> Task:
        async with self._lock:
            tasks = await self._load()
            task = create_task_record(normalize_task_payload(data))
            tasks.append(task)
            await self._save(tasks)
        logger.debug("Task created id=%s title=%r", task.id, task.title)
        return task

    async def import_tasks(self, build: Callable[[list[Task]], Iterable[dict[str, Any]]]) -> list[Task]:
        """
        Bulk create in one write (used by the Jira import).

        build() receives the current list under the lock, so dedupe decisions
        cannot race another writer.
        """
        async with self._lock:
            tasks = await self._load()
            created = [create_task_record(normalize_task_payload(item)) for item in build(list(tasks))]
            if created:
                tasks.extend(created)
                await self._save(tasks)
        return created

    async def update_task(self, task_id: str, updates: dict[str, Any] | None) -> Task:
        async with self._lock:
            tasks = await self._load()
            for idx, task in enumerate(tasks):
                if task.id != task_id:
                    continue
                merged = {**task.to_dict(), **(updates or {})}
                normalized = normalize_task_payload(merged)
                changes = {k: normalized[k] for k in ("title", "description", "estimated_pomodoros")}
                changes.update({k: v for k, v in (updates or {}).items() if k not in changes})
                tasks[idx] = update_task_record(task, changes)
                await self._save(tasks)
                return tasks[idx]
        raise ValueError("Task not found")

    async def delete_task(self, task_id: str) -> list[Task]:
        return await self.delete_tasks([task_id])

    async def delete_tasks(self, task_ids: Iterable[Any]) -> list[Task]:
        async with self._lock:
            tasks = await self._load()
            remaining = delete_task_records(tasks, task_ids)
            if len(remaining) != len(tasks):
                await self._save(remaining)
            return remaining

    async def complete_tasks(self, task_ids: Iterable[Any]) -> list[Task]:
        async with self._lock:
            tasks = await self._load()
            updated, changed = complete_task_records(tasks, task_ids)
            if changed:
                await self._save(updated)
            return updated

    async def increment_task_pomodoros(self, task_id: str) -> Task | None:
        async with self._lock:
            tasks = await self._load()
            for idx, task in enumerate(tasks):
                if task.id == task_id:
                    tasks[idx] = increment_task_pomodoro(task)
                    await self._save(tasks)
                    return tasks[idx]
        logger.warning("Task not found for incrementing pomodoros: %s", task_id)
        return None

    async def clear_completed_tasks(self) -> list[Task]:
        async with self._lock:
            tasks = await self._load()
            active = clear_completed_records(tasks)
            await self._save(active)
            return active
