# tests/test_task_core.py

from __future__ import annotations

from tomato_focus.tasks.task_core import (
    UNTITLED,
    clear_completed_records,
    complete_task_records,
    create_task_record,
    delete_task_records,
    increment_task_pomodoro,
    normalize_task_payload,
    update_task_record,
)
from tomato_focus.tasks.task_models import Task, tasks_from_raw


def _task(task_id: str = "t1", **kw) -> Task:
    base = dict(
        id=task_id,
        title="Write docs",
        description="",
        estimated_pomodoros=2,
        completed_pomodoros=0,
        is_completed=False,
        created_at="2024-01-01T00:00:00+00:00",
        completed_at=None,
    )
    base.update(kw)
    return Task(**base)


def test_normalize_payload_trims_and_defaults() -> None:
    data = normalize_task_payload({"title": "  ", "description": "  notes ", "estimated_pomodoros": "0"})
    assert data["title"] == UNTITLED
    assert data["description"] == "notes"
    assert data["estimated_pomodoros"] == 1

    assert normalize_task_payload({"estimated_pomodoros": "abc"})["estimated_pomodoros"] == 1
    assert normalize_task_payload({"estimated_pomodoros": 4})["estimated_pomodoros"] == 4


def test_create_task_record_uses_injected_id_and_clock() -> None:
    task = create_task_record(
        {"title": "Plan", "estimated_pomodoros": 3},
        id_factory=lambda: "fixed",
        now="2024-05-01T10:00:00+00:00",
    )
    assert task.id == "fixed"
    assert task.created_at == "2024-05-01T10:00:00+00:00"
    assert task.completed_pomodoros == 0
    assert task.is_completed is False
    assert task.completed_at is None


def test_update_derives_completed_at_and_ignores_explicit_value() -> None:
    done = update_task_record(
        _task(),
        {"is_completed": True, "completed_at": "1999-01-01"},
        now="2024-05-01T10:00:00+00:00",
    )
    assert done.is_completed is True
    assert done.completed_at == "2024-05-01T10:00:00+00:00"

    reopened = update_task_record(done, {"is_completed": False})
    assert reopened.is_completed is False
    assert reopened.completed_at is None


def test_update_ignores_id_and_unknown_keys() -> None:
    updated = update_task_record(_task(), {"id": "other", "bogus": 1, "title": "New"})
    assert updated.id == "t1"
    assert updated.title == "New"


def test_complete_many_is_idempotent_on_completed_at() -> None:
    tasks = [_task("a"), _task("b")]
    once, changed = complete_task_records(tasks, ["a"], now="2024-05-01T10:00:00+00:00")
    assert changed is True

    twice, changed_again = complete_task_records(once, ["a"], now="2030-01-01T00:00:00+00:00")
    assert changed_again is False
    assert twice[0].completed_at == "2024-05-01T10:00:00+00:00"
    assert twice[1].is_completed is False


def test_complete_backfills_missing_completed_at() -> None:
    legacy = _task("a", is_completed=True, completed_at=None)
    out, changed = complete_task_records([legacy], ["a"], now="2024-05-01T10:00:00+00:00")
    assert changed is True
    assert out[0].completed_at == "2024-05-01T10:00:00+00:00"


def test_delete_ignores_unknown_ids() -> None:
    tasks = [_task("a"), _task("b")]
    assert [t.id for t in delete_task_records(tasks, ["b", "zzz"])] == ["a"]
    assert delete_task_records(tasks, []) == tasks


def test_increment_never_flips_completion() -> None:
    task = _task(estimated_pomodoros=1, completed_pomodoros=1)
    bumped = increment_task_pomodoro(task)
    assert bumped.completed_pomodoros == 2
    assert bumped.is_completed is False


def test_clear_completed_keeps_active_tasks() -> None:
    tasks = [_task("a", is_completed=True, completed_at="x"), _task("b")]
    assert [t.id for t in clear_completed_records(tasks)] == ["b"]


def test_tasks_from_raw_tolerates_garbage() -> None:
    assert tasks_from_raw({"not": "a list"}) == []
    assert tasks_from_raw(None) == []
    tasks = tasks_from_raw([{"id": "x", "title": "T", "estimated_pomodoros": -5}, "junk"])
    assert len(tasks) == 1
    assert tasks[0].estimated_pomodoros == 1
