# tests/test_controller.py

from __future__ import annotations

import pytest

from tomato_focus.core.controller import STATE_KEY, TIMER_ALARM, SessionController
from tomato_focus.sync.errors import JiraErrorCode, JiraSyncError
from tomato_focus.sync.jira_client import FetchResult
from tomato_focus.sync.jira_core import JiraIssue
from tomato_focus.sync.jira_sync import JIRA_SYNC_ALARM

from .fakes import FakeClock, FakeFetcher, FakeIdleProvider, FakeKeyValueStore, FakeNotifier, FakeScheduler

JIRA = {
    "jira_url": "https://example.atlassian.net",
    "jira_username": "dev@example.com",
    "jira_token": "secret",
}


# ---- lifecycle / persistence ----


@pytest.mark.asyncio
async def test_init_without_saved_state_persists_defaults(controller: SessionController, kv: FakeKeyValueStore) -> None:
    await controller.init()

    saved = kv.data[STATE_KEY]
    assert saved["is_running"] is False
    assert saved["time_left"] == 25 * 60
    assert saved["current_session"] == 1
    assert saved["settings"]["work_duration"] == 25


@pytest.mark.asyncio
async def test_init_rearms_alarm_and_recomputes_time_left(
    controller: SessionController,
    kv: FakeKeyValueStore,
    scheduler: FakeScheduler,
    clock: FakeClock,
) -> None:
    end_time = clock.now + 600
    kv.data[STATE_KEY] = {"is_running": True, "time_left": 1500, "end_time": end_time, "current_session": 2}
    clock.advance(100)

    await controller.init()

    assert controller.snapshot()["time_left"] == 500
    assert scheduler.alarms[TIMER_ALARM].at == end_time


@pytest.mark.asyncio
async def test_overdue_alarm_completes_session_after_reload(
    controller: SessionController,
    kv: FakeKeyValueStore,
    scheduler: FakeScheduler,
    clock: FakeClock,
    notifier: FakeNotifier,
) -> None:
    kv.data[STATE_KEY] = {"is_running": True, "time_left": 1500, "end_time": clock.now - 3600}

    await controller.init()
    assert controller.state.time_left == 0

    await scheduler.fire(TIMER_ALARM)

    assert controller.state.is_work_session is False
    assert controller.state.statistics.completed_today == 1
    assert notifier.messages == ["Work session complete"]


@pytest.mark.asyncio
async def test_persistence_failure_keeps_in_memory_mutation(
    controller: SessionController,
    kv: FakeKeyValueStore,
) -> None:
    await controller.init()
    kv.fail_set = True

    snap = await controller.start()

    assert snap["is_running"] is True
    assert controller.state.end_time is not None


# ---- start / pause / reset ----


@pytest.mark.asyncio
async def test_start_schedules_alarm_at_end_time(
    controller: SessionController,
    scheduler: FakeScheduler,
    clock: FakeClock,
    kv: FakeKeyValueStore,
) -> None:
    await controller.init()

    await controller.start()

    assert controller.state.end_time == clock.now + 1500
    assert scheduler.alarms[TIMER_ALARM].at == clock.now + 1500
    assert kv.data[STATE_KEY]["end_time"] == clock.now + 1500


@pytest.mark.asyncio
async def test_start_twice_does_not_reschedule(
    controller: SessionController,
    scheduler: FakeScheduler,
    clock: FakeClock,
) -> None:
    await controller.init()
    await controller.start()
    first_end = controller.state.end_time

    clock.advance(60)
    await controller.start()

    assert controller.state.end_time == first_end
    assert scheduler.alarms[TIMER_ALARM].at == first_end


@pytest.mark.asyncio
async def test_pause_cancels_alarm_and_captures_remaining(
    controller: SessionController,
    scheduler: FakeScheduler,
    clock: FakeClock,
) -> None:
    await controller.init()
    await controller.start()
    clock.advance(100)

    snap = await controller.pause()

    assert TIMER_ALARM not in scheduler.alarms
    assert snap["is_running"] is False
    assert snap["time_left"] == 1400
    assert controller.state.end_time is None

    # Resume continues from the captured time, not from the full duration.
    clock.advance(1000)
    await controller.start()
    assert controller.state.end_time == clock.now + 1400


@pytest.mark.asyncio
async def test_toggle_and_reset(controller: SessionController, scheduler: FakeScheduler) -> None:
    await controller.init()

    assert (await controller.toggle())["is_running"] is True
    assert (await controller.toggle())["is_running"] is False

    controller.state.current_session = 3
    controller.state.is_work_session = False
    await controller.start()
    snap = await controller.reset()

    assert snap["current_session"] == 1
    assert snap["is_work_session"] is True
    assert snap["time_left"] == 25 * 60
    assert TIMER_ALARM not in scheduler.alarms


# ---- completion ----


@pytest.mark.asyncio
async def test_work_completion_updates_stats_task_and_notifies(
    controller: SessionController,
    scheduler: FakeScheduler,
    notifier: FakeNotifier,
) -> None:
    await controller.init()
    task = await controller.create_task({"title": "Focus", "estimated_pomodoros": 1})
    await controller.set_current_task(task.id)
    await controller.start()

    await scheduler.fire(TIMER_ALARM)

    st = controller.state
    assert st.is_work_session is False
    assert st.is_running is False
    assert st.end_time is None
    assert st.time_left == 5 * 60
    assert st.statistics.completed_today == 1
    assert st.statistics.focus_time_today == 25
    assert st.tasks[0].completed_pomodoros == 1
    assert st.tasks[0].is_completed is False
    assert notifier.shown == [("Tomato Focus", "Work session complete")]


@pytest.mark.asyncio
async def test_storage_failure_during_work_completion_still_transitions(
    controller: SessionController,
    kv: FakeKeyValueStore,
    scheduler: FakeScheduler,
    clock: FakeClock,
    notifier: FakeNotifier,
) -> None:
    await controller.init()
    await controller.save_settings({"auto_start": True})
    task = await controller.create_task({"title": "Focus", "estimated_pomodoros": 2})
    await controller.set_current_task(task.id)
    await controller.start()
    kv.fail_set = True
    clock.advance(1501)

    await scheduler.fire(TIMER_ALARM)

    st = controller.state
    assert st.is_work_session is False
    assert st.is_running is True
    assert st.time_left == 5 * 60
    assert scheduler.alarms[TIMER_ALARM].at == clock.now + 300
    assert st.statistics.completed_today == 1
    assert st.statistics.focus_time_today == 25
    assert notifier.messages == ["Work session complete"]


@pytest.mark.asyncio
async def test_fourth_work_session_goes_to_long_break(controller: SessionController) -> None:
    await controller.init()
    controller.state.current_session = 4
    await controller.start()

    await controller.on_timer_complete()

    assert controller.state.is_work_session is False
    assert controller.state.time_left == 15 * 60


@pytest.mark.asyncio
async def test_break_completion_with_auto_start_reschedules(
    controller: SessionController,
    scheduler: FakeScheduler,
    clock: FakeClock,
    notifier: FakeNotifier,
) -> None:
    await controller.init()
    await controller.save_settings({"auto_start": True})
    controller.state.is_work_session = False
    controller.state.time_left = 300
    await controller.start()

    await scheduler.fire(TIMER_ALARM)

    st = controller.state
    assert st.is_work_session is True
    assert st.current_session == 2
    assert st.is_running is True
    assert scheduler.alarms[TIMER_ALARM].at == clock.now + 1500
    assert st.statistics.completed_today == 0
    assert notifier.messages == ["Break session complete"]


@pytest.mark.asyncio
async def test_notifier_failure_does_not_break_completion(
    controller: SessionController,
    notifier: FakeNotifier,
) -> None:
    await controller.init()
    notifier.fail = True
    await controller.start()

    snap = await controller.on_timer_complete()

    assert snap is not None
    assert snap["is_work_session"] is False


# ---- skip / quick / settings ----


@pytest.mark.asyncio
async def test_skip_break_is_noop_in_work_session(controller: SessionController, kv: FakeKeyValueStore) -> None:
    await controller.init()
    writes = kv.set_calls

    snap = await controller.skip_break()

    assert snap["is_work_session"] is True
    assert snap["current_session"] == 1
    assert kv.set_calls == writes


@pytest.mark.asyncio
async def test_skip_break_while_running_starts_next_work(
    controller: SessionController,
    scheduler: FakeScheduler,
    clock: FakeClock,
) -> None:
    await controller.init()
    controller.state.is_work_session = False
    controller.state.time_left = 300
    await controller.start()

    snap = await controller.skip_break()

    assert TIMER_ALARM in scheduler.cleared
    assert snap["is_work_session"] is True
    assert snap["current_session"] == 2
    assert snap["is_running"] is True
    assert scheduler.alarms[TIMER_ALARM].at == clock.now + 1500


@pytest.mark.asyncio
async def test_quick_timer_replaces_alarm(
    controller: SessionController,
    scheduler: FakeScheduler,
    clock: FakeClock,
) -> None:
    await controller.init()
    await controller.start()

    snap = await controller.start_quick_timer(5)

    assert snap["is_running"] is True
    assert snap["is_work_session"] is True
    assert snap["time_left"] == 300
    assert scheduler.alarms[TIMER_ALARM].at == clock.now + 300


@pytest.mark.asyncio
async def test_save_settings_snaps_time_left_regardless_of_elapsed(
    controller: SessionController,
    scheduler: FakeScheduler,
    clock: FakeClock,
) -> None:
    await controller.init()
    await controller.start()
    clock.advance(700)

    snap = await controller.save_settings({"work_duration": 30})

    assert snap["time_left"] == 1800
    assert snap["is_running"] is True
    assert scheduler.alarms[TIMER_ALARM].at == clock.now + 1800


@pytest.mark.asyncio
async def test_save_settings_while_paused_clears_end_time(controller: SessionController) -> None:
    await controller.init()
    controller.state.is_work_session = False
    controller.state.current_session = 4

    snap = await controller.save_settings({"long_break": 20})

    assert snap["time_left"] == 20 * 60
    assert controller.state.end_time is None


@pytest.mark.asyncio
async def test_save_settings_configures_sync_alarm_independently(
    controller: SessionController,
    scheduler: FakeScheduler,
) -> None:
    await controller.init()
    await controller.start()
    timer_alarm = scheduler.alarms[TIMER_ALARM]

    await controller.save_settings({**JIRA, "auto_sync_jira": True, "jira_sync_interval": 1})

    assert scheduler.alarms[JIRA_SYNC_ALARM].every_minutes == 5
    assert scheduler.alarms[TIMER_ALARM].at is not None

    await controller.save_settings({"auto_sync_jira": False})
    assert JIRA_SYNC_ALARM not in scheduler.alarms
    assert TIMER_ALARM in scheduler.alarms
    assert timer_alarm.every_minutes is None


# ---- idle ----


@pytest.mark.asyncio
async def test_idle_pauses_and_cancels_wakeup(
    controller: SessionController,
    scheduler: FakeScheduler,
    idle: FakeIdleProvider,
    kv: FakeKeyValueStore,
) -> None:
    await controller.init()
    await controller.start()

    await idle.emit("idle")

    st = controller.state
    assert st.is_running is False
    assert st.was_paused_for_idle is True
    assert TIMER_ALARM not in scheduler.alarms
    assert kv.data[STATE_KEY]["was_paused_for_idle"] is True

    # A late wake-up for the old end_time must not complete the session.
    await scheduler.fire(TIMER_ALARM)
    assert st.is_work_session is True
    assert st.statistics.completed_today == 0


@pytest.mark.asyncio
async def test_idle_is_ignored_when_pause_on_idle_disabled(
    controller: SessionController,
    idle: FakeIdleProvider,
) -> None:
    await controller.init()
    await controller.save_settings({"pause_on_idle": False})
    await controller.start()

    await idle.emit("idle")

    assert controller.state.is_running is True
    assert controller.state.was_paused_for_idle is False


@pytest.mark.asyncio
async def test_active_clears_idle_flag_without_restarting(
    controller: SessionController,
    idle: FakeIdleProvider,
) -> None:
    await controller.init()
    await controller.start()
    await idle.emit("idle")

    await idle.emit("active")

    assert controller.state.was_paused_for_idle is False
    assert controller.state.is_running is False
    assert idle.queries == [60]


@pytest.mark.asyncio
async def test_init_checks_idle_resume(
    controller: SessionController,
    kv: FakeKeyValueStore,
    idle: FakeIdleProvider,
) -> None:
    kv.data[STATE_KEY] = {"is_running": False, "time_left": 900, "was_paused_for_idle": True}

    await controller.init()

    assert controller.state.was_paused_for_idle is False
    assert kv.data[STATE_KEY]["was_paused_for_idle"] is False


@pytest.mark.asyncio
async def test_init_keeps_idle_flag_while_still_idle(
    controller: SessionController,
    kv: FakeKeyValueStore,
    idle: FakeIdleProvider,
) -> None:
    idle.state = "idle"
    kv.data[STATE_KEY] = {"is_running": False, "time_left": 900, "was_paused_for_idle": True}

    await controller.init()

    assert controller.state.was_paused_for_idle is True


# ---- tasks ----


@pytest.mark.asyncio
async def test_current_task_unset_when_deleted_or_completed(controller: SessionController) -> None:
    await controller.init()
    a = await controller.create_task({"title": "A"})
    b = await controller.create_task({"title": "B"})
    c = await controller.create_task({"title": "C"})

    await controller.set_current_task(a.id)
    await controller.delete_task(a.id)
    assert controller.state.current_task_id is None

    await controller.set_current_task(b.id)
    await controller.complete_tasks([b.id])
    assert controller.state.current_task_id is None

    await controller.set_current_task(c.id)
    await controller.update_task(c.id, {"is_completed": True})
    assert controller.state.current_task_id is None

    await controller.clear_completed_tasks()
    assert controller.state.tasks == []


@pytest.mark.asyncio
async def test_current_task_kept_when_other_tasks_change(controller: SessionController) -> None:
    await controller.init()
    a = await controller.create_task({"title": "A"})
    b = await controller.create_task({"title": "B"})
    await controller.set_current_task(a.id)

    await controller.complete_tasks([b.id])
    await controller.clear_completed_tasks()

    assert controller.state.current_task_id == a.id


@pytest.mark.asyncio
async def test_handle_task_commands(controller: SessionController) -> None:
    await controller.init()

    created = await controller.handle({"action": "create_task", "task": {"title": "Write tests"}})
    task_id = created["task"]["id"]
    assert created["success"] is True
    assert created["state"]["tasks"][0]["title"] == "Write tests"

    updated = await controller.handle({"action": "update_task", "task_id": task_id, "updates": {"title": "Ship"}})
    assert updated["task"]["title"] == "Ship"

    missing = await controller.handle({"action": "update_task", "task_id": "nope", "updates": {}})
    assert missing == {"error": "Task not found"}

    listed = await controller.handle({"action": "get_tasks"})
    assert [t["id"] for t in listed["tasks"]] == [task_id]

    bad_focus = await controller.handle({"action": "set_current_task", "task_id": "nope"})
    assert bad_focus == {"error": "Task not found"}

    deleted = await controller.handle({"action": "delete_tasks", "task_ids": [task_id]})
    assert deleted["state"]["tasks"] == []


# ---- command surface ----


@pytest.mark.asyncio
async def test_handle_state_and_errors(controller: SessionController, monkeypatch) -> None:
    await controller.init()

    assert "state" in await controller.handle({"action": "get_state"})
    assert await controller.handle({"action": "launch_rockets"}) == {"error": "Unknown action"}
    assert "error" in await controller.handle({"action": "start_quick_timer", "minutes": 0})

    async def boom():
        raise RuntimeError("kaboom")

    monkeypatch.setattr(controller, "start", boom)
    assert await controller.handle({"action": "start"}) == {"error": "Internal error"}


@pytest.mark.asyncio
async def test_ui_preferences_and_statistics_commands(controller: SessionController) -> None:
    await controller.init()

    resp = await controller.handle({"action": "update_ui_preferences", "ui_preferences": {"hide_completed": True}})
    assert resp["state"]["ui_preferences"] == {"hide_completed": True}

    await controller.start()
    await controller.on_timer_complete()
    history = await controller.handle({"action": "get_statistics_history"})
    assert len(history["history"]) == 1

    cleared = await controller.handle({"action": "clear_statistics"})
    assert cleared["state"]["statistics"] == {"completed_today": 0, "focus_time_today": 0}


@pytest.mark.asyncio
async def test_listeners_receive_snapshots(controller: SessionController) -> None:
    seen: list[dict] = []

    def broken(_snap):
        raise RuntimeError("listener bug")

    controller.add_listener(broken)
    controller.add_listener(seen.append)
    await controller.init()
    await controller.start()

    assert seen[-1]["is_running"] is True


@pytest.mark.asyncio
async def test_export_user_data(controller: SessionController) -> None:
    await controller.init()
    await controller.create_task({"title": "A"})

    resp = await controller.handle({"action": "export_user_data"})

    doc = resp["data"]
    assert doc["schema_id"] == "com.tomatofocus.user-data"
    assert doc["schema_version"] == 1
    assert doc["data"]["tasks"][0]["title"] == "A"
    assert doc["data"]["timer"]["current_session"] == 1


# ---- Jira ----


@pytest.mark.asyncio
async def test_import_now_refreshes_tasks(controller: SessionController, fetcher: FakeFetcher) -> None:
    await controller.init()
    await controller.save_settings(JIRA)
    await controller.create_task({"title": "Build API"})
    fetcher.outcomes.append(
        FetchResult(
            issues=[JiraIssue("P-1", "build api", ""), JiraIssue("P-2", "New Task", "desc")],
            total_issues=2,
            mapping_errors=0,
        )
    )

    resp = await controller.handle({"action": "import_now"})

    assert resp["success"] is True
    assert resp["imported_count"] == 1
    assert resp["total_issues"] == 2
    assert [t["title"] for t in resp["state"]["tasks"]] == ["Build API", "New Task"]


@pytest.mark.asyncio
async def test_import_now_without_credentials_reports_configuration_error(
    controller: SessionController,
    fetcher: FakeFetcher,
) -> None:
    await controller.init()

    resp = await controller.handle({"action": "import_now"})

    assert resp["code"] == JiraErrorCode.CONFIGURATION
    assert "required" in resp["error"]
    assert fetcher.calls == 0


@pytest.mark.asyncio
async def test_sync_alarm_notifies_result_and_failure(
    controller: SessionController,
    scheduler: FakeScheduler,
    fetcher: FakeFetcher,
    notifier: FakeNotifier,
) -> None:
    await controller.init()
    await controller.save_settings({**JIRA, "auto_sync_jira": True})
    fetcher.outcomes.append(FetchResult(issues=[JiraIssue("P-1", "One", "")], total_issues=1, mapping_errors=0))
    fetcher.outcomes.append(JiraSyncError("bad creds", JiraErrorCode.AUTH, status=401))

    await scheduler.fire(JIRA_SYNC_ALARM)
    await scheduler.fire(JIRA_SYNC_ALARM)

    assert notifier.messages[0] == "Imported 1 Jira task."
    assert "authentication failed" in notifier.messages[1]
    assert JIRA_SYNC_ALARM in scheduler.alarms
