# src/tomato_focus/core/controller.py

from __future__ import annotations

"""
Session controller.

Owns the single SessionState and is the only writer to it. Every entry point
(client commands, alarm callbacks, idle callbacks) runs under one asyncio.Lock,
so mutations happen strictly one after another.

Scheduling discipline:
- a running session always has a persisted end_time and a one-shot
  "pomodoro-timer" alarm at that time
- the alarm is cancelled before any mutation that invalidates it
- remaining time is recomputed from end_time, never counted down in memory

Listeners receive the client snapshot after each change. They are called
outside the lock, so a listener may issue further commands.
"""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from ..stats.statistics import StatisticsStore
from ..sync.errors import JiraSyncError, format_sync_failure
from ..sync.jira_sync import JiraSyncManager, SyncResult, sync_summary_message
from ..tasks.task_models import Task
from ..tasks.task_store import TaskStore
from .ports import IdleProvider, IdleState, KeyValueStore, Notifier, Scheduler
from .state import SessionState
from .state_machine import SessionTransition, next_session_on_complete, session_duration_seconds, skip_break_transition
from .user_data import export_user_data

logger = logging.getLogger(__name__)

TIMER_ALARM = "pomodoro-timer"
STATE_KEY = "pomodoro_state"
NOTIFICATION_TITLE = "Tomato Focus"
IDLE_RESUME_THRESHOLD_SECONDS = 60

StateListener = Callable[[dict[str, Any]], Awaitable[None] | None]


def _id_set(task_ids: Any) -> list[str]:
    if not isinstance(task_ids, (list, tuple, set)):
        return []
    return [str(i) for i in task_ids]


class SessionController:
    def __init__(
            self,
            *,
            kv: KeyValueStore,
            scheduler: Scheduler,
            task_store: TaskStore,
            statistics: StatisticsStore,
            sync: JiraSyncManager,
            notifier: Notifier | None = None,
            idle: IdleProvider | None = None,
            clock: Callable[[], float] = time.time,
    ) -> None:
        self.kv = kv
        self.scheduler = scheduler
        self.task_store = task_store
        self.statistics = statistics
        self.sync = sync
        self.notifier = notifier
        self.idle = idle
        self._clock = clock

        self.state = SessionState()
        self._lock = asyncio.Lock()
        self._listeners: list[StateListener] = []
        self.is_initialized = False

    # ---- lifecycle ----

    async def init(self) -> None:
        if self.is_initialized:
            return

        async with self._lock:
            await self._load_state()
            self.state.statistics = await self.statistics.get_statistics()
            self.state.tasks = await self.task_store.get_tasks()

            # Re-arm; an overdue alarm fires on the next scheduler pass.
            if self.state.is_running and self.state.end_time is not None:
                await self.scheduler.create(TIMER_ALARM, at=self.state.end_time)

            self.scheduler.on_alarm(self._on_alarm)
            if self.idle is not None:
                self.idle.on_change(self._on_idle_change)

            try:
                await self.sync.configure_alarm(self.state.settings)
            except Exception:
                logger.exception("Failed to configure Jira sync alarm")

            self.is_initialized = True
            snap = self.snapshot()

        logger.info(
            "Session restored running=%s work=%s session=%s time_left=%s",
            self.state.is_running,
            self.state.is_work_session,
            self.state.current_session,
            snap["time_left"],
        )
        await self.check_idle_resume()
        await self._emit(snap)

    async def _load_state(self) -> None:
        try:
            data = await self.kv.get([STATE_KEY])
        except Exception:
            logger.exception("Failed to load session state")
            data = {}

        saved = data.get(STATE_KEY)
        if isinstance(saved, dict):
            self.state = SessionState.from_saved(saved, self._clock())
            return

        self.state = SessionState()
        await self._persist()

    # ---- observers ----

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def snapshot(self) -> dict[str, Any]:
        return self.state.snapshot(self._clock())

    async def _emit(self, snap: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(snap)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("State listener failed")

    async def _notify(self, message: str) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.show(NOTIFICATION_TITLE, message)
        except Exception:
            logger.exception("Notification failed message=%r", message)

    # ---- low-level helpers (lock held by caller) ----

    async def _persist(self) -> None:
        try:
            await self.kv.set({STATE_KEY: self.state.to_dict()})
        except Exception:
            logger.exception("Failed to persist session state")

    async def _schedule(self) -> None:
        st = self.state
        st.end_time = self._clock() + st.time_left
        await self.scheduler.create(TIMER_ALARM, at=st.end_time)

    async def _cancel(self) -> None:
        await self.scheduler.clear(TIMER_ALARM)

    def _apply(self, transition: SessionTransition) -> None:
        st = self.state
        st.current_session = transition.current_session
        st.is_work_session = transition.is_work_session
        st.time_left = transition.time_left
        st.is_running = transition.is_running

    async def _start(self) -> bool:
        st = self.state
        if st.is_running:
            return False
        await self._schedule()
        st.is_running = True
        await self._persist()
        logger.info("Timer started end_time=%.0f time_left=%s", st.end_time, st.time_left)
        return True

    async def _pause(self) -> bool:
        st = self.state
        if not st.is_running:
            return False
        await self._cancel()
        st.time_left = st.remaining_seconds(self._clock())
        st.end_time = None
        st.is_running = False
        await self._persist()
        logger.info("Timer paused time_left=%s", st.time_left)
        return True

    async def _refresh_tasks(self, tasks: list[Task] | None = None) -> None:
        self.state.tasks = tasks if tasks is not None else await self.task_store.get_tasks()

    # ---- timer commands ----

    async def start(self) -> dict[str, Any]:
        async with self._lock:
            changed = await self._start()
            snap = self.snapshot()
        if changed:
            await self._emit(snap)
        return snap

    async def pause(self) -> dict[str, Any]:
        async with self._lock:
            changed = await self._pause()
            snap = self.snapshot()
        if changed:
            await self._emit(snap)
        return snap

    async def toggle(self) -> dict[str, Any]:
        async with self._lock:
            if self.state.is_running:
                await self._pause()
            else:
                await self._start()
            snap = self.snapshot()
        await self._emit(snap)
        return snap

    async def reset(self) -> dict[str, Any]:
        async with self._lock:
            await self._cancel()
            st = self.state
            st.is_running = False
            st.current_session = 1
            st.is_work_session = True
            st.time_left = st.settings.work_duration * 60
            st.end_time = None
            await self._persist()
            snap = self.snapshot()
        logger.info("Timer reset")
        await self._emit(snap)
        return snap

    async def on_timer_complete(self) -> dict[str, Any] | None:
        async with self._lock:
            st = self.state
            if not st.is_running:
                # Alarm raced a pause/reset that already cancelled it.
                logger.info("Ignoring timer completion, session is not running")
                return None

            if st.is_work_session:
                st.statistics = await self.statistics.record_work_session(st.settings.work_duration)
                if st.current_task_id:
                    try:
                        await self.task_store.increment_task_pomodoros(st.current_task_id)
                        await self._refresh_tasks()
                    except Exception:
                        logger.exception("Failed to count pomodoro for task %s", st.current_task_id)

            transition = next_session_on_complete(st)
            self._apply(transition)
            if st.is_running:
                await self._schedule()
            else:
                st.end_time = None
            await self._persist()
            snap = self.snapshot()

        logger.info(
            "%s session complete next_work=%s session=%s running=%s",
            transition.session_type,
            transition.is_work_session,
            transition.current_session,
            transition.is_running,
        )
        await self._notify(f"{transition.session_type} session complete")
        await self._emit(snap)
        return snap

    async def skip_break(self) -> dict[str, Any]:
        async with self._lock:
            transition = skip_break_transition(self.state)
            if transition is not None:
                await self._cancel()
                self._apply(transition)
                if self.state.is_running:
                    await self._schedule()
                else:
                    self.state.end_time = None
                await self._persist()
            snap = self.snapshot()
        if transition is not None:
            logger.info("Break skipped session=%s", transition.current_session)
            await self._emit(snap)
        return snap

    async def start_quick_timer(self, minutes: Any) -> dict[str, Any]:
        try:
            minutes_i = int(minutes)
        except (TypeError, ValueError):
            raise ValueError("Quick timer minutes must be a whole number") from None
        if minutes_i < 1:
            raise ValueError("Quick timer minutes must be at least 1")

        async with self._lock:
            await self._cancel()
            st = self.state
            st.is_work_session = True
            st.time_left = minutes_i * 60
            st.is_running = True
            await self._schedule()
            await self._persist()
            snap = self.snapshot()
        logger.info("Quick timer started minutes=%s", minutes_i)
        await self._emit(snap)
        return snap

    async def save_settings(self, updates: dict[str, Any] | None) -> dict[str, Any]:
        if updates is not None and not isinstance(updates, dict):
            raise ValueError("Settings must be an object")

        async with self._lock:
            st = self.state
            st.settings = st.settings.merged_with(updates)
            # Snap to the full duration; elapsed time is deliberately discarded.
            st.time_left = session_duration_seconds(
                is_work_session=st.is_work_session,
                current_session=st.current_session,
                settings=st.settings,
            )
            if st.is_running:
                await self._cancel()
                await self._schedule()
            else:
                st.end_time = None
            await self._persist()
            await self.sync.configure_alarm(st.settings)
            snap = self.snapshot()
        logger.info("Settings saved time_left=%s", st.time_left)
        await self._emit(snap)
        return snap

    # ---- idle ----

    async def _on_idle_change(self, new_state: IdleState) -> None:
        if new_state == "idle":
            await self.pause_for_idle()
        elif new_state == "active":
            await self.check_idle_resume()

    async def pause_for_idle(self) -> bool:
        async with self._lock:
            st = self.state
            if not (st.is_running and st.settings.pause_on_idle):
                return False
            logger.info("Auto-pausing due to idle state")
            await self._pause()
            st.was_paused_for_idle = True
            await self._persist()
            snap = self.snapshot()
        await self._emit(snap)
        return True

    async def check_idle_resume(self) -> bool:
        """Clear the idle-pause flag once the user is back. The countdown stays paused."""
        if self.idle is None:
            return False
        if not (self.state.was_paused_for_idle and self.state.settings.pause_on_idle):
            return False

        try:
            current = await self.idle.query_state(IDLE_RESUME_THRESHOLD_SECONDS)
        except Exception:
            logger.exception("Idle state query failed")
            return False
        if current != "active":
            return False

        async with self._lock:
            if not self.state.was_paused_for_idle:
                return False
            logger.info("Resuming after idle")
            self.state.was_paused_for_idle = False
            await self._persist()
            snap = self.snapshot()
        await self._emit(snap)
        return True

    # ---- tasks ----

    async def get_tasks(self) -> list[Task]:
        return await self.task_store.get_tasks()

    async def create_task(self, data: dict[str, Any] | None) -> Task:
        async with self._lock:
            task = await self.task_store.create_task(data)
            await self._refresh_tasks()
            await self._persist()
            snap = self.snapshot()
        await self._emit(snap)
        return task

    async def update_task(self, task_id: Any, updates: dict[str, Any] | None) -> Task:
        task_id = str(task_id or "")
        async with self._lock:
            task = await self.task_store.update_task(task_id, updates)
            await self._refresh_tasks()
            if self.state.current_task_id == task_id and (updates or {}).get("is_completed"):
                self.state.current_task_id = None
            await self._persist()
            snap = self.snapshot()
        await self._emit(snap)
        return task

    async def delete_task(self, task_id: Any) -> dict[str, Any]:
        return await self.delete_tasks([task_id])

    async def delete_tasks(self, task_ids: Iterable[Any]) -> dict[str, Any]:
        ids = _id_set(task_ids)
        async with self._lock:
            await self._refresh_tasks(await self.task_store.delete_tasks(ids))
            if self.state.current_task_id and str(self.state.current_task_id) in ids:
                self.state.current_task_id = None
            await self._persist()
            snap = self.snapshot()
        await self._emit(snap)
        return snap

    async def complete_tasks(self, task_ids: Iterable[Any]) -> dict[str, Any]:
        ids = _id_set(task_ids)
        async with self._lock:
            await self._refresh_tasks(await self.task_store.complete_tasks(ids))
            if self.state.current_task_id and str(self.state.current_task_id) in ids:
                self.state.current_task_id = None
            await self._persist()
            snap = self.snapshot()
        await self._emit(snap)
        return snap

    async def set_current_task(self, task_id: Any) -> dict[str, Any]:
        async with self._lock:
            if task_id:
                task_id = str(task_id)
                if not any(t.id == task_id for t in self.state.tasks):
                    raise ValueError("Task not found")
                self.state.current_task_id = task_id
            else:
                self.state.current_task_id = None
            await self._persist()
            snap = self.snapshot()
        await self._emit(snap)
        return snap

    async def clear_completed_tasks(self) -> dict[str, Any]:
        async with self._lock:
            await self._refresh_tasks(await self.task_store.clear_completed_tasks())
            current = self.state.current_task_id
            if current and not any(t.id == current for t in self.state.tasks):
                self.state.current_task_id = None
            await self._persist()
            snap = self.snapshot()
        await self._emit(snap)
        return snap

    # ---- preferences / statistics / export ----

    async def update_ui_preferences(self, prefs: dict[str, Any] | None) -> dict[str, Any]:
        async with self._lock:
            if isinstance(prefs, dict):
                self.state.ui_preferences = {**self.state.ui_preferences, **prefs}
            await self._persist()
            snap = self.snapshot()
        await self._emit(snap)
        return snap

    async def clear_statistics(self) -> dict[str, Any]:
        async with self._lock:
            await self.statistics.clear_all()
            self.state.statistics = await self.statistics.get_statistics()
            await self._persist()
            snap = self.snapshot()
        await self._emit(snap)
        return snap

    async def get_statistics_history(self) -> dict[str, Any]:
        return await self.statistics.get_all_statistics()

    async def export_user_data(self) -> dict[str, Any]:
        async with self._lock:
            history = await self.statistics.get_all_statistics()
            return export_user_data(self.state, history)

    # ---- Jira sync ----

    async def reconfigure_sync(self) -> bool:
        async with self._lock:
            return await self.sync.configure_alarm(self.state.settings)

    async def import_now(self) -> SyncResult:
        async with self._lock:
            settings = self.state.settings

        # Network I/O runs without the controller lock; TaskStore serializes the import.
        result = await self.sync.perform_sync(settings)

        async with self._lock:
            await self._refresh_tasks(result.tasks)
            await self._persist()
            snap = self.snapshot()
        await self._emit(snap)
        return result

    async def handle_sync_alarm(self) -> None:
        try:
            result = await self.import_now()
        except Exception as e:
            if isinstance(e, JiraSyncError):
                logger.warning("Automatic Jira sync failed: %s (%s)", e, e.code)
            else:
                logger.exception("Automatic Jira sync failed")
            await self._notify(format_sync_failure(e))
            return
        await self._notify(sync_summary_message(result))

    async def _on_alarm(self, name: str) -> None:
        if name == TIMER_ALARM:
            await self.on_timer_complete()
        elif name == self.sync.alarm_name:
            await self.handle_sync_alarm()

    # ---- request/response surface ----

    async def handle(self, request: dict[str, Any] | None) -> dict[str, Any]:
        request = request if isinstance(request, dict) else {}
        action = str(request.get("action") or "")

        try:
            if action == "get_state":
                return {"state": self.snapshot()}
            if action == "start":
                return {"success": True, "state": await self.start()}
            if action == "pause":
                return {"success": True, "state": await self.pause()}
            if action == "toggle":
                return {"success": True, "state": await self.toggle()}
            if action == "reset":
                return {"success": True, "state": await self.reset()}
            if action == "skip_break":
                return {"success": True, "state": await self.skip_break()}
            if action == "start_quick_timer":
                return {"success": True, "state": await self.start_quick_timer(request.get("minutes"))}
            if action == "save_settings":
                return {"success": True, "state": await self.save_settings(request.get("settings"))}

            if action == "create_task":
                task = await self.create_task(request.get("task"))
                return {"success": True, "task": task.to_dict(), "state": self.snapshot()}
            if action == "update_task":
                task = await self.update_task(request.get("task_id"), request.get("updates"))
                return {"success": True, "task": task.to_dict(), "state": self.snapshot()}
            if action == "delete_task":
                return {"success": True, "state": await self.delete_task(request.get("task_id"))}
            if action == "delete_tasks":
                return {"success": True, "state": await self.delete_tasks(request.get("task_ids"))}
            if action == "complete_tasks":
                return {"success": True, "state": await self.complete_tasks(request.get("task_ids"))}
            if action == "set_current_task":
                return {"success": True, "state": await self.set_current_task(request.get("task_id"))}
            if action == "clear_completed_tasks":
                return {"success": True, "state": await self.clear_completed_tasks()}
            if action == "get_tasks":
                return {"success": True, "tasks": [t.to_dict() for t in await self.get_tasks()]}

            if action == "reconfigure_sync":
                return {"success": True, "scheduled": await self.reconfigure_sync()}
            if action == "import_now":
                result = await self.import_now()
                return {
                    "success": True,
                    "state": self.snapshot(),
                    "imported_count": result.imported_count,
                    "total_issues": result.total_issues,
                    "mapping_errors": result.mapping_errors,
                }

            if action == "clear_statistics":
                return {"success": True, "state": await self.clear_statistics()}
            if action == "get_statistics_history":
                return {"success": True, "history": await self.get_statistics_history()}
            if action == "update_ui_preferences":
                prefs = request.get("ui_preferences") or request.get("updates")
                return {"success": True, "state": await self.update_ui_preferences(prefs)}
            if action == "export_user_data":
                return {"success": True, "data": await self.export_user_data()}

        except JiraSyncError as e:
            logger.info("Jira request failed action=%s code=%s: %s", action, e.code, e)
            return {"error": str(e), "code": str(e.code)}
        except ValueError as e:
            return {"error": str(e)}
        except Exception:
            logger.exception("Command failed action=%s", action)
            return {"error": "Internal error"}

        logger.warning("Unknown action: %r", action)
        return {"error": "Unknown action"}
