# src/tomato_focus/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete stores/scheduler/idle/notifiers into the SessionController.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import Settings, get_settings
from ..core.controller import SessionController
from ..core.ports import Notifier
from ..idle.activity import ActivityIdleProvider
from ..notifications.console import ConsoleNotifier
from ..notifications.fanout import FanoutNotifier
from ..scheduling.alarms import SqliteAlarmScheduler
from ..stats.statistics import StatisticsStore
from ..storage.kv_store import SqliteKeyValueStore
from ..sync.jira_client import JiraClient
from ..sync.jira_sync import JiraSyncManager
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    settings: Settings
    kv: SqliteKeyValueStore
    scheduler: SqliteAlarmScheduler
    idle: ActivityIdleProvider
    notifier: FanoutNotifier
    controller: SessionController


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.state_db_path.parent.mkdir(parents=True, exist_ok=True)
    if settings.matrix_enabled:
        settings.matrix_store_path.mkdir(parents=True, exist_ok=True)


def create_app(*, settings=None) -> AppContext:
    """
    Build the application graph. Nothing is started here: call
    controller.init() and run the scheduler/idle loops afterwards.

    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    kv = SqliteKeyValueStore(settings.state_db_path)
    # Same database file, separate table.
    scheduler = SqliteAlarmScheduler(settings.state_db_path)
    task_store = TaskStore(kv)
    statistics = StatisticsStore(kv)
    sync = JiraSyncManager(
        scheduler=scheduler,
        task_store=task_store,
        fetcher=JiraClient(
            timeout_seconds=settings.jira_timeout_seconds,
            max_results=settings.jira_max_results,
        ),
        allowed_hosts=settings.jira_allowed_hosts,
    )
    idle = ActivityIdleProvider(threshold_seconds=settings.idle_threshold_seconds)
    notifier = FanoutNotifier([])

    controller = SessionController(
        kv=kv,
        scheduler=scheduler,
        task_store=task_store,
        statistics=statistics,
        sync=sync,
        notifier=notifier,
        idle=idle,
    )

    backends: list[Notifier] = [ConsoleNotifier(bell=lambda: controller.state.settings.play_sound)]
    if settings.matrix_enabled:
        from ..notifications.matrix import MatrixNotifier

        backends.append(MatrixNotifier(settings))
    notifier.notifiers.extend(backends)

    logger.info("App wired db=%s notifiers=%s", settings.state_db_path, [type(n).__name__ for n in backends])
    return AppContext(
        settings=settings,
        kv=kv,
        scheduler=scheduler,
        idle=idle,
        notifier=notifier,
        controller=controller,
    )
