# tests/conftest.py

from __future__ import annotations

from types import SimpleNamespace

import pytest

from tomato_focus.core.controller import SessionController
from tomato_focus.stats.statistics import StatisticsStore
from tomato_focus.sync.jira_sync import JiraSyncManager
from tomato_focus.tasks.task_store import TaskStore

from .fakes import FakeClock, FakeFetcher, FakeIdleProvider, FakeKeyValueStore, FakeNotifier, FakeScheduler


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def kv() -> FakeKeyValueStore:
    return FakeKeyValueStore()


@pytest.fixture()
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture()
def idle() -> FakeIdleProvider:
    return FakeIdleProvider()


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture()
def task_store(kv: FakeKeyValueStore) -> TaskStore:
    return TaskStore(kv)


@pytest.fixture()
def statistics(kv: FakeKeyValueStore) -> StatisticsStore:
    return StatisticsStore(kv)


@pytest.fixture()
def sync(scheduler: FakeScheduler, task_store: TaskStore, fetcher: FakeFetcher) -> JiraSyncManager:
    return JiraSyncManager(scheduler=scheduler, task_store=task_store, fetcher=fetcher)


@pytest.fixture()
def controller(
    kv: FakeKeyValueStore,
    scheduler: FakeScheduler,
    task_store: TaskStore,
    statistics: StatisticsStore,
    sync: JiraSyncManager,
    notifier: FakeNotifier,
    idle: FakeIdleProvider,
    clock: FakeClock,
) -> SessionController:
    """
    Controller wired with in-memory fakes. Not initialized: tests that need a
    persisted starting state seed `kv` first, then call init().
    """
    return SessionController(
        kv=kv,
        scheduler=scheduler,
        task_store=task_store,
        statistics=statistics,
        sync=sync,
        notifier=notifier,
        idle=idle,
        clock=clock,
    )


@pytest.fixture()
def jira_settings() -> SimpleNamespace:
    """Minimal settings object accepted by the Jira helpers."""
    return SimpleNamespace(
        jira_url="https://example.atlassian.net",
        jira_username="dev@example.com",
        jira_token="secret",
        auto_sync_jira=True,
        jira_sync_interval=30,
    )
