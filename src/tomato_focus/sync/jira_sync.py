# src/tomato_focus/sync/jira_sync.py

from __future__ import annotations

"""
Jira sync orchestrator.

- configure_alarm(): (re)register the recurring import alarm
- perform_sync():    fetch -> map -> dedupe -> import into the TaskStore

Fetch failures of a retryable class (5xx, network, timeout) get exactly one
more attempt; anything else propagates unchanged.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from ..core.ports import IssueFetcher, Scheduler
from ..tasks.task_models import Task
from ..tasks.task_store import TaskStore
from .errors import JiraErrorCode, JiraSyncError
from .jira_client import FetchResult
from .jira_core import build_task_imports, has_jira_permission, has_required_credentials, sanitize_sync_interval, should_retry_sync

logger = logging.getLogger(__name__)

JIRA_SYNC_ALARM = "jira-sync"


@dataclass(slots=True, frozen=True)
class SyncResult:
    imported_count: int
    total_issues: int
    mapping_errors: int
    tasks: list[Task]


class JiraSyncManager:
    def __init__(
            self,
            *,
            scheduler: Scheduler,
            task_store: TaskStore,
            fetcher: IssueFetcher,
            alarm_name: str = JIRA_SYNC_ALARM,
            allowed_hosts: Iterable[str] = (),
    ) -> None:
        self.scheduler = scheduler
        self.task_store = task_store
        self.fetcher = fetcher
        self.alarm_name = alarm_name
        self.allowed_hosts = list(allowed_hosts)

    def has_permission(self, jira_url: str) -> bool:
        return has_jira_permission(jira_url, self.allowed_hosts)

    async def configure_alarm(self, settings) -> bool:
        """
        Idempotent reconfiguration: the old alarm is always cleared first.
        Returns True if a recurring alarm was registered.
        """
        await self.scheduler.clear(self.alarm_name)

        if not getattr(settings, "auto_sync_jira", False):
            return False

        if not has_required_credentials(settings):
            logger.warning("Jira auto-sync is enabled but configuration is incomplete. Skipping alarm registration.")
            return False

        if not self.has_permission(settings.jira_url):
            logger.warning("Jira auto-sync is enabled but host permission is not granted. Skipping alarm registration.")
            return False

        interval = sanitize_sync_interval(getattr(settings, "jira_sync_interval", None))
        await self.scheduler.create(self.alarm_name, every_minutes=interval)
        logger.info("Jira auto-sync alarm registered every=%s min", interval)
        return True

    async def _fetch_with_retry(self, settings) -> FetchResult:
        try:
            return await self.fetcher.fetch_assigned_issues(settings)
        except Exception as e:
            if not should_retry_sync(e):
                raise
            logger.info("Jira fetch failed (%s), retrying once", e)
        return await self.fetcher.fetch_assigned_issues(settings)

    async def perform_sync(self, settings) -> SyncResult:
        if not has_required_credentials(settings):
            raise JiraSyncError("Jira URL, username, and API token are required.", JiraErrorCode.CONFIGURATION)

        if not self.has_permission(settings.jira_url):
            raise JiraSyncError(
                "Jira permission not granted. Please enable Jira access in settings.",
                JiraErrorCode.CONFIGURATION,
            )

        fetched = await self._fetch_with_retry(settings)

        created = await self.task_store.import_tasks(
            lambda existing: build_task_imports(fetched.issues, existing)
        )

        logger.info(
            "Jira sync done imported=%d total=%d mapping_errors=%d",
            len(created),
            fetched.total_issues,
            fetched.mapping_errors,
        )
        return SyncResult(
            imported_count=len(created),
            total_issues=fetched.total_issues,
            mapping_errors=fetched.mapping_errors,
            tasks=await self.task_store.get_tasks(),
        )


def sync_summary_message(result: SyncResult) -> str:
    n = result.imported_count
    if n > 0:
        return f"Imported {n} Jira {'task' if n == 1 else 'tasks'}."
    if result.total_issues > 0:
        return "Jira sync complete - tasks are already up to date."
    return "Jira sync complete - no assigned issues found."
