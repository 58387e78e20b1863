# src/tomato_focus/sync/jira_core.py

"""
Pure helpers for the Jira import: request building, issue mapping,
deduplication and retry classification. No I/O here.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from ..tasks.task_models import Task
from .errors import JiraErrorCode, JiraSyncError

DEFAULT_SYNC_INTERVAL = 30
MIN_SYNC_INTERVAL = 5
MAX_SYNC_INTERVAL = 720

FALLBACK_TITLE = "Jira Task"
SEARCH_FIELDS = "key,summary,description"
JIRA_HOST_SUFFIXES = (".atlassian.net", ".jira.com")

_RETRY_SIGNATURES = ("failed to connect", "network", "timeout")


@dataclass(slots=True, frozen=True)
class JiraIssue:
    key: str
    title: str
    description: str


def sanitize_sync_interval(value: Any) -> int:
    """Clamp to [5, 720] minutes; non-numeric or zero falls back to 30."""
    try:
        interval = int(value)
    except (TypeError, ValueError):
        interval = 0
    interval = interval or DEFAULT_SYNC_INTERVAL
    return min(max(interval, MIN_SYNC_INTERVAL), MAX_SYNC_INTERVAL)


def has_required_credentials(settings: Any) -> bool:
    return all(
        str(getattr(settings, name, "") or "").strip()
        for name in ("jira_url", "jira_username", "jira_token")
    )


def has_jira_permission(jira_url: str, allowed_hosts: Iterable[str] = ()) -> bool:
    """
    Capability check for the sync target host.

    Jira Cloud hosts (https://<site>.atlassian.net / .jira.com) are always
    allowed; self-hosted servers must be listed in TOMATO_JIRA_ALLOWED_HOSTS.
    """
    if not jira_url:
        return False
    try:
        parsed = urlparse(jira_url.strip())
    except ValueError:
        return False
    host = (parsed.hostname or "").lower()
    if parsed.scheme != "https" or not host:
        return False
    if host.endswith(JIRA_HOST_SUFFIXES):
        return True
    return host in {h.lower() for h in allowed_hosts}


def build_search_request(jira_url: str, jira_username: str, *, max_results: int = 100) -> tuple[str, dict[str, Any]]:
    """Return (url, query params) for the assigned-and-unresolved issue search."""
    base = jira_url.strip().rstrip("/")
    escaped = jira_username.strip().replace("\\", "\\\\").replace('"', '\\"')
    jql = (
        'status in ("Open","In Progress","In Review","Verify") '
        f'AND assignee = "{escaped}" AND resolution = Unresolved'
    )
    params = {"jql": jql, "fields": SEARCH_FIELDS, "maxResults": int(max_results)}
    return f"{base}/rest/api/3/search/jql", params


def _node_text(node: Any) -> str:
    if not isinstance(node, dict):
        return ""
    text = node.get("text")
    if isinstance(text, str):
        return text
    return "".join(_node_text(child) for child in node.get("content") or [])


def parse_description(raw: Any) -> str:
    """Plain strings pass through; Atlassian documents are flattened one line per block."""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict) and isinstance(raw.get("content"), list):
        return "\n".join(_node_text(block) for block in raw["content"])
    return ""


def map_issue(raw: Any) -> JiraIssue | None:
    """None means the item cannot be identified (no key and no summary)."""
    if not isinstance(raw, dict):
        return None
    fields = raw.get("fields") if isinstance(raw.get("fields"), dict) else {}
    key = str(raw.get("key") or "").strip()
    summary = str(fields.get("summary") or "")
    if not key and not summary.strip():
        return None
    return JiraIssue(key=key, title=summary, description=parse_description(fields.get("description")))


def map_issues(raw_issues: Iterable[Any]) -> tuple[list[JiraIssue], int]:
    """Return (mapped issues, mapping error count)."""
    issues: list[JiraIssue] = []
    errors = 0
    for raw in raw_issues:
        issue = map_issue(raw)
        if issue is None:
            errors += 1
            continue
        issues.append(issue)
    return issues, errors


def import_title(issue: JiraIssue) -> str:
    return issue.title.strip() or issue.key or FALLBACK_TITLE


def build_task_imports(issues: Iterable[JiraIssue], existing_tasks: Iterable[Task]) -> list[dict[str, Any]]:
    """
    Task payloads for issues whose title is not tracked yet.

    Titles compare trimmed and case-insensitively, against existing tasks and
    against titles accepted earlier in the same batch.
    """
    seen = {(t.title or "").strip().lower() for t in existing_tasks}

    to_create: list[dict[str, Any]] = []
    for issue in issues:
        title = import_title(issue)
        dedupe_key = title.lower()
        if dedupe_key in seen:
            continue
        to_create.append({"title": title, "description": issue.description, "estimated_pomodoros": 1})
        seen.add(dedupe_key)
    return to_create


def should_retry_sync(error: BaseException | None) -> bool:
    if error is None:
        return False

    if isinstance(error, JiraSyncError):
        if error.code in (JiraErrorCode.NETWORK, JiraErrorCode.TIMEOUT):
            return True
        if error.code == JiraErrorCode.RESPONSE:
            return error.status is not None and error.status >= 500
        return False

    # Foreign exceptions: classify by attributes, then by message.
    status = getattr(error, "status", None)
    if isinstance(status, int) and status >= 500:
        return True

    code = str(getattr(error, "code", "") or "")
    if code in ("jira_network_error", "jira_timeout_error"):
        return True

    message = str(error).lower()
    return any(sig in message for sig in _RETRY_SIGNATURES)
