# src/tomato_focus/sync/jira_client.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .errors import JiraErrorCode, JiraSyncError
from .jira_core import JiraIssue, build_search_request, has_required_credentials, map_issues

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class FetchResult:
    issues: list[JiraIssue]
    total_issues: int
    mapping_errors: int


def _make_timeout_obj(total_s: float) -> httpx.Timeout:
    # Per-phase limits; the overall deadline is enforced with asyncio.wait_for.
    return httpx.Timeout(connect=min(5.0, total_s), read=total_s, write=10.0, pool=min(5.0, total_s))


class JiraClient:
    """
    Fetches issues assigned to the configured user (Jira Cloud REST v3).

    Credentials: basic auth with username/email + API token.

    Error mapping:
    - 401/403               -> AUTH
    - other non-2xx         -> RESPONSE (status kept for retry decisions)
    - invalid JSON          -> RESPONSE
    - transport failure     -> NETWORK
    - deadline exceeded     -> TIMEOUT (the request is cancelled)
    """

    def __init__(
            self,
            *,
            timeout_seconds: float = 20.0,
            max_results: int = 100,
            transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout_s = max(0.1, float(timeout_seconds))
        self._max_results = max(1, int(max_results))
        # Injected in tests (httpx.MockTransport).
        self._transport = transport

    async def fetch_assigned_issues(self, settings: Any) -> FetchResult:
        if not has_required_credentials(settings):
            raise JiraSyncError("Jira URL, username, and API token are required.", JiraErrorCode.CONFIGURATION)

        try:
            payload = await asyncio.wait_for(self._request(settings), timeout=self._timeout_s)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise JiraSyncError(
                f"Jira request timeout after {self._timeout_s:.0f}s", JiraErrorCode.TIMEOUT
            ) from e

        raw_issues = payload.get("issues") if isinstance(payload, dict) else None
        if not isinstance(raw_issues, list):
            raise JiraSyncError("Jira response did not contain an issue list.", JiraErrorCode.RESPONSE)

        issues, mapping_errors = map_issues(raw_issues)
        if mapping_errors:
            logger.warning("Jira: %d issue(s) could not be mapped", mapping_errors)
        logger.info("Jira: fetched %d issue(s)", len(raw_issues))
        return FetchResult(issues=issues, total_issues=len(raw_issues), mapping_errors=mapping_errors)

    async def _request(self, settings: Any) -> Any:
        username = str(settings.jira_username).strip()
        token = str(settings.jira_token).strip()
        url, params = build_search_request(str(settings.jira_url), username, max_results=self._max_results)

        async with httpx.AsyncClient(
                timeout=_make_timeout_obj(self._timeout_s),
                transport=self._transport,
        ) as client:
            try:
                response = await client.get(
                    url,
                    params=params,
                    auth=(username, token),
                    headers={"Accept": "application/json"},
                )
            except httpx.TimeoutException:
                raise
            except httpx.TransportError as e:
                raise JiraSyncError(f"Failed to connect to Jira: {e}", JiraErrorCode.NETWORK) from e

        if response.status_code in (401, 403):
            raise JiraSyncError(
                "Jira authentication failed. Check your Jira URL, username, and API token.",
                JiraErrorCode.AUTH,
                status=response.status_code,
            )

        if not response.is_success:
            detail = response.text.strip()[:200]
            message = f"Jira request failed ({response.status_code})"
            raise JiraSyncError(
                f"{message}: {detail}" if detail else f"{message}.",
                JiraErrorCode.RESPONSE,
                status=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise JiraSyncError(
                "Jira response was not valid JSON.", JiraErrorCode.RESPONSE, status=response.status_code
            ) from e
