# src/tomato_focus/sync/errors.py

from __future__ import annotations

from enum import StrEnum


class JiraErrorCode(StrEnum):
    CONFIGURATION = "jira_configuration_error"
    AUTH = "jira_auth_error"
    NETWORK = "jira_network_error"
    TIMEOUT = "jira_timeout_error"
    RESPONSE = "jira_response_error"


class JiraSyncError(Exception):
    """
    Failure of the external sync path.

    - CONFIGURATION: never retried, message is shown to the user as-is
    - AUTH (401/403): never retried
    - NETWORK / TIMEOUT: retried once by the orchestrator
    - RESPONSE: retried once only when status >= 500
    """

    def __init__(self, message: str, code: JiraErrorCode, *, status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


def format_sync_failure(error: BaseException) -> str:
    code = getattr(error, "code", None)

    if code == JiraErrorCode.AUTH:
        return "Jira authentication failed. Check your Jira URL, username, and API token."

    if code in (JiraErrorCode.NETWORK, JiraErrorCode.TIMEOUT):
        return "Jira sync failed due to a network or timeout issue. Check your connection and try again."

    if code == JiraErrorCode.CONFIGURATION:
        return str(error) or "Jira configuration is incomplete."

    return f"Jira sync failed: {str(error) or 'Unknown error'}"
