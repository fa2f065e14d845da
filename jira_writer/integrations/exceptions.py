"""Exceptions raised by the Jira transports.

HTTP failures are mapped by status:
- 401/403 -> JiraAuthError
- 404     -> JiraNotFoundError
- anything else, including network errors and timeouts -> JiraTransientError
"""

from __future__ import annotations

from typing import ClassVar

from jira_writer.utils.errors import ExitCode, JiraWriterError


class JiraApiError(JiraWriterError):
    """Base exception for Jira REST API failures.

    Attributes:
        status_code: HTTP status, or None for transport-level failures
        operation: Short description of the failed call (e.g. "upload attachment")
    """

    _default_exit_code: ClassVar[ExitCode] = ExitCode.JIRA_FAILED

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        operation: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.operation = operation
        super().__init__(message)


class JiraAuthError(JiraApiError):
    """Credentials were rejected (401) or the action is forbidden (403)."""

    pass


class JiraNotFoundError(JiraApiError):
    """The issue, project or attachment does not exist or is not visible."""

    pass


class JiraTransientError(JiraApiError):
    """Any other failure: 4xx validation errors, 5xx, timeouts, network errors."""

    pass


class CredentialsNotConfiguredError(JiraApiError):
    """JIRA_DOMAIN or JIRA_API_KEY is missing or malformed."""

    _default_exit_code: ClassVar[ExitCode] = ExitCode.PREREQUISITES_FAILED


__all__ = [
    "JiraApiError",
    "JiraAuthError",
    "JiraNotFoundError",
    "JiraTransientError",
    "CredentialsNotConfiguredError",
]
