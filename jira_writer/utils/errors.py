"""Custom exceptions and exit codes for jira-writer.

This module defines the exit codes and the base of the exception hierarchy
used throughout the application. The exit codes match the ones the Mermaid
upload script reported, so calling agents can keep branching on them.
"""

from enum import IntEnum
from typing import ClassVar


class ExitCode(IntEnum):
    """Process exit codes.

    These codes are used for consistent error reporting and can be
    checked by calling scripts or agents.
    """

    SUCCESS = 0
    GENERAL_ERROR = 1
    PREREQUISITES_FAILED = 2  # Missing mmdc, credentials, ...
    DIAGRAM_FAILED = 3  # Mermaid validation or conversion failed
    JIRA_FAILED = 4  # Jira API call failed
    USER_CANCELLED = 5


class JiraWriterError(Exception):
    """Base exception for jira-writer errors.

    All custom exceptions in this application should inherit from this class.
    Each exception type has an associated exit code for proper error reporting.
    """

    _default_exit_code: ClassVar[ExitCode] = ExitCode.GENERAL_ERROR

    def __init__(self, message: str, exit_code: ExitCode | None = None) -> None:
        """Initialize the exception."""
        super().__init__(message)
        self._exit_code = exit_code

    @property
    def exit_code(self) -> ExitCode:
        """Get the exit code for this exception."""
        if self._exit_code is not None:
            return self._exit_code
        return self.__class__._default_exit_code


class PrerequisitesError(JiraWriterError):
    """A required tool or credential is missing.

    Raised when:
    - The 'mmdc' command is not found in PATH
    - JIRA_DOMAIN or JIRA_API_KEY is not configured
    """

    _default_exit_code: ClassVar[ExitCode] = ExitCode.PREREQUISITES_FAILED


class UserCancelledError(JiraWriterError):
    """User cancelled the operation (Ctrl+C)."""

    _default_exit_code: ClassVar[ExitCode] = ExitCode.USER_CANCELLED


__all__ = [
    "ExitCode",
    "JiraWriterError",
    "PrerequisitesError",
    "UserCancelledError",
]
