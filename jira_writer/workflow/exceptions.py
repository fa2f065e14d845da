"""Exceptions that stop a ticket operation."""

from __future__ import annotations

from typing import ClassVar

from jira_writer.utils.errors import ExitCode, JiraWriterError


class OperationError(JiraWriterError):
    """Base exception for orchestrator failures."""

    _default_exit_code: ClassVar[ExitCode] = ExitCode.JIRA_FAILED


class InvalidRequestError(OperationError):
    """The request is incomplete (e.g. update without a ticket key)."""

    _default_exit_code: ClassVar[ExitCode] = ExitCode.GENERAL_ERROR


class SubmitFailure(OperationError):
    """Writing the document to Jira failed.

    Attributes:
        cause: The underlying transport error message
    """

    def __init__(self, message: str, cause: str | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class ApiUnavailable(OperationError):
    """No API can carry this operation.

    Raised for COMPLEX content when the primary API is not usable, and for
    SIMPLE content when both the primary and the fallback failed.
    """

    pass


__all__ = [
    "OperationError",
    "InvalidRequestError",
    "SubmitFailure",
    "ApiUnavailable",
]
