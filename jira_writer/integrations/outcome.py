"""Tagged outcomes for primary API calls.

PrimaryApi wraps the REST transport and turns every call into one of:

- Ok(data): the call succeeded
- FallbackRequested(operation, params, reason): the call failed and the
  caller allowed a fallback; params are ready for the fallback API
- ApiFailure(kind, message): the call failed and no fallback is allowed

The orchestrator branches on the type instead of parsing error strings.
Operation names match the MCP tools the host agent exposes
(createJiraIssue, editJiraIssue, getJiraIssue, addCommentToJiraIssue).
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Protocol, TypeAlias, TypeVar

from jira_writer.document.model import Doc
from jira_writer.integrations.exceptions import (
    CredentialsNotConfiguredError,
    JiraApiError,
    JiraAuthError,
    JiraNotFoundError,
)
from jira_writer.utils.logging import log_message

T = TypeVar("T")

NOT_CONFIGURED_REASON = "REST credentials not configured"


class PrimaryTransport(Protocol):
    """Operations the orchestrator needs from the primary API."""

    async def get_document(self, ticket_id: str) -> Doc: ...

    async def create_issue(
        self, project: str, issue_type: str, summary: str, document: Doc | None = None
    ) -> str: ...

    async def update_description(self, ticket_id: str, document: Doc) -> None: ...

    async def upload_attachment(self, ticket_id: str, content: bytes, filename: str) -> str: ...

    async def delete_attachment(self, attachment_id: str) -> None: ...

    def attachment_content_url(self, attachment_id: str) -> str: ...

    async def get_projects(self, max_results: int = 50) -> list[dict[str, Any]]: ...

    async def get_issue_types(self, project_key: str) -> list[dict[str, Any]]: ...

    async def add_comment(self, ticket_id: str, document: Doc) -> str: ...


class FailureKind(Enum):
    """Why a primary call failed."""

    NOT_CONFIGURED = "not_configured"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"

    @classmethod
    def from_error(cls, error: JiraApiError) -> FailureKind:
        if isinstance(error, CredentialsNotConfiguredError):
            return cls.NOT_CONFIGURED
        if isinstance(error, JiraAuthError):
            return cls.AUTH
        if isinstance(error, JiraNotFoundError):
            return cls.NOT_FOUND
        return cls.TRANSIENT


@dataclass(frozen=True)
class Ok(Generic[T]):
    data: T


@dataclass(frozen=True)
class FallbackRequested:
    operation: str
    params: dict[str, Any]
    reason: str
    kind: FailureKind = FailureKind.TRANSIENT

    def to_signal(self) -> dict[str, Any]:
        """The fallback signal payload the host agent understands."""
        return {
            "api": "mcp_fallback",
            "operation": self.operation,
            "params": self.params,
            "rest_error": self.reason,
        }


@dataclass(frozen=True)
class ApiFailure:
    kind: FailureKind
    message: str
    error: JiraApiError | None = field(default=None, compare=False)


ApiOutcome: TypeAlias = Ok[T] | FallbackRequested | ApiFailure


class PrimaryApi:
    """Outcome-returning facade over the primary transport.

    Attributes:
        transport: REST transport, or None when credentials are not configured
    """

    def __init__(self, transport: PrimaryTransport | None) -> None:
        self.transport = transport

    @property
    def configured(self) -> bool:
        return self.transport is not None

    async def _call(
        self,
        call: Callable[[PrimaryTransport], Awaitable[T]],
        operation: str,
        params: dict[str, Any] | None,
    ) -> ApiOutcome[T]:
        if self.transport is None:
            error: JiraApiError = CredentialsNotConfiguredError(NOT_CONFIGURED_REASON)
        else:
            try:
                return Ok(await call(self.transport))
            except JiraApiError as e:
                error = e

        kind = FailureKind.from_error(error)
        log_message(f"Primary API {operation} failed ({kind.value}): {error}")
        if params is not None:
            return FallbackRequested(operation, params, str(error), kind)
        return ApiFailure(kind, str(error), error)

    async def get_document(
        self, ticket_id: str, *, allow_fallback: bool = False
    ) -> ApiOutcome[Doc]:
        params = {"issueIdOrKey": ticket_id} if allow_fallback else None
        return await self._call(lambda t: t.get_document(ticket_id), "getJiraIssue", params)

    async def create(
        self,
        project: str,
        issue_type: str,
        summary: str,
        document: Doc | None = None,
        *,
        fallback_markdown: str | None = None,
    ) -> ApiOutcome[str]:
        """Create an issue. Pass fallback_markdown to allow a fallback on failure."""
        params = None
        if fallback_markdown is not None:
            params = {
                "projectKey": project,
                "issueTypeName": issue_type,
                "summary": summary,
                "description": fallback_markdown,
            }
        return await self._call(
            lambda t: t.create_issue(project, issue_type, summary, document),
            "createJiraIssue",
            params,
        )

    async def update(
        self,
        ticket_id: str,
        document: Doc,
        *,
        fallback_markdown: str | None = None,
    ) -> ApiOutcome[None]:
        """Replace the description. Pass fallback_markdown to allow a fallback on failure."""
        params = None
        if fallback_markdown is not None:
            params = {"issueIdOrKey": ticket_id, "fields": {"description": fallback_markdown}}
        return await self._call(
            lambda t: t.update_description(ticket_id, document), "editJiraIssue", params
        )

    async def add_comment(
        self,
        ticket_id: str,
        document: Doc,
        *,
        fallback_markdown: str | None = None,
    ) -> ApiOutcome[str]:
        """Add a comment. Pass fallback_markdown to allow a fallback on failure."""
        params = None
        if fallback_markdown is not None:
            params = {"issueIdOrKey": ticket_id, "commentBody": fallback_markdown}
        return await self._call(
            lambda t: t.add_comment(ticket_id, document), "addCommentToJiraIssue", params
        )

    async def get_projects(self) -> ApiOutcome[list[dict[str, Any]]]:
        return await self._call(lambda t: t.get_projects(), "getVisibleJiraProjects", None)

    async def get_issue_types(self, project: str) -> ApiOutcome[list[dict[str, Any]]]:
        return await self._call(
            lambda t: t.get_issue_types(project), "getJiraProjectIssueTypesMetadata", None
        )


__all__ = [
    "NOT_CONFIGURED_REASON",
    "PrimaryTransport",
    "FailureKind",
    "Ok",
    "FallbackRequested",
    "ApiFailure",
    "ApiOutcome",
    "PrimaryApi",
]
