"""Operation request, result and state types.

This module defines the inputs and outputs of TicketOperationOrchestrator
and the states it moves through:

    RESOLVING_TARGET -> GATHERING_CONTENT -> CLASSIFYING_CONTENT ->
    PROCESSING_DIAGRAMS -> BUILDING_DOCUMENT -> SELECTING_API ->
    SUBMITTING -> {SUCCEEDED, ROLLED_BACK, FAILED}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from jira_writer.diagrams.pipeline import SkippedDiagram
from jira_writer.document.classifier import ContentComplexity
from jira_writer.document.merger import MergeMode
from jira_writer.utils.errors import ExitCode


class OperationMode(Enum):
    CREATE = "create"
    UPDATE = "update"


class OperationState(Enum):
    """States of a single ticket operation."""

    RESOLVING_TARGET = "resolving_target"
    GATHERING_CONTENT = "gathering_content"
    CLASSIFYING_CONTENT = "classifying_content"
    PROCESSING_DIAGRAMS = "processing_diagrams"
    BUILDING_DOCUMENT = "building_document"
    SELECTING_API = "selecting_api"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            OperationState.SUCCEEDED,
            OperationState.ROLLED_BACK,
            OperationState.FAILED,
        )


class OperationStatus(Enum):
    """Final status reported to the caller."""

    SUCCEEDED = "succeeded"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class ApiChoice(Enum):
    """Which API carried the write."""

    PRIMARY = "rest"
    FALLBACK = "mcp_fallback"
    NONE = "none"


@dataclass(frozen=True)
class OperationRequest:
    """A create or update request.

    Attributes:
        mode: CREATE or UPDATE
        target: Ticket key for updates; None for creates
        project: Project key for creates
        issue_type: Issue type name for creates
        raw_content: Markdown with optional mermaid fences
        merge_mode: How an update combines with the existing description
        anchor: Heading text for INSERT_AFTER
        summary: Ticket summary for creates (derived from content when None)
    """

    mode: OperationMode
    target: str | None = None
    project: str = ""
    issue_type: str = "Task"
    raw_content: str = ""
    merge_mode: MergeMode = MergeMode.APPEND
    anchor: str | None = None
    summary: str | None = None


@dataclass
class OperationResult:
    """Outcome of one operation, including the partial-success summary."""

    status: OperationStatus
    ticket_id: str | None = None
    diagrams_embedded: int = 0
    diagrams_skipped: list[SkippedDiagram] = field(default_factory=list)
    error: str | None = None
    api_used: ApiChoice = ApiChoice.NONE
    complexity: ContentComplexity | None = None
    uploaded_attachments: list[str] = field(default_factory=list)
    rolled_back_attachments: list[str] = field(default_factory=list)
    failed_rollbacks: list[str] = field(default_factory=list)
    states: list[OperationState] = field(default_factory=list)
    fallback_signal: dict[str, Any] | None = None
    exit_code: ExitCode = ExitCode.SUCCESS

    @property
    def succeeded(self) -> bool:
        return self.status is OperationStatus.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status.value,
            "ticket_id": self.ticket_id,
            "api": self.api_used.value,
            "diagrams_embedded": self.diagrams_embedded,
            "diagrams_skipped": [skip.to_dict() for skip in self.diagrams_skipped],
        }
        if self.complexity is not None:
            data["complexity"] = self.complexity.value
        if self.error:
            data["error"] = self.error
        if self.uploaded_attachments:
            data["attachments"] = list(self.uploaded_attachments)
        if self.rolled_back_attachments or self.failed_rollbacks:
            data["rolled_back_attachments"] = list(self.rolled_back_attachments)
            data["failed_rollbacks"] = list(self.failed_rollbacks)
        if self.fallback_signal is not None:
            data["fallback_signal"] = self.fallback_signal
        data["states"] = [state.value for state in self.states]
        return data


__all__ = [
    "OperationMode",
    "OperationState",
    "OperationStatus",
    "ApiChoice",
    "OperationRequest",
    "OperationResult",
]
