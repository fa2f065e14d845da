"""Ticket operation workflow for jira-writer.

This package contains:
- state: OperationRequest, OperationResult and the state/status enums
- orchestrator: TicketOperationOrchestrator (classify, diagrams, merge, submit)
- exceptions: OperationError taxonomy
"""

from jira_writer.workflow.exceptions import (
    ApiUnavailable,
    InvalidRequestError,
    OperationError,
    SubmitFailure,
)
from jira_writer.workflow.orchestrator import TicketOperationOrchestrator, derive_summary
from jira_writer.workflow.state import (
    ApiChoice,
    OperationMode,
    OperationRequest,
    OperationResult,
    OperationState,
    OperationStatus,
)

__all__ = [
    # Exceptions
    "OperationError",
    "InvalidRequestError",
    "SubmitFailure",
    "ApiUnavailable",
    # Orchestrator
    "TicketOperationOrchestrator",
    "derive_summary",
    # State
    "ApiChoice",
    "OperationMode",
    "OperationRequest",
    "OperationResult",
    "OperationState",
    "OperationStatus",
]
