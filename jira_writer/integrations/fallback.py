"""Fallback API transport.

The fallback API accepts markdown only and cannot hold attachments, so it
is only ever used for SIMPLE content. The shipped implementation does not
call anything itself: it emits the fallback signal the host agent acts on
with its own MCP tools::

    {"api": "mcp_fallback", "operation": "createJiraIssue",
     "params": {...}, "rest_error": "..."}
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any, Protocol

from jira_writer.integrations.outcome import FallbackRequested
from jira_writer.utils.console import print_warning

logger = logging.getLogger(__name__)

CREATE_OPERATION = "createJiraIssue"
UPDATE_OPERATION = "editJiraIssue"
COMMENT_OPERATION = "addCommentToJiraIssue"


class FallbackTransport(Protocol):
    """Markdown-only issue API."""

    async def create(
        self,
        project: str,
        issue_type: str,
        summary: str,
        markdown: str,
        *,
        reason: str = "",
    ) -> str | None:
        """Create an issue; returns its key, or None when the key is not known yet."""
        ...

    async def update(self, ticket_id: str, markdown: str, *, reason: str = "") -> None: ...


class SignalingFallback:
    """Fallback that hands the operation to the host agent as a JSON signal.

    Attributes:
        signals: Every signal emitted, in order
    """

    def __init__(self, sink: Callable[[str], None] | None = None) -> None:
        """Initialize.

        Args:
            sink: Receives each signal serialized as JSON. Signals are always
                  recorded in ``signals`` whether or not a sink is given.
        """
        self._sink = sink
        self.signals: list[dict[str, Any]] = []

    @property
    def last_signal(self) -> dict[str, Any] | None:
        return self.signals[-1] if self.signals else None

    def _emit(self, request: FallbackRequested) -> None:
        signal = request.to_signal()
        self.signals.append(signal)
        print_warning("REST API failed, signaling MCP fallback...")
        logger.info("Fallback signal for %s", request.operation)
        if self._sink is not None:
            self._sink(json.dumps(signal))

    async def create(
        self,
        project: str,
        issue_type: str,
        summary: str,
        markdown: str,
        *,
        reason: str = "",
    ) -> str | None:
        params = {
            "projectKey": project,
            "issueTypeName": issue_type,
            "summary": summary,
            "description": markdown,
        }
        self._emit(FallbackRequested(CREATE_OPERATION, params, reason))
        return None

    async def update(self, ticket_id: str, markdown: str, *, reason: str = "") -> None:
        params = {"issueIdOrKey": ticket_id, "fields": {"description": markdown}}
        self._emit(FallbackRequested(UPDATE_OPERATION, params, reason))

    async def comment(self, ticket_id: str, markdown: str, *, reason: str = "") -> None:
        params = {"issueIdOrKey": ticket_id, "commentBody": markdown}
        self._emit(FallbackRequested(COMMENT_OPERATION, params, reason))


__all__ = [
    "CREATE_OPERATION",
    "UPDATE_OPERATION",
    "COMMENT_OPERATION",
    "FallbackTransport",
    "SignalingFallback",
]
