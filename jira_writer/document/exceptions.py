"""Exceptions raised while building or merging documents."""

from __future__ import annotations

from jira_writer.utils.errors import JiraWriterError


class DocumentError(JiraWriterError):
    """Base exception for document model failures."""

    pass


class DocumentFormatError(DocumentError):
    """Raised when an ADF payload cannot be interpreted as a document.

    Attributes:
        node_type: The offending node type, if known
    """

    def __init__(self, message: str, node_type: str | None = None) -> None:
        self.node_type = node_type
        super().__init__(message)


class AnchorNotFoundError(DocumentError):
    """Raised when insert_after cannot find the requested heading.

    The caller must surface this for clarification instead of guessing
    where the new content belongs.

    Attributes:
        anchor: The heading text that was searched for
        available_headings: Top-level heading texts present in the document
    """

    def __init__(self, anchor: str, available_headings: list[str] | None = None) -> None:
        self.anchor = anchor
        self.available_headings = available_headings or []
        message = f"Heading '{anchor}' not found in the existing description"
        if self.available_headings:
            listed = ", ".join(f"'{h}'" for h in self.available_headings)
            message += f" (available headings: {listed})"
        super().__init__(message)


__all__ = [
    "DocumentError",
    "DocumentFormatError",
    "AnchorNotFoundError",
]
