"""Exceptions for diagram rendering and attachment upload.

Recoverable (the diagram is skipped, the batch continues):
- DiagramSyntaxError: the renderer's dry run rejected the source
- DiagramRenderError: rendering the PNG failed
- AttachmentTransientFailure: upload failed twice for a non-fatal reason

Fatal (the whole batch is aborted and rolled back):
- AttachmentAuthFailure: credentials rejected (401/403)
- AttachmentNotFound: the target ticket does not exist (404)
"""

from __future__ import annotations

from typing import ClassVar

from jira_writer.utils.errors import ExitCode, JiraWriterError


class DiagramError(JiraWriterError):
    """Base exception for diagram failures."""

    _default_exit_code: ClassVar[ExitCode] = ExitCode.DIAGRAM_FAILED


class DiagramSyntaxError(DiagramError):
    """Raised when the renderer rejects a diagram during validation.

    Attributes:
        renderer_output: The renderer's raw stderr/stdout
    """

    skip_reason: ClassVar[str] = "syntax error"

    def __init__(self, renderer_output: str) -> None:
        self.renderer_output = renderer_output
        message = "Mermaid syntax validation failed"
        if renderer_output.strip():
            message += f": {renderer_output.strip()}"
        super().__init__(message)


class DiagramRenderError(DiagramError):
    """Raised when the renderer fails to produce a PNG."""

    skip_reason: ClassVar[str] = "render error"


class AttachmentError(JiraWriterError):
    """Base exception for attachment upload failures."""

    _default_exit_code: ClassVar[ExitCode] = ExitCode.JIRA_FAILED
    fatal: ClassVar[bool] = False
    skip_reason: ClassVar[str] = "upload failed"


class AttachmentAuthFailure(AttachmentError):
    """Credentials were rejected while uploading; the batch cannot proceed."""

    fatal: ClassVar[bool] = True


class AttachmentNotFound(AttachmentError):
    """The target ticket does not exist or is not visible."""

    fatal: ClassVar[bool] = True


class AttachmentTransientFailure(AttachmentError):
    """Any other upload failure (5xx, rate limit, network)."""


__all__ = [
    "DiagramError",
    "DiagramSyntaxError",
    "DiagramRenderError",
    "AttachmentError",
    "AttachmentAuthFailure",
    "AttachmentNotFound",
    "AttachmentTransientFailure",
]
