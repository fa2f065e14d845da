"""Mermaid diagram handling for jira-writer.

This package contains:
- extract: split content into markdown segments and diagram blocks
- renderer: MermaidRenderer (mmdc) and RenderOptions
- pipeline: DiagramPipeline (validate -> render -> upload, batch + rollback)
- exceptions: diagram and attachment error taxonomy
"""

from jira_writer.diagrams.exceptions import (
    AttachmentAuthFailure,
    AttachmentError,
    AttachmentNotFound,
    AttachmentTransientFailure,
    DiagramError,
    DiagramRenderError,
    DiagramSyntaxError,
)
from jira_writer.diagrams.extract import (
    DiagramBlock,
    MarkdownSegment,
    extract_diagrams,
    resolve_filename,
    split_content,
)
from jira_writer.diagrams.pipeline import (
    DiagramBatchResult,
    DiagramPipeline,
    RollbackReport,
    SkippedDiagram,
    UploadedDiagram,
)
from jira_writer.diagrams.renderer import MermaidRenderer, RenderOptions

__all__ = [
    "AttachmentAuthFailure",
    "AttachmentError",
    "AttachmentNotFound",
    "AttachmentTransientFailure",
    "DiagramError",
    "DiagramRenderError",
    "DiagramSyntaxError",
    "DiagramBlock",
    "MarkdownSegment",
    "extract_diagrams",
    "resolve_filename",
    "split_content",
    "DiagramBatchResult",
    "DiagramPipeline",
    "RollbackReport",
    "SkippedDiagram",
    "UploadedDiagram",
    "MermaidRenderer",
    "RenderOptions",
]
