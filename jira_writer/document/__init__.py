"""Document model and conversions for jira-writer.

This package contains:
- model: Typed ADF tree (Doc, Heading, TaskList, ...)
- markdown: markdown_to_document()
- render: document_to_markdown()
- classifier: classify() / detect_features()
- merger: merge() with replace/append/prepend/insert_after modes
- exceptions: DocumentError, DocumentFormatError, AnchorNotFoundError
"""

from jira_writer.document.classifier import (
    ContentComplexity,
    ContentFeature,
    classify,
    detect_features,
)
from jira_writer.document.exceptions import (
    AnchorNotFoundError,
    DocumentError,
    DocumentFormatError,
)
from jira_writer.document.markdown import markdown_to_document
from jira_writer.document.merger import MergeMode, merge
from jira_writer.document.model import Doc, node_from_adf
from jira_writer.document.render import document_to_markdown

__all__ = [
    "ContentComplexity",
    "ContentFeature",
    "classify",
    "detect_features",
    "AnchorNotFoundError",
    "DocumentError",
    "DocumentFormatError",
    "markdown_to_document",
    "MergeMode",
    "merge",
    "Doc",
    "node_from_adf",
    "document_to_markdown",
]
