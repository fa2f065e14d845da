"""Merge a new fragment into an existing document.

Modes:
    replace       result is the fragment alone
    append        existing content followed by the fragment
    prepend       fragment followed by existing content
    insert_after  fragment spliced immediately after a top-level heading

For insert_after the fragment goes directly after the heading node, before
its first following sibling; the section is not scanned for its end.
Inputs are never mutated and task identifiers in the fragment are always
regenerated, so ids stay unique across the merged document.
"""

from __future__ import annotations

import logging
from enum import Enum

from jira_writer.document.exceptions import AnchorNotFoundError
from jira_writer.document.model import Doc, flatten_text, heading_level, regenerate_local_ids

logger = logging.getLogger(__name__)


class MergeMode(Enum):
    """How a fragment is combined with the existing description."""

    REPLACE = "replace"
    APPEND = "append"
    PREPEND = "prepend"
    INSERT_AFTER = "insert_after"


def _normalize(text: str) -> str:
    return " ".join(text.split()).casefold()


def top_level_headings(doc: Doc) -> list[str]:
    """Flattened text of each top-level heading, in document order."""
    return [flatten_text(node).strip() for node in doc.content if heading_level(node) is not None]


def find_heading(doc: Doc, anchor: str) -> int | None:
    """Index of the first top-level heading matching anchor, or None."""
    wanted = _normalize(anchor)
    for index, node in enumerate(doc.content):
        if heading_level(node) is not None and _normalize(flatten_text(node)) == wanted:
            return index
    return None


def merge(
    existing: Doc,
    fragment: Doc,
    mode: MergeMode,
    anchor: str | None = None,
) -> Doc:
    """Merge fragment into existing according to mode.

    Args:
        existing: The current remote document
        fragment: Newly converted content
        mode: Merge mode
        anchor: Heading text, required for INSERT_AFTER

    Returns:
        A new Doc

    Raises:
        AnchorNotFoundError: If INSERT_AFTER finds no matching heading
        ValueError: If INSERT_AFTER is requested without an anchor
    """
    fresh = regenerate_local_ids(fragment)

    if mode is MergeMode.REPLACE:
        return Doc(content=fresh.content)
    if mode is MergeMode.APPEND:
        return Doc(content=existing.content + fresh.content)
    if mode is MergeMode.PREPEND:
        return Doc(content=fresh.content + existing.content)

    if anchor is None or not anchor.strip():
        raise ValueError("insert_after requires a heading anchor")
    index = find_heading(existing, anchor)
    if index is None:
        raise AnchorNotFoundError(anchor, top_level_headings(existing))
    logger.debug("Inserting %d blocks after heading %d", len(fresh.content), index)
    return Doc(
        content=existing.content[: index + 1] + fresh.content + existing.content[index + 1 :]
    )


__all__ = [
    "MergeMode",
    "merge",
    "find_heading",
    "top_level_headings",
]
