"""Split raw content into markdown segments and diagram fence blocks.

A diagram fence is a fenced code block whose language is ``mermaid``. The
fence info string may name the attachment::

    ```mermaid filename=login-flow.png
    sequenceDiagram
        User->>App: Login
    ```

Unnamed diagrams get ``diagram-{n}.png`` (1-based, in source order).
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from jira_writer.document.classifier import DIAGRAM_LANGUAGE

_FENCE_OPEN = re.compile(r"^ {0,3}(`{3,}|~{3,})\s*([^`\s]*)(.*)$")
_FILENAME_ATTR = re.compile(r"""filename\s*=\s*(?:"([^"]+)"|'([^']+)'|(\S+))""")


@dataclass(frozen=True)
class DiagramBlock:
    """A diagram extracted from the content.

    Attributes:
        index: 0-based position among the diagrams of the content
        source: Diagram source without the fences
        filename: Attachment filename (always ends in .png)
    """

    index: int
    source: str
    filename: str


@dataclass(frozen=True)
class MarkdownSegment:
    """Plain markdown between diagram fences."""

    text: str


Segment = MarkdownSegment | DiagramBlock


def resolve_filename(desired: str | None, index: int) -> str:
    """Return the attachment filename for a diagram, enforcing a .png suffix."""
    name = (desired or "").strip() or f"diagram-{index + 1}.png"
    name = name.replace("/", "-").replace("\\", "-")
    if not name.lower().endswith(".png"):
        name = f"{name}.png"
    return name


def _filename_from_info(info: str) -> str | None:
    match = _FILENAME_ATTR.search(info)
    if not match:
        return None
    return next(group for group in match.groups() if group)


def split_content(raw: str) -> list[Segment]:
    """Split content into ordered markdown segments and diagram blocks.

    Non-diagram fences are left inside the markdown segments untouched.
    An unterminated diagram fence runs to the end of the content.
    """
    segments: list[Segment] = []
    pending: list[str] = []
    lines = raw.replace("\r\n", "\n").split("\n")
    index = 0
    i = 0

    def flush() -> None:
        text = "\n".join(pending)
        if text.strip():
            segments.append(MarkdownSegment(text))
        pending.clear()

    while i < len(lines):
        line = lines[i]
        fence = _FENCE_OPEN.match(line)
        if not fence:
            pending.append(line)
            i += 1
            continue

        marker = fence.group(1)
        body: list[str] = []
        j = i + 1
        while j < len(lines):
            stripped = lines[j].strip()
            if stripped.startswith(marker) and not stripped.strip(marker[0]):
                break
            body.append(lines[j])
            j += 1

        if fence.group(2).lower() == DIAGRAM_LANGUAGE:
            flush()
            filename = resolve_filename(_filename_from_info(fence.group(3)), index)
            segments.append(DiagramBlock(index, "\n".join(body).strip("\n"), filename))
            index += 1
        else:
            pending.extend(lines[i : j + 1])
        i = j + 1

    flush()
    return segments


def extract_diagrams(raw: str) -> list[DiagramBlock]:
    """Return only the diagram blocks of the content, in order."""
    return [segment for segment in split_content(raw) if isinstance(segment, DiagramBlock)]


__all__ = [
    "DiagramBlock",
    "MarkdownSegment",
    "Segment",
    "resolve_filename",
    "split_content",
    "extract_diagrams",
]
