"""Render a document back to markdown.

Used to build the payload for the markdown-only fallback API and to check
that conversion preserves structure: heading levels, list nesting and
checkbox states survive markdown -> Doc -> markdown -> Doc.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from jira_writer.document.model import (
    Blockquote,
    BulletList,
    CodeBlock,
    Doc,
    HardBreak,
    Heading,
    ListItem,
    MarkType,
    MediaSingle,
    Node,
    OrderedList,
    Paragraph,
    RawNode,
    Rule,
    Table,
    TableCell,
    TableRow,
    TaskItem,
    TaskList,
    TaskState,
    Text,
    flatten_text,
    iter_nodes,
    node_from_adf,
)

_INLINE_SPECIALS = re.compile(r"([\\`*_\[\]~|])")
_LINE_START_SPECIALS = re.compile(r"^(\s*)([#>+-]|\d+(?=[.)]))")


def markdown_safe(doc: Doc) -> bool:
    """Whether rendering to markdown loses nothing a ticket reader would notice.

    Task lists, media and unmodelled nodes cannot be expressed in the
    markdown the fallback API accepts.
    """
    return not any(
        isinstance(node, TaskList | TaskItem | MediaSingle | RawNode) for node in iter_nodes(doc)
    )


def document_to_markdown(doc: Doc) -> str:
    """Render a Doc as markdown text (no trailing newline)."""
    return _render_blocks(doc.content)


def _render_blocks(blocks: Iterable[Node]) -> str:
    return "\n\n".join(rendered for block in blocks if (rendered := render_block(block)))


def render_block(node: Node) -> str:
    """Render a single block node as markdown."""
    if isinstance(node, Heading):
        return "#" * node.level + " " + render_inline(node.content)
    if isinstance(node, Paragraph):
        return _escape_line_start(render_inline(node.content))
    if isinstance(node, BulletList):
        return "\n".join(_render_item(item, "- ") for item in node.items)
    if isinstance(node, OrderedList):
        return "\n".join(
            _render_item(item, f"{node.order + i}. ") for i, item in enumerate(node.items)
        )
    if isinstance(node, TaskList):
        return _render_task_list(node)
    if isinstance(node, CodeBlock):
        return _render_code(node)
    if isinstance(node, Table):
        return _render_table(node)
    if isinstance(node, MediaSingle):
        alt = (node.media.alt or "").replace("]", "\\]")
        return f"![{alt}]({node.media.url})"
    if isinstance(node, Rule):
        return "---"
    if isinstance(node, Blockquote):
        inner = _render_blocks(node.content)
        return "\n".join(f"> {line}" if line else ">" for line in inner.split("\n"))
    if isinstance(node, RawNode):
        return _render_raw(node)
    return render_inline([node])


def _indent(text: str, prefix: str) -> str:
    """Put prefix before the first line and matching spaces before the rest."""
    pad = " " * len(prefix)
    lines = text.split("\n")
    return "\n".join(
        [prefix + lines[0]] + [pad + line if line else "" for line in lines[1:]]
    )


def _render_item(item: Node, marker: str) -> str:
    if not isinstance(item, ListItem):
        return _indent(render_block(item), marker)
    parts: list[str] = []
    for block in item.content:
        rendered = render_block(block)
        if not parts:
            parts.append(rendered)
        elif isinstance(block, BulletList | OrderedList | TaskList):
            parts.append("\n" + rendered)
        else:
            parts.append("\n\n" + rendered)
    return _indent("".join(parts), marker)


def _render_task_list(node: TaskList) -> str:
    lines: list[str] = []
    for item in node.items:
        if isinstance(item, TaskList):
            # Nested lists belong to the preceding item
            lines.append(_indent(_render_task_list(item), "  "))
        elif isinstance(item, TaskItem):
            box = "[x]" if item.state is TaskState.DONE else "[ ]"
            lines.append(_indent(_render_task_content(item.content), f"- {box} "))
        else:
            lines.append(_indent(render_block(item), "- "))
    return "\n".join(lines)


def _render_task_content(content: tuple[Node, ...]) -> str:
    # The first hard break starts an indented continuation paragraph, later
    # ones become backslash breaks inside it
    chunks: list[list[Node]] = [[]]
    for node in content:
        if isinstance(node, HardBreak):
            chunks.append([])
        else:
            chunks[-1].append(node)
    head = render_inline(chunks[0])
    if len(chunks) == 1:
        return head
    tail = "\\\n".join(render_inline(chunk) for chunk in chunks[1:])
    return head + "\n" + _escape_line_start(tail)


def _render_code(node: CodeBlock) -> str:
    longest = max((len(run) for run in re.findall(r"`{3,}", node.text)), default=2)
    fence = "`" * max(3, longest + 1)
    return f"{fence}{node.language or ''}\n{node.text}\n{fence}"


def _cell_text(cell: Node) -> str:
    blocks = cell.content if isinstance(cell, TableCell) else (cell,)
    parts = [
        render_inline(block.content) if isinstance(block, Paragraph) else flatten_text(block)
        for block in blocks
    ]
    return " ".join(part for part in parts if part).replace("\n", " ")


def _render_table(node: Table) -> str:
    rows = [row for row in node.rows if isinstance(row, TableRow)]
    if not rows:
        return ""
    width = max(len(row.cells) for row in rows)
    lines: list[str] = []
    for index, row in enumerate(rows):
        cells = [_cell_text(cell) for cell in row.cells]
        cells += [""] * (width - len(cells))
        lines.append("| " + " | ".join(cells) + " |")
        if index == 0:
            lines.append("|" + "|".join(["---"] * width) + "|")
    return "\n".join(lines)


def _render_raw(node: RawNode) -> str:
    content = node.data.get("content")
    if isinstance(content, list) and content and node.raw_type not in ("text", "hardBreak"):
        children = [node_from_adf(child) for child in content]
        if all(not isinstance(child, Text | HardBreak | RawNode) for child in children):
            return _render_blocks(children)
    return _escape_inline(flatten_text(node))


# =============================================================================
# Inline rendering
# =============================================================================


def _escape_inline(text: str) -> str:
    return _INLINE_SPECIALS.sub(r"\\\1", text)


def _escape_line_start(text: str) -> str:
    # Paragraph lines only follow hard breaks, each may look like a block marker
    return "\n".join(_escape_first(line) for line in text.split("\n"))


def _escape_first(line: str) -> str:
    match = _LINE_START_SPECIALS.match(line)
    if not match:
        return line
    prefix, token = match.group(1), match.group(2)
    if token.isdigit():
        # "1." at line start would open an ordered list
        end = match.end()
        return line[:end] + "\\" + line[end:]
    return prefix + "\\" + line[len(prefix) :]


def _render_text(node: Text) -> str:
    marks = {mark.type: mark for mark in node.marks}
    if MarkType.CODE in marks:
        ticks = "``" if "`" in node.text else "`"
        pad = " " if node.text.startswith("`") or node.text.endswith("`") else ""
        body = f"{ticks}{pad}{node.text}{pad}{ticks}"
    else:
        stripped = node.text.strip()
        if not stripped:
            return node.text
        leading = node.text[: len(node.text) - len(node.text.lstrip())]
        trailing = node.text[len(node.text.rstrip()) :]
        body = _escape_inline(stripped)
        if MarkType.STRIKE in marks:
            body = f"~~{body}~~"
        if MarkType.EM in marks:
            body = f"*{body}*"
        if MarkType.STRONG in marks:
            body = f"**{body}**"
        body = leading + body + trailing
    link = marks.get(MarkType.LINK)
    if link is not None:
        body = f"[{body}]({link.href})"
    return body


def render_inline(nodes: Iterable[Node]) -> str:
    """Render inline nodes; hard breaks become backslash line breaks."""
    parts: list[str] = []
    for node in nodes:
        if isinstance(node, Text):
            parts.append(_render_text(node))
        elif isinstance(node, HardBreak):
            parts.append("\\\n")
        elif isinstance(node, RawNode):
            parts.append(_escape_inline(flatten_text(node)))
        else:
            parts.append(_escape_inline(flatten_text(node)))
    return "".join(parts)


__all__ = [
    "markdown_safe",
    "document_to_markdown",
    "render_block",
    "render_inline",
]
