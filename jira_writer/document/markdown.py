"""Markdown to document conversion.

Converts the markdown dialect agents write into ticket descriptions into a
Doc fragment. Supported blocks:

- ATX headings (``#`` .. ``######``)
- Paragraphs (soft line breaks become spaces; two trailing spaces or a
  trailing backslash become a hard break)
- Bullet and ordered lists, nested by indentation
- Checkbox items (``- [ ]`` / ``* [x]``), which become task lists
- Fenced code blocks (``` or ~~~) with an optional language
- Pipe tables with a header row
- Blockquotes, horizontal rules and standalone images

Inline: ``**bold**``, ``*italic*``, ``~~strike~~``, `` `code` ``, links and
backslash escapes. Anything else is kept as plain text.

Diagram fences are not special here; callers extract them first (see
jira_writer.diagrams.extract) and convert the remaining segments.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from jira_writer.document.model import (
    CODE,
    EM,
    STRIKE,
    STRONG,
    Blockquote,
    BulletList,
    CodeBlock,
    Doc,
    HardBreak,
    Heading,
    ListItem,
    Mark,
    Media,
    MediaSingle,
    Node,
    OrderedList,
    Paragraph,
    Rule,
    Table,
    TableCell,
    TableRow,
    TaskItem,
    TaskList,
    TaskState,
    Text,
    flatten_text,
)

TAB_WIDTH = 4

_FENCE_OPEN = re.compile(r"^ {0,3}(`{3,}|~{3,})\s*([^`\s]*)(.*)$")
_HEADING = re.compile(r"^ {0,3}(#{1,6})(?:\s+(.*?))?(?:\s+#+)?\s*$")
_RULE = re.compile(r"^ {0,3}([-*_])(?:\s*\1){2,}\s*$")
_BLOCKQUOTE = re.compile(r"^ {0,3}> ?(.*)$")
_LIST_ITEM = re.compile(r"^( *)([-*+]|\d{1,9}[.)])(?:[ \t]+(.*))?$")
_CHECKBOX = re.compile(r"^\[([ xX])\](?:[ \t]+(.*))?$")
_TABLE_SEPARATOR = re.compile(r"^\s*\|?\s*:?-+:?\s*(\|\s*:?-+:?\s*)*\|?\s*$")
_IMAGE_LINE = re.compile(r"^\s*!\[([^\]]*)\]\(\s*(\S+?)(?:\s+\"[^\"]*\")?\s*\)\s*$")

_ESCAPABLE = set("\\`*_{}[]()#+-.!|~>")


def markdown_to_document(text: str) -> Doc:
    """Convert markdown text to a Doc fragment."""
    lines = text.replace("\r\n", "\n").replace("\r", "\n").expandtabs(TAB_WIDTH).split("\n")
    return Doc(content=tuple(_BlockParser(lines).parse()))


# =============================================================================
# Block parsing
# =============================================================================


@dataclass
class _ListEntry:
    """One list item while its block content is still being collected."""

    marker: str
    indent: int
    content_indent: int
    first_line: str
    body: list[str] = field(default_factory=list)

    @property
    def ordered(self) -> bool:
        return self.marker[0].isdigit()

    @property
    def checkbox(self) -> re.Match[str] | None:
        if self.ordered:
            return None
        return _CHECKBOX.match(self.first_line)


def _is_blank(line: str) -> bool:
    return not line.strip()


def _list_match(line: str) -> re.Match[str] | None:
    if _RULE.match(line):
        return None
    return _LIST_ITEM.match(line)


class _BlockParser:
    """Line-oriented block parser producing model nodes in source order."""

    def __init__(self, lines: list[str]) -> None:
        self.lines = lines
        self.pos = 0

    def parse(self) -> list[Node]:
        blocks: list[Node] = []
        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            if _is_blank(line):
                self.pos += 1
                continue
            blocks.append(self._parse_block(line))
        return blocks

    def _parse_block(self, line: str) -> Node:
        if fence := _FENCE_OPEN.match(line):
            return self._parse_fence(fence)
        if heading := _HEADING.match(line):
            self.pos += 1
            return Heading(len(heading.group(1)), tuple(parse_inline(heading.group(2) or "")))
        if _RULE.match(line):
            self.pos += 1
            return Rule()
        if _BLOCKQUOTE.match(line):
            return self._parse_blockquote()
        if _list_match(line):
            return self._parse_list()
        if self._at_table():
            return self._parse_table()
        if image := _IMAGE_LINE.match(line):
            self.pos += 1
            return MediaSingle(Media(image.group(2), alt=image.group(1) or None))
        return self._parse_paragraph()

    def _starts_block(self, line: str) -> bool:
        return bool(
            _FENCE_OPEN.match(line)
            or _HEADING.match(line)
            or _RULE.match(line)
            or _BLOCKQUOTE.match(line)
            or _list_match(line)
        )

    # -- fences ---------------------------------------------------------------

    def _parse_fence(self, fence: re.Match[str]) -> Node:
        marker = fence.group(1)
        language = fence.group(2) or None
        self.pos += 1
        body: list[str] = []
        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            stripped = line.strip()
            if stripped.startswith(marker[0] * len(marker)) and not stripped.strip(marker[0]):
                self.pos += 1
                break
            body.append(line)
            self.pos += 1
        return CodeBlock("\n".join(body), language=language)

    # -- blockquotes ----------------------------------------------------------

    def _parse_blockquote(self) -> Node:
        inner: list[str] = []
        while self.pos < len(self.lines):
            match = _BLOCKQUOTE.match(self.lines[self.pos])
            if not match:
                break
            inner.append(match.group(1))
            self.pos += 1
        return Blockquote(tuple(_BlockParser(inner).parse()))

    # -- tables ---------------------------------------------------------------

    def _at_table(self) -> bool:
        if self.pos + 1 >= len(self.lines):
            return False
        header = self.lines[self.pos]
        separator = self.lines[self.pos + 1]
        return "|" in header and "|" in separator and bool(_TABLE_SEPARATOR.match(separator))

    def _parse_table(self) -> Node:
        header_cells = _split_row(self.lines[self.pos])
        width = len(header_cells)
        self.pos += 2
        rows = [_table_row(header_cells, header=True)]
        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            if _is_blank(line) or "|" not in line:
                break
            cells = _split_row(line)
            # Uneven rows are padded or truncated to the header width
            cells = (cells + [""] * width)[:width]
            rows.append(_table_row(cells, header=False))
            self.pos += 1
        return Table(tuple(rows))

    # -- paragraphs -----------------------------------------------------------

    def _parse_paragraph(self) -> Node:
        collected: list[str] = []
        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            if _is_blank(line):
                break
            if collected and (self._starts_block(line) or self._at_table()):
                break
            collected.append(line)
            self.pos += 1
        return Paragraph(tuple(_paragraph_inlines(collected)))

    # -- lists ----------------------------------------------------------------

    def _parse_list(self) -> Node:
        first = _list_match(self.lines[self.pos])
        assert first is not None
        base_indent = len(first.group(1))
        entries: list[_ListEntry] = []
        kind: str | None = None

        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            match = _list_match(line)
            if match and len(match.group(1)) == base_indent:
                entry = _new_entry(match)
                entry_kind = _entry_kind(entry)
                if kind is not None and entry_kind != kind:
                    break
                kind = entry_kind
                entries.append(entry)
                self.pos += 1
                continue
            if not entries:
                break
            if _is_blank(line):
                # A blank line ends the list unless indented content follows
                nxt = self._next_non_blank()
                if nxt is None or _indent_of(self.lines[nxt]) < entries[-1].content_indent:
                    if nxt is not None and (m := _list_match(self.lines[nxt])):
                        if len(m.group(1)) == base_indent and _entry_kind(_new_entry(m)) == kind:
                            self.pos = nxt
                            continue
                    break
                entries[-1].body.append("")
                self.pos += 1
                continue
            indent = _indent_of(line)
            if indent > base_indent:
                entries[-1].body.append(line)
                self.pos += 1
                continue
            if self._starts_block(line):
                break
            # Lazy continuation of the item's first paragraph
            entries[-1].body.append(" " * entries[-1].content_indent + line.strip())
            self.pos += 1

        return _build_list(kind or "bullet", entries)

    def _next_non_blank(self) -> int | None:
        for index in range(self.pos, len(self.lines)):
            if not _is_blank(self.lines[index]):
                return index
        return None


def _indent_of(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def _new_entry(match: re.Match[str]) -> _ListEntry:
    indent = len(match.group(1))
    marker = match.group(2)
    content = match.group(3) or ""
    return _ListEntry(
        marker=marker,
        indent=indent,
        content_indent=indent + len(marker) + 1,
        first_line=content.strip(),
    )


def _entry_kind(entry: _ListEntry) -> str:
    if entry.ordered:
        return "ordered"
    return "task" if entry.checkbox else "bullet"


def _dedent(lines: list[str], amount: int) -> list[str]:
    result = []
    for line in lines:
        strip = min(amount, _indent_of(line))
        result.append(line[strip:])
    return result


def _build_list(kind: str, entries: list[_ListEntry]) -> Node:
    if kind == "task":
        return _build_task_list(entries)

    items: list[Node] = []
    for entry in entries:
        body_lines = [entry.first_line, *_dedent(entry.body, entry.content_indent)]
        blocks = _BlockParser(body_lines).parse()
        items.append(ListItem(tuple(blocks) or (Paragraph(),)))

    if kind == "ordered":
        start = int(entries[0].marker[:-1])
        return OrderedList(tuple(items), order=start)
    return BulletList(tuple(items))


def _build_task_list(entries: list[_ListEntry]) -> Node:
    items: list[Node] = []
    for entry in entries:
        checkbox = entry.checkbox
        assert checkbox is not None
        state = TaskState.DONE if checkbox.group(1) in "xX" else TaskState.TODO
        inline = parse_inline(checkbox.group(2) or "")

        # ADF task items hold inline content only: nested task lists follow the
        # item as siblings, any other nested text is appended after a hard break
        nested: list[Node] = []
        for block in _BlockParser(_dedent(entry.body, entry.content_indent)).parse():
            if isinstance(block, TaskList):
                nested.append(block)
            elif isinstance(block, Paragraph) and not nested:
                inline = [*inline, HardBreak(), *block.content]
            else:
                inline = [*inline, HardBreak(), Text(flatten_text(block))]
        items.append(TaskItem(tuple(_merge_texts(inline)), state=state))
        items.extend(nested)
    return TaskList(tuple(items))


def _split_row(line: str) -> list[str]:
    row = line.strip()
    if row.startswith("|"):
        row = row[1:]
    if row.endswith("|") and not row.endswith("\\|"):
        row = row[:-1]
    cells: list[str] = []
    current: list[str] = []
    i = 0
    while i < len(row):
        char = row[i]
        if char == "\\" and i + 1 < len(row) and row[i + 1] == "|":
            current.append("|")
            i += 2
            continue
        if char == "|":
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1
    cells.append("".join(current).strip())
    return cells


def _table_row(cells: list[str], header: bool) -> TableRow:
    return TableRow(
        tuple(
            TableCell((Paragraph(tuple(parse_inline(cell))),), header=header)
            for cell in cells
        )
    )


def _paragraph_inlines(lines: list[str]) -> list[Node]:
    nodes: list[Node] = []
    for index, raw in enumerate(lines):
        last = index == len(lines) - 1
        hard = False
        line = raw.lstrip()
        if not last and raw.endswith("  "):
            hard = True
        elif not last and raw.rstrip().endswith("\\") and not raw.rstrip().endswith("\\\\"):
            hard = True
            line = line.rstrip()[:-1]
        nodes.extend(parse_inline(line.rstrip()))
        if not last:
            nodes.append(HardBreak() if hard else Text(" "))
    return _merge_texts(nodes)


# =============================================================================
# Inline parsing
# =============================================================================

_EMPHASIS = (
    ("**", STRONG),
    ("__", STRONG),
    ("~~", STRIKE),
    ("*", EM),
    ("_", EM),
)


def parse_inline(text: str, marks: frozenset[Mark] = frozenset()) -> list[Node]:
    """Parse inline markdown into text nodes carrying marks."""
    nodes: list[Node] = []
    buffer: list[str] = []
    i = 0

    def flush() -> None:
        if buffer:
            nodes.append(Text("".join(buffer), marks))
            buffer.clear()

    while i < len(text):
        char = text[i]

        if char == "\\" and i + 1 < len(text) and text[i + 1] in _ESCAPABLE:
            buffer.append(text[i + 1])
            i += 2
            continue

        if char == "`":
            run = len(text[i:]) - len(text[i:].lstrip("`"))
            ticks = text[i : i + run]
            end = text.find(ticks, i + run)
            if end != -1:
                flush()
                code = text[i + run : end]
                if code.startswith(" ") and code.endswith(" ") and code.strip():
                    code = code[1:-1]
                links = frozenset(m for m in marks if m.href is not None)
                nodes.append(Text(code, links | {CODE}))
                i = end + run
                continue
            buffer.append(ticks)
            i += run
            continue

        if char == "[" or (char == "!" and text.startswith("![", i)):
            link = _match_link(text, i + (1 if char == "!" else 0))
            if link is not None:
                label, href, end = link
                flush()
                if char == "!":
                    # Inline images have no inline ADF form; keep a link to the image
                    nodes.extend(parse_inline(label or href, marks | {Mark.link(href)}))
                else:
                    nodes.extend(parse_inline(label, marks | {Mark.link(href)}))
                i = end
                continue

        matched = False
        for delimiter, mark in _EMPHASIS:
            if not text.startswith(delimiter, i):
                continue
            end = _find_closing(text, i, delimiter)
            if end is None:
                continue
            flush()
            nodes.extend(parse_inline(text[i + len(delimiter) : end], marks | {mark}))
            i = end + len(delimiter)
            matched = True
            break
        if matched:
            continue

        buffer.append(char)
        i += 1

    flush()
    return _merge_texts(nodes)


def _find_closing(text: str, start: int, delimiter: str) -> int | None:
    """Locate the closing delimiter for an emphasis span opened at start."""
    size = len(delimiter)
    inner_start = start + size
    if inner_start >= len(text) or text[inner_start].isspace():
        return None
    if delimiter[0] == "_" and start > 0 and text[start - 1].isalnum():
        return None
    search = inner_start + 1
    while True:
        end = text.find(delimiter, search)
        if end == -1:
            return None
        if text[end - 1] == "\\":
            search = end + 1
            continue
        # Single delimiters must not be half of a double one
        if size == 1 and text.startswith(delimiter * 2, end):
            search = end + 2
            continue
        if text[end - 1].isspace():
            search = end + 1
            continue
        after = end + size
        if delimiter[0] == "_" and after < len(text) and text[after].isalnum():
            search = end + 1
            continue
        return end


def _match_link(text: str, start: int) -> tuple[str, str, int] | None:
    """Match ``[label](href)`` at start; returns (label, href, end index)."""
    depth = 0
    i = start
    while i < len(text):
        char = text[i]
        if char == "\\":
            i += 2
            continue
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                break
        i += 1
    else:
        return None
    label_end = i
    if label_end + 1 >= len(text) or text[label_end + 1] != "(":
        return None
    close = _find_closing_paren(text, label_end + 2)
    if close == -1:
        return None
    target = text[label_end + 2 : close].strip()
    if not target:
        return None
    href = target.split()[0].strip("<>")
    return text[start + 1 : label_end], href, close + 1


def _find_closing_paren(text: str, start: int) -> int:
    """Index of the ")" closing a link target that starts at start, or -1.

    Parentheses inside the target must be balanced, as in ``https://x/y_(z)``.
    """
    depth = 0
    i = start
    while i < len(text):
        char = text[i]
        if char == "\\":
            i += 2
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            if depth == 0:
                return i
            depth -= 1
        i += 1
    return -1


def _merge_texts(nodes: list[Node]) -> list[Node]:
    """Join adjacent text nodes with identical marks and drop empty ones."""
    merged: list[Node] = []
    for node in nodes:
        if isinstance(node, Text):
            if not node.text:
                continue
            previous = merged[-1] if merged else None
            if isinstance(previous, Text) and previous.marks == node.marks:
                merged[-1] = Text(previous.text + node.text, node.marks)
                continue
        merged.append(node)
    return merged


__all__ = [
    "markdown_to_document",
    "parse_inline",
]
