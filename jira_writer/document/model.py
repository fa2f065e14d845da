"""Typed tree for Atlassian Document Format (ADF).

This module defines:
- Mark and MarkType for inline formatting (strong, em, code, strike, link)
- Block and inline node dataclasses (Doc, Heading, Paragraph, lists,
  task lists, code blocks, tables, media, rules, blockquotes)
- RawNode for ADF content this model does not understand
- Tree helpers: node_from_adf(), regenerate_local_ids(), collect_local_ids(),
  iter_nodes(), flatten_text()

All nodes are frozen dataclasses with tuple children, so a fragment handed
to the merger cannot be changed underneath it. Task list identifiers are
excluded from equality: two trees with the same content compare equal even
when their localIds differ.

Lossless parsing:
    node_from_adf() only builds a typed node when that node serializes back
    to exactly the input. Anything else (unknown node types, extra attrs,
    unsupported marks) is kept verbatim as a RawNode, which is what lets
    the merger splice new content into a remote description without
    corrupting the parts it does not model.
"""

from __future__ import annotations

import copy
import json
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, ClassVar, TypeVar

from jira_writer.document.exceptions import DocumentFormatError

ADF_VERSION = 1


def new_local_id() -> str:
    """Generate a process-unique identifier for task lists and task items."""
    return str(uuid.uuid4())


class MarkType(Enum):
    """Inline formatting marks supported by the model."""

    STRONG = "strong"
    EM = "em"
    CODE = "code"
    STRIKE = "strike"
    LINK = "link"


# Serialization order for marks (ADF does not care, but output should be stable)
_MARK_ORDER = {mark_type: i for i, mark_type in enumerate(MarkType)}


@dataclass(frozen=True)
class Mark:
    """An inline mark. Only LINK carries an href."""

    type: MarkType
    href: str | None = None

    def to_adf(self) -> dict[str, Any]:
        if self.type is MarkType.LINK:
            return {"type": "link", "attrs": {"href": self.href or ""}}
        return {"type": self.type.value}

    @classmethod
    def link(cls, href: str) -> Mark:
        return cls(MarkType.LINK, href)


STRONG = Mark(MarkType.STRONG)
EM = Mark(MarkType.EM)
CODE = Mark(MarkType.CODE)
STRIKE = Mark(MarkType.STRIKE)


class TaskState(Enum):
    """Checkbox state of a task item."""

    TODO = "TODO"
    DONE = "DONE"


class MediaLayout(Enum):
    """Layout options for a mediaSingle node."""

    CENTER = "center"
    WIDE = "wide"
    FULL_WIDTH = "full-width"
    ALIGN_START = "align-start"
    ALIGN_END = "align-end"
    WRAP_LEFT = "wrap-left"
    WRAP_RIGHT = "wrap-right"


class Node(ABC):
    """Base class for every document node."""

    adf_type: ClassVar[str]

    @abstractmethod
    def to_adf(self) -> dict[str, Any]:
        """Serialize this node to an ADF dictionary."""


# =============================================================================
# Inline nodes
# =============================================================================


@dataclass(frozen=True)
class Text(Node):
    """A run of text with a set of marks.

    Marks are a frozenset, so applying the same mark twice is a no-op and
    mark order never affects equality.
    """

    adf_type: ClassVar[str] = "text"

    text: str
    marks: frozenset[Mark] = frozenset()

    def to_adf(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "text", "text": self.text}
        if self.marks:
            ordered = sorted(self.marks, key=lambda m: (_MARK_ORDER[m.type], m.href or ""))
            data["marks"] = [mark.to_adf() for mark in ordered]
        return data

    def with_mark(self, mark: Mark) -> Text:
        return replace(self, marks=self.marks | {mark})


@dataclass(frozen=True)
class HardBreak(Node):
    """Explicit line break inside a paragraph or heading."""

    adf_type: ClassVar[str] = "hardBreak"

    def to_adf(self) -> dict[str, Any]:
        return {"type": "hardBreak"}


# =============================================================================
# Block nodes
# =============================================================================


@dataclass(frozen=True)
class Paragraph(Node):
    adf_type: ClassVar[str] = "paragraph"

    content: tuple[Node, ...] = ()

    def to_adf(self) -> dict[str, Any]:
        return {"type": "paragraph", "content": [n.to_adf() for n in self.content]}


@dataclass(frozen=True)
class Heading(Node):
    adf_type: ClassVar[str] = "heading"

    level: int
    content: tuple[Node, ...] = ()

    def __post_init__(self) -> None:
        if not 1 <= self.level <= 6:
            raise ValueError(f"Heading level must be between 1 and 6, got {self.level}")

    def to_adf(self) -> dict[str, Any]:
        return {
            "type": "heading",
            "attrs": {"level": self.level},
            "content": [n.to_adf() for n in self.content],
        }


@dataclass(frozen=True)
class ListItem(Node):
    adf_type: ClassVar[str] = "listItem"

    content: tuple[Node, ...] = ()

    def to_adf(self) -> dict[str, Any]:
        return {"type": "listItem", "content": [n.to_adf() for n in self.content]}


@dataclass(frozen=True)
class BulletList(Node):
    adf_type: ClassVar[str] = "bulletList"

    items: tuple[Node, ...] = ()

    def to_adf(self) -> dict[str, Any]:
        return {"type": "bulletList", "content": [n.to_adf() for n in self.items]}


@dataclass(frozen=True)
class OrderedList(Node):
    adf_type: ClassVar[str] = "orderedList"

    items: tuple[Node, ...] = ()
    order: int = 1

    def to_adf(self) -> dict[str, Any]:
        return {
            "type": "orderedList",
            "attrs": {"order": self.order},
            "content": [n.to_adf() for n in self.items],
        }


@dataclass(frozen=True)
class TaskItem(Node):
    """A checkbox. Content is inline only (ADF does not allow blocks here)."""

    adf_type: ClassVar[str] = "taskItem"

    content: tuple[Node, ...] = ()
    state: TaskState = TaskState.TODO
    local_id: str = field(default_factory=new_local_id, compare=False)

    def to_adf(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "taskItem",
            "attrs": {"localId": self.local_id, "state": self.state.value},
        }
        if self.content:
            data["content"] = [n.to_adf() for n in self.content]
        return data


@dataclass(frozen=True)
class TaskList(Node):
    """A list of task items; nested task lists follow the item they belong to."""

    adf_type: ClassVar[str] = "taskList"

    items: tuple[Node, ...] = ()
    local_id: str = field(default_factory=new_local_id, compare=False)

    def to_adf(self) -> dict[str, Any]:
        return {
            "type": "taskList",
            "attrs": {"localId": self.local_id},
            "content": [n.to_adf() for n in self.items],
        }


@dataclass(frozen=True)
class CodeBlock(Node):
    adf_type: ClassVar[str] = "codeBlock"

    text: str
    language: str | None = None

    def to_adf(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "codeBlock"}
        if self.language:
            data["attrs"] = {"language": self.language}
        if self.text:
            data["content"] = [{"type": "text", "text": self.text}]
        return data


@dataclass(frozen=True)
class TableCell(Node):
    """A table cell; header cells serialize as ADF tableHeader."""

    adf_type: ClassVar[str] = "tableCell"

    content: tuple[Node, ...] = ()
    header: bool = False

    def to_adf(self) -> dict[str, Any]:
        # ADF requires at least one block inside a cell
        blocks = self.content or (Paragraph(),)
        return {
            "type": "tableHeader" if self.header else "tableCell",
            "attrs": {},
            "content": [n.to_adf() for n in blocks],
        }


@dataclass(frozen=True)
class TableRow(Node):
    adf_type: ClassVar[str] = "tableRow"

    cells: tuple[Node, ...] = ()

    def to_adf(self) -> dict[str, Any]:
        return {"type": "tableRow", "content": [n.to_adf() for n in self.cells]}


@dataclass(frozen=True)
class Table(Node):
    adf_type: ClassVar[str] = "table"

    rows: tuple[Node, ...] = ()

    @property
    def column_count(self) -> int:
        first = self.rows[0] if self.rows else None
        return len(first.cells) if isinstance(first, TableRow) else 0

    def to_adf(self) -> dict[str, Any]:
        return {
            "type": "table",
            "attrs": {"isNumberColumnEnabled": False, "layout": "default"},
            "content": [n.to_adf() for n in self.rows],
        }


@dataclass(frozen=True)
class Media(Node):
    """External media reference (a URL that must resolve when submitted)."""

    adf_type: ClassVar[str] = "media"

    url: str
    alt: str | None = None

    def to_adf(self) -> dict[str, Any]:
        attrs: dict[str, Any] = {"type": "external", "url": self.url}
        if self.alt:
            attrs["alt"] = self.alt
        return {"type": "media", "attrs": attrs}


@dataclass(frozen=True)
class MediaSingle(Node):
    adf_type: ClassVar[str] = "mediaSingle"

    media: Media
    layout: MediaLayout = MediaLayout.CENTER

    def to_adf(self) -> dict[str, Any]:
        return {
            "type": "mediaSingle",
            "attrs": {"layout": self.layout.value},
            "content": [self.media.to_adf()],
        }


@dataclass(frozen=True)
class Rule(Node):
    adf_type: ClassVar[str] = "rule"

    def to_adf(self) -> dict[str, Any]:
        return {"type": "rule"}


@dataclass(frozen=True)
class Blockquote(Node):
    adf_type: ClassVar[str] = "blockquote"

    content: tuple[Node, ...] = ()

    def to_adf(self) -> dict[str, Any]:
        return {"type": "blockquote", "content": [n.to_adf() for n in self.content]}


@dataclass(frozen=True)
class RawNode(Node):
    """ADF content preserved verbatim (block or inline).

    Returned by node_from_adf() for anything the typed model cannot
    reproduce exactly.
    """

    adf_type: ClassVar[str] = "raw"

    data: Mapping[str, Any]

    @property
    def raw_type(self) -> str:
        return str(self.data.get("type", ""))

    def to_adf(self) -> dict[str, Any]:
        return copy.deepcopy(dict(self.data))


@dataclass(frozen=True)
class Doc(Node):
    """Root node: an ordered sequence of block nodes."""

    adf_type: ClassVar[str] = "doc"

    content: tuple[Node, ...] = ()

    def to_adf(self) -> dict[str, Any]:
        return {
            "type": "doc",
            "version": ADF_VERSION,
            "content": [n.to_adf() for n in self.content],
        }

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_adf(), indent=indent, ensure_ascii=False)

    @property
    def is_empty(self) -> bool:
        return not self.content

    @classmethod
    def from_adf(cls, data: Mapping[str, Any] | None) -> Doc:
        """Parse an ADF document. None (an empty Jira description) gives an empty Doc.

        Raises:
            DocumentFormatError: If data is not an ADF doc node
        """
        if data is None:
            return cls()
        if not isinstance(data, Mapping) or data.get("type") != "doc":
            raise DocumentFormatError(
                "Expected an ADF document with type 'doc'",
                node_type=str(data.get("type")) if isinstance(data, Mapping) else None,
            )
        content = data.get("content") or []
        if not isinstance(content, list):
            raise DocumentFormatError("ADF document content must be a list", node_type="doc")
        return cls(content=tuple(node_from_adf(child) for child in content))


# =============================================================================
# ADF parsing
# =============================================================================

_SIMPLE_MARKS = {m.value: Mark(m) for m in MarkType if m is not MarkType.LINK}


def _parse_marks(raw_marks: list[Any]) -> frozenset[Mark] | None:
    marks: set[Mark] = set()
    for raw in raw_marks:
        if not isinstance(raw, Mapping):
            return None
        mark_type = raw.get("type")
        if mark_type == "link":
            href = (raw.get("attrs") or {}).get("href")
            if not isinstance(href, str):
                return None
            marks.add(Mark.link(href))
        elif mark_type in _SIMPLE_MARKS:
            marks.add(_SIMPLE_MARKS[mark_type])
        else:
            return None
    return frozenset(marks)


def _children(data: Mapping[str, Any]) -> tuple[Node, ...]:
    content = data.get("content") or []
    if not isinstance(content, list):
        raise DocumentFormatError("ADF node content must be a list", node_type=data.get("type"))
    return tuple(node_from_adf(child) for child in content)


def _build_node(data: Mapping[str, Any]) -> Node | None:
    """Build a typed node for data, or None when the type is not modelled."""
    node_type = data.get("type")
    attrs = data.get("attrs") or {}

    if node_type == "text":
        marks = _parse_marks(data.get("marks") or [])
        text = data.get("text")
        if marks is None or not isinstance(text, str):
            return None
        return Text(text, marks)
    if node_type == "hardBreak":
        return HardBreak()
    if node_type == "paragraph":
        return Paragraph(_children(data))
    if node_type == "heading":
        level = attrs.get("level")
        if not isinstance(level, int) or not 1 <= level <= 6:
            return None
        return Heading(level, _children(data))
    if node_type == "listItem":
        return ListItem(_children(data))
    if node_type == "bulletList":
        return BulletList(_children(data))
    if node_type == "orderedList":
        order = attrs.get("order", 1)
        return OrderedList(_children(data), order=order if isinstance(order, int) else 1)
    if node_type == "taskList":
        return TaskList(_children(data), local_id=str(attrs.get("localId", "")))
    if node_type == "taskItem":
        try:
            state = TaskState(attrs.get("state", "TODO"))
        except ValueError:
            return None
        return TaskItem(_children(data), state=state, local_id=str(attrs.get("localId", "")))
    if node_type == "codeBlock":
        parts = [c.get("text", "") for c in data.get("content") or [] if isinstance(c, Mapping)]
        return CodeBlock("".join(parts), language=attrs.get("language"))
    if node_type in ("tableCell", "tableHeader"):
        return TableCell(_children(data), header=node_type == "tableHeader")
    if node_type == "tableRow":
        return TableRow(_children(data))
    if node_type == "table":
        return Table(_children(data))
    if node_type == "media" and attrs.get("type") == "external":
        return Media(str(attrs.get("url", "")), alt=attrs.get("alt"))
    if node_type == "mediaSingle":
        children = _children(data)
        if len(children) != 1 or not isinstance(children[0], Media):
            return None
        try:
            layout = MediaLayout(attrs.get("layout", "center"))
        except ValueError:
            return None
        return MediaSingle(children[0], layout=layout)
    if node_type == "rule":
        return Rule()
    if node_type == "blockquote":
        return Blockquote(_children(data))
    return None


def node_from_adf(data: Mapping[str, Any]) -> Node:
    """Parse one ADF node, falling back to RawNode whenever parsing would be lossy.

    Raises:
        DocumentFormatError: If data is not a mapping with a type
    """
    if not isinstance(data, Mapping) or not isinstance(data.get("type"), str):
        raise DocumentFormatError("ADF node must be an object with a 'type'")
    node = _build_node(data)
    if node is None or node.to_adf() != data:
        return RawNode(copy.deepcopy(dict(data)))
    return node


# =============================================================================
# Tree helpers
# =============================================================================


def _child_fields(node: Node) -> Iterator[tuple[str, Any]]:
    for f in fields(node):  # type: ignore[arg-type]
        value = getattr(node, f.name)
        if isinstance(value, Node) or (
            isinstance(value, tuple) and value and isinstance(value[0], Node)
        ):
            yield f.name, value


def transform(node: Node, fn: Callable[[Node], Node]) -> Node:
    """Rebuild a tree bottom-up, applying fn to every node. Inputs are not mutated."""
    changes: dict[str, Any] = {}
    for name, value in _child_fields(node):
        if isinstance(value, Node):
            changes[name] = transform(value, fn)
        else:
            changes[name] = tuple(transform(child, fn) for child in value)
    rebuilt = replace(node, **changes) if changes else node  # type: ignore[type-var]
    return fn(rebuilt)


def iter_nodes(node: Node) -> Iterator[Node]:
    """Yield node and all typed descendants, depth-first in document order."""
    yield node
    for _, value in _child_fields(node):
        children = (value,) if isinstance(value, Node) else value
        for child in children:
            yield from iter_nodes(child)


N = TypeVar("N", bound=Node)


def regenerate_local_ids(node: N) -> N:
    """Return a copy of node where every task list and task item has a fresh localId."""

    def refresh(n: Node) -> Node:
        if isinstance(n, TaskList | TaskItem):
            return replace(n, local_id=new_local_id())
        return n

    result: N = transform(node, refresh)  # type: ignore[assignment]
    return result


def _raw_local_ids(data: Any) -> Iterator[str]:
    if isinstance(data, Mapping):
        if data.get("type") in ("taskList", "taskItem"):
            local_id = (data.get("attrs") or {}).get("localId")
            if local_id:
                yield str(local_id)
        for child in data.get("content") or []:
            yield from _raw_local_ids(child)


def collect_local_ids(node: Node) -> list[str]:
    """List every taskList/taskItem localId in the tree, including raw content."""
    ids: list[str] = []
    for n in iter_nodes(node):
        if isinstance(n, TaskList | TaskItem):
            ids.append(n.local_id)
        elif isinstance(n, RawNode):
            ids.extend(_raw_local_ids(n.data))
    return ids


def _raw_text(data: Any) -> str:
    if not isinstance(data, Mapping):
        return ""
    if data.get("type") == "text":
        return str(data.get("text", ""))
    if data.get("type") == "hardBreak":
        return " "
    return "".join(_raw_text(child) for child in data.get("content") or [])


def flatten_text(node: Node) -> str:
    """Concatenate the text of a node and its descendants."""
    if isinstance(node, Text):
        return node.text
    if isinstance(node, HardBreak):
        return " "
    if isinstance(node, RawNode):
        return _raw_text(node.data)
    if isinstance(node, CodeBlock):
        return node.text
    return "".join(
        flatten_text(child)
        for _, value in _child_fields(node)
        for child in ((value,) if isinstance(value, Node) else value)
    )


def heading_level(node: Node) -> int | None:
    """Level of a heading node, typed or raw; None for anything else."""
    if isinstance(node, Heading):
        return node.level
    if isinstance(node, RawNode) and node.raw_type == "heading":
        level = (node.data.get("attrs") or {}).get("level")
        return level if isinstance(level, int) else None
    return None


__all__ = [
    "ADF_VERSION",
    "new_local_id",
    "MarkType",
    "Mark",
    "STRONG",
    "EM",
    "CODE",
    "STRIKE",
    "TaskState",
    "MediaLayout",
    "Node",
    "Text",
    "HardBreak",
    "Paragraph",
    "Heading",
    "ListItem",
    "BulletList",
    "OrderedList",
    "TaskItem",
    "TaskList",
    "CodeBlock",
    "TableCell",
    "TableRow",
    "Table",
    "Media",
    "MediaSingle",
    "Rule",
    "Blockquote",
    "RawNode",
    "Doc",
    "node_from_adf",
    "transform",
    "iter_nodes",
    "regenerate_local_ids",
    "collect_local_ids",
    "flatten_text",
    "heading_level",
]
