"""Content classification for API selection.

COMPLEX content contains something the markdown-only fallback API cannot
represent faithfully: checkboxes, diagram fences, or media references.
Everything else is SIMPLE. Classification is a pure function of the text.
"""

from __future__ import annotations

import re
from enum import Enum

DIAGRAM_LANGUAGE = "mermaid"

_FENCE = re.compile(r"^ {0,3}(`{3,}|~{3,})\s*([^`\s]*)")
_CHECKBOX = re.compile(r"^\s*(?:>\s*)*[-*+]\s+\[[ xX]\](?:\s|$)")
_MARKDOWN_IMAGE = re.compile(r"!\[[^\]]*\]\([^)\s]+[^)]*\)")
_HTML_IMAGE = re.compile(r"<img\b[^>]*>", re.IGNORECASE)


class ContentComplexity(Enum):
    """Whether content can go through the fallback API."""

    SIMPLE = "simple"
    COMPLEX = "complex"


class ContentFeature(Enum):
    """Features that make content COMPLEX."""

    CHECKBOX = "checkbox"
    DIAGRAM = "diagram"
    MEDIA = "media"


def detect_features(source: str) -> frozenset[ContentFeature]:
    """Find COMPLEX features in markdown source.

    Lines inside non-diagram fenced code are not inspected, so a code sample
    that mentions ``- [ ]`` or an image does not change the result.
    """
    features: set[ContentFeature] = set()
    fence: str | None = None

    for line in source.splitlines():
        if fence is not None:
            stripped = line.strip()
            if stripped.startswith(fence) and not stripped.strip(fence[0]):
                fence = None
            continue

        opening = _FENCE.match(line)
        if opening:
            fence = opening.group(1)
            if opening.group(2).lower() == DIAGRAM_LANGUAGE:
                features.add(ContentFeature.DIAGRAM)
            continue

        if _CHECKBOX.match(line):
            features.add(ContentFeature.CHECKBOX)
        if _MARKDOWN_IMAGE.search(line) or _HTML_IMAGE.search(line):
            features.add(ContentFeature.MEDIA)

    return frozenset(features)


def classify(source: str) -> ContentComplexity:
    """Classify markdown source as SIMPLE or COMPLEX."""
    if detect_features(source):
        return ContentComplexity.COMPLEX
    return ContentComplexity.SIMPLE


__all__ = [
    "DIAGRAM_LANGUAGE",
    "ContentComplexity",
    "ContentFeature",
    "detect_features",
    "classify",
]
