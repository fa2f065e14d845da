"""Test fakes for the Jira transport, fallback API and diagram renderer."""

from tests.fakes.fake_fallback import RecordingFallback
from tests.fakes.fake_jira import BASE_URL, FakeJira, StoredAttachment
from tests.fakes.fake_renderer import PNG_HEADER, FakeRenderer

__all__ = [
    "BASE_URL",
    "FakeJira",
    "StoredAttachment",
    "FakeRenderer",
    "PNG_HEADER",
    "RecordingFallback",
]
