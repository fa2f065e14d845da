"""Tests for jira_writer.integrations.jira_rest module.

Tests cover:
- Request construction (auth, paths, headers, payloads)
- Description parsing into Doc
- Status code mapping onto the exception taxonomy
- Session caching of metadata lookups
- Construction from Settings
"""

from __future__ import annotations

import base64
import json

import httpx
import pytest

from jira_writer.config.settings import Settings
from jira_writer.document.model import Doc, Paragraph, Text
from jira_writer.integrations.exceptions import (
    CredentialsNotConfiguredError,
    JiraAuthError,
    JiraNotFoundError,
    JiraTransientError,
)
from jira_writer.integrations.jira_rest import JiraRestClient, normalize_domain

# =============================================================================
# Fixtures
# =============================================================================


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def make_client(recorder: Recorder) -> JiraRestClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return JiraRestClient(
        "https://company.atlassian.net/",
        "user@example.com",
        "secret-token",
        http_client=http_client,
    )


DESCRIPTION = {
    "type": "doc",
    "version": 1,
    "content": [{"type": "paragraph", "content": [{"type": "text", "text": "hello"}]}],
}


# =============================================================================
# Requests
# =============================================================================


class TestRequests:
    """Tests for request construction and response parsing."""

    @pytest.mark.asyncio
    async def test_basic_auth_header(self):
        recorder = Recorder(httpx.Response(200, json={"displayName": "Test User"}))
        client = make_client(recorder)

        user = await client.get_myself()

        assert user == {"displayName": "Test User"}
        expected = base64.b64encode(b"user@example.com:secret-token").decode()
        assert recorder.last.headers["Authorization"] == f"Basic {expected}"
        assert str(recorder.last.url) == "https://company.atlassian.net/rest/api/3/myself"

    @pytest.mark.asyncio
    async def test_get_document(self):
        recorder = Recorder(httpx.Response(200, json={"fields": {"description": DESCRIPTION}}))
        client = make_client(recorder)

        doc = await client.get_document("PROJ-1")

        assert doc == Doc((Paragraph((Text("hello"),)),))
        assert recorder.last.method == "GET"
        assert recorder.last.url.path == "/rest/api/3/issue/PROJ-1"
        assert recorder.last.url.params["fields"] == "description"

    @pytest.mark.asyncio
    async def test_get_document_without_description(self):
        recorder = Recorder(httpx.Response(200, json={"fields": {"description": None}}))
        doc = await make_client(recorder).get_document("PROJ-1")
        assert doc.is_empty

    @pytest.mark.asyncio
    async def test_create_issue(self):
        recorder = Recorder(httpx.Response(201, json={"id": "1", "key": "PROJ-7"}))
        client = make_client(recorder)
        document = Doc((Paragraph((Text("body"),)),))

        key = await client.create_issue("PROJ", "Story", "Add login", document)

        assert key == "PROJ-7"
        body = json.loads(recorder.last.content)
        assert body["fields"]["project"] == {"key": "PROJ"}
        assert body["fields"]["issuetype"] == {"name": "Story"}
        assert body["fields"]["summary"] == "Add login"
        assert body["fields"]["description"] == document.to_adf()

    @pytest.mark.asyncio
    async def test_create_issue_without_description(self):
        recorder = Recorder(httpx.Response(201, json={"key": "PROJ-8"}))
        await make_client(recorder).create_issue("PROJ", "Task", "Empty", Doc())
        assert "description" not in json.loads(recorder.last.content)["fields"]

    @pytest.mark.asyncio
    async def test_update_description(self):
        recorder = Recorder(httpx.Response(204))
        document = Doc((Paragraph((Text("new"),)),))

        await make_client(recorder).update_description("PROJ-1", document)

        assert recorder.last.method == "PUT"
        assert recorder.last.url.path == "/rest/api/3/issue/PROJ-1"
        assert json.loads(recorder.last.content) == {
            "fields": {"description": document.to_adf()}
        }

    @pytest.mark.asyncio
    async def test_upload_attachment(self):
        recorder = Recorder(httpx.Response(200, json=[{"id": "10042", "filename": "d.png"}]))

        attachment_id = await make_client(recorder).upload_attachment(
            "PROJ-1", b"\x89PNG", "d.png"
        )

        assert attachment_id == "10042"
        request = recorder.last
        assert request.url.path == "/rest/api/3/issue/PROJ-1/attachments"
        assert request.headers["X-Atlassian-Token"] == "no-check"
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b'filename="d.png"' in request.content

    @pytest.mark.asyncio
    async def test_upload_unexpected_response(self):
        recorder = Recorder(httpx.Response(200, json=[]))
        with pytest.raises(JiraTransientError, match="unexpected response"):
            await make_client(recorder).upload_attachment("PROJ-1", b"x", "d.png")

    @pytest.mark.asyncio
    async def test_delete_attachment(self):
        recorder = Recorder(httpx.Response(204))
        await make_client(recorder).delete_attachment("10042")
        assert recorder.last.method == "DELETE"
        assert recorder.last.url.path == "/rest/api/3/attachment/10042"

    def test_attachment_content_url(self):
        client = JiraRestClient("company.atlassian.net", "a", "b")
        assert client.attachment_content_url("10042") == (
            "https://company.atlassian.net/rest/api/3/attachment/content/10042"
        )


# =============================================================================
# Error mapping
# =============================================================================


class TestErrorMapping:
    """Tests for HTTP failure classification."""

    @pytest.mark.parametrize(
        ("status", "error_type"),
        [
            (401, JiraAuthError),
            (403, JiraAuthError),
            (404, JiraNotFoundError),
            (400, JiraTransientError),
            (429, JiraTransientError),
            (500, JiraTransientError),
            (503, JiraTransientError),
        ],
    )
    @pytest.mark.asyncio
    async def test_status_mapping(self, status, error_type):
        recorder = Recorder(httpx.Response(status, text="nope"))
        with pytest.raises(error_type) as exc_info:
            await make_client(recorder).get_document("PROJ-1")
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_auth_error_mentions_key_format(self):
        recorder = Recorder(httpx.Response(401))
        with pytest.raises(JiraAuthError, match="email:api_token"):
            await make_client(recorder).get_myself()

    @pytest.mark.asyncio
    async def test_error_messages_detail(self):
        recorder = Recorder(
            httpx.Response(404, json={"errorMessages": ["Issue does not exist"], "errors": {}})
        )
        with pytest.raises(JiraNotFoundError, match="Issue does not exist"):
            await make_client(recorder).get_document("PROJ-404")

    @pytest.mark.asyncio
    async def test_field_errors_detail(self):
        recorder = Recorder(
            httpx.Response(400, json={"errorMessages": [], "errors": {"summary": "required"}})
        )
        with pytest.raises(JiraTransientError, match="summary: required"):
            await make_client(recorder).create_issue("PROJ", "Task", "")

    @pytest.mark.asyncio
    async def test_long_body_truncated(self):
        recorder = Recorder(httpx.Response(500, text="x" * 5000))
        with pytest.raises(JiraTransientError) as exc_info:
            await make_client(recorder).get_myself()
        assert len(str(exc_info.value)) < 400

    @pytest.mark.asyncio
    async def test_timeout(self):
        recorder = Recorder(httpx.ReadTimeout("timed out"))
        with pytest.raises(JiraTransientError, match="timed out") as exc_info:
            await make_client(recorder).get_myself()
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_network_error(self):
        recorder = Recorder(httpx.ConnectError("connection refused"))
        with pytest.raises(JiraTransientError, match="connection refused"):
            await make_client(recorder).get_myself()


# =============================================================================
# Metadata cache
# =============================================================================


class TestMetadataCache:
    @pytest.mark.asyncio
    async def test_projects_fetched_once(self):
        recorder = Recorder(httpx.Response(200, json=[{"key": "PROJ"}]))
        client = make_client(recorder)

        first = await client.get_projects()
        second = await client.get_projects()

        assert first == second == [{"key": "PROJ"}]
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_issue_types_cached_per_project(self):
        recorder = Recorder(httpx.Response(200, json={"issueTypes": [{"name": "Bug"}]}))
        client = make_client(recorder)

        await client.get_issue_types("PROJ")
        await client.get_issue_types("PROJ")
        await client.get_issue_types("OTHER")

        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_failed_lookup_not_cached(self):
        recorder = Recorder(
            httpx.Response(500),
            httpx.Response(200, json=[{"key": "PROJ"}]),
        )
        client = make_client(recorder)

        with pytest.raises(JiraTransientError):
            await client.get_projects()
        assert await client.get_projects() == [{"key": "PROJ"}]


# =============================================================================
# Construction
# =============================================================================


class TestConstruction:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("company.atlassian.net", "company.atlassian.net"),
            ("https://company.atlassian.net/", "company.atlassian.net"),
            ("HTTP://company.atlassian.net//", "company.atlassian.net"),
            ("  company.atlassian.net  ", "company.atlassian.net"),
        ],
    )
    def test_normalize_domain(self, raw, expected):
        assert normalize_domain(raw) == expected

    def test_from_settings(self, configured_settings):
        client = JiraRestClient.from_settings(configured_settings)
        assert client.base_url == "https://test.atlassian.net"

    def test_from_settings_missing_credentials(self):
        with pytest.raises(CredentialsNotConfiguredError):
            JiraRestClient.from_settings(Settings(jira_domain="test.atlassian.net"))

    def test_from_settings_malformed_key(self):
        settings = Settings(jira_domain="test.atlassian.net", jira_api_key="no-colon")
        with pytest.raises(CredentialsNotConfiguredError):
            JiraRestClient.from_settings(settings)

    @pytest.mark.asyncio
    async def test_context_manager_closes_owned_client(self):
        client = JiraRestClient("company.atlassian.net", "a", "b")
        async with client:
            assert client._http_client is not None
        assert client._http_client is None
