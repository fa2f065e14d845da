"""Jira Cloud REST API v3 client.

Authentication is HTTP Basic with the email and API token taken from
JIRA_API_KEY ("email:api_token", not base64 encoded).

Status mapping (every method):
    401/403 -> JiraAuthError
    404     -> JiraNotFoundError
    other non-2xx, timeouts and network errors -> JiraTransientError

Resource Management:
    The client owns a shared httpx.AsyncClient unless one is injected.
    Use it as an async context manager, or call close() when done:

        async with JiraRestClient.from_settings(settings) as client:
            doc = await client.get_document("PROJ-123")
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from jira_writer.config.settings import ConfigValidationError, Settings
from jira_writer.document.model import Doc
from jira_writer.integrations.cache import MetadataKey, SessionCache
from jira_writer.integrations.exceptions import (
    CredentialsNotConfiguredError,
    JiraApiError,
    JiraAuthError,
    JiraNotFoundError,
    JiraTransientError,
)
from jira_writer.utils.logging import register_secret

logger = logging.getLogger(__name__)

API_PREFIX = "/rest/api/3"

# Maximum length for error response body in exception messages
# Prevents PII leakage and huge HTML payloads in logs
MAX_ERROR_BODY_LENGTH = 200

HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404


def normalize_domain(domain: str) -> str:
    """Strip scheme and trailing slashes: "https://x.atlassian.net/" -> "x.atlassian.net"."""
    value = domain.strip()
    for scheme in ("https://", "http://"):
        if value.lower().startswith(scheme):
            value = value[len(scheme) :]
    return value.rstrip("/")


def _error_detail(response: httpx.Response) -> str:
    """Extract Jira's error message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text[:MAX_ERROR_BODY_LENGTH] if text else ""
    if isinstance(body, dict):
        messages = body.get("errorMessages") or []
        if messages:
            return str(messages[0])
        if body.get("message"):
            return str(body["message"])
        errors = body.get("errors")
        if isinstance(errors, dict) and errors:
            return "; ".join(f"{field}: {msg}" for field, msg in errors.items())
    return str(body)[:MAX_ERROR_BODY_LENGTH]


class JiraRestClient:
    """Primary API transport.

    Attributes:
        domain: Jira domain without scheme (e.g. company.atlassian.net)
        timeout_seconds: Per-request timeout
        cache: Session cache for metadata lookups
    """

    def __init__(
        self,
        domain: str,
        email: str,
        api_token: str,
        *,
        timeout_seconds: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        cache: SessionCache | None = None,
    ) -> None:
        self.domain = normalize_domain(domain)
        self._auth = httpx.BasicAuth(email, api_token)
        self.timeout_seconds = timeout_seconds
        self.cache = cache if cache is not None else SessionCache()
        self._http_client = http_client
        self._owns_client = http_client is None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
        cache: SessionCache | None = None,
    ) -> JiraRestClient:
        """Build a client from configuration.

        Raises:
            CredentialsNotConfiguredError: If JIRA_DOMAIN or JIRA_API_KEY is
                missing or JIRA_API_KEY is not email:api_token
        """
        if not settings.primary_configured:
            raise CredentialsNotConfiguredError("REST credentials not configured")
        try:
            email, token = settings.split_api_key()
        except ConfigValidationError as e:
            raise CredentialsNotConfiguredError(str(e)) from e
        register_secret(token)
        return cls(
            settings.jira_domain,
            email,
            token,
            timeout_seconds=settings.request_timeout_seconds,
            http_client=http_client,
            cache=cache,
        )

    @property
    def base_url(self) -> str:
        return f"https://{self.domain}"

    def attachment_content_url(self, attachment_id: str) -> str:
        """Content-retrieval URL used to embed an attachment in a media node."""
        return f"{self.base_url}{API_PREFIX}/attachment/content/{attachment_id}"

    async def __aenter__(self) -> JiraRestClient:
        self._client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this instance created it. Safe to call twice."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))
        return self._http_client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        files: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send one request and map failures onto the exception taxonomy."""
        url = f"{self.base_url}{API_PREFIX}{path}"
        request_headers = {"Accept": "application/json"}
        if headers:
            request_headers.update(headers)

        kwargs: dict[str, Any] = {
            "headers": request_headers,
            "auth": self._auth,
            "timeout": httpx.Timeout(self.timeout_seconds),
        }
        if params is not None:
            kwargs["params"] = params
        if json_data is not None:
            kwargs["json"] = json_data
        if files is not None:
            kwargs["files"] = files

        logger.debug("%s %s (%s)", method, url, operation)
        try:
            response = await self._client().request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise JiraTransientError(
                f"Failed to {operation}: request timed out", operation=operation
            ) from e
        except httpx.HTTPError as e:
            raise JiraTransientError(f"Failed to {operation}: {e}", operation=operation) from e

        if response.is_success:
            return response

        status = response.status_code
        detail = _error_detail(response)
        message = f"Failed to {operation}: HTTP {status}"
        if detail:
            message += f" - {detail}"

        if status in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
            raise JiraAuthError(
                f"{message} (check JIRA_API_KEY format: email:api_token)",
                status_code=status,
                operation=operation,
            )
        if status == HTTP_NOT_FOUND:
            raise JiraNotFoundError(message, status_code=status, operation=operation)
        raise JiraTransientError(message, status_code=status, operation=operation)

    @staticmethod
    def _json(response: httpx.Response, operation: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise JiraApiError(
                f"Failed to {operation}: response is not JSON", operation=operation
            ) from e

    # =========================================================================
    # Issues
    # =========================================================================

    async def get_issue(self, ticket_id: str, fields: str | None = None) -> dict[str, Any]:
        """GET /issue/{key}, optionally restricted to a comma-separated field list."""
        params = {"fields": fields} if fields else None
        response = await self._request(
            "GET", f"/issue/{ticket_id}", operation=f"get issue {ticket_id}", params=params
        )
        result: dict[str, Any] = self._json(response, f"get issue {ticket_id}")
        return result

    async def get_document(self, ticket_id: str) -> Doc:
        """Fetch the issue description as a Doc (empty when unset)."""
        issue = await self.get_issue(ticket_id, fields="description")
        description = (issue.get("fields") or {}).get("description")
        return Doc.from_adf(description)

    async def create_issue(
        self,
        project: str,
        issue_type: str,
        summary: str,
        document: Doc | None = None,
    ) -> str:
        """Create an issue and return its key."""
        fields: dict[str, Any] = {
            "project": {"key": project},
            "issuetype": {"name": issue_type},
            "summary": summary,
        }
        if document is not None and not document.is_empty:
            fields["description"] = document.to_adf()
        operation = f"create issue in {project}"
        response = await self._request(
            "POST", "/issue", operation=operation, json_data={"fields": fields}
        )
        key = str(self._json(response, operation).get("key", ""))
        logger.info("Created issue %s", key)
        return key

    async def update_description(self, ticket_id: str, document: Doc) -> None:
        """Replace the issue description."""
        await self._request(
            "PUT",
            f"/issue/{ticket_id}",
            operation=f"update issue {ticket_id}",
            json_data={"fields": {"description": document.to_adf()}},
        )
        logger.info("Updated description of %s", ticket_id)

    async def add_comment(self, ticket_id: str, document: Doc) -> str:
        """Add a comment with rich content; returns the comment id."""
        operation = f"add comment to {ticket_id}"
        response = await self._request(
            "POST",
            f"/issue/{ticket_id}/comment",
            operation=operation,
            json_data={"body": document.to_adf()},
        )
        return str(self._json(response, operation).get("id", ""))

    # =========================================================================
    # Attachments
    # =========================================================================

    async def upload_attachment(self, ticket_id: str, content: bytes, filename: str) -> str:
        """Upload a PNG attachment; returns the attachment id."""
        operation = f"upload {filename} to {ticket_id}"
        response = await self._request(
            "POST",
            f"/issue/{ticket_id}/attachments",
            operation=operation,
            files={"file": (filename, content, "image/png")},
            headers={"X-Atlassian-Token": "no-check"},
        )
        body = self._json(response, operation)
        if not isinstance(body, list) or not body or "id" not in body[0]:
            raise JiraTransientError(
                f"Failed to {operation}: unexpected response", operation=operation
            )
        return str(body[0]["id"])

    async def delete_attachment(self, attachment_id: str) -> None:
        await self._request(
            "DELETE",
            f"/attachment/{attachment_id}",
            operation=f"delete attachment {attachment_id}",
        )
        logger.info("Deleted attachment %s", attachment_id)

    # =========================================================================
    # Metadata (session cached)
    # =========================================================================

    async def get_myself(self) -> dict[str, Any]:
        """Current user; used to verify credentials."""
        response = await self._request("GET", "/myself", operation="get current user")
        result: dict[str, Any] = self._json(response, "get current user")
        return result

    async def get_projects(self, max_results: int = 50) -> list[dict[str, Any]]:
        async def load() -> Any:
            response = await self._request(
                "GET", "/project", operation="list projects", params={"maxResults": max_results}
            )
            return self._json(response, "list projects")

        result: list[dict[str, Any]] = await self.cache.get_or_load(
            MetadataKey("projects", (str(max_results),)), load
        )
        return result

    async def get_issue_types(self, project_key: str) -> list[dict[str, Any]]:
        async def load() -> Any:
            operation = f"get project {project_key}"
            response = await self._request("GET", f"/project/{project_key}", operation=operation)
            return self._json(response, operation).get("issueTypes", [])

        result: list[dict[str, Any]] = await self.cache.get_or_load(
            MetadataKey("issue_types", (project_key,)), load
        )
        return result


__all__ = [
    "API_PREFIX",
    "MAX_ERROR_BODY_LENGTH",
    "normalize_domain",
    "JiraRestClient",
]
