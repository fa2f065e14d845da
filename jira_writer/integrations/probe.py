"""Credential and environment probe.

Answers three questions before an operation starts: are REST credentials
configured, are they accepted (GET /myself), and is mmdc installed. The
report mirrors the JSON the prerequisites check script printed.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from typing import Any, Protocol

from jira_writer import MERMAID_CLI_PACKAGE
from jira_writer.config.settings import Settings
from jira_writer.integrations.exceptions import JiraApiError

logger = logging.getLogger(__name__)


class IdentityApi(Protocol):
    async def get_myself(self) -> dict[str, Any]: ...


class RendererCheck(Protocol):
    def is_available(self) -> bool: ...


@dataclass(frozen=True)
class EnvironmentStatus:
    """What the environment can do right now.

    Attributes:
        primary_configured: JIRA_DOMAIN and JIRA_API_KEY are set
        primary_authenticated: The credentials were accepted by Jira
        fallback_available: A fallback transport is configured
        renderer_available: mmdc is installed
        user: Display name of the authenticated user, if known
        error: Why authentication failed, if it did
    """

    primary_configured: bool
    primary_authenticated: bool
    fallback_available: bool
    renderer_available: bool = False
    user: str | None = None
    error: str | None = None

    @property
    def diagram_ready(self) -> bool:
        """Diagrams need the primary API (attachments) and the renderer."""
        return self.primary_authenticated and self.renderer_available

    @property
    def all_ready(self) -> bool:
        """Basic operations work through at least one API."""
        return self.primary_authenticated or self.fallback_available


class EnvironmentProbe:
    """Builds an EnvironmentStatus from settings and live checks."""

    def __init__(
        self,
        settings: Settings,
        api: IdentityApi | None,
        renderer: RendererCheck | None = None,
        *,
        fallback_available: bool = True,
    ) -> None:
        self.settings = settings
        self.api = api
        self.renderer = renderer
        self.fallback_available = fallback_available

    async def probe(self) -> EnvironmentStatus:
        configured = self.settings.primary_configured and self.api is not None
        authenticated = False
        user: str | None = None
        error: str | None = None

        if configured:
            assert self.api is not None
            try:
                me = await self.api.get_myself()
            except JiraApiError as e:
                error = str(e)
                logger.warning("Jira authentication check failed: %s", e)
            else:
                authenticated = True
                user = me.get("displayName") or me.get("emailAddress")
        else:
            error = "REST credentials not configured"

        renderer_available = self.renderer.is_available() if self.renderer else False
        return EnvironmentStatus(
            primary_configured=configured,
            primary_authenticated=authenticated,
            fallback_available=self.fallback_available,
            renderer_available=renderer_available,
            user=user,
            error=error,
        )

    def report(self, status: EnvironmentStatus) -> dict[str, Any]:
        """Prerequisites report as a JSON-serializable dict."""
        mmdc_path = shutil.which(self.settings.mmdc_path) or ""
        return {
            "mmdc": {
                "available": status.renderer_available,
                "path": mmdc_path,
                "install_cmd": f"npm install -g {MERMAID_CLI_PACKAGE}",
            },
            "jira_domain": {
                "available": bool(self.settings.jira_domain.strip()),
                "value": self.settings.jira_domain,
                "env_var": "JIRA_DOMAIN",
            },
            "jira_api_key": {
                "available": bool(self.settings.jira_api_key.strip()),
                "length": len(self.settings.jira_api_key),
                "env_var": "JIRA_API_KEY",
                "format": "email@domain.com:api_token (NOT base64 encoded)",
            },
            "jira_connection": {
                "authenticated": status.primary_authenticated,
                "user": status.user,
                "error": status.error,
            },
            "fallback_available": status.fallback_available,
            "all_ready": status.all_ready,
            "diagram_ready": status.diagram_ready,
        }


__all__ = [
    "EnvironmentStatus",
    "EnvironmentProbe",
]
