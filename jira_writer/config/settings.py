"""Settings dataclass for jira-writer configuration.

This module defines the Settings dataclass that holds all configuration
values. The Jira keys keep the names the original scripts used so an
existing environment works unchanged:

    JIRA_DOMAIN   - Jira domain (e.g., company.atlassian.net)
    JIRA_API_KEY  - email:api_token (NOT base64 encoded)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


class ConfigValidationError(Exception):
    """Raised when configuration validation fails.

    This exception is raised for fail-fast behavior when:
    - JIRA_API_KEY is not in email:api_token form
    - Numeric settings fall outside their safe range
    """

    pass


# Upper bounds to keep a misconfigured run from hanging
MAX_REQUEST_TIMEOUT_SECONDS = 300
MAX_DIAGRAM_TIMEOUT_SECONDS = 600
MAX_PARALLEL_DIAGRAMS_LIMIT = 8


@dataclass
class Settings:
    """Configuration settings for jira-writer.

    All settings have sensible defaults and can be loaded from
    the configuration file (~/.jira-writer-config).

    Attributes:
        jira_domain: Jira Cloud domain, with or without scheme
        jira_api_key: "email:api_token" pair used for Basic auth
        default_project: Project key used by `create` when none is given
        default_issue_type: Issue type name used by `create` when none is given
        mmdc_path: Mermaid CLI executable
        diagram_theme: Mermaid theme passed to mmdc
        diagram_background: Background color passed to mmdc
        diagram_scale: Render scale factor (2 = retina-quality PNG)
        diagram_timeout_seconds: Timeout for a single mmdc invocation
        request_timeout_seconds: Timeout for a single Jira request
        max_parallel_diagrams: Diagrams rendered/uploaded concurrently
        fallback_enabled: Emit an MCP fallback signal when REST fails
        upload_retry_delay_seconds: Pause before the single upload retry
    """

    # Jira settings
    jira_domain: str = ""
    jira_api_key: str = ""
    default_project: str = ""
    default_issue_type: str = "Task"

    # Diagram settings
    mmdc_path: str = "mmdc"
    diagram_theme: str = "neutral"
    diagram_background: str = "white"
    diagram_scale: int = 2
    diagram_timeout_seconds: int = 60

    # Transport settings
    request_timeout_seconds: int = 30
    max_parallel_diagrams: int = 3
    fallback_enabled: bool = True
    upload_retry_delay_seconds: float = 1.0

    # Config key to attribute mapping
    _key_mapping: dict[str, str] = field(
        default_factory=lambda: {
            "JIRA_DOMAIN": "jira_domain",
            "JIRA_API_KEY": "jira_api_key",
            "DEFAULT_PROJECT": "default_project",
            "DEFAULT_ISSUE_TYPE": "default_issue_type",
            "MMDC_PATH": "mmdc_path",
            "DIAGRAM_THEME": "diagram_theme",
            "DIAGRAM_BACKGROUND": "diagram_background",
            "DIAGRAM_SCALE": "diagram_scale",
            "DIAGRAM_TIMEOUT_SECONDS": "diagram_timeout_seconds",
            "REQUEST_TIMEOUT_SECONDS": "request_timeout_seconds",
            "MAX_PARALLEL_DIAGRAMS": "max_parallel_diagrams",
            "FALLBACK_ENABLED": "fallback_enabled",
            "UPLOAD_RETRY_DELAY_SECONDS": "upload_retry_delay_seconds",
        },
        repr=False,
    )

    def get_attribute_for_key(self, key: str) -> str | None:
        """Get the attribute name for a config key."""
        return self._key_mapping.get(key)

    def get_key_for_attribute(self, attr: str) -> str | None:
        """Get the config key for an attribute name."""
        for key, value in self._key_mapping.items():
            if value == attr:
                return key
        return None

    @classmethod
    def get_config_keys(cls) -> list[str]:
        """Get list of all valid configuration keys."""
        temp = cls()
        return list(temp._key_mapping.keys())

    @property
    def primary_configured(self) -> bool:
        """Whether both REST credentials are present."""
        return bool(self.jira_domain.strip() and self.jira_api_key.strip())

    def split_api_key(self) -> tuple[str, str]:
        """Split JIRA_API_KEY into (email, api_token).

        Raises:
            ConfigValidationError: If the key is not in email:api_token form
        """
        email, sep, token = self.jira_api_key.strip().partition(":")
        if not sep or not email or not token:
            raise ConfigValidationError(
                "JIRA_API_KEY must be in the form email@domain.com:api_token (NOT base64 encoded)"
            )
        return email, token

    def validate(self) -> list[str]:
        """Return a list of problems with numeric settings (empty when valid)."""
        errors: list[str] = []
        if not 1 <= self.request_timeout_seconds <= MAX_REQUEST_TIMEOUT_SECONDS:
            errors.append(
                f"REQUEST_TIMEOUT_SECONDS must be between 1 and {MAX_REQUEST_TIMEOUT_SECONDS}"
            )
        if not 1 <= self.diagram_timeout_seconds <= MAX_DIAGRAM_TIMEOUT_SECONDS:
            errors.append(
                f"DIAGRAM_TIMEOUT_SECONDS must be between 1 and {MAX_DIAGRAM_TIMEOUT_SECONDS}"
            )
        if not 1 <= self.max_parallel_diagrams <= MAX_PARALLEL_DIAGRAMS_LIMIT:
            errors.append(
                f"MAX_PARALLEL_DIAGRAMS must be between 1 and {MAX_PARALLEL_DIAGRAMS_LIMIT}"
            )
        if self.diagram_scale < 1:
            errors.append("DIAGRAM_SCALE must be at least 1")
        if self.upload_retry_delay_seconds < 0:
            errors.append("UPLOAD_RETRY_DELAY_SECONDS must not be negative")
        return errors


# Default configuration file path
CONFIG_FILE = Path.home() / ".jira-writer-config"


__all__ = [
    "Settings",
    "CONFIG_FILE",
    "ConfigValidationError",
]
