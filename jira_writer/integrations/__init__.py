"""Jira transports for jira-writer.

This package contains:
- jira_rest: JiraRestClient for the Jira Cloud REST API v3 (primary)
- fallback: FallbackTransport protocol and SignalingFallback
- outcome: Ok / FallbackRequested / ApiFailure and the PrimaryApi facade
- cache: SessionCache for per-run metadata
- probe: EnvironmentProbe / EnvironmentStatus
- exceptions: REST error taxonomy
"""

from jira_writer.integrations.cache import MetadataKey, SessionCache
from jira_writer.integrations.exceptions import (
    CredentialsNotConfiguredError,
    JiraApiError,
    JiraAuthError,
    JiraNotFoundError,
    JiraTransientError,
)
from jira_writer.integrations.fallback import FallbackTransport, SignalingFallback
from jira_writer.integrations.jira_rest import JiraRestClient
from jira_writer.integrations.outcome import (
    ApiFailure,
    FailureKind,
    FallbackRequested,
    Ok,
    PrimaryApi,
    PrimaryTransport,
)
from jira_writer.integrations.probe import EnvironmentProbe, EnvironmentStatus

__all__ = [
    "MetadataKey",
    "SessionCache",
    "CredentialsNotConfiguredError",
    "JiraApiError",
    "JiraAuthError",
    "JiraNotFoundError",
    "JiraTransientError",
    "FallbackTransport",
    "SignalingFallback",
    "JiraRestClient",
    "ApiFailure",
    "FailureKind",
    "FallbackRequested",
    "Ok",
    "PrimaryApi",
    "PrimaryTransport",
    "EnvironmentProbe",
    "EnvironmentStatus",
]
