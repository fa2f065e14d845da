"""Utility modules for jira-writer.

This package contains:
- console: Rich-based terminal output utilities
- env_utils: Sensitive key detection and masking
- errors: Base exception and exit codes
- logging: Logging configuration
"""

from jira_writer.utils.console import (
    console,
    console_err,
    print_error,
    print_header,
    print_info,
    print_step,
    print_success,
    print_warning,
)
from jira_writer.utils.env_utils import SENSITIVE_KEY_PATTERNS, is_sensitive_key, mask_value
from jira_writer.utils.errors import (
    ExitCode,
    JiraWriterError,
    PrerequisitesError,
    UserCancelledError,
)
from jira_writer.utils.logging import log_command, log_message, setup_logging

__all__ = [
    # Console
    "console",
    "console_err",
    "print_error",
    "print_success",
    "print_warning",
    "print_info",
    "print_header",
    "print_step",
    # Env Utils
    "SENSITIVE_KEY_PATTERNS",
    "is_sensitive_key",
    "mask_value",
    # Errors
    "ExitCode",
    "JiraWriterError",
    "PrerequisitesError",
    "UserCancelledError",
    # Logging
    "setup_logging",
    "log_message",
    "log_command",
]
