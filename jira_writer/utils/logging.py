"""Logging configuration and shared CLI utilities for jira-writer.

Logging is controlled by environment variables and is off by default so
that agents consuming the JSON output never see stray log lines. Records
written to the log file pass through a redacting filter: Basic auth
headers and every value passed to register_secret() become "***".

Environment Variables:
    JIRA_WRITER_LOG: Set to "true" to enable logging (default: "false")
    JIRA_WRITER_LOG_FILE: Path to log file (default: ~/.jira-writer.log)
    JIRA_WRITER_LOG_LEVEL: Minimum level written (default: "DEBUG")
"""

import logging
import os
import re
import shutil
import subprocess
from pathlib import Path

# Environment variable configuration
LOG_ENABLED = os.environ.get("JIRA_WRITER_LOG", "false").lower() == "true"
LOG_FILE = Path(os.environ.get("JIRA_WRITER_LOG_FILE", str(Path.home() / ".jira-writer.log")))
LOG_LEVEL = logging.getLevelNamesMapping().get(
    os.environ.get("JIRA_WRITER_LOG_LEVEL", "DEBUG").upper(), logging.DEBUG
)

REDACTED = "***"
_BASIC_AUTH = re.compile(r"(Basic\s+)[A-Za-z0-9+/=]+")
# Secrets shorter than this would redact ordinary words
_MIN_SECRET_LENGTH = 4
_secrets: set[str] = set()

# Module-level logger instance
_logger: logging.Logger | None = None


def register_secret(value: str) -> None:
    """Never write value to the log file."""
    if len(value) >= _MIN_SECRET_LENGTH:
        _secrets.add(value)


def redact(text: str) -> str:
    """Replace Basic auth credentials and registered secrets in text."""
    text = _BASIC_AUTH.sub(rf"\g<1>{REDACTED}", text)
    # Longest first so a secret containing another is replaced whole
    for secret in sorted(_secrets, key=len, reverse=True):
        text = text.replace(secret, REDACTED)
    return text


class RedactingFilter(logging.Filter):
    """Rewrites records whose rendered message contains a secret."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging() -> logging.Logger:
    """Configure logging based on environment variables.

    Creates a logger that writes to the configured log file when
    JIRA_WRITER_LOG is set to "true". Otherwise, uses a NullHandler
    to suppress all log output.

    Returns:
        Configured logger instance
    """
    global _logger

    if _logger is not None:
        return _logger

    logger = logging.getLogger("jira_writer")

    # Clear any existing handlers
    logger.handlers.clear()

    if LOG_ENABLED:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.FileHandler(LOG_FILE)
        handler.setFormatter(
            logging.Formatter(
                "[%(asctime)s] %(levelname)s %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        handler.addFilter(RedactingFilter())
        logger.addHandler(handler)
        logger.setLevel(LOG_LEVEL)
    else:
        logger.addHandler(logging.NullHandler())

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """Get the configured logger instance, creating it if necessary."""
    global _logger
    if _logger is None:
        return setup_logging()
    return _logger


def log_message(message: str) -> None:
    """Log a message if logging is enabled.

    Messages are only written to the log file if JIRA_WRITER_LOG=true.

    Args:
        message: Message to log
    """
    logger = get_logger()
    logger.info(message)


def log_command(command: str, exit_code: int = 0) -> None:
    """Log external command execution with exit code.

    Used to track mmdc invocations for debugging.

    Args:
        command: The command that was executed
        exit_code: The exit code returned by the command
    """
    logger = get_logger()
    logger.info(f"COMMAND: {command} | EXIT_CODE: {exit_code}")


def check_cli_installed(cli_name: str) -> tuple[bool, str]:
    """Check if a CLI tool is installed and accessible.

    Looks up the CLI in PATH and runs --version.

    Args:
        cli_name: The CLI executable name or path (e.g. "mmdc")

    Returns:
        (is_valid, message) tuple where message is the version string
        if installed, or an error message if not.
    """
    if shutil.which(cli_name):
        try:
            result = subprocess.run(
                [cli_name, "--version"],
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL,
                timeout=10,
            )
            log_command(f"{cli_name} --version", result.returncode)

            version_output = result.stdout.strip() or result.stderr.strip()
            if result.returncode == 0 and version_output:
                return True, version_output

        except (OSError, subprocess.SubprocessError) as e:
            log_message(f"Failed to check {cli_name} CLI: {e}")

    return False, f"{cli_name} CLI is not installed or not in PATH"


__all__ = [
    "LOG_ENABLED",
    "LOG_FILE",
    "LOG_LEVEL",
    "REDACTED",
    "register_secret",
    "redact",
    "RedactingFilter",
    "setup_logging",
    "get_logger",
    "log_message",
    "log_command",
    "check_cli_installed",
]
