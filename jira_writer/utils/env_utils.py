"""Environment and secret-handling helpers.

Keeps API keys out of logs and console output.
"""

from __future__ import annotations

# Keys containing these substrings are considered sensitive and should not be logged
SENSITIVE_KEY_PATTERNS = ("TOKEN", "KEY", "SECRET", "PASSWORD", "CREDENTIAL")


def is_sensitive_key(key: str) -> bool:
    """Check if a configuration key contains sensitive data.

    Args:
        key: The configuration key name

    Returns:
        True if the key is considered sensitive
    """
    key_upper = key.upper()
    return any(pattern in key_upper for pattern in SENSITIVE_KEY_PATTERNS)


def mask_value(value: str) -> str:
    """Describe a secret without revealing it.

    Mirrors the prerequisite check, which only ever reported the length
    of JIRA_API_KEY.
    """
    if not value:
        return "(not set)"
    return f"set ({len(value)} chars)"


def mask_api_key(value: str) -> str:
    """Show the account of an email:api_token pair and mask the token."""
    email, sep, token = value.strip().partition(":")
    if not sep:
        return mask_value(value)
    return f"{email}:{mask_value(token)}"


__all__ = [
    "SENSITIVE_KEY_PATTERNS",
    "is_sensitive_key",
    "mask_api_key",
    "mask_value",
]
