"""Configuration management for jira-writer.

This package contains:
- settings: Settings dataclass with all configuration fields
- manager: ConfigManager class for loading/saving configuration
"""

from jira_writer.config.manager import ConfigManager
from jira_writer.config.settings import CONFIG_FILE, ConfigValidationError, Settings

__all__ = [
    "ConfigManager",
    "ConfigValidationError",
    "Settings",
    "CONFIG_FILE",
]
