"""Tests for jira_writer.config.manager module.

Tests cover:
- ConfigManager.load with the cascading hierarchy
  (environment > local > global > defaults)
- Type coercion of numeric and boolean values
- ConfigManager.save with validation and atomic writes
- Source tracking and masked display
"""

import os
import stat

import pytest

import jira_writer.utils.logging as logging_module
from jira_writer.config.manager import ConfigManager
from jira_writer.config.settings import ConfigValidationError


class TestConfigManagerLoad:
    """Tests for ConfigManager.load method."""

    def test_load_missing_file(self, isolated_config):
        settings = ConfigManager().load()
        assert settings.jira_domain == ""
        assert settings.default_issue_type == "Task"

    def test_load_global_file(self, isolated_config):
        isolated_config.parent.mkdir(parents=True)
        isolated_config.write_text(
            "# Jira\n"
            'JIRA_DOMAIN="company.atlassian.net"\n'
            "JIRA_API_KEY='user@example.com:token'\n"
            "DEFAULT_PROJECT=PROJ\n"
            "\n"
            "not a config line\n"
        )

        manager = ConfigManager()
        settings = manager.load()

        assert settings.jira_domain == "company.atlassian.net"
        assert settings.jira_api_key == "user@example.com:token"
        assert settings.default_project == "PROJ"
        assert manager.get_source("JIRA_DOMAIN") == "global"
        assert manager.get_source("MMDC_PATH") == "default"

    def test_type_coercion(self, isolated_config):
        isolated_config.parent.mkdir(parents=True)
        isolated_config.write_text(
            "DIAGRAM_SCALE=3\n"
            "FALLBACK_ENABLED=false\n"
            "UPLOAD_RETRY_DELAY_SECONDS=0.25\n"
            "MAX_PARALLEL_DIAGRAMS=lots\n"
        )

        settings = ConfigManager().load()

        assert settings.diagram_scale == 3
        assert settings.fallback_enabled is False
        assert settings.upload_retry_delay_seconds == 0.25
        assert settings.max_parallel_diagrams == 3  # invalid value ignored

    def test_local_overrides_global(self, isolated_config):
        isolated_config.parent.mkdir(parents=True)
        isolated_config.write_text("DEFAULT_PROJECT=GLOBAL\n")
        local = os.path.join(os.getcwd(), ".jira-writer")
        with open(local, "w") as f:
            f.write("DEFAULT_PROJECT=LOCAL\n")

        manager = ConfigManager()
        settings = manager.load()

        assert settings.default_project == "LOCAL"
        assert manager.get_source("DEFAULT_PROJECT").startswith("local")

    def test_environment_overrides_files(self, isolated_config, monkeypatch):
        isolated_config.parent.mkdir(parents=True)
        isolated_config.write_text("JIRA_DOMAIN=from-file.atlassian.net\n")
        monkeypatch.setenv("JIRA_DOMAIN", "from-env.atlassian.net")

        manager = ConfigManager()
        settings = manager.load()

        assert settings.jira_domain == "from-env.atlassian.net"
        assert manager.get_source("JIRA_DOMAIN") == "environment"

    def test_unrelated_env_vars_ignored(self, isolated_config, monkeypatch):
        monkeypatch.setenv("SOME_OTHER_VAR", "x")
        manager = ConfigManager()
        manager.load()
        assert manager.get("SOME_OTHER_VAR") == ""

    def test_load_is_idempotent(self, isolated_config, monkeypatch):
        manager = ConfigManager()
        monkeypatch.setenv("DEFAULT_PROJECT", "ONE")
        manager.load()
        monkeypatch.delenv("DEFAULT_PROJECT")
        assert manager.load().default_project == ""


class TestConfigManagerSave:
    """Tests for ConfigManager.save method."""

    def test_save_creates_file_with_private_permissions(self, isolated_config):
        manager = ConfigManager()
        manager.save("DEFAULT_PROJECT", "PROJ")

        assert isolated_config.read_text() == 'DEFAULT_PROJECT="PROJ"\n'
        assert stat.S_IMODE(isolated_config.stat().st_mode) == 0o600
        assert manager.settings.default_project == "PROJ"

    def test_save_replaces_existing_key(self, isolated_config):
        isolated_config.parent.mkdir(parents=True)
        isolated_config.write_text('# comment\nDEFAULT_PROJECT="OLD"\nMMDC_PATH=mmdc\n')

        ConfigManager().save("DEFAULT_PROJECT", "NEW")

        assert isolated_config.read_text() == '# comment\nDEFAULT_PROJECT="NEW"\nMMDC_PATH=mmdc\n'

    def test_save_escapes_quotes(self, isolated_config):
        manager = ConfigManager()
        manager.save("DEFAULT_ISSUE_TYPE", 'Say "hi"')
        assert manager.load().default_issue_type == 'Say "hi"'

    def test_save_local(self, isolated_config):
        manager = ConfigManager()
        manager.save("DEFAULT_PROJECT", "LOCAL", scope="local")

        assert manager.local_config_path is not None
        assert manager.local_config_path.name == ".jira-writer"
        assert not isolated_config.exists()
        assert manager.settings.default_project == "LOCAL"

    def test_invalid_key(self, isolated_config):
        with pytest.raises(ValueError, match="Invalid config key"):
            ConfigManager().save("BAD-KEY", "x")

    def test_invalid_scope(self, isolated_config):
        with pytest.raises(ValueError, match="Invalid scope"):
            ConfigManager().save("DEFAULT_PROJECT", "x", scope="team")

    def test_rejects_malformed_api_key(self, isolated_config):
        with pytest.raises(ConfigValidationError, match="email@domain.com:api_token"):
            ConfigManager().save("JIRA_API_KEY", "dXNlcjp0b2tlbg==")
        assert not isolated_config.exists()

    def test_empty_api_key_clears_it(self, isolated_config):
        manager = ConfigManager()
        manager.save("JIRA_API_KEY", "")
        assert manager.settings.jira_api_key == ""

    def test_rejects_non_numeric_value(self, isolated_config):
        with pytest.raises(ConfigValidationError, match="MAX_PARALLEL_DIAGRAMS must be a number"):
            ConfigManager().save("MAX_PARALLEL_DIAGRAMS", "many")
        assert not isolated_config.exists()

    def test_rejects_out_of_range_value(self, isolated_config):
        with pytest.raises(ConfigValidationError, match="between 1 and"):
            ConfigManager().save("REQUEST_TIMEOUT_SECONDS", "0")

    def test_accepts_float_setting(self, isolated_config):
        manager = ConfigManager()
        manager.save("UPLOAD_RETRY_DELAY_SECONDS", "0.5")
        assert manager.settings.upload_retry_delay_seconds == 0.5


class TestConfigManagerSecrets:
    def test_loaded_credentials_are_redacted(self, isolated_config, monkeypatch):
        monkeypatch.setenv("JIRA_API_KEY", "user@example.com:very-secret")
        try:
            ConfigManager().load()
            assert logging_module.redact("token very-secret") == "token ***"
            assert logging_module.redact("user@example.com:very-secret") == "***"
        finally:
            logging_module._secrets.clear()


class TestConfigManagerShow:
    def test_show_masks_api_key(self, isolated_config, monkeypatch, capsys):
        monkeypatch.setenv("JIRA_API_KEY", "user@example.com:very-secret")
        manager = ConfigManager()
        manager.load()

        manager.show()

        output = capsys.readouterr()
        combined = output.out + output.err
        assert "very-secret" not in combined
        assert "JIRA_API_KEY" in combined

    def test_show_keeps_account_visible(self, isolated_config, monkeypatch, capsys):
        monkeypatch.setenv("JIRA_API_KEY", "user@example.com:very-secret")
        manager = ConfigManager()
        manager.load()

        manager.show()

        output = capsys.readouterr()
        assert "user@example.com:set (11 chars)" in output.out + output.err
