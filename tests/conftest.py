"""Shared pytest fixtures for jira-writer tests."""

from pathlib import Path

import pytest

import jira_writer.utils.logging as logging_module
from jira_writer.config.settings import Settings
from tests.fakes import FakeJira, FakeRenderer, RecordingFallback

# Enable pytest-asyncio for async test support
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(autouse=True)
def clear_registered_secrets():
    """Secrets registered by one test must not leak into the next."""
    logging_module._secrets.clear()
    yield
    logging_module._secrets.clear()


@pytest.fixture
def fake_jira() -> FakeJira:
    return FakeJira()


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def recording_fallback() -> RecordingFallback:
    return RecordingFallback()


@pytest.fixture
def sleeps() -> list[float]:
    """Delays passed to the injected sleeper."""
    return []


@pytest.fixture
def no_sleep(sleeps):
    """Async sleeper that records the delay instead of waiting."""

    async def sleeper(delay: float) -> None:
        sleeps.append(delay)

    return sleeper


@pytest.fixture
def configured_settings() -> Settings:
    return Settings(
        jira_domain="test.atlassian.net",
        jira_api_key="user@example.com:secret-token",
        default_project="PROJ",
    )


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch) -> Path:
    """Point configuration at an empty temp directory and clear config env vars.

    Returns the path of the global config file (not created).
    """
    for key in Settings.get_config_keys():
        monkeypatch.delenv(key, raising=False)
    global_config = tmp_path / "home" / ".jira-writer-config"
    monkeypatch.setattr("jira_writer.config.manager.CONFIG_FILE", global_config)
    workdir = tmp_path / "work"
    workdir.mkdir()
    # Stop local config discovery at the temp directory
    (workdir / ".git").mkdir()
    monkeypatch.chdir(workdir)
    return global_config
