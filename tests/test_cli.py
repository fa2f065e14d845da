"""Tests for jira_writer.cli module.

Commands run through typer's CliRunner against in-memory fakes:
build_runtime is patched to wire FakeJira / FakeRenderer instead of the
REST client and mmdc. Rich output to stderr is silenced so stdout holds
only what agents parse.
"""

import asyncio
import json
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from jira_writer.cli import (
    AsyncLoopAlreadyRunningError,
    Runtime,
    app,
    build_runtime,
    run_async,
)
from jira_writer.config.settings import Settings
from jira_writer.document.markdown import markdown_to_document
from jira_writer.integrations.exceptions import JiraAuthError
from jira_writer.integrations.fallback import SignalingFallback
from jira_writer.integrations.jira_rest import JiraRestClient
from jira_writer.integrations.probe import EnvironmentProbe
from jira_writer.utils.errors import ExitCode
from jira_writer.workflow import TicketOperationOrchestrator

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_stderr():
    with patch("jira_writer.utils.console.console_err") as mock_console:
        yield mock_console


@pytest.fixture
def jira(fake_jira):
    fake_jira.issues["PROJ-1"] = markdown_to_document("# Overview\n\nintro")
    return fake_jira


@pytest.fixture
def fake_runtime(isolated_config, monkeypatch, jira, fake_renderer, no_sleep):
    """Patch build_runtime; call the returned function to change the wiring."""
    monkeypatch.setenv("JIRA_DOMAIN", "test.atlassian.net")
    monkeypatch.setenv("JIRA_API_KEY", "user@example.com:secret-token")
    options = {"primary": jira, "fallback_enabled": True}

    def build(settings, *, fallback_sink=None):
        fallback = SignalingFallback(fallback_sink) if options["fallback_enabled"] else None
        primary = options["primary"]
        probe = EnvironmentProbe(
            settings, primary, fake_renderer, fallback_available=fallback is not None
        )
        orchestrator = TicketOperationOrchestrator(
            primary, fallback, fake_renderer, probe=probe, sleeper=no_sleep
        )
        return Runtime(settings, orchestrator, None, probe, fallback)

    def configure(**changes):
        options.update(changes)

    with patch("jira_writer.cli.build_runtime", side_effect=build):
        yield configure


def messages(mock_console):
    return " ".join(str(c.args[0]) for c in mock_console.print.call_args_list if c.args)


class TestVersion:
    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.stdout

    def test_short_version_flag(self):
        result = runner.invoke(app, ["-v"])
        assert result.exit_code == 0
        assert "jira-writer" in result.stdout


class TestConvert:
    """Tests for the offline convert command."""

    def test_markdown_to_adf_from_stdin(self):
        result = runner.invoke(app, ["convert"], input="- [ ] A\n- [x] B\n")

        assert result.exit_code == 0
        adf = json.loads(result.stdout)
        assert adf["type"] == "doc"
        (task_list,) = adf["content"]
        assert task_list["type"] == "taskList"
        assert [i["attrs"]["state"] for i in task_list["content"]] == ["TODO", "DONE"]

    def test_compact_output(self):
        result = runner.invoke(app, ["convert", "--indent", "0"], input="# Title\n")
        assert result.exit_code == 0
        assert len(result.stdout.strip().splitlines()) == 1

    def test_from_file(self, tmp_path):
        source = tmp_path / "ticket.md"
        source.write_text("| a | b |\n|---|---|\n| 1 |\n")

        result = runner.invoke(app, ["convert", "--file", str(source)])

        assert result.exit_code == 0
        table = json.loads(result.stdout)["content"][0]
        assert table["type"] == "table"
        # Short rows are padded to the header width
        assert [len(row["content"]) for row in table["content"]] == [2, 2]

    def test_from_adf(self):
        adf = {
            "type": "doc",
            "version": 1,
            "content": [
                {
                    "type": "heading",
                    "attrs": {"level": 2},
                    "content": [{"type": "text", "text": "Notes"}],
                }
            ],
        }
        result = runner.invoke(app, ["convert", "--from-adf"], input=json.dumps(adf))

        assert result.exit_code == 0
        assert result.stdout.strip() == "## Notes"

    def test_from_adf_invalid_json(self, quiet_stderr):
        result = runner.invoke(app, ["convert", "--from-adf"], input="{not json")
        assert result.exit_code == ExitCode.GENERAL_ERROR
        assert "not valid JSON" in messages(quiet_stderr)

    def test_empty_content(self, quiet_stderr):
        result = runner.invoke(app, ["convert"], input="   \n")
        assert result.exit_code == ExitCode.GENERAL_ERROR
        assert "Content is empty" in messages(quiet_stderr)


class TestCreate:
    """Tests for the create command."""

    def test_create_prints_key(self, fake_runtime, jira):
        result = runner.invoke(app, ["create", "-p", "PROJ"], input="# New feature\n\nbody\n")

        assert result.exit_code == 0
        assert result.stdout.strip() == "PROJ-1"
        assert jira.created == [("PROJ", "Task", "New feature")]

    def test_create_uses_configured_defaults(self, fake_runtime, jira, monkeypatch):
        monkeypatch.setenv("DEFAULT_PROJECT", "DEF")
        monkeypatch.setenv("DEFAULT_ISSUE_TYPE", "Story")

        result = runner.invoke(app, ["create", "-s", "Given summary"], input="body\n")

        assert result.exit_code == 0
        assert jira.created == [("DEF", "Story", "Given summary")]

    def test_create_json(self, fake_runtime):
        result = runner.invoke(
            app, ["create", "-p", "PROJ", "--json"], input="```mermaid\ngraph TD\n A-->B\n```\n"
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] == "succeeded"
        assert data["api"] == "rest"
        assert data["complexity"] == "complex"
        assert data["diagrams_embedded"] == 1

    def test_fallback_signal_on_stdout(self, fake_runtime):
        fake_runtime(primary=None)

        result = runner.invoke(app, ["create", "-p", "PROJ"], input="# Title\n\nplain\n")

        assert result.exit_code == 0
        signal = json.loads(result.stdout.strip().splitlines()[0])
        assert signal["api"] == "mcp_fallback"
        assert signal["operation"] == "createJiraIssue"
        assert signal["params"]["summary"] == "Title"

    def test_fallback_signal_inside_json_result(self, fake_runtime):
        fake_runtime(primary=None)

        result = runner.invoke(app, ["create", "-p", "PROJ", "--json"], input="# T\n\nplain\n")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["api"] == "mcp_fallback"
        assert data["fallback_signal"]["operation"] == "createJiraIssue"

    def test_complex_without_credentials(self, fake_runtime, quiet_stderr):
        fake_runtime(primary=None)

        result = runner.invoke(app, ["create", "-p", "PROJ"], input="- [ ] task\n")

        assert result.exit_code == ExitCode.PREREQUISITES_FAILED
        assert "Authentication not configured" in messages(quiet_stderr)

    def test_invalid_configuration(self, fake_runtime, monkeypatch, quiet_stderr):
        monkeypatch.setenv("MAX_PARALLEL_DIAGRAMS", "50")

        result = runner.invoke(app, ["create", "-p", "PROJ"], input="body\n")

        assert result.exit_code == ExitCode.GENERAL_ERROR
        assert "Invalid configuration" in messages(quiet_stderr)

    def test_cancelled(self, fake_runtime, quiet_stderr):
        with patch("jira_writer.cli.run_async", side_effect=KeyboardInterrupt):
            result = runner.invoke(app, ["create", "-p", "PROJ"], input="body\n")

        assert result.exit_code == ExitCode.USER_CANCELLED
        assert "cancelled" in messages(quiet_stderr)


class TestUpdate:
    """Tests for the update command."""

    def test_append_by_default(self, fake_runtime, jira):
        result = runner.invoke(app, ["update", "PROJ-1"], input="Tail\n")

        assert result.exit_code == 0
        assert result.stdout.strip() == "PROJ-1"
        assert jira.issues["PROJ-1"].content[-1] == markdown_to_document("Tail").content[0]

    def test_after_implies_insert_after(self, fake_runtime, jira):
        result = runner.invoke(app, ["update", "PROJ-1", "--after", "Overview"], input="New\n")

        assert result.exit_code == 0
        assert jira.issues["PROJ-1"].content[1] == markdown_to_document("New").content[0]

    def test_missing_anchor(self, fake_runtime, quiet_stderr):
        result = runner.invoke(
            app, ["update", "PROJ-1", "--after", "Nowhere", "--json"], input="New\n"
        )

        assert result.exit_code == ExitCode.GENERAL_ERROR
        data = json.loads(result.stdout)
        assert data["status"] == "failed"
        assert "Nowhere" in data["error"]

    def test_replace_mode(self, fake_runtime, jira):
        result = runner.invoke(app, ["update", "PROJ-1", "--mode", "replace"], input="Only\n")

        assert result.exit_code == 0
        assert jira.issues["PROJ-1"] == markdown_to_document("Only")

    def test_partial_diagrams_reported(self, fake_runtime):
        content = "```mermaid\ngraph TD\n A-->B\n```\n\n```mermaid\nINVALID\n```\n"

        result = runner.invoke(app, ["update", "PROJ-1", "--json"], input=content)

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["diagrams_embedded"] == 1
        assert data["diagrams_skipped"][0]["index"] == 1
        assert data["diagrams_skipped"][0]["reason"] == "syntax error"

    def test_rollback_exit_code(self, fake_runtime, jira):
        jira.fail_next("update_description", JiraAuthError("HTTP 401", status_code=401))
        content = "```mermaid\ngraph TD\n A-->B\n```\n"

        result = runner.invoke(app, ["update", "PROJ-1", "--json"], input=content)

        assert result.exit_code == ExitCode.JIRA_FAILED
        data = json.loads(result.stdout)
        assert data["status"] == "rolled_back"
        assert data["rolled_back_attachments"] == ["10001"]


class TestCheck:
    def test_ready(self, fake_runtime):
        result = runner.invoke(app, ["check"])

        assert result.exit_code == 0
        report = json.loads(result.stdout)
        assert report["jira_connection"]["authenticated"] is True
        assert report["all_ready"] is True

    def test_not_ready(self, fake_runtime, jira):
        jira.fail_always("get_myself", JiraAuthError("HTTP 401", status_code=401))
        fake_runtime(fallback_enabled=False)

        result = runner.invoke(app, ["check"])

        assert result.exit_code == ExitCode.PREREQUISITES_FAILED
        assert json.loads(result.stdout)["all_ready"] is False


class TestCleanup:
    def test_deletes_attachments(self, fake_runtime, jira):
        attachment_id = asyncio.run(jira.upload_attachment("PROJ-1", b"png", "d.png"))

        result = runner.invoke(app, ["cleanup", attachment_id, "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"deleted": [attachment_id], "failed": []}
        assert jira.attachments == {}

    def test_failed_deletion(self, fake_runtime):
        result = runner.invoke(app, ["cleanup", "99999", "--json"])

        assert result.exit_code == ExitCode.JIRA_FAILED
        assert json.loads(result.stdout) == {"deleted": [], "failed": ["99999"]}

    def test_requires_credentials(self, fake_runtime, quiet_stderr):
        fake_runtime(primary=None)

        result = runner.invoke(app, ["cleanup", "10001"])

        assert result.exit_code == ExitCode.JIRA_FAILED
        assert "REST credentials not configured" in messages(quiet_stderr)


class TestComment:
    def test_comment_prints_id(self, fake_runtime, jira):
        result = runner.invoke(app, ["comment", "PROJ-1"], input="Looks **good**\n")

        assert result.exit_code == 0
        assert result.stdout.strip() == "20001"
        ((ticket_id, document),) = jira.comments
        assert ticket_id == "PROJ-1"
        assert document == markdown_to_document("Looks **good**\n")

    def test_fallback_signal_when_rest_fails(self, fake_runtime, jira):
        jira.fail_always("add_comment", JiraAuthError("HTTP 401", status_code=401))

        result = runner.invoke(app, ["comment", "PROJ-1", "--json"], input="plain note\n")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["api"] == "mcp_fallback"
        assert data["fallback_signal"]["operation"] == "addCommentToJiraIssue"
        assert data["fallback_signal"]["params"]["commentBody"] == "plain note"

    def test_task_list_never_falls_back(self, fake_runtime, jira, quiet_stderr):
        jira.fail_always("add_comment", JiraAuthError("HTTP 401", status_code=401))

        result = runner.invoke(app, ["comment", "PROJ-1"], input="- [ ] follow up\n")

        assert result.exit_code == ExitCode.JIRA_FAILED
        assert result.stdout == ""
        assert "HTTP 401" in messages(quiet_stderr)


class TestMetadataCommands:
    def test_projects(self, fake_runtime):
        result = runner.invoke(app, ["projects"])

        assert result.exit_code == 0
        assert result.stdout.strip() == "PROJ\tProject"

    def test_issue_types_json(self, fake_runtime):
        result = runner.invoke(app, ["issue-types", "PROJ", "--json"])

        assert result.exit_code == 0
        assert [t["name"] for t in json.loads(result.stdout)] == ["Task", "Bug", "Story"]

    def test_issue_types_default_project(self, fake_runtime, monkeypatch):
        monkeypatch.setenv("DEFAULT_PROJECT", "PROJ")

        result = runner.invoke(app, ["issue-types"])

        assert result.exit_code == 0
        assert result.stdout.splitlines()[0] == "Task\t10001"

    def test_issue_types_unknown_project(self, fake_runtime, quiet_stderr):
        result = runner.invoke(app, ["issue-types", "NOPE"])

        assert result.exit_code == ExitCode.JIRA_FAILED
        assert "NOPE not found" in messages(quiet_stderr)

    def test_requires_credentials(self, fake_runtime, quiet_stderr):
        fake_runtime(primary=None)

        result = runner.invoke(app, ["projects"])

        assert result.exit_code == ExitCode.PREREQUISITES_FAILED
        assert "REST credentials not configured" in messages(quiet_stderr)


class TestConfigCommands:
    def test_set_global(self, isolated_config):
        result = runner.invoke(app, ["config", "set", "default_project", "PROJ"])

        assert result.exit_code == 0
        assert 'DEFAULT_PROJECT="PROJ"' in isolated_config.read_text()

    def test_set_unknown_key(self, isolated_config):
        result = runner.invoke(app, ["config", "set", "NOPE", "x"])
        assert result.exit_code == ExitCode.GENERAL_ERROR
        assert not isolated_config.exists()

    def test_set_rejects_invalid_value(self, isolated_config, quiet_stderr):
        result = runner.invoke(app, ["config", "set", "JIRA_API_KEY", "not-a-pair"])

        assert result.exit_code == ExitCode.GENERAL_ERROR
        assert "email@domain.com:api_token" in messages(quiet_stderr)
        assert not isolated_config.exists()

    def test_show(self, isolated_config, monkeypatch):
        monkeypatch.setenv("JIRA_DOMAIN", "company.atlassian.net")

        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "company.atlassian.net" in result.stdout
        assert "environment" in result.stdout


class TestBuildRuntime:
    """Tests for wiring from settings."""

    def test_configured(self, configured_settings):
        runtime = build_runtime(configured_settings)

        assert isinstance(runtime.client, JiraRestClient)
        assert runtime.orchestrator.primary.configured
        assert isinstance(runtime.fallback, SignalingFallback)

    def test_malformed_key_treated_as_missing(self, quiet_stderr):
        settings = Settings(jira_domain="x.atlassian.net", jira_api_key="base64only")

        runtime = build_runtime(settings)

        assert runtime.client is None
        assert not runtime.orchestrator.primary.configured
        assert "NOT base64" in messages(quiet_stderr)

    def test_fallback_disabled(self):
        runtime = build_runtime(Settings(fallback_enabled=False))
        assert runtime.fallback is None
        assert runtime.orchestrator.fallback is None

    def test_sink_receives_signals(self):
        sink = MagicMock()
        runtime = build_runtime(Settings(), fallback_sink=sink)
        assert runtime.fallback is not None
        assert runtime.fallback._sink is sink


class TestRunAsync:
    def test_runs_coroutine(self):
        async def answer():
            return 42

        assert run_async(answer) == 42

    @pytest.mark.asyncio
    async def test_refuses_nested_loop(self):
        factory = MagicMock()
        with pytest.raises(AsyncLoopAlreadyRunningError):
            run_async(factory)
        factory.assert_not_called()
