"""Tests for jira_writer.diagrams.renderer module."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from jira_writer.config.settings import Settings
from jira_writer.diagrams.exceptions import DiagramRenderError, DiagramSyntaxError
from jira_writer.diagrams.renderer import MermaidRenderer, RenderOptions


def fake_mmdc(returncode=0, stderr="", write_png=True):
    """Build a subprocess.run replacement that behaves like mmdc."""
    calls = []

    def run(cmd, **kwargs):
        calls.append(cmd)
        if returncode == 0 and write_png:
            Path(cmd[cmd.index("-o") + 1]).write_bytes(b"\x89PNG fake")
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr=stderr)

    run.calls = calls
    return run


class TestRenderOptions:
    def test_defaults_to_args(self):
        assert RenderOptions().to_args() == [
            "--backgroundColor",
            "white",
            "--theme",
            "neutral",
            "--scale",
            "2",
        ]

    def test_from_settings(self):
        settings = Settings(diagram_theme="dark", diagram_background="transparent", diagram_scale=3)
        assert RenderOptions.from_settings(settings) == RenderOptions("transparent", "dark", 3)


class TestMermaidRenderer:
    """Tests for MermaidRenderer with mmdc mocked out."""

    @pytest.mark.asyncio
    async def test_render_returns_png_bytes(self):
        run = fake_mmdc()
        with patch("jira_writer.diagrams.renderer.subprocess.run", side_effect=run):
            png = await MermaidRenderer("mmdc").render("graph TD\n A-->B", RenderOptions())

        assert png == b"\x89PNG fake"
        (cmd,) = run.calls
        assert cmd[0] == "mmdc"
        assert cmd[-6:] == RenderOptions().to_args()

    @pytest.mark.asyncio
    async def test_render_writes_source_to_input_file(self):
        seen = {}

        def run(cmd, **kwargs):
            seen["source"] = Path(cmd[cmd.index("-i") + 1]).read_text()
            Path(cmd[cmd.index("-o") + 1]).write_bytes(b"png")
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        with patch("jira_writer.diagrams.renderer.subprocess.run", side_effect=run):
            await MermaidRenderer().render("graph LR\n X-->Y", RenderOptions())

        assert seen["source"] == "graph LR\n X-->Y\n"

    @pytest.mark.asyncio
    async def test_validate_passes_without_options(self):
        run = fake_mmdc()
        with patch("jira_writer.diagrams.renderer.subprocess.run", side_effect=run):
            await MermaidRenderer().validate("graph TD")

        (cmd,) = run.calls
        assert "--theme" not in cmd

    @pytest.mark.asyncio
    async def test_validate_raises_syntax_error(self):
        run = fake_mmdc(returncode=1, stderr="Parse error on line 2")
        with patch("jira_writer.diagrams.renderer.subprocess.run", side_effect=run):
            with pytest.raises(DiagramSyntaxError) as exc_info:
                await MermaidRenderer().validate("graph TD\n A-->")

        assert exc_info.value.renderer_output == "Parse error on line 2"
        assert "Parse error on line 2" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_render_failure_raises_render_error(self):
        run = fake_mmdc(returncode=1, stderr="puppeteer crashed")
        with patch("jira_writer.diagrams.renderer.subprocess.run", side_effect=run):
            with pytest.raises(DiagramRenderError, match="puppeteer crashed"):
                await MermaidRenderer().render("graph TD", RenderOptions())

    @pytest.mark.asyncio
    async def test_missing_output_file(self):
        run = fake_mmdc(write_png=False)
        with patch("jira_writer.diagrams.renderer.subprocess.run", side_effect=run):
            with pytest.raises(DiagramRenderError, match="not created"):
                await MermaidRenderer().render("graph TD", RenderOptions())

    @pytest.mark.asyncio
    async def test_timeout(self):
        with patch(
            "jira_writer.diagrams.renderer.subprocess.run",
            side_effect=subprocess.TimeoutExpired("mmdc", 5),
        ):
            with pytest.raises(DiagramRenderError, match="timed out"):
                await MermaidRenderer(timeout_seconds=5).render("graph TD", RenderOptions())

    @pytest.mark.asyncio
    async def test_missing_executable(self):
        with patch(
            "jira_writer.diagrams.renderer.subprocess.run",
            side_effect=FileNotFoundError("mmdc"),
        ):
            with pytest.raises(DiagramRenderError, match="Failed to run"):
                await MermaidRenderer().validate("graph TD")

    def test_is_available(self):
        with patch(
            "jira_writer.diagrams.renderer.check_cli_installed",
            return_value=(True, "10.9.1"),
        ) as mock_check:
            assert MermaidRenderer("/opt/mmdc").is_available()
        mock_check.assert_called_once_with("/opt/mmdc")

    def test_from_settings(self):
        renderer = MermaidRenderer.from_settings(
            Settings(mmdc_path="/usr/local/bin/mmdc", diagram_timeout_seconds=15)
        )
        assert renderer.mmdc_path == "/usr/local/bin/mmdc"
        assert renderer.timeout_seconds == 15
