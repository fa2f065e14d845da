"""Mermaid renderer backed by the mmdc command line tool.

mmdc has no real dry-run flag, so validation renders to a throwaway PNG
with default options. A non-zero exit means the source was rejected.
"""

from __future__ import annotations

import asyncio
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from jira_writer.config.settings import Settings
from jira_writer.diagrams.exceptions import DiagramRenderError, DiagramSyntaxError
from jira_writer.utils.logging import check_cli_installed, log_command, log_message

# Renderer output is truncated in error messages
MAX_RENDERER_OUTPUT_LENGTH = 500


@dataclass(frozen=True)
class RenderOptions:
    """Presentation options passed to the renderer."""

    background: str = "white"
    theme: str = "neutral"
    scale: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> RenderOptions:
        return cls(
            background=settings.diagram_background,
            theme=settings.diagram_theme,
            scale=settings.diagram_scale,
        )

    def to_args(self) -> list[str]:
        return [
            "--backgroundColor",
            self.background,
            "--theme",
            self.theme,
            "--scale",
            str(self.scale),
        ]


class DiagramRenderer(Protocol):
    """What the diagram pipeline needs from a renderer."""

    async def validate(self, source: str) -> None: ...

    async def render(self, source: str, options: RenderOptions) -> bytes: ...


class MermaidRenderer:
    """Runs mmdc in a worker thread.

    Attributes:
        mmdc_path: mmdc executable name or path
        timeout_seconds: Timeout for a single mmdc invocation
    """

    def __init__(self, mmdc_path: str = "mmdc", timeout_seconds: float = 60) -> None:
        self.mmdc_path = mmdc_path
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> MermaidRenderer:
        return cls(settings.mmdc_path, settings.diagram_timeout_seconds)

    def is_available(self) -> bool:
        """Whether mmdc is installed and answers --version."""
        installed, _ = check_cli_installed(self.mmdc_path)
        return installed

    async def validate(self, source: str) -> None:
        """Dry-run the source.

        Raises:
            DiagramSyntaxError: If mmdc rejects the source
            DiagramRenderError: If mmdc cannot be run at all
        """
        ok, output, _ = await asyncio.to_thread(self._run, source, [])
        if not ok:
            raise DiagramSyntaxError(output)

    async def render(self, source: str, options: RenderOptions) -> bytes:
        """Render the source to PNG bytes.

        Raises:
            DiagramRenderError: If rendering fails or produces no file
        """
        ok, output, png = await asyncio.to_thread(self._run, source, options.to_args())
        if not ok:
            raise DiagramRenderError(f"Mermaid to PNG conversion failed: {output}")
        if not png:
            raise DiagramRenderError("PNG file was not created")
        log_message(f"PNG created: {len(png)} bytes")
        return png

    def _run(self, source: str, extra_args: list[str]) -> tuple[bool, str, bytes]:
        """Run mmdc once; returns (success, combined output, png bytes)."""
        with tempfile.TemporaryDirectory(prefix="jira-writer-") as temp_dir:
            input_path = Path(temp_dir) / "diagram.mmd"
            output_path = Path(temp_dir) / "diagram.png"
            input_path.write_text(source + "\n")
            cmd = [self.mmdc_path, "-i", str(input_path), "-o", str(output_path), *extra_args]
            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    stdin=subprocess.DEVNULL,
                    timeout=self.timeout_seconds,
                )
            except subprocess.TimeoutExpired as e:
                log_command(" ".join(cmd), -1)
                raise DiagramRenderError(
                    f"mmdc timed out after {self.timeout_seconds} seconds"
                ) from e
            except OSError as e:
                raise DiagramRenderError(f"Failed to run {self.mmdc_path}: {e}") from e

            log_command(" ".join(cmd), result.returncode)
            output = (result.stderr.strip() or result.stdout.strip())[:MAX_RENDERER_OUTPUT_LENGTH]
            if result.returncode != 0:
                return False, output, b""
            png = output_path.read_bytes() if output_path.exists() else b""
            return True, output, png


__all__ = [
    "RenderOptions",
    "DiagramRenderer",
    "MermaidRenderer",
]
