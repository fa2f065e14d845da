"""CLI interface for jira-writer.

This module provides the Typer-based command-line interface. Content is
read from --file or stdin. Machine-readable output (results with --json,
fallback signals, the prerequisites report) goes to stdout; progress and
errors go to stderr.

Exit codes follow ExitCode: 0 success, 1 general error, 2 prerequisites
missing, 3 diagram failure, 4 Jira failure, 5 cancelled.
"""

import asyncio
import json
import sys
from collections.abc import Callable, Coroutine, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer

from jira_writer import SCRIPT_NAME
from jira_writer.config.manager import ConfigManager
from jira_writer.config.settings import ConfigValidationError, Settings
from jira_writer.diagrams.pipeline import RollbackReport
from jira_writer.diagrams.renderer import MermaidRenderer, RenderOptions
from jira_writer.document.markdown import markdown_to_document
from jira_writer.document.merger import MergeMode
from jira_writer.document.model import Doc
from jira_writer.document.render import document_to_markdown, markdown_safe
from jira_writer.integrations.cache import SessionCache
from jira_writer.integrations.exceptions import CredentialsNotConfiguredError
from jira_writer.integrations.fallback import SignalingFallback
from jira_writer.integrations.jira_rest import JiraRestClient
from jira_writer.integrations.outcome import ApiFailure, ApiOutcome, FallbackRequested, Ok
from jira_writer.integrations.probe import EnvironmentProbe, EnvironmentStatus
from jira_writer.utils.console import (
    print_error,
    print_info,
    print_success,
    print_warning,
    show_version,
)
from jira_writer.utils.errors import ExitCode, JiraWriterError, UserCancelledError
from jira_writer.utils.logging import setup_logging
from jira_writer.workflow.exceptions import ApiUnavailable
from jira_writer.workflow.orchestrator import TicketOperationOrchestrator
from jira_writer.workflow.state import OperationMode, OperationRequest, OperationResult

T = TypeVar("T")

# Create Typer app
app = typer.Typer(
    name=SCRIPT_NAME,
    help="jira-writer - Rich Jira tickets from markdown and Mermaid diagrams",
    add_completion=False,
    no_args_is_help=True,
)
config_app = typer.Typer(help="Show or change configuration", no_args_is_help=True)
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    """Display version and exit."""
    if value:
        show_version()
        raise typer.Exit()


class AsyncLoopAlreadyRunningError(JiraWriterError):
    """Raised when trying to run async code in an existing event loop."""

    _default_exit_code = ExitCode.GENERAL_ERROR


def run_async(coro_factory: Callable[[], Coroutine[None, None, T]]) -> T:
    """Run an async coroutine, refusing to nest inside a running loop.

    Takes a factory so the running-loop check happens before the coroutine
    object exists.

    Raises:
        AsyncLoopAlreadyRunningError: If an event loop is already running
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop is not None:
        raise AsyncLoopAlreadyRunningError(
            "Cannot run async operation: an event loop is already running. "
            "Call the orchestrator with 'await' instead."
        )

    return asyncio.run(coro_factory())


@dataclass
class Runtime:
    """Collaborators wired from configuration for one command.

    Attributes:
        settings: Loaded settings
        orchestrator: Ticket operation orchestrator
        client: REST client, or None when credentials are missing
        probe: Environment probe sharing the same client
        fallback: Signaling fallback, or None when disabled
    """

    settings: Settings
    orchestrator: TicketOperationOrchestrator
    client: JiraRestClient | None
    probe: EnvironmentProbe
    fallback: SignalingFallback | None

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()


def load_settings() -> Settings:
    """Load configuration and fail fast on invalid numeric settings.

    Raises:
        ConfigValidationError: If any setting is out of range
    """
    config = ConfigManager()
    settings = config.load()
    problems = settings.validate()
    if problems:
        raise ConfigValidationError("; ".join(problems))
    return settings


def build_runtime(
    settings: Settings,
    *,
    fallback_sink: Callable[[str], None] | None = None,
) -> Runtime:
    """Wire the REST client, renderer, fallback and orchestrator.

    A malformed JIRA_API_KEY is reported and treated as missing credentials,
    so SIMPLE content can still use the fallback.
    """
    cache = SessionCache()
    client: JiraRestClient | None = None
    if settings.primary_configured:
        try:
            client = JiraRestClient.from_settings(settings, cache=cache)
        except CredentialsNotConfiguredError as e:
            print_warning(str(e))

    renderer = MermaidRenderer.from_settings(settings)
    fallback = SignalingFallback(fallback_sink) if settings.fallback_enabled else None
    probe = EnvironmentProbe(settings, client, renderer, fallback_available=fallback is not None)
    orchestrator = TicketOperationOrchestrator(
        client,
        fallback,
        renderer,
        probe=probe,
        render_options=RenderOptions.from_settings(settings),
        max_parallel_diagrams=settings.max_parallel_diagrams,
        upload_retry_delay_seconds=settings.upload_retry_delay_seconds,
        cache=cache,
    )
    return Runtime(settings, orchestrator, client, probe, fallback)


@contextmanager
def _cli_errors() -> Iterator[None]:
    """Map exceptions to messages and exit codes."""
    try:
        yield
    except UserCancelledError as e:
        print_info(str(e))
        raise typer.Exit(ExitCode.USER_CANCELLED) from e
    except ConfigValidationError as e:
        print_error(f"Invalid configuration: {e}")
        raise typer.Exit(ExitCode.GENERAL_ERROR) from e
    except JiraWriterError as e:
        print_error(str(e))
        raise typer.Exit(e.exit_code) from e
    except KeyboardInterrupt as e:
        print_info("Operation cancelled by user")
        raise typer.Exit(ExitCode.USER_CANCELLED) from e


def _read_content(file: Path | None) -> str:
    """Read content from the file, or from stdin when no file is given."""
    if file is not None:
        content = file.read_text()
    elif sys.stdin.isatty():
        raise JiraWriterError("No content given: pass --file or pipe markdown on stdin")
    else:
        content = sys.stdin.read()
    if not content.strip():
        raise JiraWriterError("Content is empty")
    return content


async def _execute(runtime: Runtime, request: OperationRequest) -> OperationResult:
    try:
        return await runtime.orchestrator.run(request)
    finally:
        await runtime.close()


def _run_operation(settings: Settings, request: OperationRequest, json_output: bool) -> None:
    # Signals are part of the --json result, so only echo them in plain mode
    runtime = build_runtime(settings, fallback_sink=None if json_output else typer.echo)
    try:
        result = run_async(lambda: _execute(runtime, request))
    except KeyboardInterrupt as e:
        pending = runtime.orchestrator.pending_attachments
        if pending:
            print_warning(f"Attachments left on the ticket: {', '.join(pending)}")
            print_info(f"Remove them with: {SCRIPT_NAME} cleanup {' '.join(pending)}")
        raise UserCancelledError("Operation cancelled by user") from e

    _report_result(result, json_output)
    if not result.succeeded:
        raise typer.Exit(result.exit_code)


def _report_result(result: OperationResult, json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    if result.succeeded:
        if result.ticket_id:
            typer.echo(result.ticket_id)
        else:
            print_info("Ticket will be created by the host agent from the fallback signal")
    else:
        print_error(result.error or f"Operation {result.status.value}")

    if result.diagrams_embedded or result.diagrams_skipped:
        print_info(
            f"{result.diagrams_embedded} diagram(s) embedded, "
            f"{len(result.diagrams_skipped)} skipped"
        )
    for skip in result.diagrams_skipped:
        print_warning(f"Diagram {skip.index + 1} ({skip.filename}) skipped: {skip.reason}")
    if result.rolled_back_attachments:
        print_info(f"Deleted attachments: {', '.join(result.rolled_back_attachments)}")
    if result.failed_rollbacks:
        print_warning(
            f"Could not delete attachments {', '.join(result.failed_rollbacks)}; "
            f"retry with: {SCRIPT_NAME} cleanup {' '.join(result.failed_rollbacks)}"
        )


FileOption = Annotated[
    Path | None,
    typer.Option(
        "--file",
        "-f",
        exists=True,
        dir_okay=False,
        readable=True,
        help="Read content from this file instead of stdin",
    ),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Print the result as JSON"),
]


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version information",
        ),
    ] = None,
) -> None:
    """Create and update Jira tickets with checkboxes, tables and diagrams."""
    setup_logging()


@app.command()
def create(
    project: Annotated[
        str | None,
        typer.Option("--project", "-p", help="Project key (default: DEFAULT_PROJECT)"),
    ] = None,
    issue_type: Annotated[
        str | None,
        typer.Option("--type", "-t", help="Issue type name (default: DEFAULT_ISSUE_TYPE)"),
    ] = None,
    summary: Annotated[
        str | None,
        typer.Option("--summary", "-s", help="Summary (default: first heading or line)"),
    ] = None,
    file: FileOption = None,
    json_output: JsonOption = False,
) -> None:
    """Create a ticket from markdown content."""
    with _cli_errors():
        settings = load_settings()
        request = OperationRequest(
            mode=OperationMode.CREATE,
            project=(project or settings.default_project).strip(),
            issue_type=issue_type or settings.default_issue_type,
            raw_content=_read_content(file),
            summary=summary,
        )
        _run_operation(settings, request, json_output)


@app.command()
def update(
    ticket: Annotated[str, typer.Argument(help="Ticket key, e.g. PROJ-123")],
    mode: Annotated[
        MergeMode | None,
        typer.Option(
            "--mode",
            "-m",
            case_sensitive=False,
            help="How to combine with the existing description (default: append)",
        ),
    ] = None,
    anchor: Annotated[
        str | None,
        typer.Option("--after", "-a", help="Insert after this heading (implies insert_after)"),
    ] = None,
    file: FileOption = None,
    json_output: JsonOption = False,
) -> None:
    """Update a ticket description with markdown content."""
    if mode is None:
        mode = MergeMode.INSERT_AFTER if anchor else MergeMode.APPEND
    with _cli_errors():
        settings = load_settings()
        request = OperationRequest(
            mode=OperationMode.UPDATE,
            target=ticket.strip(),
            raw_content=_read_content(file),
            merge_mode=mode,
            anchor=anchor,
        )
        _run_operation(settings, request, json_output)


@app.command()
def convert(
    file: FileOption = None,
    from_adf: Annotated[
        bool,
        typer.Option("--from-adf", help="Read ADF JSON and print markdown instead"),
    ] = False,
    indent: Annotated[int, typer.Option("--indent", help="JSON indentation (0 = compact)")] = 2,
) -> None:
    """Convert markdown to ADF JSON (or back) without contacting Jira."""
    with _cli_errors():
        content = _read_content(file)
        if from_adf:
            try:
                data = json.loads(content)
            except json.JSONDecodeError as e:
                raise JiraWriterError(f"Input is not valid JSON: {e}") from e
            typer.echo(document_to_markdown(Doc.from_adf(data)))
        else:
            typer.echo(markdown_to_document(content).to_json(indent=indent or None))


async def _probe(runtime: Runtime) -> EnvironmentStatus:
    try:
        return await runtime.probe.probe()
    finally:
        await runtime.close()


@app.command()
def check() -> None:
    """Check prerequisites and print the report as JSON."""
    with _cli_errors():
        settings = load_settings()
        runtime = build_runtime(settings)
        status = run_async(lambda: _probe(runtime))
        typer.echo(json.dumps(runtime.probe.report(status), indent=2))

        if status.primary_authenticated:
            print_success(f"Jira REST API authenticated as {status.user or 'unknown user'}")
        else:
            print_warning(f"Jira REST API unavailable: {status.error}")
        if not status.renderer_available:
            print_warning("mmdc not found; diagrams cannot be rendered")
        if not status.all_ready:
            raise typer.Exit(ExitCode.PREREQUISITES_FAILED)


async def _cleanup(runtime: Runtime, attachment_ids: list[str]) -> RollbackReport:
    try:
        return await runtime.orchestrator.cleanup(attachment_ids)
    finally:
        await runtime.close()


@app.command()
def cleanup(
    attachment_ids: Annotated[list[str], typer.Argument(help="Attachment ids to delete")],
    json_output: JsonOption = False,
) -> None:
    """Delete attachments left behind by a cancelled operation."""
    with _cli_errors():
        settings = load_settings()
        runtime = build_runtime(settings)
        report = run_async(lambda: _cleanup(runtime, attachment_ids))

        if json_output:
            typer.echo(json.dumps({"deleted": report.deleted, "failed": report.failed}))
        elif report.deleted:
            print_success(f"Deleted {len(report.deleted)} attachment(s)")
        if report.failed:
            print_error(f"Could not delete: {', '.join(report.failed)}")
            raise typer.Exit(ExitCode.JIRA_FAILED)


def _unwrap(outcome: ApiOutcome[T]) -> T:
    """Data of a successful outcome; failures become the underlying error."""
    if isinstance(outcome, Ok):
        return outcome.data
    assert isinstance(outcome, ApiFailure)
    raise outcome.error or ApiUnavailable(outcome.message)


async def _comment(runtime: Runtime, ticket_id: str, content: str) -> dict[str, Any]:
    document = markdown_to_document(content)
    # Task lists and media would be lost as plain markdown
    fallback_markdown = None
    if runtime.fallback is not None and markdown_safe(document):
        fallback_markdown = content.strip()
    try:
        outcome = await runtime.orchestrator.primary.add_comment(
            ticket_id, document, fallback_markdown=fallback_markdown
        )
        if isinstance(outcome, FallbackRequested):
            assert runtime.fallback is not None and fallback_markdown is not None
            await runtime.fallback.comment(ticket_id, fallback_markdown, reason=outcome.reason)
            return {
                "ticket_id": ticket_id,
                "api": "mcp_fallback",
                "fallback_signal": outcome.to_signal(),
            }
        return {"ticket_id": ticket_id, "api": "rest", "comment_id": _unwrap(outcome)}
    finally:
        await runtime.close()


@app.command()
def comment(
    ticket: Annotated[str, typer.Argument(help="Ticket key, e.g. PROJ-123")],
    file: FileOption = None,
    json_output: JsonOption = False,
) -> None:
    """Add a markdown comment to a ticket."""
    with _cli_errors():
        settings = load_settings()
        content = _read_content(file)
        runtime = build_runtime(settings, fallback_sink=None if json_output else typer.echo)
        result = run_async(lambda: _comment(runtime, ticket.strip(), content))

        if json_output:
            typer.echo(json.dumps(result, indent=2))
        elif "comment_id" in result:
            typer.echo(result["comment_id"])
            print_success(f"Comment added to {result['ticket_id']}")


async def _list_metadata(runtime: Runtime, project: str | None) -> list[dict[str, Any]]:
    primary = runtime.orchestrator.primary
    try:
        if project:
            return _unwrap(await primary.get_issue_types(project))
        return _unwrap(await primary.get_projects())
    finally:
        await runtime.close()


def _print_metadata(
    items: list[dict[str, Any]], columns: tuple[str, str], json_output: bool
) -> None:
    if json_output:
        typer.echo(json.dumps(items, indent=2))
        return
    for item in items:
        typer.echo("\t".join(str(item.get(column, "")) for column in columns))


@app.command()
def projects(json_output: JsonOption = False) -> None:
    """List the projects visible to the configured account."""
    with _cli_errors():
        settings = load_settings()
        runtime = build_runtime(settings)
        items = run_async(lambda: _list_metadata(runtime, None))
        _print_metadata(items, ("key", "name"), json_output)


@app.command("issue-types")
def issue_types(
    project: Annotated[
        str | None,
        typer.Argument(help="Project key (default: DEFAULT_PROJECT)"),
    ] = None,
    json_output: JsonOption = False,
) -> None:
    """List the issue types a project offers."""
    with _cli_errors():
        settings = load_settings()
        project_key = (project or settings.default_project).strip()
        if not project_key:
            raise JiraWriterError("A project key is required (argument or DEFAULT_PROJECT)")
        runtime = build_runtime(settings)
        items = run_async(lambda: _list_metadata(runtime, project_key))
        _print_metadata(items, ("name", "id"), json_output)


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration and where each value came from."""
    config = ConfigManager()
    config.load()
    config.show()


@config_app.command("set")
def config_set(
    key: Annotated[str, typer.Argument(help="Configuration key, e.g. JIRA_DOMAIN")],
    value: Annotated[str, typer.Argument(help="Value to store")],
    local: Annotated[
        bool,
        typer.Option("--local", help="Write to .jira-writer in the current directory"),
    ] = False,
) -> None:
    """Store a configuration value."""
    key = key.strip().upper()
    if key not in Settings.get_config_keys():
        print_error(f"Unknown configuration key: {key}")
        raise typer.Exit(ExitCode.GENERAL_ERROR)
    config = ConfigManager()
    config.load()
    try:
        config.save(key, value, scope="local" if local else "global")
    except ConfigValidationError as e:
        print_error(str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR) from e
    print_success(f"Saved {key}")


__all__ = [
    "app",
    "run_async",
    "build_runtime",
    "load_settings",
    "Runtime",
    "AsyncLoopAlreadyRunningError",
]
