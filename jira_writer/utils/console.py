"""Rich-based console output utilities.

Human-readable messages go to stderr so that stdout stays reserved for
the JSON payloads agents parse (results, fallback signals, probe reports).
"""

from rich.console import Console
from rich.theme import Theme

from jira_writer import __version__

custom_theme = Theme(
    {
        "error": "bold red",
        "success": "bold green",
        "warning": "bold yellow",
        "info": "bold blue",
        "header": "bold magenta",
        "step": "bold cyan",
        "highlight": "bold white",
    }
)

# Global console instances
console = Console(theme=custom_theme)
console_err = Console(theme=custom_theme, stderr=True)


def print_error(message: str) -> None:
    """Print error message in red."""
    from jira_writer.utils.logging import log_message

    console_err.print(f"[error][[ERROR]][/error] [red]{message}[/red]")
    log_message(f"ERROR: {message}")


def print_success(message: str) -> None:
    """Print success message in green."""
    from jira_writer.utils.logging import log_message

    console_err.print(f"[success][[SUCCESS]][/success] [green]{message}[/green]")
    log_message(f"SUCCESS: {message}")


def print_warning(message: str) -> None:
    """Print warning message in yellow."""
    from jira_writer.utils.logging import log_message

    console_err.print(f"[warning][[WARN]][/warning] [yellow]{message}[/yellow]")
    log_message(f"WARNING: {message}")


def print_info(message: str) -> None:
    """Print info message in blue/cyan."""
    from jira_writer.utils.logging import log_message

    console_err.print(f"[info][[INFO]][/info] [cyan]{message}[/cyan]")
    log_message(f"INFO: {message}")


def print_header(title: str) -> None:
    """Print section header in magenta."""
    console_err.print()
    console_err.print(f"[header]=== {title} ===[/header]")
    console_err.print()


def print_step(message: str) -> None:
    """Print step indicator with arrow."""
    console_err.print(f"[step]➜[/step] {message}")


def show_version() -> None:
    """Display version information."""
    from jira_writer import MERMAID_CLI_PACKAGE

    console.print(f"[bold]jira-writer[/bold] v{__version__}")
    console.print()
    console.print("Requirements:")
    console.print(f"  - Mermaid CLI (mmdc): npm install -g {MERMAID_CLI_PACKAGE}")
    console.print("  - JIRA_DOMAIN and JIRA_API_KEY for the REST API")
    console.print()


__all__ = [
    "console",
    "console_err",
    "custom_theme",
    "print_error",
    "print_success",
    "print_warning",
    "print_info",
    "print_header",
    "print_step",
    "show_version",
]
