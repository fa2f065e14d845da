"""Entry point for running jira-writer as a module.

This allows running the application with:
    python -m jira_writer [COMMAND] [OPTIONS]
"""

from jira_writer.cli import app

if __name__ == "__main__":
    app()
