"""jira-writer - Rich Jira ticket authoring for agents.

This package converts markdown (with Mermaid diagrams) into Atlassian
Document Format and writes it to Jira tickets through the REST API,
falling back to the host agent's MCP tools for simple content.
"""

__version__ = "0.1.0"
SCRIPT_NAME = "jira-writer"
MERMAID_CLI_PACKAGE = "@mermaid-js/mermaid-cli"

__all__ = [
    "__version__",
    "SCRIPT_NAME",
    "MERMAID_CLI_PACKAGE",
]
