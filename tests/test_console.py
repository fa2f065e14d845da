"""Tests for jira_writer.utils.console module."""

from unittest.mock import patch

import pytest

from jira_writer.utils.console import (
    custom_theme,
    print_error,
    print_header,
    print_info,
    print_step,
    print_success,
    print_warning,
    show_version,
)


class TestCustomTheme:
    @pytest.mark.parametrize(
        "style", ["error", "success", "warning", "info", "header", "step", "highlight"]
    )
    def test_theme_has_style(self, style):
        assert style in custom_theme.styles


class TestPrintFunctions:
    """Messages go to stderr and are logged."""

    @pytest.mark.parametrize(
        ("func", "tag", "log_prefix"),
        [
            (print_error, "[ERROR]", "ERROR: "),
            (print_success, "[SUCCESS]", "SUCCESS: "),
            (print_warning, "[WARN]", "WARNING: "),
            (print_info, "[INFO]", "INFO: "),
        ],
    )
    @patch("jira_writer.utils.logging.log_message")
    @patch("jira_writer.utils.console.console_err")
    def test_prints_and_logs(self, mock_console, mock_log, func, tag, log_prefix):
        func("message text")

        printed = mock_console.print.call_args.args[0]
        assert tag in printed
        assert "message text" in printed
        mock_log.assert_called_once_with(f"{log_prefix}message text")

    @patch("jira_writer.utils.console.console_err")
    def test_print_header(self, mock_console):
        print_header("Title")
        printed = [c.args[0] for c in mock_console.print.call_args_list if c.args]
        assert any("=== Title ===" in p for p in printed)

    @patch("jira_writer.utils.console.console_err")
    def test_print_step(self, mock_console):
        print_step("Rendering")
        assert "Rendering" in mock_console.print.call_args.args[0]


class TestShowVersion:
    @patch("jira_writer.utils.console.console")
    def test_show_version_goes_to_stdout_console(self, mock_console):
        show_version()
        printed = " ".join(str(c.args[0]) for c in mock_console.print.call_args_list if c.args)
        assert "jira-writer" in printed
        assert "mmdc" in printed
