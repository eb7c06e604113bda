"""Tests for logger.py -- setup_logging(), JsonFormatter and the Journal.

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import os
import re
import stat
import sys
from unittest.mock import patch

import pytest

from mctl.config import WorkspacePaths
from mctl.logger import JsonFormatter, Journal, setup_logging

_LINE = re.compile(r"^\[\d{4}-\d{2}-\d{2}T[\d:]+\+00:00\] \[(\w+)\] (.*)$")


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("mctl.logger.logging.basicConfig")
    def test_cli_mode_logs_to_stderr(self, mock_basic):
        setup_logging(mode="cli")

        handlers = mock_basic.call_args[1]["handlers"]
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr

    @patch("mctl.logger.logging.basicConfig")
    def test_cli_mode_with_file(self, mock_basic, tmp_path):
        setup_logging(mode="cli", log_file=str(tmp_path / "cli.log"))

        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 2
        assert isinstance(handlers[1], logging.FileHandler)
        handlers[1].close()

    @patch("mctl.logger.logging.basicConfig")
    def test_mcp_mode_logs_to_file(self, mock_basic, tmp_path):
        log_file = str(tmp_path / "mcp.log")
        setup_logging(mode="mcp", log_file=log_file)

        kwargs = mock_basic.call_args[1]
        assert kwargs["filename"] == log_file
        assert "handlers" not in kwargs

    @patch("mctl.logger.logging.basicConfig")
    def test_mcp_mode_defaults_to_warning(self, mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging(mode="mcp", log_file="/dev/null")
        assert mock_basic.call_args[1]["level"] == logging.WARNING

    @patch("mctl.logger.logging.basicConfig")
    def test_debug_overrides_level(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(mode="cli", debug=True)
        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("mctl.logger.logging.basicConfig")
    def test_settings_level_used_when_env_unset(self, mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging(mode="cli", level="ERROR")
        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("mctl.logger.logging.basicConfig")
    def test_json_format_uses_json_formatter(self, mock_basic):
        setup_logging(mode="cli", debug_format="json")
        handler = mock_basic.call_args[1]["handlers"][0]
        assert isinstance(handler.formatter, JsonFormatter)


class TestJsonFormatter:
    """Tests for JsonFormatter output."""

    def test_single_line_json(self):
        record = logging.LogRecord(
            "mctl.sync", logging.INFO, __file__, 1, "synced %d", (3,), None
        )
        entry = json.loads(JsonFormatter().format(record))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "mctl.sync"
        assert entry["msg"] == "synced 3"
        assert "exc" not in entry

    def test_includes_exception(self):
        try:
            raise RuntimeError("kaboom")
        except RuntimeError:
            record = logging.LogRecord(
                "mctl", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        entry = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: kaboom" in entry["exc"]


# ---------------------------------------------------------------------------
# Journal tests
# ---------------------------------------------------------------------------


class TestJournal:
    """Tests for the workspace operation and audit journal."""

    def test_operation_line_format(self, tmp_path):
        journal = Journal(WorkspacePaths(tmp_path))
        journal.operation("Sync started: 3 repositories")

        lines = journal.read("operations")
        assert len(lines) == 1
        match = _LINE.match(lines[0])
        assert match is not None
        assert match.groups() == ("INFO", "Sync started: 3 repositories")

    def test_audit_is_separate_file(self, tmp_path):
        paths = WorkspacePaths(tmp_path)
        journal = Journal(paths)
        journal.audit("Repository added: api (0123456789)", level="WARNING")

        assert journal.read("operations") == []
        assert "[WARNING] Repository added" in journal.read("audit")[0]
        assert paths.audit_log.exists()

    def test_files_are_owner_only(self, tmp_path):
        paths = WorkspacePaths(tmp_path)
        Journal(paths).operation("x")
        assert stat.S_IMODE(os.stat(paths.operations_log).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(paths.logs_dir).st_mode) == 0o700

    def test_read_limit_returns_most_recent(self, tmp_path):
        journal = Journal(WorkspacePaths(tmp_path))
        for i in range(5):
            journal.operation(f"entry {i}")
        lines = journal.read("operations", limit=2)
        assert [line.rsplit(" ", 1)[-1] for line in lines] == ["3", "4"]

    def test_read_missing_journal(self, tmp_path):
        assert Journal(WorkspacePaths(tmp_path)).read("audit") == []

    def test_unknown_kind(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown journal"):
            Journal(WorkspacePaths(tmp_path)).read("debug")

    def test_write_failure_does_not_raise(self, tmp_path, caplog):
        # A file where the logs directory should be makes every append fail
        paths = WorkspacePaths(tmp_path)
        paths.config_dir.mkdir()
        paths.logs_dir.write_text("not a directory")

        with caplog.at_level(logging.WARNING, logger="mctl.logger"):
            Journal(paths).operation("lost")
        assert "Could not write operations journal" in caplog.text
