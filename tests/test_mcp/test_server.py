"""Tests for MCP server routing, the ping tool and the CLI entry point.

Handler behaviour is tested per module under tests/test_mcp/tools; this
file only covers the server layer.
"""

import asyncio
from unittest.mock import patch

import mcp.types as types
import pytest

from mctl import __version__
from mctl.errors import VCSCommandFailed
from mctl.mcp import server
from mctl.mcp.server import (
    PING_SPEC,
    get_context,
    get_registry,
    handle_call_tool,
    handle_list_tools,
    run,
    set_context,
    set_registry,
)
from mctl.mcp.tools import ALL_SPECS
from mctl.mcp.tools.registry import ToolRegistry


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


@pytest.fixture
def installed(ctx):
    """Install the global registry and context the way main() does."""
    set_registry(ToolRegistry([PING_SPEC] + ALL_SPECS))
    set_context(ctx)
    yield ctx
    set_context(None)
    set_registry(None)


# ---------------------------------------------------------------------------
# Globals
# ---------------------------------------------------------------------------


class TestGlobals:
    def test_context_not_initialized(self):
        with pytest.raises(RuntimeError, match="FleetContext not initialized"):
            get_context()

    def test_registry_not_initialized(self):
        with pytest.raises(RuntimeError, match="ToolRegistry not initialized"):
            get_registry()


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


class TestRouting:
    def test_list_tools_includes_ping(self, installed):
        names = [t.name for t in asyncio.run(handle_list_tools())]
        assert names[0] == "ping"
        assert len(names) == len(ALL_SPECS) + 1

    def test_unknown_tool(self, installed):
        result = asyncio.run(handle_call_tool("nope", {}))
        assert result.isError
        assert _text(result).startswith("Error (unknown_tool): Unknown tool: nope")

    def test_dispatch(self, installed, fleet):
        fleet("a")
        result = asyncio.run(handle_call_tool("repo_list", None))
        assert _text(result).startswith("1 repositories:")


class TestPing:
    def test_ready(self, installed, fleet):
        fleet("a", "b")
        result = asyncio.run(handle_call_tool("ping", {}))

        text = _text(result)
        assert not result.isError
        assert text.startswith(f"mctl {__version__} ready.")
        assert "(2 repositories)" in text
        assert "git version" in text

    def test_git_failure(self, installed, fake_git, monkeypatch):
        def broken():
            raise VCSCommandFailed("Cannot execute git", args=["--version"])

        monkeypatch.setattr(fake_git, "version", broken)
        result = asyncio.run(handle_call_tool("ping", {}))

        assert result.isError
        assert "workspace check failed: Cannot execute git" in _text(result)


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


class TestRun:
    def _run(self, argv, **patch_kwargs):
        with (
            patch("sys.argv", ["mctl-mcp", *argv]),
            patch("mctl.mcp.server.asyncio.run", **patch_kwargs) as mock_run,
            patch("mctl.mcp.server.main", new=lambda config_overrides=None: config_overrides),
        ):
            run()
        return mock_run

    def test_overrides(self):
        mock_run = self._run(["--workspace", "/w", "--read-only", "--debug"])
        assert mock_run.call_args.args[0] == {
            "workspace": "/w",
            "log_file": "/tmp/mctl-mcp.log",
            "read_only": True,
            "debug": True,
        }

    def test_init_flag(self):
        mock_run = self._run(["--workspace", "/w", "--init"])
        overrides = mock_run.call_args.args[0]
        assert overrides["init"] is True
        assert overrides["workspace"] == "/w"

    def test_startup_failure_exits_1(self):
        with pytest.raises(SystemExit) as exc_info:
            self._run([], side_effect=RuntimeError("boom"))
        assert exc_info.value.code == 1

    def test_interrupt_exits_0(self):
        with pytest.raises(SystemExit) as exc_info:
            self._run([], side_effect=KeyboardInterrupt)
        assert exc_info.value.code == 0

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            self._run(["--version"])
        assert f"mctl version {__version__}" in capsys.readouterr().out

    def test_module_has_server_instance(self):
        assert server.server.name == "mctl"
