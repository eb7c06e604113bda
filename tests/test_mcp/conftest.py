"""Fixtures shared by MCP handler tests."""

import pytest

from mctl.config import Config
from mctl.mcp.context import FleetContext


@pytest.fixture
def ctx(workspace, fake_git):
    """FleetContext over the test workspace, backed by FakeGit."""
    return FleetContext(config=Config(workspace=workspace.base_dir), git=fake_git)

