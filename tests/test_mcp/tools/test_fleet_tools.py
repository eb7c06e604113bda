"""Tests for fleet MCP tool handlers (sync, save, branch, clear)."""

import asyncio
import time

import mcp.types as types

from mctl.mcp.tools.fleet import FLEET_SPECS, FLEET_TOOLS
from mctl.mcp.tools.registry import ToolRegistry
from mctl.mcp.tools.repository import REPOSITORY_SPECS
from mctl.repository.registry import Registry
from mctl.snapshot.manager import SnapshotManager


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


def _call(ctx, name, args=None):
    registry = ToolRegistry(FLEET_SPECS)
    return asyncio.run(registry.call_tool(name, args or {}, ctx))


class TestFleetToolDefinitions:
    def test_tools(self):
        assert [t.name for t in FLEET_TOOLS] == [
            "fleet_sync",
            "fleet_save",
            "fleet_branch",
            "fleet_clear",
        ]

    def test_clear_is_destructive(self):
        assert FLEET_TOOLS[3].annotations.destructiveHint is True

    def test_sync_mode_enum(self):
        schema = FLEET_TOOLS[0].inputSchema["properties"]["mode"]
        assert schema["enum"] == ["fetch", "pull"]


# ---------------------------------------------------------------------------
# fleet_sync
# ---------------------------------------------------------------------------


class TestFleetSync:
    def test_sync_all(self, ctx, fleet, fake_git):
        repos = fleet("a", "b")
        result = _call(ctx, "fleet_sync")

        assert not result.isError
        assert _text(result).endswith("2/2 succeeded, 0 failed")
        assert result.structuredContent["counts"]["applied"] == 2
        assert sorted(fake_git.calls_for("pull")) == sorted(r.full_path for r in repos)

    def test_fetch_mode(self, ctx, fleet, fake_git):
        fleet("a")
        result = _call(ctx, "fleet_sync", {"mode": "fetch"})
        assert result.structuredContent["results"][0]["action"] == "fetch"
        assert fake_git.calls_for("pull") == []

    def test_invalid_mode(self, ctx, fleet):
        fleet("a")
        result = _call(ctx, "fleet_sync", {"mode": "merge"})
        assert _text(result).startswith("Error (configuration_error)")

    def test_failure_sets_is_error(self, ctx, fleet, fake_git):
        a, b = fleet("a", "b")
        fake_git.tree(a.full_path).dirty = True

        result = _call(ctx, "fleet_sync")

        assert result.isError
        assert "[FAIL] a (repos/a): pull - has uncommitted changes" in _text(result)

    def test_dry_run_preview(self, ctx, fleet, fake_git):
        fleet("a")
        result = _call(ctx, "fleet_sync", {"dry_run": True})
        assert _text(result).startswith("DRY RUN -- No changes will be made")
        assert fake_git.calls_for("pull") == []

    def test_auto_remove(self, ctx, fleet, fake_git, workspace):
        a, b = fleet("a", "b")
        fake_git.bad_urls.add(a.config.url)
        a.delete_files()

        result = _call(ctx, "fleet_sync", {"auto_remove": True})

        assert not result.isError
        assert result.structuredContent["removed"] == ["a"]
        assert [e.name for e in Registry.open(workspace.base_dir).entries] == ["b"]

    def test_repository_filter(self, ctx, fleet):
        fleet("a", "b")
        result = _call(ctx, "fleet_sync", {"repositories": ["b"]})
        assert [r["name"] for r in result.structuredContent["results"]] == ["b"]

    def test_bad_repository_filter(self, ctx, fleet):
        fleet("a")
        result = _call(ctx, "fleet_sync", {"repositories": "a"})
        assert _text(result).startswith("Error (validation_error)")


# ---------------------------------------------------------------------------
# fleet_save
# ---------------------------------------------------------------------------


class TestFleetSave:
    def test_requires_message(self, ctx):
        result = _call(ctx, "fleet_save", {})
        assert result.isError
        assert "message is required" in _text(result)

    def test_saves_dirty(self, ctx, fleet, fake_git):
        a, b = fleet("a", "b")
        fake_git.tree(a.full_path).dirty = True

        result = _call(ctx, "fleet_save", {"message": "wip"})

        assert not result.isError
        assert fake_git.calls_for("push") == [a.full_path]
        assert "snapshot_id" not in result.structuredContent

    def test_with_snapshot(self, ctx, fleet, fake_git, workspace):
        (a,) = fleet("a")
        fake_git.tree(a.full_path).dirty = True

        result = _call(ctx, "fleet_save", {"message": "release 1", "snapshot": True})

        snapshot_id = result.structuredContent["snapshot_id"]
        assert f"Snapshot: {snapshot_id}" in _text(result)
        snapshot = SnapshotManager(workspace).load_snapshot(snapshot_id)
        assert snapshot.description == "release 1"

    def test_snapshot_failure_keeps_save_report(self, ctx, fleet, fake_git, workspace):
        a, b = fleet("a", "b")
        fake_git.tree(a.full_path).dirty = True
        fake_git.failures["commit_hash"] = {b.full_path}

        result = _call(ctx, "fleet_save", {"message": "release 2", "snapshot": True})

        assert result.isError
        assert fake_git.calls_for("push") == [a.full_path]
        assert "2/2 succeeded" in _text(result)
        assert "Snapshot failed (vcs_command_failed)" in _text(result)
        assert result.structuredContent["counts"]["applied"] == 1
        assert result.structuredContent["snapshot_error"]["kind"] == "vcs_command_failed"
        assert SnapshotManager(workspace).list_snapshots() == []

    def test_no_snapshot_on_dry_run(self, ctx, fleet, workspace):
        fleet("a")
        _call(ctx, "fleet_save", {"message": "x", "snapshot": True, "dry_run": True})
        assert SnapshotManager(workspace).list_snapshots() == []


# ---------------------------------------------------------------------------
# fleet_branch / fleet_clear
# ---------------------------------------------------------------------------


class TestFleetBranch:
    def test_requires_branch(self, ctx):
        result = _call(ctx, "fleet_branch", {})
        assert "branch is required" in _text(result)

    def test_create(self, ctx, fleet, fake_git):
        a, b = fleet("a", "b")
        result = _call(ctx, "fleet_branch", {"branch": "feature", "create": True})

        assert not result.isError
        assert fake_git.tree(a.full_path).branch == "feature"
        assert fake_git.tree(b.full_path).branch == "feature"

    def test_missing_branch_skipped(self, ctx, fleet):
        fleet("a")
        result = _call(ctx, "fleet_branch", {"branch": "feature"})
        assert result.structuredContent["results"][0]["action"] == "skip"


class TestFleetClear:
    def test_requires_confirm(self, ctx, fleet):
        (a,) = fleet("a")
        result = _call(ctx, "fleet_clear", {"confirm": False})
        assert result.isError
        assert a.full_path.exists()

    def test_clears(self, ctx, fleet, workspace):
        a, b = fleet("a", "b")
        result = _call(ctx, "fleet_clear", {"confirm": True})

        assert _text(result) == "Cleared 2/2 repositories."
        assert result.structuredContent == {"cleared": 2, "total": 2}
        assert not a.full_path.exists()
        assert len(Registry.open(workspace.base_dir)) == 2


# ---------------------------------------------------------------------------
# Concurrent tool calls
# ---------------------------------------------------------------------------


class TestConcurrentCalls:
    def test_add_during_auto_remove_sync_is_kept(
        self, ctx, fleet, registry, fake_git, workspace, monkeypatch
    ):
        fleet("a", "b")
        gone_url = "https://git.example.com/gone.git"
        registry.add_repository("gone", gone_url, "repos/gone", clone=False)
        fake_git.bad_urls.add(gone_url)

        clone = fake_git.clone

        def slow_clone(url, dest, branch=None):
            time.sleep(0.2)
            clone(url, dest, branch)

        monkeypatch.setattr(fake_git, "clone", slow_clone)
        tools = ToolRegistry(REPOSITORY_SPECS + FLEET_SPECS)

        async def run_both():
            return await asyncio.gather(
                tools.call_tool("fleet_sync", {"auto_remove": True}, ctx),
                tools.call_tool(
                    "repo_add",
                    {"url": "https://git.example.com/c.git", "path": "repos/c", "clone": False},
                    ctx,
                ),
            )

        sync_result, add_result = asyncio.run(run_both())

        assert sync_result.structuredContent["removed"] == ["gone"]
        assert not add_result.isError
        assert [e.name for e in Registry.open(workspace.base_dir).entries] == [
            "a",
            "b",
            "c",
        ]

    def test_exclusive_registry_holds_write_lock(self, ctx):
        async def check():
            async with ctx.exclusive_registry() as registry:
                assert ctx.write_lock.locked()
                assert len(registry) == 0
            assert not ctx.write_lock.locked()

        asyncio.run(check())
