"""Tests for snapshot MCP tool handlers."""

import asyncio
from datetime import datetime, timezone

import mcp.types as types

from mctl.mcp.tools.registry import ToolRegistry
from mctl.mcp.tools.snapshot import SNAPSHOT_SPECS, SNAPSHOT_TOOLS
from mctl.snapshot.manager import SnapshotManager
from mctl.snapshot.models import Snapshot


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


def _call(ctx, name, args=None):
    registry = ToolRegistry(SNAPSHOT_SPECS)
    return asyncio.run(registry.call_tool(name, args or {}, ctx))


def _create(ctx, description="checkpoint"):
    result = _call(ctx, "snapshot_create", {"description": description})
    return result.structuredContent["id"]


class TestSnapshotToolDefinitions:
    def test_tools(self):
        assert [t.name for t in SNAPSHOT_TOOLS] == [
            "snapshot_create",
            "snapshot_list",
            "snapshot_get",
            "snapshot_load",
            "snapshot_delete",
        ]

    def test_load_is_destructive(self):
        assert SNAPSHOT_TOOLS[3].annotations.destructiveHint is True


class TestSnapshotCreateAndGet:
    def test_create(self, ctx, fleet, workspace):
        fleet("a", "b")
        result = _call(ctx, "snapshot_create", {"description": "before deploy"})

        data = result.structuredContent
        assert data["description"] == "before deploy"
        assert [r["name"] for r in data["repositories"]] == ["a", "b"]
        assert workspace.snapshot_path(data["id"]).exists()
        assert "Repositories (2):" in _text(result)

    def test_get(self, ctx, fleet):
        fleet("a")
        snapshot_id = _create(ctx)

        result = _call(ctx, "snapshot_get", {"snapshot_id": snapshot_id})

        assert _text(result).startswith(f"Snapshot {snapshot_id}")
        assert "a: main @ aaaaaaaa [CLEAN]" in _text(result)

    def test_get_missing(self, ctx):
        result = _call(ctx, "snapshot_get", {"snapshot_id": "nope"})
        assert _text(result).startswith("Error (snapshot_not_found)")

    def test_get_requires_id(self, ctx):
        result = _call(ctx, "snapshot_get", {})
        assert "snapshot_id is required" in _text(result)


class TestSnapshotList:
    def test_empty(self, ctx):
        result = _call(ctx, "snapshot_list")
        assert _text(result) == "No snapshots found."

    def test_lists_newest_first_with_truncated_description(self, ctx, workspace):
        manager = SnapshotManager(workspace)
        for hour, description in [(1, "old"), (2, "x" * 60)]:
            manager.save_snapshot(
                Snapshot(
                    id=f"20260101-0{hour}0000-0000000{hour}",
                    created_at=datetime(2026, 1, 1, hour, tzinfo=timezone.utc),
                    description=description,
                )
            )

        result = _call(ctx, "snapshot_list")

        ids = [s["id"] for s in result.structuredContent["snapshots"]]
        assert ids == ["20260101-020000-00000002", "20260101-010000-00000001"]
        assert "x" * 47 + "..." in _text(result)
        assert "x" * 48 not in _text(result)

    def test_negative_limit(self, ctx):
        result = _call(ctx, "snapshot_list", {"limit": -1})
        assert _text(result).startswith("Error (validation_error)")


class TestSnapshotLoad:
    def test_restores(self, ctx, fleet, fake_git):
        (a,) = fleet("a")
        snapshot_id = _create(ctx)
        fake_git.tree(a.full_path).commit = "f" * 40

        result = _call(ctx, "snapshot_load", {"snapshot_id": snapshot_id})

        assert not result.isError
        assert "Restored a to branch main at commit aaaaaaaa" in _text(result)
        assert fake_git.tree(a.full_path).commit == "a" * 40

    def test_dry_run(self, ctx, fleet, fake_git):
        (a,) = fleet("a")
        snapshot_id = _create(ctx)
        fake_git.tree(a.full_path).commit = "f" * 40

        result = _call(
            ctx, "snapshot_load", {"snapshot_id": snapshot_id, "dry_run": True}
        )

        assert _text(result).startswith("DRY RUN -- No changes will be made")
        assert fake_git.tree(a.full_path).commit == "f" * 40

    def test_dirty_refused(self, ctx, fleet, fake_git):
        a, b = fleet("a", "b")
        snapshot_id = _create(ctx)
        fake_git.tree(b.full_path).dirty = True

        result = _call(ctx, "snapshot_load", {"snapshot_id": snapshot_id})

        assert result.isError
        assert _text(result).startswith("Error (uncommitted_changes)")
        assert "- Dirty: b" in _text(result)
        assert fake_git.calls_for("reset_to_commit") == []


class TestSnapshotDelete:
    def test_delete(self, ctx, fleet, workspace):
        fleet("a")
        snapshot_id = _create(ctx)

        result = _call(ctx, "snapshot_delete", {"snapshot_id": snapshot_id})

        assert result.structuredContent == {"deleted": snapshot_id}
        assert not workspace.snapshot_path(snapshot_id).exists()

    def test_delete_missing(self, ctx):
        result = _call(ctx, "snapshot_delete", {"snapshot_id": "nope"})
        assert _text(result).startswith("Error (snapshot_not_found)")

    def test_delete_cannot_leave_snapshot_directory(self, ctx, fleet, workspace):
        (repo,) = fleet("a")
        result = _call(
            ctx, "snapshot_delete", {"snapshot_id": f"../metadata/{repo.id}"}
        )
        assert _text(result).startswith("Error (snapshot_not_found)")
        assert workspace.metadata_path(repo.id).exists()
