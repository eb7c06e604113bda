"""Snapshot tool handlers for MCP server.

Implements snapshot_create, snapshot_list, snapshot_get, snapshot_load and
snapshot_delete on top of ``SnapshotManager``.
"""

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...snapshot.models import ApplyOptions, Snapshot
from ..context import FleetContext
from .errors import build_error_response, format_timestamp, text_result
from .registry import ToolSpec

logger = logging.getLogger(__name__)

_SNAPSHOT_ID_SCHEMA = {
    "type": "string",
    "description": "Snapshot id (required), e.g. 20260131-142500-1a2b3c4d",
}


# Tool definitions for list_tools()
SNAPSHOT_TOOLS = [
    types.Tool(
        name="snapshot_create",
        description="Record the current branch and commit of every repository as a new snapshot. Refreshes each repository's status first.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "description": {
                    "type": "string",
                    "description": "Free-form description",
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="snapshot_list",
        description="List snapshots, most recent first. Unreadable snapshot files are skipped.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "description": "Return at most this many (default: all)",
                    "minimum": 0,
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="snapshot_get",
        description="Show one snapshot with the branch and commit recorded for each repository.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {"snapshot_id": _SNAPSHOT_ID_SCHEMA},
            "required": ["snapshot_id"],
        },
    ),
    types.Tool(
        name="snapshot_load",
        description=(
            "Restore repositories to a snapshot: checkout the recorded branch, "
            "then hard-reset to the recorded commit, one repository at a time. "
            "Refused entirely if any targeted repository has uncommitted "
            "changes (unless force=true). Stops at the first failure; "
            "repositories already restored are not rolled back."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "snapshot_id": _SNAPSHOT_ID_SCHEMA,
                "repositories": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Restrict to these repository names",
                },
                "dry_run": {
                    "type": "boolean",
                    "default": False,
                    "description": "Show the plan without changing anything",
                },
                "force": {
                    "type": "boolean",
                    "default": False,
                    "description": "Discard uncommitted changes",
                },
            },
            "required": ["snapshot_id"],
        },
    ),
    types.Tool(
        name="snapshot_delete",
        description="Delete a snapshot record. Repositories are not affected.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {"snapshot_id": _SNAPSHOT_ID_SCHEMA},
            "required": ["snapshot_id"],
        },
    ),
]


def _snapshot_to_json(snapshot: Snapshot) -> dict:
    return snapshot.model_dump(mode="json")


def _format_snapshot(snapshot: Snapshot) -> str:
    lines = [
        f"Snapshot {snapshot.id}",
        f"  Created:     {format_timestamp(snapshot.created_at)}",
        f"  Description: {snapshot.description}",
        f"  Repositories ({len(snapshot.repositories)}):",
    ]
    for state in snapshot.repositories:
        lines.append(
            f"    {state.name}: {state.branch} @ {state.commit_hash[:8]} [{state.status}]"
        )
    return "\n".join(lines)


def _require_id(args: dict[str, Any]) -> str | None:
    snapshot_id = args.get("snapshot_id")
    return snapshot_id if isinstance(snapshot_id, str) and snapshot_id else None


async def _handle_create(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    manager = ctx.snapshots()
    async with ctx.exclusive_registry() as registry:
        snapshot = await run_sync(
            manager.create_snapshot, registry, args.get("description", "")
        )
    await run_sync(manager.save_snapshot, snapshot)
    return text_result(
        _format_snapshot(snapshot), _snapshot_to_json(snapshot)
    )


async def _handle_list(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    limit = args.get("limit", 0)
    if not isinstance(limit, int) or limit < 0:
        raise ValueError("limit must be a non-negative integer")

    snapshots = await run_sync(ctx.snapshots().list_snapshots, limit)
    if not snapshots:
        return text_result("No snapshots found.", {"snapshots": []})

    lines = [f"{len(snapshots)} snapshots:"]
    for snap in snapshots:
        description = snap.description
        if len(description) > 50:
            description = description[:47] + "..."
        lines.append(
            f"- {snap.id}  {format_timestamp(snap.created_at)}  "
            f"{len(snap.repositories)} repos  {description}"
        )
    return text_result(
        "\n".join(lines),
        {
            "snapshots": [
                {
                    "id": s.id,
                    "created_at": s.created_at.isoformat(),
                    "description": s.description,
                    "repositories": len(s.repositories),
                }
                for s in snapshots
            ]
        },
    )


async def _handle_get(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    snapshot_id = _require_id(args)
    if snapshot_id is None:
        return build_error_response(
            "validation_error",
            "snapshot_id is required",
            "Use snapshot_list to find snapshot ids.",
        )
    snapshot = await run_sync(ctx.snapshots().load_snapshot, snapshot_id)
    return text_result(
        _format_snapshot(snapshot), _snapshot_to_json(snapshot)
    )


async def _handle_load(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    snapshot_id = _require_id(args)
    if snapshot_id is None:
        return build_error_response(
            "validation_error",
            "snapshot_id is required",
            "Use snapshot_list to find snapshot ids.",
        )
    options = ApplyOptions(
        dry_run=args.get("dry_run", False),
        force=args.get("force", False),
        repositories=args.get("repositories") or [],
    )

    manager = ctx.snapshots()
    snapshot = await run_sync(manager.load_snapshot, snapshot_id)
    async with ctx.exclusive_registry() as registry:
        result = await run_sync(
            manager.apply_snapshot, snapshot, registry, options
        )
    text = result.summary()
    if result.dry_run:
        text = "DRY RUN -- No changes will be made\n" + text
    return text_result(text, result.model_dump(mode="json"))


async def _handle_delete(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    snapshot_id = _require_id(args)
    if snapshot_id is None:
        return build_error_response(
            "validation_error",
            "snapshot_id is required",
            "Use snapshot_list to find snapshot ids.",
        )
    async with ctx.write_lock:
        await run_sync(ctx.snapshots().delete_snapshot, snapshot_id)
    return text_result(
        f"Deleted snapshot '{snapshot_id}'.", {"deleted": snapshot_id}
    )


# ToolSpec list for registry-based dispatch
SNAPSHOT_SPECS: list[ToolSpec] = [
    ToolSpec(tool=SNAPSHOT_TOOLS[0], handler=_handle_create),
    ToolSpec(tool=SNAPSHOT_TOOLS[1], handler=_handle_list),
    ToolSpec(tool=SNAPSHOT_TOOLS[2], handler=_handle_get),
    ToolSpec(tool=SNAPSHOT_TOOLS[3], handler=_handle_load),
    ToolSpec(tool=SNAPSHOT_TOOLS[4], handler=_handle_delete),
]
