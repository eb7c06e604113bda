"""MCP tool handlers for fleet-wide batch operations.

Defines four tools; the first three are backed by ``SyncEngine``:

- ``fleet_sync`` -- clone missing repositories, fetch or pull the rest.
- ``fleet_save`` -- commit and push every dirty repository.
- ``fleet_branch`` -- check out or create a branch everywhere.
- ``fleet_clear`` -- delete every working directory, keeping the registry.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...config import SYNC_MODES
from ...core.async_utils import run_sync
from ...errors import MctlError
from ...sync.engine import SyncEngine
from ...sync.models import SyncReport
from ...sync.reporter import (
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)
from ..context import FleetContext
from .errors import build_error_response
from .registry import ToolSpec

logger = logging.getLogger(__name__)

_IDENTIFIERS_SCHEMA = {
    "type": "array",
    "items": {"type": "string"},
    "description": "Restrict to these repositories (id, name or path). Default: all.",
}
_DRY_RUN_SCHEMA = {
    "type": "boolean",
    "default": False,
    "description": "Preview changes without applying them",
}


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


FLEET_TOOLS: list[types.Tool] = [
    types.Tool(
        name="fleet_sync",
        description=(
            "Synchronize every repository in parallel: clone missing ones, "
            "then fetch (mode=fetch) or fetch and merge (mode=pull). "
            "Repositories with uncommitted changes fail unless force=true. "
            "A failure in one repository never affects the others."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "repositories": _IDENTIFIERS_SCHEMA,
                "mode": {
                    "type": "string",
                    "enum": list(SYNC_MODES),
                    "description": "fetch only, or fetch + merge (default from settings)",
                },
                "dry_run": _DRY_RUN_SCHEMA,
                "force": {
                    "type": "boolean",
                    "default": False,
                    "description": "Sync repositories with uncommitted changes",
                },
                "auto_remove": {
                    "type": "boolean",
                    "description": "Unregister repositories that cannot be cloned (default from settings)",
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="fleet_save",
        description=(
            "Stage, commit and push every repository with uncommitted "
            "changes using one commit message. Clean repositories are "
            "skipped. Optionally records a snapshot afterwards."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "message": {
                    "type": "string",
                    "description": "Commit message (required)",
                },
                "repositories": _IDENTIFIERS_SCHEMA,
                "dry_run": _DRY_RUN_SCHEMA,
                "snapshot": {
                    "type": "boolean",
                    "default": False,
                    "description": "Create a snapshot described by the commit message after saving",
                },
            },
            "required": ["message"],
        },
    ),
    types.Tool(
        name="fleet_branch",
        description=(
            "Switch every repository to a branch. Repositories already on "
            "the branch are skipped; missing branches are created when "
            "create=true and skipped otherwise."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "branch": {
                    "type": "string",
                    "description": "Branch name (required)",
                },
                "create": {
                    "type": "boolean",
                    "default": False,
                    "description": "Create the branch where it does not exist",
                },
                "from_branch": {
                    "type": "string",
                    "description": "Start point for created branches (default: HEAD)",
                },
                "repositories": _IDENTIFIERS_SCHEMA,
                "dry_run": _DRY_RUN_SCHEMA,
                "force": {
                    "type": "boolean",
                    "default": False,
                    "description": "Switch repositories with uncommitted changes",
                },
            },
            "required": ["branch"],
        },
    ),
    types.Tool(
        name="fleet_clear",
        description=(
            "Delete the working directory of every registered repository. "
            "Registry entries are kept, so fleet_sync clones them again. "
            "Requires confirm=true."
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
                "confirm": {
                    "type": "boolean",
                    "description": "Must be true",
                },
            },
            "required": ["confirm"],
        },
    ),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _report_result(
    report: SyncReport,
    extra_text: str = "",
    extra: dict | None = None,
    failed: bool = False,
) -> types.CallToolResult:
    if report.dry_run:
        text = format_dry_run_preview(report)
    else:
        text = format_sync_report(report)
    structured = report_to_json(report)
    if extra:
        structured.update(extra)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text + extra_text)],
        structuredContent=structured,
        isError=failed or not report.ok,
    )


def _identifiers(args: dict[str, Any]) -> list[str] | None:
    value = args.get("repositories")
    if value is None:
        return None
    if not isinstance(value, list) or not all(
        isinstance(v, str) for v in value
    ):
        raise ValueError("repositories must be a list of strings")
    return value or None


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_fleet_sync(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``fleet_sync`` tool."""
    mode = args.get("mode") or ctx.config.sync_mode
    auto_remove = args.get("auto_remove")
    if auto_remove is None:
        auto_remove = ctx.config.auto_remove

    identifiers = _identifiers(args)
    async with ctx.exclusive_registry() as registry:
        engine = SyncEngine(
            registry,
            parallel_operations=ctx.config.parallel_operations,
            mode=mode,
            auto_remove=auto_remove,
        )
        report = await run_sync(
            engine.sync,
            identifiers,
            args.get("dry_run", False),
            args.get("force", False),
        )
    return _report_result(report)


async def _handle_fleet_save(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``fleet_save`` tool."""
    message = args.get("message")
    if not message:
        return build_error_response(
            "validation_error",
            "message is required",
            "Provide the 'message' parameter with a commit message.",
        )
    dry_run = args.get("dry_run", False)
    identifiers = _identifiers(args)

    async with ctx.exclusive_registry() as registry:
        engine = SyncEngine(
            registry, parallel_operations=ctx.config.parallel_operations
        )
        report = await run_sync(engine.save, message, identifiers, dry_run)
        if not (args.get("snapshot") and report.ok and not dry_run):
            return _report_result(report)

        manager = ctx.snapshots()
        try:
            snapshot = await run_sync(
                manager.create_snapshot, registry, message
            )
            await run_sync(manager.save_snapshot, snapshot)
        except MctlError as e:
            logger.warning("Snapshot after save failed: %s", e.message)
            return _report_result(
                report,
                extra_text=f"\n\nSnapshot failed ({e.kind}): {e.message}",
                extra={"snapshot_error": {"kind": e.kind, "message": e.message}},
                failed=True,
            )

    return _report_result(
        report,
        extra_text=f"\n\nSnapshot: {snapshot.id}",
        extra={"snapshot_id": snapshot.id},
    )


async def _handle_fleet_branch(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``fleet_branch`` tool."""
    branch = args.get("branch")
    if not branch:
        return build_error_response(
            "validation_error",
            "branch is required",
            "Provide the 'branch' parameter with a branch name.",
        )

    identifiers = _identifiers(args)
    async with ctx.exclusive_registry() as registry:
        engine = SyncEngine(
            registry, parallel_operations=ctx.config.parallel_operations
        )
        report = await run_sync(
            engine.switch_branch,
            branch,
            args.get("create", False),
            args.get("from_branch"),
            identifiers,
            args.get("dry_run", False),
            args.get("force", False),
        )
    return _report_result(report)


async def _handle_fleet_clear(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``fleet_clear`` tool."""
    if args.get("confirm") is not True:
        return build_error_response(
            "validation_error",
            "fleet_clear deletes every working directory",
            "Call again with confirm=true to proceed.",
        )

    async with ctx.exclusive_registry() as registry:
        cleared, total = await run_sync(registry.clear)
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text", text=f"Cleared {cleared}/{total} repositories."
            )
        ],
        structuredContent={"cleared": cleared, "total": total},
        isError=cleared < total,
    )


# ToolSpec list for registry-based dispatch
FLEET_SPECS: list[ToolSpec] = [
    ToolSpec(tool=FLEET_TOOLS[0], handler=_handle_fleet_sync),
    ToolSpec(tool=FLEET_TOOLS[1], handler=_handle_fleet_save),
    ToolSpec(tool=FLEET_TOOLS[2], handler=_handle_fleet_branch),
    ToolSpec(tool=FLEET_TOOLS[3], handler=_handle_fleet_clear),
]
