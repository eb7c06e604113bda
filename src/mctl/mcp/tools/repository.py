"""Repository tool handlers for MCP server.

This module implements the registry-facing MCP tools: list, status, add and
remove.  Every handler runs the blocking core through run_sync().
"""

import logging
import re
from dataclasses import asdict
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...repository.registry import Registry
from ..context import FleetContext
from .errors import build_error_response, text_result
from .registry import ToolSpec

logger = logging.getLogger(__name__)

_URL_SEPARATORS = re.compile(r"[/:]+")


# Tool definitions for list_tools()
REPOSITORY_TOOLS = [
    types.Tool(
        name="repo_list",
        description="List registered repositories with their cached status and counts of existing, missing and dirty working trees. Does not contact any remote.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    types.Tool(
        name="repo_status",
        description="Recompute repository status (CLEAN, MODIFIED, AHEAD, BEHIND, DIVERGED, UNKNOWN). Fetches from the remote of each clean repository. Omit identifier for the whole fleet.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "identifier": {
                    "type": "string",
                    "description": "Repository id, name or path (optional)",
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="repo_add",
        description="Register a repository. Clones it unless clone=false. If the name is taken a numeric suffix is appended; an already registered path is rejected.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "Clone URL (required)",
                },
                "path": {
                    "type": "string",
                    "description": "Working directory relative to the workspace (required)",
                },
                "name": {
                    "type": "string",
                    "description": "Display name (default: repository name from the URL, without .git)",
                },
                "branch": {
                    "type": "string",
                    "description": "Branch to clone (default: remote default branch)",
                },
                "clone": {
                    "type": "boolean",
                    "description": "Clone before registering (default: true)",
                    "default": True,
                },
            },
            "required": ["url", "path"],
        },
    ),
    types.Tool(
        name="repo_remove",
        description="Unregister a repository and delete its metadata. Set delete_files=true to also delete the working directory.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "identifier": {
                    "type": "string",
                    "description": "Repository id, name or path (required)",
                },
                "delete_files": {
                    "type": "boolean",
                    "description": "Also delete the working directory (default: false)",
                    "default": False,
                },
            },
            "required": ["identifier"],
        },
    ),
]


def repo_name_from_url(url: str) -> str:
    """Last component of a clone URL without ``.git``.

    ``git@github.com:user/repo.git`` and ``https://github.com/user/repo``
    both give ``repo``.
    """
    trimmed = url.strip().rstrip("/")
    trimmed = trimmed.removesuffix(".git")
    return _URL_SEPARATORS.split(trimmed)[-1]


def _format_repo_line(info: dict[str, Any]) -> str:
    line = f"- {info['name']} ({info['path']}) [{info['status']}]"
    if info.get("branch"):
        line += f" on {info['branch']}"
    if info.get("ahead") or info.get("behind"):
        line += f" +{info['ahead']}/-{info['behind']}"
    return line


async def _handle_list(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    registry = await run_sync(ctx.open_registry)
    repos = await run_sync(registry.get_all_repositories)
    infos = [repo.to_dict() for repo in repos]

    if not infos:
        return text_result(
            "No repositories registered.", {"repositories": []}
        )
    summary = await run_sync(registry.status_summary)
    lines = [f"{len(infos)} repositories:"]
    lines.extend(_format_repo_line(info) for info in infos)
    lines.append("")
    lines.append(
        f"Existing: {summary.existing}, missing: {summary.missing}, "
        f"with uncommitted changes: {summary.dirty}"
    )
    return text_result(
        "\n".join(lines),
        {"repositories": infos, "summary": asdict(summary)},
    )


def _refresh(registry: Registry, identifier: str | None) -> list[dict]:
    if identifier:
        repos = [registry.get_repository(identifier)]
    else:
        repos = registry.get_all_repositories()
    for repo in repos:
        repo.update_status()
    return [repo.to_dict() for repo in repos]


async def _handle_status(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    identifier = args.get("identifier")
    registry = await run_sync(ctx.open_registry)
    infos = await run_sync(_refresh, registry, identifier)

    counts: dict[str, int] = {}
    for info in infos:
        counts[info["status"]] = counts.get(info["status"], 0) + 1

    lines = [_format_repo_line(info) for info in infos]
    if counts:
        lines.append("")
        lines.append(
            "Totals: "
            + ", ".join(f"{k}={v}" for k, v in sorted(counts.items()))
        )
    return text_result(
        "\n".join(lines) or "No repositories registered.",
        {"repositories": infos, "totals": counts},
    )


async def _handle_add(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    url = args.get("url")
    path = args.get("path")
    if not url or not path:
        return build_error_response(
            "validation_error",
            "url and path are required",
            "Provide both 'url' and 'path' parameters.",
        )
    name = args.get("name") or repo_name_from_url(url)
    if not name:
        return build_error_response(
            "validation_error",
            f"Cannot derive a repository name from URL: {url}",
            "Provide the 'name' parameter.",
        )
    branch = args.get("branch") or ""
    clone = args.get("clone", True)

    async with ctx.exclusive_registry() as registry:
        repo = await run_sync(
            registry.add_repository, name, url, path, branch, clone
        )
    text = f"Added repository '{repo.name}' ({repo.id}) at {path}"
    if clone:
        text += " (cloned)"
    return text_result(text, repo.to_dict())


async def _handle_remove(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    identifier = args.get("identifier")
    if not identifier:
        return build_error_response(
            "validation_error",
            "identifier is required",
            "Provide the repository id, name or path.",
        )
    delete_files = args.get("delete_files", False)

    async with ctx.exclusive_registry() as registry:
        entry = await run_sync(
            registry.remove_repository, identifier, delete_files
        )
    text = f"Removed repository '{entry.name}' ({entry.id})"
    if delete_files:
        text += " and deleted its working directory"
    return text_result(
        text,
        {"id": entry.id, "name": entry.name, "files_deleted": delete_files},
    )


# ToolSpec list for registry-based dispatch
REPOSITORY_SPECS: list[ToolSpec] = [
    ToolSpec(tool=REPOSITORY_TOOLS[0], handler=_handle_list),
    ToolSpec(tool=REPOSITORY_TOOLS[1], handler=_handle_status),
    ToolSpec(tool=REPOSITORY_TOOLS[2], handler=_handle_add),
    ToolSpec(tool=REPOSITORY_TOOLS[3], handler=_handle_remove),
]
