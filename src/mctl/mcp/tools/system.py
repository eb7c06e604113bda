"""System tool handlers for MCP server.

This module implements journal_tail for reading the workspace operation
and audit journals, and the config_* tools for the fleet-wide
``global.*`` settings stored in the registry file.
"""

import logging
from typing import Any

import mcp.types as types

from ...config_schema import GlobalConfig
from ...core.async_utils import run_sync
from ...logger import JOURNAL_KINDS
from ..context import FleetContext
from .errors import build_error_response, text_result
from .registry import ToolSpec

logger = logging.getLogger(__name__)

DEFAULT_TAIL = 100

GLOBAL_KEYS = [f"global.{name}" for name in GlobalConfig.model_fields]


# Tool definitions for list_tools()
SYSTEM_TOOLS = [
    types.Tool(
        name="journal_tail",
        description="Show the most recent entries of the workspace operation journal (default) or audit journal.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "kind": {
                    "type": "string",
                    "enum": list(JOURNAL_KINDS),
                    "default": "operations",
                    "description": "Which journal to read",
                },
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "default": DEFAULT_TAIL,
                    "description": f"Maximum entries (default: {DEFAULT_TAIL})",
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="config_get",
        description="Show the fleet-wide settings stored in the registry. Pass key for a single value.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "key": {
                    "type": "string",
                    "enum": GLOBAL_KEYS,
                    "description": "Setting to read (default: all)",
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="config_set",
        description="Change one fleet-wide setting in the registry. parallel_operations must be a positive integer; branch and remote names must not be empty.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "key": {
                    "type": "string",
                    "enum": GLOBAL_KEYS,
                    "description": "Setting to change (required)",
                },
                "value": {
                    "type": ["string", "integer"],
                    "description": "New value (required)",
                },
            },
            "required": ["key", "value"],
        },
    ),
    types.Tool(
        name="config_validate",
        description="Check the registry: global settings, missing or duplicate ids, names and paths, and paths outside the workspace.",
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
]


async def _handle_journal_tail(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    kind = args.get("kind", "operations")
    limit = args.get("limit", DEFAULT_TAIL)
    if not isinstance(limit, int) or limit < 1:
        raise ValueError("limit must be a positive integer")

    lines = await run_sync(ctx.journal().read, kind, limit)
    text = "\n".join(lines) if lines else f"The {kind} journal is empty."
    return text_result(text, {"kind": kind, "entries": lines})


async def _handle_config_get(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    registry = await run_sync(ctx.open_registry)
    key = args.get("key")
    if key:
        value = registry.get_global(key)
        return text_result(f"{key} = {value}", {key: value})

    settings = {
        f"global.{name}": value
        for name, value in registry.global_config.model_dump().items()
    }
    lines = [f"{k} = {v}" for k, v in settings.items()]
    lines.append(f"repositories: {len(registry)}")
    return text_result("\n".join(lines), settings)


async def _handle_config_set(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    key = args.get("key")
    value = args.get("value")
    if not key or value is None:
        return build_error_response(
            "validation_error",
            "key and value are required",
            f"Provide 'key' (one of {', '.join(GLOBAL_KEYS)}) and 'value'.",
        )

    async with ctx.exclusive_registry() as registry:
        await run_sync(registry.set_global, key, value)
    current = registry.get_global(key)
    return text_result(f"Set {key} = {current}", {key: current})


async def _handle_config_validate(
    ctx: FleetContext, args: dict[str, Any]
) -> types.CallToolResult:
    registry = await run_sync(ctx.open_registry)
    problems = await run_sync(registry.validate)
    if not problems:
        return text_result(
            f"Registry is valid ({len(registry)} repositories).",
            {"valid": True, "problems": []},
        )
    text = f"Registry has {len(problems)} problems:\n" + "\n".join(
        f"- {p}" for p in problems
    )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={"valid": False, "problems": problems},
        isError=True,
    )


SYSTEM_SPECS: list[ToolSpec] = [
    ToolSpec(tool=SYSTEM_TOOLS[0], handler=_handle_journal_tail),
    ToolSpec(tool=SYSTEM_TOOLS[1], handler=_handle_config_get),
    ToolSpec(tool=SYSTEM_TOOLS[2], handler=_handle_config_set),
    ToolSpec(tool=SYSTEM_TOOLS[3], handler=_handle_config_validate),
]
