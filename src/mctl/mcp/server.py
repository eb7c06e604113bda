"""MCP server for multi-repository fleet management using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents inspect and operate a workspace of git repositories via
standardized tools.

Transport: stdio (for Claude Desktop/Code integration)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..core.async_utils import run_sync
from ..errors import MctlError
from ..logger import setup_logging
from .context import FleetContext
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("mctl")

# Global context instance (initialized in lifespan)
_context: FleetContext | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available)
# ---------------------------------------------------------------------------


async def _handle_ping(
    ctx: FleetContext, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- check git and the workspace registry."""
    try:
        version = await run_sync(ctx.git.version)
        registry = await run_sync(ctx.open_registry)
    except MctlError as e:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"mctl workspace check failed: {e.message}",
                )
            ],
            isError=True,
        )
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=(
                    f"mctl {__version__} ready. Workspace: {ctx.config.workspace} "
                    f"({len(registry)} repositories). {version}"
                ),
            )
        ]
    )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Check that git is available and the workspace registry is readable",
        annotations=types.ToolAnnotations(readOnlyHint=True),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_context() -> FleetContext:
    """Get the global FleetContext instance.

    Raises:
        RuntimeError: If context is not initialized
    """
    if _context is None:
        raise RuntimeError(
            "FleetContext not initialized. Server lifespan not started."
        )
    return _context


def set_context(context: FleetContext | None) -> None:
    """Set the global FleetContext instance, or None to clear."""
    global _context
    _context = context


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available fleet tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    context = get_context()
    try:
        return await get_registry().call_tool(name, arguments, context)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), validates the
    workspace via the lifespan manager, and serves JSON-RPC over stdio.

    Args:
        config_overrides: Optional dict with values from the command line
            (workspace, init, debug, log_file, read_only)
    """
    overrides = config_overrides or {}

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file"),
    )

    read_only = overrides.get("read_only", False)
    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )
    if read_only:
        print(
            f"Read-only mode: {registry.tool_count()} of "
            f"{len(all_specs)} tools enabled",
            file=sys.stderr,
        )

    set_registry(registry)

    # set_context() is called here, not in the lifespan, so that running
    # this file as __main__ installs the context in this module copy.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_context(ctx["context"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="mctl",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(
                    read_stream, write_stream, init_options
                )
        finally:
            set_context(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="mctl MCP server - manage a fleet of git repositories over MCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve the workspace in the current directory
  mctl-mcp

  # Serve another workspace
  mctl-mcp --workspace ~/src/fleet

  # Create the workspace registry on first start
  mctl-mcp --workspace ~/src/fleet --init

  # Expose only tools that never modify repositories
  mctl-mcp --read-only

  # Custom log file location
  mctl-mcp --log-file /var/log/mctl-mcp.log

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
        """,
    )

    parser.add_argument(
        "--workspace",
        help="Workspace root containing .mirror/ (takes precedence over MCTL_WORKSPACE and settings files)",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Create .mirror/ with an empty registry if the workspace has none",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/mctl-mcp.log",
        help="Log file path (default: /tmp/mctl-mcp.log)",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Register only read-only tools",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"mctl version {__version__}",
    )

    args = parser.parse_args()

    config_overrides: dict = {}
    if args.workspace:
        config_overrides["workspace"] = args.workspace
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.init:
        config_overrides["init"] = True
    if args.read_only:
        config_overrides["read_only"] = True
    if args.debug:
        config_overrides["debug"] = True

    if config_overrides:
        print(
            f"Config overrides from CLI: {', '.join(config_overrides)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
