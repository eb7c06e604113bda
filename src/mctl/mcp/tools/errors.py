"""Error response builders and shared utilities for MCP tool handlers.

Every ``MctlError`` carries a ``kind``; this module maps each kind to a
corrective action so that agents can recover without human help.
"""

from datetime import datetime
from typing import Any

import mcp.types as types

from ...errors import MctlError


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (an ``MctlError.kind``, or
            validation_error / server_error / unknown_tool)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("repository_not_found", "Repository not found: api", "Use repo_list to see registered repositories.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


# ---------------------------------------------------------------------------
# Shared formatting utilities
# ---------------------------------------------------------------------------


def format_timestamp(timestamp: Any) -> str:
    """Format timestamp for display.

    Handles datetime objects and ISO 8601 strings.

    Returns:
        Formatted date string (YYYY-MM-DD HH:MM)
    """
    match timestamp:
        case datetime() as dt:
            return dt.strftime("%Y-%m-%d %H:%M")
        case str() as text if text:
            try:
                return datetime.fromisoformat(text).strftime("%Y-%m-%d %H:%M")
            except ValueError:
                return text
        case None:
            return "never"
        case _:
            return str(timestamp)


def text_result(
    text: str, structured: dict | None = None
) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


# ---------------------------------------------------------------------------
# Kind-specific corrective action messages
# ---------------------------------------------------------------------------

_CORRECTIVE_ACTIONS: dict[str, str] = {
    "configuration_error": "Check that the workspace contains .mirror/mirror.yaml (MCTL_WORKSPACE / --workspace).",
    "repository_conflict": "Choose a different path, or use repo_list to find the existing repository.",
    "repository_not_found": "Use repo_list to see registered repositories (match by id, name or path).",
    "vcs_command_failed": "Inspect the command output; use repo_status to check the repository.",
    "clone_failed": "Verify the repository URL and credentials, then retry.",
    "uncommitted_changes": "Commit or stash local changes with fleet_save, or retry with force=true.",
    "snapshot_not_found": "Use snapshot_list to see available snapshots.",
    "snapshot_exists": "Snapshots are write-once; wait a second or change the fleet state, then create it again.",
    "permission_denied": "Check filesystem permissions on the workspace and its .mirror directory.",
}

_DEFAULT_ACTION = "Check the server log for details or retry later."


def translate_mctl_error(error: MctlError) -> types.CallToolResult:
    """Translate a core error to a structured error response.

    The message carries every detail line of the error so the agent sees
    command output and affected repositories.
    """
    message = error.message
    if error.details:
        message += "\n" + "\n".join(f"- {d}" for d in error.details)
    return build_error_response(
        error.kind,
        message,
        _CORRECTIVE_ACTIONS.get(error.kind, _DEFAULT_ACTION),
    )
