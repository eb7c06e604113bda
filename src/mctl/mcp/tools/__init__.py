"""MCP tool handlers for fleet operations.

This package wraps the registry, sync and snapshot engines in async
handlers with structured error responses.
"""

from .errors import build_error_response, translate_mctl_error
from .fleet import FLEET_SPECS, FLEET_TOOLS
from .registry import ToolRegistry, ToolSpec
from .repository import REPOSITORY_SPECS, REPOSITORY_TOOLS
from .snapshot import SNAPSHOT_SPECS, SNAPSHOT_TOOLS
from .system import SYSTEM_SPECS, SYSTEM_TOOLS

ALL_SPECS: list[ToolSpec] = (
    REPOSITORY_SPECS + FLEET_SPECS + SNAPSHOT_SPECS + SYSTEM_SPECS
)

__all__ = [
    "build_error_response",
    "translate_mctl_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "REPOSITORY_SPECS",
    "FLEET_SPECS",
    "SNAPSHOT_SPECS",
    "SYSTEM_SPECS",
    # Tool lists
    "REPOSITORY_TOOLS",
    "FLEET_TOOLS",
    "SNAPSHOT_TOOLS",
    "SYSTEM_TOOLS",
]
