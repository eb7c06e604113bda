"""ToolSpec and ToolRegistry for read-only tool filtering.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition and an async
  handler with standardized signature (context, args) -> CallToolResult.
- ToolRegistry: Drops mutating tools at construction time when the server
  runs read-only, then provides list_tools() and call_tool() dispatch with
  error translation.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import mcp.types as types

from ...errors import MctlError
from ..context import FleetContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema,
            annotations).
        handler: Async handler with signature (context, args) -> CallToolResult.
    """

    tool: types.Tool
    handler: Callable[[FleetContext, dict], Awaitable[types.CallToolResult]]

    @property
    def read_only(self) -> bool:
        annotations = self.tool.annotations
        return bool(annotations and annotations.readOnlyHint)


class ToolRegistry:
    """Registry of ToolSpecs with optional read-only filtering.

    If read_only is False, all specs are included.  Otherwise only specs
    whose tool is annotated ``readOnlyHint=True`` are kept.
    """

    def __init__(self, specs: list[ToolSpec], read_only: bool = False):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if not read_only or spec.read_only:
                self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        """Return number of registered tools."""
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        context: FleetContext,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Core errors, validation errors, and unexpected exceptions are
        translated into structured CallToolResult responses with
        corrective actions.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        from .errors import build_error_response, translate_mctl_error

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(context, args)
        except MctlError as e:
            logger.warning("%s failed in %s: %s", e.kind, name, e.message)
            return translate_mctl_error(e)
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check the server log for details or retry later.",
            )
