"""Tool registry for tool discovery and registration.

The registry is populated once at startup and is read-only afterwards, so a
single instance is shared by all concurrent runs.
"""

from __future__ import annotations

import inspect
from typing import Any

from crm_agent.telemetry import TOOL_REGISTERED, get_logger
from crm_agent.tools.gate import is_write_action
from crm_agent.tools.types import ToolDefinition, ToolHandler

log = get_logger(__name__)


class ToolRegistry:
    """Central registry of available tools and their handlers."""

    def __init__(self) -> None:
        """Initialize empty tool registry."""
        self._tools: dict[str, tuple[ToolDefinition, ToolHandler]] = {}

    def register(self, tool_def: ToolDefinition, handler: ToolHandler) -> None:
        """Register a tool with its definition and handler.

        Args:
            tool_def: Tool definition with input model.
            handler: Async callable taking (validated input, ToolContext)
                and returning a dict.

        Raises:
            ValueError: If the name is taken, the handler is not async, the
                input schema is not an object, or the mutating flag
                disagrees with the write-action gate.
        """
        if tool_def.name in self._tools:
            raise ValueError(f"Tool '{tool_def.name}' is already registered")

        if not inspect.iscoroutinefunction(handler):
            raise ValueError(f"Handler for '{tool_def.name}' must be an async function")

        schema = tool_def.input_schema()
        if schema.get("type") != "object":
            raise ValueError(f"Input schema for '{tool_def.name}' must be an object schema")

        if tool_def.mutating != is_write_action(tool_def.name):
            raise ValueError(
                f"Tool '{tool_def.name}' mutating={tool_def.mutating} disagrees with the write-action set"
            )

        self._tools[tool_def.name] = (tool_def, handler)
        log.debug(
            TOOL_REGISTERED,
            tool_name=tool_def.name,
            capability=tool_def.capability,
            mutating=tool_def.mutating,
        )

    def get_tool(self, name: str) -> tuple[ToolDefinition, ToolHandler] | None:
        """Retrieve tool definition and handler.

        Args:
            name: Tool name to retrieve.

        Returns:
            Tuple of (ToolDefinition, handler) if found, None otherwise.
        """
        return self._tools.get(name)

    def list(self) -> list[ToolDefinition]:
        """List all tool definitions in registration order."""
        return [tool_def for tool_def, _ in self._tools.values()]

    def list_tool_names(self) -> list[str]:
        """List names of all registered tools."""
        return list(self._tools.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def get_tool_definitions_for_llm(self) -> list[dict[str, Any]]:
        """Get tool definitions in Anthropic tool format.

        Returns:
            One {"name", "description", "input_schema"} dict per tool.
        """
        return [
            {
                "name": tool_def.name,
                "description": tool_def.description,
                "input_schema": tool_def.input_schema(),
            }
            for tool_def in self.list()
        ]
