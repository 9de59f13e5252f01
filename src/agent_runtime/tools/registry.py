"""
Tool registry for managing available tools.
"""

from typing import Any, Iterable, Union

import structlog

from ..exceptions import ToolAlreadyRegisteredError
from ..llm.base import ToolDefinition
from .base import BaseTool, Tool, ToolResult, default_display_args

logger = structlog.get_logger()

AnyTool = Union[BaseTool, Tool]


class ToolRegistry:
    """Registry for managing tools."""

    def __init__(self, tools: Iterable[AnyTool] = ()):
        self._tools: dict[str, AnyTool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: AnyTool) -> None:
        """Register a tool. Names must be unique."""
        if tool.name in self._tools:
            raise ToolAlreadyRegisteredError(tool.name)
        self._tools[tool.name] = tool
        logger.debug("Tool registered", tool_name=tool.name)

    def unregister(self, name: str) -> bool:
        """Unregister a tool."""
        if name in self._tools:
            del self._tools[name]
            logger.debug("Tool unregistered", tool_name=name)
            return True
        return False

    def get(self, name: str) -> AnyTool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def get_definitions(self) -> list[ToolDefinition]:
        """Get all tool definitions for LLM."""
        definitions = []
        for tool in self._tools.values():
            if isinstance(tool, Tool):
                definitions.append(ToolDefinition(
                    name=tool.name,
                    description=tool.description,
                    parameters=tool.get_parameters_schema(),
                ))
            else:
                definitions.append(ToolDefinition(
                    name=tool.name,
                    description=tool.description,
                    parameters=tool.parameters,
                ))
        return definitions

    def display_args(self, name: str, arguments: dict[str, Any]) -> str:
        """Human-readable one-line rendering of a call."""
        tool = self.get(name)
        if tool is None:
            return default_display_args(arguments)
        try:
            return tool.display_args(arguments)
        except Exception as e:
            logger.warning("Tool display_args failed", tool_name=name, error=str(e))
            return default_display_args(arguments)

    def subset(self, names: Iterable[str] | None = None, exclude: Iterable[str] = ()) -> "ToolRegistry":
        """A new registry sharing a filtered selection of these tools.

        ``names=None`` keeps everything not excluded.
        """
        allowed = set(names) if names is not None else None
        excluded = set(exclude)
        return ToolRegistry(
            tool
            for name, tool in self._tools.items()
            if name not in excluded and (allowed is None or name in allowed)
        )

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a tool by name. Never raises."""
        tool = self.get(name)
        if tool is None:
            return ToolResult(
                success=False,
                error=f'Tool "{name}" not found',
            )

        try:
            logger.info("Executing tool", tool_name=name, arguments=arguments)
            result = await tool.execute(**arguments)
            logger.info("Tool executed", tool_name=name, success=result.success)
            return result
        except Exception as e:
            logger.error("Tool execution error", tool_name=name, error=str(e))
            return ToolResult(
                success=False,
                error=str(e) or type(e).__name__,
            )

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
