"""
Base classes for tools.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Coroutine


@dataclass
class ToolResult:
    """Result from a tool execution.

    ``data`` is what the model sees; ``output`` is the human-readable
    rendering shown to observers.
    """

    success: bool
    output: str = ""
    data: Any = None
    error: str | None = None

    @property
    def display_text(self) -> str:
        if not self.success:
            return self.error or "Unknown error"
        if self.output:
            return self.output
        if self.data is None:
            return ""
        if isinstance(self.data, str):
            return self.data
        return json.dumps(self.data, ensure_ascii=False, default=str)

    def to_response(self) -> dict[str, Any]:
        """Payload for a FunctionResponse part."""
        if not self.success:
            return {"error": self.error or "Unknown error"}
        if isinstance(self.data, dict):
            return self.data
        if self.data is not None:
            return {"output": self.data}
        return {"output": self.output}


def default_display_args(args: dict[str, Any], max_length: int = 120) -> str:
    """Render arguments as ``key: value`` pairs on one line."""
    rendered = ", ".join(f"{k}: {v}" for k, v in args.items())
    if len(rendered) > max_length:
        rendered = rendered[: max_length - 3] + "..."
    return rendered


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    param_type: str  # string, integer, number, boolean, array, object
    description: str
    required: bool = True
    default: Any = None
    enum: list[str] | None = None


@dataclass
class Tool:
    """
    Simple tool wrapper that can be created from a function.

    This is an alternative to the class-based BaseTool for simpler tools.
    """

    name: str
    description: str
    parameters: list[ToolParameter]
    handler: Callable[..., Coroutine[Any, Any, ToolResult]]
    display: Callable[[dict[str, Any]], str] | None = None

    def get_parameters_schema(self) -> dict[str, Any]:
        """Convert parameters to JSON Schema format."""
        properties = {}
        required = []

        for param in self.parameters:
            prop = {
                "type": param.param_type,
                "description": param.description,
            }
            if param.enum:
                prop["enum"] = param.enum
            if param.default is not None:
                prop["default"] = param.default

            properties[param.name] = prop

            if param.required:
                required.append(param.name)

        return {
            "type": "object",
            "properties": properties,
            "required": required,
        }

    def display_args(self, args: dict[str, Any]) -> str:
        if self.display is not None:
            return self.display(args)
        return default_display_args(args)

    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool handler."""
        return await self.handler(**kwargs)


class BaseTool(ABC):
    """Base class for all tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tool name."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Get the tool description."""
        pass

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """Get the tool parameters schema (JSON Schema)."""
        pass

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool with given arguments."""
        pass

    def display_args(self, args: dict[str, Any]) -> str:
        """One-line rendering of a call's arguments."""
        return default_display_args(args)

    def to_definition(self) -> dict[str, Any]:
        """Convert to a tool definition for LLM."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }
