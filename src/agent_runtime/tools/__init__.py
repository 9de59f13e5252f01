"""
Tools module for agent capabilities.

The sub_agent tool lives in ``tools.sub_agent_tool`` and is imported from
there directly, since it depends on the conversation engine.
"""

from .base import BaseTool, Tool, ToolParameter, ToolResult
from .registry import ToolRegistry
from .file_tool import FileManager, create_file_tools
from .shell_tool import ShellConfig, ShellExecutor, create_shell_tools

__all__ = [
    "BaseTool",
    "Tool",
    "ToolParameter",
    "ToolResult",
    "ToolRegistry",
    "FileManager",
    "create_file_tools",
    "ShellConfig",
    "ShellExecutor",
    "create_shell_tools",
]
