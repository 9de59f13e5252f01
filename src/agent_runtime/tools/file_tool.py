"""
File Operations Tool - Read, list, write and edit files.

All paths are resolved against a workspace root and may not escape it.
"""

from pathlib import Path
from typing import Any

import structlog

from .base import Tool, ToolParameter, ToolResult

logger = structlog.get_logger()


class FileManager:
    """Manages file operations within a workspace."""

    def __init__(self, workspace_dir: str | None = None):
        self.workspace_dir = Path(workspace_dir or Path.cwd()).expanduser().resolve()

        self.blocked_paths = {
            ".ssh", ".gnupg", ".aws", ".gcloud", "credentials",
        }

    def _is_safe_path(self, path: Path) -> bool:
        """Check if a path is safe to access."""
        resolved = path.resolve()

        if not resolved.is_relative_to(self.workspace_dir):
            logger.warning("Path outside workspace", path=str(path))
            return False

        parts = {p.lower() for p in resolved.relative_to(self.workspace_dir).parts}
        if parts & self.blocked_paths:
            logger.warning("Blocked path pattern", path=str(path))
            return False

        return True

    def resolve(self, path: str) -> Path:
        """Normalize a path relative to the workspace and check access."""
        p = Path(path).expanduser()

        if not p.is_absolute():
            p = self.workspace_dir / p

        if not self._is_safe_path(p):
            raise PermissionError(f"Access denied: {path}")

        return p

    def read_file(self, path: str, offset: int = 1, limit: int | None = None) -> dict[str, Any]:
        """Read a range of lines, numbered from 1."""
        file_path = self.resolve(path)

        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        if not file_path.is_file():
            raise IsADirectoryError(f"Path is a directory: {path}")

        lines = file_path.read_text(encoding="utf-8", errors="replace").split("\n")

        start = max(0, offset - 1)
        sliced = lines[start:start + limit] if limit is not None else lines[start:]
        numbered = "\n".join(f"{start + i + 1}\t{line}" for i, line in enumerate(sliced))

        return {
            "file_path": path,
            "total_lines": len(lines),
            "from_line": start + 1,
            "to_line": start + len(sliced),
            "content": numbered,
        }

    def read_folder(self, path: str = ".") -> dict[str, Any]:
        """List directory entries with type and size."""
        dir_path = self.resolve(path)

        if not dir_path.exists():
            raise FileNotFoundError(f"Directory not found: {path}")

        if not dir_path.is_dir():
            raise NotADirectoryError(f"Path is not a directory: {path}")

        entries = []
        for child in sorted(dir_path.iterdir()):
            try:
                stat = child.stat()
                entries.append({
                    "name": child.name,
                    "type": "directory" if child.is_dir() else "file",
                    "size": stat.st_size,
                })
            except OSError:
                entries.append({"name": child.name, "type": "unknown", "size": 0})

        return {
            "folder_path": path,
            "total_entries": len(entries),
            "entries": entries,
        }

    def write_file(self, path: str, content: str) -> dict[str, Any]:
        """Write content to a file, creating parent directories."""
        file_path = self.resolve(path)

        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")

        return {
            "file_path": path,
            "bytes_written": len(content.encode("utf-8")),
            "message": f"Successfully wrote to {path}",
        }

    def replace(self, path: str, old_string: str, new_string: str, replace_all: bool = False) -> dict[str, Any]:
        """Replace the first (or every) occurrence of ``old_string``."""
        file_path = self.resolve(path)

        if not file_path.is_file():
            raise FileNotFoundError(f"File not found: {path}")

        content = file_path.read_text(encoding="utf-8")
        occurrences = content.count(old_string) if old_string else 0

        if occurrences == 0:
            raise ValueError(f"old_string not found in {path}")

        if replace_all:
            updated = content.replace(old_string, new_string)
        else:
            updated = content.replace(old_string, new_string, 1)

        file_path.write_text(updated, encoding="utf-8")

        return {
            "file_path": path,
            "replacements": occurrences if replace_all else 1,
            "message": f"Successfully edited {path}",
        }


def create_file_tools(workspace_dir: str | None = None) -> list[Tool]:
    """Create file operation tools bound to one workspace."""
    manager = FileManager(workspace_dir)

    async def read_file_handler(file_path: str, offset: int = 1, limit: int | None = None) -> ToolResult:
        data = manager.read_file(file_path, int(offset), int(limit) if limit is not None else None)
        return ToolResult(
            success=True,
            data=data,
            output=f"Read {file_path} (lines {data['from_line']}-{data['to_line']} of {data['total_lines']})",
        )

    async def read_folder_handler(folder_path: str = ".") -> ToolResult:
        data = manager.read_folder(folder_path)
        return ToolResult(
            success=True,
            data=data,
            output=f"Listed {folder_path} ({data['total_entries']} entries)",
        )

    async def write_file_handler(file_path: str, content: str) -> ToolResult:
        data = manager.write_file(file_path, content)
        return ToolResult(success=True, data=data, output=data["message"])

    async def replace_handler(
        file_path: str,
        old_string: str,
        new_string: str,
        replace_all: bool = False,
    ) -> ToolResult:
        data = manager.replace(file_path, old_string, new_string, replace_all)
        return ToolResult(
            success=True,
            data=data,
            output=f"{data['message']} ({data['replacements']} replacement(s))",
        )

    read_file = Tool(
        name="read_file",
        description=(
            "Read the contents of a file. Returns numbered lines. Use offset and "
            "limit to read a specific range of lines."
        ),
        parameters=[
            ToolParameter(
                name="file_path",
                param_type="string",
                description="Path to the file (relative to workspace or absolute)",
                required=True,
            ),
            ToolParameter(
                name="offset",
                param_type="integer",
                description="1-based line number to start from (default: 1)",
                required=False,
            ),
            ToolParameter(
                name="limit",
                param_type="integer",
                description="Maximum number of lines to read (default: all)",
                required=False,
            ),
        ],
        handler=read_file_handler,
        display=lambda args: str(args.get("file_path", "")),
    )

    read_folder = Tool(
        name="read_folder",
        description="List the contents of a directory with entry types and sizes.",
        parameters=[
            ToolParameter(
                name="folder_path",
                param_type="string",
                description="Directory path (default: workspace root)",
                required=False,
            ),
        ],
        handler=read_folder_handler,
        display=lambda args: str(args.get("folder_path", ".")),
    )

    write_file = Tool(
        name="write_file",
        description=(
            "Write content to a file. Creates the file and parent directories "
            "if needed and overwrites existing content."
        ),
        parameters=[
            ToolParameter(
                name="file_path",
                param_type="string",
                description="Path to the file",
                required=True,
            ),
            ToolParameter(
                name="content",
                param_type="string",
                description="Content to write",
                required=True,
            ),
        ],
        handler=write_file_handler,
        display=lambda args: f"{args.get('file_path', '')} ({len(str(args.get('content', '')))} chars)",
    )

    replace = Tool(
        name="replace",
        description=(
            "Edit a file by replacing old_string with new_string. Only the first "
            "occurrence is replaced unless replace_all is true."
        ),
        parameters=[
            ToolParameter(
                name="file_path",
                param_type="string",
                description="Path to the file to edit",
                required=True,
            ),
            ToolParameter(
                name="old_string",
                param_type="string",
                description="Exact text to find",
                required=True,
            ),
            ToolParameter(
                name="new_string",
                param_type="string",
                description="Replacement text",
                required=True,
            ),
            ToolParameter(
                name="replace_all",
                param_type="boolean",
                description="Replace every occurrence (default: false)",
                required=False,
            ),
        ],
        handler=replace_handler,
        display=lambda args: str(args.get("file_path", "")),
    )

    return [read_file, read_folder, write_file, replace]
