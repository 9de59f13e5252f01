"""
Environment facts injected ahead of history on every round.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

MAX_LISTED_FILES = 200


@dataclass
class ProjectContext:
    """Working directory, its entries, and the current time."""

    cwd: str
    files: list[str] = field(default_factory=list)
    datetime: str = ""


def get_project_context(cwd: str | None = None) -> ProjectContext:
    """Collect environment facts. An unreadable directory yields no files."""
    root = Path(cwd or Path.cwd())

    files: list[str] = []
    try:
        for entry in sorted(root.iterdir()):
            try:
                files.append(f"{entry.name}/" if entry.is_dir() else entry.name)
            except OSError:
                files.append(entry.name)
    except OSError:
        files = []

    return ProjectContext(
        cwd=str(root),
        files=files,
        datetime=datetime.now(timezone.utc).isoformat(),
    )


def format_project_context(info: ProjectContext, max_files: int = MAX_LISTED_FILES) -> str:
    """Render the context as a prompt block."""
    listed = info.files[:max_files]
    lines = [
        "<project-info>",
        f"Working directory: {info.cwd}",
        f"Current time: {info.datetime}",
        "",
        "Files and directories in workspace:",
        *(f"  {name}" for name in listed),
    ]
    if len(info.files) > max_files:
        lines.append(f"  ... and {len(info.files) - max_files} more")
    lines.append("</project-info>")
    return "\n".join(lines)
