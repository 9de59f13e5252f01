"""
Shell Command Tool - foreground and background shell execution.

Foreground commands run with a timeout and an output cap. Background
commands are handed to the BackgroundTaskManager and return a task id
immediately; their output is queried with get_task_output.
"""

import asyncio
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from ..background.manager import BackgroundTaskManager, ProcessOutput, describe_task
from .base import Tool, ToolParameter, ToolResult

logger = structlog.get_logger()


@dataclass
class ShellConfig:
    """Configuration for shell command execution."""

    enabled: bool = True
    timeout_seconds: int = 30
    max_output_chars: int = 30_000

    blocked_patterns: list[str] = field(default_factory=lambda: [
        r"rm\s+-rf\s+/(\s|$)",
        r"rm\s+-rf\s+~",
        r">\s*/dev/sd",
        r"mkfs",
        r"dd\s+if=",
        r":\(\)\s*\{\s*:\|:&\s*\};:",
        r"curl.*\|\s*(ba)?sh",
        r"wget.*\|\s*(ba)?sh",
    ])

    workspace_dir: str | None = None


class ShellExecutor:
    """Executes shell commands with safety controls."""

    def __init__(self, config: ShellConfig | None = None):
        self.config = config or ShellConfig()
        self.workspace = Path(self.config.workspace_dir or Path.cwd()).expanduser().resolve()

    def check_command(self, command: str) -> str | None:
        """Return a reason if the command may not run, else None."""
        if not self.config.enabled:
            return "Shell execution is disabled"

        if not command.strip():
            return "Empty command"

        if "\x00" in command:
            return "Command contains a NUL byte"

        for pattern in self.config.blocked_patterns:
            if re.search(pattern, command, re.IGNORECASE):
                return "Command contains blocked pattern"

        return None

    async def execute(self, command: str) -> tuple[int, str, str]:
        """
        Execute a shell command in the workspace.

        Returns:
            Tuple of (return_code, stdout, stderr)

        Raises:
            PermissionError: the command is blocked
            TimeoutError: the command exceeded the timeout
        """
        reason = self.check_command(command)
        if reason:
            raise PermissionError(f"Command blocked: {reason}")

        process = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(self.workspace),
            env=os.environ.copy(),
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise TimeoutError(
                f"Command timed out after {self.config.timeout_seconds} seconds"
            )

        return (
            process.returncode if process.returncode is not None else -1,
            self._truncate_output(stdout.decode("utf-8", errors="replace")),
            self._truncate_output(stderr.decode("utf-8", errors="replace")),
        )

    def _truncate_output(self, output: str) -> str:
        """Keep the tail of oversized output."""
        limit = self.config.max_output_chars
        if len(output) > limit:
            omitted = len(output) - limit
            return f"... ({omitted} characters truncated)\n" + output[-limit:]
        return output


def _display_command(args: dict[str, Any]) -> str:
    command = str(args.get("command", ""))
    if args.get("run_in_background"):
        return f"{command} (background)"
    return command


def format_task_report(task_id: str, manager: BackgroundTaskManager) -> tuple[dict[str, Any], str] | None:
    """Structured data and display text describing one task."""
    task = manager.get(task_id)
    if task is None:
        return None

    elapsed = round(task.elapsed_seconds)
    data: dict[str, Any] = {
        "task_id": task.task_id,
        "kind": task.kind.value,
        "status": task.status.value,
        "description": task.description,
        "elapsed_seconds": elapsed,
    }
    payload = task.payload
    if isinstance(payload, ProcessOutput):
        data.update(
            command=payload.command,
            exit_code=payload.exit_code,
            stdout=payload.stdout,
            stderr=payload.stderr,
        )
    else:
        data.update(label=payload.label, result=payload.result, error=payload.error)

    return data, describe_task(task)


def create_shell_tools(
    config: ShellConfig | None = None,
    background: BackgroundTaskManager | None = None,
) -> list[Tool]:
    """Create shell-related tools.

    Background execution and the task tools are only offered when a
    BackgroundTaskManager is supplied.
    """
    executor = ShellExecutor(config)

    async def run_shell_command_handler(
        command: str,
        run_in_background: bool = False,
        description: str | None = None,
    ) -> ToolResult:
        if run_in_background:
            if background is None:
                return ToolResult(success=False, error="Background execution is not available")
            reason = executor.check_command(command)
            if reason:
                return ToolResult(success=False, error=f"Command blocked: {reason}")
            task_id = background.start_process(command, description)
            return ToolResult(
                success=True,
                data={"task_id": task_id, "status": "running"},
                output=f"Started background task {task_id}",
            )

        return_code, stdout, stderr = await executor.execute(command)

        output_parts = []
        if stdout:
            output_parts.append(stdout.rstrip())
        if stderr:
            output_parts.append(f"stderr: {stderr.rstrip()}")
        if return_code != 0:
            output_parts.append(f"Exit code: {return_code}")
        if not output_parts:
            output_parts.append("Command completed successfully (no output)")

        return ToolResult(
            success=True,
            data={"exit_code": return_code, "stdout": stdout, "stderr": stderr},
            output="\n".join(output_parts),
        )

    parameters = [
        ToolParameter(
            name="command",
            param_type="string",
            description="The shell command to execute",
            required=True,
        ),
    ]
    if background is not None:
        parameters += [
            ToolParameter(
                name="run_in_background",
                param_type="boolean",
                description=(
                    "Run without waiting for completion and return a task id "
                    "(default: false). Use for long-running commands."
                ),
                required=False,
            ),
            ToolParameter(
                name="description",
                param_type="string",
                description="Short description of what the background command does",
                required=False,
            ),
        ]

    run_shell_command = Tool(
        name="run_shell_command",
        description=(
            "Run a shell command in the workspace and return stdout, stderr and "
            "the exit code."
        ),
        parameters=parameters,
        handler=run_shell_command_handler,
        display=_display_command,
    )

    if background is None:
        return [run_shell_command]

    async def get_task_output_handler(task_id: str) -> ToolResult:
        report = format_task_report(task_id, background)
        if report is None:
            return ToolResult(success=False, error=f'Task "{task_id}" not found')
        data, text = report
        return ToolResult(success=True, data=data, output=text)

    async def kill_task_handler(task_id: str) -> ToolResult:
        if background.kill(task_id):
            return ToolResult(success=True, data={"task_id": task_id, "status": "killed"},
                              output=f"Killed task {task_id}")
        task = background.get(task_id)
        if task is None:
            return ToolResult(success=False, error=f'Task "{task_id}" not found')
        return ToolResult(success=False, error=f'Task "{task_id}" is not running ({task.status.value})')

    task_id_param = ToolParameter(
        name="task_id",
        param_type="string",
        description="The background task id (e.g. bg-a1b2c3d4)",
        required=True,
    )

    get_task_output = Tool(
        name="get_task_output",
        description=(
            "Query the status and output of a background task. Returns status, "
            "exit code, stdout, stderr (or result) and elapsed time."
        ),
        parameters=[task_id_param],
        handler=get_task_output_handler,
        display=lambda args: f"task: {args.get('task_id', '')}",
    )

    kill_task = Tool(
        name="kill_task",
        description="Stop a running background task.",
        parameters=[task_id_param],
        handler=kill_task_handler,
        display=lambda args: f"task: {args.get('task_id', '')}",
    )

    return [run_shell_command, get_task_output, kill_task]
