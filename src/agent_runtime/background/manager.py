"""
Background task manager.

Tracks work that runs independently of the conversation loop: shell
processes and in-process computations such as delegated sub-agent runs.

Every task follows one state machine:

    running -> completed | failed | killed

Transitions are one-way. A kill verdict is final: a natural exit that
arrives after ``kill`` updates captured output but never the status.
Exactly one BackgroundTaskComplete event is published per task.
"""

from __future__ import annotations

import asyncio
import os
import secrets
import signal
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Union

import structlog

from ..events import BackgroundTaskComplete, BackgroundTaskStarted, EventBus

logger = structlog.get_logger()


class TaskKind(str, Enum):
    """What backs a background task."""
    PROCESS = "process"
    COMPUTATION = "computation"


class TaskStatus(str, Enum):
    """Lifecycle state of a background task."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    KILLED = "killed"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.RUNNING


TASK_ID_PREFIX = {
    TaskKind.PROCESS: "bg",
    TaskKind.COMPUTATION: "job",
}


@dataclass
class ProcessOutput:
    """Payload of a process-backed task."""

    command: str
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""


@dataclass
class ComputationOutput:
    """Payload of a computation-backed task."""

    label: str
    result: Any = None
    error: str | None = None


TaskPayload = Union[ProcessOutput, ComputationOutput]


@dataclass
class BackgroundTask:
    """Snapshot of a background task."""

    task_id: str
    kind: TaskKind
    status: TaskStatus
    payload: TaskPayload
    description: str | None = None
    started_at: float = field(default_factory=time.time)
    completed_at: float | None = None

    @property
    def elapsed_seconds(self) -> float:
        end = self.completed_at if self.completed_at is not None else time.time()
        return max(0.0, end - self.started_at)

    @property
    def summary(self) -> str:
        """Command line or delegated-agent label."""
        if isinstance(self.payload, ProcessOutput):
            return self.payload.command
        return self.payload.label


@dataclass
class _TaskEntry:
    task: BackgroundTask
    process: asyncio.subprocess.Process | None = None
    future: asyncio.Future | None = None
    notified: bool = False


class BackgroundTaskManager:
    """Launches, tracks and cancels background tasks.

    Completion is observed through callbacks, never polling. Start methods
    return a task id immediately and must be called from a running event
    loop.
    """

    def __init__(
        self,
        events: EventBus | None = None,
        cwd: str | None = None,
        max_output_chars: int = 100_000,
    ):
        self.events = events or EventBus()
        self.cwd = cwd
        self.max_output_chars = max_output_chars
        self._tasks: dict[str, _TaskEntry] = {}

    def _generate_id(self, kind: TaskKind) -> str:
        while True:
            task_id = f"{TASK_ID_PREFIX[kind]}-{secrets.token_hex(4)}"
            if task_id not in self._tasks:
                return task_id

    def _register(self, kind: TaskKind, payload: TaskPayload, description: str | None) -> _TaskEntry:
        task = BackgroundTask(
            task_id=self._generate_id(kind),
            kind=kind,
            status=TaskStatus.RUNNING,
            payload=payload,
            description=description,
        )
        entry = _TaskEntry(task=task)
        self._tasks[task.task_id] = entry
        return entry

    def _announce(self, entry: _TaskEntry) -> None:
        logger.info(
            "Background task started",
            task_id=entry.task.task_id,
            kind=entry.task.kind.value,
            summary=entry.task.summary[:120],
        )
        self.events.publish(BackgroundTaskStarted(task=self._snapshot(entry)))

    # ------------------------------------------------------------------
    # Launching
    # ------------------------------------------------------------------

    def start_process(self, command: str, description: str | None = None) -> str:
        """Run a shell command in the background and return its task id."""
        payload = ProcessOutput(command=command)
        entry = self._register(TaskKind.PROCESS, payload, description)
        entry.future = asyncio.ensure_future(self._run_process(entry, payload))
        self._announce(entry)
        return entry.task.task_id

    def start_computation(
        self,
        work: Awaitable[Any],
        label: str,
        description: str | None = None,
    ) -> str:
        """Track an awaitable in the background and return its task id."""
        payload = ComputationOutput(label=label)
        entry = self._register(TaskKind.COMPUTATION, payload, description)
        entry.future = asyncio.ensure_future(work)
        entry.future.add_done_callback(lambda fut: self._on_computation_done(entry, payload, fut))
        self._announce(entry)
        return entry.task.task_id

    async def _run_process(self, entry: _TaskEntry, payload: ProcessOutput) -> None:
        try:
            process = await asyncio.create_subprocess_shell(
                payload.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                start_new_session=True,
            )
        except Exception as e:
            # A missing cwd or a command the OS rejects (e.g. a NUL byte)
            self._on_process_error(entry, payload, e)
            return

        entry.process = process
        if entry.task.status is TaskStatus.KILLED:
            # Killed before the process existed
            self._terminate(process)

        try:
            await asyncio.gather(
                self._pump(process.stdout, payload, "stdout"),
                self._pump(process.stderr, payload, "stderr"),
            )
            exit_code = await process.wait()
        except Exception as e:
            if process.returncode is None:
                self._terminate(process)
            self._on_process_error(entry, payload, e)
            return

        self._on_process_exit(entry.task.task_id, exit_code)

    async def _pump(self, stream: asyncio.StreamReader | None, payload: ProcessOutput, attr: str) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            text = getattr(payload, attr) + chunk.decode("utf-8", errors="replace")
            if len(text) > self.max_output_chars:
                text = text[-self.max_output_chars:]
            setattr(payload, attr, text)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _on_process_exit(self, task_id: str, exit_code: int) -> None:
        """Record a process exit. Ignored for status if already terminal."""
        entry = self._tasks.get(task_id)
        if entry is None:
            return
        payload = entry.task.payload
        if isinstance(payload, ProcessOutput):
            payload.exit_code = exit_code
        status = TaskStatus.COMPLETED if exit_code == 0 else TaskStatus.FAILED
        self._finish(entry, status)

    def _on_process_error(self, entry: _TaskEntry, payload: ProcessOutput, error: Exception) -> None:
        payload.stderr += f"\nProcess error: {error}"
        logger.warning("Background process error", task_id=entry.task.task_id, error=str(error))
        self._finish(entry, TaskStatus.FAILED)

    def _on_computation_done(
        self, entry: _TaskEntry, payload: ComputationOutput, future: asyncio.Future
    ) -> None:
        if future.cancelled():
            payload.error = "cancelled"
            self._finish(entry, TaskStatus.FAILED)
            return

        error = future.exception()
        if error is not None:
            payload.error = str(error) or type(error).__name__
            self._finish(entry, TaskStatus.FAILED)
        else:
            payload.result = future.result()
            self._finish(entry, TaskStatus.COMPLETED)

    def _finish(self, entry: _TaskEntry, status: TaskStatus) -> None:
        task = entry.task
        if task.status is TaskStatus.RUNNING:
            task.status = status
            task.completed_at = time.time()
        self._notify_complete(entry)

    def _notify_complete(self, entry: _TaskEntry) -> None:
        if entry.notified:
            return
        entry.notified = True
        logger.info(
            "Background task complete",
            task_id=entry.task.task_id,
            status=entry.task.status.value,
            elapsed=round(entry.task.elapsed_seconds, 1),
        )
        self.events.publish(BackgroundTaskComplete(task=self._snapshot(entry)))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def _snapshot(entry: _TaskEntry) -> BackgroundTask:
        return replace(entry.task, payload=replace(entry.task.payload))

    def get(self, task_id: str) -> BackgroundTask | None:
        entry = self._tasks.get(task_id)
        return self._snapshot(entry) if entry else None

    def list(self) -> list[BackgroundTask]:
        return [self._snapshot(e) for e in self._tasks.values()]

    def list_running(self) -> list[BackgroundTask]:
        return [
            self._snapshot(e)
            for e in self._tasks.values()
            if e.task.status is TaskStatus.RUNNING
        ]

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    @staticmethod
    def _terminate(process: asyncio.subprocess.Process) -> None:
        try:
            os.killpg(process.pid, signal.SIGTERM)
        except ProcessLookupError:
            pass

    def kill(self, task_id: str) -> bool:
        """Mark a running task killed and signal its process.

        Does not wait for the process to exit.
        """
        entry = self._tasks.get(task_id)
        if entry is None or entry.task.status is not TaskStatus.RUNNING:
            return False

        entry.task.status = TaskStatus.KILLED
        entry.task.completed_at = time.time()

        if entry.task.kind is TaskKind.PROCESS:
            if entry.process is not None and entry.process.returncode is None:
                self._terminate(entry.process)
        elif entry.future is not None and not entry.future.done():
            entry.future.cancel()

        logger.info("Background task killed", task_id=task_id)
        self._notify_complete(entry)
        return True

    def kill_all(self) -> int:
        """Kill every running task. Returns how many were killed."""
        running = [tid for tid, e in self._tasks.items() if e.task.status is TaskStatus.RUNNING]
        return sum(1 for tid in running if self.kill(tid))


def _tail(text: str, limit: int | None) -> str:
    if limit is None or len(text) <= limit:
        return text
    return f"... ({len(text) - limit} characters omitted)\n" + text[-limit:]


def describe_task(task: BackgroundTask, max_output_chars: int | None = None) -> str:
    """Multi-line human-readable report of a task snapshot."""
    lines = [f"Task {task.task_id}: {task.status.value} ({round(task.elapsed_seconds)}s)"]
    if task.description:
        lines.append(task.description)

    payload = task.payload
    if isinstance(payload, ProcessOutput):
        lines.append(f"$ {payload.command}")
        if payload.exit_code is not None:
            lines.append(f"Exit code: {payload.exit_code}")
        if payload.stdout:
            lines.append(_tail(payload.stdout.rstrip(), max_output_chars))
        if payload.stderr:
            lines.append(f"stderr: {_tail(payload.stderr.rstrip(), max_output_chars)}")
    else:
        lines.append(f"[{payload.label}]")
        if payload.result is not None:
            lines.append(_tail(str(payload.result), max_output_chars))
        if payload.error:
            lines.append(f"error: {payload.error}")

    return "\n".join(lines)
