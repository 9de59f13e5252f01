"""
Background task coordination: shell processes and in-process computations.
"""

from .manager import (
    BackgroundTask,
    BackgroundTaskManager,
    ComputationOutput,
    ProcessOutput,
    TaskKind,
    TaskStatus,
    describe_task,
)

__all__ = [
    "BackgroundTask",
    "BackgroundTaskManager",
    "ComputationOutput",
    "ProcessOutput",
    "TaskKind",
    "TaskStatus",
    "describe_task",
]
