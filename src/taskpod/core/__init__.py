"""Core data models."""

from taskpod.core.models import ExecutionStatus, Task, TaskExecution

__all__ = [
    "ExecutionStatus",
    "Task",
    "TaskExecution",
]
