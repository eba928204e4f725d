"""Execution runtime — validation, sandboxes, orchestration and recording."""

from taskpod.runtime.errors import (
    CleanupError,
    ConcurrentModificationError,
    ExecutionFailedError,
    InvalidCommandError,
    ProvisionError,
    SandboxError,
    SandboxTimeoutError,
    TaskNotFoundError,
    TaskpodError,
)
from taskpod.runtime.orchestrator import ExecutionOrchestrator, ExecutionReport
from taskpod.runtime.recorder import ExecutionRecorder
from taskpod.runtime.validator import CommandValidator

__all__ = [
    "CleanupError",
    "CommandValidator",
    "ConcurrentModificationError",
    "ExecutionFailedError",
    "ExecutionOrchestrator",
    "ExecutionRecorder",
    "ExecutionReport",
    "InvalidCommandError",
    "ProvisionError",
    "SandboxError",
    "SandboxTimeoutError",
    "TaskNotFoundError",
    "TaskpodError",
]
