"""Shared error types for task execution."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from taskpod.runtime.sandbox.models import SandboxHandle


class TaskpodError(Exception):
    """Base error for all taskpod failures."""


class InvalidCommandError(TaskpodError):
    """A command was rejected by the command validator."""

    def __init__(self, command: str, reason: str = "") -> None:
        self.command = command
        self.reason = reason
        msg = f"Invalid command: {command!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class TaskNotFoundError(TaskpodError):
    """No task exists with the requested id."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class SandboxError(TaskpodError):
    """A sandbox operation failed (creation, observation, or cleanup)."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Sandbox error" + (f": {detail}" if detail else ""))


class ProvisionError(SandboxError):
    """A driver could not provision a sandbox.

    ``handle`` is set when the resource may exist despite the failure
    (e.g. the create request timed out after being sent), so the caller
    can still release it.
    """

    def __init__(self, detail: str = "", *, handle: SandboxHandle | None = None) -> None:
        self.handle = handle
        super().__init__(detail)


class SandboxTimeoutError(SandboxError):
    """A sandbox did not reach a terminal phase before its deadline."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Execution timed out after {timeout}s")


class CleanupError(SandboxError):
    """Deleting a sandbox failed."""


class ExecutionFailedError(TaskpodError):
    """No driver was able to run the command."""

    def __init__(self, task_id: str, detail: str = "") -> None:
        self.task_id = task_id
        self.detail = detail
        msg = f"Execution failed for task {task_id}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ConcurrentModificationError(TaskpodError):
    """A concurrent writer held the task document during an append."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Concurrent modification of task {task_id}")
