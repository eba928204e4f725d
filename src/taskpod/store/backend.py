"""Task persistence backends.

:class:`TaskStore` defines the async storage protocol the runtime depends on.
:class:`InMemoryTaskStore` provides a lightweight dict-based implementation
suitable for testing and single-process deployments.
"""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from taskpod.core.models import Task, TaskExecution
from taskpod.runtime.errors import TaskNotFoundError


@runtime_checkable
class TaskStore(Protocol):
    """Async persistence protocol for :class:`Task` documents."""

    async def find_task_by_id(self, task_id: str) -> Task | None:
        """Load a task by ID, or return ``None`` if it does not exist."""
        ...

    async def append_execution(self, task_id: str, execution: TaskExecution) -> Task:
        """Atomically append *execution* to the task's history.

        Raises:
            TaskNotFoundError: If the task does not exist.
            ConcurrentModificationError: If another writer holds the document.
        """
        ...

    async def save_task(self, task: Task, *, keep_executions: bool = False) -> Task:
        """Persist the task under its ID (upsert semantics).

        With *keep_executions* the stored history replaces the history of
        *task*, read under the same lock as :meth:`append_execution`.
        """
        ...

    async def delete_task(self, task_id: str) -> bool:
        """Remove a task; return ``False`` if it did not exist."""
        ...

    async def find_tasks_by_name_contains(self, substring: str) -> list[Task]:
        """Return tasks whose name contains *substring* (case-sensitive)."""
        ...

    async def list_tasks(self) -> list[Task]:
        """Return every stored task, ordered by ID."""
        ...


class InMemoryTaskStore:
    """Dict-backed :class:`TaskStore` implementation.

    Stores tasks as serialised JSON bytes so that each load returns a fresh,
    independent copy (mimicking a real persistence layer).  Appends run
    under a lock, so concurrent executions of one task never lose entries.
    """

    def __init__(self) -> None:
        self._store: dict[str, bytes] = {}
        self._lock = asyncio.Lock()

    async def find_task_by_id(self, task_id: str) -> Task | None:
        data = self._store.get(task_id)
        if data is None:
            return None
        return Task.load(data)

    async def append_execution(self, task_id: str, execution: TaskExecution) -> Task:
        async with self._lock:
            data = self._store.get(task_id)
            if data is None:
                raise TaskNotFoundError(task_id)
            task = Task.load(data)
            task.executions.append(execution)
            self._store[task_id] = task.dump()
            return task

    async def save_task(self, task: Task, *, keep_executions: bool = False) -> Task:
        async with self._lock:
            existing = self._store.get(task.id)
            if keep_executions and existing is not None:
                task = task.model_copy(update={"executions": Task.load(existing).executions})
            data = task.dump()
            self._store[task.id] = data
        return Task.load(data)

    async def delete_task(self, task_id: str) -> bool:
        async with self._lock:
            return self._store.pop(task_id, None) is not None

    async def find_tasks_by_name_contains(self, substring: str) -> list[Task]:
        return [t for t in await self.list_tasks() if substring in t.name]

    async def list_tasks(self) -> list[Task]:
        return [Task.load(self._store[key]) for key in sorted(self._store)]
