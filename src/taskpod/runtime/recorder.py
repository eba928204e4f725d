"""ExecutionRecorder — appends execution records to a task's history."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from taskpod.runtime.errors import ConcurrentModificationError

if TYPE_CHECKING:
    from taskpod.core.models import Task, TaskExecution
    from taskpod.store.backend import TaskStore

logger = logging.getLogger(__name__)


class ExecutionRecorder:
    """Append executions through the store's atomic positional append.

    The whole task document is never rewritten from a stale copy, so two
    executions racing on the same task both land in its history.  A
    :class:`ConcurrentModificationError` is retried *retries* times before
    it is surfaced to the caller.
    """

    def __init__(self, store: TaskStore, *, retries: int = 1) -> None:
        self._store = store
        self._retries = retries

    async def append(self, task_id: str, execution: TaskExecution) -> Task:
        """Append *execution* to the task's history and return the updated task.

        Raises:
            TaskNotFoundError: If the task was deleted in the meantime.
            ConcurrentModificationError: If every attempt collided with another writer.
        """
        attempt = 0
        while True:
            try:
                return await self._store.append_execution(task_id, execution)
            except ConcurrentModificationError:
                if attempt >= self._retries:
                    raise
                attempt += 1
                logger.info("Concurrent append on task %s; retrying (%d/%d)", task_id, attempt, self._retries)
