"""JSON-file task store: one document per task in a directory.

Writes go to a temporary file that is atomically renamed over the
document.  Every mutation holds an exclusive ``fcntl`` lock on a per-task
lock file; an append that finds the lock taken by another process raises
:class:`ConcurrentModificationError` instead of waiting, leaving the retry
decision to the caller.  Unix only.
"""

from __future__ import annotations

import asyncio
import fcntl
import logging
import os
import re
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from taskpod.core.models import TASK_ID_PATTERN, Task, TaskExecution
from taskpod.runtime.errors import ConcurrentModificationError, TaskNotFoundError

logger = logging.getLogger(__name__)

_VALID_ID = re.compile(TASK_ID_PATTERN)


class JsonFileTaskStore:
    """File-backed :class:`~taskpod.store.backend.TaskStore` implementation."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).expanduser()
        self._lock = asyncio.Lock()

    @property
    def root(self) -> Path:
        return self._root

    async def find_task_by_id(self, task_id: str) -> Task | None:
        if not _VALID_ID.fullmatch(task_id):
            return None
        return await asyncio.to_thread(self._read, task_id)

    async def append_execution(self, task_id: str, execution: TaskExecution) -> Task:
        if not _VALID_ID.fullmatch(task_id):
            raise TaskNotFoundError(task_id)
        async with self._lock:
            return await asyncio.to_thread(self._append, task_id, execution)

    async def save_task(self, task: Task, *, keep_executions: bool = False) -> Task:
        async with self._lock:
            return await asyncio.to_thread(self._save, task, keep_executions)

    async def delete_task(self, task_id: str) -> bool:
        if not _VALID_ID.fullmatch(task_id):
            return False
        async with self._lock:
            return await asyncio.to_thread(self._delete, task_id)

    async def find_tasks_by_name_contains(self, substring: str) -> list[Task]:
        return [t for t in await self.list_tasks() if substring in t.name]

    async def list_tasks(self) -> list[Task]:
        return await asyncio.to_thread(self._list)

    # ------------------------------------------------------------------
    # Blocking helpers (run in a worker thread)
    # ------------------------------------------------------------------

    def _path(self, task_id: str) -> Path:
        return self._root / f"{task_id}.json"

    def _read(self, task_id: str) -> Task | None:
        try:
            data = self._path(task_id).read_bytes()
        except FileNotFoundError:
            return None
        return Task.load(data)

    def _write(self, task: Task) -> None:
        fd, tmp = tempfile.mkstemp(dir=self._root, prefix=f".{task.id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(task.dump())
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self._path(task.id))
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    @contextmanager
    def _exclusive(self, task_id: str) -> Iterator[None]:
        self._root.mkdir(parents=True, exist_ok=True)
        with open(self._root / f".{task_id}.lock", "a+b") as fh:
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError as exc:
                raise ConcurrentModificationError(task_id) from exc
            try:
                yield
            finally:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)

    def _append(self, task_id: str, execution: TaskExecution) -> Task:
        with self._exclusive(task_id):
            task = self._read(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            task.executions.append(execution)
            self._write(task)
        return task

    def _save(self, task: Task, keep_executions: bool) -> Task:
        with self._exclusive(task.id):
            existing = self._read(task.id) if keep_executions else None
            if existing is not None:
                task = task.model_copy(update={"executions": existing.executions})
            self._write(task)
        return task

    def _delete(self, task_id: str) -> bool:
        with self._exclusive(task_id):
            try:
                self._path(task_id).unlink()
            except FileNotFoundError:
                return False
        logger.debug("Deleted task document %s", task_id)
        return True

    def _list(self) -> list[Task]:
        if not self._root.is_dir():
            return []
        return [Task.load(p.read_bytes()) for p in sorted(self._root.glob("*.json"))]
