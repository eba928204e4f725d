"""Tests for ExecutionRecorder."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from taskpod.core.models import Task, TaskExecution
from taskpod.runtime.errors import ConcurrentModificationError, TaskNotFoundError
from taskpod.runtime.recorder import ExecutionRecorder
from taskpod.store.backend import InMemoryTaskStore


def _execution() -> TaskExecution:
    now = datetime.now(UTC)
    return TaskExecution(start_time=now, end_time=now, output="x")


class TestExecutionRecorder:
    async def test_appends(self) -> None:
        store = InMemoryTaskStore()
        await store.save_task(Task(id="t1", name="n", owner="o", command="echo"))
        recorder = ExecutionRecorder(store)

        updated = await recorder.append("t1", _execution())

        assert len(updated.executions) == 1
        stored = await store.find_task_by_id("t1")
        assert stored is not None
        assert len(stored.executions) == 1

    async def test_missing_task_propagates(self) -> None:
        with pytest.raises(TaskNotFoundError):
            await ExecutionRecorder(InMemoryTaskStore()).append("nope", _execution())

    async def test_retries_once_on_conflict(self) -> None:
        task = Task(id="t1", name="n", owner="o", command="echo")
        store = AsyncMock()
        store.append_execution.side_effect = [ConcurrentModificationError("t1"), task]

        result = await ExecutionRecorder(store).append("t1", _execution())

        assert result is task
        assert store.append_execution.await_count == 2

    async def test_gives_up_after_retries(self) -> None:
        store = AsyncMock()
        store.append_execution.side_effect = ConcurrentModificationError("t1")

        with pytest.raises(ConcurrentModificationError):
            await ExecutionRecorder(store, retries=2).append("t1", _execution())
        assert store.append_execution.await_count == 3

    async def test_zero_retries(self) -> None:
        store = AsyncMock()
        store.append_execution.side_effect = ConcurrentModificationError("t1")

        with pytest.raises(ConcurrentModificationError):
            await ExecutionRecorder(store, retries=0).append("t1", _execution())
        assert store.append_execution.await_count == 1
