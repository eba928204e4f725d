"""Tests for the TaskStore protocol and InMemoryTaskStore."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from taskpod.core.models import Task, TaskExecution
from taskpod.runtime.errors import TaskNotFoundError
from taskpod.store.backend import InMemoryTaskStore, TaskStore
from taskpod.store.file_backend import JsonFileTaskStore


def _task(task_id: str = "t1", name: str = "Hello") -> Task:
    return Task(id=task_id, name=name, owner="alice", command="echo hi")


def _execution(output: str = "x") -> TaskExecution:
    now = datetime.now(UTC)
    return TaskExecution(start_time=now, end_time=now, output=output)


class TestProtocol:
    def test_in_memory_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryTaskStore(), TaskStore)

    def test_file_store_satisfies_protocol(self, tmp_path) -> None:
        assert isinstance(JsonFileTaskStore(tmp_path), TaskStore)


class TestInMemoryTaskStore:
    def setup_method(self) -> None:
        self.store = InMemoryTaskStore()

    async def test_find_missing_returns_none(self) -> None:
        assert await self.store.find_task_by_id("nope") is None

    async def test_save_and_find(self) -> None:
        await self.store.save_task(_task())
        loaded = await self.store.find_task_by_id("t1")
        assert loaded is not None
        assert loaded.command == "echo hi"

    async def test_find_returns_independent_copy(self) -> None:
        await self.store.save_task(_task())
        copy1 = await self.store.find_task_by_id("t1")
        copy2 = await self.store.find_task_by_id("t1")
        assert copy1 is not None and copy2 is not None
        copy1.executions.append(_execution())
        assert copy2.executions == []

    async def test_save_overwrites(self) -> None:
        await self.store.save_task(_task(name="v1"))
        await self.store.save_task(_task(name="v2"))
        loaded = await self.store.find_task_by_id("t1")
        assert loaded is not None
        assert loaded.name == "v2"

    async def test_save_keeping_executions(self) -> None:
        await self.store.save_task(_task(name="v1"))
        await self.store.append_execution("t1", _execution("one"))

        saved = await self.store.save_task(_task(name="v2"), keep_executions=True)

        assert saved.name == "v2"
        assert [e.output for e in saved.executions] == ["one"]

    async def test_save_keeping_executions_of_new_task(self) -> None:
        saved = await self.store.save_task(_task(), keep_executions=True)
        assert saved.executions == []

    async def test_plain_save_replaces_executions(self) -> None:
        await self.store.save_task(_task())
        await self.store.append_execution("t1", _execution("one"))
        saved = await self.store.save_task(_task())
        assert saved.executions == []

    async def test_append_execution(self) -> None:
        await self.store.save_task(_task())
        updated = await self.store.append_execution("t1", _execution("one"))
        updated = await self.store.append_execution("t1", _execution("two"))
        assert [e.output for e in updated.executions] == ["one", "two"]

    async def test_append_to_missing_task(self) -> None:
        with pytest.raises(TaskNotFoundError):
            await self.store.append_execution("nope", _execution())

    async def test_concurrent_appends_are_not_lost(self) -> None:
        await self.store.save_task(_task())
        await asyncio.gather(*(self.store.append_execution("t1", _execution(str(i))) for i in range(10)))
        loaded = await self.store.find_task_by_id("t1")
        assert loaded is not None
        assert len(loaded.executions) == 10

    async def test_delete(self) -> None:
        await self.store.save_task(_task())
        assert await self.store.delete_task("t1") is True
        assert await self.store.find_task_by_id("t1") is None
        assert await self.store.delete_task("t1") is False

    async def test_find_by_name_contains(self) -> None:
        await self.store.save_task(_task("a", "Hello World"))
        await self.store.save_task(_task("b", "Goodbye"))
        await self.store.save_task(_task("c", "hello lowercase"))
        found = await self.store.find_tasks_by_name_contains("Hello")
        assert [t.id for t in found] == ["a"]

    async def test_list_sorted_by_id(self) -> None:
        for task_id in ("b", "c", "a"):
            await self.store.save_task(_task(task_id))
        assert [t.id for t in await self.store.list_tasks()] == ["a", "b", "c"]
