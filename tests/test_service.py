"""Tests for TaskService."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from taskpod.core.models import ExecutionStatus, Task, TaskExecution
from taskpod.runtime.errors import InvalidCommandError, TaskNotFoundError
from taskpod.runtime.orchestrator import ExecutionOrchestrator
from taskpod.runtime.sandbox.cluster import ClusterSandboxDriver
from taskpod.runtime.sandbox.simulated import SimulatedSandboxDriver
from taskpod.service import TaskService
from taskpod.settings.models import TaskpodSettings
from taskpod.store.backend import InMemoryTaskStore
from taskpod.store.file_backend import JsonFileTaskStore
from tests.runtime.fakes import FakeDriver

if TYPE_CHECKING:
    from pathlib import Path


def _service(driver: FakeDriver | None = None) -> TaskService:
    store = InMemoryTaskStore()
    return TaskService(store, ExecutionOrchestrator(store, cluster=driver or FakeDriver()))


class _SlowSaveStore(InMemoryTaskStore):
    """Delays every save so other writers can interleave before it lands."""

    async def save_task(self, task: Task, *, keep_executions: bool = False) -> Task:
        await asyncio.sleep(0.05)
        return await super().save_task(task, keep_executions=keep_executions)


def _execution(output: str = "x") -> TaskExecution:
    now = datetime.now(UTC)
    return TaskExecution(start_time=now, end_time=now, output=output)


def _task(**kwargs) -> Task:
    defaults = {"id": "t1", "name": "Hello", "owner": "alice", "command": "echo Hello World!"}
    defaults.update(kwargs)
    return Task(**defaults)


class TestTaskCrud:
    async def test_put_and_get(self) -> None:
        service = _service()
        await service.put_task(_task())
        assert (await service.get_task("t1")).command == "echo Hello World!"

    async def test_put_rejects_unsafe_command(self) -> None:
        service = _service()
        with pytest.raises(InvalidCommandError):
            await service.put_task(_task(command="echo hi | sh"))
        assert await service.list_tasks() == []

    async def test_put_keeps_history(self) -> None:
        service = _service()
        await service.put_task(_task())
        await service.execute_task("t1")

        updated = await service.put_task(_task(name="Renamed"))

        assert updated.name == "Renamed"
        assert len(updated.executions) == 1

    async def test_put_does_not_lose_concurrent_append(self) -> None:
        store = _SlowSaveStore()
        service = TaskService(store, ExecutionOrchestrator(store, cluster=FakeDriver()))
        await store.save_task(_task())

        async def _append_during_put() -> None:
            await asyncio.sleep(0.01)
            await store.append_execution("t1", _execution())

        await asyncio.gather(service.put_task(_task(name="Renamed")), _append_during_put())

        stored = await service.get_task("t1")
        assert stored.name == "Renamed"
        assert len(stored.executions) == 1

    async def test_put_with_history_replaces_it(self) -> None:
        service = _service()
        await service.put_task(_task())
        await service.execute_task("t1")

        updated = await service.put_task(_task(executions=[_execution("imported")]))

        assert [e.output for e in updated.executions] == ["imported"]

    async def test_get_missing(self) -> None:
        with pytest.raises(TaskNotFoundError):
            await _service().get_task("nope")

    async def test_delete(self) -> None:
        service = _service()
        await service.put_task(_task())
        await service.delete_task("t1")
        with pytest.raises(TaskNotFoundError):
            await service.delete_task("t1")

    async def test_find_and_list(self) -> None:
        service = _service()
        await service.put_task(_task(id="a", name="Hello World"))
        await service.put_task(_task(id="b", name="Other"))
        assert [t.id for t in await service.find_tasks("World")] == ["a"]
        assert [t.id for t in await service.list_tasks()] == ["a", "b"]


class TestExecution:
    async def test_execute(self) -> None:
        service = _service(FakeDriver(output="Hello World!\n"))
        await service.put_task(_task())

        report = await service.execute_task("t1")

        assert report.execution.status == ExecutionStatus.SUCCEEDED
        assert report.execution.output == "Hello World!\n"

    async def test_context_manager_closes_drivers(self) -> None:
        driver = FakeDriver()
        async with _service(driver):
            pass
        assert driver.closed is True


class TestFromSettings:
    def test_default_wiring(self, tmp_path: Path) -> None:
        settings = TaskpodSettings.model_validate({"store": {"path": str(tmp_path)}})
        service = TaskService.from_settings(settings)

        assert isinstance(service.store, JsonFileTaskStore)
        kinds = [type(d) for d in service.orchestrator.drivers]
        assert kinds == [ClusterSandboxDriver, SimulatedSandboxDriver]

    def test_memory_store_without_cluster(self) -> None:
        settings = TaskpodSettings.model_validate({"store": {"backend": "memory"}, "cluster": {"enabled": False}})
        service = TaskService.from_settings(settings)

        assert isinstance(service.store, InMemoryTaskStore)
        assert [d.name for d in service.orchestrator.drivers] == ["simulated"]

    @pytest.mark.filterwarnings("ignore::taskpod.runtime.sandbox.simulated.IsolationWarning")
    async def test_end_to_end_with_simulated_driver(self, tmp_path: Path) -> None:
        settings = TaskpodSettings.model_validate(
            {"store": {"path": str(tmp_path)}, "cluster": {"enabled": False}}
        )
        async with TaskService.from_settings(settings) as service:
            await service.put_task(_task())
            report = await service.execute_task("t1")

        assert report.execution.output == "Hello World!\n"
        assert report.executed_via_fallback is True
        assert (tmp_path / "t1.json").is_file()
