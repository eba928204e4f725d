"""TaskService — task CRUD, lookup and execution for front ends."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from taskpod.runtime.errors import TaskNotFoundError
from taskpod.runtime.orchestrator import ExecutionOrchestrator
from taskpod.runtime.recorder import ExecutionRecorder
from taskpod.runtime.sandbox.cluster import ClusterSandboxDriver
from taskpod.runtime.sandbox.simulated import SimulatedSandboxDriver
from taskpod.runtime.sandbox.watcher import BackoffPolicy, ExecutionWatcher
from taskpod.runtime.validator import CommandValidator
from taskpod.store.backend import InMemoryTaskStore
from taskpod.store.file_backend import JsonFileTaskStore
from taskpod.utils.telemetry import configure_telemetry

if TYPE_CHECKING:
    from taskpod.core.models import Task
    from taskpod.runtime.orchestrator import ExecutionReport
    from taskpod.runtime.sandbox.driver import SandboxDriver
    from taskpod.settings.models import TaskpodSettings
    from taskpod.store.backend import TaskStore

logger = logging.getLogger(__name__)


class TaskService:
    """Operations a front end exposes over stored tasks."""

    def __init__(
        self,
        store: TaskStore,
        orchestrator: ExecutionOrchestrator,
        *,
        validator: CommandValidator | None = None,
    ) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self._validator = validator or CommandValidator()

    @classmethod
    def from_settings(cls, settings: TaskpodSettings) -> TaskService:
        """Wire store, drivers, watcher, recorder and orchestrator from *settings*."""
        if settings.telemetry.enabled:
            configure_telemetry(settings.telemetry)

        store: TaskStore
        if settings.store.backend == "memory":
            store = InMemoryTaskStore()
        else:
            store = JsonFileTaskStore(settings.store.path)

        cluster: SandboxDriver | None = None
        if settings.cluster.enabled:
            cluster = ClusterSandboxDriver(
                settings.cluster,
                backoff=BackoffPolicy.from_config(settings.watcher),
                max_output_bytes=settings.max_output_bytes,
            )

        fallback: SandboxDriver | None = None
        if settings.simulated.enabled:
            fallback = SimulatedSandboxDriver(
                settings.simulated,
                max_output_bytes=settings.max_output_bytes,
            )

        validator = CommandValidator()
        orchestrator = ExecutionOrchestrator(
            store,
            cluster=cluster,
            fallback=fallback,
            watcher=ExecutionWatcher(settings.watcher),
            validator=validator,
            recorder=ExecutionRecorder(store, retries=settings.recorder_retries),
        )
        return cls(store, orchestrator, validator=validator)

    async def put_task(self, task: Task) -> Task:
        """Create or replace a task after validating its command.

        Replacing a task keeps its existing execution history.

        Raises:
            InvalidCommandError: If the command fails validation.
        """
        self._validator.check(task.command)
        saved = await self.store.save_task(task, keep_executions=not task.executions)
        logger.info("Saved task %s (%s)", saved.id, saved.name)
        return saved

    async def get_task(self, task_id: str) -> Task:
        task = await self.store.find_task_by_id(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def list_tasks(self) -> list[Task]:
        return await self.store.list_tasks()

    async def delete_task(self, task_id: str) -> None:
        if not await self.store.delete_task(task_id):
            raise TaskNotFoundError(task_id)
        logger.info("Deleted task %s", task_id)

    async def find_tasks(self, name: str) -> list[Task]:
        """Return tasks whose name contains *name*."""
        return await self.store.find_tasks_by_name_contains(name)

    async def execute_task(self, task_id: str) -> ExecutionReport:
        return await self.orchestrator.execute_task(task_id)

    async def aclose(self) -> None:
        """Close every sandbox driver."""
        for driver in self.orchestrator.drivers:
            await driver.close()

    async def __aenter__(self) -> TaskService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
