"""ExecutionOrchestrator — runs one task command in one disposable sandbox.

Per execution attempt the orchestrator moves through::

    validating -> driver_selection -> provisioning -> watching
               -> extracting -> cleaning -> recording -> done

Any state may end in ``failed``.  The sandbox handle is held by an async
context manager, so ``cleaning`` runs on every exit path once anything has
been provisioned, including partially provisioned resources reported by a
failed ``create``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, NamedTuple

from opentelemetry import trace
from pydantic import BaseModel

from taskpod.core.models import ExecutionStatus, Task, TaskExecution
from taskpod.runtime.errors import (
    ExecutionFailedError,
    ProvisionError,
    SandboxError,
    SandboxTimeoutError,
    TaskNotFoundError,
    TaskpodError,
)
from taskpod.runtime.recorder import ExecutionRecorder
from taskpod.runtime.sandbox.models import SandboxPhase
from taskpod.runtime.sandbox.watcher import ExecutionWatcher
from taskpod.runtime.validator import CommandValidator
from taskpod.utils.telemetry import (
    ATTR_DRIVER,
    ATTR_SANDBOX_ID,
    ATTR_STATE,
    ATTR_TASK_ID,
    annotate_execution,
    get_tracer,
)

if TYPE_CHECKING:
    from taskpod.runtime.sandbox.driver import SandboxDriver
    from taskpod.runtime.sandbox.models import SandboxHandle
    from taskpod.store.backend import TaskStore

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)


class OrchestrationState(str, Enum):
    """States of a single execution attempt."""

    VALIDATING = "validating"
    DRIVER_SELECTION = "driver_selection"
    PROVISIONING = "provisioning"
    WATCHING = "watching"
    EXTRACTING = "extracting"
    CLEANING = "cleaning"
    RECORDING = "recording"
    DONE = "done"
    FAILED = "failed"


class ExecutionReport(BaseModel):
    """What a caller gets back from :meth:`ExecutionOrchestrator.execute_task`."""

    task: Task
    execution: TaskExecution
    driver: str

    @property
    def executed_via_fallback(self) -> bool:
        return self.execution.executed_via_fallback


class _Lease(NamedTuple):
    driver: SandboxDriver
    handle: SandboxHandle


class _RunOutcome(NamedTuple):
    status: ExecutionStatus
    exit_code: int | None
    output: str


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ExecutionOrchestrator:
    """Validate, provision, watch, extract, clean up and record one execution.

    *cluster* is preferred whenever its health probe succeeds; *fallback*
    is used when the probe fails or the cluster refuses to provision.  At
    least one of the two must be given.
    """

    def __init__(
        self,
        store: TaskStore,
        *,
        cluster: SandboxDriver | None = None,
        fallback: SandboxDriver | None = None,
        watcher: ExecutionWatcher | None = None,
        validator: CommandValidator | None = None,
        recorder: ExecutionRecorder | None = None,
    ) -> None:
        if cluster is None and fallback is None:
            msg = "at least one sandbox driver is required"
            raise ValueError(msg)
        self._store = store
        self._cluster = cluster
        self._fallback = fallback
        self._watcher = watcher or ExecutionWatcher()
        self._validator = validator or CommandValidator()
        self._recorder = recorder or ExecutionRecorder(store)

    @property
    def drivers(self) -> list[SandboxDriver]:
        return [d for d in (self._cluster, self._fallback) if d is not None]

    async def execute_task(self, task_id: str) -> ExecutionReport:
        """Run the task's command once and append the result to its history.

        Runs that fail, time out or lose their sandbox still produce a
        recorded execution; they are not errors.

        Raises:
            TaskNotFoundError: No task with *task_id* exists.
            InvalidCommandError: The stored command fails validation.
            ExecutionFailedError: No driver could provision a sandbox.
        """
        with _tracer.start_as_current_span("taskpod.execute") as span:
            span.set_attribute(ATTR_TASK_ID, task_id)
            try:
                return await self._execute(task_id, span)
            except TaskpodError as exc:
                self._enter(task_id, OrchestrationState.FAILED)
                logger.info("Execution of task %s failed: %s", task_id, exc)
                raise

    async def _execute(self, task_id: str, span: trace.Span) -> ExecutionReport:
        self._enter(task_id, OrchestrationState.VALIDATING)
        task = await self._store.find_task_by_id(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        self._validator.check(task.command)

        self._enter(task_id, OrchestrationState.DRIVER_SELECTION)
        driver = await self._select_driver(task_id)
        start_time = _utcnow()

        async with self._sandbox(task_id, driver, task.command) as lease:
            span.set_attribute(ATTR_DRIVER, lease.driver.name)
            span.set_attribute(ATTR_SANDBOX_ID, lease.handle.sandbox_id)
            outcome = await self._run(task_id, lease)

        end_time = _utcnow()
        execution = TaskExecution(
            start_time=start_time,
            end_time=max(end_time, start_time),
            output=outcome.output,
            status=outcome.status,
            exit_code=outcome.exit_code,
            executed_via_fallback=not lease.driver.isolated,
        )

        self._enter(task_id, OrchestrationState.RECORDING)
        updated = await self._recorder.append(task_id, execution)

        annotate_execution(span, execution)
        self._enter(task_id, OrchestrationState.DONE)
        logger.info(
            "Task %s %s via %s in %.2fs",
            task_id,
            execution.status.value,
            lease.driver.name,
            execution.duration,
        )
        return ExecutionReport(task=updated, execution=execution, driver=lease.driver.name)

    async def _select_driver(self, task_id: str) -> SandboxDriver:
        """Prefer the cluster when it answers its probe, else the fallback."""
        if self._cluster is not None:
            if await self._cluster.probe():
                return self._cluster
            logger.warning("Cluster unreachable; task %s will run via fallback", task_id)

        if self._fallback is None or not await self._fallback.probe():
            raise ExecutionFailedError(task_id, "no sandbox driver is available")
        return self._fallback

    @asynccontextmanager
    async def _sandbox(
        self,
        task_id: str,
        driver: SandboxDriver,
        command: str,
    ) -> AsyncIterator[_Lease]:
        """Hold a provisioned sandbox; delete it however the block exits."""
        self._enter(task_id, OrchestrationState.PROVISIONING)
        lease = await self._provision(task_id, driver, command)
        try:
            yield lease
        finally:
            self._enter(task_id, OrchestrationState.CLEANING)
            await self._release(lease.driver, lease.handle)

    async def _provision(self, task_id: str, driver: SandboxDriver, command: str) -> _Lease:
        """Create a sandbox, falling back once if the cluster refuses."""
        try:
            return _Lease(driver, await driver.create(command))
        except ProvisionError as exc:
            if exc.handle is not None:
                await self._release(driver, exc.handle)
            fallback = self._fallback
            if fallback is None or driver is fallback:
                raise ExecutionFailedError(task_id, exc.detail) from exc
            logger.warning(
                "Provisioning on %s failed (%s); falling back to %s",
                driver.name,
                exc.detail,
                fallback.name,
            )

        try:
            return _Lease(fallback, await fallback.create(command))
        except ProvisionError as exc:
            if exc.handle is not None:
                await self._release(fallback, exc.handle)
            raise ExecutionFailedError(task_id, exc.detail) from exc

    async def _run(self, task_id: str, lease: _Lease) -> _RunOutcome:
        """Watch the sandbox to a terminal phase, then extract its output."""
        self._enter(task_id, OrchestrationState.WATCHING)
        captured = ""
        try:
            result = await self._watcher.wait(lease.driver, lease.handle)
        except SandboxTimeoutError as exc:
            logger.warning("Task %s: sandbox %s %s", task_id, lease.handle.sandbox_id, exc)
            status, exit_code = ExecutionStatus.TIMED_OUT, None
        except SandboxError as exc:
            logger.warning("Task %s: sandbox %s failed mid-run: %s", task_id, lease.handle.sandbox_id, exc)
            status, exit_code = ExecutionStatus.FAILED, None
        else:
            succeeded = result.phase == SandboxPhase.SUCCEEDED
            status = ExecutionStatus.SUCCEEDED if succeeded else ExecutionStatus.FAILED
            exit_code = result.exit_code
            captured = result.output
            if result.vanished:
                return _RunOutcome(status, exit_code, "")

        self._enter(task_id, OrchestrationState.EXTRACTING)
        try:
            output = await lease.driver.fetch_output(lease.handle)
        except SandboxError as exc:
            logger.warning("Task %s: could not read output of %s: %s", task_id, lease.handle.sandbox_id, exc)
            output = ""
        return _RunOutcome(status, exit_code, output or captured)

    @staticmethod
    async def _release(driver: SandboxDriver, handle: SandboxHandle) -> None:
        """Delete *handle*; failures are logged and never propagated."""
        try:
            await driver.delete(handle)
        except Exception as exc:
            logger.warning("Cleanup of sandbox %s on %s failed: %s", handle.sandbox_id, driver.name, exc)

    @staticmethod
    def _enter(task_id: str, state: OrchestrationState) -> None:
        logger.debug("Task %s -> %s", task_id, state.value)
        trace.get_current_span().set_attribute(ATTR_STATE, state.value)
