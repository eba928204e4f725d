"""SimulatedSandboxDriver — runs commands in a local child process.

This is the fallback used when the cluster is unreachable.  The child runs
in its own session with a private temporary working directory and a minimal
environment, but it is **not** isolated from the host.  Every run emits an
:class:`IsolationWarning`, and executions through it are flagged as
fallback executions.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import signal
import tempfile
import time
import uuid
import warnings

from taskpod.runtime.errors import CleanupError, ProvisionError, SandboxTimeoutError
from taskpod.runtime.sandbox.models import (
    DEFAULT_MAX_OUTPUT_BYTES,
    SandboxHandle,
    SandboxPhase,
    SimulatedConfig,
    TerminalResult,
)

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096
_DRAIN_TIMEOUT = 1.0

_WARNING_MSG = (
    "SimulatedSandboxDriver executes commands on the host with NO container isolation. "
    "It is only used when the cluster is unreachable."
)


class IsolationWarning(UserWarning):
    """Commands are about to run without sandbox isolation."""


class _LocalRun:
    """Book-keeping for one child process."""

    __slots__ = ("process", "reader", "buffer", "workdir")

    def __init__(self, process: asyncio.subprocess.Process, workdir: str) -> None:
        self.process = process
        self.workdir = workdir
        self.buffer = bytearray()
        self.reader: asyncio.Task[None] | None = None


class SimulatedSandboxDriver:
    """Host-local sandbox driver (no isolation).

    Satisfies the :class:`~taskpod.runtime.sandbox.driver.SandboxDriver`
    protocol.  stdout and stderr are merged, as in pod logs, and read
    incrementally so a timed-out run still yields its partial output.
    """

    name = "simulated"
    isolated = False

    def __init__(
        self,
        config: SimulatedConfig | None = None,
        *,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ) -> None:
        self._config = config or SimulatedConfig()
        self._max_output_bytes = max_output_bytes
        self._runs: dict[str, _LocalRun] = {}

    @property
    def config(self) -> SimulatedConfig:
        return self._config

    async def probe(self) -> bool:
        return self._config.enabled and os.access(self._config.shell, os.X_OK)

    async def create(self, command: str) -> SandboxHandle:
        """Spawn ``<shell> -c <command>`` in a fresh session."""
        if not self._config.enabled:
            raise ProvisionError("local fallback execution is disabled")

        warnings.warn(_WARNING_MSG, IsolationWarning, stacklevel=2)
        logger.warning("SimulatedSandboxDriver: executing %r on host (UNSANDBOXED)", command)
        handle = SandboxHandle(
            sandbox_id=f"local-{uuid.uuid4().hex[:12]}",
            driver=self.name,
            phase=SandboxPhase.CREATING,
        )
        workdir = tempfile.mkdtemp(prefix="taskpod-")

        try:
            process = await asyncio.wait_for(
                asyncio.create_subprocess_exec(
                    self._config.shell,
                    "-c",
                    command,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                    cwd=workdir,
                    env=dict(self._config.env),
                    start_new_session=True,
                ),
                timeout=self._config.create_timeout,
            )
        except (OSError, TimeoutError) as exc:
            shutil.rmtree(workdir, ignore_errors=True)
            raise ProvisionError(f"Failed to start local process: {exc}") from exc

        run = _LocalRun(process, workdir)
        run.reader = asyncio.create_task(self._read_output(run))
        self._runs[handle.sandbox_id] = run
        handle.phase = SandboxPhase.RUNNING
        return handle

    async def status(self, handle: SandboxHandle) -> SandboxPhase:
        run = self._runs.get(handle.sandbox_id)
        phase = SandboxPhase.UNKNOWN if run is None else self._phase_of(run)
        handle.phase = phase
        return phase

    async def await_terminal(self, handle: SandboxHandle, deadline: float) -> TerminalResult:
        run = self._runs.get(handle.sandbox_id)
        if run is None:
            handle.phase = SandboxPhase.UNKNOWN
            return TerminalResult(phase=SandboxPhase.UNKNOWN, vanished=True)

        remaining = max(deadline - time.monotonic(), 0.0)
        try:
            await asyncio.wait_for(run.process.wait(), timeout=remaining)
        except TimeoutError:
            raise SandboxTimeoutError(round(handle.age(), 1)) from None

        if run.reader is not None:
            await asyncio.wait([run.reader], timeout=_DRAIN_TIMEOUT)

        phase = self._phase_of(run)
        handle.phase = phase
        return TerminalResult(
            phase=phase,
            output=self._decode(run),
            exit_code=run.process.returncode,
        )

    async def fetch_output(self, handle: SandboxHandle) -> str:
        run = self._runs.get(handle.sandbox_id)
        if run is None:
            return ""
        return self._decode(run)

    async def delete(self, handle: SandboxHandle) -> None:
        """Kill the process group and remove the working directory."""
        run = self._runs.pop(handle.sandbox_id, None)
        if run is None:
            return

        if run.process.returncode is None:
            try:
                os.killpg(run.process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            except OSError as exc:
                raise CleanupError(f"Failed to kill {handle.sandbox_id}: {exc}") from exc
            await run.process.wait()

        if run.reader is not None and not run.reader.done():
            run.reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await run.reader

        shutil.rmtree(run.workdir, ignore_errors=True)
        logger.debug("Deleted local sandbox %s", handle.sandbox_id)

    async def close(self) -> None:
        """Delete every run still tracked by this driver."""
        for sandbox_id in list(self._runs):
            await self.delete(SandboxHandle(sandbox_id=sandbox_id, driver=self.name))

    async def _read_output(self, run: _LocalRun) -> None:
        """Accumulate output up to the byte cap, then keep draining the pipe."""
        stream = run.process.stdout
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                return
            room = self._max_output_bytes - len(run.buffer)
            if room > 0:
                run.buffer.extend(chunk[:room])

    @staticmethod
    def _phase_of(run: _LocalRun) -> SandboxPhase:
        code = run.process.returncode
        if code is None:
            return SandboxPhase.RUNNING
        return SandboxPhase.SUCCEEDED if code == 0 else SandboxPhase.FAILED

    @staticmethod
    def _decode(run: _LocalRun) -> str:
        return bytes(run.buffer).decode(errors="replace")
