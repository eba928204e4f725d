"""In-memory sandbox driver with fault injection, shared by runtime tests."""

from __future__ import annotations

import asyncio

from taskpod.runtime.errors import SandboxError
from taskpod.runtime.sandbox.models import SandboxHandle, SandboxPhase, TerminalResult
from taskpod.runtime.sandbox.watcher import BackoffPolicy, poll_until_terminal

FAST_BACKOFF = BackoffPolicy(initial=0.01, maximum=0.02)


class FakeDriver:
    """Satisfies ``SandboxDriver``; records every call it receives.

    ``phase`` is what ``status`` reports; leaving it at ``RUNNING`` makes
    ``await_terminal`` poll until the deadline.  Any ``*_error`` is raised
    from the matching operation, and the first ``status_failures`` status
    reads raise ``SandboxError``.
    """

    def __init__(
        self,
        name: str = "fake",
        *,
        isolated: bool = True,
        healthy: bool = True,
        phase: SandboxPhase = SandboxPhase.SUCCEEDED,
        output: str = "ok\n",
        exit_code: int | None = 0,
        create_error: Exception | None = None,
        wait_error: Exception | None = None,
        fetch_error: Exception | None = None,
        delete_error: Exception | None = None,
        status_failures: int = 0,
    ) -> None:
        self.name = name
        self.isolated = isolated
        self.healthy = healthy
        self.phase = phase
        self.output = output
        self.exit_code = exit_code
        self.create_error = create_error
        self.wait_error = wait_error
        self.fetch_error = fetch_error
        self.delete_error = delete_error
        self.status_failures = status_failures
        self.status_reads = 0
        self.commands: list[str] = []
        self.created: list[SandboxHandle] = []
        self.deleted: list[str] = []
        self.probes = 0
        self.closed = False

    async def probe(self) -> bool:
        self.probes += 1
        return self.healthy

    async def create(self, command: str) -> SandboxHandle:
        self.commands.append(command)
        if self.create_error is not None:
            raise self.create_error
        handle = SandboxHandle(
            sandbox_id=f"{self.name}-{len(self.created)}",
            driver=self.name,
            phase=SandboxPhase.RUNNING,
        )
        self.created.append(handle)
        return handle

    async def status(self, handle: SandboxHandle) -> SandboxPhase:
        self.status_reads += 1
        if self.status_reads <= self.status_failures:
            raise SandboxError("status read failed")
        return self.phase

    async def await_terminal(self, handle: SandboxHandle, deadline: float) -> TerminalResult:
        await asyncio.sleep(0)
        if self.wait_error is not None:
            raise self.wait_error
        phase = await poll_until_terminal(self, handle, deadline=deadline, backoff=FAST_BACKOFF)
        return TerminalResult(phase=phase, output=self.output, exit_code=self.exit_code)

    async def fetch_output(self, handle: SandboxHandle) -> str:
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.output

    async def delete(self, handle: SandboxHandle) -> None:
        self.deleted.append(handle.sandbox_id)
        if self.delete_error is not None:
            raise self.delete_error

    async def close(self) -> None:
        self.closed = True
