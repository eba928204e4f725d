"""SandboxDriver protocol — the common interface for sandbox backends."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from taskpod.runtime.sandbox.models import SandboxHandle, SandboxPhase, TerminalResult


@runtime_checkable
class SandboxDriver(Protocol):
    """Creates, observes and deletes disposable execution sandboxes.

    ``isolated`` is ``False`` for backends that run commands on the host;
    executions through such a driver are flagged as fallback executions.
    """

    name: str
    isolated: bool

    async def probe(self) -> bool:
        """Return ``True`` if the backend is reachable (timeout-bounded)."""
        ...

    async def create(self, command: str) -> SandboxHandle:
        """Provision a sandbox running *command*; raise ``ProvisionError`` on failure."""
        ...

    async def status(self, handle: SandboxHandle) -> SandboxPhase:
        """Observe the current phase of the sandbox once."""
        ...

    async def await_terminal(self, handle: SandboxHandle, deadline: float) -> TerminalResult:
        """Wait until the sandbox is terminal or the monotonic *deadline* passes."""
        ...

    async def fetch_output(self, handle: SandboxHandle) -> str:
        """Return whatever output was captured; never fails for a dead sandbox."""
        ...

    async def delete(self, handle: SandboxHandle) -> None:
        """Tear the sandbox down.  Idempotent."""
        ...

    async def close(self) -> None:
        """Release any driver-level resources."""
        ...
