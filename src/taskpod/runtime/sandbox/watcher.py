"""ExecutionWatcher — deadline and backoff policy for observing a sandbox.

The deadline is measured from sandbox creation.  Polling drivers sleep
between status reads according to :class:`BackoffPolicy`: exponential
growth from ``initial_interval`` capped at ``max_interval``, and never past
the deadline itself.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterator
from typing import TYPE_CHECKING

from taskpod.runtime.errors import SandboxError, SandboxTimeoutError
from taskpod.runtime.sandbox.models import (
    SandboxHandle,
    SandboxPhase,
    TerminalResult,
    WatcherConfig,
)

if TYPE_CHECKING:
    from taskpod.runtime.sandbox.driver import SandboxDriver

logger = logging.getLogger(__name__)

# Lower bound on a single status read once the deadline is (nearly) reached.
_MIN_READ_WINDOW = 0.1


class BackoffPolicy:
    """Bounded exponential backoff."""

    def __init__(self, initial: float = 0.2, maximum: float = 2.0, multiplier: float = 2.0) -> None:
        self.initial = initial
        self.maximum = maximum
        self.multiplier = multiplier

    @classmethod
    def from_config(cls, config: WatcherConfig) -> BackoffPolicy:
        return cls(config.initial_interval, config.max_interval, config.multiplier)

    def delays(self) -> Iterator[float]:
        """Yield an endless sequence of poll delays."""
        delay = self.initial
        while True:
            yield min(delay, self.maximum)
            delay = min(delay * self.multiplier, self.maximum)


async def poll_until_terminal(
    driver: SandboxDriver,
    handle: SandboxHandle,
    *,
    deadline: float,
    backoff: BackoffPolicy,
) -> SandboxPhase:
    """Poll ``driver.status`` until the phase is terminal or *deadline* passes.

    Returns ``unknown`` when the sandbox vanished.  A status read that fails
    or outlives the deadline does not end the watch; polling continues
    until the deadline.

    Raises:
        SandboxTimeoutError: If the deadline elapses first.
    """
    delays = backoff.delays()
    while True:
        phase = await _read_status(driver, handle, deadline)
        if phase == SandboxPhase.UNKNOWN:
            logger.debug("Sandbox %s vanished", handle.sandbox_id)
            return phase
        if phase is not None and phase.is_terminal:
            return phase

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise SandboxTimeoutError(round(handle.age(), 1))
        await asyncio.sleep(min(next(delays), remaining))


async def _read_status(
    driver: SandboxDriver,
    handle: SandboxHandle,
    deadline: float,
) -> SandboxPhase | None:
    """Read the phase once, bounded by the deadline; ``None`` if the read failed."""
    window = max(deadline - time.monotonic(), _MIN_READ_WINDOW)
    try:
        return await asyncio.wait_for(driver.status(handle), timeout=window)
    except TimeoutError:
        logger.warning("Status read for sandbox %s did not finish before the deadline", handle.sandbox_id)
    except SandboxError as exc:
        logger.warning("Status read for sandbox %s failed, retrying: %s", handle.sandbox_id, exc)
    return None


class ExecutionWatcher:
    """Applies the deadline policy to a driver's ``await_terminal``."""

    def __init__(self, config: WatcherConfig | None = None) -> None:
        self._config = config or WatcherConfig()

    @property
    def config(self) -> WatcherConfig:
        return self._config

    @property
    def backoff(self) -> BackoffPolicy:
        return BackoffPolicy.from_config(self._config)

    def deadline_for(self, handle: SandboxHandle) -> float:
        """Return the monotonic deadline for *handle*, counted from its creation."""
        remaining = self._config.timeout - max(handle.age(), 0.0)
        return time.monotonic() + max(remaining, 0.0)

    async def wait(self, driver: SandboxDriver, handle: SandboxHandle) -> TerminalResult:
        """Block until *handle* is terminal.

        Raises:
            SandboxTimeoutError: If the deadline elapses first.
        """
        deadline = self.deadline_for(handle)
        logger.debug(
            "Watching sandbox %s (deadline in %.1fs)",
            handle.sandbox_id,
            deadline - time.monotonic(),
        )
        result = await driver.await_terminal(handle, deadline)

        if result.phase == SandboxPhase.UNKNOWN or result.vanished:
            logger.warning("Sandbox %s vanished; treating as failed", handle.sandbox_id)
            return TerminalResult(
                phase=SandboxPhase.FAILED,
                output="",
                exit_code=result.exit_code,
                vanished=True,
            )
        return result
