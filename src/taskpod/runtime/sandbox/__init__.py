"""Sandbox subsystem — disposable, isolated command execution."""

from taskpod.runtime.sandbox.cluster import ClusterSandboxDriver
from taskpod.runtime.sandbox.driver import SandboxDriver
from taskpod.runtime.sandbox.models import (
    ClusterConfig,
    SandboxHandle,
    SandboxPhase,
    SimulatedConfig,
    TerminalResult,
    WatcherConfig,
)
from taskpod.runtime.sandbox.simulated import IsolationWarning, SimulatedSandboxDriver
from taskpod.runtime.sandbox.watcher import BackoffPolicy, ExecutionWatcher

__all__ = [
    "BackoffPolicy",
    "ClusterConfig",
    "ClusterSandboxDriver",
    "ExecutionWatcher",
    "IsolationWarning",
    "SandboxDriver",
    "SandboxHandle",
    "SandboxPhase",
    "SimulatedConfig",
    "SimulatedSandboxDriver",
    "TerminalResult",
    "WatcherConfig",
]
