"""taskpod — run stored shell commands in disposable Kubernetes sandboxes."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from taskpod.runtime.orchestrator import ExecutionOrchestrator as ExecutionOrchestrator
    from taskpod.service import TaskService as TaskService

_LAZY_EXPORTS = {
    "ExecutionOrchestrator": "taskpod.runtime.orchestrator",
    "TaskService": "taskpod.service",
}


def __getattr__(name: str) -> object:
    module_path = _LAZY_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'taskpod' has no attribute {name!r}")
