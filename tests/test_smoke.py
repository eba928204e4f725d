"""Smoke test to verify the project scaffolding works."""

from __future__ import annotations


def test_import() -> None:
    import taskpod

    assert taskpod.__version__ == "0.1.0"


def test_cli_entrypoint() -> None:
    from taskpod.cli import main

    assert callable(main)


def test_runtime_imports() -> None:
    from taskpod.runtime import (
        CommandValidator,
        ExecutionOrchestrator,
        ExecutionRecorder,
        ExecutionReport,
        InvalidCommandError,
        TaskNotFoundError,
    )

    assert ExecutionOrchestrator is not None
    assert ExecutionRecorder is not None
    assert ExecutionReport is not None
    assert CommandValidator is not None
    assert InvalidCommandError is not None
    assert TaskNotFoundError is not None


def test_lazy_import_from_taskpod() -> None:
    import taskpod

    assert taskpod.ExecutionOrchestrator is not None
    assert taskpod.TaskService is not None
