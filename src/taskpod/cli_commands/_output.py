"""Shared CLI output formatters."""

from __future__ import annotations

import json

from rich.console import Console
from rich.table import Table
from rich.text import Text

from taskpod.core.models import Task, TaskExecution  # noqa: TC001
from taskpod.runtime.orchestrator import ExecutionReport  # noqa: TC001

console = Console()

_STATUS_STYLES = {
    "succeeded": "green",
    "failed": "red",
    "timed_out": "yellow",
}


def print_task(task: Task, *, as_json: bool = False) -> None:
    """Pretty-print one task and its execution history."""
    if as_json:
        console.print_json(task.model_dump_json(by_alias=True))
        return

    console.print(f"\n[bold]{task.name}[/bold] ({task.id})")
    console.print(f"  Owner:   {task.owner}")
    console.print("  Command: ", Text(task.command), sep="")
    console.print(f"  Runs:    {len(task.executions)}")

    if task.executions:
        table = Table(title="Executions")
        table.add_column("Started")
        table.add_column("Duration")
        table.add_column("Status")
        table.add_column("Output")
        for execution in task.executions[-10:]:
            table.add_row(
                execution.start_time.isoformat(timespec="seconds"),
                f"{execution.duration:.2f}s",
                _status(execution),
                Text(_truncate(execution.output.strip())),
            )
        console.print(table)


def print_tasks_table(tasks: list[Task], *, as_json: bool = False) -> None:
    """Pretty-print a list of tasks as a table."""
    if as_json:
        data = [t.model_dump(mode="json", by_alias=True) for t in tasks]
        console.print_json(json.dumps(data))
        return

    table = Table(title="Tasks")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Owner")
    table.add_column("Command")
    table.add_column("Runs", justify="right")

    for task in tasks:
        table.add_row(
            task.id,
            task.name,
            task.owner,
            Text(_truncate(task.command)),
            str(len(task.executions)),
        )

    console.print(table)


def print_report(report: ExecutionReport, *, as_json: bool = False) -> None:
    """Print the outcome of a single execution."""
    execution = report.execution
    if as_json:
        console.print_json(execution.model_dump_json(by_alias=True))
        return

    if report.executed_via_fallback:
        console.print(
            "[yellow]Cluster unavailable: command ran in a local process "
            "without sandbox isolation.[/yellow]"
        )
    console.print(
        f"Task {report.task.id}: {_status(execution)} via {report.driver} "
        f"in {execution.duration:.2f}s"
        + (f" (exit code {execution.exit_code})" if execution.exit_code is not None else "")
    )
    if execution.output:
        console.print(Text(execution.output.rstrip("\n")), highlight=False)


def _status(execution: TaskExecution) -> str:
    style = _STATUS_STYLES.get(execution.status.value, "white")
    return f"[{style}]{execution.status.value}[/{style}]"


def _truncate(text: str, max_len: int = 60) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
