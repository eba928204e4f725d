"""``taskpod tasks`` — create, inspect, delete and run tasks."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from typing import TypeVar

import click
from pydantic import ValidationError

from taskpod.cli_commands._output import console, print_report, print_task, print_tasks_table
from taskpod.core.models import Task
from taskpod.runtime.errors import InvalidCommandError, TaskNotFoundError, TaskpodError
from taskpod.service import TaskService
from taskpod.settings.loader import ConfigError, load_settings

T = TypeVar("T")


def _with_service(ctx: click.Context, action: Callable[[TaskService], Awaitable[T]]) -> T:
    """Build a service from the active configuration and run *action* on it."""
    try:
        settings = load_settings((ctx.obj or {}).get("config_path"))
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)

    async def _run() -> T:
        async with TaskService.from_settings(settings) as service:
            return await action(service)

    try:
        return asyncio.run(_run())
    except TaskNotFoundError as exc:
        console.print(f"[red]Not found:[/red] {exc.task_id}")
    except InvalidCommandError as exc:
        console.print(f"[red]Invalid command:[/red] {exc.reason}")
    except TaskpodError as exc:
        console.print(f"[red]Execution error:[/red] {exc}")
    sys.exit(1)


@click.group()
def tasks() -> None:
    """Manage and run tasks."""


@tasks.command("put")
@click.option("--id", "task_id", required=True, help="Task identifier.")
@click.option("--name", required=True, help="Human-readable task name.")
@click.option("--owner", required=True, help="Task owner.")
@click.option("--command", "command", required=True, help="Shell command to run.")
@click.pass_context
def put_task(ctx: click.Context, task_id: str, name: str, owner: str, command: str) -> None:
    """Create or replace a task."""
    try:
        task = Task(id=task_id, name=name, owner=owner, command=command)
    except ValidationError as exc:
        console.print(f"[red]Invalid task:[/red] {exc}")
        sys.exit(1)

    saved = _with_service(ctx, lambda service: service.put_task(task))
    console.print(f"[green]Saved task {saved.id}.[/green]")


@tasks.command("get")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def get_task(ctx: click.Context, task_id: str, as_json: bool) -> None:
    """Show one task and its execution history."""
    task = _with_service(ctx, lambda service: service.get_task(task_id))
    print_task(task, as_json=as_json)


@tasks.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_tasks(ctx: click.Context, as_json: bool) -> None:
    """List all tasks."""
    found = _with_service(ctx, lambda service: service.list_tasks())
    if not found and not as_json:
        console.print("[yellow]No tasks found.[/yellow]")
        return
    print_tasks_table(found, as_json=as_json)


@tasks.command("find")
@click.argument("name")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def find_tasks(ctx: click.Context, name: str, as_json: bool) -> None:
    """Find tasks whose name contains NAME."""
    found = _with_service(ctx, lambda service: service.find_tasks(name))
    if not found and not as_json:
        console.print(f"[yellow]No tasks matching {name!r}.[/yellow]")
        return
    print_tasks_table(found, as_json=as_json)


@tasks.command("delete")
@click.argument("task_id")
@click.pass_context
def delete_task(ctx: click.Context, task_id: str) -> None:
    """Delete a task and its execution history."""
    _with_service(ctx, lambda service: service.delete_task(task_id))
    console.print(f"[green]Deleted task {task_id}.[/green]")


@tasks.command("run")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output the execution record as JSON.")
@click.pass_context
def run_task(ctx: click.Context, task_id: str, as_json: bool) -> None:
    """Execute a task's command in a fresh sandbox."""
    report = _with_service(ctx, lambda service: service.execute_task(task_id))
    print_report(report, as_json=as_json)
