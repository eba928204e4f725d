"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from taskpod.cli_commands.config import config_cmd
    from taskpod.cli_commands.tasks import tasks

    cli.add_command(tasks)
    cli.add_command(config_cmd)
