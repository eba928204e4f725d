"""taskpod CLI entrypoint."""

from __future__ import annotations

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from taskpod import __version__


@click.group()
@click.version_option(version=__version__, prog_name="taskpod")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Configuration file (default: $TASKPOD_CONFIG or ~/.taskpod/config.yaml).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """taskpod — run stored commands in disposable sandboxes."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


# Register subcommands
from taskpod.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
