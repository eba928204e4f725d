"""``taskpod config`` — inspect and validate configuration."""

from __future__ import annotations

import sys
from pathlib import Path

import click
import yaml

from taskpod.cli_commands._output import console
from taskpod.settings.loader import ConfigError, SettingsLoader, load_settings


@click.group("config")
def config_cmd() -> None:
    """Inspect configuration."""


@config_cmd.command("show")
@click.pass_context
def show(ctx: click.Context) -> None:
    """Print the effective configuration as YAML."""
    try:
        settings = load_settings((ctx.obj or {}).get("config_path"))
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)

    click.echo(yaml.safe_dump(settings.model_dump(mode="json"), sort_keys=False))


@config_cmd.command("check")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def check(path: str) -> None:
    """Validate the configuration file at PATH."""
    try:
        settings = SettingsLoader(Path(path)).load()
    except ConfigError as exc:
        console.print(f"[red]Validation error:[/red] {exc}")
        sys.exit(1)

    drivers = [
        name
        for name, enabled in (("cluster", settings.cluster.enabled), ("simulated", settings.simulated.enabled))
        if enabled
    ]
    console.print("[green]Configuration is valid.[/green]")
    console.print(f"  Drivers: {', '.join(drivers)}")
    console.print(f"  Store:   {settings.store.backend} ({settings.store.path})")
    console.print(f"  Timeout: {settings.watcher.timeout}s")
