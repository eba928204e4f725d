"""Configuration file loading."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from taskpod.settings.models import TaskpodSettings

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TASKPOD_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.taskpod/config.yaml")


class ConfigError(Exception):
    """Raised when a configuration file fails parsing or validation."""


class SettingsLoader:
    """Load and validate a YAML configuration file into :class:`TaskpodSettings`."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> TaskpodSettings:
        """Read YAML, interpolate env vars, and validate.

        Environment variables in the form ``${VAR}`` or ``$VAR`` are expanded
        using :func:`os.path.expandvars` before YAML parsing.  An empty file
        yields the defaults.

        Raises:
            ConfigError: On read errors, YAML parse errors or schema validation failures.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read {self._path}: {exc}") from exc

        expanded = os.path.expandvars(raw)

        try:
            data: Any = yaml.safe_load(expanded)
        except yaml.YAMLError as exc:
            raise ConfigError(f"YAML parse error: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Configuration YAML must be a mapping")

        try:
            return TaskpodSettings.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc


def load_settings(path: str | Path | None = None) -> TaskpodSettings:
    """Resolve and load the active configuration.

    Resolution order: explicit *path*, then ``$TASKPOD_CONFIG``, then
    ``~/.taskpod/config.yaml`` if it exists, else built-in defaults.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR)
    if path is not None:
        return SettingsLoader(Path(path).expanduser()).load()

    default = DEFAULT_CONFIG_PATH.expanduser()
    if default.is_file():
        return SettingsLoader(default).load()

    logger.debug("No configuration file found; using defaults")
    return TaskpodSettings()
