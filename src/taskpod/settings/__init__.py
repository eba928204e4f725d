"""Configuration models and loading."""

from taskpod.settings.loader import ConfigError, SettingsLoader, load_settings
from taskpod.settings.models import StoreSettings, TaskpodSettings, TelemetrySettings

__all__ = [
    "ConfigError",
    "SettingsLoader",
    "StoreSettings",
    "TaskpodSettings",
    "TelemetrySettings",
    "load_settings",
]
