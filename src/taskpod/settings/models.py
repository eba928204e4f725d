"""Pydantic models for the ``taskpod`` configuration file."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from taskpod.runtime.sandbox.models import (
    DEFAULT_MAX_OUTPUT_BYTES,
    ClusterConfig,
    SimulatedConfig,
    WatcherConfig,
)


class StoreSettings(BaseModel):
    """Where task documents live."""

    backend: Literal["memory", "file"] = "file"
    path: str = "~/.taskpod/tasks"


class TelemetrySettings(BaseModel):
    """Optional telemetry configuration."""

    enabled: bool = False
    otlp_endpoint: str | None = None


class TaskpodSettings(BaseModel):
    """Top-level configuration parsed from YAML."""

    cluster: ClusterConfig = Field(default_factory=ClusterConfig)
    simulated: SimulatedConfig = Field(default_factory=SimulatedConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    store: StoreSettings = Field(default_factory=StoreSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)
    max_output_bytes: int = Field(default=DEFAULT_MAX_OUTPUT_BYTES, gt=0)
    recorder_retries: int = Field(default=1, ge=0)

    @model_validator(mode="after")
    def _validate_drivers(self) -> TaskpodSettings:
        if not self.cluster.enabled and not self.simulated.enabled:
            msg = "at least one of 'cluster' and 'simulated' must be enabled"
            raise ValueError(msg)
        if self.watcher.max_interval < self.watcher.initial_interval:
            msg = "watcher.max_interval must be >= watcher.initial_interval"
            raise ValueError(msg)
        return self
