"""Data models for the sandbox subsystem."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024


class SandboxPhase(str, Enum):
    """Lifecycle phase of a sandbox as observed by its driver."""

    REQUESTED = "requested"
    CREATING = "creating"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in (SandboxPhase.SUCCEEDED, SandboxPhase.FAILED)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SandboxHandle(BaseModel):
    """Reference to one provisioned sandbox.  Never persisted."""

    sandbox_id: str
    driver: str
    phase: SandboxPhase = SandboxPhase.REQUESTED
    created_at: datetime = Field(default_factory=_utcnow)

    def age(self) -> float:
        """Seconds elapsed since the sandbox was requested."""
        return (_utcnow() - self.created_at).total_seconds()


class TerminalResult(BaseModel):
    """Final observation of a sandbox.

    ``vanished`` marks a sandbox that disappeared before reaching a terminal
    phase; its output is not trusted.
    """

    phase: SandboxPhase
    output: str = ""
    exit_code: int | None = None
    vanished: bool = False


class ClusterConfig(BaseModel):
    """Configuration for the Kubernetes-backed driver."""

    enabled: bool = Field(default=True, description="Try the cluster before falling back.")
    namespace: str = Field(default="taskpod", description="Namespace sandbox pods are created in.")
    image: str = Field(default="busybox:1.36", description="Minimal shell-capable image.")
    kubeconfig: str | None = Field(default=None, description="Path to a kubeconfig file.")
    context: str | None = Field(default=None, description="kubeconfig context to use.")
    create_timeout: float = Field(default=5.0, description="Seconds allowed for pod creation.")
    probe_timeout: float = Field(default=2.0, description="Seconds allowed for the health probe.")
    request_timeout: float = Field(default=10.0, description="Seconds allowed for other API calls.")
    cpu_request: str = "50m"
    cpu_limit: str = "500m"
    memory_request: str = "32Mi"
    memory_limit: str = "128Mi"
    active_deadline_seconds: int = Field(
        default=300,
        description="Cluster-side hard limit on pod runtime.",
    )
    labels: dict[str, str] = Field(default_factory=dict, description="Extra pod labels.")


class SimulatedConfig(BaseModel):
    """Configuration for the local fallback driver."""

    enabled: bool = Field(default=True, description="Allow local fallback execution.")
    shell: str = Field(default="/bin/sh", description="Shell used to run commands.")
    create_timeout: float = Field(default=5.0, description="Seconds allowed to spawn the process.")
    env: dict[str, str] = Field(
        default_factory=lambda: {"PATH": "/usr/local/bin:/usr/bin:/bin"},
        description="Complete environment of the child process.",
    )


class WatcherConfig(BaseModel):
    """Deadline and polling policy for observing a sandbox."""

    timeout: float = Field(default=60.0, description="Seconds from creation to deadline.")
    initial_interval: float = Field(default=0.2, gt=0, description="First poll delay.")
    max_interval: float = Field(default=2.0, gt=0, description="Upper bound on poll delay.")
    multiplier: float = Field(default=2.0, ge=1.0, description="Backoff growth factor.")
