"""ClusterSandboxDriver — runs commands in ephemeral Kubernetes pods.

Each ``create()`` submits one pod running ``sh -c <command>`` with
``restartPolicy: Never``, resource requests/limits, no volumes and no
privilege escalation.  The pod is polled to a terminal phase, its
``sandbox`` container log is read, and it is deleted with a zero grace
period.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

import aiohttp
from kubernetes_asyncio import client
from kubernetes_asyncio import config as kube_config
from kubernetes_asyncio.client.api_client import ApiClient
from kubernetes_asyncio.client.exceptions import ApiException

from taskpod.runtime.errors import CleanupError, ProvisionError, SandboxError
from taskpod.runtime.sandbox.models import (
    DEFAULT_MAX_OUTPUT_BYTES,
    ClusterConfig,
    SandboxHandle,
    SandboxPhase,
    TerminalResult,
)
from taskpod.runtime.sandbox.watcher import BackoffPolicy, poll_until_terminal

logger = logging.getLogger(__name__)

CONTAINER_NAME = "sandbox"

_POD_PHASES: dict[str | None, SandboxPhase] = {
    None: SandboxPhase.CREATING,
    "Pending": SandboxPhase.CREATING,
    "Running": SandboxPhase.RUNNING,
    "Succeeded": SandboxPhase.SUCCEEDED,
    "Failed": SandboxPhase.FAILED,
    "Unknown": SandboxPhase.UNKNOWN,
}

_TRANSPORT_ERRORS = (
    aiohttp.ClientError,
    OSError,
    TimeoutError,
    kube_config.ConfigException,
)


class ClusterSandboxDriver:
    """Kubernetes pod sandbox.

    Satisfies the :class:`~taskpod.runtime.sandbox.driver.SandboxDriver`
    protocol.  *core_api* may be supplied to bypass kube config loading
    (e.g. a shared ``CoreV1Api`` or a test double).
    """

    name = "cluster"
    isolated = True

    def __init__(
        self,
        config: ClusterConfig | None = None,
        *,
        backoff: BackoffPolicy | None = None,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        core_api: Any | None = None,
    ) -> None:
        self._config = config or ClusterConfig()
        self._backoff = backoff or BackoffPolicy()
        self._max_output_bytes = max_output_bytes
        self._core = core_api
        self._api_client: ApiClient | None = None
        self._init_lock = asyncio.Lock()
        self._exit_codes: dict[str, int] = {}

    @property
    def config(self) -> ClusterConfig:
        return self._config

    async def probe(self) -> bool:
        """Check that the API server answers within ``probe_timeout``."""
        if not self._config.enabled:
            return False
        try:
            core = await asyncio.wait_for(self._core_api(), timeout=self._config.probe_timeout)
            await asyncio.wait_for(core.get_api_resources(), timeout=self._config.probe_timeout)
        except (ApiException, *_TRANSPORT_ERRORS) as exc:
            logger.info("Cluster probe failed: %s", exc)
            return False
        return True

    async def create(self, command: str) -> SandboxHandle:
        """Submit a pod running *command*."""
        pod_name = f"taskpod-{uuid.uuid4().hex[:12]}"
        handle = SandboxHandle(sandbox_id=pod_name, driver=self.name)
        timeout = self._config.create_timeout

        try:
            core = await asyncio.wait_for(self._core_api(), timeout=timeout)
        except _TRANSPORT_ERRORS as exc:
            raise ProvisionError(f"Cluster unavailable: {exc}") from exc

        body = self._build_pod(pod_name, command)
        handle.phase = SandboxPhase.CREATING
        try:
            await asyncio.wait_for(
                core.create_namespaced_pod(namespace=self._config.namespace, body=body),
                timeout=timeout,
            )
        except ApiException as exc:
            # A 4xx means the API server refused the pod; nothing was created.
            refused = exc.status is not None and 400 <= exc.status < 500
            raise ProvisionError(
                f"Pod creation rejected ({exc.status}): {exc.reason}",
                handle=None if refused else handle,
            ) from exc
        except (aiohttp.ClientError, OSError, TimeoutError) as exc:
            raise ProvisionError(f"Pod creation failed: {exc!r}", handle=handle) from exc

        logger.info("Created sandbox pod %s/%s", self._config.namespace, pod_name)
        return handle

    async def status(self, handle: SandboxHandle) -> SandboxPhase:
        core = await self._core_api()
        try:
            pod = await asyncio.wait_for(
                core.read_namespaced_pod(name=handle.sandbox_id, namespace=self._config.namespace),
                timeout=self._config.request_timeout,
            )
        except ApiException as exc:
            if exc.status == 404:
                handle.phase = SandboxPhase.UNKNOWN
                return handle.phase
            raise SandboxError(f"Failed to read pod {handle.sandbox_id}: {exc.reason}") from exc
        except (aiohttp.ClientError, OSError, TimeoutError) as exc:
            raise SandboxError(f"Failed to read pod {handle.sandbox_id}: {exc!r}") from exc

        pod_status = pod.status
        phase = _POD_PHASES.get(pod_status.phase if pod_status else None, SandboxPhase.UNKNOWN)
        exit_code = _terminated_exit_code(pod_status)
        if exit_code is not None:
            self._exit_codes[handle.sandbox_id] = exit_code
        handle.phase = phase
        return phase

    async def await_terminal(self, handle: SandboxHandle, deadline: float) -> TerminalResult:
        phase = await poll_until_terminal(self, handle, deadline=deadline, backoff=self._backoff)
        if phase == SandboxPhase.UNKNOWN:
            return TerminalResult(phase=phase, vanished=True)
        output = await self.fetch_output(handle)
        return TerminalResult(
            phase=phase,
            output=output,
            exit_code=self._exit_codes.get(handle.sandbox_id),
        )

    async def fetch_output(self, handle: SandboxHandle) -> str:
        """Read the sandbox container log; empty if the pod is gone."""
        try:
            core = await self._core_api()
            logs = await asyncio.wait_for(
                core.read_namespaced_pod_log(
                    name=handle.sandbox_id,
                    namespace=self._config.namespace,
                    container=CONTAINER_NAME,
                    limit_bytes=self._max_output_bytes,
                ),
                timeout=self._config.request_timeout,
            )
        except (ApiException, *_TRANSPORT_ERRORS) as exc:
            logger.debug("No logs for pod %s: %s", handle.sandbox_id, exc)
            return ""
        return logs or ""

    async def delete(self, handle: SandboxHandle) -> None:
        """Force-delete the pod.  A missing pod counts as deleted."""
        self._exit_codes.pop(handle.sandbox_id, None)
        try:
            core = await self._core_api()
            await asyncio.wait_for(
                core.delete_namespaced_pod(
                    name=handle.sandbox_id,
                    namespace=self._config.namespace,
                    grace_period_seconds=0,
                    body=client.V1DeleteOptions(
                        grace_period_seconds=0,
                        propagation_policy="Background",
                    ),
                ),
                timeout=self._config.request_timeout,
            )
        except ApiException as exc:
            if exc.status == 404:
                return
            raise CleanupError(f"Failed to delete pod {handle.sandbox_id}: {exc.reason}") from exc
        except _TRANSPORT_ERRORS as exc:
            raise CleanupError(f"Failed to delete pod {handle.sandbox_id}: {exc!r}") from exc
        logger.debug("Deleted sandbox pod %s", handle.sandbox_id)

    async def close(self) -> None:
        if self._api_client is not None:
            await self._api_client.close()
            self._api_client = None
            self._core = None

    async def _core_api(self) -> Any:
        """Return a ``CoreV1Api``, loading kube config on first use.

        In-cluster service account credentials are preferred; otherwise the
        configured (or default) kubeconfig is used.
        """
        if self._core is not None:
            return self._core
        async with self._init_lock:
            if self._core is None:
                try:
                    kube_config.load_incluster_config()
                except kube_config.ConfigException:
                    await kube_config.load_kube_config(
                        config_file=self._config.kubeconfig,
                        context=self._config.context,
                    )
                self._api_client = ApiClient()
                self._core = client.CoreV1Api(self._api_client)
        return self._core

    def _build_pod(self, pod_name: str, command: str) -> client.V1Pod:
        """Build the pod manifest for a single command run."""
        cfg = self._config
        labels = {
            "app.kubernetes.io/managed-by": "taskpod",
            "taskpod.io/sandbox": pod_name,
            **cfg.labels,
        }
        return client.V1Pod(
            metadata=client.V1ObjectMeta(name=pod_name, namespace=cfg.namespace, labels=labels),
            spec=client.V1PodSpec(
                restart_policy="Never",
                active_deadline_seconds=cfg.active_deadline_seconds,
                automount_service_account_token=False,
                enable_service_links=False,
                containers=[
                    client.V1Container(
                        name=CONTAINER_NAME,
                        image=cfg.image,
                        command=["sh", "-c", command],
                        security_context=client.V1SecurityContext(
                            allow_privilege_escalation=False,
                            capabilities=client.V1Capabilities(drop=["ALL"]),
                        ),
                        resources=client.V1ResourceRequirements(
                            requests={"cpu": cfg.cpu_request, "memory": cfg.memory_request},
                            limits={"cpu": cfg.cpu_limit, "memory": cfg.memory_limit},
                        ),
                    ),
                ],
            ),
        )


def _terminated_exit_code(pod_status: Any) -> int | None:
    """Extract the sandbox container's exit code from a pod status, if terminated."""
    if pod_status is None or not pod_status.container_statuses:
        return None
    for container in pod_status.container_statuses:
        if container.name != CONTAINER_NAME or container.state is None:
            continue
        terminated = container.state.terminated
        if terminated is not None:
            return terminated.exit_code
    return None
