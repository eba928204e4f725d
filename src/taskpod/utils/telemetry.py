"""Tracing for taskpod executions.

Spans go through the OpenTelemetry API, which hands out no-op tracers
until an SDK provider is installed.  :func:`configure_telemetry` installs
one from :class:`~taskpod.settings.models.TelemetrySettings`; it needs the
``otel`` extra (``pip install taskpod[otel]``).

Usage::

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("taskpod.execute") as span:
        span.set_attribute(ATTR_TASK_ID, task_id)
        ...
        annotate_execution(span, execution)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from opentelemetry import trace

if TYPE_CHECKING:
    from taskpod.core.models import TaskExecution
    from taskpod.settings.models import TelemetrySettings

ATTR_TASK_ID = "taskpod.task.id"
ATTR_DRIVER = "taskpod.driver"
ATTR_FALLBACK = "taskpod.fallback"
ATTR_SANDBOX_ID = "taskpod.sandbox.id"
ATTR_STATE = "taskpod.state"
ATTR_STATUS = "taskpod.execution.status"
ATTR_EXIT_CODE = "taskpod.execution.exit_code"

_INSTRUMENTATION_NAME = "taskpod"
_INSTALL_HINT = "Install it with: pip install taskpod[otel]"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Tracer for *name*; a no-op until :func:`configure_telemetry` runs."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def annotate_execution(span: trace.Span, execution: TaskExecution) -> None:
    """Copy the outcome of *execution* onto *span*."""
    span.set_attribute(ATTR_FALLBACK, execution.executed_via_fallback)
    span.set_attribute(ATTR_STATUS, execution.status.value)
    if execution.exit_code is not None:
        span.set_attribute(ATTR_EXIT_CODE, execution.exit_code)


def configure_telemetry(settings: TelemetrySettings, *, service_name: str = "taskpod") -> None:
    """Install an SDK tracer provider according to *settings*.

    Spans are exported over OTLP/gRPC when ``otlp_endpoint`` is set and
    printed to stdout otherwise.

    Raises:
        ImportError: If ``opentelemetry-sdk`` (or, for OTLP, the exporter)
            is not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace.export import (  # pyright: ignore[reportMissingImports]
            BatchSpanProcessor,
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )
    except ImportError as exc:
        msg = f"opentelemetry-sdk is required for tracing. {_INSTALL_HINT}"
        raise ImportError(msg) from exc

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(_otlp_exporter(settings.otlp_endpoint)))
    else:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)


def _otlp_exporter(endpoint: str) -> Any:
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # pyright: ignore[reportMissingImports]
            OTLPSpanExporter,
        )
    except ImportError as exc:
        msg = f"opentelemetry-exporter-otlp is required for OTLP export. {_INSTALL_HINT}"
        raise ImportError(msg) from exc
    return OTLPSpanExporter(endpoint=endpoint)
