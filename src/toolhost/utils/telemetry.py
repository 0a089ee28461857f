"""Tracing for request dispatch.

The router opens one ``toolhost.dispatch`` span per request through
:func:`get_tracer`.  Until :func:`configure_telemetry` installs an SDK
provider those spans are the OpenTelemetry API's no-op spans, so the core
depends on ``opentelemetry-api`` only.

Usage::

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("toolhost.dispatch") as span:
        span.set_attribute(ATTR_RPC_METHOD, request.method)

Exporting spans needs the ``otel`` extra (``pip install toolhost[otel]``).
"""

from __future__ import annotations

import sys
from typing import Any

from opentelemetry import trace

# Span attribute keys set by the router
ATTR_RPC_METHOD = "toolhost.rpc.method"
ATTR_RPC_ID = "toolhost.rpc.id"
ATTR_RPC_OK = "toolhost.rpc.ok"
ATTR_TOOL_NAME = "toolhost.tool.name"

_INSTRUMENTATION_NAME = "toolhost"

_SDK_MISSING = "opentelemetry-sdk is required for configure_telemetry(). Install it with: pip install toolhost[otel]"
_OTLP_MISSING = "opentelemetry-exporter-otlp is required for OTLP export. Install it with: pip install toolhost[otel]"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return the tracer for *name*; a no-op tracer while no SDK is configured."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def configure_telemetry(
    *,
    service_name: str = "toolhost",
    export_to_console: bool = True,
    otlp_endpoint: str | None = None,
) -> None:
    """Install an SDK tracer provider for this process.

    Spans go to stderr when *export_to_console* is set (stdout belongs to
    the stdio transport) and to *otlp_endpoint* over OTLP/gRPC when given.
    Both may be enabled at once.

    Raises:
        ImportError: ``opentelemetry-sdk`` is not installed, or an OTLP
            endpoint was given without ``opentelemetry-exporter-otlp``.
    """
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
    except ImportError as exc:
        raise ImportError(_SDK_MISSING) from exc

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))  # pyright: ignore[reportUnknownVariableType,reportUnknownMemberType]
    if export_to_console:
        provider.add_span_processor(SimpleSpanProcessor(_stderr_exporter()))  # pyright: ignore[reportUnknownMemberType]
    if otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(_otlp_exporter(otlp_endpoint)))  # pyright: ignore[reportUnknownMemberType]
    trace.set_tracer_provider(provider)  # pyright: ignore[reportUnknownArgumentType]


def _stderr_exporter() -> Any:
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter  # pyright: ignore[reportMissingImports,reportUnknownVariableType]

    return ConsoleSpanExporter(out=sys.stderr)


def _otlp_exporter(endpoint: str) -> Any:
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
    except ImportError as exc:
        raise ImportError(_OTLP_MISSING) from exc
    return OTLPSpanExporter(endpoint=endpoint)
