"""Span export setup for applications embedding bucketfs.

bucketfs itself only creates spans (see bucketfs.tracing). An application
that wants them exported calls configure_tracing() once at startup, or
installs its own TracerProvider instead.

Environment Variables:
    BUCKETFS_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    BUCKETFS_REQUIRE_OTEL: Set to "1" to raise if the exporter cannot be set up
    BUCKETFS_OTEL_SERVICE_NAME: service.name resource attribute (default: "bucketfs")
    BUCKETFS_OTEL_EXPORTER: "otlp" or "console" (default: "otlp")
    BUCKETFS_OTEL_EXPORTER_OTLP_ENDPOINT: OTLP collector endpoint (optional)
    BUCKETFS_OTEL_EXPORTER_OTLP_PROTOCOL: "grpc" or "http" (default: "grpc")
    BUCKETFS_OTEL_RESOURCE_ATTRS: Extra resource attributes as k=v,k=v
    BUCKETFS_OTEL_TEST_CAPTURE: Set to "1" to keep spans in memory for tests
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from bucketfs.tracing import BUCKETFS_OTEL_ENABLED_ENV

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
    from opentelemetry.sdk.trace.export import SpanProcessor
    from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

logger = logging.getLogger(__name__)

BUCKETFS_REQUIRE_OTEL_ENV = "BUCKETFS_REQUIRE_OTEL"
BUCKETFS_OTEL_SERVICE_NAME_ENV = "BUCKETFS_OTEL_SERVICE_NAME"
BUCKETFS_OTEL_EXPORTER_ENV = "BUCKETFS_OTEL_EXPORTER"
BUCKETFS_OTEL_OTLP_ENDPOINT_ENV = "BUCKETFS_OTEL_EXPORTER_OTLP_ENDPOINT"
BUCKETFS_OTEL_OTLP_PROTOCOL_ENV = "BUCKETFS_OTEL_EXPORTER_OTLP_PROTOCOL"
BUCKETFS_OTEL_RESOURCE_ATTRS_ENV = "BUCKETFS_OTEL_RESOURCE_ATTRS"
BUCKETFS_OTEL_TEST_CAPTURE_ENV = "BUCKETFS_OTEL_TEST_CAPTURE"

DEFAULT_SERVICE_NAME = "bucketfs"
EXPORTER_OTLP = "otlp"
EXPORTER_CONSOLE = "console"

_TRUE_VALUES = frozenset({"1", "true", "yes"})

# One provider per process; OpenTelemetry refuses to replace the global one.
_provider: TracerProvider | None = None
_capture: InMemorySpanExporter | None = None


class TracingConfigError(Exception):
    """Raised when span export cannot be set up and BUCKETFS_REQUIRE_OTEL=1."""


@dataclass(frozen=True)
class TracingSettings:
    """Resolved tracing settings."""

    enabled: bool = False
    required: bool = False
    service_name: str = DEFAULT_SERVICE_NAME
    exporter: str = EXPORTER_OTLP
    otlp_endpoint: str | None = None
    otlp_protocol: str = "grpc"
    resource_attributes: dict[str, str] = field(default_factory=dict)
    test_capture: bool = False


def _flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUE_VALUES


def parse_resource_attributes(raw: str) -> dict[str, str]:
    """Parse "k=v,k=v" into a dict. Items without "=" are ignored."""
    pairs = (item.split("=", 1) for item in raw.split(",") if "=" in item)
    return {k.strip(): v.strip() for k, v in pairs if k.strip()}


def load_tracing_settings() -> TracingSettings:
    """Read tracing settings from BUCKETFS_OTEL_* environment variables."""
    return TracingSettings(
        enabled=_flag(BUCKETFS_OTEL_ENABLED_ENV),
        required=_flag(BUCKETFS_REQUIRE_OTEL_ENV),
        service_name=os.environ.get(BUCKETFS_OTEL_SERVICE_NAME_ENV, "").strip()
        or DEFAULT_SERVICE_NAME,
        exporter=os.environ.get(BUCKETFS_OTEL_EXPORTER_ENV, "").strip().lower() or EXPORTER_OTLP,
        otlp_endpoint=os.environ.get(BUCKETFS_OTEL_OTLP_ENDPOINT_ENV, "").strip() or None,
        otlp_protocol=os.environ.get(BUCKETFS_OTEL_OTLP_PROTOCOL_ENV, "").strip().lower()
        or "grpc",
        resource_attributes=parse_resource_attributes(
            os.environ.get(BUCKETFS_OTEL_RESOURCE_ATTRS_ENV, "")
        ),
        test_capture=_flag(BUCKETFS_OTEL_TEST_CAPTURE_ENV),
    )


def _export_processor(settings: TracingSettings) -> SpanProcessor:
    """Build the span processor for the configured exporter.

    The console exporter is flushed per span; OTLP export is batched. OTLP
    exporters come from the optional ``otlp`` extra.
    """
    from opentelemetry.sdk.trace.export import (
        BatchSpanProcessor,
        ConsoleSpanExporter,
        SimpleSpanProcessor,
    )

    if settings.exporter == EXPORTER_CONSOLE:
        return SimpleSpanProcessor(ConsoleSpanExporter())
    if settings.exporter != EXPORTER_OTLP:
        raise ValueError(
            f"Unknown exporter {settings.exporter!r}; "
            f"expected {EXPORTER_OTLP!r} or {EXPORTER_CONSOLE!r}"
        )

    kwargs = {"endpoint": settings.otlp_endpoint} if settings.otlp_endpoint else {}
    if settings.otlp_protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter as HttpSpanExporter,
        )

        return BatchSpanProcessor(HttpSpanExporter(**kwargs))

    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter as GrpcSpanExporter,
    )

    return BatchSpanProcessor(GrpcSpanExporter(**kwargs))


def _attach_test_capture(provider: TracerProvider) -> None:
    global _capture

    from opentelemetry.sdk.trace.export import SimpleSpanProcessor
    from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

    _capture = InMemorySpanExporter()
    provider.add_span_processor(SimpleSpanProcessor(_capture))


def configure_tracing(settings: TracingSettings | None = None) -> bool:
    """Install a TracerProvider that exports bucketfs spans.

    Safe to call repeatedly: once a provider is installed, later calls only
    attach in-memory capture if it was requested and is not attached yet.

    Args:
        settings: Settings to apply. Read from the environment when omitted.

    Returns:
        True if a provider is installed, False if tracing is disabled or
        setup failed without BUCKETFS_REQUIRE_OTEL.

    Raises:
        TracingConfigError: If setup fails and tracing is required.
    """
    global _provider

    if settings is None:
        settings = load_tracing_settings()
    if not settings.enabled:
        logger.debug("Tracing disabled (%s not set)", BUCKETFS_OTEL_ENABLED_ENV)
        return False

    if _provider is not None:
        if settings.test_capture and _capture is None:
            _attach_test_capture(_provider)
        return True

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider

        resource = Resource.create(
            {"service.name": settings.service_name, **settings.resource_attributes}
        )
        provider = TracerProvider(resource=resource)
        if settings.test_capture:
            _attach_test_capture(provider)
        else:
            provider.add_span_processor(_export_processor(settings))
        trace.set_tracer_provider(provider)
    except Exception as e:
        logger.error("Tracing setup failed: %s", e)
        if settings.required:
            raise TracingConfigError(f"Tracing setup failed: {e}") from e
        return False

    _provider = provider
    logger.info(
        "Tracing configured: service=%s exporter=%s",
        settings.service_name,
        "memory" if settings.test_capture else settings.exporter,
    )
    return True


def get_test_spans() -> list[ReadableSpan]:
    """Return spans captured in memory (BUCKETFS_OTEL_TEST_CAPTURE=1)."""
    if _capture is None:
        return []
    return list(_capture.get_finished_spans())


def clear_test_spans() -> None:
    if _capture is not None:
        _capture.clear()
