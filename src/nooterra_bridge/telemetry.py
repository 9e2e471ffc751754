"""OpenTelemetry tracing for the bridge.

Spans cover tool calls, workflow invocations, discovery refreshes and registry
searches. Exporters: ``none`` (default), ``stdout`` (console spans on stderr,
since stdout carries the MCP protocol) and ``otlp`` (needs the ``otlp`` extra).
"""

from __future__ import annotations

import contextlib
import logging
import sys
from collections.abc import Generator
from dataclasses import dataclass
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.trace import NoOpTracer, Span, Tracer

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class TelemetryConfig:
    """Exporter selection for the bridge tracer.

    ``otlp_endpoint`` of ``None`` defers to ``OTEL_EXPORTER_OTLP_ENDPOINT``.
    """

    service_name: str = "nooterra-mcp-bridge"
    exporter: str = "none"  # "stdout" | "otlp" | "none"
    otlp_endpoint: str | None = None


# ---------------------------------------------------------------------------
# BridgeTracer
# ---------------------------------------------------------------------------


class BridgeTracer:
    """Owns the bridge's ``TracerProvider``; a no-op until :meth:`init` finds an exporter."""

    def __init__(self, config: TelemetryConfig | None = None) -> None:
        self._config = config or TelemetryConfig()
        self._provider: TracerProvider | None = None
        self._tracer: Tracer = NoOpTracer()

    def init(self) -> None:
        processor = self._span_processor()
        if processor is None:
            return
        provider = TracerProvider(
            resource=Resource.create({"service.name": self._config.service_name})
        )
        provider.add_span_processor(processor)
        self._provider = provider
        self._tracer = provider.get_tracer(__name__)

    def _span_processor(self) -> SpanProcessor | None:
        exporter = self._config.exporter
        if exporter == "none":
            return None
        if exporter == "stdout":
            return SimpleSpanProcessor(ConsoleSpanExporter(out=sys.stderr))
        if exporter == "otlp":
            try:
                from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                    OTLPSpanExporter,
                )
                from opentelemetry.sdk.trace.export import BatchSpanProcessor
            except ImportError:
                logger.warning(
                    "OTLP tracing requested but the otlp extra is not installed; "
                    "tracing disabled"
                )
                return None
            return BatchSpanProcessor(
                OTLPSpanExporter(endpoint=self._config.otlp_endpoint, insecure=True)
            )
        logger.warning("Unknown trace exporter %r; tracing disabled", exporter)
        return None

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[Span, None, None]:
        with self._tracer.start_as_current_span(name, attributes=attributes) as s:
            yield s

    def record_event(self, name: str, attributes: dict[str, Any] | None = None) -> None:
        """Attach an event to the active span; ignored outside a recording span."""
        current_span = trace.get_current_span()
        if current_span.is_recording():
            current_span.add_event(name, attributes or {})

    def shutdown(self) -> None:
        """Flush pending spans. Safe to call more than once."""
        if self._provider is not None:
            self._provider.shutdown()
            self._provider = None
            self._tracer = NoOpTracer()


# ---------------------------------------------------------------------------
# Process-wide tracer
# ---------------------------------------------------------------------------

_DEFAULT_TRACER: BridgeTracer | None = None


def get_tracer() -> BridgeTracer:
    global _DEFAULT_TRACER  # noqa: PLW0603
    if _DEFAULT_TRACER is None:
        _DEFAULT_TRACER = BridgeTracer()
    return _DEFAULT_TRACER


def configure_tracing(config: TelemetryConfig) -> BridgeTracer:
    """Replace the process-wide tracer with one built from *config*."""
    global _DEFAULT_TRACER  # noqa: PLW0603
    if _DEFAULT_TRACER is not None:
        _DEFAULT_TRACER.shutdown()
    _DEFAULT_TRACER = BridgeTracer(config)
    _DEFAULT_TRACER.init()
    return _DEFAULT_TRACER


# ---------------------------------------------------------------------------
# Bridge spans
# ---------------------------------------------------------------------------


@contextlib.contextmanager
def trace_tool_call(tool_name: str) -> Generator[Span, None, None]:
    """Trace an MCP tool call."""
    with get_tracer().span("mcp/call", {"mcp.tool": tool_name}) as s:
        yield s


@contextlib.contextmanager
def trace_workflow_invoke(capability_id: str) -> Generator[Span, None, None]:
    """Trace a single-node workflow invocation."""
    with get_tracer().span("workflow/invoke", {"capability.id": capability_id}) as s:
        yield s


@contextlib.contextmanager
def trace_discovery_refresh() -> Generator[Span, None, None]:
    with get_tracer().span("discovery/refresh") as s:
        yield s


@contextlib.contextmanager
def trace_registry_search(query: str) -> Generator[Span, None, None]:
    with get_tracer().span("registry/search", {"search.query": query}) as s:
        yield s
