"""
OpenTelemetry tracing for the knowledge service.

Disabled unless OTEL_ENABLED=true. When disabled, ``get_tracer`` still
returns a usable no-op tracer so instrumented code paths (search,
ingestion) never branch on whether tracing is on.

Usage:
    from app.core.tracing import setup_tracing, get_tracer, instrument_app

    setup_tracing()
    instrument_app(app)

    tracer = get_tracer(__name__)
    with tracer.start_as_current_span("knowledge.hybrid_search") as span:
        span.set_attribute("search.limit", limit)

Environment Variables:
    OTEL_ENABLED: "true" to enable tracing (default: false)
    OTEL_SERVICE_NAME: Override service name
    OTEL_EXPORTER_OTLP_ENDPOINT: OTLP endpoint; console exporter otherwise
"""

import logging
import os
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.trace import Tracer
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from app.core.config import settings

logger = logging.getLogger("TeamMemory.Tracing")

_tracer_provider: Optional[TracerProvider] = None
_is_initialized = False


def is_tracing_enabled() -> bool:
    """True if OTEL_ENABLED is "true" (case-insensitive)."""
    return os.getenv("OTEL_ENABLED", "false").lower() == "true"


def _build_exporter():
    otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not otlp_endpoint:
        logger.info("Using Console exporter for trace output")
        return ConsoleSpanExporter()
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    except ImportError:
        logger.warning("OTLP exporter requested but grpc exporter not installed, using console")
        return ConsoleSpanExporter()
    logger.info(f"Using OTLP exporter with endpoint: {otlp_endpoint}")
    return OTLPSpanExporter(endpoint=otlp_endpoint)


def setup_tracing(service_name: Optional[str] = None) -> Optional[TracerProvider]:
    """
    Initialize the global TracerProvider once.

    Returns:
        The configured TracerProvider, or None if tracing is disabled.
    """
    global _tracer_provider, _is_initialized

    if _is_initialized:
        return _tracer_provider

    _is_initialized = True
    if not is_tracing_enabled():
        logger.info("OpenTelemetry tracing is disabled (set OTEL_ENABLED=true to enable)")
        return None

    effective_service_name = (
        service_name
        or os.getenv("OTEL_SERVICE_NAME")
        or settings.SERVICE_NAME
    )

    _tracer_provider = TracerProvider(
        resource=Resource.create({SERVICE_NAME: effective_service_name})
    )
    _tracer_provider.add_span_processor(BatchSpanProcessor(_build_exporter()))
    trace.set_tracer_provider(_tracer_provider)

    logger.info(f"OpenTelemetry tracing initialized for service: {effective_service_name}")
    return _tracer_provider


def get_tracer(name: str) -> Tracer:
    """Get a tracer; a no-op tracer when tracing is disabled."""
    return trace.get_tracer(name)


def instrument_app(app) -> None:
    """Instrument the FastAPI app and outbound httpx calls (OpenAI, Supabase)."""
    if not is_tracing_enabled():
        logger.debug("Tracing disabled, skipping instrumentation")
        return

    FastAPIInstrumentor.instrument_app(app)
    HTTPXClientInstrumentor().instrument()
    logger.info("FastAPI and httpx instrumentation enabled")


def shutdown_tracing() -> None:
    """Flush remaining spans and reset state. Called on application shutdown."""
    global _tracer_provider, _is_initialized

    if _tracer_provider is not None:
        _tracer_provider.shutdown()
        logger.info("OpenTelemetry tracing shut down")

    _tracer_provider = None
    _is_initialized = False


def get_current_trace_id() -> Optional[str]:
    """Current trace ID as hex, or None outside an active span."""
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None
    return format(span_context.trace_id, "032x")
