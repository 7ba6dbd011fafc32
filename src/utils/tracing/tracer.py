"""
Tracer setup for OpenTelemetry.

Until initialize_tracing() is called, get_tracer() hands out the API's
default tracer, which records nothing. The CLI and the HTTP app call
initialize_tracing() at startup when tracing is enabled.
"""

import logging
import os

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "sheetsync"

_is_initialized = False


def initialize_tracing(
    service_name: str = "sheetsync",
    otlp_endpoint: str | None = None,
    console_export: bool = False,
    sampling_rate: float = 1.0,
) -> trace.Tracer:
    """
    Initialize distributed tracing with OpenTelemetry.

    Args:
        service_name: Service name attached to every span
        otlp_endpoint: OTLP gRPC collector endpoint (default: OTLP_ENDPOINT env var)
        console_export: Also print finished spans to stdout
        sampling_rate: Fraction of traces to record, 0.0-1.0

    Returns:
        Tracer bound to the configured provider
    """
    global _is_initialized

    if _is_initialized:
        logger.warning("Tracing already initialized, keeping existing provider")
        return get_tracer()

    provider = TracerProvider(
        resource=Resource(attributes={SERVICE_NAME: service_name}),
        sampler=TraceIdRatioBased(sampling_rate),
    )

    exporters = []

    endpoint = otlp_endpoint or os.getenv("OTLP_ENDPOINT")
    if endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                OTLPSpanExporter,
            )

            provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
            )
            exporters.append("OTLP")
        except Exception as e:
            logger.warning(f"Failed to configure OTLP exporter for {endpoint}: {e}")

    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        exporters.append("Console")

    if not exporters:
        logger.warning("No trace exporters configured, spans will be dropped")

    trace.set_tracer_provider(provider)
    _is_initialized = True

    logger.info(
        f"Tracing initialized: service={service_name}, "
        f"exporters={','.join(exporters) or 'none'}, sampling={sampling_rate}"
    )
    return get_tracer()


def get_tracer() -> trace.Tracer:
    """Tracer for sheetsync spans from the current global provider."""
    return trace.get_tracer(INSTRUMENTATION_NAME)


def shutdown_tracing() -> None:
    """Flush pending spans and shut the provider down."""
    global _is_initialized

    if not _is_initialized:
        return

    try:
        provider = trace.get_tracer_provider()
        if hasattr(provider, "shutdown"):
            provider.shutdown()
        logger.info("Tracing shutdown complete")
    except Exception as e:
        logger.error(f"Error during tracing shutdown: {e}")
    finally:
        _is_initialized = False


def instrument_psycopg2() -> None:
    """Enable psycopg2 auto-instrumentation when the instrumentor is installed."""
    try:
        from opentelemetry.instrumentation.psycopg2 import Psycopg2Instrumentor
    except ImportError:
        logger.debug("opentelemetry-instrumentation-psycopg2 not installed")
        return

    Psycopg2Instrumentor().instrument()
    logger.info("psycopg2 instrumentation enabled")
