"""
Span context managers.

trace_operation() wraps a block in a span, stringifies attributes, and
records any exception on the span before re-raising it.
"""

from contextlib import contextmanager

from opentelemetry import trace

from .tracer import get_tracer


@contextmanager
def trace_operation(
    operation_name: str,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    **attributes
):
    """
    Context manager for tracing operations.

    Args:
        operation_name: Span name
        kind: Span kind (INTERNAL for engine work, CLIENT for store calls)
        **attributes: Span attributes, converted to strings

    Yields:
        The active span

    Example:
        >>> with trace_operation("reconcile_pass", table="tasks") as span:
        ...     stats = reconciler.run(source, store)
        ...     span.set_attribute("rows.source_to_store", stats.source_to_store)
    """
    with get_tracer().start_as_current_span(operation_name, kind=kind) as span:
        for key, value in attributes.items():
            span.set_attribute(key, str(value))

        try:
            yield span
        except Exception as e:
            span.set_attribute("error", True)
            span.set_attribute("error.type", type(e).__name__)
            span.record_exception(e)
            raise


def add_span_attributes(**attributes) -> None:
    """Add attributes to the current span, if one is recording."""
    current_span = trace.get_current_span()
    if current_span.is_recording():
        for key, value in attributes.items():
            current_span.set_attribute(key, str(value))
