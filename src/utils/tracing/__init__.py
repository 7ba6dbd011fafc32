"""
Distributed tracing using OpenTelemetry.

Instruments:
- Reconciliation passes and snapshot reads
- Google Sheets API calls
- PostgreSQL queries and pool acquisition
"""

from .context import add_span_attributes, trace_operation
from .tracer import (
    get_tracer,
    initialize_tracing,
    instrument_psycopg2,
    shutdown_tracing,
)

__all__ = [
    "initialize_tracing",
    "get_tracer",
    "shutdown_tracing",
    "instrument_psycopg2",
    "trace_operation",
    "add_span_attributes",
]
