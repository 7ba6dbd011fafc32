"""
CLI command implementations.

Each process builds its own engine, so every session command connects
first. Commands print JSON results to stdout; `view` can also render a
console table.
"""

import argparse
import json
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import uvicorn

from sheetsync.api import create_app
from sheetsync.config import Settings
from sheetsync.models import scalar_text
from sheetsync.session import SyncEngine
from sheetsync.stores import (
    GoogleSheetsStore,
    PostgresTableStore,
    build_sheets_service,
    extract_sheet_id,
)
from utils.db_pool import close_pool, initialize_pool
from utils.metrics import SyncMetrics

from .credentials import require_credentials_file, require_store_settings

logger = logging.getLogger(__name__)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


@contextmanager
def open_engine(settings: Settings, metrics: SyncMetrics | None = None) -> Iterator[SyncEngine]:
    """Build an engine over real stores and release its resources afterwards."""
    require_store_settings(settings)

    service = build_sheets_service(settings.credentials_file)
    pool = initialize_pool(
        settings.postgres.connection_config(),
        min_size=settings.postgres.pool_min,
        max_size=settings.postgres.pool_max,
    )
    engine = SyncEngine(
        GoogleSheetsStore(service),
        PostgresTableStore(pool),
        metrics=metrics,
        default_interval_ms=settings.sync_interval_ms,
    )
    try:
        yield engine
    finally:
        engine.close()
        close_pool()


def format_view_console(view: dict[str, Any]) -> str:
    """
    Render a combined view as two text tables

    Args:
        view: Result of SyncEngine.combined_view()

    Returns:
        Formatted string for console display
    """
    lines = []
    lines.append("=" * 80)
    lines.append("SHEETSYNC VIEW")
    lines.append("=" * 80)
    lines.append(f"Running: {view['running']}")
    lines.append(f"Last sync: {view['last_sync_timestamp']}")
    stats = view.get("last_stats") or {}
    lines.append(
        f"Last pass: {stats.get('source_to_store', 0)} sheet->table, "
        f"{stats.get('store_to_source', 0)} table->sheet"
    )

    for title, side in (("SHEET", view["source"]), ("TABLE", view["store"])):
        lines.append("")
        lines.append(f"{title} ({len(side['rows'])} rows)")
        lines.append("-" * 80)
        columns = side["column_names"]
        lines.append(" | ".join(["#", *columns]))
        for row in side["rows"]:
            cells = [scalar_text(row["values"].get(label)) for label in columns]
            lines.append(" | ".join([str(row["position"]), *("" if c is None else c for c in cells)]))

    lines.append("=" * 80)
    return "\n".join(lines)


def cmd_sheets(args: argparse.Namespace, settings: Settings, metrics: SyncMetrics | None = None) -> None:
    """List the worksheets of a spreadsheet; needs no database."""
    require_credentials_file(settings)
    store = GoogleSheetsStore(build_sheets_service(settings.credentials_file))
    source_id = extract_sheet_id(args.source)
    _print_json({"source_id": source_id, "sheets": store.list_sheet_names(source_id)})


def cmd_connect(args: argparse.Namespace, settings: Settings, metrics: SyncMetrics | None = None) -> None:
    with open_engine(settings, metrics) as engine:
        _print_json(engine.connect(args.source, args.sheet_name, args.table_name))


def cmd_reconcile(args: argparse.Namespace, settings: Settings, metrics: SyncMetrics | None = None) -> None:
    with open_engine(settings, metrics) as engine:
        engine.connect(args.source, args.sheet_name, args.table_name)
        _print_json(engine.reconcile_now())


def cmd_view(args: argparse.Namespace, settings: Settings, metrics: SyncMetrics | None = None) -> None:
    with open_engine(settings, metrics) as engine:
        engine.connect(args.source, args.sheet_name, args.table_name)
        view = engine.combined_view()

    if args.format == "json":
        _print_json(view)
    else:
        print(format_view_console(view))


def cmd_run(
    args: argparse.Namespace,
    settings: Settings,
    metrics: SyncMetrics | None = None,
    stop_event: threading.Event | None = None,
) -> None:
    """Connect and keep syncing in the background until Ctrl+C."""
    stop_event = stop_event or threading.Event()

    with open_engine(settings, metrics) as engine:
        _print_json(engine.connect(args.source, args.sheet_name, args.table_name))
        engine.start_schedule(args.interval_ms)
        logger.info("Syncing (press Ctrl+C to stop)")

        try:
            while not stop_event.wait(1.0):
                pass
        except KeyboardInterrupt:
            logger.info("Sync stopped by user")

        engine.stop_schedule()
        _print_json(engine.status())


def cmd_serve(args: argparse.Namespace, settings: Settings, metrics: SyncMetrics | None = None) -> None:
    """Serve the HTTP API with uvicorn; blocks until the server exits."""
    with open_engine(settings, metrics) as engine:
        uvicorn.run(
            create_app(engine),
            host=args.host or settings.api_host,
            port=args.port or settings.api_port,
            log_config=None,
        )


def cmd_sample_row(args: argparse.Namespace, settings: Settings, metrics: SyncMetrics | None = None) -> None:
    with open_engine(settings, metrics) as engine:
        engine.connect(args.source, args.sheet_name, args.table_name)
        _print_json(engine.insert_sample_row())


def cmd_delete_row(args: argparse.Namespace, settings: Settings, metrics: SyncMetrics | None = None) -> None:
    with open_engine(settings, metrics) as engine:
        engine.connect(args.source, args.sheet_name, args.table_name)
        _print_json(engine.delete_row(args.position))
