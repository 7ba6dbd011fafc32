"""
Snapshot reader.

Turns each side's raw rows into a position-keyed Snapshot. The source grid's
first row holds the labels; every following physical row becomes a Row at
its 1-based row number. The store side is read in the session's column set
and its keys are mapped back to labels by position.
"""

import logging
from collections.abc import Sequence

from sheetsync.identifiers import storage_keys
from sheetsync.models import FIRST_DATA_POSITION, Row, Scalar, Snapshot
from sheetsync.stores.base import SpreadsheetStore, TableStore
from utils.tracing import trace_operation

logger = logging.getLogger(__name__)


def parse_grid(grid: Sequence[Sequence[Scalar]]) -> Snapshot:
    """
    Build a snapshot from a values grid, header row first.

    Labels are trimmed strings. Every physical row after the header becomes
    a Row, blank ones included, so positions match sheet row numbers. Cells
    missing at the end of a short row are None.
    """
    if not grid:
        return Snapshot.from_rows((), ())

    column_names = tuple("" if label is None else str(label).strip() for label in grid[0])
    # trailing blank headers are not labels
    while column_names and not column_names[-1]:
        column_names = column_names[:-1]

    rows = []
    for offset, cells in enumerate(grid[1:]):
        values = {
            label: cells[index] if index < len(cells) else None
            for index, label in enumerate(column_names)
        }
        rows.append(Row(position=FIRST_DATA_POSITION + offset, values=values))

    return Snapshot.from_rows(column_names, rows)


def read_source_snapshot(store: SpreadsheetStore, source_id: str, sheet_name: str) -> Snapshot:
    """Read the worksheet into a snapshot (see parse_grid)."""
    with trace_operation("read_source_snapshot", sheet_name=sheet_name) as span:
        snapshot = parse_grid(store.get_values(source_id, sheet_name))
        span.set_attribute("rows.count", len(snapshot))

    logger.debug(
        f"Read {len(snapshot)} rows and {len(snapshot.column_names)} labels from '{sheet_name}'"
    )
    return snapshot


def read_store_snapshot(
    store: TableStore, table_name: str, column_names: Sequence[str]
) -> Snapshot:
    """Read the live rows of a table, keyed back to the session's labels."""
    column_names = tuple(column_names)

    with trace_operation("read_store_snapshot", table_name=table_name) as span:
        records = store.list_rows(table_name, storage_keys(column_names))
        rows = [
            Row(position=position, values=dict(zip(column_names, values)))
            for position, values in records
        ]
        span.set_attribute("rows.count", len(rows))

    logger.debug(f"Read {len(rows)} live rows from table {table_name}")
    return Snapshot.from_rows(column_names, rows)
