"""
Two-way reconciliation between a source snapshot and a store snapshot.

Rows are matched by position. A source row missing from the store is
inserted, a source row whose text differs from the store row overwrites
it, and a store row missing from the source is written back to the sheet
at its own row number. Rows that disappear from one side are never
deleted from the other.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from opentelemetry import trace

from sheetsync.errors import PartialApplyError
from sheetsync.identifiers import storage_keys
from sheetsync.models import Row, Snapshot, SyncStats, scalar_text
from sheetsync.stores.base import SpreadsheetStore, TableStore
from utils.tracing import add_span_attributes, trace_operation

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    INSERT = "INSERT"  # source -> store, new position
    UPDATE = "UPDATE"  # source -> store, changed values
    APPEND = "APPEND"  # store -> source, at its own row


@dataclass
class RowAction:
    """One planned write."""

    action: ActionType
    row: Row
    changed_labels: list[str] | None = None
    planned_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def direction(self) -> str:
        return "store_to_source" if self.action is ActionType.APPEND else "source_to_store"

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "direction": self.direction,
            "position": self.row.position,
            "values": dict(self.row.values),
            "changed_labels": self.changed_labels,
            "planned_at": self.planned_at.isoformat(),
        }


def changed_labels(source_row: Row, store_row: Row, column_names: tuple[str, ...]) -> list[str]:
    """Labels whose text differs between the two rows; null and "" differ."""
    return [
        label
        for label in column_names
        if source_row.text(label) != store_row.text(label)
    ]


class Reconciler:
    """
    Plans and applies the writes that converge one session's two sides.

    The reconciler holds no state between passes; every pass is computed
    from two fresh snapshots.
    """

    def __init__(
        self,
        spreadsheet_store: SpreadsheetStore,
        table_store: TableStore,
        source_id: str,
        sheet_name: str,
        table_name: str,
        column_names: tuple[str, ...],
    ):
        self.spreadsheet_store = spreadsheet_store
        self.table_store = table_store
        self.source_id = source_id
        self.sheet_name = sheet_name
        self.table_name = table_name
        self.column_names = tuple(column_names)
        self.keys = storage_keys(self.column_names)

    def plan(self, source: Snapshot, store: Snapshot) -> list[RowAction]:
        """
        Compute the writes for one pass.

        Source positions come first in ascending order, then store-only
        positions in ascending order. A blank row with nothing at its
        position on the other side carries no data and is not copied, so a
        cleared sheet row whose table row was deleted stays empty.
        """
        actions = []

        for row in source:
            store_row = store.get(row.position)
            if store_row is None:
                if not row.is_blank:
                    actions.append(RowAction(ActionType.INSERT, row))
                continue

            differing = changed_labels(row, store_row, self.column_names)
            if differing:
                actions.append(RowAction(ActionType.UPDATE, row, changed_labels=differing))

        for row in store:
            if row.position not in source and not row.is_blank:
                actions.append(RowAction(ActionType.APPEND, row))

        logger.debug(
            f"Planned {len(actions)} writes for {self.table_name}: "
            f"{sum(a.action is ActionType.INSERT for a in actions)} insert, "
            f"{sum(a.action is ActionType.UPDATE for a in actions)} update, "
            f"{sum(a.action is ActionType.APPEND for a in actions)} append"
        )
        return actions

    def _store_values(self, row: Row) -> list[str | None]:
        return [scalar_text(value) for value in row.ordered(self.column_names)]

    def _apply_one(self, action: RowAction) -> None:
        row = action.row
        if action.action is ActionType.INSERT:
            self.table_store.insert_row(
                self.table_name, row.position, self.keys, self._store_values(row)
            )
        elif action.action is ActionType.UPDATE:
            self.table_store.update_row_at(
                self.table_name, row.position, self.keys, self._store_values(row)
            )
        else:
            # the sheet row number is the position
            self.spreadsheet_store.update_row_at(
                self.source_id, self.sheet_name, row.position, row.ordered(self.column_names)
            )

    def apply(self, actions: list[RowAction]) -> SyncStats:
        """
        Execute planned writes in order.

        Each write commits on its own. The first failure stops the pass;
        if earlier writes committed, PartialApplyError carries their counts,
        otherwise the store's own error propagates.
        """
        stats = SyncStats()

        for action in actions:
            try:
                self._apply_one(action)
            except Exception as e:
                if stats.total == 0:
                    raise
                logger.error(
                    f"Pass on {self.table_name} stopped at position {action.row.position} "
                    f"after {stats.total} writes: {e}"
                )
                raise PartialApplyError(
                    f"{action.action.value} at position {action.row.position} failed "
                    f"after {stats.total} committed writes: {e}",
                    applied=stats.to_dict(),
                ) from e

            if action.action is ActionType.APPEND:
                stats.store_to_source += 1
            else:
                stats.source_to_store += 1

        return stats

    def run(self, source: Snapshot, store: Snapshot) -> SyncStats:
        """Plan and apply one pass over two snapshots."""
        with trace_operation(
            "reconcile_pass",
            kind=trace.SpanKind.INTERNAL,
            table_name=self.table_name,
            sheet_name=self.sheet_name,
        ):
            actions = self.plan(source, store)
            stats = self.apply(actions)
            add_span_attributes(
                **{
                    "rows.source_to_store": stats.source_to_store,
                    "rows.store_to_source": stats.store_to_source,
                }
            )

        logger.info(
            f"Reconciled {self.table_name}: {stats.source_to_store} to store, "
            f"{stats.store_to_source} to sheet"
        )
        return stats
