"""
Data model shared by the snapshot reader, reconciler and session.

Row values are scalars as the Sheets API returns them (str, int, float,
bool or None). They are compared and written to the relational side only
through scalar_text(), so the string conversion happens in one place.
"""

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Union

from .identifiers import storage_keys

Scalar = Union[str, int, float, bool, None]

# Row 1 of a worksheet holds the labels; data rows start at 2.
FIRST_DATA_POSITION = 2


def scalar_text(value: Scalar) -> str | None:
    """
    Convert a scalar to the text form used for comparison and storage.

    None stays None, so a null and an empty string never compare equal.
    Integral floats drop their fractional part ("5" rather than "5.0") and
    booleans are lowercase, matching how the values read back from a text
    column.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class Row:
    """One row of a snapshot, keyed by its stable position."""

    position: int
    values: Mapping[str, Scalar] = field(default_factory=dict)

    def get(self, label: str) -> Scalar:
        return self.values.get(label)

    def text(self, label: str) -> str | None:
        return scalar_text(self.values.get(label))

    @property
    def is_blank(self) -> bool:
        """True when every cell is None or ""."""
        return all(value is None or value == "" for value in self.values.values())

    def ordered(self, column_names: Iterable[str]) -> list[Scalar]:
        """Values in column set order; labels the row lacks become None."""
        return [self.values.get(label) for label in column_names]

    def to_dict(self) -> dict[str, Any]:
        return {"position": self.position, "values": dict(self.values)}


@dataclass(frozen=True)
class Snapshot:
    """Immutable point-in-time view of one side, keyed by position."""

    column_names: tuple[str, ...]
    rows: Mapping[int, Row]

    @classmethod
    def from_rows(cls, column_names: Iterable[str], rows: Iterable[Row]) -> "Snapshot":
        ordered = {row.position: row for row in sorted(rows, key=lambda r: r.position)}
        return cls(tuple(column_names), MappingProxyType(ordered))

    @property
    def is_empty(self) -> bool:
        """True when there are no labels or no data rows."""
        return not self.column_names or not self.rows

    def positions(self) -> list[int]:
        return sorted(self.rows)

    def get(self, position: int) -> Row | None:
        return self.rows.get(position)

    def __contains__(self, position: object) -> bool:
        return position in self.rows

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Row]:
        for position in self.positions():
            yield self.rows[position]

    def to_dict(self) -> dict[str, Any]:
        return {
            "column_names": list(self.column_names),
            "rows": [row.to_dict() for row in self],
        }


@dataclass
class SyncStats:
    """Rows pushed in each direction by one pass."""

    source_to_store: int = 0
    store_to_source: int = 0

    @property
    def total(self) -> int:
        return self.source_to_store + self.store_to_source

    def to_dict(self) -> dict[str, int]:
        return {
            "source_to_store": self.source_to_store,
            "store_to_source": self.store_to_source,
        }


@dataclass
class SyncSession:
    """
    The active pairing of one worksheet with one table.

    The column set is fixed when the session is created; the run state
    (running flag, last sync, last stats) is mutated by the engine.
    """

    source_id: str
    sheet_name: str
    table_name: str
    column_names: tuple[str, ...]
    is_running: bool = False
    last_sync: datetime | None = None
    last_stats: SyncStats | None = None

    @property
    def keys(self) -> list[str]:
        return storage_keys(self.column_names)

    def status(self) -> dict[str, Any]:
        return {
            "connected": True,
            "running": self.is_running,
            "last_sync_timestamp": self.last_sync.isoformat() if self.last_sync else None,
            "last_stats": self.last_stats.to_dict() if self.last_stats else None,
            "table_name": self.table_name,
            "sheet_name": self.sheet_name,
        }
