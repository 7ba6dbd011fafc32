"""
Interfaces the engine needs from the two stores.

Adapters translate their client library's errors into SourceUnavailable
or StoreUnavailable so the engine only deals with its own hierarchy.
"""

from collections.abc import Sequence

from sheetsync.models import Scalar


class SpreadsheetStore:
    """Worksheet access addressed by spreadsheet id and sheet name."""

    def get_values(self, source_id: str, sheet_name: str) -> list[list[Scalar]]:
        """
        Fetch the full grid of a worksheet, header row first.

        Trailing empty cells and rows may be omitted, as the Sheets API does.
        """
        raise NotImplementedError

    def update_row_at(
        self, source_id: str, sheet_name: str, position: int, values: Sequence[Scalar]
    ) -> None:
        """Overwrite the row at a physical position."""
        raise NotImplementedError

    def clear_row_at(
        self, source_id: str, sheet_name: str, position: int, column_count: int
    ) -> None:
        """Blank the first column_count cells of the row at a physical position."""
        raise NotImplementedError

    def list_sheet_names(self, source_id: str) -> list[str]:
        """Titles of every worksheet in a spreadsheet."""
        raise NotImplementedError


class TableStore:
    """
    Position-keyed table access.

    Values are passed as sequences aligned with a list of storage keys, so
    the caller owns the key-to-label correspondence.
    """

    def ensure_table(self, table: str, keys: Sequence[str]) -> None:
        """Create the table, or add missing key columns to an existing one."""
        raise NotImplementedError

    def list_rows(self, table: str, keys: Sequence[str]) -> list[tuple[int, list[str | None]]]:
        """Live (not soft-deleted) rows as (position, values) ordered by position."""
        raise NotImplementedError

    def insert_row(
        self, table: str, position: int, keys: Sequence[str], values: Sequence[str | None]
    ) -> None:
        raise NotImplementedError

    def update_row_at(
        self, table: str, position: int, keys: Sequence[str], values: Sequence[str | None]
    ) -> None:
        raise NotImplementedError

    def soft_delete_row_at(self, table: str, position: int) -> int:
        """Mark live rows at a position deleted; returns the number marked."""
        raise NotImplementedError

    def max_position(self, table: str) -> int:
        """Highest position ever assigned, including soft-deleted rows; 1 when empty."""
        raise NotImplementedError
