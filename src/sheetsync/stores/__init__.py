"""Store interfaces and their Google Sheets and PostgreSQL adapters."""

from .base import SpreadsheetStore, TableStore
from .postgres import PostgresTableStore, validate_table_name
from .sheets import GoogleSheetsStore, build_sheets_service, column_letter, extract_sheet_id

__all__ = [
    "SpreadsheetStore",
    "TableStore",
    "GoogleSheetsStore",
    "PostgresTableStore",
    "build_sheets_service",
    "column_letter",
    "extract_sheet_id",
    "validate_table_name",
]
