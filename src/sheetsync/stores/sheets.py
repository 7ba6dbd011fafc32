"""
Google Sheets spreadsheet store.

Talks to the Sheets v4 values API through google-api-python-client.
Ranges use the A1 notation with the sheet title quoted, so titles with
spaces or apostrophes work.
"""

import logging
import os
import re
from collections.abc import Sequence
from functools import wraps

from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from opentelemetry import trace

from sheetsync.errors import ConfigurationError, SourceUnavailable
from sheetsync.models import Scalar
from sheetsync.stores.base import SpreadsheetStore
from utils.retry import retry_upstream_read
from utils.tracing import trace_operation

logger = logging.getLogger(__name__)

SCOPES = ("https://www.googleapis.com/auth/spreadsheets",)

_SPREADSHEET_URL_ID = re.compile(r"/spreadsheets/d/([a-zA-Z0-9-_]+)")


def extract_sheet_id(url_or_id: str) -> str:
    """
    Spreadsheet id from a full URL or a bare id.

    Example:
        >>> extract_sheet_id("https://docs.google.com/spreadsheets/d/1AbC-x_9/edit#gid=0")
        '1AbC-x_9'
        >>> extract_sheet_id("1AbC-x_9")
        '1AbC-x_9'
    """
    candidate = (url_or_id or "").strip()
    if not candidate:
        raise ConfigurationError("Spreadsheet URL or id is required")

    match = _SPREADSHEET_URL_ID.search(candidate)
    return match.group(1) if match else candidate


def column_letter(index: int) -> str:
    """A1 column letters for a 1-based column index (1 -> A, 27 -> AA)."""
    if index < 1:
        raise ValueError(f"Column index must be >= 1, got {index}")

    letters = ""
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


def quote_sheet_name(sheet_name: str) -> str:
    return "'" + sheet_name.replace("'", "''") + "'"


def build_sheets_service(credentials_file: str):
    """
    Build a Sheets v4 client from a service-account JSON key file.

    Raises:
        ConfigurationError: If the file is missing or is not a valid key
    """
    if not credentials_file or not os.path.isfile(credentials_file):
        raise ConfigurationError(f"Credentials file not found: {credentials_file}")

    try:
        credentials = service_account.Credentials.from_service_account_file(
            credentials_file, scopes=SCOPES
        )
    except (ValueError, GoogleAuthError) as e:
        raise ConfigurationError(f"Invalid service account file {credentials_file}: {e}") from e

    logger.info(f"Loaded service account credentials from {credentials_file}")
    return build("sheets", "v4", credentials=credentials, cache_discovery=False)


def _sheet_cell(value: Scalar) -> Scalar:
    return "" if value is None else value


def _sheets_call(operation: str):
    """Trace the call and translate client errors into SourceUnavailable."""

    def decorator(func):
        @wraps(func)
        def wrapper(self, source_id, *args, **kwargs):
            try:
                with trace_operation(
                    f"sheets.{operation}",
                    kind=trace.SpanKind.CLIENT,
                    spreadsheet_id=source_id,
                ):
                    return func(self, source_id, *args, **kwargs)
            except (HttpError, GoogleAuthError, OSError) as e:
                logger.error(f"Sheets {operation} on {source_id} failed: {e}")
                raise SourceUnavailable(f"Sheets {operation} on {source_id} failed: {e}") from e

        return wrapper

    return decorator


class GoogleSheetsStore(SpreadsheetStore):
    """SpreadsheetStore over a googleapiclient Sheets resource."""

    def __init__(self, service):
        self.service = service

    @_sheets_call("get_values")
    @retry_upstream_read()
    def get_values(self, source_id: str, sheet_name: str) -> list[list[Scalar]]:
        result = (
            self.service.spreadsheets()
            .values()
            .get(
                spreadsheetId=source_id,
                range=quote_sheet_name(sheet_name),
                valueRenderOption="UNFORMATTED_VALUE",
            )
            .execute()
        )
        return result.get("values", [])

    @_sheets_call("update_row_at")
    def update_row_at(
        self, source_id: str, sheet_name: str, position: int, values: Sequence[Scalar]
    ) -> None:
        self.service.spreadsheets().values().update(
            spreadsheetId=source_id,
            range=f"{quote_sheet_name(sheet_name)}!A{position}",
            valueInputOption="RAW",
            body={"values": [[_sheet_cell(v) for v in values]]},
        ).execute()

    @_sheets_call("clear_row_at")
    def clear_row_at(
        self, source_id: str, sheet_name: str, position: int, column_count: int
    ) -> None:
        last_column = column_letter(max(column_count, 1))
        self.service.spreadsheets().values().clear(
            spreadsheetId=source_id,
            range=f"{quote_sheet_name(sheet_name)}!A{position}:{last_column}{position}",
            body={},
        ).execute()

    @_sheets_call("list_sheet_names")
    @retry_upstream_read()
    def list_sheet_names(self, source_id: str) -> list[str]:
        result = (
            self.service.spreadsheets()
            .get(spreadsheetId=source_id, fields="sheets.properties.title")
            .execute()
        )
        return [sheet["properties"]["title"] for sheet in result.get("sheets", [])]
