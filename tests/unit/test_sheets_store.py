"""
Unit tests for the Google Sheets store.

The Sheets client is a MagicMock; HttpError instances are real.
"""

from unittest.mock import MagicMock, patch

import pytest
from googleapiclient.errors import HttpError

from sheetsync.errors import ConfigurationError, SourceUnavailable
from sheetsync.stores.sheets import (
    GoogleSheetsStore,
    build_sheets_service,
    column_letter,
    extract_sheet_id,
    quote_sheet_name,
)


class FakeResponse(dict):
    def __init__(self, status, reason="error"):
        super().__init__(status=str(status))
        self.status = status
        self.reason = reason


def http_error(status):
    return HttpError(FakeResponse(status), b'{"error": {"message": "upstream said no"}}')


@pytest.fixture
def service():
    return MagicMock()


@pytest.fixture
def values_api(service):
    return service.spreadsheets.return_value.values.return_value


@pytest.fixture
def store(service):
    return GoogleSheetsStore(service)


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("utils.retry.time.sleep") as sleep:
        yield sleep


class TestHelpers:
    """Test URL, column and range helpers."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("https://docs.google.com/spreadsheets/d/1AbC-x_9/edit#gid=0", "1AbC-x_9"),
            ("https://docs.google.com/spreadsheets/d/abc123", "abc123"),
            ("abc123", "abc123"),
            ("  abc123  ", "abc123"),
        ],
    )
    def test_extract_sheet_id(self, value, expected):
        assert extract_sheet_id(value) == expected

    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_extract_sheet_id_rejects_blank(self, value):
        with pytest.raises(ConfigurationError):
            extract_sheet_id(value)

    @pytest.mark.parametrize(
        "index,letters",
        [(1, "A"), (3, "C"), (26, "Z"), (27, "AA"), (28, "AB"), (52, "AZ"), (53, "BA"), (702, "ZZ"), (703, "AAA")],
    )
    def test_column_letter(self, index, letters):
        assert column_letter(index) == letters

    def test_column_letter_rejects_zero(self):
        with pytest.raises(ValueError):
            column_letter(0)

    def test_quote_sheet_name(self):
        assert quote_sheet_name("Tasks") == "'Tasks'"
        assert quote_sheet_name("Bob's sheet") == "'Bob''s sheet'"


class TestReads:
    """Test get_values() and list_sheet_names()."""

    def test_get_values(self, store, values_api):
        values_api.get.return_value.execute.return_value = {"values": [["Name"], ["a"]]}

        assert store.get_values("sid", "Tasks") == [["Name"], ["a"]]
        values_api.get.assert_called_once_with(
            spreadsheetId="sid", range="'Tasks'", valueRenderOption="UNFORMATTED_VALUE"
        )

    def test_get_values_of_empty_sheet(self, store, values_api):
        values_api.get.return_value.execute.return_value = {}
        assert store.get_values("sid", "Tasks") == []

    def test_list_sheet_names(self, store, service):
        service.spreadsheets.return_value.get.return_value.execute.return_value = {
            "sheets": [{"properties": {"title": "Tasks"}}, {"properties": {"title": "Archive"}}]
        }
        assert store.list_sheet_names("sid") == ["Tasks", "Archive"]

    def test_transient_error_is_retried(self, store, values_api, no_sleep):
        values_api.get.return_value.execute.side_effect = [http_error(503), {"values": [["A"]]}]

        assert store.get_values("sid", "Tasks") == [["A"]]
        assert no_sleep.call_count == 1

    def test_permission_error_is_not_retried(self, store, values_api):
        values_api.get.return_value.execute.side_effect = http_error(403)

        with pytest.raises(SourceUnavailable):
            store.get_values("sid", "Tasks")
        assert values_api.get.return_value.execute.call_count == 1

    def test_persistent_rate_limit_gives_up(self, store, values_api):
        values_api.get.return_value.execute.side_effect = http_error(429)

        with pytest.raises(SourceUnavailable) as exc_info:
            store.get_values("sid", "Tasks")
        assert isinstance(exc_info.value.__cause__, HttpError)
        assert values_api.get.return_value.execute.call_count == 4


class TestWrites:
    """Test update and clear."""

    def test_update_row_at(self, store, values_api):
        store.update_row_at("sid", "Tasks", 5, ["x", None])

        values_api.update.assert_called_once_with(
            spreadsheetId="sid",
            range="'Tasks'!A5",
            valueInputOption="RAW",
            body={"values": [["x", ""]]},
        )

    def test_clear_row_at(self, store, values_api):
        store.clear_row_at("sid", "Tasks", 5, 28)

        values_api.clear.assert_called_once_with(
            spreadsheetId="sid", range="'Tasks'!A5:AB5", body={}
        )

    def test_writes_are_not_retried(self, store, values_api):
        values_api.update.return_value.execute.side_effect = http_error(503)

        with pytest.raises(SourceUnavailable):
            store.update_row_at("sid", "Tasks", 4, ["a"])
        assert values_api.update.return_value.execute.call_count == 1


class TestBuildService:
    """Test build_sheets_service()."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            build_sheets_service(str(tmp_path / "missing.json"))

    def test_invalid_key_file(self, tmp_path):
        key_file = tmp_path / "key.json"
        key_file.write_text("{}")
        with pytest.raises(ConfigurationError):
            build_sheets_service(str(key_file))

    def test_builds_client(self, tmp_path):
        key_file = tmp_path / "key.json"
        key_file.write_text("{}")

        with patch(
            "sheetsync.stores.sheets.service_account.Credentials.from_service_account_file"
        ) as from_file, patch("sheetsync.stores.sheets.build") as build:
            service = build_sheets_service(str(key_file))

        from_file.assert_called_once_with(
            str(key_file), scopes=("https://www.googleapis.com/auth/spreadsheets",)
        )
        build.assert_called_once_with(
            "sheets", "v4", credentials=from_file.return_value, cache_discovery=False
        )
        assert service is build.return_value
