"""
Unit tests for the sync engine.

Uses in-memory stores and a hand-fired scheduler, so every pass is
deterministic.
"""

import threading
from datetime import UTC, datetime

import pytest

from sheetsync.errors import (
    ConfigurationError,
    EmptySource,
    InvalidTableName,
    NoActiveSession,
    PartialApplyError,
    SourceUnavailable,
    StoreUnavailable,
)
from sheetsync.session import PASS_JOB_ID, SyncEngine, sample_value
from tests.fakes import FakeSpreadsheet, FakeTable, ManualScheduler

KEYS = ["name", "due_date", "complete"]


def passes(registry, trigger, status):
    return registry.get_sample_value(
        "sheetsync_passes_total",
        {"table_name": "tasks", "trigger": trigger, "status": status},
    ) or 0


class TestConnect:
    """Test SyncEngine.connect()."""

    def test_initial_load(self, engine, table):
        result = engine.connect("sheet-id", "Tasks", "tasks")

        assert result == {"column_names": ["Name", "Due Date", "% Complete"], "source_row_count": 2}
        assert table.columns["tasks"] == KEYS
        assert table.live("tasks") == {
            2: {"name": "Write docs", "due_date": "2024-01-05", "complete": "50"},
            3: {"name": "Ship it", "due_date": "2024-02-01", "complete": "0"},
        }

    def test_session_installed_not_running(self, engine):
        engine.connect("sheet-id", "Tasks", "tasks")
        status = engine.status()

        assert status["connected"] is True
        assert status["running"] is False
        assert status["table_name"] == "tasks"
        assert status["sheet_name"] == "Tasks"
        assert status["last_stats"] == {"source_to_store": 2, "store_to_source": 0}
        assert status["last_sync_timestamp"] is not None

    def test_no_bulk_load_when_table_has_live_rows(self, engine, table):
        table.insert_row("tasks", 2, KEYS, ["Existing", None, None])

        engine.connect("sheet-id", "Tasks", "tasks")

        assert len(table.live("tasks")) == 1
        assert engine.status()["last_stats"] == {"source_to_store": 0, "store_to_source": 0}

    def test_empty_sheet_raises(self, table, scheduler):
        engine = SyncEngine(FakeSpreadsheet([]), table, scheduler=scheduler)
        with pytest.raises(EmptySource):
            engine.connect("sheet-id", "Tasks", "tasks")
        assert engine.session is None
        assert "ensure_table" not in table.calls

    def test_headers_only_sheet_connects(self, table, scheduler):
        engine = SyncEngine(FakeSpreadsheet([["Name"]]), table, scheduler=scheduler)
        result = engine.connect("sheet-id", "Tasks", "tasks")
        assert result == {"column_names": ["Name"], "source_row_count": 0}

    def test_invalid_table_name(self, engine, sheet):
        with pytest.raises(InvalidTableName):
            engine.connect("sheet-id", "Tasks", "tasks; DROP TABLE users")
        assert sheet.calls == {}

    def test_accepts_spreadsheet_url(self, engine):
        engine.connect("https://docs.google.com/spreadsheets/d/1AbC-x_9/edit#gid=0", "Tasks", "tasks")
        assert engine.session.source_id == "1AbC-x_9"

    def test_store_failure_propagates(self, engine, table):
        table.fail_on("ensure_table")
        with pytest.raises(StoreUnavailable):
            engine.connect("sheet-id", "Tasks", "tasks")
        assert engine.session is None

    def test_connect_cancels_previous_schedule(self, engine, scheduler):
        engine.connect("sheet-id", "Tasks", "tasks")
        engine.start_schedule(1000)
        previous = engine.session

        engine.connect("sheet-id", "Tasks", "tasks")

        assert not scheduler.has_job(PASS_JOB_ID)
        assert previous.is_running is False
        assert engine.status()["running"] is False

    def test_connect_records_metric(self, engine, registry):
        engine.connect("sheet-id", "Tasks", "tasks")
        assert passes(registry, "connect", "success") == 1


class TestReconcileNow:
    """Test SyncEngine.reconcile_now()."""

    def test_requires_session(self, engine):
        with pytest.raises(NoActiveSession):
            engine.reconcile_now()

    def test_second_pass_is_a_no_op(self, connected_engine):
        assert connected_engine.reconcile_now() == {"source_to_store": 0, "store_to_source": 0}

    def test_store_only_row_is_written_to_its_sheet_row(self, connected_engine, table, sheet):
        table.insert_row("tasks", 10, KEYS, ["From DB", None, "7"])

        stats = connected_engine.reconcile_now()

        assert stats == {"source_to_store": 0, "store_to_source": 1}
        assert sheet.written == [(10, ["From DB", "", "7"])]
        # the blank rows in between are not copied
        assert connected_engine.reconcile_now() == {"source_to_store": 0, "store_to_source": 0}
        assert sorted(table.live("tasks")) == [2, 3, 10]

    def test_single_changed_cell_updates_one_row(self, connected_engine, table, sheet):
        sheet.set_cell(3, 2, 100)

        stats = connected_engine.reconcile_now()

        assert stats == {"source_to_store": 1, "store_to_source": 0}
        assert table.calls["update_row_at"] == 1
        assert table.live("tasks")[3]["complete"] == "100"
        assert table.live("tasks")[2]["complete"] == "50"

    def test_new_sheet_row_is_inserted(self, connected_engine, table, sheet):
        sheet.grid.append(["New", "2024-03-01", 10])

        stats = connected_engine.reconcile_now()

        assert stats == {"source_to_store": 1, "store_to_source": 0}
        assert table.live("tasks")[4] == {"name": "New", "due_date": "2024-03-01", "complete": "10"}

    def test_removed_last_sheet_row_is_written_back(self, connected_engine, table, sheet):
        """A row removed from the sheet only is restored from the table."""
        sheet.grid[2] = []

        stats = connected_engine.reconcile_now()

        assert stats == {"source_to_store": 0, "store_to_source": 1}
        assert 3 in table.live("tasks")
        assert sheet.get_values("sheet-id", "Tasks")[2][0] == "Ship it"

    def test_cleared_interior_row_stays_in_place(self, connected_engine, table, sheet):
        sheet.grid.append(["Celebrate", "2024-03-01", 0])
        connected_engine.reconcile_now()
        sheet.grid[2] = ["", "", ""]

        stats = connected_engine.reconcile_now()

        assert stats == {"source_to_store": 1, "store_to_source": 0}
        assert table.live("tasks")[3] == {"name": None, "due_date": None, "complete": None}
        assert connected_engine.reconcile_now() == {"source_to_store": 0, "store_to_source": 0}
        names = [row[0] for row in sheet.get_values("sheet-id", "Tasks")[1:] if row]
        assert names == ["Write docs", "Celebrate"]

    def test_updates_last_sync_and_stats(self, connected_engine, sheet):
        before = datetime.now(UTC)
        sheet.grid.append(["New"])

        connected_engine.reconcile_now()
        status = connected_engine.status()

        assert status["last_stats"] == {"source_to_store": 1, "store_to_source": 0}
        assert datetime.fromisoformat(status["last_sync_timestamp"]) >= before

    def test_failure_keeps_prior_stats(self, connected_engine, sheet, registry):
        prior = connected_engine.status()
        sheet.fail_on("get_values")

        with pytest.raises(SourceUnavailable):
            connected_engine.reconcile_now()

        status = connected_engine.status()
        assert status["last_stats"] == prior["last_stats"]
        assert status["last_sync_timestamp"] == prior["last_sync_timestamp"]
        assert status["connected"] is True
        assert passes(registry, "manual", "failed") == 1

    def test_partial_failure_surfaces_applied_counts(self, connected_engine, sheet, table):
        sheet.grid.append(["A"])
        sheet.grid.append(["B"])
        table.fail_on("insert_row", after=table.calls["insert_row"] + 1)

        with pytest.raises(PartialApplyError) as exc_info:
            connected_engine.reconcile_now()

        assert exc_info.value.applied == {"source_to_store": 1, "store_to_source": 0}

    def test_records_success_metric(self, connected_engine, registry):
        connected_engine.reconcile_now()
        assert passes(registry, "manual", "success") == 1

    def test_waits_for_pass_in_flight(self, connected_engine):
        """A manual trigger is queued behind the run-lock, not skipped."""
        results = []
        connected_engine._run_lock.acquire()
        worker = threading.Thread(target=lambda: results.append(connected_engine.reconcile_now()))
        worker.start()

        worker.join(timeout=0.2)
        assert worker.is_alive()
        assert results == []

        connected_engine._run_lock.release()
        worker.join(timeout=5)
        assert results == [{"source_to_store": 0, "store_to_source": 0}]


class TestSchedule:
    """Test start_schedule(), stop_schedule() and scheduled ticks."""

    def test_start_requires_session(self, engine):
        with pytest.raises(NoActiveSession):
            engine.start_schedule()

    @pytest.mark.parametrize("interval", [0, -5])
    def test_start_rejects_non_positive_interval(self, connected_engine, interval):
        with pytest.raises(ConfigurationError):
            connected_engine.start_schedule(interval)

    def test_start_installs_one_job(self, connected_engine, scheduler):
        assert connected_engine.start_schedule(2500) == {"running": True}
        assert connected_engine.start_schedule(2500) == {"running": True}

        assert list(scheduler.jobs) == [PASS_JOB_ID]
        assert scheduler.jobs[PASS_JOB_ID][1] == 2.5
        assert connected_engine.status()["running"] is True

    def test_start_uses_default_interval(self, sheet, table, scheduler):
        engine = SyncEngine(sheet, table, scheduler=scheduler, default_interval_ms=5000)
        engine.connect("sheet-id", "Tasks", "tasks")
        engine.start_schedule()
        assert scheduler.jobs[PASS_JOB_ID][1] == 5.0

    def test_stop_is_idempotent(self, connected_engine, scheduler):
        connected_engine.start_schedule(1000)

        assert connected_engine.stop_schedule() == {"running": False}
        assert connected_engine.stop_schedule() == {"running": False}
        assert not scheduler.has_job(PASS_JOB_ID)
        assert connected_engine.status()["running"] is False

    def test_stop_without_session(self, engine):
        assert engine.stop_schedule() == {"running": False}

    def test_tick_runs_a_pass(self, connected_engine, scheduler, sheet, table):
        connected_engine.start_schedule(1000)
        sheet.grid.append(["Scheduled"])

        scheduler.fire(PASS_JOB_ID)

        assert 4 in table.live("tasks")
        assert connected_engine.status()["last_stats"] == {"source_to_store": 1, "store_to_source": 0}

    def test_tick_failure_is_logged_not_raised(self, connected_engine, scheduler, sheet, caplog):
        connected_engine.start_schedule(1000)
        sheet.fail_on("get_values")

        scheduler.fire(PASS_JOB_ID)

        assert connected_engine.status()["running"] is True
        assert scheduler.has_job(PASS_JOB_ID)
        assert "Sync pass failed" in caplog.text

    def test_tick_skipped_while_pass_in_flight(self, connected_engine, scheduler, sheet, registry):
        connected_engine.start_schedule(1000)
        reads_before = sheet.calls["get_values"]

        connected_engine._run_lock.acquire()
        try:
            scheduler.fire(PASS_JOB_ID)
        finally:
            connected_engine._run_lock.release()

        assert sheet.calls["get_values"] == reads_before
        assert registry.get_sample_value(
            "sheetsync_skipped_ticks_total", {"table_name": "tasks"}
        ) == 1

    def test_tick_after_stop_does_nothing(self, connected_engine, scheduler, sheet):
        connected_engine.start_schedule(1000)
        job_func = scheduler.jobs[PASS_JOB_ID][0]
        connected_engine.stop_schedule()
        reads_before = sheet.calls["get_values"]

        job_func()

        assert sheet.calls["get_values"] == reads_before


class TestViews:
    """Test status() and combined_view()."""

    def test_status_without_session(self, engine):
        assert engine.status() == {
            "connected": False,
            "running": False,
            "last_sync_timestamp": None,
            "last_stats": None,
            "table_name": None,
            "sheet_name": None,
        }

    def test_combined_view_without_session(self, engine):
        view = engine.combined_view()
        assert view["source"] is None
        assert view["store"] is None

    def test_combined_view(self, connected_engine):
        view = connected_engine.combined_view()

        assert view["source"]["column_names"] == ["Name", "Due Date", "% Complete"]
        assert view["store"]["column_names"] == ["Name", "Due Date", "% Complete"]
        assert view["source"]["rows"][0] == {
            "position": 2,
            "values": {"Name": "Write docs", "Due Date": "2024-01-05", "% Complete": 50},
        }
        assert view["store"]["rows"][0] == {
            "position": 2,
            "values": {"Name": "Write docs", "Due Date": "2024-01-05", "% Complete": "50"},
        }
        assert view["running"] is False
        assert view["last_stats"] == {"source_to_store": 2, "store_to_source": 0}

    def test_list_sheets(self):
        sheet = FakeSpreadsheet([["A"]], sheets={"Tasks": None, "Archive": None})
        engine = SyncEngine(sheet, FakeTable(), scheduler=ManualScheduler())
        result = engine.list_sheets("https://docs.google.com/spreadsheets/d/abc123/edit")
        assert result == {"source_id": "abc123", "sheets": ["Tasks", "Archive"]}


class TestRowCommands:
    """Test insert_sample_row() and delete_row()."""

    def test_sample_row_requires_session(self, engine):
        with pytest.raises(NoActiveSession):
            engine.insert_sample_row()

    def test_sample_row_goes_after_max_position(self, connected_engine, table):
        row = connected_engine.insert_sample_row()

        assert row["position"] == 4
        assert row["values"]["Name"] == "Test Row 4"
        assert row["values"]["% Complete"] == 0
        assert table.live("tasks")[4]["complete"] == "0"

    def test_sample_row_reaches_the_sheet_on_next_pass(self, connected_engine, sheet):
        connected_engine.insert_sample_row()

        stats = connected_engine.reconcile_now()

        assert stats == {"source_to_store": 0, "store_to_source": 1}
        assert [position for position, _ in sheet.written] == [4]
        assert sheet.written[0][1][0] == "Test Row 4"

    def test_sample_row_on_empty_table_starts_at_first_data_row(self, table, scheduler):
        engine = SyncEngine(FakeSpreadsheet([["Name"]]), table, scheduler=scheduler)
        engine.connect("sheet-id", "Tasks", "tasks")
        assert engine.insert_sample_row()["position"] == 2

    def test_delete_row_removes_from_both_sides(self, connected_engine, table, sheet):
        result = connected_engine.delete_row(2)

        assert result == {"position": 2, "deleted": True}
        assert 2 not in table.live("tasks")
        assert sheet.get_values("sheet-id", "Tasks")[1] == []
        for _ in range(2):
            assert connected_engine.reconcile_now() == {"source_to_store": 0, "store_to_source": 0}
        assert sorted(table.live("tasks")) == [3]

    def test_delete_last_row_then_sample_row_converges(self, connected_engine, table, sheet):
        connected_engine.delete_row(3)

        row = connected_engine.insert_sample_row()

        assert row["position"] == 4
        assert connected_engine.reconcile_now() == {"source_to_store": 0, "store_to_source": 1}
        for _ in range(2):
            assert connected_engine.reconcile_now() == {"source_to_store": 0, "store_to_source": 0}
        values = sheet.get_values("sheet-id", "Tasks")
        assert [r[0] if r else None for r in values[1:]] == ["Write docs", None, "Test Row 4"]
        assert {p: v["name"] for p, v in table.live("tasks").items()} == {
            2: "Write docs",
            4: "Test Row 4",
        }

    def test_sample_row_sits_below_unsynced_sheet_rows(self, connected_engine, table, sheet):
        sheet.grid.append(["Typed", "", 1])
        sheet.grid.append(["Typed too"])

        assert connected_engine.insert_sample_row()["position"] == 6
        assert connected_engine.reconcile_now() == {"source_to_store": 2, "store_to_source": 1}
        assert sorted(table.live("tasks")) == [2, 3, 4, 5, 6]

    def test_sample_row_after_deleting_interior_row_goes_below(self, connected_engine):
        connected_engine.delete_row(2)
        assert connected_engine.insert_sample_row()["position"] == 4

    def test_sample_row_follows_table_rows_missing_from_sheet(self, connected_engine, sheet):
        sheet.grid[2] = []

        assert connected_engine.insert_sample_row()["position"] == 4
        assert connected_engine.reconcile_now() == {"source_to_store": 0, "store_to_source": 2}
        names = [r[0] for r in sheet.get_values("sheet-id", "Tasks")[1:]]
        assert names == ["Write docs", "Ship it", "Test Row 4"]

    def test_typing_into_deleted_row_inserts_it_again(self, connected_engine, table, sheet):
        connected_engine.delete_row(2)
        sheet.grid[1] = ["Again", "", 5]

        assert connected_engine.reconcile_now() == {"source_to_store": 1, "store_to_source": 0}
        assert table.live("tasks")[2] == {"name": "Again", "due_date": "", "complete": "5"}

    def test_delete_missing_row(self, connected_engine):
        assert connected_engine.delete_row(50) == {"position": 50, "deleted": False}

    @pytest.mark.parametrize("position", [0, 1, -3])
    def test_delete_rejects_header_and_invalid_positions(self, connected_engine, position):
        with pytest.raises(ConfigurationError):
            connected_engine.delete_row(position)


class TestSampleValue:
    """Test sample_value()."""

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("Task Name", "Test Row 9"),
            ("Title", "Test Row 9"),
            ("Priority", "High"),
            ("Status", "Test"),
            ("Assignee", "Test User"),
            ("Done?", 0),
            ("Notes", "Test 3"),
        ],
    )
    def test_label_heuristics(self, label, expected):
        assert sample_value(label, 2, 9) == expected

    def test_date(self):
        assert sample_value("Due Date", 0, 9) == datetime.now(UTC).date().isoformat()

    def test_amount_is_bounded_int(self):
        value = sample_value("Budget", 0, 9)
        assert isinstance(value, int)
        assert 0 <= value < 10000


def test_close_shuts_scheduler_down(connected_engine, scheduler):
    connected_engine.start_schedule(1000)
    connected_engine.close()
    assert scheduler.shut_down
    assert not scheduler.has_job(PASS_JOB_ID)
