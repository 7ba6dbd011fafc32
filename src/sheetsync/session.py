"""
Sync engine: owns the active session and serializes reconciliation passes.

Every pass, the connect command and the row commands run under one run-lock.
Scheduled ticks try the lock without blocking and skip when a pass is in
flight; commands wait for it. Schedule changes take a separate state lock
so start/stop never wait behind a long pass.
"""

import logging
import random
import threading
import time
from datetime import UTC, datetime
from typing import Any

from sheetsync.errors import (
    ConfigurationError,
    EmptySource,
    NoActiveSession,
    PartialApplyError,
    SheetSyncError,
)
from sheetsync.identifiers import storage_keys
from sheetsync.models import FIRST_DATA_POSITION, Row, Scalar, Snapshot, SyncSession, SyncStats, scalar_text
from sheetsync.reconciler import Reconciler
from sheetsync.scheduler import SyncScheduler
from sheetsync.snapshot import read_source_snapshot, read_store_snapshot
from sheetsync.stores.base import SpreadsheetStore, TableStore
from sheetsync.stores.postgres import validate_table_name
from sheetsync.stores.sheets import extract_sheet_id
from utils.logging import ContextLogger
from utils.metrics import SyncMetrics

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 5000
PASS_JOB_ID = "sheetsync-pass"


def sample_value(label: str, index: int, position: int) -> Scalar:
    """Plausible test value for a column, guessed from its label."""
    lowered = label.lower()
    if "name" in lowered or "title" in lowered:
        return f"Test Row {position}"
    if "date" in lowered:
        return datetime.now(UTC).date().isoformat()
    if "priority" in lowered:
        return "High"
    if "status" in lowered:
        return "Test"
    if "assignee" in lowered or "user" in lowered:
        return "Test User"
    if "budget" in lowered or "price" in lowered or "amount" in lowered:
        return random.randrange(10000)
    if "check" in lowered or "done" in lowered or "complete" in lowered:
        return 0
    return f"Test {index + 1}"


class SyncEngine:
    """
    Pairs one worksheet with one table and keeps them converged.

    Usage:
        engine = SyncEngine(GoogleSheetsStore(service), PostgresTableStore(pool))
        engine.connect(sheet_url, "Tasks", "tasks")
        engine.start_schedule(5000)
    """

    def __init__(
        self,
        spreadsheet_store: SpreadsheetStore,
        table_store: TableStore,
        scheduler: SyncScheduler | None = None,
        metrics: SyncMetrics | None = None,
        default_interval_ms: int = DEFAULT_INTERVAL_MS,
    ):
        self.spreadsheet_store = spreadsheet_store
        self.table_store = table_store
        self.scheduler = scheduler or SyncScheduler()
        self.metrics = metrics
        self.default_interval_ms = default_interval_ms

        self._session: SyncSession | None = None
        self._run_lock = threading.Lock()
        self._state_lock = threading.RLock()

    @property
    def session(self) -> SyncSession | None:
        return self._session

    def _require_session(self) -> SyncSession:
        session = self._session
        if session is None:
            raise NoActiveSession()
        return session

    def _session_logger(self, session: SyncSession) -> ContextLogger:
        return ContextLogger(__name__, table_name=session.table_name, sheet_name=session.sheet_name)

    def _reconciler(self, session: SyncSession) -> Reconciler:
        return Reconciler(
            self.spreadsheet_store,
            self.table_store,
            session.source_id,
            session.sheet_name,
            session.table_name,
            session.column_names,
        )

    def _cancel_schedule(self) -> None:
        with self._state_lock:
            self.scheduler.remove_job(PASS_JOB_ID)
            if self._session is not None:
                self._session.is_running = False

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def list_sheets(self, source: str) -> dict[str, Any]:
        source_id = extract_sheet_id(source)
        return {"source_id": source_id, "sheets": self.spreadsheet_store.list_sheet_names(source_id)}

    def connect(self, source: str, sheet_name: str, table_name: str) -> dict[str, Any]:
        """
        Pair a worksheet with a table and install the new session.

        The previous session's schedule is cancelled first. The table is
        created (or widened) from the sheet's labels and bulk-loaded only
        when it holds no live rows.

        Raises:
            EmptySource: The worksheet has no header labels
            InvalidTableName: table_name is not a safe identifier
            SourceUnavailable / StoreUnavailable: A store call failed
        """
        source_id = extract_sheet_id(source)
        if not sheet_name:
            raise ConfigurationError("Sheet name is required")
        validate_table_name(table_name)

        with self._run_lock:
            self._cancel_schedule()
            start = time.monotonic()

            snapshot = read_source_snapshot(self.spreadsheet_store, source_id, sheet_name)
            if not snapshot.column_names:
                raise EmptySource(source_id, sheet_name)

            column_names = snapshot.column_names
            keys = storage_keys(column_names)
            self.table_store.ensure_table(table_name, keys)

            session = SyncSession(source_id, sheet_name, table_name, column_names)
            loaded = 0
            if not self.table_store.list_rows(table_name, keys):
                reconciler = self._reconciler(session)
                empty = Snapshot.from_rows(column_names, ())
                loaded = reconciler.apply(reconciler.plan(snapshot, empty)).source_to_store

            session.last_sync = datetime.now(UTC)
            session.last_stats = SyncStats(source_to_store=loaded)
            self._session = session

            if self.metrics:
                self.metrics.record_pass(
                    table_name, "connect", True, time.monotonic() - start, source_to_store=loaded
                )

        self._session_logger(session).info(
            f"Connected {len(column_names)} columns, {len(snapshot)} sheet rows, "
            f"{loaded} loaded into the table"
        )
        return {"column_names": list(column_names), "source_row_count": len(snapshot)}

    def start_schedule(self, interval_ms: int | None = None) -> dict[str, bool]:
        """
        Run passes every interval_ms milliseconds; a no-op when already running.

        Raises:
            NoActiveSession: No session is connected
            ConfigurationError: interval_ms is not positive
        """
        interval_ms = self.default_interval_ms if interval_ms is None else interval_ms

        with self._state_lock:
            session = self._require_session()
            if interval_ms <= 0:
                raise ConfigurationError(f"Interval must be positive, got {interval_ms}ms")
            if session.is_running:
                return {"running": True}

            self.scheduler.add_interval_job(self._scheduled_pass, interval_ms / 1000, PASS_JOB_ID)
            session.is_running = True

        self._session_logger(session).info(f"Auto-sync started ({interval_ms}ms interval)")
        return {"running": True}

    def stop_schedule(self) -> dict[str, bool]:
        """Cancel the schedule; an in-flight pass is allowed to finish."""
        self._cancel_schedule()
        logger.info("Auto-sync stopped")
        return {"running": False}

    def reconcile_now(self) -> dict[str, int]:
        """
        Run one pass, waiting for any pass already in flight.

        Raises:
            NoActiveSession: No session is connected
            UpstreamUnavailable: A store call failed; prior stats are kept
        """
        self._require_session()
        with self._run_lock:
            # connect may have replaced the session while we waited
            session = self._require_session()
            return self._run_pass(session, "manual").to_dict()

    def _scheduled_pass(self) -> None:
        session = self._session
        if session is None:
            return

        if not self._run_lock.acquire(blocking=False):
            logger.debug("Pass in flight, skipping tick")
            if self.metrics:
                self.metrics.record_skipped_tick(session.table_name)
            return

        try:
            session = self._session
            if session is None or not session.is_running:
                return
            self._run_pass(session, "scheduled")
        except SheetSyncError:
            # already logged by _run_pass; the next tick retries
            pass
        finally:
            self._run_lock.release()

    def _run_pass(self, session: SyncSession, trigger: str) -> SyncStats:
        log = self._session_logger(session)
        start = time.monotonic()

        try:
            source = read_source_snapshot(self.spreadsheet_store, session.source_id, session.sheet_name)
            store = read_store_snapshot(self.table_store, session.table_name, session.column_names)
            stats = self._reconciler(session).run(source, store)
        except SheetSyncError as e:
            applied = e.applied if isinstance(e, PartialApplyError) else {}
            if self.metrics:
                self.metrics.record_pass(
                    session.table_name,
                    trigger,
                    False,
                    time.monotonic() - start,
                    source_to_store=applied.get("source_to_store", 0),
                    store_to_source=applied.get("store_to_source", 0),
                )
            log.error(f"Sync pass failed: {e}", trigger=trigger, error_type=type(e).__name__)
            raise

        session.last_sync = datetime.now(UTC)
        session.last_stats = stats
        if self.metrics:
            self.metrics.record_pass(
                session.table_name,
                trigger,
                True,
                time.monotonic() - start,
                source_to_store=stats.source_to_store,
                store_to_source=stats.store_to_source,
            )

        if stats.total:
            log.info(
                f"Synced: {stats.source_to_store} sheet->table, {stats.store_to_source} table->sheet",
                trigger=trigger,
            )
        return stats

    def status(self) -> dict[str, Any]:
        session = self._session
        if session is None:
            return {
                "connected": False,
                "running": False,
                "last_sync_timestamp": None,
                "last_stats": None,
                "table_name": None,
                "sheet_name": None,
            }
        return session.status()

    def combined_view(self) -> dict[str, Any]:
        """Fresh snapshots of both sides plus the session's run state."""
        session = self._session
        if session is None:
            return {
                "source": None,
                "store": None,
                "last_sync_timestamp": None,
                "running": False,
                "last_stats": None,
            }

        source = read_source_snapshot(self.spreadsheet_store, session.source_id, session.sheet_name)
        store = read_store_snapshot(self.table_store, session.table_name, session.column_names)
        status = session.status()
        return {
            "source": source.to_dict(),
            "store": store.to_dict(),
            "last_sync_timestamp": status["last_sync_timestamp"],
            "running": status["running"],
            "last_stats": status["last_stats"],
        }

    def insert_sample_row(self) -> dict[str, Any]:
        """
        Insert a generated row into the table below every row in use.

        The position follows both the last non-blank sheet row and the
        highest position the table ever assigned, so a deleted position is
        not handed out again and the next pass writes the row to an empty
        sheet row.
        """
        self._require_session()
        with self._run_lock:
            session = self._require_session()
            source = read_source_snapshot(
                self.spreadsheet_store, session.source_id, session.sheet_name
            )
            last_source = max(
                (row.position for row in source if not row.is_blank),
                default=FIRST_DATA_POSITION - 1,
            )
            position = max(last_source, self.table_store.max_position(session.table_name)) + 1
            row = Row(
                position=position,
                values={
                    label: sample_value(label, index, position)
                    for index, label in enumerate(session.column_names)
                },
            )
            self.table_store.insert_row(
                session.table_name,
                position,
                session.keys,
                [scalar_text(value) for value in row.ordered(session.column_names)],
            )

        self._session_logger(session).info(f"Inserted sample row at position {position}")
        return row.to_dict()

    def delete_row(self, position: int) -> dict[str, Any]:
        """
        Delete the row at a position from both sides.

        The table row is soft-deleted and the sheet row cleared. A blank
        sheet row with no live table row is never copied, so the next pass
        leaves both alone.
        """
        if not isinstance(position, int) or position < FIRST_DATA_POSITION:
            raise ConfigurationError(f"Row position must be >= {FIRST_DATA_POSITION}, got {position}")

        self._require_session()
        with self._run_lock:
            session = self._require_session()
            deleted = self.table_store.soft_delete_row_at(session.table_name, position)
            self.spreadsheet_store.clear_row_at(
                session.source_id, session.sheet_name, position, len(session.column_names)
            )

        self._session_logger(session).info(f"Deleted row at position {position} ({deleted} table rows)")
        return {"position": position, "deleted": deleted > 0}

    def close(self) -> None:
        """Cancel the schedule and stop the background scheduler."""
        self._cancel_schedule()
        self.scheduler.shutdown(wait=False)
