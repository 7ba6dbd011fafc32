"""
Metrics for sync passes.

Tracks pass outcomes, durations, rows pushed in each direction and ticks
skipped because a pass was already in flight.
"""

import logging
import time

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from .registry import get_or_create_metric

logger = logging.getLogger(__name__)


class SyncMetrics:
    """
    Prometheus metrics for the reconciliation engine

    Metrics are registered once per registry; building a second SyncMetrics
    against the same registry reuses the existing collectors.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or REGISTRY

        self.passes_total = get_or_create_metric(
            lambda: Counter(
                "sheetsync_passes_total",
                "Reconciliation passes by outcome",
                ["table_name", "trigger", "status"],
                registry=self.registry,
            ),
            "sheetsync_passes",
            self.registry,
        )

        self.pass_duration_seconds = get_or_create_metric(
            lambda: Histogram(
                "sheetsync_pass_duration_seconds",
                "Duration of reconciliation passes in seconds",
                ["table_name"],
                buckets=(0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120),
                registry=self.registry,
            ),
            "sheetsync_pass_duration_seconds",
            self.registry,
        )

        self.rows_pushed_total = get_or_create_metric(
            lambda: Counter(
                "sheetsync_rows_pushed_total",
                "Rows written by reconciliation, by direction",
                ["table_name", "direction"],
                registry=self.registry,
            ),
            "sheetsync_rows_pushed",
            self.registry,
        )

        self.skipped_ticks_total = get_or_create_metric(
            lambda: Counter(
                "sheetsync_skipped_ticks_total",
                "Scheduled ticks skipped because a pass was in flight",
                ["table_name"],
                registry=self.registry,
            ),
            "sheetsync_skipped_ticks",
            self.registry,
        )

        self.last_success_timestamp = get_or_create_metric(
            lambda: Gauge(
                "sheetsync_last_success_timestamp",
                "Unix time of the last successful pass",
                ["table_name"],
                registry=self.registry,
            ),
            "sheetsync_last_success_timestamp",
            self.registry,
        )

    def record_pass(
        self,
        table_name: str,
        trigger: str,
        success: bool,
        duration: float,
        source_to_store: int = 0,
        store_to_source: int = 0,
    ) -> None:
        """
        Record one reconciliation pass

        Args:
            table_name: Table of the active session
            trigger: "scheduled", "manual" or "connect"
            success: Whether the pass completed
            duration: Wall time in seconds
            source_to_store: Rows written to the table
            store_to_source: Rows written back to the sheet
        """
        status = "success" if success else "failed"

        self.passes_total.labels(table_name=table_name, trigger=trigger, status=status).inc()
        self.pass_duration_seconds.labels(table_name=table_name).observe(duration)

        if source_to_store:
            self.rows_pushed_total.labels(
                table_name=table_name, direction="source_to_store"
            ).inc(source_to_store)
        if store_to_source:
            self.rows_pushed_total.labels(
                table_name=table_name, direction="store_to_source"
            ).inc(store_to_source)

        if success:
            self.last_success_timestamp.labels(table_name=table_name).set(time.time())

        logger.debug(
            f"Recorded pass: table={table_name}, trigger={trigger}, status={status}, "
            f"duration={duration:.3f}s"
        )

    def record_skipped_tick(self, table_name: str) -> None:
        self.skipped_ticks_total.labels(table_name=table_name).inc()
