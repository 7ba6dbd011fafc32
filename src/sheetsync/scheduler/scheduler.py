"""
APScheduler-based pass scheduler.

Wraps a BackgroundScheduler so the engine can install and cancel its single
interval job while the caller's thread keeps serving commands.
"""

import logging
from collections.abc import Callable
from typing import Any

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Background scheduler for periodic reconciliation passes

    Jobs never overlap with themselves (max_instances=1) and missed runs
    collapse into one (coalesce=True).
    """

    def __init__(self, scheduler: BackgroundScheduler | None = None):
        self.scheduler = scheduler or BackgroundScheduler(
            job_defaults={"max_instances": 1, "coalesce": True}
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Background scheduler started")

    def add_interval_job(
        self,
        job_func: Callable,
        interval_seconds: float,
        job_id: str,
        **kwargs: Any,
    ) -> None:
        """
        Add (or replace) a job that runs at a fixed period

        Args:
            job_func: Function to execute
            interval_seconds: Period in seconds; fractions are allowed
            job_id: Unique identifier for the job
            **kwargs: Keyword arguments passed to job_func
        """
        self.start()
        self.scheduler.add_job(
            job_func,
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=job_id,
            kwargs=kwargs,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(f"Added interval job '{job_id}' every {interval_seconds}s")

    def remove_job(self, job_id: str) -> bool:
        """Remove a job; returns False when no such job was scheduled."""
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        logger.info(f"Removed job '{job_id}'")
        return True

    def has_job(self, job_id: str) -> bool:
        return self.scheduler.get_job(job_id) is not None

    def shutdown(self, wait: bool = False) -> None:
        """Stop the scheduler; an in-flight job finishes unless the process exits."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Background scheduler stopped")

    def list_jobs(self) -> list[dict[str, Any]]:
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        ]
