"""APScheduler-based periodic scraping.

Runs ScrapeOrchestrator.run_all over every active target on a fixed
interval. The batch job has max_instances=1, so a slow batch delays the
next one instead of overlapping it.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from inventory_intel.scrapers.orchestrator import BatchSummary, ScrapeOrchestrator

logger = structlog.get_logger(__name__)

BATCH_JOB_ID = "scrape_all_targets"


class ScrapeScheduler:
    """Manages the periodic scrape batch using APScheduler."""

    def __init__(
        self,
        orchestrator: ScrapeOrchestrator,
        interval_minutes: int = 360,
        tenant_id: Optional[str] = None,
    ):
        """Initialize scrape scheduler.

        Args:
            orchestrator: Orchestrator that runs the targets
            interval_minutes: Minutes between batch starts
            tenant_id: Restrict batches to one tenant (default: all tenants)
        """
        self.orchestrator = orchestrator
        self.interval_minutes = interval_minutes
        self.tenant_id = tenant_id
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.logger = logger.bind(service="scrape_scheduler")
        self.last_summary: Optional[BatchSummary] = None
        self._batch_task: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Start the scheduler. Call add_batch_job() to register the batch."""
        if not self.scheduler.running:
            self.scheduler.start()
            self.logger.info("scheduler_started")
        else:
            self.logger.warning("scheduler_already_running")

    async def stop(self, wait: bool = True) -> None:
        """Stop the scheduler and settle any batch still in flight.

        Shutting down the asyncio executor cancels coroutine jobs, so a
        batch that should finish is awaited while the scheduler is paused.
        AsyncIOScheduler also defers its shutdown to the event loop; this
        yields once so is_running() is False on return.

        Args:
            wait: Let the in-flight batch finish; when False it is cancelled
        """
        if not self.scheduler.running:
            self.logger.warning("scheduler_not_running")
            return

        task = self._batch_task
        if task is not None and not task.done():
            if wait:
                self.scheduler.pause()
            else:
                task.cancel()
            self.logger.info("waiting_for_batch", cancelled=not wait)
            await asyncio.gather(task, return_exceptions=True)

        self.scheduler.shutdown(wait=False)
        await asyncio.sleep(0)
        self.logger.info("scheduler_stopped")

    def add_batch_job(self, offset_seconds: int = 0) -> Job:
        """Schedule the periodic batch.

        Args:
            offset_seconds: Delay before the first run

        Returns:
            APScheduler Job instance
        """
        trigger = IntervalTrigger(
            minutes=self.interval_minutes,
            start_date=datetime.now(timezone.utc),
            timezone="UTC",
        )

        job = self.scheduler.add_job(
            func=self._run_batch_wrapper,
            trigger=trigger,
            id=BATCH_JOB_ID,
            name="Scrape all active targets",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        if offset_seconds > 0:
            job.modify(next_run_time=datetime.now(timezone.utc) + timedelta(seconds=offset_seconds))

        self.logger.info(
            "batch_job_added",
            interval_minutes=self.interval_minutes,
            offset_seconds=offset_seconds,
            next_run=_next_run(job),
        )
        return job

    def remove_batch_job(self) -> bool:
        if self.scheduler.get_job(BATCH_JOB_ID) is None:
            self.logger.warning("job_not_found", job_id=BATCH_JOB_ID)
            return False
        self.scheduler.remove_job(BATCH_JOB_ID)
        self.logger.info("batch_job_removed")
        return True

    async def run_batch(self) -> BatchSummary:
        """Load active targets and run them all once."""
        targets = await self.orchestrator.load_active_targets(self.tenant_id)
        self.logger.info("scheduled_batch_starting", targets=len(targets), tenant_id=self.tenant_id)
        summary = await self.orchestrator.run_all(targets)
        self.last_summary = summary
        return summary

    async def _run_batch_wrapper(self) -> None:
        """Entry point APScheduler calls; keeps the scheduler alive on errors."""
        self._batch_task = asyncio.current_task()
        try:
            await self.run_batch()
        except Exception as e:
            self.logger.error("scheduled_batch_failed", error=str(e), exc_info=True)
        finally:
            self._batch_task = None

    def get_jobs_status(self) -> dict:
        job = self.scheduler.get_job(BATCH_JOB_ID)
        if job is None:
            return {}
        return {
            BATCH_JOB_ID: {
                "next_run": _next_run(job),
                "trigger": str(job.trigger),
            }
        }

    def is_running(self) -> bool:
        return self.scheduler.running


def _next_run(job: Job) -> Optional[str]:
    # Jobs added before the scheduler starts have no next_run_time yet
    next_run_time = getattr(job, "next_run_time", None)
    return next_run_time.isoformat() if next_run_time else None
