"""Scrape run lifecycle records."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_intel.core.exceptions import InvalidTransitionError
from inventory_intel.models.scraper_job import ScrapeJob

logger = structlog.get_logger(__name__)

STATUS_RUNNING = "running"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


class JobTracker:
    """Creates and completes ScrapeJob rows.

    A run starts as 'running' and moves exactly once to 'success' or
    'failed'. Terminal updates are conditional on the row still being
    'running', so a second completion raises InvalidTransitionError.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self.logger = logger.bind(service="job_tracker")

    async def start(
        self,
        tenant_id: str,
        target_id: Optional[uuid.UUID],
        source_name: str = "",
    ) -> uuid.UUID:
        """Record the start of a run and return its id."""
        job = ScrapeJob(
            tenant_id=tenant_id,
            target_id=target_id,
            source_name=source_name,
            status=STATUS_RUNNING,
            started_at=datetime.now(timezone.utc),
        )
        async with self.session_factory() as session:
            async with session.begin():
                session.add(job)
            run_id = job.id

        self.logger.info("run_started", run_id=str(run_id), tenant_id=tenant_id, source_name=source_name)
        return run_id

    async def finish_success(self, run_id: uuid.UUID, items_found: int, changes_detected: int) -> ScrapeJob:
        return await self._finish(
            run_id,
            STATUS_SUCCESS,
            items_found=items_found,
            changes_detected=changes_detected,
        )

    async def finish_failure(
        self,
        run_id: uuid.UUID,
        error_message: str,
        error_traceback: Optional[str] = None,
    ) -> ScrapeJob:
        return await self._finish(
            run_id,
            STATUS_FAILED,
            error_message=error_message,
            error_traceback=error_traceback,
        )

    async def get(self, run_id: uuid.UUID) -> Optional[ScrapeJob]:
        async with self.session_factory() as session:
            return await session.get(ScrapeJob, run_id)

    async def _finish(self, run_id: uuid.UUID, status: str, **values) -> ScrapeJob:
        completed_at = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            async with session.begin():
                job = await session.get(ScrapeJob, run_id)
                if job is None:
                    raise InvalidTransitionError(str(run_id), "missing")

                started_at = job.started_at
                if started_at.tzinfo is None:
                    started_at = started_at.replace(tzinfo=timezone.utc)
                duration = (completed_at - started_at).total_seconds()

                result = await session.execute(
                    update(ScrapeJob)
                    .where(ScrapeJob.id == run_id, ScrapeJob.status == STATUS_RUNNING)
                    .values(
                        status=status,
                        completed_at=completed_at,
                        duration_seconds=Decimal(str(round(duration, 2))),
                        **values,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise InvalidTransitionError(str(run_id), job.status)

        job = await self.get(run_id)
        self.logger.info(
            "run_finished",
            run_id=str(run_id),
            status=status,
            duration_seconds=round(duration, 2),
        )
        return job
