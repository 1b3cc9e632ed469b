"""Scrape orchestration: runs the extract-to-reconcile pipeline per target.

For each target:
    start run -> create adapter -> extract -> normalize -> detect changes
    -> append change log -> apply inventory -> stamp target -> finish run

Targets run concurrently up to ``max_workers``; a failing target never
affects its siblings.
"""

import asyncio
import traceback
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_intel.models.scrape_target import ScrapeTarget
from inventory_intel.scrapers.factory import AdapterFactory
from inventory_intel.scrapers.utils.normalizer import FieldNormalizer
from inventory_intel.scrapers.utils.retry import RetryingFetcher
from inventory_intel.services.change_detector import ChangeDetector
from inventory_intel.services.change_log import ChangeLog
from inventory_intel.services.inventory_store import DEFAULT_BATCH_SIZE, InventoryStore
from inventory_intel.services.job_tracker import STATUS_FAILED, STATUS_SUCCESS, JobTracker

logger = structlog.get_logger(__name__)


@dataclass
class RunSummary:
    """Outcome of one target's pipeline run."""

    source_name: str
    started_at: datetime
    status: str
    completed_at: Optional[datetime] = None
    run_id: Optional[uuid.UUID] = None
    items_found: int = 0
    changes_detected: int = 0
    change_counts: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    def to_record(self) -> Dict[str, Any]:
        record = {
            "sourceName": self.source_name,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "status": self.status,
            "itemsFound": self.items_found,
            "changesDetected": self.changes_detected,
        }
        if self.error_message:
            record["errorMessage"] = self.error_message
        return record


@dataclass
class BatchSummary:
    """Outcome of a run_all batch."""

    runs: List[RunSummary] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.runs)

    @property
    def failed(self) -> List[RunSummary]:
        return [run for run in self.runs if not run.succeeded]

    @property
    def message(self) -> str:
        return f"{len(self.failed)} of {self.total} targets failed"

    def to_record(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "failed": len(self.failed),
            "message": self.message,
            "runs": [run.to_record() for run in self.runs],
        }


class ScrapeOrchestrator:
    """Runs scrape targets through the pipeline and records each run.

    The only caller of JobTracker. The session factory, fetcher and adapter
    factory are shared across concurrent pipelines; every pipeline opens
    its own sessions.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fetcher: RetryingFetcher,
        adapter_factory: AdapterFactory,
        *,
        max_workers: int = 4,
        target_timeout: float = 600.0,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self.session_factory = session_factory
        self.fetcher = fetcher
        self.adapter_factory = adapter_factory
        self.max_workers = max_workers
        self.target_timeout = target_timeout

        self.store = InventoryStore(session_factory, batch_size=batch_size)
        self.detector = ChangeDetector(self.store)
        self.change_log = ChangeLog(session_factory)
        self.tracker = JobTracker(session_factory)
        self.logger = logger.bind(service="scrape_orchestrator")

    async def load_active_targets(self, tenant_id: Optional[str] = None) -> List[ScrapeTarget]:
        """Active targets, optionally for one tenant, ordered by source name."""
        query = select(ScrapeTarget).where(ScrapeTarget.is_active.is_(True))
        if tenant_id:
            query = query.where(ScrapeTarget.tenant_id == tenant_id)
        query = query.order_by(ScrapeTarget.tenant_id, ScrapeTarget.source_name)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def run_all(self, targets: Sequence[ScrapeTarget]) -> BatchSummary:
        """Run every target with at most ``max_workers`` pipelines in flight.

        Never raises for a failing target; failures are reported in the
        returned summary.
        """
        semaphore = asyncio.Semaphore(self.max_workers)

        async def run_bounded(target: ScrapeTarget) -> RunSummary:
            async with semaphore:
                return await self.run_target(target)

        self.logger.info("batch_started", targets=len(targets), max_workers=self.max_workers)
        runs = await asyncio.gather(*(run_bounded(target) for target in targets))
        summary = BatchSummary(runs=list(runs))

        log = self.logger.warning if summary.failed else self.logger.info
        log(
            "batch_finished",
            total=summary.total,
            failed=len(summary.failed),
            message=summary.message,
            failed_sources=[run.source_name for run in summary.failed],
        )
        return summary

    async def run_target(self, target: ScrapeTarget) -> RunSummary:
        """Run the full pipeline for one target and record the run.

        Any failure marks the run failed and stops later stages; it is
        reported in the returned summary, not raised.
        """
        summary = RunSummary(
            source_name=target.source_name,
            started_at=datetime.now(timezone.utc),
            status="running",
        )
        log = self.logger.bind(tenant_id=target.tenant_id, source_name=target.source_name)

        try:
            summary.run_id = await self.tracker.start(target.tenant_id, target.id, target.source_name)
        except Exception as e:
            log.error("run_start_failed", error=str(e), exc_info=True)
            summary.status = STATUS_FAILED
            summary.error_message = f"could not record run start: {e}"
            summary.completed_at = datetime.now(timezone.utc)
            return summary

        try:
            async with asyncio.timeout(self.target_timeout):
                await self._pipeline(target, summary, log)
            await self.tracker.finish_success(summary.run_id, summary.items_found, summary.changes_detected)
        except TimeoutError:
            await self._fail(summary, f"timed out after {self.target_timeout:g}s", None, log)
        except Exception as e:
            await self._fail(summary, str(e) or e.__class__.__name__, traceback.format_exc(), log)
        else:
            summary.status = STATUS_SUCCESS
            summary.completed_at = datetime.now(timezone.utc)
            log.info(
                "run_succeeded",
                items_found=summary.items_found,
                changes_detected=summary.changes_detected,
                warnings=summary.warnings,
            )

        return summary

    async def _pipeline(self, target: ScrapeTarget, summary: RunSummary, log) -> None:
        adapter = self.adapter_factory.create_adapter(target, self.fetcher)

        raw_records = await adapter.extract(target)
        summary.warnings.extend(adapter.warnings)

        normalizer = FieldNormalizer(adapter.to_listing, adapter.category_synonyms)
        items = normalizer.normalize(raw_records, target)
        summary.items_found = len(items)
        if normalizer.skipped:
            summary.warnings.append(f"skipped {normalizer.skipped} unparseable record(s)")

        minimum = target.expected_minimum_count
        if minimum and len(items) < minimum:
            summary.warnings.append(f"found {len(items)} items, expected at least {minimum}")
            log.warning("below_expected_minimum", found=len(items), expected_minimum=minimum)

        detection = await self.detector.detect(
            target.tenant_id,
            target.source_name,
            items,
            possibly_incomplete=adapter.possibly_incomplete,
        )
        summary.changes_detected = len(detection.events)
        summary.change_counts = detection.counts

        await self.change_log.append(detection.events)
        await self.store.apply(
            target.tenant_id,
            target.source_name,
            detection.fresh_items,
            detection.removed_keys,
        )
        await self._stamp_target(target)

    async def _stamp_target(self, target: ScrapeTarget) -> None:
        scraped_at = datetime.now(timezone.utc)
        if target.id is not None:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.execute(
                        update(ScrapeTarget)
                        .where(ScrapeTarget.id == target.id)
                        .values(last_scraped_at=scraped_at)
                    )
        target.last_scraped_at = scraped_at

    async def _fail(self, summary: RunSummary, message: str, error_traceback: Optional[str], log) -> None:
        summary.status = STATUS_FAILED
        summary.error_message = message
        summary.completed_at = datetime.now(timezone.utc)
        log.error("run_failed", error=message, run_id=str(summary.run_id))
        try:
            await self.tracker.finish_failure(summary.run_id, message, error_traceback)
        except Exception as e:
            log.error("run_failure_not_recorded", error=str(e), exc_info=True)
