"""Append-only persistence of detected inventory changes."""

from typing import List, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_intel.models.inventory_change import InventoryChange
from inventory_intel.services.change_detector import ChangeEvent, ChangeType

logger = structlog.get_logger(__name__)


class ChangeLog:
    """Writes ChangeEvents to inventory_changes. Rows are only ever inserted."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self.logger = logger.bind(service="change_log")

    async def append(self, events: Sequence[ChangeEvent]) -> int:
        """Insert events in one transaction.

        Args:
            events: Events produced by ChangeDetector

        Returns:
            Number of rows inserted
        """
        if not events:
            return 0

        async with self.session_factory() as session:
            async with session.begin():
                session.add_all([
                    InventoryChange(
                        tenant_id=event.tenant_id,
                        source_name=event.source_name,
                        natural_key=event.natural_key,
                        title=event.title,
                        change_type=event.change_type.value,
                        old_price=event.old_price,
                        new_price=event.new_price,
                        detected_at=event.detected_at,
                    )
                    for event in events
                ])

        self.logger.info(
            "changes_appended",
            tenant_id=events[0].tenant_id,
            source_name=events[0].source_name,
            count=len(events),
        )
        return len(events)

    async def list_recent(
        self,
        tenant_id: str,
        source_name: Optional[str] = None,
        limit: int = 100,
    ) -> List[ChangeEvent]:
        """Most recent events for a tenant, newest first."""
        query = select(InventoryChange).where(InventoryChange.tenant_id == tenant_id)
        if source_name:
            query = query.where(InventoryChange.source_name == source_name)
        query = query.order_by(InventoryChange.detected_at.desc(), InventoryChange.id.desc()).limit(limit)

        async with self.session_factory() as session:
            rows = (await session.execute(query)).scalars().all()

        return [
            ChangeEvent(
                tenant_id=row.tenant_id,
                source_name=row.source_name,
                natural_key=row.natural_key,
                title=row.title,
                change_type=ChangeType(row.change_type),
                old_price=row.old_price,
                new_price=row.new_price,
                detected_at=row.detected_at,
            )
            for row in rows
        ]
