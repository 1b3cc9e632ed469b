"""Idempotent persistence of canonical inventory items."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_intel.core.exceptions import StorageError
from inventory_intel.models.inventory_item import InventoryItem
from inventory_intel.scrapers.base import CanonicalItem, STATUS_SOLD

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 500

# Columns refreshed when an existing (tenant, source, key) row is upserted
_UPDATABLE_COLUMNS = (
    "title", "year", "make", "model", "type", "size",
    "price", "msrp", "sale_price", "gvwr", "vin", "condition", "location",
    "status", "specs", "source_url", "observed_at", "updated_at",
)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass
class ApplyResult:
    upserted: int = 0
    marked_sold: int = 0
    batches: int = 0


class InventoryStore:
    """Reads and writes the competitor_inventory table.

    The only writer of that table. Each chunk of ``batch_size`` rows is its
    own transaction: a failing chunk aborts the rest of the apply but
    chunks already committed stay committed.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.session_factory = session_factory
        self.batch_size = batch_size
        self.logger = logger.bind(service="inventory_store")

    async def load_active(self, tenant_id: str, source_name: str) -> Dict[str, CanonicalItem]:
        """Stored non-sold items for one source, keyed by natural key."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(InventoryItem).where(
                    InventoryItem.tenant_id == tenant_id,
                    InventoryItem.source_name == source_name,
                    InventoryItem.status != STATUS_SOLD,
                )
            )
            rows = result.scalars().all()
        return {row.natural_key: _row_to_item(row) for row in rows}

    async def list_items(
        self,
        tenant_id: str,
        source_name: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[CanonicalItem]:
        """Stored items for a tenant, optionally narrowed to one source and status."""
        query = select(InventoryItem).where(InventoryItem.tenant_id == tenant_id)
        if source_name:
            query = query.where(InventoryItem.source_name == source_name)
        if status:
            query = query.where(InventoryItem.status == status)
        query = query.order_by(InventoryItem.source_name, InventoryItem.natural_key)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [_row_to_item(row) for row in result.scalars().all()]

    async def count(self, tenant_id: str, source_name: str, status: Optional[str] = None) -> int:
        query = select(func.count()).select_from(InventoryItem).where(
            InventoryItem.tenant_id == tenant_id,
            InventoryItem.source_name == source_name,
        )
        if status:
            query = query.where(InventoryItem.status == status)
        async with self.session_factory() as session:
            return (await session.execute(query)).scalar_one()

    async def apply(
        self,
        tenant_id: str,
        source_name: str,
        items: Iterable[CanonicalItem],
        removed_keys: Sequence[str] = (),
        now: Optional[datetime] = None,
    ) -> ApplyResult:
        """Upsert items and mark removed keys as sold.

        Applying the same input twice leaves the table unchanged apart from
        ``updated_at``/``observed_at``.

        Args:
            tenant_id: Tenant owning the rows
            source_name: Competitor source name
            items: Items to upsert; duplicate keys collapse, last wins
            removed_keys: Natural keys to flip to Sold in place
            now: Timestamp written to updated_at of sold rows

        Returns:
            ApplyResult with row and batch counts

        Raises:
            StorageError: If a chunk fails; earlier chunks remain committed
        """
        by_key: Dict[str, CanonicalItem] = {}
        for item in items:
            by_key[item.natural_key] = item
        rows = [item.to_row() for item in by_key.values()]
        sold_at = now or datetime.now(timezone.utc)
        removed = [key for key in dict.fromkeys(removed_keys) if key not in by_key]

        result = ApplyResult()

        for chunk in _chunks(rows, self.batch_size):
            try:
                await self._upsert_chunk(chunk)
            except SQLAlchemyError as e:
                self._partial_apply(tenant_id, source_name, result, e)
                raise StorageError(
                    f"upsert batch {result.batches + 1} failed for {source_name}: {e}",
                    committed_batches=result.batches,
                ) from e
            result.upserted += len(chunk)
            result.batches += 1

        for chunk in _chunks(removed, self.batch_size):
            try:
                await self._mark_sold_chunk(tenant_id, source_name, chunk, sold_at)
            except SQLAlchemyError as e:
                self._partial_apply(tenant_id, source_name, result, e)
                raise StorageError(
                    f"mark-sold batch {result.batches + 1} failed for {source_name}: {e}",
                    committed_batches=result.batches,
                ) from e
            result.marked_sold += len(chunk)
            result.batches += 1

        self.logger.info(
            "inventory_applied",
            tenant_id=tenant_id,
            source_name=source_name,
            upserted=result.upserted,
            marked_sold=result.marked_sold,
            batches=result.batches,
        )
        return result

    async def _upsert_chunk(self, rows: List[dict]) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                dialect = session.get_bind().dialect.name
                insert = _INSERT_BY_DIALECT.get(dialect)
                if insert is None:
                    raise StorageError(f"upsert is not supported on dialect '{dialect}'")

                stmt = insert(InventoryItem).values(rows)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["tenant_id", "source_name", "natural_key"],
                    set_={column: stmt.excluded[column] for column in _UPDATABLE_COLUMNS},
                )
                await session.execute(stmt)

    async def _mark_sold_chunk(self, tenant_id: str, source_name: str, keys: List[str], sold_at: datetime) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(InventoryItem)
                    .where(
                        InventoryItem.tenant_id == tenant_id,
                        InventoryItem.source_name == source_name,
                        InventoryItem.natural_key.in_(keys),
                    )
                    .values(status=STATUS_SOLD, updated_at=sold_at)
                )

    def _partial_apply(self, tenant_id: str, source_name: str, result: ApplyResult, error: Exception) -> None:
        self.logger.error(
            "partial_apply",
            tenant_id=tenant_id,
            source_name=source_name,
            committed_batches=result.batches,
            upserted=result.upserted,
            marked_sold=result.marked_sold,
            error=str(error),
        )


def _chunks(values: list, size: int):
    for start in range(0, len(values), size):
        yield values[start:start + size]


def _row_to_item(row: InventoryItem) -> CanonicalItem:
    return CanonicalItem(
        tenant_id=row.tenant_id,
        source_name=row.source_name,
        natural_key=row.natural_key,
        title=row.title or "",
        observed_at=row.observed_at,
        year=row.year,
        make=row.make,
        model=row.model,
        type=row.type,
        size=row.size,
        price=row.price,
        msrp=row.msrp,
        sale_price=row.sale_price,
        gvwr=row.gvwr,
        vin=row.vin,
        condition=row.condition,
        location=row.location,
        status=row.status,
        specs=dict(row.specs or {}),
        source_url=row.source_url,
        updated_at=row.updated_at,
    )
