"""Persisted canonical inventory rows."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Index, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from inventory_intel.models.base import Base, JSONType


class InventoryItem(Base):
    """One competitor listing, keyed by (tenant_id, source_name, natural_key).

    Rows are never deleted: items that disappear from a source are marked
    'Sold' in place so their history stays queryable.
    """

    __tablename__ = "competitor_inventory"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source_name: Mapped[str] = mapped_column(String(200), nullable=False)
    natural_key: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Stock number, or a VIN/id/URL-derived surrogate"
    )

    title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    year: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    make: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    size: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    msrp: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    sale_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    gvwr: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    vin: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    condition: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="Available",
        comment="Status: 'Available', 'Sold'"
    )
    specs: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    source_url: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)

    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "source_name", "natural_key", name="uq_inventory_tenant_source_key"),
        Index("idx_inventory_tenant_source_status", "tenant_id", "source_name", "status"),
        Index("idx_inventory_tenant_type", "tenant_id", "type"),
        Index("idx_inventory_tenant_make", "tenant_id", "make"),
    )

    def __repr__(self) -> str:
        return f"<InventoryItem(source_name='{self.source_name}', natural_key='{self.natural_key}', status='{self.status}')>"
