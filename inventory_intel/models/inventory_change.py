"""Append-only log of detected inventory changes."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_intel.models.base import Base


class InventoryChange(Base):
    """A change detected between two runs of the same (tenant, source).

    Rows are only ever inserted.
    """

    __tablename__ = "inventory_changes"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source_name: Mapped[str] = mapped_column(String(200), nullable=False)
    natural_key: Mapped[str] = mapped_column(String(200), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    change_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="NEW_LISTING, PRICE_DROP, PRICE_INCREASE, REMOVED"
    )
    old_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    new_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_changes_tenant_detected", "tenant_id", "detected_at"),
        Index("idx_changes_tenant_type", "tenant_id", "change_type"),
    )

    def __repr__(self) -> str:
        return f"<InventoryChange(source_name='{self.source_name}', natural_key='{self.natural_key}', change_type='{self.change_type}')>"
