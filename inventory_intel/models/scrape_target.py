"""Competitor sites to poll, one row per (tenant, source)."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from inventory_intel.models.base import Base, JSONType, UUIDPrimaryKeyMixin


class ScrapeTarget(UUIDPrimaryKeyMixin, Base):
    """A competitor inventory source configured for one tenant.

    Created from configuration and only ever mutated to stamp
    last_scraped_at. Never deleted by the pipeline.
    """

    __tablename__ = "scrape_targets"

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    source_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Competitor name, unique per tenant"
    )
    base_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    inventory_path: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    platform_kind: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Adapter key: 'woocommerce', 'trailerfunnel', 'dealsector', 'facetwp'"
    )
    config: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Adapter-specific configuration"
    )
    expected_minimum_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_scraped_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "source_name", name="uq_scrape_target_tenant_source"),
    )

    @property
    def inventory_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.inventory_path or ''}"

    def __repr__(self) -> str:
        return f"<ScrapeTarget(id={self.id}, source_name='{self.source_name}', platform_kind='{self.platform_kind}')>"
