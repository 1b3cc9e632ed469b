"""Scrape run tracking."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from inventory_intel.models.base import Base, UUIDPrimaryKeyMixin


class ScrapeJob(UUIDPrimaryKeyMixin, Base):
    """Tracks one pipeline run for one scrape target.

    Created with status 'running' before extraction begins and moved
    exactly once to 'success' or 'failed'.
    """

    __tablename__ = "scrape_jobs"

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    target_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("scrape_targets.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    source_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Job status
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="running",
        index=True,
        comment="Status: 'running', 'success', 'failed'"
    )

    # Timing
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the run started"
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the run finished (success or failure)"
    )
    duration_seconds: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(8, 2),
        nullable=True,
        comment="Total execution time in seconds"
    )

    # Metrics
    items_found: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Canonical items produced by the run"
    )
    changes_detected: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Change events emitted by the run"
    )

    # Error tracking
    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Error message if the run failed"
    )
    error_traceback: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Full error traceback for debugging"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<ScrapeJob(id={self.id}, source_name='{self.source_name}', status='{self.status}')>"
