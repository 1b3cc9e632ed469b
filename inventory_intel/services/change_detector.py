"""Change detection between a fresh scrape and the last known inventory.

Compares freshly normalized items for one (tenant, source) against the
stored non-sold items and emits NEW_LISTING, PRICE_DROP, PRICE_INCREASE
and REMOVED events.
"""

import enum
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog

from inventory_intel.scrapers.base import CanonicalItem, STATUS_SOLD

logger = structlog.get_logger(__name__)


class ChangeType(str, enum.Enum):
    NEW_LISTING = "NEW_LISTING"
    PRICE_DROP = "PRICE_DROP"
    PRICE_INCREASE = "PRICE_INCREASE"
    REMOVED = "REMOVED"


@dataclass(frozen=True)
class ChangeEvent:
    """One detected change for one natural key."""

    tenant_id: str
    source_name: str
    natural_key: str
    title: Optional[str]
    change_type: ChangeType
    old_price: Optional[Decimal]
    new_price: Optional[Decimal]
    detected_at: datetime

    def to_record(self) -> Dict[str, Any]:
        return {
            "tenant": self.tenant_id,
            "sourceName": self.source_name,
            "naturalKey": self.natural_key,
            "title": self.title,
            "changeType": self.change_type.value,
            "oldPrice": float(self.old_price) if self.old_price is not None else None,
            "newPrice": float(self.new_price) if self.new_price is not None else None,
            "detectedAt": self.detected_at.isoformat(),
        }


@dataclass
class DetectionResult:
    """Events plus the item set that should be persisted for the run.

    ``fresh_items`` are upserted as-is; ``removed_keys`` are flipped to
    Sold in place. ``final_items`` is both sets together, with the removed
    items carried over as Sold copies.
    """

    events: List[ChangeEvent] = field(default_factory=list)
    fresh_items: List[CanonicalItem] = field(default_factory=list)
    removed_items: List[CanonicalItem] = field(default_factory=list)
    removal_skipped: bool = False

    @property
    def final_items(self) -> List[CanonicalItem]:
        return self.fresh_items + self.removed_items

    @property
    def removed_keys(self) -> List[str]:
        return [item.natural_key for item in self.removed_items]

    @property
    def counts(self) -> Dict[str, int]:
        tally = Counter(event.change_type.value for event in self.events)
        return {change_type.value: tally.get(change_type.value, 0) for change_type in ChangeType}

    @property
    def new_count(self) -> int:
        return self.counts[ChangeType.NEW_LISTING.value]

    @property
    def price_drop_count(self) -> int:
        return self.counts[ChangeType.PRICE_DROP.value]

    @property
    def price_increase_count(self) -> int:
        return self.counts[ChangeType.PRICE_INCREASE.value]

    @property
    def removed_count(self) -> int:
        return self.counts[ChangeType.REMOVED.value]


class ChangeDetector:
    """Diffs fresh items against the store's active items for one source.

    Only reads from the store; persisting events and items is the
    caller's job.
    """

    def __init__(self, store):
        """Initialize change detector.

        Args:
            store: Anything with ``async load_active(tenant_id, source_name)``
                returning a dict of natural key -> CanonicalItem
        """
        self.store = store
        self.logger = logger.bind(service="change_detector")

    async def detect(
        self,
        tenant_id: str,
        source_name: str,
        fresh: List[CanonicalItem],
        *,
        possibly_incomplete: bool = False,
        now: Optional[datetime] = None,
    ) -> DetectionResult:
        """Detect changes for one (tenant, source).

        Args:
            tenant_id: Tenant owning the inventory
            source_name: Competitor source name
            fresh: Normalized items from this run, unique by natural key
            possibly_incomplete: Extraction may have missed listings; skip removals
            now: Detection timestamp (defaults to current UTC time)

        Returns:
            DetectionResult with events and the items to persist
        """
        detected_at = now or datetime.now(timezone.utc)
        stored = await self.store.load_active(tenant_id, source_name)
        stored = {key: item for key, item in stored.items() if item.status != STATUS_SOLD}

        result = DetectionResult(fresh_items=list(fresh))
        fresh_keys = set()

        for item in fresh:
            fresh_keys.add(item.natural_key)
            previous = stored.get(item.natural_key)

            if previous is None:
                change_type = ChangeType.NEW_LISTING
                old_price = None
            elif previous.price is not None and item.price is not None and previous.price != item.price:
                change_type = ChangeType.PRICE_DROP if item.price < previous.price else ChangeType.PRICE_INCREASE
                old_price = previous.price
            else:
                continue

            result.events.append(ChangeEvent(
                tenant_id=tenant_id,
                source_name=source_name,
                natural_key=item.natural_key,
                title=item.title,
                change_type=change_type,
                old_price=old_price,
                new_price=item.price,
                detected_at=detected_at,
            ))

        missing = [key for key in stored if key not in fresh_keys]

        if possibly_incomplete:
            result.removal_skipped = True
            if missing:
                self.logger.warning(
                    "removal_detection_skipped",
                    tenant_id=tenant_id,
                    source_name=source_name,
                    unseen=len(missing),
                )
        else:
            for key in missing:
                previous = stored[key]
                result.events.append(ChangeEvent(
                    tenant_id=tenant_id,
                    source_name=source_name,
                    natural_key=key,
                    title=previous.title,
                    change_type=ChangeType.REMOVED,
                    old_price=previous.price,
                    new_price=None,
                    detected_at=detected_at,
                ))
                result.removed_items.append(previous.mark_sold(detected_at))

        self.logger.info(
            "changes_detected",
            tenant_id=tenant_id,
            source_name=source_name,
            stored=len(stored),
            fresh=len(fresh),
            **{k.lower(): v for k, v in result.counts.items()},
        )
        return result
