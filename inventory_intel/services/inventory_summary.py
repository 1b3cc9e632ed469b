"""Aggregate statistics over a set of canonical items."""

from collections import Counter, defaultdict
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

from inventory_intel.scrapers.base import CanonicalItem

UNKNOWN = "Unknown"


def build_summary(items: Iterable[CanonicalItem], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Summarize items by status, type, make and location, with price statistics.

    Counts are ordered by frequency, most common first. Items without a
    value for a dimension count as "Unknown". Averages are rounded to
    whole dollars.

    Args:
        items: Items to summarize
        now: generatedAt timestamp (defaults to current UTC time)

    Returns:
        JSON-serializable summary dict
    """
    items = list(items)
    priced = [item for item in items if item.price is not None and item.price > 0]

    prices_by_type: Dict[str, List[Decimal]] = defaultdict(list)
    for item in priced:
        prices_by_type[item.type or UNKNOWN].append(item.price)

    return {
        "totalCount": len(items),
        "byStatus": _count_by(items, "status"),
        "byType": _count_by(items, "type"),
        "byMake": _count_by(items, "make"),
        "byLocation": _count_by(items, "location"),
        "priceStats": {
            **_price_stats([item.price for item in priced]),
            "byType": {
                type_: {**_price_stats(prices), "count": len(prices)}
                for type_, prices in prices_by_type.items()
            },
        },
        "generatedAt": (now or datetime.now(timezone.utc)).isoformat(),
    }


def _count_by(items: List[CanonicalItem], attribute: str) -> Dict[str, int]:
    counts = Counter(getattr(item, attribute) or UNKNOWN for item in items)
    return dict(counts.most_common())


def _price_stats(prices: List[Decimal]) -> Dict[str, Optional[float]]:
    if not prices:
        return {"min": None, "max": None, "avg": None}
    average = (sum(prices) / len(prices)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return {
        "min": float(min(prices)),
        "max": float(max(prices)),
        "avg": float(average),
    }
