"""Base platform adapter interface and canonical inventory types.

Every platform family (WooCommerce store API, TrailerFunnel API, DealSector
AJAX, FacetWP) is a BaseAdapter subclass registered with the AdapterFactory
under its platform kind.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, TypedDict
from urllib.parse import urljoin

import structlog

from inventory_intel.core.exceptions import ConfigError
from inventory_intel.models.scrape_target import ScrapeTarget
from inventory_intel.scrapers.utils.retry import RetryingFetcher


STATUS_AVAILABLE = "Available"
STATUS_SOLD = "Sold"


class RawListing(TypedDict, total=False):
    """Uniform field bag an adapter maps each raw record into.

    Values are still unparsed source text; the FieldNormalizer turns
    them into a CanonicalItem.
    """

    stock_number: Optional[str]
    vin: Optional[str]
    external_id: Optional[str]
    title: Optional[str]
    year: Optional[str]
    make: Optional[str]
    model: Optional[str]
    type: Optional[str]
    size: Optional[str]
    price: Any
    price_cents: Any
    msrp: Any
    sale_price: Any
    gvwr: Optional[str]
    condition: Optional[str]
    location: Optional[str]
    source_status: Optional[str]
    url: Optional[str]
    specs: Dict[str, Any]


@dataclass
class CanonicalItem:
    """Normalized inventory unit produced for every source platform."""

    tenant_id: str
    source_name: str
    natural_key: str  # Stock number or surrogate, unique per (tenant, source)
    title: str
    observed_at: datetime
    year: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    type: Optional[str] = None
    size: Optional[str] = None
    price: Optional[Decimal] = None
    msrp: Optional[Decimal] = None
    sale_price: Optional[Decimal] = None
    gvwr: Optional[str] = None
    vin: Optional[str] = None
    condition: Optional[str] = None
    location: Optional[str] = None
    status: str = STATUS_AVAILABLE
    specs: Dict[str, str] = field(default_factory=dict)
    source_url: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.natural_key:
            raise ValueError("natural_key is required")
        if self.price is not None and self.price <= 0:
            raise ValueError("price must be None or greater than zero")
        if self.status not in (STATUS_AVAILABLE, STATUS_SOLD):
            raise ValueError(f"Invalid status: {self.status}")
        if self.updated_at is None:
            self.updated_at = self.observed_at

    def mark_sold(self, at: datetime) -> "CanonicalItem":
        """Copy of this item transitioned to Sold."""
        return replace(self, status=STATUS_SOLD, updated_at=at)

    def to_row(self) -> Dict[str, Any]:
        """Column mapping for the competitor_inventory table."""
        return asdict(self)

    def to_record(self) -> Dict[str, Any]:
        """Canonical output record for file exports and reports."""
        return {
            "sourceName": self.source_name,
            "naturalKey": self.natural_key,
            "title": self.title,
            "make": self.make,
            "model": self.model,
            "type": self.type,
            "size": self.size,
            "price": _as_float(self.price),
            "msrp": _as_float(self.msrp),
            "salePrice": _as_float(self.sale_price),
            "gvwr": self.gvwr,
            "vin": self.vin,
            "condition": self.condition,
            "location": self.location,
            "status": self.status,
            "specs": dict(self.specs),
            "sourceUrl": self.source_url,
            "observedAt": self.observed_at.isoformat(),
        }


def _as_float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


class BaseAdapter(ABC):
    """Abstract base class for platform adapters.

    extract() returns raw records in the platform's native shape. They are
    opaque to the rest of the pipeline except for to_listing(), the paired
    mapping the FieldNormalizer calls once per record.

    extract() must return an empty list when a source legitimately has no
    listings, and raise when the source is unreachable (NetworkError) or its
    expected markers are missing (StructuralMismatchError).
    """

    platform_kind: str = ""  # Must be overridden in subclass (e.g., "woocommerce")
    required_config: Tuple[str, ...] = ()
    category_synonyms: Dict[str, str] = {}  # Source taxonomy -> canonical type

    def __init__(self, fetcher: RetryingFetcher):
        self.fetcher = fetcher
        self.logger = structlog.get_logger(__name__).bind(adapter=self.platform_kind)
        self.warnings: List[str] = []
        self.possibly_incomplete = False

    @abstractmethod
    async def extract(self, target: ScrapeTarget) -> List[Dict[str, Any]]:
        """Fetch every raw listing currently published by the target.

        Args:
            target: Scrape target to poll

        Returns:
            List of raw platform records

        Raises:
            NetworkError: If the source is unreachable after retries
            StructuralMismatchError: If the page no longer has the expected shape
        """

    @abstractmethod
    def to_listing(self, raw: Dict[str, Any], target: ScrapeTarget) -> RawListing:
        """Map one raw platform record into the uniform RawListing fields."""

    def validate_config(self, target: ScrapeTarget) -> None:
        """Fail before any network call when required settings are missing.

        Raises:
            ConfigError: If base_url or a required config key is missing
        """
        if not target.base_url:
            raise ConfigError("base_url is required", source_name=target.source_name)
        config = target.config or {}
        missing = [key for key in self.required_config if config.get(key) in (None, "")]
        if missing:
            raise ConfigError(
                f"missing required config for {self.platform_kind}: {', '.join(missing)}",
                source_name=target.source_name,
            )

    def reset(self) -> None:
        """Clear per-run warning state."""
        self.warnings = []
        self.possibly_incomplete = False

    def _warn(self, event: str, incomplete: bool = False, **context: Any) -> None:
        self.warnings.append(event)
        if incomplete:
            self.possibly_incomplete = True
        self.logger.warning(event, **context)

    @staticmethod
    def _config_int(target: ScrapeTarget, key: str, default: int) -> int:
        value = (target.config or {}).get(key)
        if value in (None, ""):
            return default
        try:
            number = int(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"config '{key}' must be an integer, got {value!r}", source_name=target.source_name) from e
        if number <= 0:
            raise ConfigError(f"config '{key}' must be positive, got {number}", source_name=target.source_name)
        return number

    @staticmethod
    def _absolute_url(target: ScrapeTarget, href: Optional[str]) -> Optional[str]:
        if not href:
            return None
        return urljoin(target.base_url.rstrip("/") + "/", href)
