"""Field canonicalization: price parsing, type/make normalization, title inference."""

import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import urlparse

import structlog

from inventory_intel.core.exceptions import ParseWarning
from inventory_intel.models.scrape_target import ScrapeTarget
from inventory_intel.scrapers.base import CanonicalItem, RawListing

logger = structlog.get_logger(__name__)


FALLBACK_TITLE = "Unknown Trailer"

# Free-text trailer type -> canonical type
TYPE_SYNONYMS: Dict[str, str] = {
    # Utility
    "utility trailer": "Utility",
    "utility": "Utility",
    "landscape trailer": "Utility",
    "landscape": "Utility",
    "pipe top utility": "Utility",
    # Enclosed
    "enclosed trailer": "Enclosed",
    "enclosed": "Enclosed",
    "cargo trailer": "Enclosed",
    "cargo": "Enclosed",
    "cargo/enclosed": "Enclosed",
    "enclosed cargo": "Enclosed",
    "vending trailer": "Enclosed",
    "concession trailer": "Enclosed",
    # Dump
    "dump trailer": "Dump",
    "dump": "Dump",
    "low profile dump": "Dump",
    "dump equipment": "Dump",
    # Equipment / Flatbed
    "equipment trailer": "Equipment",
    "equipment": "Equipment",
    "flatbed trailer": "Flatbed",
    "flatbed": "Flatbed",
    "deckover": "Flatbed",
    "deckover equipment": "Flatbed",
    "tilt": "Tilt",
    "tilt trailer": "Tilt",
    # Gooseneck
    "gooseneck trailer": "Gooseneck",
    "gooseneck": "Gooseneck",
    "gooseneck dump": "Gooseneck Dump",
    "gooseneck equipment": "Gooseneck Equipment",
    "gooseneck flatbed": "Gooseneck Flatbed",
    # Car hauler
    "car hauler": "Car Hauler",
    "car hauler trailer": "Car Hauler",
    "auto transport": "Car Hauler",
    # Livestock
    "livestock trailer": "Livestock",
    "livestock": "Livestock",
    "horse trailer": "Livestock",
    # Aluminum
    "aluminum trailer": "Aluminum",
    "aluminum": "Aluminum",
}

# Longest first so multi-word makes win over their prefixes
KNOWN_MAKES: List[str] = sorted(
    [
        "Superior Trailers Of GA, Inc",
        "Superior Trailers",
        "Quality Cargo",
        "Continental Cargo",
        "Rock Solid Cargo",
        "Quality Of Ohio",
        "Pace American",
        "Down 2 Earth",
        "Covered Wagon",
        "PJ Trailers",
        "Load Trail",
        "Diamond C",
        "Stehl Tow",
        "Cargo Pro",
        "Sure-Trac",
        "Carry-On",
        "Big Tex",
        "Iron Bull",
        "East Texas",
        "Top Hat",
        "Maxx-D",
        "Maxxd",
        "Air-Tow",
        "Nexhaul",
        "Cynergy",
        "Southland",
        "Nolan",
        "Bedrock",
        "Horizon",
        "Freedom",
        "Gatormade",
        "New River",
        "Kaufman",
        "Bravo",
        "Haulmark",
        "Spartan",
        "Caliber",
        "Hooper",
        "Homemade",
        "Look Trailers",
    ],
    key=len,
    reverse=True,
)

TYPE_PATTERNS = [
    (re.compile(r"\bcar\s*hauler\b", re.I), "Car Hauler"),
    (re.compile(r"\bgooseneck\b", re.I), "Gooseneck"),
    (re.compile(r"\benclosed\b", re.I), "Enclosed"),
    (re.compile(r"\bcargo\b", re.I), "Enclosed"),
    (re.compile(r"\bconcession\b", re.I), "Enclosed"),
    (re.compile(r"\bvending\b", re.I), "Enclosed"),
    (re.compile(r"\butility\b", re.I), "Utility"),
    (re.compile(r"\blandscape\b", re.I), "Utility"),
    (re.compile(r"\bdump\b", re.I), "Dump"),
    (re.compile(r"\bequipment\b", re.I), "Equipment"),
    (re.compile(r"\bflatbed\b", re.I), "Flatbed"),
    (re.compile(r"\btilt\b", re.I), "Tilt"),
    (re.compile(r"\btruck\s*bed\b", re.I), "Truck Bed"),
    (re.compile(r"\broll.off\b", re.I), "Roll-Off"),
    (re.compile(r"\bdrop\s*deck\b", re.I), "Drop Deck"),
    (re.compile(r"\btow\s*dolly\b", re.I), "Tow Dolly"),
    (re.compile(r"\blivestock\b", re.I), "Livestock"),
    (re.compile(r"\baluminum\b", re.I), "Aluminum"),
]

_YEAR_RE = re.compile(r"\b(?:19|20)\d{2}\b")
_SIZE_RE = re.compile(r"\b(\d+(?:\.\d+)?)\s*[xX]\s*(\d+(?:\.\d+)?)\b")
_MODEL_RE = re.compile(r"^([A-Z0-9][\w-]*(?:\s+[A-Z0-9][\w-]*)?)")
_PRICE_STRIP_RE = re.compile(r"[$€£¥,\s]")
_LEADING_NUMBER_RE = re.compile(r"^[-+]?(?:\d+(?:\.\d*)?|\.\d+)")
CENT = Decimal("0.01")


def title_case(text: str) -> str:
    """Lower-case then capitalize each space-separated word."""
    return " ".join(w[:1].upper() + w[1:] for w in text.lower().split(" "))


def parse_price(raw: Any, cents: bool = False) -> Optional[Decimal]:
    """Parse a price string or number into a positive Decimal.

    Handles formats like "$12,345", "12345.00", 12345 and cents strings
    ("1234500" with cents=True). Text after the leading number is ignored.
    The result is rounded to whole cents; values that round to zero or below,
    and unparsable values, become None, never zero.

    Args:
        raw: Raw price value
        cents: Treat the value as an integer amount of cents

    Returns:
        Decimal price > 0, or None
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, (int, float, Decimal)):
        text = str(raw)
    else:
        # Trailing markers such as "*" or "+ tax" are ignored
        match = _LEADING_NUMBER_RE.match(_PRICE_STRIP_RE.sub("", str(raw)))
        text = match.group(0) if match else ""

    if not text:
        return None

    try:
        value = Decimal(text)
    except InvalidOperation:
        return None

    if not value.is_finite():
        return None
    if cents:
        value = value / 100
    try:
        value = value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
    if value <= 0:
        return None
    return value


def normalize_type(raw: Optional[str], synonyms: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Map free-text type to a canonical type, falling back to title case."""
    if not raw or not raw.strip():
        return None
    table = TYPE_SYNONYMS if synonyms is None else synonyms
    key = raw.lower().strip()
    return table.get(key) or title_case(raw.strip())


def normalize_make(raw: Optional[str]) -> Optional[str]:
    if not raw or not raw.strip():
        return None
    return title_case(raw.strip())


def build_title(
    year: Optional[str] = None,
    make: Optional[str] = None,
    model: Optional[str] = None,
    size: Optional[str] = None,
    type_: Optional[str] = None,
) -> str:
    """Join year, make, model-or-size and type into a display title."""
    parts = [p for p in (year, make, model or size, type_) if p]
    return " ".join(parts) or FALLBACK_TITLE


def derive_natural_key(listing: RawListing) -> Optional[str]:
    """Stock number, else a VIN-, id- or URL-derived surrogate."""
    stock = _clean(listing.get("stock_number"))
    if stock:
        return stock

    vin = _clean(listing.get("vin"))
    if vin:
        return f"vin-{vin.upper()}"

    external_id = _clean(listing.get("external_id"))
    if external_id:
        return f"id-{external_id}"

    url = _clean(listing.get("url"))
    if url:
        segment = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
        if segment:
            return f"url-{segment}"

    return None


class TitleParser:
    """Infers year, make, model, size and type from a free-text listing title."""

    def __init__(self, known_makes: Optional[List[str]] = None):
        makes = known_makes if known_makes is not None else KNOWN_MAKES
        self.known_makes = sorted(makes, key=len, reverse=True)

    def parse(self, title: Optional[str]) -> Dict[str, str]:
        if not title:
            return {}

        result: Dict[str, str] = {}

        year_match = _YEAR_RE.search(title)
        rest = title
        if year_match:
            result["year"] = year_match.group(0)
            rest = (title[:year_match.start()] + title[year_match.end():]).strip()

        for known in self.known_makes:
            if rest.lower().startswith(known.lower()):
                result["make"] = known
                rest = rest[len(known):].strip(" ,")
                break

        size_match = _SIZE_RE.search(rest)
        if size_match:
            result["size"] = f"{size_match.group(1)}x{size_match.group(2)}"
            before_size = rest[:size_match.start()].strip(" ,")
            if before_size and len(before_size) < 30:
                result["model"] = before_size
        elif "make" in result:
            model_match = _MODEL_RE.match(rest)
            if model_match:
                result["model"] = model_match.group(1).strip()

        for pattern, canonical in TYPE_PATTERNS:
            if pattern.search(title):
                result["type"] = canonical
                break

        if re.search(r"\bgooseneck\b", title, re.I):
            result["pullType"] = "Gooseneck"
        elif re.search(r"\bbumper\s*pull\b", title, re.I):
            result["pullType"] = "Bumper Pull"

        return result


ListingMapper = Callable[[Dict[str, Any], ScrapeTarget], RawListing]


class FieldNormalizer:
    """Turns an adapter's raw records into deduplicated CanonicalItems.

    Steps, in order: drop records without a natural key, parse prices,
    canonicalize type via the source synonym table, title-case make,
    build a display title when missing, deduplicate by natural key
    (last occurrence wins).
    """

    def __init__(
        self,
        mapper: ListingMapper,
        synonyms: Optional[Mapping[str, str]] = None,
        title_parser: Optional[TitleParser] = None,
    ):
        self.mapper = mapper
        self.synonyms = dict(TYPE_SYNONYMS)
        if synonyms:
            self.synonyms.update({k.lower().strip(): v for k, v in synonyms.items()})
        self.title_parser = title_parser or TitleParser()
        self.skipped = 0
        self.dropped_without_key = 0
        self.logger = logger.bind(service="field_normalizer")

    def normalize(self, raw_records: List[Dict[str, Any]], target: ScrapeTarget) -> List[CanonicalItem]:
        """Normalize one batch of raw records for a target.

        Args:
            raw_records: Records returned by the adapter's extract()
            target: Target the records were extracted from

        Returns:
            CanonicalItems with unique natural keys
        """
        self.skipped = 0
        self.dropped_without_key = 0
        now = datetime.now(timezone.utc)

        synonyms = dict(self.synonyms)
        extra = (target.config or {}).get("typeSynonyms") or {}
        synonyms.update({str(k).lower().strip(): str(v) for k, v in extra.items()})

        by_key: Dict[str, CanonicalItem] = {}

        for index, raw in enumerate(raw_records):
            try:
                listing = self.mapper(raw, target)
                item = self._to_item(listing, target, synonyms, now)
            except (ParseWarning, ValueError, TypeError, KeyError, AttributeError) as e:
                self.skipped += 1
                self.logger.warning(
                    "record_skipped",
                    source_name=target.source_name,
                    index=index,
                    error=str(e),
                )
                continue

            if item is None:
                self.dropped_without_key += 1
                continue

            by_key[item.natural_key] = item

        items = list(by_key.values())
        duplicates = len(raw_records) - self.skipped - self.dropped_without_key - len(items)

        self.logger.info(
            "records_normalized",
            source_name=target.source_name,
            raw_count=len(raw_records),
            item_count=len(items),
            skipped=self.skipped,
            dropped_without_key=self.dropped_without_key,
            duplicates=duplicates,
        )
        return items

    def _to_item(
        self,
        listing: RawListing,
        target: ScrapeTarget,
        synonyms: Mapping[str, str],
        now: datetime,
    ) -> Optional[CanonicalItem]:
        natural_key = derive_natural_key(listing)
        if not natural_key:
            return None

        supplied_title = _clean(listing.get("title"))
        parsed = self.title_parser.parse(supplied_title)

        if listing.get("price_cents") not in (None, ""):
            price = parse_price(listing.get("price_cents"), cents=True)
        else:
            price = parse_price(listing.get("price"))

        year = _clean(listing.get("year")) or parsed.get("year")
        make = normalize_make(_clean(listing.get("make")) or parsed.get("make"))
        model = _clean(listing.get("model")) or parsed.get("model")
        size = _clean(listing.get("size")) or parsed.get("size")
        type_ = normalize_type(_clean(listing.get("type")) or parsed.get("type"), synonyms)

        specs = {
            str(k): str(v).strip()
            for k, v in (listing.get("specs") or {}).items()
            if v is not None and str(v).strip()
        }
        if "pullType" in parsed and "pullType" not in specs:
            specs["pullType"] = parsed["pullType"]
        source_status = _clean(listing.get("source_status"))
        if source_status and source_status.lower() != "available":
            specs["sourceStatus"] = source_status

        vin = _clean(listing.get("vin"))

        return CanonicalItem(
            tenant_id=target.tenant_id,
            source_name=target.source_name,
            natural_key=natural_key,
            title=supplied_title or build_title(year, make, model, size, type_),
            observed_at=now,
            year=year,
            make=make,
            model=model,
            type=type_,
            size=size,
            price=price,
            msrp=parse_price(listing.get("msrp")),
            sale_price=parse_price(listing.get("sale_price")),
            gvwr=_clean(listing.get("gvwr")),
            vin=vin.upper() if vin else None,
            condition=_clean(listing.get("condition")),
            location=_clean(listing.get("location")),
            specs=specs,
            source_url=_clean(listing.get("url")),
        )


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
