"""WooCommerce Store API adapter.

Paginates the public Store API of a WooCommerce dealer site:
GET {base_url}/wp-json/wc/store/v1/products?per_page=100&page=N

Prices in the Store API are integer cents serialized as strings.

Config:
    apiPath: Store API path (default /wp-json/wc/store/v1/products)
    perPage: Page size (default 100)
"""

import re
from typing import Any, Dict, List, Optional

from inventory_intel.core.exceptions import NetworkError, StructuralMismatchError
from inventory_intel.models.scrape_target import ScrapeTarget
from inventory_intel.scrapers.base import BaseAdapter, RawListing
from inventory_intel.scrapers.utils.normalizer import parse_price


DEFAULT_API_PATH = "/wp-json/wc/store/v1/products"
DEFAULT_PER_PAGE = 100
MAX_EMPTY_PAGES = 2

_GVWR_RE = re.compile(r"(\d+(?:\.\d+)?)\s*[kK]\s*(?:GVWR|gvwr)?")


class WooCommerceAdapter(BaseAdapter):
    """Paginated REST adapter for WooCommerce Store API dealers."""

    platform_kind = "woocommerce"

    # WooCommerce category names -> canonical type
    category_synonyms = {
        "enclosed trailers": "Enclosed",
        "cargo / enclosed trailer": "Enclosed",
        "car haulers": "Car Hauler",
        "car hauler trailers": "Car Hauler",
        "car / racing trailer": "Car Hauler",
        "dump trailers": "Dump",
        "utility trailers": "Utility",
        "landscape / utility trailers": "Utility",
        "equipment trailers": "Equipment",
        "flatbed trailers": "Flatbed",
        "gooseneck trailers": "Gooseneck",
        "truck beds": "Truck Bed",
        "tilt trailers": "Tilt",
        "livestock trailers": "Livestock",
        "stock / stock combo trailer": "Livestock",
        "roll-off trailers": "Roll-Off",
        "drop deck trailers": "Drop Deck",
        "tow dolly": "Tow Dolly",
        "specialty trailers": "Specialty",
        "farm / ranch": "Farm/Ranch",
        "used trailer": "Used",
        "used trailers": "Used",
    }

    async def extract(self, target: ScrapeTarget) -> List[Dict[str, Any]]:
        self.reset()
        config = target.config or {}
        api_path = config.get("apiPath") or DEFAULT_API_PATH
        per_page = self._config_int(target, "perPage", DEFAULT_PER_PAGE)
        url = f"{target.base_url.rstrip('/')}{api_path}"

        products: List[Dict[str, Any]] = []
        page = 1
        pages_read = 0
        empty_pages = 0

        while True:
            try:
                response = await self.fetcher.get(url, params={"per_page": per_page, "page": page})
            except NetworkError as e:
                if pages_read == 0:
                    raise
                self._warn(
                    "woocommerce_page_failed",
                    incomplete=True,
                    source_name=target.source_name,
                    page=page,
                    error=str(e),
                )
                break

            try:
                batch = response.json()
            except ValueError as e:
                raise StructuralMismatchError(self.platform_kind, f"page {page} is not JSON") from e
            if not isinstance(batch, list):
                raise StructuralMismatchError(
                    self.platform_kind,
                    f"expected a product list on page {page}, got {type(batch).__name__}",
                )
            pages_read += 1

            if not batch:
                empty_pages += 1
                if empty_pages >= MAX_EMPTY_PAGES:
                    break
                page += 1
                continue

            empty_pages = 0
            products.extend(batch)

            if len(batch) < per_page:
                break
            page += 1

        self.logger.info(
            "adapter_extract_complete",
            source_name=target.source_name,
            count=len(products),
            pages=pages_read,
        )
        return products

    def to_listing(self, raw: Dict[str, Any], target: ScrapeTarget) -> RawListing:
        title = (raw.get("name") or "").strip()
        prices = raw.get("prices") or {}
        categories = raw.get("categories") or []
        category = (categories[0].get("name") or "") if categories else ""
        attributes = _attribute_terms(raw.get("attributes"))

        sale_cents = prices.get("sale_price")
        price_cents = sale_cents or prices.get("price")

        specs: Dict[str, Any] = {}
        if attributes.get("length"):
            specs["floorLength"] = attributes["length"]

        return RawListing(
            stock_number=raw.get("sku"),
            external_id=str(raw["id"]) if raw.get("id") is not None else None,
            title=title,
            type=category if category.lower() in self.category_synonyms else None,
            price_cents=price_cents,
            msrp=parse_price(prices.get("regular_price"), cents=True),
            sale_price=parse_price(sale_cents, cents=True) if raw.get("on_sale") else None,
            gvwr=_gvwr_from_title(title),
            condition=attributes.get("condition"),
            location=attributes.get("location"),
            source_status=None if raw.get("is_in_stock", True) else "Out of stock",
            url=raw.get("permalink") or f"{target.base_url.rstrip('/')}/?p={raw.get('id')}",
            specs=specs,
        )


def _attribute_terms(attributes: Optional[List[Dict[str, Any]]]) -> Dict[str, str]:
    """First term name of each product attribute, keyed by lower-cased attribute name."""
    result: Dict[str, str] = {}
    for attr in attributes or []:
        name = (attr.get("name") or "").lower()
        terms = attr.get("terms") or []
        value = terms[0].get("name") if terms else None
        if name and value:
            result[name] = value
    return result


def _gvwr_from_title(title: str) -> Optional[str]:
    match = _GVWR_RE.search(title)
    if not match:
        return None
    return f"{int(float(match.group(1)) * 1000):,}"
