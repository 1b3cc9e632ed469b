"""TrailerFunnel inventory API adapter.

The dealer page embeds a short-lived API token in an inline script
(``apiToken = "..."``). The token is read fresh on every run, then the
inventory API is queried once with it as a bearer token.

Config:
    apiUrl: Inventory API endpoint
    limit: Items requested (default 250)
    locationFilter: Extra query params restricting results to one lot
"""

import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from inventory_intel.core.exceptions import StructuralMismatchError
from inventory_intel.models.scrape_target import ScrapeTarget
from inventory_intel.scrapers.base import BaseAdapter, RawListing
from inventory_intel.scrapers.utils.normalizer import title_case


DEFAULT_API_URL = "https://inventory.trailerfunnel.com/api/v1/items"
DEFAULT_LIMIT = 250

_TOKEN_RE = re.compile(r'apiToken\s*=\s*"([^"]+)"')


class TrailerFunnelAdapter(BaseAdapter):
    """Token-gated API adapter for TrailerFunnel-powered dealer sites."""

    platform_kind = "trailerfunnel"

    async def extract(self, target: ScrapeTarget) -> List[Dict[str, Any]]:
        self.reset()
        config = target.config or {}
        api_url = config.get("apiUrl") or DEFAULT_API_URL
        limit = self._config_int(target, "limit", DEFAULT_LIMIT)

        page_response = await self.fetcher.get(target.inventory_url)
        token = self._find_token(page_response.text)
        if not token:
            raise StructuralMismatchError(
                self.platform_kind,
                "API token not found in inline scripts; the page structure may have changed",
            )
        self.logger.debug("api_token_extracted", source_name=target.source_name, token_prefix=token[:10])

        params: Dict[str, Any] = {
            "page": 1,
            "limit": limit,
            "sort": "relevance",
            "with_filters": 1,
        }
        params.update(config.get("locationFilter") or {})

        response = await self.fetcher.get(
            api_url,
            params=params,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
        )

        try:
            payload = response.json()
        except ValueError as e:
            raise StructuralMismatchError(self.platform_kind, "API response is not JSON") from e

        items = payload.get("data") if isinstance(payload, dict) else None
        if items is None:
            items = []
        if not isinstance(items, list):
            raise StructuralMismatchError(self.platform_kind, "API 'data' field is not a list")

        self.logger.info("adapter_extract_complete", source_name=target.source_name, count=len(items))
        return items

    @staticmethod
    def _find_token(html: str) -> Optional[str]:
        soup = BeautifulSoup(html, "html.parser")
        for script in soup.find_all("script"):
            if script.get("src"):
                continue
            match = _TOKEN_RE.search(script.string or script.get_text() or "")
            if match:
                return match.group(1)
        return None

    def to_listing(self, raw: Dict[str, Any], target: ScrapeTarget) -> RawListing:
        details = raw.get("details") or {}
        attributes = raw.get("attributes") or {}
        category = raw.get("item_category") or {}

        floor_length = _positive_int(details.get("floor_length"))
        floor_width = _positive_int(details.get("floor_width"))

        size = None
        if floor_width and floor_length:
            size = f"{_format_feet(floor_width / 12)}x{round(floor_length / 12)}"

        specs: Dict[str, Any] = {
            "pullType": attributes.get("pull_type"),
            "construction": attributes.get("construction"),
            "axles": attributes.get("axles"),
            "suspensionType": attributes.get("suspension_type"),
            "color": attributes.get("color"),
            "weight": details.get("weight"),
            "payloadCapacity": details.get("payload_capacity"),
        }
        if attributes.get("ramps") is not None:
            specs["ramps"] = "Yes" if attributes["ramps"] else "No"
        if floor_length:
            specs["floorLength"] = f"{round(floor_length / 12)}ft"
        if floor_width:
            specs["floorWidth"] = f"{floor_width}in"

        manufacturer = raw.get("manufacturer")

        return RawListing(
            stock_number=raw.get("stock"),
            vin=raw.get("vin"),
            title=raw.get("title"),
            year=str(raw["year"]) if raw.get("year") else None,
            make=title_case(manufacturer) if manufacturer else None,
            model=raw.get("model_name"),
            type=category.get("name"),
            size=size,
            price=details.get("displayed_web_price"),
            msrp=details.get("msrp"),
            sale_price=details.get("sales_price"),
            gvwr=details.get("gvwr"),
            condition=raw.get("condition"),
            source_status=raw.get("status"),
            url=target.inventory_url,
            specs=specs,
        )


def _positive_int(value: Any) -> Optional[int]:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _format_feet(value: float) -> str:
    rounded = round(value, 1)
    return str(int(rounded)) if rounded == int(rounded) else str(rounded)
