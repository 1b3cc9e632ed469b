"""DealSector admin-ajax adapter.

DealSector dealer sites render inventory server-side through a WordPress
AJAX action. The inventory page reports the total record count in
``#record_total``; a single POST with a large limit then returns every
listing as an HTML fragment.

Fragment structure, anchored on the stock number:
  - p.has-text-align-center strong       "Stock # ABC123"
  - closest .wp-block-column .tb-details  th/td rows (Year, Condition, Size, VIN)
  - closest .wp-block-columns, previous non-<hr> sibling:
      a[href*=view-detail-page]            title + detail URL
      .has-text-align-right strong span    price

Config:
    limit: Records requested in the single POST (default 1000)
    templateId: DealSector template id (default 143)
"""

import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, Tag

from inventory_intel.core.exceptions import StructuralMismatchError
from inventory_intel.models.scrape_target import ScrapeTarget
from inventory_intel.scrapers.base import BaseAdapter, RawListing
from inventory_intel.scrapers.utils.normalizer import title_case


AJAX_PATH = "/wp-admin/admin-ajax.php"
DEFAULT_LIMIT = 1000
DEFAULT_TEMPLATE_ID = "143"
UNDERCOUNT_RATIO = 0.9

_STOCK_RE = re.compile(r"Stock\s*#\s*(\S+)")
_LENGTH_RE = re.compile(r"(\d+)'")
_NON_DIGIT_RE = re.compile(r"\D")
_MULTI_WORD_MAKES = re.compile(r"^(DIAMOND C|BIG TEX|LOAD TRAIL|DOWN 2|SURE.TRAC|IRON BULL|TOP HAT)", re.I)
_EXTRA_TYPES = [
    (re.compile(r"\bGOLF\s*CART\b", re.I), "Golf Cart"),
    (re.compile(r"\bATV\b", re.I), "ATV"),
]


class DealSectorAdapter(BaseAdapter):
    """Server-rendered AJAX adapter for DealSector dealer sites."""

    platform_kind = "dealsector"

    async def extract(self, target: ScrapeTarget) -> List[Dict[str, Any]]:
        self.reset()
        config = target.config or {}
        limit = self._config_int(target, "limit", DEFAULT_LIMIT)
        template_id = str(config.get("templateId") or DEFAULT_TEMPLATE_ID)

        page_response = await self.fetcher.get(target.inventory_url)
        total_records = self._record_total(page_response.text)
        self.logger.info("record_total_found", source_name=target.source_name, total=total_records)

        response = await self.fetcher.post(
            f"{target.base_url.rstrip('/')}{AJAX_PATH}",
            data=self._form_fields(limit, template_id),
            headers={
                "X-Requested-With": "XMLHttpRequest",
                "Referer": target.inventory_url,
            },
        )

        html = response.text
        if not html or not html.strip():
            self.logger.info("adapter_extract_complete", source_name=target.source_name, count=0)
            return []

        listings = self.parse_listings(html)

        if total_records > 0 and len(listings) < total_records * UNDERCOUNT_RATIO:
            self._warn(
                "listing_undercount",
                incomplete=True,
                source_name=target.source_name,
                parsed=len(listings),
                reported=total_records,
            )

        self.logger.info(
            "adapter_extract_complete",
            source_name=target.source_name,
            count=len(listings),
            reported=total_records,
        )
        return listings

    def _record_total(self, html: str) -> int:
        soup = BeautifulSoup(html, "html.parser")
        element = soup.find(id="record_total")
        if element is None:
            raise StructuralMismatchError(self.platform_kind, "#record_total marker not found on inventory page")
        # "1,234" and "1234 units" both read as 1234
        digits = _NON_DIGIT_RE.sub("", element.get_text(strip=True))
        return int(digits) if digits else 0

    @staticmethod
    def _form_fields(limit: int, template_id: str) -> Dict[str, str]:
        return {
            "action": "dealsector_filter_inventorys",
            "version": "v2",
            "product_type": "1",
            "limit": str(limit),
            "start": "0",
            "template_id": template_id,
            "isslider": "0",
            "isRental": "false",
            "detail_page_link": "view-detail-page",
            "dealerLoginStatus": "off",
            "allfields": "modelYear,condition,lengthFtIn,widthFtIn,vin",
            "stockNo": "",
            "search": "",
            "price_sort": "",
            "price_range": "",
            "condition": "",
            "category": "",
            "make": "",
        }

    @staticmethod
    def parse_listings(html: str) -> List[Dict[str, str]]:
        """Parse the AJAX HTML fragment into flat listing dicts."""
        soup = BeautifulSoup(html, "html.parser")
        listings = []

        for stock_el in soup.select("p.has-text-align-center strong"):
            match = _STOCK_RE.search(stock_el.get_text(strip=True))
            if not match:
                continue

            container = stock_el.find_parent(class_="wp-block-column")
            details = _detail_rows(container)

            title = price = url = ""
            title_row = _title_row(container)
            if title_row is not None:
                link = title_row.select_one('a[href*="view-detail-page"]')
                if link:
                    title = link.get_text(strip=True)
                    url = link.get("href") or ""
                price_el = title_row.select_one(".has-text-align-right strong span")
                if price_el:
                    price = price_el.get_text(strip=True)

            listings.append({
                "stock": match.group(1),
                "title": title,
                "price": price,
                "url": url,
                "year": details.get("Year", ""),
                "condition": details.get("Condition", ""),
                "size": details.get("Size", ""),
                "vin": details.get("VIN", ""),
            })

        return listings

    def to_listing(self, raw: Dict[str, Any], target: ScrapeTarget) -> RawListing:
        title = raw.get("title") or ""
        make, model = _make_and_model(title)

        type_ = None
        for pattern, canonical in _EXTRA_TYPES:
            if pattern.search(title):
                type_ = canonical
                break

        specs = {}
        length = _LENGTH_RE.search(raw.get("size") or "")
        if length:
            specs["floorLength"] = f"{length.group(1)}ft"

        return RawListing(
            stock_number=raw.get("stock"),
            vin=raw.get("vin"),
            title=title,
            year=raw.get("year"),
            make=make,
            model=model,
            type=type_,
            size=raw.get("size"),
            price=raw.get("price"),
            condition=raw.get("condition"),
            url=self._absolute_url(target, raw.get("url")),
            specs=specs,
        )


def _detail_rows(container: Optional[Tag]) -> Dict[str, str]:
    details: Dict[str, str] = {}
    if container is None:
        return details
    table = container.select_one(".tb-details")
    if table is None:
        return details
    for row in table.select("tr"):
        th = row.find("th")
        td = row.find("td")
        if th and td:
            details[th.get_text(strip=True).replace(":", "")] = td.get_text(strip=True)
    return details


def _title_row(container: Optional[Tag]) -> Optional[Tag]:
    if container is None:
        return None
    columns_row = container.find_parent(class_="wp-block-columns")
    if columns_row is None:
        return None
    sibling = columns_row.find_previous_sibling()
    while sibling is not None and sibling.name == "hr":
        sibling = sibling.find_previous_sibling()
    return sibling


def _make_and_model(title: str):
    """DealSector titles lead with the make ("DIAMOND C 8X35+5 GOOSENECK ...")."""
    words = title.split()
    if len(words) >= 2:
        two_words = f"{words[0]} {words[1]}"
        if _MULTI_WORD_MAKES.match(two_words):
            return title_case(two_words), " ".join(words[2:4]) or None
        return title_case(words[0]), " ".join(words[1:3]) or None
    if len(words) == 1:
        return title_case(words[0]), None
    return None, None
