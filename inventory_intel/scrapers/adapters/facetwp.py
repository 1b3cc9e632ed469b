"""FacetWP faceted-search adapter.

WordPress sites using the FacetWP plugin publish their facet setup as a
``FWP_JSON`` object in an inline script. Inventory is fetched by POSTing
``facetwp_refresh`` to the advertised ajaxurl with every facet cleared,
then walking the pager. Each page returns rendered card HTML.

Config:
    locationId: Location facet value restricting results to one lot
    template: FacetWP template name (default "inventory_results")
"""

import json
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from inventory_intel.core.exceptions import NetworkError, StructuralMismatchError
from inventory_intel.models.scrape_target import ScrapeTarget
from inventory_intel.scrapers.base import BaseAdapter, RawListing


DEFAULT_TEMPLATE = "inventory_results"

_FWP_MARKER_RE = re.compile(r"FWP_JSON\s*=\s*")
_DOLLAR_RE = re.compile(r"\$\s*([\d,]+(?:\.\d+)?)")
_LABELLED_RE = r"{label}:\s*(.+)"
_MODEL_RE = re.compile(r"^([A-Z0-9]+(?:[-/][A-Z0-9]+)*)")
_DIMENSIONS_RE = re.compile(r"(\d+)[″\"]\s*x\s*(\d+)[′']")
_GVWR_RE = re.compile(r"(\d+(?:\.\d+)?)\s*K\b")

CARD_MAKES = ["Big Tex", "CM", "Maxxd", "Iron Bull", "East Texas", "Load Trail", "PJ Trailers", "Diamond C"]

CARD_TYPE_PATTERNS = [
    (re.compile(r"\bDump\b", re.I), "Dump Trailer"),
    (re.compile(r"\bGooseneck\b", re.I), "Gooseneck Trailer"),
    (re.compile(r"\bCar Hauler\b", re.I), "Car Hauler"),
    (re.compile(r"\bEquipment\b", re.I), "Equipment Trailer"),
    (re.compile(r"\bLandscape\b", re.I), "Utility Trailer"),
    (re.compile(r"\bUtility\b", re.I), "Utility Trailer"),
    (re.compile(r"\bTilt\b", re.I), "Tilt Trailer"),
    (re.compile(r"\bFlatbed\b", re.I), "Flatbed Trailer"),
    (re.compile(r"\bCargo\b", re.I), "Cargo / Enclosed Trailer"),
    (re.compile(r"\bEnclosed\b", re.I), "Cargo / Enclosed Trailer"),
    (re.compile(r"\bTB\b"), "Truck Bed"),
    (re.compile(r"\bTruck Bed\b", re.I), "Truck Bed"),
    (re.compile(r"\b(?:Single|Tandem) Axle Vanguard\b", re.I), "Utility Trailer"),
]


class FacetWPAdapter(BaseAdapter):
    """Faceted-search adapter for FacetWP-powered dealer sites."""

    platform_kind = "facetwp"

    category_synonyms = {
        "cargo / enclosed trailer": "Enclosed",
        "truck bed": "Truck Bed",
    }

    async def extract(self, target: ScrapeTarget) -> List[Dict[str, Any]]:
        self.reset()
        config = target.config or {}
        template = config.get("template") or DEFAULT_TEMPLATE
        location_id = config.get("locationId")

        page_response = await self.fetcher.get(target.inventory_url)
        fwp = self._find_fwp_json(page_response.text)
        if fwp is None:
            raise StructuralMismatchError(self.platform_kind, "FWP_JSON not found; site may not use FacetWP")

        ajax_url = fwp.get("ajaxurl")
        if not ajax_url:
            raise StructuralMismatchError(self.platform_kind, "FWP_JSON has no ajaxurl")
        ajax_url = urljoin(target.inventory_url, ajax_url)

        preload = fwp.get("preload_data") or {}
        facets: Dict[str, Any] = {
            name: "" if name == "search" else []
            for name in (preload.get("facets") or {})
        }
        if location_id:
            facets["location"] = [str(location_id)]

        first_page = await self._refresh(ajax_url, facets, template, 1)
        pager = (first_page.get("settings") or {}).get("pager")
        if not pager:
            raise StructuralMismatchError(self.platform_kind, "facetwp_refresh response is missing pager data")

        total_pages = int(pager.get("total_pages") or 1)
        self.logger.info(
            "facetwp_pager",
            source_name=target.source_name,
            total_rows=pager.get("total_rows"),
            total_pages=total_pages,
        )

        cards = self.parse_cards(first_page.get("template") or "")

        for page in range(2, total_pages + 1):
            try:
                result = await self._refresh(ajax_url, facets, template, page)
            except (NetworkError, StructuralMismatchError) as e:
                self._warn(
                    "facetwp_page_failed",
                    incomplete=True,
                    source_name=target.source_name,
                    page=page,
                    error=str(e),
                )
                continue
            cards.extend(self.parse_cards(result.get("template") or ""))

        self.logger.info("adapter_extract_complete", source_name=target.source_name, count=len(cards))
        return cards

    async def _refresh(self, ajax_url: str, facets: Dict[str, Any], template: str, page: int) -> Dict[str, Any]:
        http_get = {"_paged": str(page)} if page > 1 else {}
        body = {
            "action": "facetwp_refresh",
            "data": {
                "facets": facets,
                "frozen_facets": {"proximity": "hard"},
                "http_params": {"get": http_get, "uri": "inventory", "url_vars": []},
                "template": template,
                "extras": {"selections": True, "sort": "default"},
                "soft_refresh": 1,
                "is_bfcache": 0,
                "first_load": 0,
                "paged": page,
            },
        }
        response = await self.fetcher.post(ajax_url, json=body)
        try:
            payload = response.json()
        except ValueError as e:
            raise StructuralMismatchError(self.platform_kind, f"facetwp_refresh page {page} is not JSON") from e
        if not isinstance(payload, dict):
            raise StructuralMismatchError(self.platform_kind, f"facetwp_refresh page {page} is not an object")
        return payload

    @staticmethod
    def _find_fwp_json(html: str) -> Optional[Dict[str, Any]]:
        soup = BeautifulSoup(html, "html.parser")
        decoder = json.JSONDecoder()
        for script in soup.find_all("script"):
            if script.get("src"):
                continue
            text = script.string or script.get_text() or ""
            marker = _FWP_MARKER_RE.search(text)
            if not marker:
                continue
            try:
                value, _ = decoder.raw_decode(text, marker.end())
            except ValueError:
                continue
            if isinstance(value, dict):
                return value
        return None

    @staticmethod
    def parse_cards(html: str) -> List[Dict[str, Any]]:
        """Parse rendered ``div.inventory-card`` elements into flat dicts."""
        if not html:
            return []
        soup = BeautifulSoup(html, "html.parser")
        cards = []

        for card in soup.select("div.inventory-card"):
            link = card.select_one("h3 a")
            title = link.get_text(strip=True) if link else ""
            url = (link.get("href") or "").strip() if link else ""
            subtitle_el = card.find("h4")
            text = card.get_text("\n", strip=True)

            vin_el = card.find(attrs={"data-vin": True})
            post_el = card.find(attrs={"data-trailer": True})

            if not title and not url:
                continue

            cards.append({
                "title": title,
                "subtitle": subtitle_el.get_text(strip=True) if subtitle_el else "",
                "url": url,
                "msrp": _labelled_price(text, "MSRP"),
                "price": _labelled_price(text, "Trailer World Price"),
                "condition": _labelled_value(text, "Condition"),
                "location": _labelled_value(text, "Location"),
                "vin": _attr(vin_el, "data-vin"),
                "postId": _attr(post_el, "data-trailer"),
                "badges": [b.get_text(strip=True) for b in card.select("div.badge") if b.get_text(strip=True)],
            })

        return cards

    def to_listing(self, raw: Dict[str, Any], target: ScrapeTarget) -> RawListing:
        title = raw.get("title") or ""
        subtitle = raw.get("subtitle") or ""
        make, model = _card_make_and_model(title)
        size, gvwr = _card_size_and_gvwr(title)

        type_ = _card_type(title) or _card_type(subtitle)

        specs = {}
        if subtitle:
            specs["description"] = subtitle
        if raw.get("badges"):
            specs["badges"] = ", ".join(raw["badges"])

        return RawListing(
            vin=raw.get("vin"),
            external_id=raw.get("postId"),
            title=title,
            make=make,
            model=model,
            type=type_,
            size=size,
            price=raw.get("price"),
            msrp=raw.get("msrp"),
            gvwr=gvwr,
            condition=raw.get("condition") or "New",
            location=raw.get("location"),
            url=self._absolute_url(target, raw.get("url")) or target.inventory_url,
            specs=specs,
        )


def _attr(element, name: str) -> Optional[str]:
    if element is None:
        return None
    return (element.get(name) or "").strip() or None


def _labelled_price(text: str, label: str) -> Optional[str]:
    index = text.find(label)
    if index < 0:
        return None
    match = _DOLLAR_RE.search(text, index + len(label))
    return f"${match.group(1)}" if match else None


def _labelled_value(text: str, label: str) -> Optional[str]:
    match = re.search(_LABELLED_RE.format(label=re.escape(label)), text)
    return match.group(1).strip() if match else None


def _card_make_and_model(title: str) -> Tuple[Optional[str], Optional[str]]:
    for make in CARD_MAKES:
        if title.startswith(make + " "):
            model = _MODEL_RE.match(title[len(make):].strip())
            return make, model.group(1) if model else None
    return None, None


def _card_type(text: str) -> Optional[str]:
    for pattern, type_name in CARD_TYPE_PATTERNS:
        if pattern.search(text):
            return type_name
    return None


def _card_size_and_gvwr(title: str) -> Tuple[Optional[str], Optional[str]]:
    size = None
    dims = _DIMENSIONS_RE.search(title)
    if dims:
        width_in, length_ft = int(dims.group(1)), int(dims.group(2))
        if width_in > 0 and length_ft > 0:
            width_ft = round(width_in / 12, 1)
            size = f"{int(width_ft) if width_ft == int(width_ft) else width_ft}x{length_ft}"

    gvwr = None
    rating = _GVWR_RE.search(title)
    if rating:
        gvwr = str(round(float(rating.group(1)) * 1000))

    return size, gvwr
