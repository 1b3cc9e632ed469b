"""Tests for the platform adapters and the adapter factory."""

import json
from decimal import Decimal

import httpx
import pytest
import respx
from structlog.testing import capture_logs

from conftest import TENANT
from inventory_intel.core.exceptions import ConfigError, NetworkError, StructuralMismatchError
from inventory_intel.models import ScrapeTarget
from inventory_intel.scrapers.adapters import (
    DealSectorAdapter,
    FacetWPAdapter,
    TrailerFunnelAdapter,
    WooCommerceAdapter,
)
from inventory_intel.scrapers.adapters.trailerfunnel import DEFAULT_API_URL
from inventory_intel.scrapers.factory import AdapterFactory
from inventory_intel.scrapers.utils.normalizer import FieldNormalizer


BASE_URL = "https://dealer.example.com"
INVENTORY_URL = f"{BASE_URL}/inventory"


def _target(platform_kind: str, **config) -> ScrapeTarget:
    return ScrapeTarget(
        tenant_id=TENANT,
        source_name="Test Dealer",
        base_url=BASE_URL,
        inventory_path="/inventory",
        platform_kind=platform_kind,
        config=config,
    )


# ============================================================================
# WOOCOMMERCE
# ============================================================================

WOO_URL = f"{BASE_URL}/wp-json/wc/store/v1/products"

WOO_PRODUCT = {
    "id": 101,
    "name": "2025 Big Tex 14GN 7x20 Gooseneck 14K",
    "sku": "BT-101",
    "permalink": f"{BASE_URL}/product/bt-101/",
    "on_sale": True,
    "is_in_stock": True,
    "prices": {"price": "1299900", "regular_price": "1399900", "sale_price": "1299900"},
    "categories": [{"name": "Gooseneck Trailers"}],
    "attributes": [
        {"name": "Condition", "terms": [{"name": "New"}]},
        {"name": "Location", "terms": [{"name": "Raleigh"}]},
    ],
}


def _woo_pages(pages):
    """respx side effect serving ``pages[page - 1]`` by the page query param."""

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        if page > len(pages):
            return httpx.Response(200, json=[])
        body = pages[page - 1]
        if isinstance(body, int):
            return httpx.Response(body)
        return httpx.Response(200, json=body)

    return handler


class TestWooCommerceAdapter:
    """Store API pagination and product mapping."""

    async def test_paginates_until_short_page(self, fetcher):
        adapter = WooCommerceAdapter(fetcher)
        pages = [
            [{"id": 1}, {"id": 2}],
            [{"id": 3}],
        ]
        with respx.mock:
            route = respx.get(WOO_URL).mock(side_effect=_woo_pages(pages))

            products = await adapter.extract(_target("woocommerce", perPage=2))

        assert [p["id"] for p in products] == [1, 2, 3]
        assert route.call_count == 2
        assert adapter.possibly_incomplete is False

    async def test_completion_log_counts_pages_read(self, fetcher):
        with capture_logs() as logs:
            adapter = WooCommerceAdapter(fetcher)
            with respx.mock:
                respx.get(WOO_URL).mock(side_effect=_woo_pages([[{"id": 1}, {"id": 2}], 500]))

                await adapter.extract(_target("woocommerce", perPage=2))

        [done] = [e for e in logs if e["event"] == "adapter_extract_complete"]
        assert done["pages"] == 1
        assert done["count"] == 2

    async def test_stops_after_two_empty_pages(self, fetcher):
        adapter = WooCommerceAdapter(fetcher)
        with respx.mock:
            route = respx.get(WOO_URL).mock(side_effect=_woo_pages([[], []]))

            products = await adapter.extract(_target("woocommerce"))

        assert products == []
        assert route.call_count == 2

    async def test_uses_configured_api_path(self, fetcher):
        adapter = WooCommerceAdapter(fetcher)
        with respx.mock:
            route = respx.get(f"{BASE_URL}/custom/products").mock(return_value=httpx.Response(200, json=[{"id": 9}]))

            products = await adapter.extract(_target("woocommerce", apiPath="/custom/products"))

        assert products == [{"id": 9}]
        assert route.calls.last.request.url.params["per_page"] == "100"

    async def test_first_page_failure_raises(self, fetcher):
        adapter = WooCommerceAdapter(fetcher)
        with respx.mock:
            respx.get(WOO_URL).mock(return_value=httpx.Response(503))

            with pytest.raises(NetworkError):
                await adapter.extract(_target("woocommerce"))

    async def test_later_page_failure_marks_incomplete(self, fetcher):
        adapter = WooCommerceAdapter(fetcher)
        with respx.mock:
            respx.get(WOO_URL).mock(side_effect=_woo_pages([[{"id": 1}], 500]))

            products = await adapter.extract(_target("woocommerce", perPage=1))

        assert products == [{"id": 1}]
        assert adapter.possibly_incomplete is True
        assert "woocommerce_page_failed" in adapter.warnings

    async def test_non_list_payload_is_structural_mismatch(self, fetcher):
        adapter = WooCommerceAdapter(fetcher)
        with respx.mock:
            respx.get(WOO_URL).mock(return_value=httpx.Response(200, json={"code": "rest_no_route"}))

            with pytest.raises(StructuralMismatchError):
                await adapter.extract(_target("woocommerce"))

    def test_to_listing_maps_store_api_product(self, fetcher):
        adapter = WooCommerceAdapter(fetcher)

        listing = adapter.to_listing(WOO_PRODUCT, _target("woocommerce"))

        assert listing["stock_number"] == "BT-101"
        assert listing["external_id"] == "101"
        assert listing["type"] == "Gooseneck Trailers"
        assert listing["price_cents"] == "1299900"
        assert listing["msrp"] == Decimal("13999")
        assert listing["sale_price"] == Decimal("12999")
        assert listing["gvwr"] == "14,000"
        assert listing["condition"] == "New"
        assert listing["location"] == "Raleigh"
        assert listing["source_status"] is None
        assert listing["url"] == f"{BASE_URL}/product/bt-101/"

    def test_out_of_stock_and_missing_permalink(self, fetcher):
        adapter = WooCommerceAdapter(fetcher)
        product = dict(WOO_PRODUCT, is_in_stock=False, permalink=None, on_sale=False, categories=[{"name": "Misc"}])

        listing = adapter.to_listing(product, _target("woocommerce"))

        assert listing["source_status"] == "Out of stock"
        assert listing["url"] == f"{BASE_URL}/?p=101"
        assert listing["sale_price"] is None
        assert listing["type"] is None

    def test_normalized_item(self, fetcher):
        adapter = WooCommerceAdapter(fetcher)
        normalizer = FieldNormalizer(adapter.to_listing, adapter.category_synonyms)

        [item] = normalizer.normalize([WOO_PRODUCT], _target("woocommerce"))

        assert item.natural_key == "BT-101"
        assert item.price == Decimal("12999")
        assert item.type == "Gooseneck"
        assert item.make == "Big Tex"
        assert item.size == "7x20"
        assert item.specs["pullType"] == "Gooseneck"


# ============================================================================
# TRAILERFUNNEL
# ============================================================================

TF_PAGE = """
<html><head>
<script src="/assets/app.js"></script>
<script>window.tf = {}; var apiToken = "tok-abc123456789";</script>
</head><body><div id="inventory"></div></body></html>
"""

TF_ITEM = {
    "stock": "TF-1",
    "vin": "4x1lt2428ra000001",
    "title": "2025 Load Trail 102x24 Car Hauler",
    "year": 2025,
    "manufacturer": "LOAD TRAIL",
    "model_name": "CH102",
    "item_category": {"name": "Car Hauler"},
    "condition": "New",
    "status": "available",
    "details": {
        "floor_length": 288,
        "floor_width": 102,
        "displayed_web_price": "12,499",
        "msrp": "13,999",
        "gvwr": "9990",
    },
    "attributes": {"pull_type": "Bumper Pull", "ramps": True, "axles": 2},
}


class TestTrailerFunnelAdapter:
    """Token discovery and API mapping."""

    async def test_extract_uses_page_token_as_bearer(self, fetcher):
        adapter = TrailerFunnelAdapter(fetcher)
        with respx.mock:
            respx.get(INVENTORY_URL).mock(return_value=httpx.Response(200, text=TF_PAGE))
            api = respx.get(DEFAULT_API_URL).mock(return_value=httpx.Response(200, json={"data": [TF_ITEM]}))

            items = await adapter.extract(_target("trailerfunnel", locationFilter={"location": "12"}))

        assert items == [TF_ITEM]
        request = api.calls.last.request
        assert request.headers["Authorization"] == "Bearer tok-abc123456789"
        assert request.url.params["limit"] == "250"
        assert request.url.params["location"] == "12"

    async def test_missing_token_is_structural_mismatch(self, fetcher):
        adapter = TrailerFunnelAdapter(fetcher)
        with respx.mock:
            respx.get(INVENTORY_URL).mock(return_value=httpx.Response(200, text="<html><script>var x = 1;</script></html>"))

            with pytest.raises(StructuralMismatchError):
                await adapter.extract(_target("trailerfunnel"))

    async def test_missing_data_field_returns_empty(self, fetcher):
        adapter = TrailerFunnelAdapter(fetcher)
        with respx.mock:
            respx.get(INVENTORY_URL).mock(return_value=httpx.Response(200, text=TF_PAGE))
            respx.get(DEFAULT_API_URL).mock(return_value=httpx.Response(200, json={"meta": {}}))

            assert await adapter.extract(_target("trailerfunnel")) == []

    def test_to_listing(self, fetcher):
        adapter = TrailerFunnelAdapter(fetcher)

        listing = adapter.to_listing(TF_ITEM, _target("trailerfunnel"))

        assert listing["stock_number"] == "TF-1"
        assert listing["year"] == "2025"
        assert listing["make"] == "Load Trail"
        assert listing["model"] == "CH102"
        assert listing["type"] == "Car Hauler"
        assert listing["size"] == "8.5x24"
        assert listing["price"] == "12,499"
        assert listing["source_status"] == "available"
        assert listing["url"] == INVENTORY_URL
        assert listing["specs"]["ramps"] == "Yes"
        assert listing["specs"]["floorLength"] == "24ft"
        assert listing["specs"]["floorWidth"] == "102in"
        assert listing["specs"]["pullType"] == "Bumper Pull"


# ============================================================================
# DEALSECTOR
# ============================================================================

DS_PAGE = '<html><body><span id="record_total">{total}</span></body></html>'


def _ds_listing(stock: str, title: str, price: str, year: str = "2025", size: str = "40' x 102\"") -> str:
    return f"""
<div class="wp-block-columns">
  <div class="wp-block-column"><h3><a href="/view-detail-page/{stock.lower()}">{title}</a></h3></div>
  <div class="wp-block-column"><p class="has-text-align-right"><strong><span>{price}</span></strong></p></div>
</div>
<hr>
<div class="wp-block-columns">
  <div class="wp-block-column">
    <p class="has-text-align-center"><strong>Stock # {stock}</strong></p>
    <table class="tb-details">
      <tr><th>Year:</th><td>{year}</td></tr>
      <tr><th>Condition:</th><td>New</td></tr>
      <tr><th>Size:</th><td>{size}</td></tr>
      <tr><th>VIN:</th><td>16VGX3528S{stock}</td></tr>
    </table>
  </div>
</div>
"""


DS_FRAGMENT = _ds_listing("DC-001", "DIAMOND C 8X35+5 GOOSENECK", "$24,995") + _ds_listing(
    "EZ-002", "EZ-GO GOLF CART", "$8,500", size=""
)

AJAX_URL = f"{BASE_URL}/wp-admin/admin-ajax.php"


class TestDealSectorAdapter:
    """Record total check, AJAX POST and fragment parsing."""

    async def test_extract_posts_form_and_parses_fragment(self, fetcher):
        adapter = DealSectorAdapter(fetcher)
        with respx.mock:
            respx.get(INVENTORY_URL).mock(return_value=httpx.Response(200, text=DS_PAGE.format(total=2)))
            ajax = respx.post(AJAX_URL).mock(return_value=httpx.Response(200, text=DS_FRAGMENT))

            listings = await adapter.extract(_target("dealsector", templateId="200"))

        assert [row["stock"] for row in listings] == ["DC-001", "EZ-002"]
        assert listings[0]["title"] == "DIAMOND C 8X35+5 GOOSENECK"
        assert listings[0]["price"] == "$24,995"
        assert listings[0]["year"] == "2025"
        assert listings[0]["size"] == "40' x 102\""
        assert adapter.possibly_incomplete is False

        request = ajax.calls.last.request
        assert request.headers["X-Requested-With"] == "XMLHttpRequest"
        body = request.content.decode()
        assert "action=dealsector_filter_inventorys" in body
        assert "template_id=200" in body
        assert "limit=1000" in body

    async def test_missing_record_total_is_structural_mismatch(self, fetcher):
        adapter = DealSectorAdapter(fetcher)
        with respx.mock:
            respx.get(INVENTORY_URL).mock(return_value=httpx.Response(200, text="<html><body></body></html>"))

            with pytest.raises(StructuralMismatchError):
                await adapter.extract(_target("dealsector"))

    async def test_empty_fragment_returns_no_listings(self, fetcher):
        adapter = DealSectorAdapter(fetcher)
        with respx.mock:
            respx.get(INVENTORY_URL).mock(return_value=httpx.Response(200, text=DS_PAGE.format(total=0)))
            respx.post(AJAX_URL).mock(return_value=httpx.Response(200, text="  "))

            assert await adapter.extract(_target("dealsector")) == []

    async def test_undercount_marks_incomplete(self, fetcher):
        adapter = DealSectorAdapter(fetcher)
        with respx.mock:
            respx.get(INVENTORY_URL).mock(return_value=httpx.Response(200, text=DS_PAGE.format(total=10)))
            respx.post(AJAX_URL).mock(return_value=httpx.Response(200, text=DS_FRAGMENT))

            listings = await adapter.extract(_target("dealsector"))

        assert len(listings) == 2
        assert adapter.possibly_incomplete is True
        assert "listing_undercount" in adapter.warnings

    async def test_record_total_with_thousands_separator(self, fetcher):
        with capture_logs() as logs:
            adapter = DealSectorAdapter(fetcher)
            with respx.mock:
                respx.get(INVENTORY_URL).mock(
                    return_value=httpx.Response(200, text=DS_PAGE.format(total="1,234"))
                )
                respx.post(AJAX_URL).mock(return_value=httpx.Response(200, text=DS_FRAGMENT))

                listings = await adapter.extract(_target("dealsector"))

        assert len(listings) == 2
        assert adapter.possibly_incomplete is True
        [undercount] = [e for e in logs if e["event"] == "listing_undercount"]
        assert undercount["reported"] == 1234

    def test_to_listing(self, fetcher):
        adapter = DealSectorAdapter(fetcher)
        rows = DealSectorAdapter.parse_listings(DS_FRAGMENT)

        trailer = adapter.to_listing(rows[0], _target("dealsector"))
        cart = adapter.to_listing(rows[1], _target("dealsector"))

        assert trailer["make"] == "Diamond C"
        assert trailer["model"] == "8X35+5 GOOSENECK"
        assert trailer["type"] is None
        assert trailer["specs"] == {"floorLength": "40ft"}
        assert trailer["url"] == f"{BASE_URL}/view-detail-page/dc-001"
        assert cart["type"] == "Golf Cart"
        assert cart["make"] == "Ez-go"


# ============================================================================
# FACETWP
# ============================================================================

FACET_PAGE = """
<html><head>
<script>var FWP_JSON = {"ajaxurl": "/wp-json/facetwp/v1/refresh", "preload_data": {"facets": {"search": "", "make": "", "location": ""}}};
window.FWP_HTTP = {};</script>
</head><body></body></html>
"""

FACET_AJAX_URL = f"{BASE_URL}/wp-json/facetwp/v1/refresh"


def _card(post_id: str, title: str, href: str) -> str:
    return f"""
<div class="inventory-card">
  <div class="card-meta" data-vin="1abc{post_id}" data-trailer="{post_id}"></div>
  <div class="badge">Sale</div>
  <h3><a href="{href}">{title}</a></h3>
  <h4>Gooseneck Equipment Trailer</h4>
  <p>MSRP: $15,999</p>
  <p>Trailer World Price: $13,999</p>
  <p>Condition: New</p>
  <p>Location: Raleigh</p>
</div>
"""


def _facet_pages(pages, total_pages):
    def handler(request: httpx.Request) -> httpx.Response:
        page = json.loads(request.content)["data"]["paged"]
        body = pages[page - 1]
        if isinstance(body, int):
            return httpx.Response(body)
        return httpx.Response(200, json={
            "template": body,
            "settings": {"pager": {"total_pages": total_pages, "total_rows": total_pages}},
        })

    return handler


class TestFacetWPAdapter:
    """FWP_JSON discovery, pager walk and card parsing."""

    async def test_walks_every_page(self, fetcher):
        adapter = FacetWPAdapter(fetcher)
        pages = [
            _card("555", "Big Tex 14GN 83″ x 20′ Gooseneck 14K", "/trailer/bt-14gn"),
            _card("556", "CM Dump 83″ x 12′ 10K", "/trailer/cm-dump"),
        ]
        with respx.mock:
            respx.get(INVENTORY_URL).mock(return_value=httpx.Response(200, text=FACET_PAGE))
            ajax = respx.post(FACET_AJAX_URL).mock(side_effect=_facet_pages(pages, 2))

            cards = await adapter.extract(_target("facetwp", locationId=7))

        assert [c["postId"] for c in cards] == ["555", "556"]
        assert ajax.call_count == 2
        body = json.loads(ajax.calls[0].request.content)
        assert body["action"] == "facetwp_refresh"
        assert body["data"]["facets"] == {"search": "", "make": [], "location": ["7"]}
        assert body["data"]["template"] == "inventory_results"

    async def test_failed_page_marks_incomplete(self, fetcher):
        adapter = FacetWPAdapter(fetcher)
        pages = [
            _card("555", "Big Tex 14GN 83″ x 20′ Gooseneck 14K", "/trailer/bt-14gn"),
            500,
        ]
        with respx.mock:
            respx.get(INVENTORY_URL).mock(return_value=httpx.Response(200, text=FACET_PAGE))
            respx.post(FACET_AJAX_URL).mock(side_effect=_facet_pages(pages, 2))

            cards = await adapter.extract(_target("facetwp"))

        assert len(cards) == 1
        assert adapter.possibly_incomplete is True
        assert "facetwp_page_failed" in adapter.warnings

    async def test_missing_fwp_json_is_structural_mismatch(self, fetcher):
        adapter = FacetWPAdapter(fetcher)
        with respx.mock:
            respx.get(INVENTORY_URL).mock(return_value=httpx.Response(200, text="<html></html>"))

            with pytest.raises(StructuralMismatchError):
                await adapter.extract(_target("facetwp"))

    async def test_missing_pager_is_structural_mismatch(self, fetcher):
        adapter = FacetWPAdapter(fetcher)
        with respx.mock:
            respx.get(INVENTORY_URL).mock(return_value=httpx.Response(200, text=FACET_PAGE))
            respx.post(FACET_AJAX_URL).mock(return_value=httpx.Response(200, json={"template": ""}))

            with pytest.raises(StructuralMismatchError):
                await adapter.extract(_target("facetwp"))

    def test_parse_and_map_card(self, fetcher):
        adapter = FacetWPAdapter(fetcher)
        [card] = FacetWPAdapter.parse_cards(_card("555", "Big Tex 14GN 83″ x 20′ Gooseneck 14K", "/trailer/bt-14gn"))

        assert card["msrp"] == "$15,999"
        assert card["price"] == "$13,999"
        assert card["condition"] == "New"
        assert card["location"] == "Raleigh"
        assert card["badges"] == ["Sale"]

        listing = adapter.to_listing(card, _target("facetwp"))

        assert listing["vin"] == "1abc555"
        assert listing["external_id"] == "555"
        assert listing["make"] == "Big Tex"
        assert listing["model"] == "14GN"
        assert listing["size"] == "6.9x20"
        assert listing["gvwr"] == "14000"
        assert listing["type"] == "Gooseneck Trailer"
        assert listing["url"] == f"{BASE_URL}/trailer/bt-14gn"
        assert listing["specs"]["badges"] == "Sale"


# ============================================================================
# FACTORY
# ============================================================================

class TestAdapterFactory:
    """Registration and creation."""

    def test_all_platforms_registered(self, adapter_factory):
        assert sorted(adapter_factory.get_registered_kinds()) == [
            "dealsector", "facetwp", "trailerfunnel", "woocommerce",
        ]

    def test_create_adapter(self, adapter_factory, fetcher):
        adapter = adapter_factory.create_adapter(_target("facetwp"), fetcher)

        assert isinstance(adapter, FacetWPAdapter)
        assert adapter.fetcher is fetcher

    def test_unknown_platform_raises_config_error(self, adapter_factory, fetcher):
        with pytest.raises(ConfigError) as exc_info:
            adapter_factory.create_adapter(_target("shopify"), fetcher)

        assert "shopify" in exc_info.value.message
        assert exc_info.value.source_name == "Test Dealer"

    def test_missing_base_url_raises_before_network(self, adapter_factory, fetcher):
        target = _target("woocommerce")
        target.base_url = ""

        with pytest.raises(ConfigError):
            adapter_factory.create_adapter(target, fetcher)

    def test_register_rejects_non_adapter(self):
        factory = AdapterFactory()

        with pytest.raises(ValueError):
            factory.register_adapter("bogus", dict)
