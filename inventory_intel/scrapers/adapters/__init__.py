"""Platform adapter implementations.

One adapter per dealer platform family:
- woocommerce: WooCommerce Store API (paginated REST)
- trailerfunnel: TrailerFunnel inventory API (token-gated)
- dealsector: DealSector admin-ajax (server-rendered HTML fragment)
- facetwp: FacetWP refresh endpoint (faceted search)
"""

from inventory_intel.scrapers.adapters.woocommerce import WooCommerceAdapter
from inventory_intel.scrapers.adapters.trailerfunnel import TrailerFunnelAdapter
from inventory_intel.scrapers.adapters.dealsector import DealSectorAdapter
from inventory_intel.scrapers.adapters.facetwp import FacetWPAdapter

__all__ = [
    "WooCommerceAdapter",
    "TrailerFunnelAdapter",
    "DealSectorAdapter",
    "FacetWPAdapter",
]
