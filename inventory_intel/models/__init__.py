"""SQLAlchemy models for inventory-intel.

All models are imported here so metadata.create_all sees every table.
"""

from inventory_intel.models.base import Base, JSONType, UUIDPrimaryKeyMixin
from inventory_intel.models.scrape_target import ScrapeTarget
from inventory_intel.models.inventory_item import InventoryItem
from inventory_intel.models.inventory_change import InventoryChange
from inventory_intel.models.scraper_job import ScrapeJob

__all__ = [
    "Base",
    "JSONType",
    "UUIDPrimaryKeyMixin",
    "ScrapeTarget",
    "InventoryItem",
    "InventoryChange",
    "ScrapeJob",
]
