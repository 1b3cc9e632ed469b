"""Scraper system for extracting competitor trailer inventory.

This package provides:
- Base adapter class and canonical item types
- Platform adapters for the supported dealer site families
- Utility modules for retries, rate limiting and field normalization
- Factory, orchestrator and scheduler for running scrape targets
"""

from .base import (
    BaseAdapter,
    CanonicalItem,
    RawListing,
    STATUS_AVAILABLE,
    STATUS_SOLD,
)
from .factory import AdapterFactory

__all__ = [
    # Base classes
    "BaseAdapter",
    # Data structures
    "CanonicalItem",
    "RawListing",
    "STATUS_AVAILABLE",
    "STATUS_SOLD",
    # Factory
    "AdapterFactory",
]
