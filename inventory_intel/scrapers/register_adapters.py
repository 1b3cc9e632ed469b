"""Register the built-in platform adapters with a factory.

Called once at startup by the CLI and the scheduler.
"""

import structlog

from inventory_intel.scrapers.factory import AdapterFactory
from inventory_intel.scrapers.adapters import (
    DealSectorAdapter,
    FacetWPAdapter,
    TrailerFunnelAdapter,
    WooCommerceAdapter,
)

logger = structlog.get_logger(__name__)

ADAPTERS = [
    WooCommerceAdapter,
    TrailerFunnelAdapter,
    DealSectorAdapter,
    FacetWPAdapter,
]


def register_all_adapters(factory: AdapterFactory) -> AdapterFactory:
    """Register every built-in adapter under its platform kind.

    Args:
        factory: Factory to populate

    Returns:
        The same factory, for chaining
    """
    for adapter_class in ADAPTERS:
        factory.register_adapter(adapter_class.platform_kind, adapter_class)

    logger.info(
        "all_adapters_registered",
        count=len(factory.get_registered_kinds()),
        platform_kinds=factory.get_registered_kinds(),
    )
    return factory
