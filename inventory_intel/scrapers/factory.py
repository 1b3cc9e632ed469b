"""Factory for creating platform adapter instances."""

from typing import Dict, List, Type

import structlog

from inventory_intel.core.exceptions import ConfigError
from inventory_intel.models.scrape_target import ScrapeTarget
from inventory_intel.scrapers.base import BaseAdapter
from inventory_intel.scrapers.utils.retry import RetryingFetcher


logger = structlog.get_logger(__name__)


class AdapterFactory:
    """Registry of adapter classes keyed by platform kind.

    Adapters are created per run with the shared RetryingFetcher injected.
    Configuration is validated here so a misconfigured target fails before
    any network call.
    """

    def __init__(self):
        self._adapter_registry: Dict[str, Type[BaseAdapter]] = {}

    def register_adapter(self, platform_kind: str, adapter_class: Type[BaseAdapter]) -> None:
        """Register an adapter class for a platform kind.

        Args:
            platform_kind: Platform identifier (e.g., "woocommerce")
            adapter_class: Adapter class (must inherit from BaseAdapter)
        """
        if not isinstance(adapter_class, type) or not issubclass(adapter_class, BaseAdapter):
            raise ValueError(f"Adapter class must inherit from BaseAdapter: {adapter_class}")

        self._adapter_registry[platform_kind] = adapter_class
        logger.debug("adapter_registered", platform_kind=platform_kind, adapter_class=adapter_class.__name__)

    def create_adapter(self, target: ScrapeTarget, fetcher: RetryingFetcher) -> BaseAdapter:
        """Create an adapter for a target and validate its configuration.

        Args:
            target: Scrape target the adapter will extract from
            fetcher: Shared retrying HTTP fetcher

        Returns:
            Configured adapter instance

        Raises:
            ConfigError: If the platform kind is unknown or required config is missing
        """
        adapter_class = self._adapter_registry.get(target.platform_kind)
        if not adapter_class:
            logger.warning(
                "adapter_not_found",
                source_name=target.source_name,
                platform_kind=target.platform_kind,
            )
            raise ConfigError(
                f"no adapter registered for platform kind '{target.platform_kind}'",
                source_name=target.source_name,
            )

        adapter = adapter_class(fetcher)
        adapter.validate_config(target)

        logger.debug(
            "adapter_created",
            source_name=target.source_name,
            platform_kind=target.platform_kind,
        )
        return adapter

    def get_registered_kinds(self) -> List[str]:
        return list(self._adapter_registry.keys())

    def has_adapter(self, platform_kind: str) -> bool:
        return platform_kind in self._adapter_registry
