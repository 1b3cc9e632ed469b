"""Scraper utilities: HTTP retries, rate limiting, field normalization.

The normalizer depends on the adapter base types, so import it from
``inventory_intel.scrapers.utils.normalizer`` directly.
"""

from inventory_intel.scrapers.utils.rate_limiter import DomainRateLimiter, TokenBucket
from inventory_intel.scrapers.utils.retry import RetryingFetcher, build_http_client

__all__ = [
    "DomainRateLimiter",
    "TokenBucket",
    "RetryingFetcher",
    "build_http_client",
]
