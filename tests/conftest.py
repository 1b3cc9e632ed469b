"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import httpx
import pytest
import pytest_asyncio

from inventory_intel.db.session import create_all, create_engine, create_session_factory
from inventory_intel.models import ScrapeTarget
from inventory_intel.scrapers.base import CanonicalItem
from inventory_intel.scrapers.factory import AdapterFactory
from inventory_intel.scrapers.register_adapters import register_all_adapters
from inventory_intel.scrapers.utils.retry import RetryingFetcher


TENANT = "tenant-1"


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite database with every table created."""
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def make_target(session_factory):
    """Persist a ScrapeTarget and return it."""

    async def _make(
        source_name: str = "NC Trailers",
        platform_kind: str = "woocommerce",
        base_url: str = "https://dealer.example.com",
        inventory_path: str = "/inventory",
        config: Optional[dict] = None,
        expected_minimum_count: Optional[int] = None,
        tenant_id: str = TENANT,
        is_active: bool = True,
    ) -> ScrapeTarget:
        target = ScrapeTarget(
            tenant_id=tenant_id,
            source_name=source_name,
            base_url=base_url,
            inventory_path=inventory_path,
            platform_kind=platform_kind,
            config=config or {},
            expected_minimum_count=expected_minimum_count,
            is_active=is_active,
        )
        async with session_factory() as session:
            async with session.begin():
                session.add(target)
        return target

    return _make


# ============================================================================
# HTTP
# ============================================================================

@pytest_asyncio.fixture
async def http_client():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def fetcher(http_client):
    """Fetcher with no backoff delay so retry tests run instantly."""
    return RetryingFetcher(http_client, max_retries=2, timeout=5.0, base_delay=0)


@pytest.fixture
def adapter_factory():
    return register_all_adapters(AdapterFactory())


# ============================================================================
# ITEMS
# ============================================================================

def make_item(
    natural_key: str,
    price: Optional[str] = "10000",
    source_name: str = "NC Trailers",
    tenant_id: str = TENANT,
    **overrides,
) -> CanonicalItem:
    """Build a CanonicalItem with sensible defaults."""
    fields = dict(
        tenant_id=tenant_id,
        source_name=source_name,
        natural_key=natural_key,
        title=f"Trailer {natural_key}",
        observed_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        price=Decimal(price) if price is not None else None,
    )
    fields.update(overrides)
    return CanonicalItem(**fields)
