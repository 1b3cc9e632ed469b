"""Tests for RetryingFetcher and the per-domain rate limiter."""

import asyncio

import httpx
import pytest
import respx

from inventory_intel.core.exceptions import NetworkError
from inventory_intel.scrapers.utils.rate_limiter import DomainRateLimiter, TokenBucket
from inventory_intel.scrapers.utils.retry import RetryingFetcher


URL = "https://dealer.example.com/wp-json/wc/store/v1/products"


class TestRetryingFetcher:
    """Retry, timeout and exhaustion behaviour."""

    async def test_returns_first_success(self, fetcher):
        with respx.mock:
            route = respx.get(URL).mock(return_value=httpx.Response(200, json=[{"id": 1}]))

            response = await fetcher.get(URL)

        assert response.json() == [{"id": 1}]
        assert route.call_count == 1

    async def test_retries_bad_status_then_succeeds(self, fetcher):
        with respx.mock:
            route = respx.get(URL).mock(side_effect=[
                httpx.Response(503),
                httpx.Response(200, json=[]),
            ])

            response = await fetcher.get(URL)

        assert response.status_code == 200
        assert route.call_count == 2

    async def test_exhaustion_raises_network_error_after_max_retries_plus_one(self, fetcher):
        """max_retries=2 means exactly three attempts."""
        with respx.mock:
            route = respx.get(URL).mock(return_value=httpx.Response(500))

            with pytest.raises(NetworkError) as exc_info:
                await fetcher.get(URL)

        assert route.call_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.url == URL
        assert "500" in exc_info.value.reason

    async def test_transport_errors_are_retried(self, fetcher):
        with respx.mock:
            route = respx.get(URL).mock(side_effect=httpx.ConnectError("connection refused"))

            with pytest.raises(NetworkError) as exc_info:
                await fetcher.get(URL)

        assert route.call_count == 3
        assert "connection refused" in exc_info.value.reason

    async def test_per_call_retry_override(self, fetcher):
        with respx.mock:
            route = respx.get(URL).mock(return_value=httpx.Response(404))

            with pytest.raises(NetworkError):
                await fetcher.get(URL, max_retries=0)

        assert route.call_count == 1

    async def test_attempt_timeout_cancels_and_retries(self):
        calls = []

        async def slow_handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            await asyncio.sleep(5)
            return httpx.Response(200)

        async with httpx.AsyncClient(transport=httpx.MockTransport(slow_handler)) as client:
            fetcher = RetryingFetcher(client, max_retries=1, timeout=0.05, base_delay=0)

            with pytest.raises(NetworkError) as exc_info:
                await fetcher.get(URL)

        assert len(calls) == 2
        assert "timed out" in exc_info.value.reason

    async def test_post_passes_form_data(self, fetcher):
        with respx.mock:
            route = respx.post(URL).mock(return_value=httpx.Response(200, text="ok"))

            await fetcher.post(URL, data={"action": "refresh"})

        assert route.calls.last.request.content == b"action=refresh"

    async def test_rate_limiter_is_acquired_per_attempt(self, http_client):
        acquired = []

        class RecordingLimiter(DomainRateLimiter):
            async def acquire(self, domain: str, tokens: float = 1.0) -> None:
                acquired.append(domain)

        fetcher = RetryingFetcher(http_client, max_retries=1, base_delay=0, rate_limiter=RecordingLimiter())
        with respx.mock:
            respx.get(URL).mock(side_effect=[httpx.Response(502), httpx.Response(200)])
            await fetcher.get(URL)

        assert acquired == ["dealer.example.com", "dealer.example.com"]


class TestDomainRateLimiter:
    """Token bucket pacing."""

    async def test_burst_within_capacity_does_not_wait(self):
        bucket = TokenBucket(rate=1.0, capacity=3.0)
        loop = asyncio.get_running_loop()
        start = loop.time()

        for _ in range(3):
            await bucket.acquire()

        assert loop.time() - start < 0.5

    def test_custom_limit_replaces_default(self):
        limiter = DomainRateLimiter(default_rpm=60)
        limiter.set_custom_limit("slow.example.com", 6)

        assert limiter.get_current_rate("slow.example.com") == pytest.approx(6.0)
        assert limiter.get_current_rate("other.example.com") == pytest.approx(60.0)
