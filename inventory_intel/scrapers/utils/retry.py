"""Retrying HTTP fetcher with per-attempt timeouts and exponential backoff."""

import asyncio
from typing import Any, Optional
from urllib.parse import urlparse

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from inventory_intel.core.exceptions import NetworkError
from inventory_intel.scrapers.utils.rate_limiter import DomainRateLimiter


logger = structlog.get_logger(__name__)


class BadStatusError(Exception):
    """A response arrived but with a non-2xx status."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"HTTP {response.status_code}: {response.reason_phrase}")


class AttemptTimeoutError(Exception):
    """A single attempt exceeded its timeout and was cancelled."""

    def __init__(self, timeout: float):
        super().__init__(f"timed out after {timeout}s")


RETRYABLE_ERRORS = (httpx.TransportError, BadStatusError, AttemptTimeoutError)


def build_http_client(user_agent: str, timeout: float = 30.0) -> httpx.AsyncClient:
    """Build the process-wide HTTP client handed to every fetcher.

    Args:
        user_agent: User-Agent header sent with every request
        timeout: Transport-level timeout; RetryingFetcher also bounds each attempt

    Returns:
        Configured httpx.AsyncClient (caller owns its lifecycle)
    """
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers={
            "User-Agent": user_agent,
            "Accept-Language": "en-US,en;q=0.9",
        },
    )


class RetryingFetcher:
    """Performs HTTP requests with bounded retries.

    Transport failures, per-attempt timeouts and non-2xx statuses are all
    retried. The delay before retry n (n starting at 0) is
    ``base_delay * 2**n``. ``max_retries=2`` allows up to 3 attempts in total;
    once they are used up a NetworkError carrying the last reason is raised.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_retries: int = 2,
        timeout: float = 30.0,
        base_delay: float = 1.0,
        rate_limiter: Optional[DomainRateLimiter] = None,
    ):
        self.client = client
        self.max_retries = max_retries
        self.timeout = timeout
        self.base_delay = base_delay
        self.rate_limiter = rate_limiter

    async def fetch(
        self,
        method: str,
        url: str,
        *,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        **request_kwargs: Any,
    ) -> httpx.Response:
        """Send a request, retrying retryable failures with exponential backoff.

        Args:
            method: HTTP method
            url: Absolute URL
            max_retries: Additional attempts after the first (defaults to instance setting)
            timeout: Seconds allowed per attempt (defaults to instance setting)
            **request_kwargs: Passed through to httpx (params, data, json, headers, ...)

        Returns:
            The first 2xx response

        Raises:
            NetworkError: If every attempt failed
        """
        retries = self.max_retries if max_retries is None else max_retries
        attempt_timeout = self.timeout if timeout is None else timeout
        domain = urlparse(url).netloc

        retrying = AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_exponential(multiplier=self.base_delay, min=0),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=self._log_retry(method, url),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    if self.rate_limiter:
                        await self.rate_limiter.acquire(domain)
                    return await self._attempt(method, url, attempt_timeout, request_kwargs)
        except RETRYABLE_ERRORS as e:
            reason = str(e) or e.__class__.__name__
            logger.error(
                "fetch_failed",
                method=method,
                url=url,
                attempts=retries + 1,
                reason=reason,
            )
            raise NetworkError(url, reason, attempts=retries + 1) from e

        # Unreachable: AsyncRetrying either returns from the body or reraises
        raise NetworkError(url, "no attempt was made", attempts=0)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.fetch("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.fetch("POST", url, **kwargs)

    async def _attempt(
        self,
        method: str,
        url: str,
        timeout: float,
        request_kwargs: dict,
    ) -> httpx.Response:
        try:
            async with asyncio.timeout(timeout):
                response = await self.client.request(method, url, **request_kwargs)
        except TimeoutError as e:
            raise AttemptTimeoutError(timeout) from e

        if not response.is_success:
            raise BadStatusError(response)
        return response

    @staticmethod
    def _log_retry(method: str, url: str):
        def before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning(
                "fetch_retry",
                method=method,
                url=url,
                attempt=retry_state.attempt_number,
                delay_seconds=round(delay, 2),
                reason=str(exc) if exc else None,
            )

        return before_sleep
