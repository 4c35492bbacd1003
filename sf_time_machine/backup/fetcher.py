"""Bounded-concurrency binary content fetcher with retry."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .._utils import logger
from ..config import FetcherConfig
from ..exceptions import FetchError

FetchFunc = Callable[[str], Awaitable[bytes]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry and backoff applied around a single fetch."""
    attempts: int = 3
    backoff_base: float = 1.0
    max_backoff: float = 30.0
    retry_on_status: Tuple[int, ...] = (429, 500, 502, 503, 504)

    @classmethod
    def from_config(cls, config: FetcherConfig) -> "RetryPolicy":
        return cls(
            attempts=config.retry_attempts,
            backoff_base=config.backoff_base,
            max_backoff=config.max_backoff,
            retry_on_status=tuple(config.retry_on_status)
        )

    def is_retryable(self, error: BaseException) -> bool:
        if not isinstance(error, FetchError):
            return False
        if error.kind == FetchError.HTTP_STATUS:
            return error.status_code in self.retry_on_status
        return True

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.max_backoff),
            retry=retry_if_exception(self.is_retryable),
            reraise=True
        )


@dataclass
class FetchStats:
    fetched: int = 0
    total_bytes: int = 0
    errors: int = 0
    in_flight: int = 0
    peak_in_flight: int = 0


class ContentFetcher:
    """Fetch binary payloads with at most ``parallel_limit`` requests in flight.

    Failures are retried according to the ``RetryPolicy``; once attempts are
    exhausted the failure is counted and raised as a ``FetchError`` for that
    item only.
    """

    def __init__(
        self,
        fetch_func: FetchFunc,
        parallel_limit: int = 5,
        retry_policy: Optional[RetryPolicy] = None,
        request_timeout: Optional[float] = None
    ):
        """Initialize fetcher.

        Args:
            fetch_func: Coroutine downloading one URL (usually ``client.fetch_bytes``)
            parallel_limit: Maximum simultaneous fetch attempts
            retry_policy: Retry/backoff policy, defaults to 3 attempts
            request_timeout: Per-attempt timeout in seconds, None to rely on fetch_func
        """
        if parallel_limit < 1:
            raise ValueError(f"parallel_limit must be positive, got {parallel_limit}")

        self._fetch_func = fetch_func
        self.parallel_limit = parallel_limit
        self.retry_policy = retry_policy or RetryPolicy()
        self.request_timeout = request_timeout
        self.stats = FetchStats()
        self._semaphore = asyncio.Semaphore(parallel_limit)
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        fetch_func: FetchFunc,
        config: FetcherConfig,
        parallel_limit: Optional[int] = None
    ) -> "ContentFetcher":
        return cls(
            fetch_func,
            parallel_limit=parallel_limit or config.parallel_limit,
            retry_policy=RetryPolicy.from_config(config),
            request_timeout=config.request_timeout
        )

    async def fetch(self, url: str) -> bytes:
        """Fetch one payload.

        Raises:
            FetchError: after the retry policy gives up
        """
        try:
            async for attempt in self.retry_policy.retrying():
                with attempt:
                    data = await self._attempt(url, attempt.retry_state.attempt_number)
        except FetchError as e:
            async with self._lock:
                self.stats.errors += 1
            logger.warning(f"Giving up on {url}: {e}")
            raise

        async with self._lock:
            self.stats.fetched += 1
            self.stats.total_bytes += len(data)
        return data

    async def _attempt(self, url: str, attempt_number: int) -> bytes:
        async with self._semaphore:
            async with self._lock:
                self.stats.in_flight += 1
                self.stats.peak_in_flight = max(self.stats.peak_in_flight, self.stats.in_flight)
            try:
                if self.request_timeout:
                    return await asyncio.wait_for(self._fetch_func(url), timeout=self.request_timeout)
                return await self._fetch_func(url)
            except FetchError:
                raise
            except (httpx.TimeoutException, asyncio.TimeoutError) as e:
                raise FetchError(FetchError.TIMEOUT, url, str(e) or "timed out", attempt_number) from e
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                raise FetchError(
                    FetchError.HTTP_STATUS, url, f"HTTP {status}", attempt_number, status_code=status
                ) from e
            except (httpx.TransportError, OSError) as e:
                raise FetchError(FetchError.NETWORK, url, str(e), attempt_number) from e
            finally:
                async with self._lock:
                    self.stats.in_flight -= 1
