"""Tests for ContentFetcher."""

import asyncio

import httpx
import pytest

from sf_time_machine.backup.fetcher import ContentFetcher, RetryPolicy
from sf_time_machine.config import FetcherConfig
from sf_time_machine.exceptions import FetchError
from tests.utils import status_error

NO_WAIT = RetryPolicy(attempts=3, backoff_base=0.0, max_backoff=0.0)


class FlakyFetch:
    """Fetch function failing with the queued errors before succeeding."""

    def __init__(self, *errors, payload=b"payload"):
        self.errors = list(errors)
        self.payload = payload
        self.calls = 0

    async def __call__(self, url):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.payload


@pytest.mark.asyncio
async def test_parallel_limit_caps_in_flight():
    """Never more than parallel_limit fetches run at once."""
    in_flight = 0
    peak = 0

    async def fetch(url):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return url.encode()

    fetcher = ContentFetcher(fetch, parallel_limit=3, retry_policy=NO_WAIT)
    results = await asyncio.gather(*[fetcher.fetch(f"/file/{i}") for i in range(20)])

    assert len(results) == 20
    assert peak <= 3
    assert fetcher.stats.peak_in_flight <= 3
    assert fetcher.stats.in_flight == 0
    assert fetcher.stats.fetched == 20


@pytest.mark.asyncio
async def test_retries_network_errors_then_succeeds():
    fetch = FlakyFetch(httpx.ConnectError("reset"), httpx.ConnectError("reset"))
    fetcher = ContentFetcher(fetch, retry_policy=NO_WAIT)

    assert await fetcher.fetch("/file") == b"payload"
    assert fetch.calls == 3
    assert fetcher.stats.fetched == 1
    assert fetcher.stats.errors == 0
    assert fetcher.stats.total_bytes == len(b"payload")


@pytest.mark.asyncio
async def test_retries_server_errors_until_exhausted():
    fetch = FlakyFetch(*[status_error(503) for _ in range(5)])
    fetcher = ContentFetcher(fetch, retry_policy=NO_WAIT)

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch("/file")

    assert fetch.calls == 3
    assert exc_info.value.kind == FetchError.HTTP_STATUS
    assert exc_info.value.status_code == 503
    assert exc_info.value.attempts == 3
    assert fetcher.stats.errors == 1


@pytest.mark.asyncio
async def test_not_found_is_not_retried():
    fetch = FlakyFetch(status_error(404))
    fetcher = ContentFetcher(fetch, retry_policy=NO_WAIT)

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch("/missing")

    assert fetch.calls == 1
    assert exc_info.value.status_code == 404
    assert "/missing" in str(exc_info.value)


@pytest.mark.asyncio
async def test_rate_limit_is_retried():
    fetch = FlakyFetch(status_error(429))
    fetcher = ContentFetcher(fetch, retry_policy=NO_WAIT)

    assert await fetcher.fetch("/file") == b"payload"
    assert fetch.calls == 2


@pytest.mark.asyncio
async def test_timeout_classified():
    async def slow(url):
        await asyncio.sleep(1)
        return b""

    fetcher = ContentFetcher(
        slow,
        retry_policy=RetryPolicy(attempts=1, backoff_base=0.0),
        request_timeout=0.01
    )

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch("/slow")

    assert exc_info.value.kind == FetchError.TIMEOUT
    assert fetcher.stats.in_flight == 0


@pytest.mark.asyncio
async def test_os_error_is_network_kind():
    fetch = FlakyFetch(ConnectionResetError("socket closed"), ConnectionResetError("socket closed"),
                       ConnectionResetError("x"))
    fetcher = ContentFetcher(fetch, retry_policy=NO_WAIT)

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch("/file")

    assert exc_info.value.kind == FetchError.NETWORK
    assert fetch.calls == 3
    assert fetcher.stats.errors == 1


@pytest.mark.asyncio
async def test_programming_error_propagates_without_retry():
    fetch = FlakyFetch(RuntimeError("bug in fetch function"))
    fetcher = ContentFetcher(fetch, retry_policy=NO_WAIT)

    with pytest.raises(RuntimeError, match="bug in fetch function"):
        await fetcher.fetch("/file")

    assert fetch.calls == 1
    assert fetcher.stats.errors == 0
    assert fetcher.stats.in_flight == 0


def test_retry_policy_classification():
    policy = RetryPolicy()
    assert policy.is_retryable(FetchError(FetchError.TIMEOUT, "/f", "slow"))
    assert policy.is_retryable(FetchError(FetchError.NETWORK, "/f", "reset"))
    assert policy.is_retryable(FetchError(FetchError.HTTP_STATUS, "/f", "busy", status_code=503))
    assert not policy.is_retryable(FetchError(FetchError.HTTP_STATUS, "/f", "gone", status_code=404))
    assert not policy.is_retryable(ValueError("not a fetch error"))


def test_invalid_parallel_limit():
    with pytest.raises(ValueError):
        ContentFetcher(FlakyFetch(), parallel_limit=0)


def test_from_config():
    config = FetcherConfig(parallel_limit=7, retry_attempts=4, backoff_base=2.0, request_timeout=9.0)
    fetcher = ContentFetcher.from_config(FlakyFetch(), config)

    assert fetcher.parallel_limit == 7
    assert fetcher.retry_policy.attempts == 4
    assert fetcher.retry_policy.backoff_base == 2.0
    assert fetcher.request_timeout == 9.0

    override = ContentFetcher.from_config(FlakyFetch(), config, parallel_limit=2)
    assert override.parallel_limit == 2
