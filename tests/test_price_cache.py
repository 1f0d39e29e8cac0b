"""Tests for the TTL price cache."""

import pytest

from tradegpt.errors import ExternalFetchError
from tradegpt.services.price_cache import PriceCache

from conftest import FakePriceFeed


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def feed():
    return FakePriceFeed({"ETH": 3000.0, "BTC": 60000.0})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.mark.asyncio
async def test_calls_within_ttl_fetch_once(feed, clock):
    cache = PriceCache(feed, ttl_seconds=5.0, clock=clock)
    assert await cache.get_price("ETH") == 3000.0
    clock.advance(4.9)
    feed.prices["ETH"] = 3100.0
    assert await cache.get_price("ETH") == 3000.0
    assert feed.calls == ["ETH"]


@pytest.mark.asyncio
async def test_calls_beyond_ttl_refetch(feed, clock):
    cache = PriceCache(feed, ttl_seconds=5.0, clock=clock)
    await cache.get_price("ETH")
    clock.advance(5.0)
    feed.prices["ETH"] = 3100.0
    assert await cache.get_price("ETH") == 3100.0
    assert feed.calls == ["ETH", "ETH"]


@pytest.mark.asyncio
async def test_symbols_are_cached_independently_and_case_insensitively(feed, clock):
    cache = PriceCache(feed, clock=clock)
    await cache.get_price("eth")
    await cache.get_price("ETH")
    await cache.get_price("BTC")
    assert feed.calls == ["ETH", "BTC"]


@pytest.mark.asyncio
async def test_fetch_failure_propagates_and_stores_nothing(feed, clock):
    cache = PriceCache(feed, clock=clock)
    feed.failures["ETH"] = ExternalFetchError("feed down")

    with pytest.raises(ExternalFetchError):
        await cache.get_price("ETH")
    assert cache.samples() == []

    del feed.failures["ETH"]
    assert await cache.get_price("ETH") == 3000.0
    assert len(feed.calls) == 2


@pytest.mark.asyncio
async def test_expired_entry_is_not_served_when_refetch_fails(feed, clock):
    cache = PriceCache(feed, ttl_seconds=5.0, clock=clock)
    await cache.get_price("ETH")
    clock.advance(10)
    feed.failures["ETH"] = ExternalFetchError("timeout")
    with pytest.raises(ExternalFetchError):
        await cache.get_price("ETH")


@pytest.mark.asyncio
async def test_samples_report_cached_prices(feed, clock):
    cache = PriceCache(feed, clock=clock)
    await cache.get_price("ETH")
    [sample] = cache.samples()
    assert sample.symbol == "ETH"
    assert sample.price == 3000.0
    assert sample.fetched_at.timestamp() == clock.now
    assert sample.to_payload()["fetchedAt"]
