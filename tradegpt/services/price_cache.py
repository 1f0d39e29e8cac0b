"""Short-TTL price cache in front of the external price feed.

Shields the stop-loss monitor from hammering the feed when several open
positions share a symbol. Entries older than the TTL are refetched, never
served stale, and fetch failures propagate to the caller untouched so the
caller decides the fallback.

All reads and writes happen between awaits on the event loop, so no lock is
needed. Two concurrent misses for the same symbol can both fetch; the later
result wins, which costs one redundant request and nothing else.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable

from tradegpt.models.market import PriceSample

logger = logging.getLogger(__name__)

PriceFetcher = Callable[[str], Awaitable[float]]


class PriceCache:
    def __init__(
        self,
        fetch_price: PriceFetcher,
        ttl_seconds: float = 5.0,
        clock: Callable[[], float] = time.time,
    ):
        self._fetch_price = fetch_price
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, float]] = {}  # symbol -> (price, fetched_at)

    async def get_price(self, symbol: str) -> float:
        """Return a price no older than the TTL, fetching when needed."""
        key = symbol.upper()
        cached = self._entries.get(key)
        if cached is not None:
            price, fetched_at = cached
            if self._clock() - fetched_at < self.ttl_seconds:
                return price

        price = await self._fetch_price(key)
        self._entries[key] = (price, self._clock())
        logger.debug(f"Price refreshed: {key} = {price}")
        return price

    def samples(self) -> list[PriceSample]:
        """Snapshot of cached entries for diagnostics, including expired ones."""
        return [
            PriceSample(
                symbol=symbol,
                price=price,
                fetched_at=datetime.fromtimestamp(fetched_at, tz=timezone.utc),
            )
            for symbol, (price, fetched_at) in self._entries.items()
        ]
