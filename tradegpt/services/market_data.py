"""Market data fetching.

Prices and candles come from Hyperliquid's public info endpoint. The SDK
client is synchronous, so every call runs in the default executor under a
fixed timeout; a timeout is reported like any other fetch failure.
"""

import asyncio
import logging
import threading
from datetime import datetime, timedelta, timezone

import numpy as np
import pandas as pd
from hyperliquid.info import Info

from tradegpt.errors import ExternalFetchError
from tradegpt.models.market import MarketSnapshot
from tradegpt.utils.constants import INTERVAL_SECONDS

logger = logging.getLogger(__name__)

RSI_PERIOD = 14
RSI_NEUTRAL = 50.0
RSI_NO_LOSSES = 70.0
SUPPORT_RESISTANCE_WINDOW = 20
SNAPSHOT_CANDLES = 24


def to_hl_ticker(symbol: str) -> str:
    """Convert a symbol to Hyperliquid's ticker format.

    Hyperliquid uses 'kX' instead of '1000X' (e.g. kBONK, kPEPE).
    """
    symbol = symbol.upper()
    if symbol.startswith("1000"):
        return "k" + symbol[4:]
    return symbol


class MarketDataService:
    """Price feed and snapshot provider backed by Hyperliquid."""

    def __init__(self, base_url: str = "", timeout: float = 5.0, candle_interval: str = "1h"):
        self.base_url = base_url or None
        self.timeout = timeout
        self.candle_interval = candle_interval
        self._info: Info | None = None
        self._info_guard = threading.Lock()

    def _get_info(self) -> Info:
        # Info() fetches exchange metadata on construction, so build it lazily
        # inside the executor thread rather than at import or app start.
        with self._info_guard:
            if self._info is None:
                self._info = Info(base_url=self.base_url, skip_ws=True)
            return self._info

    async def _call(self, description: str, fn, *args):
        loop = asyncio.get_running_loop()

        def _run():
            return fn(self._get_info(), *args)

        try:
            return await asyncio.wait_for(loop.run_in_executor(None, _run), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ExternalFetchError(f"Timed out after {self.timeout}s fetching {description}") from e
        except ExternalFetchError:
            raise
        except Exception as e:
            raise ExternalFetchError(f"Failed to fetch {description}: {e}") from e

    async def fetch_price(self, symbol: str) -> float:
        """Current mid price for a symbol."""
        ticker = to_hl_ticker(symbol)
        mids = await self._call(f"mid price for {ticker}", lambda info: info.all_mids())
        raw = mids.get(ticker) if isinstance(mids, dict) else None
        if raw is None:
            raise ExternalFetchError(f"No mid price published for {ticker}")
        try:
            price = float(raw)
        except (TypeError, ValueError) as e:
            raise ExternalFetchError(f"Malformed price for {ticker}: {raw!r}") from e
        if not np.isfinite(price) or price <= 0:
            raise ExternalFetchError(f"Invalid price for {ticker}: {price}")
        return price

    async def fetch_candles(self, symbol: str, interval: str, candles_needed: int) -> pd.DataFrame:
        """Fetch close/volume candles as a DataFrame indexed by open time.

        Returns an empty frame when the feed has no candles for the range.
        """
        ticker = to_hl_ticker(symbol)
        interval_seconds = INTERVAL_SECONDS.get(interval, 3600)
        now = datetime.now(timezone.utc)
        buffer_candles = int(candles_needed * 1.2) + 1  # 20% buffer
        start_time = now - timedelta(seconds=buffer_candles * interval_seconds)
        start_ms = int(start_time.timestamp() * 1000)
        end_ms = int(now.timestamp() * 1000)

        candles = await self._call(
            f"{interval} candles for {ticker}",
            lambda info: info.candles_snapshot(ticker, interval, start_ms, end_ms),
        )
        frame = parse_candles(candles)
        return frame.tail(candles_needed)

    async def get_snapshot(self, symbol: str) -> MarketSnapshot:
        """Price plus 24h context (change, volume, RSI, support/resistance) for chat prompts."""
        symbol = symbol.upper()
        price = await self.fetch_price(symbol)

        try:
            candles = await self.fetch_candles(symbol, self.candle_interval, SNAPSHOT_CANDLES + RSI_PERIOD)
        except ExternalFetchError as e:
            logger.warning(f"Historical candles unavailable for {symbol}: {e}")
            candles = parse_candles([])

        return build_snapshot(symbol, price, candles)


def build_snapshot(symbol: str, price: float, candles: pd.DataFrame) -> MarketSnapshot:
    closes = candles["close"].to_numpy(dtype=float) if not candles.empty else np.array([])
    volumes = candles["volume"].to_numpy(dtype=float) if not candles.empty else np.array([])

    change_24h = 0.0
    if len(closes) > 0:
        reference = closes[-SNAPSHOT_CANDLES] if len(closes) >= SNAPSHOT_CANDLES else closes[0]
        if reference > 0:
            change_24h = (price / reference - 1.0) * 100.0

    window = closes[-SUPPORT_RESISTANCE_WINDOW:]
    support = float(window.min()) if len(window) else price * 0.97
    resistance = float(window.max()) if len(window) else price * 1.03

    return MarketSnapshot(
        symbol=symbol,
        price=price,
        change_24h=round(change_24h, 4),
        volume_24h=float(volumes[-SNAPSHOT_CANDLES:].sum()) if len(volumes) else 0.0,
        rsi=compute_rsi(closes),
        support=round(support, 2),
        resistance=round(resistance, 2),
    )


def compute_rsi(values: np.ndarray, period: int = RSI_PERIOD) -> float:
    """Wilder RSI of the series.

    Neutral (50) when there are not more than ``period`` points, and a capped
    70 when the window has no losses at all.
    """
    values = np.asarray(values, dtype=float)
    if len(values) <= period:
        return RSI_NEUTRAL

    deltas = np.diff(values)
    gains = np.maximum(deltas, 0.0)
    losses = np.maximum(-deltas, 0.0)

    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period

    if avg_loss == 0:
        return RSI_NO_LOSSES
    rs = avg_gain / avg_loss
    return round(100.0 - 100.0 / (1.0 + rs), 2)


def parse_candles(candles: list[dict]) -> pd.DataFrame:
    """Parse a Hyperliquid candles_snapshot response.

    Each candle dict: {"t": 1772092800000, "s": "SOL", "i": "1h",
                       "o": "87.212", "c": "87.498", "h": "87.811", "l": "87.212", "v": "1234.5", ...}
    """
    empty = pd.DataFrame(columns=["close", "volume"], dtype=float)
    if not candles:
        return empty

    records = [
        {"t": c["t"], "close": c["c"], "volume": c.get("v", 0)}
        for c in candles
        if c.get("c") is not None
    ]
    df = pd.DataFrame(records)
    if df.empty:
        return empty

    df["t"] = pd.to_datetime(df["t"], unit="ms", utc=True)
    df["close"] = pd.to_numeric(df["close"], errors="coerce")
    df["volume"] = pd.to_numeric(df["volume"], errors="coerce").fillna(0.0)
    df = df.set_index("t").sort_index()
    return df.dropna(subset=["close"])
