"""Market data models."""

from datetime import datetime

from tradegpt.models.trade import WireModel


class PriceSample(WireModel):
    symbol: str
    price: float
    fetched_at: datetime


class MarketSnapshot(WireModel):
    symbol: str
    price: float
    change_24h: float = 0.0
    volume_24h: float = 0.0
    rsi: float = 50.0
    support: float = 0.0
    resistance: float = 0.0
