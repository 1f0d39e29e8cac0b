"""Domain models."""

from tradegpt.models.trade import (
    PreparedTransaction,
    Trade,
    TradeSide,
    TradeStatus,
    TradeSuggestion,
)
from tradegpt.models.chat import AiResponse, ChatMessage
from tradegpt.models.market import MarketSnapshot, PriceSample

__all__ = [
    "PreparedTransaction",
    "Trade",
    "TradeSide",
    "TradeStatus",
    "TradeSuggestion",
    "AiResponse",
    "ChatMessage",
    "MarketSnapshot",
    "PriceSample",
]
