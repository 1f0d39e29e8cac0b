"""Shared fixtures and fakes for the test suite."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from tradegpt.models.trade import Trade, TradeSide, TradeStatus, TradeSuggestion
from tradegpt.services.chain_client import ChainClient
from tradegpt.services.notifier import SocketHub
from tradegpt.store.trade_ledger import TradeLedger

WALLET = "0x" + "11" * 20
SMART_ACCOUNT = "0x" + "22" * 20
ROUTER = "0x" + "33" * 20
TX_HASH = "0x" + "ab" * 32


def make_suggestion(**overrides) -> TradeSuggestion:
    fields = {
        "id": str(uuid.uuid4()),
        "asset": "ETH",
        "symbol": "ETH",
        "side": TradeSide.LONG,
        "leverage": 5,
        "collateral": 100,
        "entry_price": 3100.0,
        "stop_loss": 3000.0,
        "take_profit": 3300.0,
        "rationale": "Momentum is bullish",
        "confidence": 70,
        "risk_reward": 2.0,
    }
    fields.update(overrides)
    return TradeSuggestion(**fields)


def add_trade(ledger: TradeLedger, user_id: str = "u1", status: TradeStatus = TradeStatus.DRAFT, **overrides) -> Trade:
    """Insert a trade and move it to ``status`` through the ledger's own update."""
    trade = ledger.insert(user_id, make_suggestion(**overrides))
    if status != TradeStatus.DRAFT:
        trade = ledger.update(user_id, trade.id, {"status": status})
    return trade


class FakePriceFeed:
    """Async price fetcher with per-symbol prices or failures, recording every call."""

    def __init__(self, prices: dict[str, float] | None = None):
        self.prices = dict(prices or {})
        self.failures: dict[str, Exception] = {}
        self.calls: list[str] = []

    async def __call__(self, symbol: str) -> float:
        self.calls.append(symbol)
        if symbol in self.failures:
            raise self.failures[symbol]
        return self.prices[symbol]


class EventRecorder:
    def __init__(self, hub: SocketHub):
        self.events: list[tuple[str, dict]] = []
        hub.add_listener(self)

    def __call__(self, event_type: str, payload: dict):
        self.events.append((event_type, payload))

    def of_type(self, event_type: str) -> list[dict]:
        return [p for t, p in self.events if t == event_type]


def make_chain(smart_account: str | None = None, has_agent: bool = False) -> MagicMock:
    chain = MagicMock(spec=ChainClient)
    chain.has_agent = has_agent
    chain.get_smart_account = AsyncMock(return_value=smart_account)
    chain.get_accounts = AsyncMock(return_value=[smart_account] if smart_account else [])
    chain.get_balance = AsyncMock(return_value=0)
    chain.has_pending_trade = AsyncMock(return_value=False)
    chain.send_transaction = AsyncMock(return_value=TX_HASH)
    chain.wait_for_receipt = AsyncMock(return_value={"status": 1})
    chain.close = AsyncMock()
    return chain


@pytest.fixture
def ledger() -> TradeLedger:
    return TradeLedger()


@pytest.fixture
def hub() -> SocketHub:
    return SocketHub()


@pytest.fixture
def recorder(hub) -> EventRecorder:
    return EventRecorder(hub)
