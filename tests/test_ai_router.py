"""Tests for provider selection, symbol detection and suggestion derivation."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from tradegpt.config import Settings
from tradegpt.errors import ExternalFetchError, ProviderUnavailableError
from tradegpt.models.chat import ChatMessage
from tradegpt.models.market import MarketSnapshot
from tradegpt.models.trade import TradeSide
from tradegpt.services import ai_router
from tradegpt.services.ai_router import (
    AiRouter,
    DisabledProvider,
    GeminiProvider,
    OpenAIProvider,
    derive_suggestion,
    detect_symbol,
    select_provider,
)

GOOD_KEY = "sk-" + "x" * 40


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def _message(content: str, role: str = "user") -> ChatMessage:
    return ChatMessage(id="m1", role=role, content=content, created_at=datetime.now(timezone.utc))


def _snapshot(symbol: str = "ETH", price: float = 100.0, change: float = 2.0) -> MarketSnapshot:
    return MarketSnapshot(symbol=symbol, price=price, change_24h=change, rsi=55.0, support=95.0, resistance=105.0)


@pytest.fixture
def fake_genai(monkeypatch):
    genai = MagicMock()
    monkeypatch.setattr(ai_router, "genai", genai)
    return genai


# ---------------------------------------------------------------------------
# 1. Provider selection
# ---------------------------------------------------------------------------

def test_no_keys_selects_disabled_provider():
    assert isinstance(select_provider(_settings()), DisabledProvider)


def test_short_and_placeholder_keys_are_ignored():
    provider = select_provider(_settings(gemini_api_key="tooshort", openai_api_key="<replace-with-your-key>"))
    assert isinstance(provider, DisabledProvider)


def test_gemini_is_preferred_over_openai(fake_genai):
    provider = select_provider(_settings(gemini_api_key=GOOD_KEY, openai_api_key=GOOD_KEY))
    assert isinstance(provider, GeminiProvider)
    fake_genai.Client.assert_called_once_with(api_key=GOOD_KEY)


def test_openai_selected_when_gemini_missing():
    provider = select_provider(_settings(openai_api_key=GOOD_KEY, openai_model="gpt-4o"))
    assert isinstance(provider, OpenAIProvider)
    assert provider.model_name == "gpt-4o"


@pytest.mark.asyncio
async def test_disabled_provider_raises_clear_error():
    with pytest.raises(ProviderUnavailableError, match="No AI provider configured"):
        await DisabledProvider().complete([_message("hi")], "context")


@pytest.mark.asyncio
async def test_gemini_maps_roles_and_appends_market_context(fake_genai):
    models = fake_genai.Client.return_value.aio.models
    models.generate_content = AsyncMock(return_value=MagicMock(text="Buy the dip"))
    provider = GeminiProvider(GOOD_KEY, "gemini-2.0-flash")

    answer = await provider.complete([_message("hi"), _message("hello", role="assistant")], "ctx")

    assert answer == "Buy the dip"
    kwargs = models.generate_content.call_args.kwargs
    assert kwargs["model"] == "gemini-2.0-flash"
    contents = kwargs["contents"]
    assert [c["role"] for c in contents] == ["user", "model", "user"]
    assert contents[-1]["parts"] == [{"text": "ctx"}]
    assert kwargs["config"].system_instruction.startswith("You are TradeGPT")


@pytest.mark.asyncio
async def test_gemini_blocked_answer_falls_back(fake_genai):
    models = fake_genai.Client.return_value.aio.models
    models.generate_content = AsyncMock(return_value=MagicMock(text=None))
    provider = GeminiProvider(GOOD_KEY, "gemini-2.0-flash")
    assert await provider.complete([_message("hi")], "ctx") == ai_router.NO_ANSWER


# ---------------------------------------------------------------------------
# 2. Symbol detection and suggestion derivation
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "text,expected",
    [
        ("what about btc today?", "BTC"),
        ("Long ETH please", "ETH"),
        ("is sol cheap", "SOL"),
        ("thoughts on AVAX", "AVAX"),
        ("hello there", None),
    ],
)
def test_detect_symbol(text, expected):
    assert detect_symbol(text) == expected


def test_defaults_to_long_with_default_sizing():
    suggestion = derive_suggestion("Looks constructive.", _snapshot(), "what now")
    assert suggestion.side == TradeSide.LONG
    assert suggestion.leverage == 5
    assert suggestion.collateral == 100
    assert suggestion.stop_loss == 97.0
    assert suggestion.take_profit == 106.0
    assert suggestion.risk_reward == 2.0
    assert suggestion.entry_price == 100.0
    assert suggestion.symbol == suggestion.asset == "ETH"


def test_short_request_with_leverage_and_collateral():
    suggestion = derive_suggestion("", _snapshot(price=200.0), "Short SOL 3x with $250")
    assert suggestion.side == TradeSide.SHORT
    assert suggestion.leverage == 3
    assert suggestion.collateral == 250
    assert suggestion.stop_loss == 206.0
    assert suggestion.take_profit == 188.0
    assert suggestion.risk_reward == 2.0


def test_collateral_with_unit_suffix():
    suggestion = derive_suggestion("", _snapshot(), "long 2x using 500 usdc")
    assert suggestion.collateral == 500
    assert suggestion.leverage == 2


def test_mentioning_both_sides_stays_long():
    assert derive_suggestion("short-term long setup", _snapshot(), "").side == TradeSide.LONG


@pytest.mark.parametrize("change,expected", [(0.0, 60.0), (4.0, 80.0), (10.0, 95.0), (-10.0, 40.0)])
def test_confidence_is_clamped(change, expected):
    assert derive_suggestion("", _snapshot(change=change), "").confidence == expected


# ---------------------------------------------------------------------------
# 3. Router
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_generate_uses_detected_symbol_and_returns_suggestion():
    provider = MagicMock()
    provider.complete = AsyncMock(return_value="**Direction**: LONG\n**Leverage**: 4X")
    market_data = MagicMock()
    market_data.get_snapshot = AsyncMock(return_value=_snapshot(symbol="BTC", price=60000.0))

    result = await AiRouter(provider, market_data).generate([_message("set me up on btc")])

    market_data.get_snapshot.assert_awaited_once_with("BTC")
    assert result.reply.role == "assistant"
    assert result.reply.content.startswith("**Direction**")
    assert result.suggestion.symbol == "BTC"
    assert result.suggestion.leverage == 4
    assert "BTC" in provider.complete.call_args.args[1]


@pytest.mark.asyncio
async def test_generate_defaults_to_eth():
    provider = MagicMock()
    provider.complete = AsyncMock(return_value="ok")
    market_data = MagicMock()
    market_data.get_snapshot = AsyncMock(return_value=_snapshot())

    await AiRouter(provider, market_data).generate([_message("hello there")])
    market_data.get_snapshot.assert_awaited_once_with("ETH")


@pytest.mark.asyncio
async def test_provider_transport_error_becomes_external_fetch_error():
    provider = MagicMock()
    provider.name = "openai"
    provider.complete = AsyncMock(side_effect=ConnectionError("reset"))
    market_data = MagicMock()
    market_data.get_snapshot = AsyncMock(return_value=_snapshot())

    with pytest.raises(ExternalFetchError):
        await AiRouter(provider, market_data).generate([_message("hi")])


@pytest.mark.asyncio
async def test_disabled_provider_error_passes_through():
    market_data = MagicMock()
    market_data.get_snapshot = AsyncMock(return_value=_snapshot())
    with pytest.raises(ProviderUnavailableError):
        await AiRouter(DisabledProvider(), market_data).generate([_message("hi")])
