"""Chat completion providers and trade suggestion derivation.

One provider is picked at startup from the configured keys (Gemini first,
then OpenAI). With neither configured the router runs with a disabled
provider that fails every request with a clear error.
"""

import logging
import re
import uuid
from datetime import datetime, timezone

from google import genai
from google.genai import types
from openai import AsyncOpenAI

from tradegpt.config import Settings
from tradegpt.errors import ExternalFetchError, ProviderUnavailableError, TradeGPTError
from tradegpt.models.chat import AiResponse, ChatMessage
from tradegpt.models.market import MarketSnapshot
from tradegpt.models.trade import TradeSide, TradeSuggestion
from tradegpt.services.market_data import MarketDataService

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are TradeGPT, an institutional-grade trading assistant operating on the Somnia blockchain.

IMPORTANT RULES:
1. Be conversational and answer questions directly when users ask informational questions (e.g., "What is ETH price?", "Should I buy now?")
2. Only provide structured trade recommendations when users explicitly request a trade setup
3. Use the current market data provided to give accurate, real-time analysis
4. Format trade recommendations with **bold** labels, each on a NEW LINE with a blank line between them:

**Asset**: [symbol]

**Direction**: LONG/SHORT

**Leverage**: [number]X

**Collateral**: $[amount]

**Entry**: $[price from market data]

**Stop Loss**: $[price]

**Take Profit**: $[price]

**Risk/Reward**: [ratio]

5. When answering price questions, use the EXACT price from the market snapshot provided
6. Be helpful, analytical, and provide context for your recommendations"""

NO_ANSWER = "Unable to process request."
DEFAULT_SYMBOL = "ETH"
DEFAULT_LEVERAGE = 5.0
DEFAULT_COLLATERAL = 100.0
MIN_KEY_LENGTH = 10

_LEVERAGE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*x\b")
_COLLATERAL_RE = re.compile(r"\$\s*(\d+(?:\.\d+)?)|(\d+(?:\.\d+)?)\s*(?:usdc|usd|eth)\b")
_TICKER_RE = re.compile(r"([A-Z]{2,6})")

# (stop-loss, take-profit) multipliers of the entry price
_LEVEL_MULTIPLIERS = {
    TradeSide.LONG: (0.97, 1.06),
    TradeSide.SHORT: (1.03, 0.94),
}


def market_context(snapshot: MarketSnapshot) -> str:
    return (
        f"Latest market snapshot for {snapshot.symbol}: price {snapshot.price}, "
        f"24h change {snapshot.change_24h}%, RSI {snapshot.rsi}, "
        f"support {snapshot.support}, resistance {snapshot.resistance}."
    )


class ChatProvider:
    """Text completion over a chat history plus the latest market context."""

    name = "base"

    async def complete(self, history: list[ChatMessage], context: str) -> str:
        raise NotImplementedError


class GeminiProvider(ChatProvider):
    name = "gemini"

    def __init__(self, api_key: str, model: str):
        self.model_name = model
        self._client = genai.Client(api_key=api_key)
        self._config = types.GenerateContentConfig(system_instruction=SYSTEM_PROMPT)

    async def complete(self, history: list[ChatMessage], context: str) -> str:
        contents = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
            for m in history
        ]
        contents.append({"role": "user", "parts": [{"text": context}]})

        response = await self._client.aio.models.generate_content(
            model=self.model_name,
            contents=contents,
            config=self._config,
        )
        # .text is None when the candidate was blocked or has no text parts
        if not response.text:
            logger.warning("Gemini returned no text candidate")
            return NO_ANSWER
        return response.text


class OpenAIProvider(ChatProvider):
    name = "openai"

    def __init__(self, api_key: str, model: str):
        self.model_name = model
        self._client = AsyncOpenAI(api_key=api_key)

    async def complete(self, history: list[ChatMessage], context: str) -> str:
        messages = [{"role": "system", "content": SYSTEM_PROMPT}]
        messages += [{"role": m.role, "content": m.content} for m in history]
        messages.append({"role": "system", "content": context})

        completion = await self._client.chat.completions.create(
            model=self.model_name,
            messages=messages,
            temperature=0.2,
        )
        if not completion.choices:
            return NO_ANSWER
        return completion.choices[0].message.content or NO_ANSWER


class DisabledProvider(ChatProvider):
    name = "disabled"

    async def complete(self, history: list[ChatMessage], context: str) -> str:
        raise ProviderUnavailableError(
            "No AI provider configured. Set TG_GEMINI_API_KEY or TG_OPENAI_API_KEY."
        )


def _usable_key(key: str) -> str | None:
    key = key.strip()
    if len(key) <= MIN_KEY_LENGTH or key.startswith("<replace"):
        return None
    return key


def select_provider(settings: Settings) -> ChatProvider:
    gemini_key = _usable_key(settings.gemini_api_key)
    if gemini_key:
        logger.info(f"AI provider: Gemini ({settings.gemini_model})")
        return GeminiProvider(gemini_key, settings.gemini_model)

    openai_key = _usable_key(settings.openai_api_key)
    if openai_key:
        logger.info(f"AI provider: OpenAI ({settings.openai_model})")
        return OpenAIProvider(openai_key, settings.openai_model)

    logger.warning("No AI provider configured; chat requests will fail until a key is set")
    return DisabledProvider()


def detect_symbol(content: str) -> str | None:
    lower = content.lower()
    for symbol in ("btc", "eth", "sol"):
        if symbol in lower:
            return symbol.upper()
    match = _TICKER_RE.search(content)
    return match.group(1) if match else None


def derive_suggestion(response_text: str, snapshot: MarketSnapshot, user_message: str) -> TradeSuggestion:
    """Turn the model's answer and the user's request into concrete trade parameters."""
    combined = f"{response_text}\n{user_message}".lower()
    side = TradeSide.SHORT if "short" in combined and "long" not in combined else TradeSide.LONG

    leverage = DEFAULT_LEVERAGE
    match = _LEVERAGE_RE.search(combined)
    if match and float(match.group(1)) > 0:
        leverage = float(match.group(1))

    collateral = DEFAULT_COLLATERAL
    match = _COLLATERAL_RE.search(combined)
    if match:
        amount = float(match.group(1) or match.group(2))
        if amount > 0:
            collateral = amount

    price = snapshot.price
    stop_multiple, target_multiple = _LEVEL_MULTIPLIERS[side]
    stop_loss = round(price * stop_multiple, 2)
    take_profit = round(price * target_multiple, 2)

    risk = abs(price - stop_loss)
    risk_reward = round(abs(take_profit - price) / risk, 2) if risk else 1.0
    momentum = "bullish" if snapshot.change_24h >= 0 else "bearish"

    return TradeSuggestion(
        id=str(uuid.uuid4()),
        asset=snapshot.symbol,
        symbol=snapshot.symbol,
        side=side,
        leverage=leverage,
        collateral=collateral,
        entry_price=price,
        stop_loss=stop_loss,
        take_profit=take_profit,
        rationale=f"Momentum is {momentum} with RSI {snapshot.rsi}. Risk defined at {stop_loss}.",
        confidence=min(95.0, max(40.0, 60.0 + snapshot.change_24h * 5)),
        risk_reward=risk_reward,
        metadata={"price": price, "change24h": snapshot.change_24h},
    )


class AiRouter:
    def __init__(self, provider: ChatProvider, market_data: MarketDataService):
        self.provider = provider
        self.market_data = market_data

    async def generate(self, history: list[ChatMessage]) -> AiResponse:
        if not history:
            raise ValueError("history must contain at least the latest user message")

        latest = history[-1]
        symbol = detect_symbol(latest.content) or DEFAULT_SYMBOL
        snapshot = await self.market_data.get_snapshot(symbol)

        try:
            answer = await self.provider.complete(history, market_context(snapshot))
        except TradeGPTError:
            raise
        except Exception as e:
            logger.error(f"{self.provider.name} completion failed: {e}", exc_info=True)
            raise ExternalFetchError(f"AI provider request failed: {e}") from e

        reply = ChatMessage(
            id=str(uuid.uuid4()),
            role="assistant",
            content=answer,
            created_at=datetime.now(timezone.utc),
        )
        return AiResponse(reply=reply, suggestion=derive_suggestion(answer, snapshot, latest.content))
