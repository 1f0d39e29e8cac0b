"""Trade models: suggestions from chat and the ledger's trade records."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models exchanged with clients: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TradeSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class TradeStatus(str, Enum):
    DRAFT = "draft"
    STAGED = "staged"
    EXECUTED = "executed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PreparedTransaction(WireModel):
    """Opaque call descriptor the end user (or the agent) signs and submits."""

    to: str
    data: str
    value: str = "0"
    chain_id: int | None = None


class TradeSuggestion(WireModel):
    id: str
    asset: str
    symbol: str
    side: TradeSide
    leverage: float = Field(gt=0)
    collateral: float = Field(gt=0)
    entry_price: float
    stop_loss: float | None = None
    take_profit: float | None = None
    # Advisory fields, never re-validated after the suggestion is drafted
    rationale: str = ""
    confidence: float = 0.0
    risk_reward: float = 0.0
    metadata: dict[str, Any] | None = None


class Trade(TradeSuggestion):
    user_id: str
    status: TradeStatus = TradeStatus.DRAFT
    created_at: datetime
    updated_at: datetime
    transaction_hash: str | None = None
    prepared_tx: PreparedTransaction | None = None
