"""Pydantic schemas for the trades API."""

import re

from pydantic import Field, field_validator

from tradegpt.models.trade import TradeStatus, WireModel
from tradegpt.utils.constants import ADDRESS_PATTERN, TX_HASH_PATTERN


def validate_address(value: str) -> str:
    value = value.strip()
    if not re.match(ADDRESS_PATTERN, value):
        raise ValueError("must be a 0x-prefixed 20-byte hex address")
    return value


class PreparedTxIn(WireModel):
    to: str
    data: str = Field(min_length=2)
    value: str = Field(min_length=1)
    chain_id: int | None = None

    @field_validator("to")
    @classmethod
    def _validate_to(cls, value: str) -> str:
        return validate_address(value)


class TradeUpdate(WireModel):
    user_id: str = Field(min_length=1)
    status: TradeStatus | None = None
    stop_loss: float | None = None
    take_profit: float | None = None
    leverage: float | None = Field(default=None, gt=0)
    collateral: float | None = Field(default=None, gt=0)
    transaction_hash: str | None = None
    prepared_tx: PreparedTxIn | None = None

    @field_validator("status", "leverage", "collateral", "transaction_hash", "prepared_tx", mode="before")
    @classmethod
    def _reject_null(cls, value):
        # Omit a field to leave it unchanged; only the price levels can be cleared
        if value is None:
            raise ValueError("may not be null")
        return value

    def changes(self) -> dict:
        """Only the fields the client actually sent, snake_case, without user_id."""
        return self.model_dump(exclude_unset=True, exclude={"user_id"})


class ConfirmRequest(WireModel):
    user_id: str = Field(min_length=1)
    transaction_hash: str

    @field_validator("transaction_hash")
    @classmethod
    def _validate_hash(cls, value: str) -> str:
        value = value.strip()
        if not re.match(TX_HASH_PATTERN, value):
            raise ValueError("must be a 0x-prefixed 32-byte hex hash")
        return value
