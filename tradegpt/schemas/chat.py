"""Pydantic schemas for the chat API."""

from pydantic import Field, field_validator

from tradegpt.models.trade import WireModel
from tradegpt.schemas.trade import validate_address


class ChatRequest(WireModel):
    user_id: str = Field(min_length=1)
    message: str = Field(min_length=1)


class StageRequest(WireModel):
    user_id: str = Field(min_length=1)
    account: str
    trade_id: str = Field(min_length=1)

    @field_validator("account")
    @classmethod
    def _validate_account(cls, value: str) -> str:
        return validate_address(value)
