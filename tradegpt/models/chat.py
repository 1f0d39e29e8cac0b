"""Chat message and AI response models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from tradegpt.models.trade import TradeSuggestion, WireModel

ChatRole = Literal["user", "assistant", "system"]


class ChatMessage(WireModel):
    id: str
    role: ChatRole
    content: str
    created_at: datetime


@dataclass
class AiResponse:
    reply: ChatMessage
    suggestion: TradeSuggestion | None = None
