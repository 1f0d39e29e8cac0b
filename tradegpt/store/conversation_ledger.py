"""Bounded in-memory chat history per user."""

import uuid
from datetime import datetime, timezone

from tradegpt.models.chat import ChatMessage, ChatRole


class ConversationLedger:
    def __init__(self, history_limit: int = 20):
        self.history_limit = history_limit
        self._messages_by_user: dict[str, list[ChatMessage]] = {}

    def append(self, user_id: str, role: ChatRole, content: str) -> ChatMessage:
        message = ChatMessage(
            id=str(uuid.uuid4()),
            role=role,
            content=content,
            created_at=datetime.now(timezone.utc),
        )
        history = self._messages_by_user.get(user_id, [])
        history.append(message)
        self._messages_by_user[user_id] = history[-self.history_limit:]
        return message

    def history(self, user_id: str) -> list[ChatMessage]:
        return list(self._messages_by_user.get(user_id, []))
