"""In-process conversation store, used when no database path is configured."""

from gw_common.models import ChatMessage
from gw_common.repository import ConversationStore


class InMemoryConversationStore(ConversationStore):
    def __init__(self, max_messages: int = 20):
        self.max_messages = max_messages
        self._histories: dict[str, list[ChatMessage]] = {}

    async def get(self, chat_id: str) -> list[ChatMessage]:
        # Copy so callers can append without mutating stored state
        return list(self._histories.get(chat_id, []))

    async def put(self, chat_id: str, history: list[ChatMessage]) -> None:
        if self.max_messages > 0:
            history = history[-self.max_messages :]
        self._histories[chat_id] = list(history)

    async def clear(self, chat_id: str) -> None:
        self._histories.pop(chat_id, None)
