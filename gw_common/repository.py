"""
Abstract store interface for conversation history.

This module defines the contract that any storage implementation must follow.
The gateway only ever reads a chat's history, appends to it and writes it
back; it never assumes a particular backing store.
"""

from abc import ABC, abstractmethod

from .models import ChatMessage


class ConversationStore(ABC):
    """
    Abstract base class for conversation history keyed by external chat ID.

    Implementations are expected to serialize reads and writes for the same
    chat; the gateway holds no locks of its own.
    """

    @abstractmethod
    async def get(self, chat_id: str) -> list[ChatMessage]:
        """
        Retrieve the ordered history for a chat.

        Args:
            chat_id: External chat identifier

        Returns:
            List of messages, oldest first (empty if the chat is unknown)
        """
        pass

    @abstractmethod
    async def put(self, chat_id: str, history: list[ChatMessage]) -> None:
        """
        Replace the stored history for a chat.

        Args:
            chat_id: External chat identifier
            history: Complete ordered history to store
        """
        pass

    async def append(self, chat_id: str, message: ChatMessage) -> None:
        """Append a single message to a chat's history."""
        history = await self.get(chat_id)
        history.append(message)
        await self.put(chat_id, history)

    @abstractmethod
    async def clear(self, chat_id: str) -> None:
        """Forget all history for a chat."""
        pass

    async def close(self) -> None:
        """Release any resources held by the store."""
        return None
