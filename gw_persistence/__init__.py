"""
Gateway persistence module.

This module contains storage implementations for conversation history.
Currently supports SQLite and an in-process store, but can be extended to
other backends by implementing gw_common.repository.ConversationStore.
"""

from .memory_store import InMemoryConversationStore
from .sqlite_store import SQLiteConversationStore

__all__ = ["InMemoryConversationStore", "SQLiteConversationStore"]
