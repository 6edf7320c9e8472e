"""
SQLite implementation of the conversation store.

Uses aiosqlite for async operations. Each chat's history is stored as an
ordered list of rows; writes replace a chat's history in one transaction.
"""

import json
from datetime import UTC, datetime

import aiosqlite

from gw_common.models import ChatMessage
from gw_common.repository import ConversationStore

DEFAULT_MAX_MESSAGES = 20


class SQLiteConversationStore(ConversationStore):
    """
    SQLite-based conversation storage.

    Uses a single table:
    - messages: one row per history entry, ordered by position within a chat
    """

    def __init__(
        self, db_path: str = "gateway.db", max_messages: int = DEFAULT_MAX_MESSAGES
    ):
        """
        Initialize the SQLite store.

        Args:
            db_path: Path to the SQLite database file
            max_messages: Number of most recent messages kept per chat
        """
        self.db_path = db_path
        self.max_messages = max_messages
        self._connection: aiosqlite.Connection | None = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
        return self._connection

    async def initialize(self) -> None:
        """Create the messages table if it doesn't exist."""
        conn = await self._get_connection()

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                chat_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_chat_id
            ON messages(chat_id, position)
        """)

        await conn.commit()

    async def get(self, chat_id: str) -> list[ChatMessage]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT role, content FROM messages WHERE chat_id = ? ORDER BY position",
            (chat_id,),
        )
        rows = await cursor.fetchall()
        return [ChatMessage(role=row[0], content=json.loads(row[1])) for row in rows]

    async def put(self, chat_id: str, history: list[ChatMessage]) -> None:
        conn = await self._get_connection()
        if self.max_messages > 0:
            history = history[-self.max_messages :]

        now = datetime.now(UTC).isoformat()
        await conn.execute("DELETE FROM messages WHERE chat_id = ?", (chat_id,))
        await conn.executemany(
            """
            INSERT INTO messages (chat_id, position, role, content, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                (chat_id, position, message.role, json.dumps(message.content), now)
                for position, message in enumerate(history)
            ],
        )
        await conn.commit()

    async def clear(self, chat_id: str) -> None:
        conn = await self._get_connection()
        await conn.execute("DELETE FROM messages WHERE chat_id = ?", (chat_id,))
        await conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
