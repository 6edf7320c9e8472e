"""
Unit tests for the conversation stores.

Tests the SQLite implementation against a temporary database file and the
in-memory implementation used when no database is configured.
"""

import os
import tempfile

import pytest
import pytest_asyncio

from gw_common.models import ChatMessage
from gw_persistence.memory_store import InMemoryConversationStore
from gw_persistence.sqlite_store import SQLiteConversationStore


@pytest_asyncio.fixture
async def temp_db():
    """Create a temporary database file for testing."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    store = SQLiteConversationStore(path, max_messages=4)
    await store.initialize()

    yield store

    # Cleanup
    await store.close()
    if os.path.exists(path):
        os.unlink(path)


def messages(count):
    return [
        ChatMessage(role="user" if i % 2 == 0 else "assistant", content=f"m{i}")
        for i in range(count)
    ]


@pytest.mark.asyncio
async def test_get_unknown_chat(temp_db):
    assert await temp_db.get("nobody") == []


@pytest.mark.asyncio
async def test_put_and_get(temp_db):
    """Test storing a history and reading it back in order."""
    await temp_db.put("1", messages(3))

    history = await temp_db.get("1")

    assert [m.content for m in history] == ["m0", "m1", "m2"]
    assert history[1].role == "assistant"


@pytest.mark.asyncio
async def test_put_replaces_history(temp_db):
    await temp_db.put("1", messages(3))
    await temp_db.put("1", [ChatMessage(role="user", content="fresh")])

    assert [m.content for m in await temp_db.get("1")] == ["fresh"]


@pytest.mark.asyncio
async def test_put_keeps_most_recent(temp_db):
    await temp_db.put("1", messages(6))

    assert [m.content for m in await temp_db.get("1")] == ["m2", "m3", "m4", "m5"]


@pytest.mark.asyncio
async def test_block_content_survives(temp_db):
    blocks = [{"type": "text", "text": "hello"}]
    await temp_db.put("1", [ChatMessage(role="assistant", content=blocks)])

    assert (await temp_db.get("1"))[0].content == blocks


@pytest.mark.asyncio
async def test_chats_are_isolated(temp_db):
    await temp_db.put("1", messages(2))
    await temp_db.put("2", messages(1))
    await temp_db.clear("1")

    assert await temp_db.get("1") == []
    assert len(await temp_db.get("2")) == 1


@pytest.mark.asyncio
async def test_append(temp_db):
    await temp_db.append("1", ChatMessage(role="assistant", content="Job done."))
    await temp_db.append("1", ChatMessage(role="user", content="thanks"))

    assert [m.content for m in await temp_db.get("1")] == ["Job done.", "thanks"]


@pytest.mark.asyncio
async def test_history_persists_across_connections():
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    try:
        store = SQLiteConversationStore(path)
        await store.initialize()
        await store.put("1", messages(2))
        await store.close()

        reopened = SQLiteConversationStore(path)
        await reopened.initialize()
        assert len(await reopened.get("1")) == 2
        await reopened.close()
    finally:
        os.unlink(path)


class TestInMemoryConversationStore:
    """Test suite for the in-memory store."""

    @pytest.mark.asyncio
    async def test_trims_to_max_messages(self):
        store = InMemoryConversationStore(max_messages=2)
        await store.put("1", messages(5))

        assert [m.content for m in await store.get("1")] == ["m3", "m4"]

    @pytest.mark.asyncio
    async def test_get_returns_copy(self):
        store = InMemoryConversationStore()
        await store.put("1", messages(1))

        history = await store.get("1")
        history.append(ChatMessage(role="user", content="not saved"))

        assert len(await store.get("1")) == 1

    @pytest.mark.asyncio
    async def test_clear(self):
        store = InMemoryConversationStore()
        await store.put("1", messages(1))
        await store.clear("1")

        assert await store.get("1") == []
