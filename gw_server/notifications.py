"""
Notification dispatch.

Formats outbound chat messages and sends them through the Telegram
transport. Two delivery contracts exist:

- send(): primary delivery. Long text is split into ordered chunks, and any
  failure propagates so the caller can log it and fall back to a generic
  message.
- send_best_effort() / react(): side calls whose failure is logged and
  swallowed. react() runs as a detached task and never delays the caller.
"""

import asyncio
import html
import logging

from gw_common.models import Notification
from gw_upstream.telegram import MAX_MESSAGE_LENGTH, TelegramTransport

logger = logging.getLogger(__name__)


def escape_html(text: str) -> str:
    """Escape the characters Telegram's HTML parse mode treats as markup."""
    return html.escape(text, quote=False)


def split_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """
    Split text into chunks no longer than `limit`, preserving order.

    Splits prefer the last newline inside the window, then the last space,
    and fall back to a hard cut.

    Example:
        >>> split_message("a" * 5000)[0] == "a" * 4096
        True
    """
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    remaining = text
    while len(remaining) > limit:
        window = remaining[:limit]
        cut = window.rfind("\n")
        if cut <= 0:
            cut = window.rfind(" ")
        if cut <= 0:
            cut = limit
            # Don't cut through an HTML entity such as "&amp;"
            amp = window.rfind("&", limit - 8)
            if amp > 0 and ";" not in window[amp:]:
                cut = amp
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n ")
    if remaining:
        chunks.append(remaining)
    return chunks


class NotificationDispatcher:
    """Sends notifications to chats through one bot transport."""

    def __init__(self, transport: TelegramTransport):
        self.transport = transport
        self._background: set[asyncio.Task] = set()

    def prepare(
        self, chat_id: str, text: str, escape: bool = True
    ) -> list[Notification]:
        """Format text into the ordered messages a send would deliver."""
        body = escape_html(text) if escape else text
        return [Notification(chat_id=chat_id, text=chunk) for chunk in split_message(body)]

    async def send(self, chat_id: str, text: str, escape: bool = True) -> None:
        """
        Deliver a message, splitting it if it exceeds the transport limit.

        Args:
            chat_id: Target chat
            text: Message text
            escape: Escape markup characters (disable for pre-built HTML)

        Raises:
            GatewayError: If any chunk fails to send; later chunks are not sent
        """
        for notification in self.prepare(chat_id, text, escape):
            await asyncio.to_thread(
                self.transport.send_message, notification.chat_id, notification.text
            )

    async def send_best_effort(
        self, chat_id: str, text: str, escape: bool = True
    ) -> bool:
        """Deliver a message, logging instead of raising on failure."""
        try:
            await self.send(chat_id, text, escape=escape)
            return True
        except Exception as e:
            logger.error(f"Failed to send message to chat {chat_id}: {e}")
            return False

    def react(self, chat_id: str, message_id: int, emoji: str = "👍") -> asyncio.Task:
        """
        Acknowledge a message with a reaction, without waiting for it.

        The returned task never raises; failures are logged at debug level.
        """
        task = asyncio.create_task(self._react(chat_id, message_id, emoji))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _react(self, chat_id: str, message_id: int, emoji: str) -> None:
        try:
            await asyncio.to_thread(
                self.transport.set_reaction, chat_id, message_id, emoji
            )
        except Exception as e:
            logger.debug(f"Reaction on message {message_id} failed: {e}")
