"""
Telegram Bot API transport.

Thin wrapper over the handful of Bot API methods the gateway uses. Message
splitting and escaping live in gw_server.notifications; this module only
moves bytes and maps failures onto the gateway error taxonomy.
"""

import logging
from typing import Any

import requests

from gw_common.exceptions import (
    ConfigurationError,
    TransientUpstreamError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
DEFAULT_TIMEOUT = 15.0
# Telegram rejects text messages longer than this many characters
MAX_MESSAGE_LENGTH = 4096


class TelegramTransport:
    """Bot API client bound to one bot token."""

    def __init__(
        self,
        bot_token: str | None,
        session: requests.Session | None = None,
        base_url: str = TELEGRAM_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.bot_token = bot_token
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _call(self, method: str, payload: dict[str, Any] | None = None) -> Any:
        if not self.bot_token:
            raise ConfigurationError("Telegram bot token is not configured")
        try:
            response = self.session.post(
                f"{self.base_url}/bot{self.bot_token}/{method}",
                json=payload or {},
                timeout=self.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientUpstreamError("telegram", str(e)) from e

        if not 200 <= response.status_code < 300:
            raise UpstreamError("telegram", response.status_code, response.text)
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError("telegram", response.status_code, response.text) from e
        if not data.get("ok"):
            raise UpstreamError(
                "telegram", response.status_code, data.get("description", "")
            )
        return data.get("result")

    def send_message(
        self, chat_id: str, text: str, parse_mode: str | None = "HTML"
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        return self._call("sendMessage", payload)

    def set_webhook(self, webhook_url: str, secret_token: str | None = None) -> Any:
        payload: dict[str, Any] = {
            "url": webhook_url,
            "allowed_updates": ["message", "edited_message"],
        }
        if secret_token:
            payload["secret_token"] = secret_token
        return self._call("setWebhook", payload)

    def set_reaction(self, chat_id: str, message_id: int, emoji: str = "👍") -> Any:
        return self._call(
            "setMessageReaction",
            {
                "chat_id": chat_id,
                "message_id": message_id,
                "reaction": [{"type": "emoji", "emoji": emoji}],
            },
        )

    def download_file(self, file_id: str) -> tuple[bytes, str]:
        """
        Download a file (e.g. a voice note) sent to the bot.

        Returns:
            Tuple of (file contents, file name)
        """
        info = self._call("getFile", {"file_id": file_id})
        file_path = info["file_path"]
        try:
            response = self.session.get(
                f"{self.base_url}/file/bot{self.bot_token}/{file_path}",
                timeout=self.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientUpstreamError("telegram", str(e)) from e
        if not 200 <= response.status_code < 300:
            raise UpstreamError("telegram", response.status_code, response.text)
        return response.content, file_path.rsplit("/", 1)[-1]
