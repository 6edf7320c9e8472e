"""
Inbound webhook handling.

Routing logic for the two inbound surfaces. Authentication is done by the
HTTP routes in gw_server.app; the handlers here assume an authenticated,
structurally valid payload and always produce an acknowledgement, so the
sender never retries because of an internal failure.

- TelegramUpdateHandler: chat messages. Verifies first-time chat ID
  discovery, restricts processing to the configured chat, transcribes voice
  notes, runs a completion turn with the job tools and replies.
- GitHubEventHandler: pull-request events on job branches. Summarizes the
  job results, notifies the configured chat and records the summary in that
  chat's history.
"""

import asyncio
import logging
from typing import Any

from gw_common.models import ChatMessage, extract_job_id
from gw_common.repository import ConversationStore
from gw_upstream.completion import (
    CompletionService,
    ToolSurface,
    build_job_summary_message,
    render_prompt,
)
from gw_upstream.transcription import WhisperTranscriber

from .config import GatewayConfig
from .notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

VOICE_UNSUPPORTED = (
    "Voice messages are not supported. "
    "Please set OPENAI_API_KEY to enable transcription."
)
VOICE_FAILED = "Sorry, I could not transcribe your voice message."
PROCESSING_FAILED = "Sorry, I encountered an error processing your message."
DEFAULT_JOB_SUMMARY = "Job completed."


class TelegramUpdateHandler:
    """Processes one Telegram update after the webhook secret was checked."""

    def __init__(
        self,
        config: GatewayConfig,
        store: ConversationStore,
        completion: CompletionService,
        tools: ToolSurface,
        dispatcher: NotificationDispatcher,
        transcriber: WhisperTranscriber | None = None,
    ):
        self.config = config
        self.store = store
        self.completion = completion
        self.tools = tools
        self.dispatcher = dispatcher
        self.transcriber = transcriber

    async def handle(self, update: dict[str, Any]) -> dict[str, Any]:
        """
        Handle a chat update.

        Returns:
            Always {"ok": True}; every outcome is acknowledged with 200
        """
        ack = {"ok": True}
        message = update.get("message") or update.get("edited_message")
        if not isinstance(message, dict) or not message.get("chat"):
            return ack
        if not self.config.telegram_bot_token:
            return ack

        chat_id = str(message["chat"].get("id"))
        text = message.get("text")

        # Verification works before a target chat is configured
        verification = self.config.telegram_verification
        if verification and text == verification:
            await self.dispatcher.send_best_effort(
                chat_id, f"Your chat ID:\n<code>{chat_id}</code>", escape=False
            )
            return ack

        if not self.config.telegram_chat_id:
            return ack
        if chat_id != self.config.telegram_chat_id:
            logger.debug(f"Ignoring message from unauthorized chat {chat_id}")
            return ack

        if message.get("message_id") is not None:
            self.dispatcher.react(chat_id, message["message_id"])

        if message.get("voice"):
            text = await self._transcribe(chat_id, message["voice"])
            if text is None:
                return ack

        if not text:
            return ack

        try:
            history = await self.store.get(chat_id)
            reply, new_history = await self.completion.chat(text, history, self.tools)
            await self.store.put(chat_id, new_history)
            await self.dispatcher.send(chat_id, reply)
        except Exception as e:
            logger.error(f"Failed to process message for chat {chat_id}: {e}", exc_info=True)
            await self.dispatcher.send_best_effort(chat_id, PROCESSING_FAILED)

        return ack

    async def _transcribe(self, chat_id: str, voice: dict[str, Any]) -> str | None:
        """Return the transcript, or None after telling the user why not."""
        if self.transcriber is None or not self.transcriber.enabled:
            await self.dispatcher.send_best_effort(chat_id, VOICE_UNSUPPORTED)
            return None
        try:
            audio, filename = await asyncio.to_thread(
                self.dispatcher.transport.download_file, voice["file_id"]
            )
            return await asyncio.to_thread(
                self.transcriber.transcribe, audio, filename
            )
        except Exception as e:
            logger.error(f"Failed to transcribe voice message: {e}", exc_info=True)
            await self.dispatcher.send_best_effort(chat_id, VOICE_FAILED)
            return None


class GitHubEventHandler:
    """Processes one GitHub webhook event after the secret was checked."""

    def __init__(
        self,
        config: GatewayConfig,
        store: ConversationStore,
        completion: CompletionService,
        dispatcher: NotificationDispatcher,
    ):
        self.config = config
        self.store = store
        self.completion = completion
        self.dispatcher = dispatcher

    async def handle(self, event: str | None, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Handle a CI event.

        Args:
            event: Value of the X-GitHub-Event header
            payload: Decoded JSON body

        Returns:
            Acknowledgement body; `skipped` with a reason when nothing was sent
        """
        if event != "pull_request":
            return {"ok": True, "skipped": True}

        pr = payload.get("pull_request")
        if not isinstance(pr, dict):
            return {"ok": True, "skipped": True}

        job_id = extract_job_id((pr.get("head") or {}).get("ref"))
        if not job_id:
            return {"ok": True, "skipped": True, "reason": "not a job branch"}

        chat_id = self.config.telegram_chat_id
        if not chat_id or not self.config.telegram_bot_token:
            logger.info(f"Job {job_id} completed but no chat ID to notify")
            return {"ok": True, "skipped": True, "reason": "no chat to notify"}

        results = dict(payload.get("job_results") or {})
        results["pr_url"] = pr.get("html_url")
        summary = await self.summarize(results)

        try:
            await self.dispatcher.send(chat_id, summary)
        except Exception as e:
            logger.error(f"Failed to notify chat about job {job_id}: {e}", exc_info=True)
            return {"ok": True, "notified": False}

        # Keep the summary in chat memory so later turns have job context
        try:
            await self.store.append(
                chat_id, ChatMessage(role="assistant", content=summary)
            )
        except Exception as e:
            logger.error(f"Failed to record job {job_id} summary: {e}", exc_info=True)

        logger.info(f"Notified chat {chat_id} about job {job_id[:8]}")
        return {"ok": True, "notified": True}

    async def summarize(self, results: dict[str, Any]) -> str:
        """Summarize job results, falling back to a fixed message on failure."""
        try:
            system_prompt = render_prompt(self.config.job_summary_prompt)
            user_message = build_job_summary_message(
                results, self.config.github_base_url
            )
            summary = await self.completion.summarize(system_prompt, user_message)
        except Exception as e:
            logger.error(f"Failed to summarize job: {e}", exc_info=True)
            return DEFAULT_JOB_SUMMARY
        return summary.strip() or DEFAULT_JOB_SUMMARY
