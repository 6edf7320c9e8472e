"""
Completion service client.

The completion service turns structured context into natural-language
replies. The gateway uses it two ways: a conversational turn that may call
tools (job creation, job status), and a one-shot summary of a finished job.

Only the interface boundary lives here; prompts are loaded from markdown
files so operators can change wording without touching code.
"""

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol

import requests

from gw_common.exceptions import (
    ConfigurationError,
    TransientUpstreamError,
    UpstreamError,
)
from gw_common.models import ChatMessage

logger = logging.getLogger(__name__)

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
MAX_TOOL_ROUNDS = 5

_INCLUDE_RE = re.compile(r"\{\{\s*([^}]+?)\s*\}\}")


class ToolSurface(Protocol):
    """Tools a conversational turn may invoke."""

    definitions: list[dict[str, Any]]

    async def execute(self, name: str, tool_input: dict[str, Any]) -> dict[str, Any]:
        ...


class CompletionService(Protocol):
    async def chat(
        self, message: str, history: list[ChatMessage], tools: ToolSurface
    ) -> tuple[str, list[ChatMessage]]:
        ...

    async def summarize(self, system_prompt: str, user_message: str) -> str:
        ...


def render_prompt(path: str | Path) -> str:
    """
    Load a markdown prompt, expanding `{{relative/path.md}}` includes.

    Include paths are resolved relative to the including file. A missing
    top-level prompt yields an empty string.
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Prompt file not found: {path}")
        return ""

    def expand(match: re.Match) -> str:
        include = path.parent / match.group(1)
        if not include.exists():
            return match.group(0)
        return render_prompt(include)

    return _INCLUDE_RE.sub(expand, path.read_text()).strip()


def build_job_summary_message(
    results: dict[str, Any], github_base_url: str = ""
) -> str:
    """
    Format the job results carried by a CI-completion webhook.

    Args:
        results: `job_results` from the webhook payload, plus `pr_url`
        github_base_url: Base URL for file links (".../blob/main"), if known

    Returns:
        Markdown document with one section per known field
    """
    changed_files = results.get("changed_files") or []
    sections = [
        ("Task", results.get("job")),
        ("Commit Message", results.get("commit_message")),
        ("Changed Files", "\n".join(changed_files) if changed_files else None),
        ("GitHub Base URL for File Links", github_base_url or None),
        ("PR Status", results.get("pr_status")),
        ("Merge Result", results.get("merge_result")),
        ("PR URL", results.get("pr_url")),
        ("Agent Log", results.get("log")),
    ]
    return "\n\n".join(f"## {title}\n{body}" for title, body in sections if body)


def _text_of(content: list[dict[str, Any]]) -> str:
    return "".join(
        block.get("text", "") for block in content if block.get("type") == "text"
    ).strip()


class AnthropicCompletionService:
    """
    Completion service backed by the Anthropic Messages API.

    HTTP calls are blocking `requests` calls run in a worker thread so the
    event loop keeps serving other webhooks meanwhile.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str | None = None,
        system_prompt: str = "",
        session: requests.Session | None = None,
        timeout: float = 120.0,
        max_tokens: int = 4096,
    ):
        self.api_key = api_key
        self.model = model or DEFAULT_MODEL
        self.system_prompt = system_prompt
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_tokens = max_tokens

    def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        if not self.api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY must be set")
        try:
            response = self.session.post(
                ANTHROPIC_MESSAGES_URL,
                headers={
                    "Content-Type": "application/json",
                    "x-api-key": self.api_key,
                    "anthropic-version": ANTHROPIC_VERSION,
                },
                json=body,
                timeout=self.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientUpstreamError("anthropic", str(e)) from e
        if not 200 <= response.status_code < 300:
            raise UpstreamError("anthropic", response.status_code, response.text)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError("anthropic", response.status_code, response.text) from e

    async def summarize(self, system_prompt: str, user_message: str) -> str:
        result = await asyncio.to_thread(
            self._post,
            {
                "model": self.model,
                "max_tokens": 1024,
                "system": system_prompt,
                "messages": [{"role": "user", "content": user_message}],
            },
        )
        return _text_of(result.get("content") or [])

    async def chat(
        self, message: str, history: list[ChatMessage], tools: ToolSurface
    ) -> tuple[str, list[ChatMessage]]:
        """
        Run one conversational turn, executing requested tools until the
        model produces a final text reply.

        Args:
            message: The user's message text
            history: Prior conversation, oldest first
            tools: Tool definitions and executor offered to the model

        Returns:
            Tuple of (reply text, history including this turn). Tool request
            and result blocks are not kept in the returned history, so a
            trimmed history never starts with an orphaned tool result.
        """
        user_message = ChatMessage(role="user", content=message)
        messages = list(history) + [user_message]

        for _ in range(MAX_TOOL_ROUNDS):
            result = await asyncio.to_thread(
                self._post,
                {
                    "model": self.model,
                    "max_tokens": self.max_tokens,
                    "system": self.system_prompt,
                    "messages": [m.to_dict() for m in messages],
                    "tools": tools.definitions,
                },
            )
            content = result.get("content") or []

            if result.get("stop_reason") != "tool_use":
                reply = _text_of(content)
                return reply, self._turn(history, user_message, reply)

            messages.append(ChatMessage(role="assistant", content=content))
            tool_results = []
            for block in content:
                if block.get("type") != "tool_use":
                    continue
                output = await tools.execute(block["name"], block.get("input") or {})
                tool_results.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": block["id"],
                        "content": json.dumps(output),
                    }
                )
            messages.append(ChatMessage(role="user", content=tool_results))

        logger.warning(f"Stopped after {MAX_TOOL_ROUNDS} tool rounds without a reply")
        reply = "Sorry, I could not finish that request."
        return reply, self._turn(history, user_message, reply)

    @staticmethod
    def _turn(
        history: list[ChatMessage], user_message: ChatMessage, reply: str
    ) -> list[ChatMessage]:
        return list(history) + [
            user_message,
            ChatMessage(role="assistant", content=reply),
        ]
