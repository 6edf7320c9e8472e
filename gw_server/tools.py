"""
Tools offered to the completion service during a chat turn.

The set of tools is closed: ToolName enumerates them, TOOL_DEFINITIONS
describes them to the model, and ToolDispatcher maps every ToolName to a
handler. The dispatcher refuses to build if a tool has no handler.
"""

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from gw_common.exceptions import GatewayError
from gw_upstream.github import WorkflowClient
from gw_upstream.jobs import create_job

from .status import get_job_status

logger = logging.getLogger(__name__)


class ToolName(str, enum.Enum):
    CREATE_JOB = "create_job"
    GET_JOB_STATUS = "get_job_status"


TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": ToolName.CREATE_JOB.value,
        "description": (
            "Create an autonomous job. Use this tool whenever the user asks for "
            "any task to be done: code changes, file updates, research, web "
            "scraping, data analysis or anything requiring autonomous work. "
            "Returns the job ID and branch name."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "job_description": {
                    "type": "string",
                    "description": (
                        "Detailed job description including context and "
                        "requirements. Be specific about what needs to be done."
                    ),
                },
            },
            "required": ["job_description"],
        },
    },
    {
        "name": ToolName.GET_JOB_STATUS.value,
        "description": (
            "Check status of running jobs. Returns active workflow runs with "
            "timing and current step. Use when the user asks about job "
            "progress, running jobs or job status."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "job_id": {
                    "type": "string",
                    "description": (
                        "Optional: specific job ID to check. If omitted, "
                        "returns all running jobs."
                    ),
                },
            },
            "required": [],
        },
    },
]


@dataclass
class ToolCall:
    name: ToolName
    input: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def parse(cls, name: str, tool_input: dict[str, Any]) -> "ToolCall":
        """
        Raises:
            ValueError: If the name is not one of ToolName
        """
        return cls(name=ToolName(name), input=tool_input or {})


ToolHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class ToolDispatcher:
    """Executes tool calls requested by the completion service."""

    definitions = TOOL_DEFINITIONS

    def __init__(self, client: WorkflowClient):
        self.client = client
        self._handlers: dict[ToolName, ToolHandler] = {
            ToolName.CREATE_JOB: self._create_job,
            ToolName.GET_JOB_STATUS: self._get_job_status,
        }
        missing = set(ToolName) - set(self._handlers)
        if missing:
            raise ValueError(f"No handler for tools: {sorted(t.value for t in missing)}")

    async def execute(self, name: str, tool_input: dict[str, Any]) -> dict[str, Any]:
        """
        Run one tool call and return its JSON-serialisable result.

        Unknown tools and gateway errors are reported back to the model as
        an error result instead of failing the chat turn.
        """
        try:
            call = ToolCall.parse(name, tool_input)
        except ValueError:
            logger.warning(f"Completion service requested unknown tool {name!r}")
            return {"success": False, "error": f"Unknown tool: {name}"}

        try:
            return await self._handlers[call.name](call.input)
        except GatewayError as e:
            logger.error(f"Tool {call.name.value} failed: {e}", exc_info=True)
            return {"success": False, "error": f"{call.name.value} failed"}

    async def _create_job(self, tool_input: dict[str, Any]) -> dict[str, Any]:
        description = str(tool_input.get("job_description", "")).strip()
        if not description:
            return {"success": False, "error": "job_description is required"}
        result = await asyncio.to_thread(create_job, self.client, description)
        return {"success": True, **result}

    async def _get_job_status(self, tool_input: dict[str, Any]) -> dict[str, Any]:
        view = await get_job_status(self.client, tool_input.get("job_id") or None)
        return view.to_dict()
