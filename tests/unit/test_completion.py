"""
Unit tests for gw_upstream.completion.

Tests prompt rendering, the job summary message and the tool loop of the
Anthropic completion service against a mocked requests session.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from gw_common.exceptions import ConfigurationError, UpstreamError
from gw_common.models import ChatMessage
from gw_upstream.completion import (
    MAX_TOOL_ROUNDS,
    AnthropicCompletionService,
    build_job_summary_message,
    render_prompt,
)


def api_response(content, stop_reason="end_turn", status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = {"content": content, "stop_reason": stop_reason}
    response.text = ""
    return response


def text_block(text):
    return {"type": "text", "text": text}


class TestRenderPrompt:
    """Test suite for prompt files."""

    def test_missing_prompt_is_empty(self, tmp_path):
        assert render_prompt(tmp_path / "CHATBOT.md") == ""

    def test_includes_are_expanded(self, tmp_path):
        (tmp_path / "SOUL.md").write_text("Be brief.")
        (tmp_path / "CHATBOT.md").write_text("# Chat\n{{SOUL.md}}\n")

        assert render_prompt(tmp_path / "CHATBOT.md") == "# Chat\nBe brief."

    def test_missing_include_is_left_alone(self, tmp_path):
        (tmp_path / "CHATBOT.md").write_text("{{NOPE.md}}")

        assert render_prompt(tmp_path / "CHATBOT.md") == "{{NOPE.md}}"


class TestJobSummaryMessage:
    def test_sections_in_order(self):
        message = build_job_summary_message(
            {
                "job": "Add tests",
                "changed_files": ["a.py", "b.py"],
                "pr_url": "https://github.com/o/r/pull/1",
            },
            "https://github.com/o/r/blob/main",
        )

        assert message == (
            "## Task\nAdd tests\n\n"
            "## Changed Files\na.py\nb.py\n\n"
            "## GitHub Base URL for File Links\nhttps://github.com/o/r/blob/main\n\n"
            "## PR URL\nhttps://github.com/o/r/pull/1"
        )

    def test_empty_results(self):
        assert build_job_summary_message({}) == ""


class TestAnthropicCompletionService:
    """Test suite for the chat and summary calls."""

    @pytest.fixture
    def session(self):
        return Mock()

    @pytest.fixture
    def service(self, session):
        return AnthropicCompletionService(
            api_key="sk-ant", system_prompt="You are helpful.", session=session
        )

    @pytest.fixture
    def tools(self):
        tools = Mock()
        tools.definitions = [{"name": "get_job_status"}]
        tools.execute = AsyncMock(return_value={"jobs": [], "running": 0, "queued": 0})
        return tools

    @pytest.mark.asyncio
    async def test_summarize(self, service, session):
        session.post.return_value = api_response([text_block("  All done.  ")])

        assert await service.summarize("system", "results") == "All done."
        body = session.post.call_args.kwargs["json"]
        assert body["system"] == "system"
        assert body["max_tokens"] == 1024
        headers = session.post.call_args.kwargs["headers"]
        assert headers["x-api-key"] == "sk-ant"
        assert headers["anthropic-version"] == "2023-06-01"

    @pytest.mark.asyncio
    async def test_chat_without_tools(self, service, session, tools):
        session.post.return_value = api_response([text_block("Hello!")])
        history = [ChatMessage(role="user", content="earlier")]

        reply, new_history = await service.chat("hi", history, tools)

        assert reply == "Hello!"
        assert [m.content for m in new_history] == ["earlier", "hi", "Hello!"]
        assert len(history) == 1
        body = session.post.call_args.kwargs["json"]
        assert body["system"] == "You are helpful."
        assert body["tools"] == tools.definitions

    @pytest.mark.asyncio
    async def test_chat_runs_requested_tools(self, service, session, tools):
        session.post.side_effect = [
            api_response(
                [
                    text_block("Checking."),
                    {
                        "type": "tool_use",
                        "id": "tu_1",
                        "name": "get_job_status",
                        "input": {},
                    },
                ],
                stop_reason="tool_use",
            ),
            api_response([text_block("Nothing is running.")]),
        ]

        reply, new_history = await service.chat("status?", [], tools)

        assert reply == "Nothing is running."
        tools.execute.assert_awaited_once_with("get_job_status", {})
        second_body = session.post.call_args_list[1].kwargs["json"]
        tool_result = second_body["messages"][-1]["content"][0]
        assert tool_result["type"] == "tool_result"
        assert tool_result["tool_use_id"] == "tu_1"
        # Tool blocks are not kept in the stored history
        assert [m.content for m in new_history] == ["status?", "Nothing is running."]

    @pytest.mark.asyncio
    async def test_chat_stops_after_max_tool_rounds(self, service, session, tools):
        session.post.return_value = api_response(
            [{"type": "tool_use", "id": "tu", "name": "get_job_status", "input": {}}],
            stop_reason="tool_use",
        )

        reply, new_history = await service.chat("loop", [], tools)

        assert session.post.call_count == MAX_TOOL_ROUNDS
        assert reply == "Sorry, I could not finish that request."
        assert len(new_history) == 2

    @pytest.mark.asyncio
    async def test_api_error(self, service, session, tools):
        session.post.return_value = api_response([], status_code=529)

        with pytest.raises(UpstreamError):
            await service.chat("hi", [], tools)

    @pytest.mark.asyncio
    async def test_non_json_reply_is_upstream_error(self, service, session):
        response = api_response([])
        response.json.side_effect = ValueError("Expecting value")
        response.text = "<html>Bad Gateway</html>"
        session.post.return_value = response

        with pytest.raises(UpstreamError) as exc_info:
            await service.summarize("system", "results")

        assert exc_info.value.service == "anthropic"

    @pytest.mark.asyncio
    async def test_missing_api_key(self, session, tools):
        service = AnthropicCompletionService(api_key=None, session=session)

        with pytest.raises(ConfigurationError):
            await service.summarize("s", "u")
        session.post.assert_not_called()
