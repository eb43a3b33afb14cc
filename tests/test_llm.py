"""
Unit tests for the chat model backends.

Covers provider resolution, tool format conversion, message formatting for
each provider, response parsing, and structured output via forced tool use.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import BaseModel

from quix.llm import (
    AnthropicChatModel,
    LLMConfig,
    OpenAIChatModel,
    PROVIDER_BASE_URLS,
    _resolve_provider,
    _tools_to_anthropic_format,
    _tools_to_openai_format,
    create_chat_model,
)
from quix.models import ToolCall, ToolDescriptor, TranscriptMessage

SEARCH = ToolDescriptor(
    name="search",
    description="Search issues.",
    parameter_schema={"type": "object", "properties": {"q": {"type": "string"}}},
)


class Verdict(BaseModel):
    ok: bool
    reason: str = ""


def openai_response(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def openai_tool_call(name, arguments, call_id="call_1"):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


def openai_client(response):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    return client


def anthropic_client(blocks):
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=SimpleNamespace(content=blocks))
    return client


# ---------------------------------------------------------------------------
# Provider Resolution
# ---------------------------------------------------------------------------


class TestProviderResolution:
    def test_openai_default(self):
        assert _resolve_provider("gpt-4o") == "openai"
        assert _resolve_provider("o3-mini") == "openai"

    def test_anthropic(self):
        assert _resolve_provider("claude-sonnet-4-20250514") == "anthropic"

    def test_gemini(self):
        assert _resolve_provider("gemini-1.5-flash") == "gemini"

    def test_openrouter(self):
        assert _resolve_provider("meta-llama/llama-3-70b") == "openrouter"

    def test_explicit_provider_wins(self):
        assert LLMConfig(model="my-deployment", provider="azure_openai").resolved_provider == (
            "azure_openai"
        )


class TestCreateChatModel:
    def test_openai(self):
        model = create_chat_model(LLMConfig(model="gpt-4o"), client=MagicMock())
        assert isinstance(model, OpenAIChatModel)

    def test_anthropic(self):
        model = create_chat_model(LLMConfig(model="claude-3-5-haiku"), client=MagicMock())
        assert isinstance(model, AnthropicChatModel)

    def test_gemini_uses_openai_compatible_endpoint(self):
        model = create_chat_model(LLMConfig(model="gemini-2.0-flash", api_key="g"))
        assert isinstance(model, OpenAIChatModel)
        assert str(model.client.base_url).rstrip("/") == PROVIDER_BASE_URLS["gemini"].rstrip("/")

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_chat_model(LLMConfig(model="x", provider="carrier-pigeon"))


# ---------------------------------------------------------------------------
# Tool Format Conversion
# ---------------------------------------------------------------------------


class TestToolFormatConversion:
    def test_openai_format(self):
        result = _tools_to_openai_format([SEARCH])
        assert result[0]["type"] == "function"
        assert result[0]["function"]["name"] == "search"
        assert result[0]["function"]["parameters"] == SEARCH.parameter_schema

    def test_anthropic_format(self):
        result = _tools_to_anthropic_format([SEARCH])
        assert result[0]["name"] == "search"
        assert result[0]["input_schema"] == SEARCH.parameter_schema


# ---------------------------------------------------------------------------
# OpenAI backend
# ---------------------------------------------------------------------------


class TestOpenAIChatModel:
    @pytest.mark.asyncio
    async def test_invoke_formats_transcript(self):
        call = ToolCall(id="call_1", name="search", args={"q": "bugs"})
        transcript = [
            TranscriptMessage.user("find bugs"),
            TranscriptMessage.assistant("", [call]),
            TranscriptMessage.tool_result(call, "none found"),
        ]
        client = openai_client(openai_response(content="No bugs."))
        model = OpenAIChatModel(LLMConfig(model="gpt-4o"), client=client)

        response = await model.invoke("be brief", transcript, [SEARCH])

        assert response.content == "No bugs."
        assert response.tool_calls == []
        kwargs = client.chat.completions.create.call_args.kwargs
        messages = kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "be brief"}
        assert messages[2]["tool_calls"][0]["function"]["arguments"] == json.dumps({"q": "bugs"})
        assert messages[3] == {"role": "tool", "tool_call_id": "call_1", "content": "none found"}
        assert kwargs["tools"][0]["function"]["name"] == "search"

    @pytest.mark.asyncio
    async def test_invoke_without_tools_omits_tools(self):
        client = openai_client(openai_response(content="hi"))
        await OpenAIChatModel(LLMConfig(), client=client).invoke("s", [TranscriptMessage.user("x")])
        assert "tools" not in client.chat.completions.create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_parses_tool_calls(self):
        client = openai_client(
            openai_response(
                tool_calls=[
                    openai_tool_call("search", '{"q": "a"}', "c1"),
                    openai_tool_call("search", "not json", "c2"),
                ]
            )
        )
        response = await OpenAIChatModel(LLMConfig(), client=client).invoke("s", [])
        assert response.tool_calls == [
            ToolCall(id="c1", name="search", args={"q": "a"}),
            ToolCall(id="c2", name="search", args={}),
        ]
        assert response.content == ""

    @pytest.mark.asyncio
    async def test_structured_output(self):
        client = openai_client(
            openai_response(tool_calls=[openai_tool_call("verdict", '{"ok": true, "reason": "fine"}')])
        )
        model = OpenAIChatModel(LLMConfig(), client=client)
        result = await model.invoke_structured("s", [], Verdict, name="verdict")
        assert result == Verdict(ok=True, reason="fine")
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["tool_choice"] == {"type": "function", "function": {"name": "verdict"}}

    @pytest.mark.asyncio
    async def test_structured_output_missing(self):
        client = openai_client(openai_response(content="I refuse"))
        with pytest.raises(ValueError):
            await OpenAIChatModel(LLMConfig(), client=client).invoke_structured(
                "s", [], Verdict, name="verdict"
            )


# ---------------------------------------------------------------------------
# Anthropic backend
# ---------------------------------------------------------------------------


class TestAnthropicChatModel:
    @pytest.mark.asyncio
    async def test_tool_results_merged_into_one_user_turn(self):
        first = ToolCall(id="t1", name="search", args={"q": "a"})
        second = ToolCall(id="t2", name="search", args={"q": "b"})
        transcript = [
            TranscriptMessage.user("go"),
            TranscriptMessage.assistant("Looking.", [first, second]),
            TranscriptMessage.tool_result(first, "A"),
            TranscriptMessage.tool_result(second, "B"),
        ]
        client = anthropic_client([SimpleNamespace(type="text", text="Done.")])
        model = AnthropicChatModel(LLMConfig(model="claude-3-5-sonnet"), client=client)

        response = await model.invoke("sys", transcript, [SEARCH])

        assert response.content == "Done."
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "sys"
        messages = kwargs["messages"]
        assert len(messages) == 3
        assert messages[1]["content"][0] == {"type": "text", "text": "Looking."}
        assert [b["tool_use_id"] for b in messages[2]["content"]] == ["t1", "t2"]
        assert kwargs["tools"][0]["input_schema"] == SEARCH.parameter_schema

    @pytest.mark.asyncio
    async def test_parses_tool_use(self):
        client = anthropic_client(
            [
                SimpleNamespace(type="text", text="Let me check."),
                SimpleNamespace(type="tool_use", id="tu_1", name="search", input={"q": "x"}),
            ]
        )
        response = await AnthropicChatModel(LLMConfig(), client=client).invoke("s", [])
        assert response.content == "Let me check."
        assert response.tool_calls == [ToolCall(id="tu_1", name="search", args={"q": "x"})]

    @pytest.mark.asyncio
    async def test_structured_output(self):
        client = anthropic_client(
            [SimpleNamespace(type="tool_use", id="tu_1", name="verdict", input={"ok": False})]
        )
        model = AnthropicChatModel(LLMConfig(), client=client)
        result = await model.invoke_structured("s", [], Verdict, name="verdict")
        assert result == Verdict(ok=False)
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["tool_choice"] == {"type": "tool", "name": "verdict"}
