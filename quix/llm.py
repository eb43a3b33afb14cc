"""
Quix - Chat model interface and provider backends.

The orchestration core talks to language models only through
:class:`ChatModel`. Two backends ship with the package: OpenAI-style
chat completions (also used for Gemini and any OpenAI-compatible endpoint)
and Anthropic messages.

Usage:
    ```python
    from quix.llm import LLMConfig, create_chat_model

    model = create_chat_model(LLMConfig(model="gpt-4o", api_key="sk-..."))
    response = await model.invoke("You are helpful.", [TranscriptMessage.user("hi")])
    ```
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, TypeVar

from pydantic import BaseModel

from .models import MessageRole, ToolCall, ToolDescriptor, TranscriptMessage

logger = logging.getLogger("quix.llm")

OPENAI_STYLE_PROVIDERS = {"openai", "azure_openai", "deepseek", "grok", "openrouter", "gemini"}
ANTHROPIC_STYLE_PROVIDERS = {"anthropic"}

PROVIDER_BASE_URLS = {
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai/",
    "deepseek": "https://api.deepseek.com/v1",
    "grok": "https://api.x.ai/v1",
    "openrouter": "https://openrouter.ai/api/v1",
}

SchemaT = TypeVar("SchemaT", bound=BaseModel)


@dataclass
class LLMConfig:
    """Configuration for a chat model backend."""

    model: str = "gpt-4o"
    provider: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.1
    max_tokens: int = 4096
    max_retries: int = 2
    request_timeout: float = 60.0
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def resolved_provider(self) -> str:
        return self.provider or _resolve_provider(self.model)


def _resolve_provider(model: str) -> str:
    """Infer provider from model name if not explicitly set."""
    m = model.lower()
    if m.startswith("claude"):
        return "anthropic"
    if m.startswith("gemini"):
        return "gemini"
    if m.startswith("grok"):
        return "grok"
    if m.startswith("deepseek"):
        return "deepseek"
    if "/" in m:
        return "openrouter"
    return "openai"


def _tools_to_openai_format(tools: list[ToolDescriptor]) -> list[dict]:
    """Convert tool descriptors to OpenAI function-calling format."""
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.parameter_schema,
            },
        }
        for t in tools
    ]


def _tools_to_anthropic_format(tools: list[ToolDescriptor]) -> list[dict]:
    """Convert tool descriptors to Anthropic tool format."""
    return [
        {
            "name": t.name,
            "description": t.description,
            "input_schema": t.parameter_schema,
        }
        for t in tools
    ]


@dataclass
class ChatResponse:
    """Provider-agnostic assistant reply."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    raw: Any = None

    def to_message(self) -> TranscriptMessage:
        return TranscriptMessage.assistant(self.content, self.tool_calls)


class ChatModel(ABC):
    """Interface every chat model backend implements."""

    @abstractmethod
    async def invoke(
        self,
        system_prompt: str,
        messages: list[TranscriptMessage],
        tools: Optional[list[ToolDescriptor]] = None,
    ) -> ChatResponse:
        """Send the conversation and return the assistant reply."""

    @abstractmethod
    async def invoke_structured(
        self,
        system_prompt: str,
        messages: list[TranscriptMessage],
        schema: type[SchemaT],
        name: str,
        description: str = "",
    ) -> SchemaT:
        """Ask for a reply constrained to *schema* and return it validated."""


class OpenAIChatModel(ChatModel):
    """Chat completions backend (OpenAI and OpenAI-compatible endpoints)."""

    def __init__(self, config: LLMConfig, client: Any = None) -> None:
        self._config = config
        if client is None:
            import openai

            client = openai.AsyncOpenAI(
                api_key=config.api_key,
                base_url=config.base_url or PROVIDER_BASE_URLS.get(config.resolved_provider),
                timeout=config.request_timeout,
                max_retries=config.max_retries,
            )
        self._client = client

    @property
    def client(self) -> Any:
        return self._client

    async def invoke(
        self,
        system_prompt: str,
        messages: list[TranscriptMessage],
        tools: Optional[list[ToolDescriptor]] = None,
    ) -> ChatResponse:
        call_kwargs: dict[str, Any] = self._base_kwargs(system_prompt, messages)
        if tools:
            call_kwargs["tools"] = _tools_to_openai_format(tools)
        response = await self._client.chat.completions.create(**call_kwargs)
        return self._parse_response(response)

    async def invoke_structured(
        self,
        system_prompt: str,
        messages: list[TranscriptMessage],
        schema: type[SchemaT],
        name: str,
        description: str = "",
    ) -> SchemaT:
        call_kwargs = self._base_kwargs(system_prompt, messages)
        call_kwargs["tools"] = [
            {
                "type": "function",
                "function": {
                    "name": name,
                    "description": description,
                    "parameters": schema.model_json_schema(),
                },
            }
        ]
        call_kwargs["tool_choice"] = {"type": "function", "function": {"name": name}}
        response = await self._client.chat.completions.create(**call_kwargs)
        msg = response.choices[0].message
        for tc in msg.tool_calls or []:
            if tc.function.name == name:
                return schema.model_validate_json(tc.function.arguments or "{}")
        raise ValueError(f"Model did not return structured output for '{name}'")

    def _base_kwargs(self, system_prompt: str, messages: list[TranscriptMessage]) -> dict[str, Any]:
        return {
            "model": self._config.model,
            "messages": [{"role": "system", "content": system_prompt}]
            + [self._format_message(m) for m in messages],
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
            **self._config.extra,
        }

    @staticmethod
    def _format_message(message: TranscriptMessage) -> dict[str, Any]:
        if message.role == MessageRole.TOOL_RESULT:
            return {
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": message.content,
            }
        if message.role == MessageRole.ASSISTANT and message.tool_calls:
            return {
                "role": "assistant",
                "content": message.content or None,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.args)},
                    }
                    for tc in message.tool_calls
                ],
            }
        return {"role": message.role.value, "content": message.content}

    @staticmethod
    def _parse_response(response: Any) -> ChatResponse:
        msg = response.choices[0].message
        calls = []
        for tc in getattr(msg, "tool_calls", None) or []:
            try:
                args = json.loads(tc.function.arguments) if tc.function.arguments else {}
            except (json.JSONDecodeError, TypeError):
                logger.warning("Discarding malformed arguments for tool call %s", tc.function.name)
                args = {}
            calls.append(
                ToolCall(
                    id=getattr(tc, "id", None) or str(uuid.uuid4()),
                    name=tc.function.name,
                    args=args if isinstance(args, dict) else {},
                )
            )
        return ChatResponse(content=msg.content or "", tool_calls=calls, raw=response)


class AnthropicChatModel(ChatModel):
    """Anthropic messages backend."""

    def __init__(self, config: LLMConfig, client: Any = None) -> None:
        self._config = config
        if client is None:
            import anthropic

            client = anthropic.AsyncAnthropic(
                api_key=config.api_key,
                base_url=config.base_url,
                timeout=config.request_timeout,
                max_retries=config.max_retries,
            )
        self._client = client

    @property
    def client(self) -> Any:
        return self._client

    async def invoke(
        self,
        system_prompt: str,
        messages: list[TranscriptMessage],
        tools: Optional[list[ToolDescriptor]] = None,
    ) -> ChatResponse:
        call_kwargs = self._base_kwargs(system_prompt, messages)
        if tools:
            call_kwargs["tools"] = _tools_to_anthropic_format(tools)
        response = await self._client.messages.create(**call_kwargs)
        return self._parse_response(response)

    async def invoke_structured(
        self,
        system_prompt: str,
        messages: list[TranscriptMessage],
        schema: type[SchemaT],
        name: str,
        description: str = "",
    ) -> SchemaT:
        call_kwargs = self._base_kwargs(system_prompt, messages)
        call_kwargs["tools"] = [
            {
                "name": name,
                "description": description,
                "input_schema": schema.model_json_schema(),
            }
        ]
        call_kwargs["tool_choice"] = {"type": "tool", "name": name}
        response = await self._client.messages.create(**call_kwargs)
        for block in response.content:
            if getattr(block, "type", "") == "tool_use" and block.name == name:
                return schema.model_validate(block.input)
        raise ValueError(f"Model did not return structured output for '{name}'")

    def _base_kwargs(self, system_prompt: str, messages: list[TranscriptMessage]) -> dict[str, Any]:
        return {
            "model": self._config.model,
            "system": system_prompt,
            "messages": self._format_messages(messages),
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
            **self._config.extra,
        }

    @staticmethod
    def _format_messages(messages: list[TranscriptMessage]) -> list[dict[str, Any]]:
        formatted: list[dict[str, Any]] = []
        for message in messages:
            if message.role == MessageRole.TOOL_RESULT:
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.content,
                }
                # All results for one assistant turn travel in a single user turn
                previous = formatted[-1] if formatted else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and previous["content"]
                    and previous["content"][-1].get("type") == "tool_result"
                ):
                    previous["content"].append(block)
                else:
                    formatted.append({"role": "user", "content": [block]})
            elif message.role == MessageRole.ASSISTANT and message.tool_calls:
                content: list[dict[str, Any]] = []
                if message.content:
                    content.append({"type": "text", "text": message.content})
                for tc in message.tool_calls:
                    content.append(
                        {"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.args}
                    )
                formatted.append({"role": "assistant", "content": content})
            else:
                formatted.append({"role": message.role.value, "content": message.content})
        return formatted

    @staticmethod
    def _parse_response(response: Any) -> ChatResponse:
        texts = []
        calls = []
        for block in response.content:
            block_type = getattr(block, "type", "")
            if block_type == "text":
                texts.append(block.text)
            elif block_type == "tool_use":
                calls.append(
                    ToolCall(
                        id=getattr(block, "id", None) or str(uuid.uuid4()),
                        name=block.name,
                        args=dict(block.input or {}),
                    )
                )
        return ChatResponse(content=" ".join(texts), tool_calls=calls, raw=response)


def create_chat_model(config: LLMConfig, client: Any = None) -> ChatModel:
    """Build the backend matching the configured (or inferred) provider."""
    provider = config.resolved_provider
    if provider in ANTHROPIC_STYLE_PROVIDERS:
        return AnthropicChatModel(config, client=client)
    if provider in OPENAI_STYLE_PROVIDERS:
        return OpenAIChatModel(config, client=client)
    raise ValueError(f"Unsupported provider: {provider}")
