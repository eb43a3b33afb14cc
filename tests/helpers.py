"""
Scripted chat model and reply builders shared by the Quix tests.
"""

import uuid
from typing import Any, Callable, Optional, Union

from quix.llm import ChatModel, ChatResponse
from quix.models import ToolCall, ToolDescriptor, TranscriptMessage

Scripted = Union[ChatResponse, Exception, Callable[..., Any]]


class ScriptedChatModel(ChatModel):
    """A chat model that replays canned replies and records every call."""

    def __init__(
        self,
        responses: Optional[list[Scripted]] = None,
        structured: Optional[list[Any]] = None,
        repeat_last: bool = False,
    ) -> None:
        self.responses = list(responses or [])
        self.structured = list(structured or [])
        self.repeat_last = repeat_last
        self.calls: list[dict[str, Any]] = []
        self.structured_calls: list[dict[str, Any]] = []

    async def invoke(
        self,
        system_prompt: str,
        messages: list[TranscriptMessage],
        tools: Optional[list[ToolDescriptor]] = None,
    ) -> ChatResponse:
        self.calls.append(
            {"system": system_prompt, "messages": list(messages), "tools": list(tools or [])}
        )
        if not self.responses:
            raise AssertionError("ScriptedChatModel ran out of responses")
        if self.repeat_last and len(self.responses) == 1:
            item = self.responses[0]
        else:
            item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            item = item(system_prompt, messages, tools)
            if hasattr(item, "__await__"):
                item = await item
        return item

    async def invoke_structured(self, system_prompt, messages, schema, name, description=""):
        self.structured_calls.append(
            {"system": system_prompt, "messages": list(messages), "schema": schema, "name": name}
        )
        if not self.structured:
            raise AssertionError("ScriptedChatModel ran out of structured replies")
        item = self.structured.pop(0)
        if isinstance(item, Exception):
            raise item
        return schema.model_validate(item)


def tool_calls(*calls: tuple) -> ChatResponse:
    """An assistant reply proposing ``(name, args)`` calls."""
    return ChatResponse(
        content="",
        tool_calls=[
            ToolCall(id=f"call_{uuid.uuid4().hex[:8]}", name=name, args=args) for name, args in calls
        ],
    )


def answer(text: str) -> ChatResponse:
    return ChatResponse(content=text)


