"""
Quix - Data models shared by the orchestration pipeline.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class SideEffect(str, Enum):
    """What a tool does to the system it talks to."""

    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class MessageRole(str, Enum):
    """Role of a message in an execution transcript."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"


class Outcome(str, Enum):
    """How an orchestration run produced its answer."""

    DIRECT = "direct"
    EXECUTED = "executed"


@dataclass(frozen=True)
class ToolDescriptor:
    """Static description of an invocable tool.

    Published by a tool provider and treated as immutable for the
    duration of one orchestration run.
    """

    name: str
    description: str
    parameter_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    side_effect: SideEffect = SideEffect.READ

    def to_schema(self) -> dict[str, Any]:
        """Return the descriptor as a JSON-schema dict for the LLM."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameter_schema,
        }

    def to_dict(self) -> dict[str, Any]:
        return {**self.to_schema(), "side_effect": self.side_effect.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolDescriptor":
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            parameter_schema=data.get("parameters")
            or data.get("inputSchema")
            or {"type": "object", "properties": {}},
            side_effect=SideEffect(data.get("side_effect", "read")),
        )


@dataclass
class ToolCategory:
    """A group of tools offered by one provider (integration or tool server).

    The orchestration core only reads categories; whoever configured them
    owns them.
    """

    key: str
    tools: list[Any] = field(default_factory=list)
    selection_prompt: str = ""
    default_instructions: Optional[str] = None

    @property
    def descriptors(self) -> list[ToolDescriptor]:
        return [t.describe() for t in self.tools]


@dataclass(frozen=True)
class ToolStep:
    """Plan step that calls a tool."""

    tool: str
    args: dict[str, Any] = field(default_factory=dict)
    note: str = ""

    def format(self) -> str:
        text = f"Call tool `{self.tool}`."
        if self.args:
            text += f" Args: {json.dumps(self.args, default=str)}"
        if self.note:
            text += f" {self.note}"
        return text


@dataclass(frozen=True)
class ReasonStep:
    """Plan step that is a reasoning note rather than a tool call."""

    note: str

    def format(self) -> str:
        return self.note


PlanStep = Union[ToolStep, ReasonStep]


@dataclass(frozen=True)
class Plan:
    """Ordered, advisory plan produced once per run.

    ``dropped`` holds tool steps that named tools outside the run's catalog.
    """

    steps: tuple[PlanStep, ...] = ()
    dropped: tuple[ToolStep, ...] = ()

    def __iter__(self):
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def __getitem__(self, index: int) -> PlanStep:
        return self.steps[index]

    def format(self) -> str:
        """Render the plan as a numbered list for prompt injection."""
        return "\n".join(f"{i}. {step.format()}".strip() for i, step in enumerate(self.steps, 1))


@dataclass(frozen=True)
class ToolCall:
    """A tool call proposed by the model."""

    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "args": self.args}


@dataclass
class TranscriptMessage:
    """One entry of an execution transcript."""

    role: MessageRole
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def user(cls, content: str) -> "TranscriptMessage":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls, content: str, tool_calls: Optional[list[ToolCall]] = None
    ) -> "TranscriptMessage":
        return cls(role=MessageRole.ASSISTANT, content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool_result(cls, call: ToolCall, content: str) -> "TranscriptMessage":
        return cls(
            role=MessageRole.TOOL_RESULT,
            content=content,
            tool_call_id=call.id,
            name=call.name,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            result["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id:
            result["tool_call_id"] = self.tool_call_id
        if self.name:
            result["name"] = self.name
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TranscriptMessage":
        role = data.get("role", "user")
        # Conversation stores use the chat-completions role names
        if role == "tool":
            role = "tool_result"
        return cls(
            role=MessageRole(role),
            content=data.get("content") or "",
            tool_calls=[
                ToolCall(id=tc["id"], name=tc["name"], args=tc.get("args", {}))
                for tc in data.get("tool_calls", [])
            ],
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
        )


@dataclass
class ToolCallRecord:
    """Side-channel record of one tool invocation."""

    run_id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    result: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "name": self.name,
            "args": self.args,
            "result": self.result,
        }


@dataclass(frozen=True)
class SelectionResult:
    """Outcome of tool category selection.

    ``categories`` is None when the model elected the NONE sentinel.
    """

    categories: Optional[tuple[str, ...]]
    rationale: str = ""
    direct_answer: str = ""

    @property
    def is_none(self) -> bool:
        return not self.categories


@dataclass
class ExecutionResult:
    """Final answer and transcript of one execution loop."""

    content: str
    transcript: list[TranscriptMessage] = field(default_factory=list)
    cycles: int = 0


@dataclass
class OrchestrationResult:
    """What an orchestration run hands back to its caller."""

    outcome: Outcome
    content: str
    transcript: Optional[list[TranscriptMessage]] = None
    tool_call_log: Optional[list[ToolCallRecord]] = None
    selection: Optional[SelectionResult] = None
    plan: Optional[Plan] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"outcome": self.outcome.value, "content": self.content}
        if self.transcript is not None:
            result["transcript"] = [m.to_dict() for m in self.transcript]
        if self.tool_call_log is not None:
            result["tool_call_log"] = [r.to_dict() for r in self.tool_call_log]
        return result
