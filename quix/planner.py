"""
Quix - Plan generation.

Produces an advisory, ordered plan of tool calls and reasoning notes for
the tools of the selected categories. Tool steps that name a tool outside
the run's catalog are dropped before the plan reaches execution.
"""

import logging
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from .exceptions import PlanningError
from .llm import ChatModel
from .models import Plan, PlanStep, ReasonStep, ToolDescriptor, ToolStep, TranscriptMessage
from .prompts import base_prompt, planner_prompt
from .redact import sanitize_for_log, strip_secrets

logger = logging.getLogger("quix.planner")

PLAN_FUNCTION = "submit_plan"


class PlanStepModel(BaseModel):
    type: Literal["tool", "reason"]
    tool: Optional[str] = Field(None, description="Tool name for tool steps.")
    args: Optional[dict[str, Any]] = Field(None, description="Proposed tool arguments.")
    input: Optional[str] = Field(None, description="Purpose of the step or the reasoning note.")


class PlanModel(BaseModel):
    steps: list[PlanStepModel] = Field(default_factory=list)


def to_plan_steps(model: PlanModel) -> list[PlanStep]:
    steps: list[PlanStep] = []
    for raw in model.steps:
        if raw.type == "tool":
            if not raw.tool:
                raise PlanningError("Plan contains a tool step without a tool name")
            steps.append(ToolStep(tool=raw.tool, args=raw.args or {}, note=raw.input or ""))
        else:
            steps.append(ReasonStep(note=raw.input or ""))
    return steps


def validate_plan(steps: list[PlanStep], tool_names: set[str]) -> Plan:
    """Drop tool steps that reference tools not in *tool_names*."""
    kept: list[PlanStep] = []
    dropped: list[ToolStep] = []
    for step in steps:
        if isinstance(step, ToolStep) and step.tool not in tool_names:
            dropped.append(step)
            continue
        kept.append(step)
    if dropped:
        logger.warning(
            "Dropped %d plan step(s) naming unknown tools: %s",
            len(dropped),
            [s.tool for s in dropped],
        )
    return Plan(steps=tuple(kept), dropped=tuple(dropped))


class PlanGenerator:
    """Asks the model for an ordered plan over a flat tool catalog."""

    def __init__(self, model: ChatModel, assistant_name: str = "Quix") -> None:
        self._model = model
        self._assistant_name = assistant_name

    async def plan(
        self,
        tools: list[ToolDescriptor],
        custom_instructions: list[str],
        history: list[TranscriptMessage],
        message: str,
        author_name: Optional[str] = None,
    ) -> Plan:
        """Return the validated plan; an empty plan means "answer directly".

        Raises:
            PlanningError: If the model call fails or its output does not
                match the plan schema.
        """
        system = base_prompt(author_name, self._assistant_name) + planner_prompt(
            tools, custom_instructions
        )
        messages = list(history) + [TranscriptMessage.user(message)]
        try:
            output = await self._model.invoke_structured(
                system,
                messages,
                PlanModel,
                name=PLAN_FUNCTION,
                description="Submit the ordered plan of steps.",
            )
            steps = to_plan_steps(output)
        except PlanningError:
            raise
        except Exception as e:
            logger.error("Plan generation failed: %s", strip_secrets(str(e)))
            raise PlanningError(f"Plan generation failed: {e}") from e

        plan = validate_plan(steps, {t.name for t in tools})
        logger.info(
            "Plan generated for user's request: %s",
            sanitize_for_log([step.format() for step in plan]),
        )
        return plan
