"""
Quix - Orchestration pipeline.

One run takes a message through category selection, planning, and the
execution loop:

    message -> selector --(none)--> direct answer
                        \\-> planner -> engine -> final answer + transcript

Usage:
    ```python
    from quix import Orchestrator, QuixConfig, common_category

    orchestrator = Orchestrator.from_config(QuixConfig.from_env())
    result = await orchestrator.process("What day is it?", [], [common_category()])
    print(result.content)
    ```
"""

import logging
from typing import Optional

from .config import QuixConfig
from .engine import ExecutionEngine
from .exceptions import QuixError
from .llm import ChatModel, create_chat_model
from .models import (
    OrchestrationResult,
    Outcome,
    Plan,
    SelectionResult,
    ToolCategory,
    TranscriptMessage,
)
from .planner import PlanGenerator
from .prompts import base_prompt, multi_step_prompt, single_category_prompt
from .selector import ToolCategorySelector
from .tools import ToolRegistry
from .tracker import CompositeObserver, ExecutionObserver, LoggingObserver, ToolCallTracker

logger = logging.getLogger("quix.orchestrator")

NO_TOOLS_CONFIGURED_MESSAGE = (
    "I apologize, but I don't have any tools configured to help with your request at the moment."
)
NO_TOOLS_FOUND_MESSAGE = "I could not find any tools to fulfill your request."
APOLOGY_MESSAGE = (
    "Sorry, something went wrong while working on your request. Please try again in a moment."
)


class Orchestrator:
    """Runs the selection, planning, and execution stages for one message at a time.

    Holds no per-run state; concurrent :meth:`process` calls are independent.
    """

    def __init__(self, model: ChatModel, config: Optional[QuixConfig] = None) -> None:
        self._model = model
        self.config = config or QuixConfig()
        self.selector = ToolCategorySelector(model, assistant_name=self.config.assistant_name)
        self.planner = PlanGenerator(model, assistant_name=self.config.assistant_name)

    @classmethod
    def from_config(cls, config: QuixConfig) -> "Orchestrator":
        return cls(create_chat_model(config.llm_config()), config)

    async def process(
        self,
        message: str,
        history: list[TranscriptMessage],
        categories: list[ToolCategory],
        author_name: Optional[str] = None,
        observe: bool = True,
    ) -> OrchestrationResult:
        """Answer *message* using the tools of *categories*.

        Raises:
            SelectionError: If category selection fails.
            PlanningError: If plan generation fails.
            ModelCallError: If a model call fails during execution.
            ExecutionLimitError: If execution does not finish within the
                configured number of model cycles.
        """
        if not categories:
            logger.info("No tool categories configured; answering directly")
            return OrchestrationResult(
                outcome=Outcome.DIRECT,
                content=NO_TOOLS_CONFIGURED_MESSAGE,
                transcript=[],
                selection=SelectionResult(categories=None, rationale="No tool categories configured"),
            )

        selection = await self.selector.select(message, history, categories, author_name)
        if selection.is_none:
            return OrchestrationResult(
                outcome=Outcome.DIRECT,
                content=selection.direct_answer or NO_TOOLS_FOUND_MESSAGE,
                transcript=[],
                selection=selection,
            )

        by_key = {c.key: c for c in categories}
        selected = [by_key[key] for key in selection.categories if key in by_key]
        registry = self._build_registry(selected)
        custom_instructions = [c.default_instructions for c in selected if c.default_instructions]

        plan = await self.planner.plan(
            registry.descriptors(), custom_instructions, history, message, author_name
        )
        system_prompt = self._execution_prompt(selected, plan, custom_instructions, author_name)

        tracker = ToolCallTracker(self.config.max_result_length) if observe else None
        observer: Optional[ExecutionObserver] = (
            CompositeObserver(tracker, LoggingObserver()) if tracker is not None else None
        )
        engine = ExecutionEngine(
            self._model,
            registry,
            max_cycles=self.config.max_cycles,
            model_timeout=self.config.model_timeout,
            tool_timeout=self.config.tool_timeout,
        )
        execution = await engine.run(system_prompt, history, message, observer=observer)

        return OrchestrationResult(
            outcome=Outcome.EXECUTED,
            content=execution.content,
            transcript=execution.transcript,
            tool_call_log=tracker.records if tracker is not None else None,
            selection=selection,
            plan=plan,
        )

    async def reply(
        self,
        message: str,
        history: list[TranscriptMessage],
        categories: list[ToolCategory],
        author_name: Optional[str] = None,
    ) -> str:
        """Like :meth:`process`, but returns an apology instead of raising."""
        try:
            result = await self.process(message, history, categories, author_name)
        except QuixError as e:
            logger.exception("Orchestration failed: %s", e.message)
            return APOLOGY_MESSAGE
        return result.content

    @staticmethod
    def _build_registry(categories: list[ToolCategory]) -> ToolRegistry:
        registry = ToolRegistry()
        for category in categories:
            for t in category.tools:
                if t.name in registry:
                    logger.warning(
                        "Tool '%s' from category '%s' shadows an earlier tool; skipping",
                        t.name,
                        category.key,
                    )
                    continue
                registry.register(t)
        return registry

    def _execution_prompt(
        self,
        categories: list[ToolCategory],
        plan: Plan,
        custom_instructions: list[str],
        author_name: Optional[str],
    ) -> str:
        base = base_prompt(author_name, self.config.assistant_name)
        formatted_plan = plan.format()
        if len(categories) == 1:
            return single_category_prompt(
                base, categories[0].key, formatted_plan, custom_instructions
            )
        return multi_step_prompt(base, formatted_plan, custom_instructions)
