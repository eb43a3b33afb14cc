"""
Quix - Execution engine (ReAct loop).

Drives a chat model through propose / execute / observe cycles against a
fixed tool registry until the model answers without proposing tool calls.

    AWAITING_MODEL --(tool calls)--> DISPATCHING_TOOLS --> AWAITING_MODEL
    AWAITING_MODEL --(no tool calls)--> DONE

The loop is bounded by ``max_cycles`` model calls. Tool failures, unknown
tool names, and tool timeouts become textual tool results; model failures,
model timeouts, and exceeding the bound end the run.
"""

import asyncio
import json
import logging
import uuid
from enum import Enum
from typing import Any, Optional, Union

from .exceptions import ExecutionLimitError, ModelCallError, ModelTimeoutError, ToolNotFoundError
from .llm import ChatModel, ChatResponse
from .models import ExecutionResult, ToolCall, TranscriptMessage
from .redact import sanitize_for_log, strip_secrets
from .tools import Tool, ToolRegistry
from .tracker import ExecutionObserver

logger = logging.getLogger("quix.engine")

DEFAULT_MAX_CYCLES = 10


class ExecutionState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"


def format_tool_output(result: Any) -> str:
    """Render a handler's return value as transcript text."""
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    try:
        return json.dumps(result, default=str)
    except (TypeError, ValueError):
        return str(result)


class ExecutionEngine:
    """Runs the bounded ReAct loop for one set of tools.

    Holds no per-run state; concurrent :meth:`run` calls are independent.
    """

    def __init__(
        self,
        model: ChatModel,
        tools: Union[ToolRegistry, list[Tool]],
        max_cycles: int = DEFAULT_MAX_CYCLES,
        model_timeout: Optional[float] = None,
        tool_timeout: Optional[float] = None,
    ) -> None:
        if max_cycles < 1:
            raise ValueError("max_cycles must be at least 1")
        self._model = model
        self._registry = tools if isinstance(tools, ToolRegistry) else ToolRegistry(tools)
        self.max_cycles = max_cycles
        self.model_timeout = model_timeout
        self.tool_timeout = tool_timeout

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def run(
        self,
        system_prompt: str,
        history: list[TranscriptMessage],
        message: str,
        observer: Optional[ExecutionObserver] = None,
    ) -> ExecutionResult:
        """Execute until the model produces a final answer.

        Raises:
            ModelCallError: If a model call fails.
            ModelTimeoutError: If a model call exceeds ``model_timeout``.
            ExecutionLimitError: If ``max_cycles`` model calls did not reach
                a final answer.
        """
        transcript = list(history) + [TranscriptMessage.user(message)]
        descriptors = self._registry.descriptors()
        state = ExecutionState.AWAITING_MODEL

        for cycle in range(1, self.max_cycles + 1):
            logger.debug("Cycle %d: %s", cycle, state.value)
            response = await self._call_model(system_prompt, transcript, descriptors)
            transcript.append(response.to_message())

            if not response.tool_calls:
                state = ExecutionState.DONE
                logger.info("Execution %s after %d model cycle(s)", state.value, cycle)
                return ExecutionResult(content=response.content, transcript=transcript, cycles=cycle)

            state = ExecutionState.DISPATCHING_TOOLS
            logger.debug(
                "Cycle %d: %s, %d tool call(s): %s",
                cycle,
                state.value,
                len(response.tool_calls),
                [tc.name for tc in response.tool_calls],
            )
            outputs = await asyncio.gather(
                *(self._dispatch(call, observer) for call in response.tool_calls)
            )
            for call, output in zip(response.tool_calls, outputs):
                transcript.append(TranscriptMessage.tool_result(call, output))
            state = ExecutionState.AWAITING_MODEL

        logger.error("Execution exceeded %d model cycles without a final answer", self.max_cycles)
        raise ExecutionLimitError(
            f"Execution did not finish within {self.max_cycles} model cycles",
            max_cycles=self.max_cycles,
            transcript=transcript,
        )

    async def _call_model(
        self,
        system_prompt: str,
        transcript: list[TranscriptMessage],
        descriptors: list,
    ) -> ChatResponse:
        try:
            return await asyncio.wait_for(
                self._model.invoke(system_prompt, list(transcript), descriptors or None),
                timeout=self.model_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ModelTimeoutError(
                f"Model call timed out after {self.model_timeout}s",
                timeout=self.model_timeout,
            ) from e
        except Exception as e:
            raise ModelCallError(f"Model call failed: {e}") from e

    async def _dispatch(self, call: ToolCall, observer: Optional[ExecutionObserver]) -> str:
        """Invoke one proposed call; every failure becomes an error string."""
        run_id = str(uuid.uuid4())
        self._notify_start(observer, run_id, call)
        raw: Any
        try:
            tool = self._registry.get(call.name)
            raw = await asyncio.wait_for(tool.invoke(dict(call.args)), timeout=self.tool_timeout)
            output = format_tool_output(raw)
        except ToolNotFoundError as e:
            logger.warning("Model proposed unknown tool '%s'", call.name)
            output = f"Error: {e.message}. Available tools: {', '.join(e.available)}"
            raw = output
        except asyncio.TimeoutError:
            logger.warning("Tool '%s' timed out after %ss", call.name, self.tool_timeout)
            output = f"Error executing tool {call.name}: timed out after {self.tool_timeout}s"
            raw = output
        except Exception as e:
            logger.warning(
                "Tool '%s' failed with args %s: %s",
                call.name,
                sanitize_for_log(call.args),
                strip_secrets(str(e)),
            )
            output = f"Error executing tool {call.name}: {e}"
            raw = output
        self._notify_end(observer, run_id, raw)
        return output

    @staticmethod
    def _notify_start(observer: Optional[ExecutionObserver], run_id: str, call: ToolCall) -> None:
        if observer is None:
            return
        try:
            observer.on_tool_start(run_id, call.name, dict(call.args))
        except Exception:
            logger.exception("Observer failed in on_tool_start")

    @staticmethod
    def _notify_end(observer: Optional[ExecutionObserver], run_id: str, result: Any) -> None:
        if observer is None:
            return
        try:
            observer.on_tool_end(run_id, result)
        except Exception:
            logger.exception("Observer failed in on_tool_end")
