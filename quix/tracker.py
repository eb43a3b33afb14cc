"""
Quix - Execution observers.

The execution engine reports every tool invocation to an observer injected
per run. Observers are a side channel: a failing observer never affects
execution, and separate runs never share an observer.
"""

import logging
from typing import Any, Optional

from .models import ToolCallRecord
from .redact import sanitize_for_log

logger = logging.getLogger("quix.tracker")

MAX_RESULT_LENGTH = 1000
TRUNCATION_MARKER = "... [truncated]"


class ExecutionObserver:
    """Base observer. Both hooks are no-ops; override what you need."""

    def on_tool_start(self, run_id: str, name: str, args: dict[str, Any]) -> None:
        pass

    def on_tool_end(self, run_id: str, result: Any) -> None:
        pass


class LoggingObserver(ExecutionObserver):
    """Writes tool start/end to the ``quix.tracker`` logger at debug level."""

    def on_tool_start(self, run_id: str, name: str, args: dict[str, Any]) -> None:
        logger.debug("Tool start: %s run=%s args=%s", name, run_id, sanitize_for_log(args))

    def on_tool_end(self, run_id: str, result: Any) -> None:
        size = len(result) if isinstance(result, str) else 0
        logger.debug("Tool end: run=%s size=%d", run_id, size)


class ToolCallTracker(ExecutionObserver):
    """Records each tool call's arguments and truncated textual result."""

    def __init__(self, max_result_length: int = MAX_RESULT_LENGTH) -> None:
        self.max_result_length = max_result_length
        self._records: dict[str, ToolCallRecord] = {}

    @property
    def records(self) -> list[ToolCallRecord]:
        """Records in the order their calls started."""
        return list(self._records.values())

    def get(self, run_id: str) -> Optional[ToolCallRecord]:
        return self._records.get(run_id)

    def on_tool_start(self, run_id: str, name: str, args: dict[str, Any]) -> None:
        try:
            self._records[run_id] = ToolCallRecord(
                run_id=run_id, name=name, args=dict(args or {})
            )
        except Exception:
            logger.exception("Failed to record tool start for run %s", run_id)

    def on_tool_end(self, run_id: str, result: Any) -> None:
        try:
            record = self._records.get(run_id)
            if record is None:
                return
            record.result = self._truncate(result) if isinstance(result, str) else None
        except Exception:
            logger.exception("Failed to record tool end for run %s", run_id)

    def _truncate(self, text: str) -> str:
        if len(text) <= self.max_result_length:
            return text
        return text[: self.max_result_length] + TRUNCATION_MARKER


class CompositeObserver(ExecutionObserver):
    """Fans events out to several observers, isolating each from the others."""

    def __init__(self, *observers: ExecutionObserver) -> None:
        self.observers = [o for o in observers if o is not None]

    def on_tool_start(self, run_id: str, name: str, args: dict[str, Any]) -> None:
        for observer in self.observers:
            try:
                observer.on_tool_start(run_id, name, args)
            except Exception:
                logger.exception("Observer %r failed in on_tool_start", observer)

    def on_tool_end(self, run_id: str, result: Any) -> None:
        for observer in self.observers:
            try:
                observer.on_tool_end(run_id, result)
            except Exception:
                logger.exception("Observer %r failed in on_tool_end", observer)
