"""
Tests for execution observers and the tool call tracker.
"""

from unittest.mock import MagicMock

from quix.tracker import (
    MAX_RESULT_LENGTH,
    TRUNCATION_MARKER,
    CompositeObserver,
    ExecutionObserver,
    LoggingObserver,
    ToolCallTracker,
)


class TestToolCallTracker:
    def test_start_creates_record(self):
        tracker = ToolCallTracker()
        tracker.on_tool_start("r1", "search", {"q": "x"})
        record = tracker.get("r1")
        assert record.name == "search"
        assert record.args == {"q": "x"}
        assert record.result is None

    def test_end_sets_result(self):
        tracker = ToolCallTracker()
        tracker.on_tool_start("r1", "search", {})
        tracker.on_tool_end("r1", "found 3 issues")
        assert tracker.get("r1").result == "found 3 issues"

    def test_long_result_truncated_with_marker(self):
        tracker = ToolCallTracker()
        text = "a" * 1500
        tracker.on_tool_start("r1", "search", {})
        tracker.on_tool_end("r1", text)
        result = tracker.get("r1").result
        assert len(result) <= MAX_RESULT_LENGTH + len(TRUNCATION_MARKER)
        assert result == text[:MAX_RESULT_LENGTH] + TRUNCATION_MARKER

    def test_result_at_limit_untouched(self):
        tracker = ToolCallTracker()
        text = "b" * MAX_RESULT_LENGTH
        tracker.on_tool_start("r1", "search", {})
        tracker.on_tool_end("r1", text)
        assert tracker.get("r1").result == text

    def test_custom_limit(self):
        tracker = ToolCallTracker(max_result_length=5)
        tracker.on_tool_start("r1", "search", {})
        tracker.on_tool_end("r1", "abcdefgh")
        assert tracker.get("r1").result == "abcde" + TRUNCATION_MARKER

    def test_non_text_result_is_null(self):
        tracker = ToolCallTracker()
        tracker.on_tool_start("r1", "search", {})
        tracker.on_tool_end("r1", {"rows": []})
        assert tracker.get("r1").result is None
        tracker.on_tool_start("r2", "search", {})
        tracker.on_tool_end("r2", None)
        assert tracker.get("r2").result is None

    def test_end_without_start_is_noop(self):
        tracker = ToolCallTracker()
        tracker.on_tool_end("missing", "result")
        assert tracker.records == []

    def test_records_in_start_order(self):
        tracker = ToolCallTracker()
        tracker.on_tool_start("b", "second", {})
        tracker.on_tool_start("a", "first", {})
        tracker.on_tool_end("a", "1")
        assert [r.name for r in tracker.records] == ["second", "first"]

    def test_hooks_never_raise(self):
        tracker = ToolCallTracker()
        tracker.on_tool_start("r1", "search", None)
        tracker.on_tool_start("r2", "search", object())
        tracker.on_tool_end("r1", "ok")
        assert tracker.get("r1").result == "ok"


class TestCompositeObserver:
    def test_fans_out(self):
        first, second = MagicMock(spec=ExecutionObserver), MagicMock(spec=ExecutionObserver)
        composite = CompositeObserver(first, second)
        composite.on_tool_start("r1", "search", {"q": 1})
        composite.on_tool_end("r1", "done")
        first.on_tool_start.assert_called_once_with("r1", "search", {"q": 1})
        second.on_tool_end.assert_called_once_with("r1", "done")

    def test_failing_observer_isolated(self):
        broken = MagicMock(spec=ExecutionObserver)
        broken.on_tool_start.side_effect = RuntimeError("boom")
        tracker = ToolCallTracker()
        composite = CompositeObserver(broken, tracker, LoggingObserver())
        composite.on_tool_start("r1", "search", {})
        composite.on_tool_end("r1", "done")
        assert tracker.get("r1").result == "done"
