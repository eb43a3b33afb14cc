"""
Tests for the ReAct execution engine.
"""

import asyncio
import time

import pytest
from helpers import ScriptedChatModel, answer, tool_calls

from quix.engine import ExecutionEngine, format_tool_output
from quix.exceptions import ExecutionLimitError, ModelCallError, ModelTimeoutError
from quix.models import MessageRole, TranscriptMessage
from quix.tools import define_tool
from quix.tracker import ExecutionObserver, ToolCallTracker

QUERY_SCHEMA = {
    "type": "object",
    "properties": {"q": {"type": "string"}},
    "required": ["q"],
}


@define_tool(description="Search issues.", parameters=QUERY_SCHEMA)
async def search(q: str) -> str:
    return f"results for {q}"


@define_tool(description="Always fails.")
def explode() -> str:
    raise RuntimeError("backend unavailable")


def delayed(name: str, delay: float):
    @define_tool(name=name, parameters=QUERY_SCHEMA)
    async def _handler(q: str) -> str:
        await asyncio.sleep(delay)
        return f"{name}:{q}"

    return _handler


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------


class TestExecutionLoop:
    @pytest.mark.asyncio
    async def test_direct_answer(self):
        model = ScriptedChatModel([answer("Hello!")])
        engine = ExecutionEngine(model, [search])
        result = await engine.run("system", [], "hi")
        assert result.content == "Hello!"
        assert result.cycles == 1
        assert [m.role for m in result.transcript] == [MessageRole.USER, MessageRole.ASSISTANT]

    @pytest.mark.asyncio
    async def test_transcript_seeded_with_history(self):
        history = [TranscriptMessage.user("earlier"), TranscriptMessage.assistant("reply")]
        model = ScriptedChatModel([answer("done")])
        result = await ExecutionEngine(model, [search]).run("system", history, "now")
        assert [m.content for m in result.transcript[:3]] == ["earlier", "reply", "now"]
        assert model.calls[0]["system"] == "system"
        assert [t.name for t in model.calls[0]["tools"]] == ["search"]

    @pytest.mark.asyncio
    async def test_tool_call_then_answer(self):
        model = ScriptedChatModel([tool_calls(("search", {"q": "bugs"})), answer("Found them")])
        result = await ExecutionEngine(model, [search]).run("system", [], "find bugs")
        assert result.content == "Found them"
        assert result.cycles == 2
        tool_message = result.transcript[2]
        assert tool_message.role == MessageRole.TOOL_RESULT
        assert tool_message.content == "results for bugs"
        assert tool_message.tool_call_id == result.transcript[1].tool_calls[0].id
        # the model sees the tool result on its second call
        assert model.calls[1]["messages"][-1].content == "results for bugs"

    @pytest.mark.asyncio
    async def test_results_in_proposal_order(self):
        slow, fast = delayed("slow", 0.05), delayed("fast", 0)
        model = ScriptedChatModel(
            [tool_calls(("slow", {"q": "1"}), ("fast", {"q": "2"})), answer("ok")]
        )
        result = await ExecutionEngine(model, [slow, fast]).run("system", [], "go")
        results = [m for m in result.transcript if m.role == MessageRole.TOOL_RESULT]
        assert [m.content for m in results] == ["slow:1", "fast:2"]
        assert [m.name for m in results] == ["slow", "fast"]

    @pytest.mark.asyncio
    async def test_calls_in_one_turn_run_concurrently(self):
        tools = [delayed(f"t{i}", 0.1) for i in range(5)]
        model = ScriptedChatModel(
            [tool_calls(*[(f"t{i}", {"q": "x"}) for i in range(5)]), answer("ok")]
        )
        loop = asyncio.get_running_loop()
        started = loop.time()
        await ExecutionEngine(model, tools).run("system", [], "go")
        assert loop.time() - started < 0.4

    @pytest.mark.asyncio
    async def test_concurrent_runs_on_one_engine_are_independent(self):
        def react(system, messages, tools):
            last = messages[-1]
            if last.role == MessageRole.USER:
                return tool_calls(("slow", {"q": last.content}))
            return answer(last.content)

        model = ScriptedChatModel([react], repeat_last=True)
        engine = ExecutionEngine(model, [delayed("slow", 0.05)])
        first, second = await asyncio.gather(
            engine.run("system", [], "alpha"), engine.run("system", [], "beta")
        )
        assert first.content == "slow:alpha"
        assert second.content == "slow:beta"
        assert first.cycles == second.cycles == 2

    def test_max_cycles_must_be_positive(self):
        with pytest.raises(ValueError):
            ExecutionEngine(ScriptedChatModel(), [], max_cycles=0)

    def test_format_tool_output(self):
        assert format_tool_output(None) == ""
        assert format_tool_output("text") == "text"
        assert format_tool_output({"a": 1}) == '{"a": 1}'


# ---------------------------------------------------------------------------
# Bound and failures
# ---------------------------------------------------------------------------


class TestExecutionFailures:
    @pytest.mark.asyncio
    async def test_cycle_bound_raises_distinct_error(self):
        model = ScriptedChatModel([tool_calls(("search", {"q": "again"}))], repeat_last=True)
        engine = ExecutionEngine(model, [search], max_cycles=3)
        with pytest.raises(ExecutionLimitError) as exc_info:
            await engine.run("system", [], "loop forever")
        assert exc_info.value.max_cycles == 3
        assert len(model.calls) == 3
        results = [m for m in exc_info.value.transcript if m.role == MessageRole.TOOL_RESULT]
        assert len(results) == 3
        assert not isinstance(exc_info.value, ModelCallError)

    @pytest.mark.asyncio
    async def test_model_failure_is_fatal(self):
        model = ScriptedChatModel([RuntimeError("503 from provider")])
        with pytest.raises(ModelCallError) as exc_info:
            await ExecutionEngine(model, [search]).run("system", [], "hi")
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_model_timeout_is_fatal(self):
        async def hang(*args):
            await asyncio.sleep(1)

        model = ScriptedChatModel([hang])
        engine = ExecutionEngine(model, [search], model_timeout=0.01)
        with pytest.raises(ModelTimeoutError) as exc_info:
            await engine.run("system", [], "hi")
        assert exc_info.value.timeout == 0.01

    @pytest.mark.asyncio
    async def test_tool_exception_becomes_text(self):
        model = ScriptedChatModel([tool_calls(("explode", {})), answer("Sorry, backend is down")])
        result = await ExecutionEngine(model, [explode]).run("system", [], "go")
        assert result.content == "Sorry, backend is down"
        assert result.transcript[2].content == "Error executing tool explode: backend unavailable"

    @pytest.mark.asyncio
    async def test_tool_timeout_becomes_text(self):
        slow = delayed("slow", 1)
        model = ScriptedChatModel([tool_calls(("slow", {"q": "x"})), answer("gave up")])
        engine = ExecutionEngine(model, [slow], tool_timeout=0.01)
        result = await engine.run("system", [], "go")
        assert result.content == "gave up"
        assert "timed out" in result.transcript[2].content

    @pytest.mark.asyncio
    async def test_blocking_sync_tool_times_out(self):
        @define_tool(name="blocking", parameters=QUERY_SCHEMA)
        def blocking(q: str) -> str:
            time.sleep(0.5)
            return "finished"

        model = ScriptedChatModel([tool_calls(("blocking", {"q": "x"})), answer("gave up")])
        engine = ExecutionEngine(model, [blocking], tool_timeout=0.05)
        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await engine.run("system", [], "go")
        assert loop.time() - started < 0.4
        assert "timed out" in result.transcript[2].content

    @pytest.mark.asyncio
    async def test_unknown_tool_rejected_not_dropped(self):
        model = ScriptedChatModel([tool_calls(("drop_database", {})), answer("cannot")])
        result = await ExecutionEngine(model, [search]).run("system", [], "go")
        rejection = result.transcript[2]
        assert rejection.role == MessageRole.TOOL_RESULT
        assert rejection.content.startswith("Error: Unknown tool: drop_database")
        assert "search" in rejection.content

    @pytest.mark.asyncio
    async def test_invalid_arguments_become_text(self):
        model = ScriptedChatModel([tool_calls(("search", {})), answer("missing query")])
        result = await ExecutionEngine(model, [search]).run("system", [], "go")
        assert result.transcript[2].content.startswith("Error executing tool search: Invalid arguments")


# ---------------------------------------------------------------------------
# Observer wiring
# ---------------------------------------------------------------------------


class TestObserverWiring:
    @pytest.mark.asyncio
    async def test_tracker_records_calls(self):
        tracker = ToolCallTracker()
        model = ScriptedChatModel(
            [tool_calls(("search", {"q": "a"}), ("explode", {})), answer("done")]
        )
        await ExecutionEngine(model, [search, explode]).run("system", [], "go", observer=tracker)
        records = tracker.records
        assert [r.name for r in records] == ["search", "explode"]
        assert records[0].args == {"q": "a"}
        assert records[0].result == "results for a"
        assert records[1].result == "Error executing tool explode: backend unavailable"

    @pytest.mark.asyncio
    async def test_non_text_result_recorded_as_null(self):
        @define_tool()
        def listing() -> dict:
            return {"rows": [1, 2]}

        tracker = ToolCallTracker()
        model = ScriptedChatModel([tool_calls(("listing", {})), answer("done")])
        result = await ExecutionEngine(model, [listing]).run("s", [], "go", observer=tracker)
        assert tracker.records[0].result is None
        assert result.transcript[2].content == '{"rows": [1, 2]}'

    @pytest.mark.asyncio
    async def test_crashing_observer_does_not_crash_run(self):
        class Broken(ExecutionObserver):
            def on_tool_start(self, run_id, name, args):
                raise RuntimeError("observer bug")

            def on_tool_end(self, run_id, result):
                raise RuntimeError("observer bug")

        model = ScriptedChatModel([tool_calls(("search", {"q": "a"})), answer("done")])
        result = await ExecutionEngine(model, [search]).run("s", [], "go", observer=Broken())
        assert result.content == "done"
