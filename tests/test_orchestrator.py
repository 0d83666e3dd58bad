"""Tests for the investigation loop."""

from __future__ import annotations

import asyncio
import json

import pytest

from tests.mock_providers import (
    FailingProvider,
    HangingProvider,
    MockProvider,
    make_text_provider,
    make_tool_then_text_provider,
    text_turn,
    tool_call_turn,
)
from tests.mock_tools import BrokenSummary, MockExecutor, StaticSummary, finding
from tokenprobe.config import TokenProbeConfig
from tokenprobe.errors import LLMUnavailableError, ToolExecutionError
from tokenprobe.llm.providers.base import Provider
from tokenprobe.llm.router import LLMRouter
from tokenprobe.llm.types import ContentDelta, FinishReason
from tokenprobe.orchestrator.core import (
    AGENT_STEP,
    CONNECT_STEP,
    Investigator,
    RunState,
    stream_investigation,
)
from tokenprobe.timeline.emitter import Timeline
from tokenprobe.tools.catalog import default_tools
from tokenprobe.tools.registry import ToolRegistry
from tokenprobe.types import ErrorCode, ScoreRecord, Severity, Signal, ToolResult

ADDR = "0x1111111111111111111111111111111111111111"


@pytest.fixture
def registry():
    return ToolRegistry(default_tools())


@pytest.fixture
def config():
    cfg = TokenProbeConfig()
    cfg.agent.max_turns = 4
    return cfg


def _investigator(provider, executor, registry, config, summary=None) -> Investigator:
    router = LLMRouter()
    router.register_provider("mock", provider)
    return Investigator(router, executor, registry, config, summary_source=summary)


def _types(events):
    return [e.type for e in events]


class TestSingleToolRun:
    async def test_tool_then_answer(self, registry, config):
        provider = make_tool_then_text_provider([("scan_creator", {"tokenAddress": ADDR})])
        executor = MockExecutor({"scan_creator": finding(15, "Serial creator")})
        inv = _investigator(provider, executor, registry, config, StaticSummary())
        events = []

        outcome = await inv.run(ADDR, events.append)

        assert provider.call_count == 2
        assert executor.calls == [("scan_creator", {"tokenAddress": ADDR})]
        assert outcome.state is RunState.DONE
        assert outcome.turns == 2
        assert not outcome.budget_exhausted
        assert outcome.risk.score == 65

        assert _types(events) == [
            "step", "step", "tool_call", "tool_call", "confidence", "thinking", "done",
        ]
        running, complete = events[2], events[3]
        assert running.status == "running"
        assert running.tool_name == "Scan Creator"
        assert running.tier == 1
        assert complete.status == "complete"
        assert complete.finding == "Serial creator"
        assert complete.risk_delta == 15

        confidence = events[4]
        assert confidence.risk_score == 65
        assert confidence.signal is Signal.CAUTION
        assert confidence.components == {"scan_creator": 15}

    async def test_connect_step_detail(self, registry, config):
        inv = _investigator(make_text_provider("Nothing to do."), MockExecutor(), registry, config)
        tl = Timeline()
        await inv.run(ADDR, tl)
        step = tl.get("step", CONNECT_STEP)
        assert step.status == "complete"
        assert step.detail == "Using Token Investigator strategy via deepseek-chat"

    async def test_conversation_order(self, registry, config):
        provider = make_tool_then_text_provider(
            [("scan_creator", {"tokenAddress": ADDR}), ("scan_liquidity", {"tokenAddress": ADDR})]
        )
        executor = MockExecutor({"scan_creator": finding(5), "scan_liquidity": finding(5)})
        outcome = await _investigator(provider, executor, registry, config).run(ADDR, Timeline())

        roles = [m.role for m in outcome.conversation]
        assert roles == ["system", "user", "assistant", "tool", "tool", "assistant"]
        assistant = outcome.conversation[2]
        assert [tc.name for tc in assistant.tool_calls] == ["scan_creator", "scan_liquidity"]
        assert [m.tool_call_id for m in outcome.conversation[3:5]] == [
            "call_0_scan_creator",
            "call_1_scan_liquidity",
        ]

    async def test_tool_message_reports_running_score(self, registry, config):
        provider = make_tool_then_text_provider([("scan_liquidity", {"tokenAddress": ADDR})])
        executor = MockExecutor({"scan_liquidity": finding(20, flags=["LOW_LIQUIDITY"])})
        outcome = await _investigator(provider, executor, registry, config).run(ADDR, Timeline())

        payload = json.loads(outcome.conversation[3].content)
        assert payload["riskDelta"] == 20
        assert payload["currentRiskScore"] == 70
        assert payload["flags"] == ["LOW_LIQUIDITY"]
        assert "error" not in payload
        assert outcome.risk.flags == {"LOW_LIQUIDITY"}

    async def test_tools_offered_to_model(self, registry, config):
        provider = make_text_provider("done")
        await _investigator(provider, MockExecutor(), registry, config).run(ADDR, Timeline())
        assert len(provider.last_tools) == 13
        system = provider.last_messages[0]
        assert system.role == "system"
        assert ADDR in system.content


class TestRiskFolding:
    async def test_score_saturates(self, registry, config):
        provider = make_tool_then_text_provider(
            [
                ("scan_creator", {"tokenAddress": ADDR}),
                ("scan_liquidity", {"tokenAddress": ADDR}),
                ("investigate_dump_risk", {"tokenAddress": ADDR}),
            ]
        )
        executor = MockExecutor(
            {
                "scan_creator": finding(-30),
                "scan_liquidity": finding(10),
                "investigate_dump_risk": finding(90, severity=Severity.CRITICAL),
            }
        )
        tl = Timeline()
        await _investigator(provider, executor, registry, config).run(ADDR, tl)

        (confidence,) = tl.of_type("confidence")
        assert confidence.risk_score == 100
        assert confidence.signal is Signal.DANGER
        assert confidence.components == {
            "scan_creator": -30,
            "scan_liquidity": 10,
            "investigate_dump_risk": 90,
        }

    async def test_one_confidence_per_tool_turn(self, registry, config):
        provider = MockProvider(
            [
                tool_call_turn([("scan_creator", {"tokenAddress": ADDR})]),
                tool_call_turn([("scan_liquidity", {"tokenAddress": ADDR})]),
                text_turn("Verdict reached."),
            ]
        )
        executor = MockExecutor({"scan_creator": finding(10), "scan_liquidity": finding(-25)})
        tl = Timeline()
        await _investigator(provider, executor, registry, config).run(ADDR, tl)
        assert [c.risk_score for c in tl.of_type("confidence")] == [60, 35]
        assert tl.of_type("confidence")[-1].signal is Signal.CAUTION


class TestToolFailures:
    async def test_exception_becomes_degraded_result(self, registry, config):
        provider = make_tool_then_text_provider([("scan_creator", {"tokenAddress": ADDR})])
        executor = MockExecutor({"scan_creator": RuntimeError("boom")})
        events = []
        outcome = await _investigator(provider, executor, registry, config).run(ADDR, events.append)

        assert provider.call_count == 2
        complete = [e for e in events if e.type == "tool_call" and e.status == "complete"]
        assert len(complete) == 1
        assert complete[0].severity is Severity.WARNING
        assert complete[0].risk_delta == 0
        assert "boom" in complete[0].finding

        tool_msg = outcome.conversation[3]
        assert tool_msg.role == "tool"
        assert tool_msg.tool_call_id == "call_0_scan_creator"
        payload = json.loads(tool_msg.content)
        assert payload["riskDelta"] == 0
        assert "boom" in payload["error"]

        # The model saw the failure on the next request.
        assert provider.seen_messages[1][-1].role == "tool"
        assert outcome.risk.score == 50
        assert outcome.risk.components == {"scan_creator": 0}
        assert events[-1].type == "done"

    async def test_structured_failure_keeps_message(self, registry, config):
        provider = make_tool_then_text_provider([("scan_creator", {"tokenAddress": ADDR})])
        executor = MockExecutor(
            {"scan_creator": ToolExecutionError(ErrorCode.TIMEOUT, "Tool timed out after 60s")}
        )
        tl = Timeline()
        await _investigator(provider, executor, registry, config).run(ADDR, tl)
        entry = tl.get("tool_call", "scan_creator")
        assert entry.finding == "Tool failed: Tool timed out after 60s"
        assert entry.risk_delta == 0

    async def test_unknown_tool_is_composite_and_degraded(self, registry, config):
        provider = make_tool_then_text_provider([("summon_oracle", {"tokenAddress": ADDR})])
        tl = Timeline()
        await _investigator(provider, MockExecutor(), registry, config).run(ADDR, tl)
        entry = tl.get("tool_call", "summon_oracle")
        assert entry.tier == 3
        assert entry.severity is Severity.WARNING
        assert tl.terminal.type == "done"

    async def test_failure_does_not_stop_sibling_calls(self, registry, config):
        provider = make_tool_then_text_provider(
            [("scan_creator", {"tokenAddress": ADDR}), ("scan_liquidity", {"tokenAddress": ADDR})]
        )
        executor = MockExecutor({"scan_creator": ValueError("bad"), "scan_liquidity": finding(8)})
        outcome = await _investigator(provider, executor, registry, config).run(ADDR, Timeline())
        assert [name for name, _ in executor.calls] == ["scan_creator", "scan_liquidity"]
        assert outcome.risk.score == 58

    async def test_non_numeric_delta_degrades_instead_of_aborting(self, registry, config):
        provider = make_tool_then_text_provider(
            [("scan_creator", {"tokenAddress": ADDR}), ("scan_liquidity", {"tokenAddress": ADDR})]
        )
        executor = MockExecutor(
            {
                "scan_creator": ToolResult(finding="x", risk_delta="lots"),
                "scan_liquidity": ToolResult.from_payload({"finding": "y", "riskDelta": "5"}),
            }
        )
        inv = _investigator(provider, executor, registry, config)
        events = [e async for e in stream_investigation(inv, ADDR)]

        assert events[-1].type == "done"
        assert "error" not in _types(events)
        creator = [e for e in events if e.type == "tool_call" and e.tool_id == "scan_creator"]
        assert [e.status for e in creator] == ["running", "complete"]
        assert creator[-1].risk_delta == 0
        assert creator[-1].severity is Severity.WARNING
        assert "riskDelta" in creator[-1].finding
        (confidence,) = [e for e in events if e.type == "confidence"]
        assert confidence.risk_score == 55
        assert provider.call_count == 2
        tool_messages = [m for m in provider.last_messages if m.role == "tool"]
        assert [m.tool_call_id for m in tool_messages] == [
            "call_0_scan_creator",
            "call_1_scan_liquidity",
        ]


class TestArguments:
    async def test_malformed_arguments_fall_back_to_target(self, registry, config):
        provider = make_tool_then_text_provider([("scan_creator", "{not json")])
        executor = MockExecutor({"scan_creator": finding(0)})
        await _investigator(provider, executor, registry, config).run(ADDR, Timeline())
        assert executor.calls == [("scan_creator", {"tokenAddress": ADDR})]

    async def test_non_object_arguments_fall_back_to_target(self, registry, config):
        provider = make_tool_then_text_provider([("scan_creator", "[1, 2]")])
        executor = MockExecutor({"scan_creator": finding(0)})
        await _investigator(provider, executor, registry, config).run(ADDR, Timeline())
        assert executor.calls == [("scan_creator", {"tokenAddress": ADDR})]

    async def test_missing_address_injected(self, registry, config):
        provider = make_tool_then_text_provider([("scan_creator", {})])
        executor = MockExecutor({"scan_creator": finding(0)})
        await _investigator(provider, executor, registry, config).run(ADDR, Timeline())
        assert executor.calls[0][1]["tokenAddress"] == ADDR

    async def test_score_token_gets_model_ids_and_emits_results(self, registry, config):
        records = [
            ScoreRecord(model_id="rug-detector", model_name="Rug Detector",
                        signal="AVOID", score=12, confidence="HIGH"),
            ScoreRecord(model_id="whale-tracker", model_name="Whale Tracker",
                        signal="CAUTION", score=40, confidence="MEDIUM"),
        ]
        provider = make_tool_then_text_provider([("score_token", {"tokenAddress": ADDR})])
        executor = MockExecutor({"score_token": ToolResult(finding="Scored", results=records)})
        events = []
        await _investigator(provider, executor, registry, config).run(
            ADDR, events.append, model_ids=["rug-detector", "whale-tracker"]
        )

        assert executor.calls[0][1]["modelIds"] == ["rug-detector", "whale-tracker"]
        results = [e for e in events if e.type == "result"]
        assert [r.record.model_id for r in results] == ["rug-detector", "whale-tracker"]
        assert _types(events).index("confidence") < _types(events).index("result")
        assert events[-1].total_models == 2


class TestLoopTermination:
    async def test_turn_budget_exhausted(self, registry, config):
        config.agent.max_turns = 3
        provider = MockProvider([tool_call_turn([("scan_liquidity", {"tokenAddress": ADDR})])])
        executor = MockExecutor({"scan_liquidity": finding(1)})
        tl = Timeline()
        outcome = await _investigator(provider, executor, registry, config).run(ADDR, tl)

        assert provider.call_count == 3
        assert outcome.turns == 3
        assert outcome.budget_exhausted
        assert outcome.state is RunState.DONE
        assert tl.terminal.type == "done"
        assert len(tl.of_type("confidence")) == 3

    async def test_stop_reason_ends_loop_without_running_tools(self, registry, config):
        provider = MockProvider(
            [tool_call_turn([("scan_creator", {"tokenAddress": ADDR})], finish_reason="stop")]
        )
        executor = MockExecutor({"scan_creator": finding(10)})
        tl = Timeline()
        outcome = await _investigator(provider, executor, registry, config).run(ADDR, tl)
        assert provider.call_count == 1
        assert executor.calls == []
        assert tl.of_type("tool_call") == []
        assert not outcome.budget_exhausted

    async def test_text_only_answer(self, registry, config):
        provider = make_text_provider("This token looks fine.")
        tl = Timeline()
        outcome = await _investigator(provider, MockExecutor(), registry, config).run(ADDR, tl)
        assert outcome.turns == 1
        assert [e.reasoning for e in tl.of_type("thinking")] == ["This token looks fine."]
        assert tl.of_type("confidence") == []


class TestDoneEvent:
    async def test_summary_included(self, registry, config):
        summary = StaticSummary()
        tl = Timeline()
        await _investigator(make_text_provider("ok"), MockExecutor(), registry, config, summary).run(ADDR, tl)
        done = tl.terminal
        assert summary.calls == 1
        assert done.token_info.name == "Test Token"
        assert done.token_data == {"holderCount": 42}
        assert done.total_models == 3

    async def test_summary_failure_uses_placeholder(self, registry, config):
        tl = Timeline()
        await _investigator(
            make_text_provider("ok"), MockExecutor(), registry, config, BrokenSummary()
        ).run(ADDR, tl)
        done = tl.terminal
        assert done.type == "done"
        assert done.token_info.address == ADDR
        assert done.token_info.name == ""
        assert done.token_data == {}


class TestFatalErrors:
    async def test_llm_failure_propagates(self, registry, config):
        events = []
        inv = _investigator(FailingProvider("HTTP 401"), MockExecutor(), registry, config)
        with pytest.raises(LLMUnavailableError):
            await inv.run(ADDR, events.append)

        assert "done" not in _types(events)
        last = events[-1]
        assert last.type == "step"
        assert last.step == AGENT_STEP
        assert last.status == "error"
        assert "HTTP 401" in last.detail

    async def test_llm_timeout_is_fatal(self, registry, config):
        config.llm.timeout_seconds = 0.05
        provider = HangingProvider()
        events = []
        with pytest.raises(LLMUnavailableError, match="timed out"):
            await _investigator(provider, MockExecutor(), registry, config).run(ADDR, events.append)
        assert provider.cancelled
        assert "done" not in _types(events)

    async def test_sink_errors_do_not_abort_run(self, registry, config):
        def broken_sink(event):
            raise RuntimeError("client went away")

        outcome = await _investigator(
            make_text_provider("ok"), MockExecutor(), registry, config
        ).run(ADDR, broken_sink)
        assert outcome.state is RunState.DONE


class TestCancellation:
    async def test_cancel_mid_request(self, registry, config):
        provider = HangingProvider()
        tl = Timeline()
        task = asyncio.create_task(
            _investigator(provider, MockExecutor(), registry, config).run(ADDR, tl)
        )
        await provider.started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert provider.cancelled
        assert tl.of_type("done") == []


class TestStreamInvestigation:
    async def test_stream_ends_with_done(self, registry, config):
        provider = make_tool_then_text_provider([("scan_creator", {"tokenAddress": ADDR})])
        inv = _investigator(provider, MockExecutor({"scan_creator": finding(3)}), registry, config)
        events = [e async for e in stream_investigation(inv, ADDR)]
        assert events[0].type == "step"
        assert events[-1].type == "done"
        assert _types(events).count("done") == 1

    async def test_stream_ends_with_single_error(self, registry, config):
        inv = _investigator(FailingProvider("HTTP 503"), MockExecutor(), registry, config)
        events = [e async for e in stream_investigation(inv, ADDR)]
        terminal = [e for e in events if e.type in ("done", "error")]
        assert len(terminal) == 1
        assert events[-1].type == "error"
        assert "HTTP 503" in events[-1].message

    async def test_closing_stream_cancels_run(self, registry, config):
        provider = HangingProvider()
        inv = _investigator(provider, MockExecutor(), registry, config)
        stream = stream_investigation(inv, ADDR)
        first = await stream.__anext__()
        assert first.type == "step"
        await provider.started.wait()
        await stream.aclose()
        assert provider.cancelled


class _PerRunProvider(Provider):
    """Asks for one address-less tool call, then answers, for any run."""

    @property
    def name(self) -> str:
        return "per-run"

    async def chat(self, messages, tools=None):
        await asyncio.sleep(0)
        if messages[-1].role == "tool":
            yield ContentDelta("Finished.")
            yield FinishReason("stop")
            return
        for chunk in tool_call_turn([("scan_creator", {})]):
            await asyncio.sleep(0)
            yield chunk


class TestConcurrentRuns:
    async def test_runs_share_no_state(self, registry, config):
        deltas = {"0xaaa": 30, "0xbbb": -40}
        executor = MockExecutor({"scan_creator": lambda args: finding(deltas[args["tokenAddress"]])})
        inv = _investigator(_PerRunProvider(), executor, registry, config)
        tl_a, tl_b = Timeline(), Timeline()

        out_a, out_b = await asyncio.gather(inv.run("0xaaa", tl_a), inv.run("0xbbb", tl_b))

        assert out_a.risk.score == 80
        assert out_b.risk.score == 10
        assert tl_a.of_type("confidence")[0].signal is Signal.DANGER
        assert tl_b.of_type("confidence")[0].signal is Signal.SAFE
        assert tl_a.terminal.token_info.address == "0xaaa"
        assert tl_b.terminal.token_info.address == "0xbbb"
        assert sorted(args["tokenAddress"] for _, args in executor.calls) == ["0xaaa", "0xbbb"]
