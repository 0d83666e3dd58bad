"""
Investigator -- the multi-turn loop that drives the model through a token
investigation.

The investigator:
1. Seeds the conversation with the strategy (system) and the target (user)
2. Streams one model turn, releasing reasoning as ``thinking`` events
3. Appends the assistant turn, then runs every requested tool in order
4. Folds each result into the running risk score and feeds it back
5. Loops until the model stops calling tools or the turn budget runs out
6. Emits a closing ``done`` event with a best-effort token summary

Every transition is reported through a single ``emit`` sink.  Failures of
the LLM endpoint are fatal and propagate; failures of individual tools are
converted into degraded results and the run continues.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator

from tokenprobe.config import TokenProbeConfig
from tokenprobe.errors import LLMUnavailableError, ToolExecutionError
from tokenprobe.llm.router import LLMRouter
from tokenprobe.llm.types import Message, ToolCallRequest
from tokenprobe.orchestrator.risk import RiskAggregator, RiskState, SignalThresholds
from tokenprobe.prompts.system import build_system_prompt, build_user_prompt
from tokenprobe.timeline.emitter import EventChannel, EventSink
from tokenprobe.timeline.events import (
    STATUS_COMPLETE,
    STATUS_ERROR,
    STATUS_RUNNING,
    ConfidenceEvent,
    DoneEvent,
    ErrorEvent,
    ResultEvent,
    StepEvent,
    ThinkingEvent,
    TimelineEvent,
    ToolCallEvent,
)
from tokenprobe.tools.base import display_name
from tokenprobe.tools.catalog import MODEL_IDS_ARG, SCORE_TOKEN, TOKEN_ADDRESS_ARG
from tokenprobe.tools.executor import ToolExecutor
from tokenprobe.tools.registry import ToolRegistry
from tokenprobe.tools.summary import SummarySource, TokenSummary
from tokenprobe.types import ErrorCode, ToolResult, as_number

logger = logging.getLogger(__name__)

CONNECT_STEP = "Connecting to research agent"
AGENT_STEP = "Research agent"


class RunState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    REQUESTING = "requesting"
    DRAINING = "draining"
    EXECUTING = "executing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunOutcome:
    """What is left of a run once the loop returns."""

    state: RunState
    turns: int
    risk: RiskState
    conversation: list[Message] = field(default_factory=list)
    budget_exhausted: bool = False


class Investigator:
    """
    Drives one or more independent investigation runs.

    The investigator itself only holds read-only collaborators; every call
    to ``run`` builds its own conversation, risk state and turn counter, so
    concurrent runs share nothing mutable.

    Parameters
    ----------
    router : LLMRouter
        Provides the streamed model turns.
    executor : ToolExecutor
        Runs the tools the model asks for.
    registry : ToolRegistry
        Tool catalogue offered to the model; also supplies tiers.
    config : TokenProbeConfig
        Turn budget, thresholds, timeouts and skill names.
    summary_source : SummarySource
        Optional lookup for the closing ``done`` payload.
    """

    def __init__(
        self,
        router: LLMRouter,
        executor: ToolExecutor,
        registry: ToolRegistry,
        config: TokenProbeConfig | None = None,
        summary_source: SummarySource | None = None,
    ) -> None:
        self.router = router
        self.executor = executor
        self.registry = registry
        self.config = config or TokenProbeConfig()
        self.summary_source = summary_source
        self.thresholds = SignalThresholds(
            safe_max=self.config.risk.safe_max,
            caution_max=self.config.risk.caution_max,
        )

    @property
    def max_turns(self) -> int:
        return self.config.agent.max_turns

    async def run(
        self,
        token_address: str,
        emit: EventSink,
        model_ids: list[str] | None = None,
        skill_id: str | None = None,
    ) -> RunOutcome:
        """
        Investigate *token_address*, reporting progress through *emit*.

        Raises ``LLMUnavailableError`` if the model endpoint fails; the
        caller is expected to surface that as an ``error`` event.
        Cancelling the awaiting task aborts the current network operation
        and no ``done`` event is emitted.
        """
        run = _Run(self, token_address, emit, model_ids, skill_id)
        return await run.execute()


class _Run:
    """Mutable state of one investigation.  Never shared between runs."""

    def __init__(
        self,
        investigator: Investigator,
        token_address: str,
        emit: EventSink,
        model_ids: list[str] | None,
        skill_id: str | None,
    ) -> None:
        cfg = investigator.config
        self.inv = investigator
        self.token_address = token_address
        self._emit = emit
        self.model_ids = list(model_ids or cfg.agent.default_models)
        self.skill_name = cfg.agent.skill_name(skill_id)
        self.risk = RiskAggregator(investigator.thresholds, cfg.agent.initial_score)
        self.conversation: list[Message] = []
        self.state = RunState.IDLE
        self.turns = 0

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def emit(self, event: TimelineEvent) -> None:
        try:
            self._emit(event)
        except Exception:
            logger.exception("Timeline sink raised on %s event", event.type)

    def transition(self, state: RunState) -> None:
        logger.debug("run %s: %s -> %s", self.token_address, self.state.value, state.value)
        self.state = state

    def outcome(self, budget_exhausted: bool = False) -> RunOutcome:
        return RunOutcome(
            state=self.state,
            turns=self.turns,
            risk=self.risk.state,
            conversation=self.conversation,
            budget_exhausted=budget_exhausted,
        )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def execute(self) -> RunOutcome:
        try:
            return await self._execute()
        except BaseException:
            # Fatal error or cancellation: terminal, but never DONE.
            self.transition(RunState.FAILED)
            raise

    async def _execute(self) -> RunOutcome:
        cfg = self.inv.config

        self.transition(RunState.CONNECTING)
        self.emit(StepEvent(step=CONNECT_STEP, status=STATUS_RUNNING))

        tools = self.inv.registry.list()
        self.conversation.append(
            Message(
                role="system",
                content=build_system_prompt(
                    self.skill_name,
                    self.token_address,
                    self.model_ids,
                    tools=tools,
                    thresholds=self.inv.thresholds,
                    initial_score=cfg.agent.initial_score,
                ),
            )
        )
        self.conversation.append(
            Message(
                role="user",
                content=build_user_prompt(self.skill_name, self.token_address, self.model_ids),
            )
        )
        tools_schema = self.inv.registry.to_openai_schema()

        self.emit(
            StepEvent(
                step=CONNECT_STEP,
                status=STATUS_COMPLETE,
                detail=f"Using {self.skill_name} strategy via {cfg.llm.model}",
            )
        )

        budget_exhausted = True
        while self.turns < self.inv.max_turns:
            self.turns += 1
            self.transition(RunState.REQUESTING)
            assembled = await self._request_turn(tools_schema)

            self.transition(RunState.DRAINING)
            self.conversation.append(assembled.to_message())

            if not assembled.tool_calls or assembled.finish_reason == "stop":
                budget_exhausted = False
                break

            self.transition(RunState.EXECUTING)
            results = []
            for call in assembled.tool_calls:
                results.append((call, await self._execute_call(call)))

            if results:
                self.emit(
                    ConfidenceEvent(
                        risk_score=self.risk.score,
                        signal=self.risk.signal(),
                        components=self.risk.snapshot(),
                    )
                )

            for _, result in results:
                for record in result.results:
                    self.emit(ResultEvent(record=record))

        if budget_exhausted:
            logger.warning(
                "Turn budget of %d exhausted for %s; finishing with current state",
                self.inv.max_turns,
                self.token_address,
            )

        self.transition(RunState.DONE)
        summary = await self._refresh_summary()
        self.emit(
            DoneEvent(
                token_info=summary.info,
                token_data=summary.data,
                total_models=len(self.model_ids),
            )
        )
        return self.outcome(budget_exhausted)

    async def _request_turn(self, tools_schema: list[dict]):
        cfg = self.inv.config

        def on_thinking(text: str) -> None:
            self.emit(ThinkingEvent(reasoning=text))

        try:
            return await self.inv.router.chat_complete(
                messages=list(self.conversation),
                tools=tools_schema,
                timeout=cfg.llm.timeout_seconds,
                on_thinking=on_thinking,
                flush_chars=cfg.agent.thinking_flush_chars,
            )
        except LLMUnavailableError as exc:
            self.emit(StepEvent(step=AGENT_STEP, status=STATUS_ERROR, detail=str(exc)))
            raise

    # ------------------------------------------------------------------
    # Tool execution
    # ------------------------------------------------------------------

    def resolve_arguments(self, call: ToolCallRequest) -> dict[str, Any]:
        """
        Parse the model's argument text, falling back to the run's target.

        Malformed or non-object JSON becomes ``{"tokenAddress": target}``.
        The target address is always present in the result, and
        ``score_token`` receives the run's model ids when it names none.
        """
        try:
            args = json.loads(call.arguments or "{}")
        except json.JSONDecodeError:
            logger.debug("Malformed arguments for %s: %r", call.name, call.arguments[:200])
            args = None
        if not isinstance(args, dict):
            args = {TOKEN_ADDRESS_ARG: self.token_address}

        if not args.get(TOKEN_ADDRESS_ARG):
            args[TOKEN_ADDRESS_ARG] = self.token_address
        if call.name == SCORE_TOKEN and not args.get(MODEL_IDS_ARG):
            args[MODEL_IDS_ARG] = list(self.model_ids)
        return args

    async def _execute_call(self, call: ToolCallRequest) -> ToolResult:
        tool_name = call.name
        tier = int(self.inv.registry.tier_of(tool_name))
        label = display_name(tool_name)

        self.emit(
            ToolCallEvent(
                tool_id=tool_name, tool_name=label, tier=tier, status=STATUS_RUNNING
            )
        )

        args = self.resolve_arguments(call)
        try:
            result = await self.inv.executor.execute(tool_name, args)
            delta = as_number(result.risk_delta)
            if delta is None:
                raise ToolExecutionError(
                    ErrorCode.BACKEND_ERROR,
                    f"riskDelta is not a number: {result.risk_delta!r}",
                )
            result.risk_delta = delta
        except ToolExecutionError as exc:
            logger.warning("Tool %s failed: %s", tool_name, exc)
            result = ToolResult.failure(f"Tool failed: {exc.message}", exc.code)
        except Exception as exc:
            logger.warning("Tool %s raised: %s", tool_name, exc, exc_info=True)
            result = ToolResult.failure(f"Internal error: {exc}", ErrorCode.TOOL_EXCEPTION)

        # Failed tools carry a zero delta, so they cannot move the score.
        self.risk.apply(tool_name, result.risk_delta, result.flags)

        self.emit(
            ToolCallEvent(
                tool_id=tool_name,
                tool_name=label,
                tier=tier,
                status=STATUS_COMPLETE,
                finding=result.finding,
                severity=result.severity,
                details=list(result.details),
                risk_delta=result.risk_delta,
            )
        )

        self.conversation.append(
            Message(
                role="tool",
                tool_call_id=call.id,
                content=result.to_llm_content(self.risk.score),
            )
        )
        return result

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    async def _refresh_summary(self) -> TokenSummary:
        source = self.inv.summary_source
        if source is None:
            return TokenSummary.placeholder(self.token_address)
        try:
            return await source.fetch(self.token_address)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Summary refresh failed for %s: %s", self.token_address, exc)
            return TokenSummary.placeholder(self.token_address)


# ---------------------------------------------------------------------------
# Streaming entry point
# ---------------------------------------------------------------------------


async def stream_investigation(
    investigator: Investigator,
    token_address: str,
    model_ids: list[str] | None = None,
    skill_id: str | None = None,
) -> AsyncIterator[TimelineEvent]:
    """
    Run an investigation in a background task and yield its events.

    The stream always ends with exactly one ``done`` or ``error`` event,
    unless the consumer stops early: closing this iterator cancels the run.
    """
    channel = EventChannel()

    async def _drive() -> None:
        try:
            await investigator.run(token_address, channel.emit, model_ids, skill_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Investigation of %s failed: %s", token_address, exc)
            channel.emit(ErrorEvent(message=str(exc)))
        finally:
            channel.close()

    task = asyncio.create_task(_drive())
    try:
        async for event in channel:
            yield event
    finally:
        channel.close()
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
