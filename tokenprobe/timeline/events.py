"""
Timeline event model.

Every observable transition of an investigation is emitted as one of a closed
set of event kinds.  ``step`` and ``tool_call`` events carry a stable key: a
later event with the same key replaces the earlier one in a consumer's view
instead of appending a new entry.

``to_dict`` produces the wire shape (camelCase keys, ``type`` tag,
millisecond ``timestamp``).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from tokenprobe.types import ScoreRecord, Severity, Signal


def now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Status constants
# ---------------------------------------------------------------------------

STATUS_RUNNING = "running"
STATUS_COMPLETE = "complete"
STATUS_ERROR = "error"


# ---------------------------------------------------------------------------
# Event kinds
# ---------------------------------------------------------------------------


@dataclass(kw_only=True)
class BaseEvent:
    type: ClassVar[str] = ""
    timestamp: int = field(default_factory=now_ms)

    @property
    def key(self) -> tuple[str, str] | None:
        """Identity for update-by-key folding, ``None`` for append-only kinds."""
        return None

    def payload(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, **self.payload(), "timestamp": self.timestamp}


@dataclass(kw_only=True)
class StepEvent(BaseEvent):
    type: ClassVar[str] = "step"
    step: str
    status: str
    detail: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return ("step", self.step)

    def payload(self) -> dict[str, Any]:
        d: dict[str, Any] = {"step": self.step, "status": self.status}
        if self.detail is not None:
            d["detail"] = self.detail
        return d


@dataclass(kw_only=True)
class ThinkingEvent(BaseEvent):
    type: ClassVar[str] = "thinking"
    reasoning: str
    next_tools: list[str] = field(default_factory=list)

    def payload(self) -> dict[str, Any]:
        return {"reasoning": self.reasoning, "nextTools": list(self.next_tools)}


@dataclass(kw_only=True)
class ToolCallEvent(BaseEvent):
    type: ClassVar[str] = "tool_call"
    tool_id: str
    tool_name: str
    tier: int
    status: str
    finding: str | None = None
    severity: Severity | None = None
    details: list[str] | None = None
    risk_delta: float | None = None

    @property
    def key(self) -> tuple[str, str]:
        return ("tool_call", self.tool_id)

    def payload(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "toolId": self.tool_id,
            "toolName": self.tool_name,
            "tier": self.tier,
            "status": self.status,
        }
        if self.finding is not None:
            d["finding"] = self.finding
        if self.severity is not None:
            d["severity"] = self.severity.value
        if self.details is not None:
            d["details"] = list(self.details)
        if self.risk_delta is not None:
            d["riskDelta"] = self.risk_delta
        return d


@dataclass(kw_only=True)
class ConfidenceEvent(BaseEvent):
    type: ClassVar[str] = "confidence"
    risk_score: float
    signal: Signal
    components: dict[str, float] = field(default_factory=dict)

    def payload(self) -> dict[str, Any]:
        return {
            "riskScore": self.risk_score,
            "signal": self.signal.value,
            "components": dict(self.components),
        }


@dataclass(kw_only=True)
class ResultEvent(BaseEvent):
    type: ClassVar[str] = "result"
    record: ScoreRecord

    def payload(self) -> dict[str, Any]:
        r = self.record
        d: dict[str, Any] = {
            "modelId": r.model_id,
            "modelName": r.model_name,
            "signal": r.signal,
            "score": r.score,
            "confidence": r.confidence,
            "reasoning": r.reasoning,
            "risks": list(r.risks),
            "breakdown": dict(r.breakdown),
        }
        if r.is_ai_powered is not None:
            d["isAIPowered"] = r.is_ai_powered
        return d


@dataclass
class TokenInfo:
    address: str
    name: str = ""
    symbol: str = ""
    image_url: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "address": self.address,
            "imageUrl": self.image_url,
        }


@dataclass(kw_only=True)
class DoneEvent(BaseEvent):
    type: ClassVar[str] = "done"
    token_info: TokenInfo
    token_data: dict[str, Any] = field(default_factory=dict)
    total_models: int = 0

    def payload(self) -> dict[str, Any]:
        return {
            "tokenData": self.token_data,
            "tokenInfo": self.token_info.to_dict(),
            "totalModels": self.total_models,
        }


@dataclass(kw_only=True)
class ErrorEvent(BaseEvent):
    type: ClassVar[str] = "error"
    message: str

    def payload(self) -> dict[str, Any]:
        return {"message": self.message}


TimelineEvent = Union[
    StepEvent,
    ThinkingEvent,
    ToolCallEvent,
    ConfidenceEvent,
    ResultEvent,
    DoneEvent,
    ErrorEvent,
]

TERMINAL_EVENT_TYPES = frozenset({DoneEvent.type, ErrorEvent.type})
