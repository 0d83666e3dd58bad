from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @classmethod
    def parse(cls, value: Any) -> Severity:
        try:
            return cls(value)
        except ValueError:
            return cls.INFO


class Signal(str, Enum):
    SAFE = "SAFE"
    CAUTION = "CAUTION"
    DANGER = "DANGER"


def as_number(value: Any) -> float | None:
    """A finite float from a number or numeric string, else ``None``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def as_str_list(value: Any) -> list[str]:
    """A list of strings; a bare string is one item, anything else is empty."""
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None]
    return []


@dataclass
class ScoreRecord:
    """One scoring model's verdict, as returned by ``score_token``."""

    model_id: str
    model_name: str
    signal: str
    score: float
    confidence: str
    reasoning: str = ""
    risks: list[str] = field(default_factory=list)
    breakdown: dict[str, float] = field(default_factory=dict)
    is_ai_powered: bool | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> ScoreRecord:
        breakdown: dict[str, float] = {}
        raw_breakdown = data.get("breakdown")
        if isinstance(raw_breakdown, dict):
            for key, value in raw_breakdown.items():
                number = as_number(value)
                if number is not None:
                    breakdown[str(key)] = number
        ai_powered = data.get("isAIPowered")
        return cls(
            model_id=str(data.get("modelId", "")),
            model_name=str(data.get("modelName", "")),
            signal=str(data.get("signal", "")),
            score=as_number(data.get("score")) or 0,
            confidence=str(data.get("confidence", "")),
            reasoning=str(data.get("reasoning") or ""),
            risks=as_str_list(data.get("risks")),
            breakdown=breakdown,
            is_ai_powered=ai_powered if isinstance(ai_powered, bool) else None,
        )


@dataclass
class ToolResult:
    finding: str
    severity: Severity = Severity.INFO
    risk_delta: float = 0
    details: list[str] = field(default_factory=list)
    flags: list[str] = field(default_factory=list)
    results: list[ScoreRecord] = field(default_factory=list)
    success: bool = True
    error_code: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> ToolResult:
        """
        Build a result from a tool endpoint's JSON body, filling defaults.

        Raises ``ValueError`` when ``riskDelta`` is present but not a finite
        number (numeric strings are accepted).  Non-object ``results``
        entries are skipped.
        """
        raw_delta = data.get("riskDelta")
        risk_delta = 0.0 if raw_delta is None else as_number(raw_delta)
        if risk_delta is None:
            raise ValueError(f"riskDelta is not a number: {raw_delta!r}")
        raw_results = data.get("results")
        results = raw_results if isinstance(raw_results, list) else []
        return cls(
            finding=str(data.get("finding") or "Analysis complete"),
            severity=Severity.parse(data.get("severity", "info")),
            risk_delta=risk_delta,
            details=as_str_list(data.get("details")),
            flags=as_str_list(data.get("flags")),
            results=[ScoreRecord.from_payload(r) for r in results if isinstance(r, dict)],
        )

    @classmethod
    def failure(cls, message: str, error_code: str | None = None) -> ToolResult:
        """A degraded result: the failure is the finding and the score is untouched."""
        return cls(
            finding=message,
            severity=Severity.WARNING,
            risk_delta=0,
            success=False,
            error_code=error_code,
        )

    def to_llm_content(self, current_score: float) -> str:
        """Serialize the payload the model sees as the tool message."""
        payload: dict[str, Any] = {
            "finding": self.finding,
            "severity": self.severity.value,
            "riskDelta": self.risk_delta,
            "details": self.details,
            "flags": self.flags,
            "currentRiskScore": current_score,
        }
        if not self.success:
            payload["error"] = self.finding
        return json.dumps(payload)


class ErrorCode:
    VALIDATION_ERROR = "validation_error"
    TIMEOUT = "timeout"
    TOOL_EXCEPTION = "tool_exception"
    UNKNOWN_TOOL = "unknown_tool"
    BACKEND_ERROR = "backend_error"
