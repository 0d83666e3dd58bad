"""Running risk score for one investigation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from tokenprobe.types import Signal

MIN_SCORE = 0.0
MAX_SCORE = 100.0
NEUTRAL_SCORE = 50.0


@dataclass(frozen=True)
class SignalThresholds:
    """Cut points mapping a score to a ``Signal`` (inclusive upper bounds)."""

    safe_max: float = 33
    caution_max: float = 66

    def __post_init__(self) -> None:
        if not self.safe_max < self.caution_max:
            raise ValueError(
                f"safe_max ({self.safe_max}) must be below caution_max ({self.caution_max})"
            )

    def classify(self, score: float) -> Signal:
        if score <= self.safe_max:
            return Signal.SAFE
        if score <= self.caution_max:
            return Signal.CAUTION
        return Signal.DANGER


@dataclass
class RiskState:
    score: float = NEUTRAL_SCORE
    components: dict[str, float] = field(default_factory=dict)
    flags: set[str] = field(default_factory=set)
    tools_run: list[str] = field(default_factory=list)


def clamp(value: float, low: float = MIN_SCORE, high: float = MAX_SCORE) -> float:
    return max(low, min(high, value))


class RiskAggregator:
    """
    Folds per-tool risk deltas into a single clamped score.

    The aggregator does not know whether a tool failed; callers apply a zero
    delta for failures (or skip ``apply`` entirely).
    """

    def __init__(
        self,
        thresholds: SignalThresholds | None = None,
        initial_score: float = NEUTRAL_SCORE,
    ) -> None:
        self.thresholds = thresholds or SignalThresholds()
        self.state = RiskState(score=clamp(initial_score))

    @property
    def score(self) -> float:
        return self.state.score

    def apply(self, tool_name: str, delta: float, flags: Iterable[str] = ()) -> float:
        """Apply one tool's contribution and return the new score."""
        self.state.score = clamp(self.state.score + delta)
        self.state.components[tool_name] = delta
        self.state.flags.update(flags)
        self.state.tools_run.append(tool_name)
        return self.state.score

    def signal(self) -> Signal:
        return self.thresholds.classify(self.state.score)

    def snapshot(self) -> dict[str, float]:
        """A copy of the per-tool component map."""
        return dict(self.state.components)
