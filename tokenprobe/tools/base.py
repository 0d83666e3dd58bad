from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum


class ToolTier(IntEnum):
    PRIMARY = 1
    DEEP = 2
    COMPOSITE = 3


def normalize_schema(schema: dict) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("additionalProperties", False)
    return s


def display_name(tool_id: str) -> str:
    """``scan_liquidity`` -> ``Scan Liquidity``."""
    return " ".join(w[:1].upper() + w[1:] for w in tool_id.split("_"))


@dataclass(frozen=True)
class ToolSpec:
    """Description of one investigation tool as offered to the model."""

    name: str
    description: str
    parameters: dict = field(default_factory=dict)
    tier: ToolTier = ToolTier.COMPOSITE

    @property
    def display_name(self) -> str:
        return display_name(self.name)

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": normalize_schema(self.parameters),
            },
        }
