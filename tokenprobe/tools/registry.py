from __future__ import annotations

from typing import Iterable

from tokenprobe.tools.base import ToolSpec, ToolTier


class ToolRegistry:
    def __init__(self, tools: Iterable[ToolSpec] = ()):
        self._tools: dict[str, ToolSpec] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolSpec, *, overwrite: bool = False) -> None:
        if tool.name in self._tools and not overwrite:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def require(self, name: str) -> ToolSpec:
        t = self.get(name)
        if not t:
            raise KeyError(name)
        return t

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def list(self, tier: ToolTier | None = None) -> list[ToolSpec]:
        """Registered tools in registration order, optionally for one tier."""
        tools = list(self._tools.values())
        if tier is None:
            return tools
        return [t for t in tools if t.tier == tier]

    def tier_of(self, name: str) -> ToolTier:
        """Tier of *name*; tools outside the catalogue count as composite."""
        t = self.get(name)
        return t.tier if t else ToolTier.COMPOSITE

    def to_openai_schema(self) -> list[dict]:
        return [t.to_openai_schema() for t in self.list()]
