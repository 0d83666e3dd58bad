"""Core types for the LLM subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass
class ToolCallRequest:
    """
    A tool invocation requested by the model.

    *arguments* is the raw argument text exactly as concatenated from the
    stream.  It is expected to be JSON but is not parsed here.
    """

    id: str
    name: str = ""
    arguments: str = ""


@dataclass
class Message:
    """A single message in a conversation."""

    role: str  # "system", "user", "assistant", "tool"
    content: str | None = None
    tool_calls: list[ToolCallRequest] | None = None
    tool_call_id: str | None = None

    def to_wire(self) -> dict:
        m: dict = {"role": self.role, "content": self.content}
        if self.tool_calls:
            m["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": tc.arguments},
                }
                for tc in self.tool_calls
            ]
        if self.tool_call_id:
            m["tool_call_id"] = self.tool_call_id
        return m


# ---------------------------------------------------------------------------
# Decoded stream chunks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContentDelta:
    """A fragment of assistant text."""

    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    """
    An incremental fragment of one tool call.

    *index* is the protocol's per-response slot and is the assembly key;
    *id* is normally only present on the first fragment for a slot.
    """

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass(frozen=True)
class FinishReason:
    """The terminal marker of a turn (``"stop"``, ``"tool_calls"``, ...)."""

    reason: str


StreamChunk = Union[ContentDelta, ToolCallDelta, FinishReason]


@dataclass
class AssembledAssistant:
    """The complete assistant turn after consuming the full stream."""

    content: str
    tool_calls: list[ToolCallRequest]
    finish_reason: str = "stop"
    metadata: dict = field(default_factory=dict)

    def to_message(self) -> Message:
        return Message(
            role="assistant",
            content=self.content or None,
            tool_calls=list(self.tool_calls) or None,
        )
