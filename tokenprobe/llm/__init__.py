"""LLM subsystem -- providers, routing, and streaming tool-call assembly."""

from tokenprobe.llm.types import (
    AssembledAssistant,
    ContentDelta,
    FinishReason,
    Message,
    StreamChunk,
    ToolCallDelta,
    ToolCallRequest,
)
from tokenprobe.llm.router import LLMRouter
from tokenprobe.llm.tool_call_assembler import ThinkingBuffer, ToolCallAssembler

__all__ = [
    "AssembledAssistant",
    "ContentDelta",
    "FinishReason",
    "LLMRouter",
    "Message",
    "StreamChunk",
    "ThinkingBuffer",
    "ToolCallAssembler",
    "ToolCallDelta",
    "ToolCallRequest",
]
