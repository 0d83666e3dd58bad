"""
LLM Router -- manages providers and drains one streamed assistant turn.

The router is the entry point the agent uses when it needs a model turn.  It:

  1. Streams typed chunks from the active provider.
  2. Feeds tool-call fragments into a ``ToolCallAssembler`` and assistant
     text into a ``ThinkingBuffer`` (released through *on_thinking*).
  3. Produces an ``AssembledAssistant`` once the stream ends.

The whole exchange, request plus drain, runs under a single deadline.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import Callable

from tokenprobe.errors import LLMUnavailableError
from tokenprobe.llm.providers.base import Provider
from tokenprobe.llm.tool_call_assembler import (
    DEFAULT_FLUSH_CHARS,
    ThinkingBuffer,
    ToolCallAssembler,
)
from tokenprobe.llm.types import (
    AssembledAssistant,
    ContentDelta,
    FinishReason,
    Message,
    ToolCallDelta,
)

logger = logging.getLogger(__name__)

# A stream that ends without a finish reason is treated as a completed answer.
DEFAULT_FINISH_REASON = "stop"


class LLMRouter:
    """Routes chat requests to a named provider and assembles the response."""

    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}
        self._active: str | None = None

    # ------------------------------------------------------------------
    # Provider management
    # ------------------------------------------------------------------

    def register_provider(self, name: str, provider: Provider) -> None:
        """Register a provider under *name*.  Overwrites any existing entry."""
        self._providers[name] = provider
        if self._active is None:
            self._active = name

    def set_active(self, name: str) -> None:
        """
        Switch the active provider.

        Raises ``KeyError`` if *name* has not been registered.
        """
        if name not in self._providers:
            raise KeyError(
                f"Unknown provider {name!r}. "
                f"Registered: {list(self._providers)}"
            )
        self._active = name

    @property
    def active_name(self) -> str | None:
        return self._active

    @property
    def active_provider(self) -> Provider:
        """
        Return the active ``Provider`` instance.

        Raises ``RuntimeError`` if no provider is active.
        """
        if self._active is None or self._active not in self._providers:
            raise RuntimeError("No active LLM provider")
        return self._providers[self._active]

    # ------------------------------------------------------------------
    # Turn assembly
    # ------------------------------------------------------------------

    async def chat_complete(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        timeout: float | None = 120.0,
        on_thinking: Callable[[str], None] | None = None,
        flush_chars: int = DEFAULT_FLUSH_CHARS,
    ) -> AssembledAssistant:
        """
        Consume one full streamed turn and return an ``AssembledAssistant``.

        Raises ``LLMUnavailableError`` if the provider fails or the turn does
        not finish within *timeout* seconds.
        """
        try:
            return await asyncio.wait_for(
                self._drain(messages, tools, on_thinking, flush_chars),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise LLMUnavailableError(
                f"LLM request timed out after {timeout}s"
            ) from exc

    async def _drain(
        self,
        messages: list[Message],
        tools: list[dict] | None,
        on_thinking: Callable[[str], None] | None,
        flush_chars: int,
    ) -> AssembledAssistant:
        provider = self.active_provider
        assembler = ToolCallAssembler()
        thinking = ThinkingBuffer(flush_chars)
        content_parts: list[str] = []
        finish_reason: str | None = None

        def release(text: str | None) -> None:
            if text and on_thinking is not None:
                on_thinking(text)

        async with aclosing(provider.chat(messages, tools=tools)) as stream:
            async for chunk in stream:
                if isinstance(chunk, ContentDelta):
                    content_parts.append(chunk.text)
                    release(thinking.feed(chunk.text))
                elif isinstance(chunk, ToolCallDelta):
                    # Reasoning that precedes a tool call is released first.
                    release(thinking.flush())
                    assembler.feed(chunk)
                elif isinstance(chunk, FinishReason):
                    finish_reason = chunk.reason

        release(thinking.flush())

        if assembler.discarded:
            logger.debug(
                "Discarded %d tool-call fragment(s) with no call id",
                assembler.discarded,
            )

        metadata: dict = {}
        if self._active:
            metadata["provider"] = self._active
        return AssembledAssistant(
            content="".join(content_parts),
            tool_calls=assembler.finish(),
            finish_reason=finish_reason or DEFAULT_FINISH_REASON,
            metadata=metadata,
        )
