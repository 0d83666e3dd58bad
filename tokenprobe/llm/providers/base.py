"""Abstract base class for LLM providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from tokenprobe.llm.types import Message, StreamChunk


class Provider(ABC):
    """
    A provider encapsulates access to a single streaming LLM endpoint.

    Implementations raise ``LLMUnavailableError`` for anything that prevents
    the stream from being read: transport failures, non-success statuses.
    """

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Start a streamed chat completion and yield decoded chunks."""
        ...
        # Make the method an async generator so sub-classes can ``yield``.
        if False:  # pragma: no cover
            yield  # type: ignore[misc]

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g. ``"openai-compat"``)."""
        ...

    @property
    def model(self) -> str:
        return ""
