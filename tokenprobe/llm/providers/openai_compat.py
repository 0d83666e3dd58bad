"""
OpenAI-compatible chat-completion provider.

Works with any endpoint that speaks the OpenAI ``/v1/chat/completions`` wire
protocol -- DeepSeek, OpenAI itself, vLLM, LM Studio, etc.

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

import httpx

from tokenprobe.errors import LLMUnavailableError
from tokenprobe.llm.providers.base import Provider
from tokenprobe.llm.sse import decode_stream
from tokenprobe.llm.types import Message, StreamChunk

logger = logging.getLogger(__name__)


class OpenAICompatProvider(Provider):
    """
    Stream-only provider for any OpenAI-API-compatible endpoint.

    Parameters
    ----------
    url:
        Base URL of the API, e.g. ``"https://api.deepseek.com"``.  The
        ``/v1/chat/completions`` path is appended.
    model:
        Model identifier sent in the ``model`` field.
    api_key:
        Bearer token.  Pass ``""`` for unauthenticated local endpoints.
    client:
        Optional pre-built ``httpx.AsyncClient`` (shared connection pool or a
        mock transport).  When omitted a client is created per request.

    Failures are never retried here: a broken connection to the reasoning
    backend ends the run.
    """

    def __init__(
        self,
        url: str = "https://api.deepseek.com",
        model: str = "deepseek-chat",
        api_key: str = "",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._client = client

    @property
    def name(self) -> str:
        return "openai-compat"

    @property
    def model(self) -> str:
        return self._model

    @property
    def endpoint(self) -> str:
        if self._url.endswith("/v1"):
            return f"{self._url}/chat/completions"
        return f"{self._url}/v1/chat/completions"

    async def chat(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        body = self._build_body(messages, tools)
        headers = self._build_headers()

        if self._client is not None:
            async for chunk in self._stream(self._client, body, headers):
                yield chunk
            return

        # Overall deadline is enforced by the caller; no per-phase timeouts.
        async with httpx.AsyncClient(timeout=None) as client:
            async for chunk in self._stream(client, body, headers):
                yield chunk

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_body(
        self,
        messages: list[Message],
        tools: list[dict] | None,
    ) -> dict:
        body: dict = {
            "model": self._model,
            "stream": True,
            "messages": [m.to_wire() for m in messages],
        }
        if tools:
            body["tools"] = tools
            body["tool_choice"] = "auto"
        logger.info(
            "REQUEST: model=%s tools=%d messages=%d api_key=%s...",
            self._model,
            len(tools) if tools else 0,
            len(body["messages"]),
            self._api_key[:6] if self._api_key else "(none)",
        )
        return body

    # ------------------------------------------------------------------
    # Streaming request
    # ------------------------------------------------------------------

    async def _stream(
        self,
        client: httpx.AsyncClient,
        body: dict,
        headers: dict[str, str],
    ) -> AsyncIterator[StreamChunk]:
        try:
            async with client.stream(
                "POST", self.endpoint, json=body, headers=headers
            ) as response:
                if response.status_code >= 400:
                    detail = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMUnavailableError(
                        f"LLM API error ({response.status_code}): {detail[:500]}",
                        status_code=response.status_code,
                    )

                async for chunk in decode_stream(response.aiter_bytes()):
                    yield chunk
        except httpx.TransportError as exc:
            raise LLMUnavailableError(f"LLM API unavailable: {exc}") from exc
