"""
Server-Sent Events decoding for streamed chat completions.

Each SSE event has the form::

    data: {json}\\n\\n

and the sentinel ``data: [DONE]`` terminates the stream.  Anything else on the
wire (comments, keep-alives, ``event:`` lines) is protocol noise and is
dropped, as is any frame whose payload is not valid JSON.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import AsyncIterable, AsyncIterator

from tokenprobe.llm.types import (
    ContentDelta,
    FinishReason,
    StreamChunk,
    ToolCallDelta,
)

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


async def iter_sse_data(byte_chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """
    Yield the payload of every ``data:`` line in a byte stream.

    Lines are only interpreted once their ``\\n`` terminator has arrived, so a
    frame split across network reads is reassembled first.  Multi-byte UTF-8
    sequences split across reads are handled by an incremental decoder.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""

    async for raw in byte_chunks:
        buffer += decoder.decode(raw)
        while "\n" in buffer:
            line, buffer = buffer.split("\n", 1)
            payload = _line_payload(line)
            if payload is None:
                continue
            if payload == DONE_SENTINEL:
                return
            yield payload

    # Stream ended: whatever is left is the last (unterminated) line.
    buffer += decoder.decode(b"", final=True)
    payload = _line_payload(buffer)
    if payload is not None and payload != DONE_SENTINEL:
        yield payload


def _line_payload(line: str) -> str | None:
    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return None
    return line[len(DATA_PREFIX):].strip()


def _mapping(value: object) -> dict:
    return value if isinstance(value, dict) else {}


def _text(value: object) -> str | None:
    """Non-empty strings pass through; anything else counts as absent."""
    return value if isinstance(value, str) and value else None


def decode_frame(data: dict) -> list[StreamChunk]:
    """
    Convert one parsed frame into typed chunks.

    Order within a frame is content, then tool-call fragments, then the
    finish reason.  Unknown fields are ignored.
    """
    choices = data.get("choices") if isinstance(data, dict) else None
    if not choices or not isinstance(choices, list):
        return []

    choice = _mapping(choices[0])
    delta = _mapping(choice.get("delta"))
    chunks: list[StreamChunk] = []

    content = delta.get("content")
    if isinstance(content, str) and content:
        chunks.append(ContentDelta(text=content))

    raw_calls = delta.get("tool_calls")
    for raw_tc in raw_calls if isinstance(raw_calls, list) else []:
        if not isinstance(raw_tc, dict):
            continue
        index = raw_tc.get("index")
        func = _mapping(raw_tc.get("function"))
        chunks.append(
            ToolCallDelta(
                index=index if isinstance(index, int) and not isinstance(index, bool) else 0,
                id=_text(raw_tc.get("id")),
                name=_text(func.get("name")),
                arguments=_text(func.get("arguments")),
            )
        )

    finish_reason = _text(choice.get("finish_reason"))
    if finish_reason:
        chunks.append(FinishReason(reason=finish_reason))

    return chunks


async def decode_stream(
    byte_chunks: AsyncIterable[bytes],
) -> AsyncIterator[StreamChunk]:
    """Decode a raw completion byte stream into ``StreamChunk`` objects."""
    async for payload in iter_sse_data(byte_chunks):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Dropping malformed SSE frame: %s", payload[:200])
            continue
        for chunk in decode_frame(data):
            yield chunk
