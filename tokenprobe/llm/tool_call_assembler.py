"""
Assembles streaming tool-call fragments into ``ToolCallRequest`` objects.

Design goals:
  - Accumulate ``ToolCallDelta`` fragments keyed by the protocol ``index``
    (not the call id, which normally arrives only once).
  - The first fragment for an index that carries an id allocates the request;
    fragments that arrive for an index before its id are discarded.
  - Argument text is concatenated verbatim in arrival order.  Whether it
    parses as JSON is the caller's concern.
"""

from __future__ import annotations

from tokenprobe.llm.types import ToolCallDelta, ToolCallRequest

DEFAULT_FLUSH_CHARS = 80


class ToolCallAssembler:
    """Buffers tool-call fragments for one assistant turn."""

    def __init__(self) -> None:
        self._calls: dict[int, ToolCallRequest] = {}
        self.discarded = 0

    def feed(self, delta: ToolCallDelta) -> ToolCallRequest | None:
        """
        Feed one fragment.

        Returns the request the fragment was applied to, or ``None`` if it
        was discarded because no request exists yet for its index.
        """
        call = self._calls.get(delta.index)

        if call is None:
            if not delta.id:
                self.discarded += 1
                return None
            call = ToolCallRequest(
                id=delta.id,
                name=delta.name or "",
                arguments=delta.arguments or "",
            )
            self._calls[delta.index] = call
            return call

        if delta.arguments:
            call.arguments += delta.arguments
        if delta.name and not call.name:
            call.name = delta.name
        return call

    def finish(self) -> list[ToolCallRequest]:
        """Return every request of the turn in index order."""
        return [self._calls[idx] for idx in sorted(self._calls)]

    def __len__(self) -> int:
        return len(self._calls)


class ThinkingBuffer:
    """
    Accumulates assistant text and releases it in readable pieces.

    Text is released once the buffer grows past *flush_chars* or contains a
    newline, so the timeline stays responsive without an event per token.
    """

    def __init__(self, flush_chars: int = DEFAULT_FLUSH_CHARS) -> None:
        self.flush_chars = flush_chars
        self._buf = ""

    def feed(self, text: str) -> str | None:
        self._buf += text
        if len(self._buf) > self.flush_chars or "\n" in self._buf:
            return self.flush()
        return None

    def flush(self) -> str | None:
        """Release any non-blank remainder and reset."""
        text, self._buf = self._buf.strip(), ""
        return text or None
