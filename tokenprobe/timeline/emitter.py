"""
Delivery and folding of timeline events.

``EventChannel`` is the single-consumer queue between the agent and whatever
transport exposes the timeline.  ``Timeline`` is the consumer-side view that
honours update-by-key.  ``encode_sse`` frames an event for an event-stream
response.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, Callable

from tokenprobe.timeline.events import TERMINAL_EVENT_TYPES, TimelineEvent

logger = logging.getLogger(__name__)

EventSink = Callable[[TimelineEvent], None]


class EventChannel:
    """
    Ordered, single-consumer channel of timeline events.

    ``emit`` never blocks and never raises: once the channel is closed,
    further events are dropped silently.  Iterating the channel yields events
    in emission order and stops after ``close``.
    """

    _CLOSED = object()

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, event: TimelineEvent) -> None:
        if self._closed:
            self.dropped += 1
            return
        self._queue.put_nowait(event)

    __call__ = emit

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(self._CLOSED)

    async def __aiter__(self) -> AsyncIterator[TimelineEvent]:
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item


class Timeline:
    """
    Reduced view of an event stream.

    Keyed events (``step`` by step name, ``tool_call`` by tool id) replace the
    earlier entry with the same key in place; every other event is appended.
    A ``Timeline`` can be passed directly as an emit sink.
    """

    def __init__(self) -> None:
        self.entries: list[TimelineEvent] = []
        self._positions: dict[tuple[str, str], int] = {}

    def emit(self, event: TimelineEvent) -> None:
        key = event.key
        if key is not None and key in self._positions:
            self.entries[self._positions[key]] = event
            return
        if key is not None:
            self._positions[key] = len(self.entries)
        self.entries.append(event)

    __call__ = emit

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def of_type(self, event_type: str) -> list[TimelineEvent]:
        return [e for e in self.entries if e.type == event_type]

    def get(self, event_type: str, key: str) -> TimelineEvent | None:
        pos = self._positions.get((event_type, key))
        return self.entries[pos] if pos is not None else None

    @property
    def terminal(self) -> TimelineEvent | None:
        """The trailing ``done`` or ``error`` event, if the run has ended."""
        if self.entries and self.entries[-1].type in TERMINAL_EVENT_TYPES:
            return self.entries[-1]
        return None


def fan_out(*sinks: EventSink) -> EventSink:
    """Combine several sinks; a failing sink does not starve the others."""

    def emit(event: TimelineEvent) -> None:
        for sink in sinks:
            try:
                sink(event)
            except Exception:
                logger.exception("Timeline sink failed on %s event", event.type)

    return emit


def encode_sse(event: TimelineEvent) -> str:
    """Frame one event as ``data: <json>\\n\\n``."""
    return f"data: {json.dumps(event.to_dict(), default=str)}\n\n"
