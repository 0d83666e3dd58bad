"""Investigation timeline: event kinds, delivery channel, and keyed reduction."""

from tokenprobe.timeline.emitter import (
    EventChannel,
    EventSink,
    Timeline,
    encode_sse,
    fan_out,
)
from tokenprobe.timeline.events import (
    STATUS_COMPLETE,
    STATUS_ERROR,
    STATUS_RUNNING,
    ConfidenceEvent,
    DoneEvent,
    ErrorEvent,
    ResultEvent,
    StepEvent,
    ThinkingEvent,
    TimelineEvent,
    TokenInfo,
    ToolCallEvent,
)

__all__ = [
    "ConfidenceEvent",
    "DoneEvent",
    "ErrorEvent",
    "EventChannel",
    "EventSink",
    "ResultEvent",
    "STATUS_COMPLETE",
    "STATUS_ERROR",
    "STATUS_RUNNING",
    "StepEvent",
    "ThinkingEvent",
    "Timeline",
    "TimelineEvent",
    "TokenInfo",
    "ToolCallEvent",
    "encode_sse",
    "fan_out",
]
