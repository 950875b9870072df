"""Loop event types."""

from __future__ import annotations

from dataclasses import dataclass, field

from .messages import Message


@dataclass
class LoopResult:
    success: bool
    messages: list[Message] = field(default_factory=list)
    error: str | None = None


@dataclass
class StreamDeltaEvent:
    text: str
    role: str = "assistant"
    type: str = "stream_delta"


@dataclass
class MessageAppendedEvent:
    message: Message
    messages: list[Message] = field(default_factory=list)
    type: str = "message_appended"


@dataclass
class ProgressEvent:
    stage: str
    current: int
    total: int
    type: str = "progress"


@dataclass
class ErrorEvent:
    error: str
    recoverable: bool = False
    type: str = "error"


@dataclass
class DoneEvent:
    result: LoopResult
    type: str = "done"


LoopEvent = StreamDeltaEvent | MessageAppendedEvent | ProgressEvent | ErrorEvent | DoneEvent
