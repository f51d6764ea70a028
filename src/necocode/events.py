"""Streaming events emitted to renderers during agent execution."""

from __future__ import annotations

from dataclasses import dataclass

from necocode.streaming import (
    ContentBlockDelta,
    ContentBlockStart,
    Fault,
    InternalEvent,
    TextDelta,
    ToolUseContent,
)


@dataclass
class StreamEvent:
    """Base for all streaming events."""


@dataclass
class MessageStartEvent(StreamEvent):
    """The agent loop is issuing a new request."""


@dataclass
class TextDeltaEvent(StreamEvent):
    """Incremental assistant text."""

    text: str = ""


@dataclass
class ToolCallStartEvent(StreamEvent):
    """The model started a tool call; its arguments are still streaming."""

    id: str = ""
    name: str = ""


@dataclass
class ToolExecutingEvent(StreamEvent):
    name: str = ""


@dataclass
class ToolResultEvent(StreamEvent):
    name: str = ""
    result: str = ""


@dataclass
class ErrorEvent(StreamEvent):
    message: str = ""


@dataclass
class MessageStopEvent(StreamEvent):
    """The response for the current request has been fully drained."""


def translate(event: InternalEvent) -> StreamEvent | None:
    """Project an internal stream event onto the renderer vocabulary.

    Message boundaries and tool execution events are emitted by the
    Runner itself, so only text, tool-call starts and faults map here.
    """
    if isinstance(event, ContentBlockDelta) and isinstance(event.delta, TextDelta):
        return TextDeltaEvent(text=event.delta.text)
    if isinstance(event, ContentBlockStart) and isinstance(event.content_block, ToolUseContent):
        return ToolCallStartEvent(id=event.content_block.id, name=event.content_block.name)
    if isinstance(event, Fault):
        return ErrorEvent(message=str(event.error))
    return None
