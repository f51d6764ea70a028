"""Server-Sent Events decoder for the Messages API stream.

:func:`decode_sse` turns the raw byte chunks of a streamed response into
the internal events of :mod:`necocode.streaming`, one event per meaningful
``data:`` frame.  Bad frames are reported in-band as :class:`Fault` events
so one malformed line never ends the stream.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

import httpx

from necocode.errors import ParseError, ServerError, StreamError
from necocode.streaming import (
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    Fault,
    InputJsonDelta,
    InternalEvent,
    MessageDelta,
    MessageStart,
    MessageStop,
    TextContent,
    TextDelta,
    ToolUseContent,
)

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_MARKER = "[DONE]"
_MAX_INDEX = 2**32 - 1

# Failures of the underlying byte source; anything else is a bug.
_SOURCE_ERRORS = (httpx.HTTPError, httpx.StreamError, OSError)


def _index(payload: dict) -> int:
    value = payload.get("index")
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    if value < 0 or value > _MAX_INDEX:
        return 0
    return value


def _content_block(raw: Any) -> TextContent | ToolUseContent:
    if isinstance(raw, dict):
        kind = raw.get("type")
        if kind == "text" and isinstance(raw.get("text"), str):
            return TextContent(text=raw["text"])
        if (
            kind == "tool_use"
            and isinstance(raw.get("id"), str)
            and isinstance(raw.get("name"), str)
        ):
            return ToolUseContent(id=raw["id"], name=raw["name"], input=raw.get("input"))
    return TextContent()


def _delta(raw: Any) -> TextDelta | InputJsonDelta:
    if isinstance(raw, dict):
        kind = raw.get("type")
        if kind == "text_delta" and isinstance(raw.get("text"), str):
            return TextDelta(text=raw["text"])
        if kind == "input_json_delta" and isinstance(raw.get("partial_json"), str):
            return InputJsonDelta(partial_json=raw["partial_json"])
    return TextDelta()


def _error_message(payload: dict) -> str:
    error = payload.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    return "Unknown error"


def parse_event(payload: Any) -> InternalEvent | None:
    """Map one decoded JSON payload to an internal event.

    Returns ``None`` for payloads that carry nothing the agent loop needs,
    including unknown event types.
    """
    if not isinstance(payload, dict):
        return None
    event_type = payload.get("type")
    if not isinstance(event_type, str):
        return None

    if event_type == "message_start":
        return MessageStart()
    if event_type == "content_block_start":
        if "content_block" not in payload:
            return None
        return ContentBlockStart(
            index=_index(payload),
            content_block=_content_block(payload["content_block"]),
        )
    if event_type == "content_block_delta":
        return ContentBlockDelta(index=_index(payload), delta=_delta(payload.get("delta")))
    if event_type == "content_block_stop":
        return ContentBlockStop(index=_index(payload))
    if event_type == "message_delta":
        return MessageDelta()
    if event_type == "message_stop":
        return MessageStop()
    if event_type == "error":
        return Fault(ServerError(_error_message(payload)))
    logger.debug(f"Ignoring unknown SSE event type: {event_type}")
    return None


def parse_line(line: str) -> InternalEvent | None:
    """Decode a single SSE line (without its trailing newline)."""
    line = line.removesuffix("\r")
    if not line.startswith(DATA_PREFIX):
        return None
    data = line[len(DATA_PREFIX):]
    if data == DONE_MARKER:
        return MessageStop()
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        logger.warning(f"Malformed SSE frame: {data[:200]!r}")
        return Fault(ParseError(f"Failed to parse SSE data: {e}"))
    return parse_event(payload)


async def decode_sse(chunks: AsyncIterable[bytes]) -> AsyncIterator[InternalEvent]:
    """Decode a byte-chunk source into internal events.

    A failure raised by *chunks* is yielded as a terminal
    ``Fault(StreamError)`` and ends the generator.  The caller owns the
    source and is responsible for closing it.
    """
    decoder = codecs.getincrementaldecoder("utf-8")()
    buffer = ""
    source = aiter(chunks)

    while True:
        try:
            chunk = await anext(source)
        except StopAsyncIteration:
            break
        except _SOURCE_ERRORS as e:
            logger.error(f"Stream read failed: {e}")
            yield Fault(StreamError(f"Failed to read stream: {e}"))
            return

        try:
            buffer += decoder.decode(chunk)
        except UnicodeDecodeError as e:
            decoder.reset()
            yield Fault(ParseError(f"Invalid UTF-8: {e}"))
            continue

        while True:
            line, sep, rest = buffer.partition("\n")
            if not sep:
                break
            buffer = rest
            event = parse_line(line)
            if event is not None:
                yield event

    try:
        buffer += decoder.decode(b"", final=True)
    except UnicodeDecodeError as e:
        yield Fault(ParseError(f"Invalid UTF-8: {e}"))
    if buffer:
        event = parse_line(buffer)
        if event is not None:
            yield event
