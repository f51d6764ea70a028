"""Streaming primitives for provider responses.

The SSE decoder yields the internal events defined here.  The
:class:`ToolCallAccumulator` reassembles tool calls whose arguments
arrive as partial JSON across many ``content_block_delta`` events.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Union

from necocode.errors import ApiError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Content blocks and deltas as they appear on the wire
# ---------------------------------------------------------------------------

@dataclass
class TextContent:
    text: str = ""


@dataclass
class ToolUseContent:
    id: str
    name: str
    input: Any = None


@dataclass
class TextDelta:
    text: str = ""


@dataclass
class InputJsonDelta:
    partial_json: str = ""


# ---------------------------------------------------------------------------
# Internal events
# ---------------------------------------------------------------------------

@dataclass
class MessageStart:
    pass


@dataclass
class ContentBlockStart:
    index: int
    content_block: TextContent | ToolUseContent


@dataclass
class ContentBlockDelta:
    index: int
    delta: TextDelta | InputJsonDelta


@dataclass
class ContentBlockStop:
    index: int


@dataclass
class MessageDelta:
    pass


@dataclass
class MessageStop:
    pass


@dataclass
class Fault:
    """An error surfaced in-band by the decoder."""

    error: ApiError


InternalEvent = Union[
    MessageStart,
    ContentBlockStart,
    ContentBlockDelta,
    ContentBlockStop,
    MessageDelta,
    MessageStop,
    Fault,
]


# ---------------------------------------------------------------------------
# Tool call aggregation
# ---------------------------------------------------------------------------

@dataclass
class PendingToolCall:
    """A tool call whose arguments are still streaming in."""

    id: str = ""
    name: str = ""
    argument_buffer: str = ""
    completed: bool = False


@dataclass
class ToolCall:
    """A resolved tool call ready for execution and the transcript."""

    id: str
    name: str
    input: dict = field(default_factory=dict)


def _seed_arguments(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict) and raw:
        return json.dumps(raw)
    return ""


def _parse_arguments(call: PendingToolCall) -> dict:
    if not call.argument_buffer.strip():
        return {}
    try:
        value = json.loads(call.argument_buffer)
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON arguments for {call.name} ({call.id}): {e}")
        return {}
    if not isinstance(value, dict):
        logger.warning(f"Arguments for {call.name} ({call.id}) are not an object")
        return {}
    return value


class ToolCallAccumulator:
    """Assembles complete tool calls from streaming events.

    Slots are indexed by content-block index and only meaningful within a
    single streamed response; :meth:`take_completed` clears them.
    """

    def __init__(self) -> None:
        # None marks padding for indices that never started a tool call
        self._slots: list[PendingToolCall | None] = []

    def _slot(self, index: int) -> PendingToolCall | None:
        if index >= len(self._slots):
            return None
        return self._slots[index]

    def process(self, event: InternalEvent) -> None:
        if isinstance(event, ContentBlockStart):
            block = event.content_block
            if not isinstance(block, ToolUseContent):
                return
            while len(self._slots) <= event.index:
                self._slots.append(None)
            self._slots[event.index] = PendingToolCall(
                id=block.id,
                name=block.name,
                argument_buffer=_seed_arguments(block.input),
            )
        elif isinstance(event, ContentBlockDelta):
            slot = self._slot(event.index)
            if slot is not None and isinstance(event.delta, InputJsonDelta):
                slot.argument_buffer += event.delta.partial_json
        elif isinstance(event, ContentBlockStop):
            slot = self._slot(event.index)
            if slot is not None:
                slot.completed = True

    def has_completed_calls(self) -> bool:
        return any(slot is not None and slot.completed for slot in self._slots)

    def is_active(self) -> bool:
        return bool(self._slots)

    def take_completed(self) -> list[ToolCall]:
        """Return completed tool calls in index order and clear every slot."""
        completed = [
            ToolCall(id=slot.id, name=slot.name, input=_parse_arguments(slot))
            for slot in self._slots
            if slot is not None and slot.completed
        ]
        self._slots.clear()
        return completed

    def reset(self) -> None:
        self._slots.clear()
