"""Unit tests for translating internal events into renderer events."""

from dataclasses import asdict

from necocode.errors import ParseError, ServerError
from necocode.events import (
    ErrorEvent,
    TextDeltaEvent,
    ToolCallStartEvent,
    translate,
)
from necocode.streaming import (
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    Fault,
    InputJsonDelta,
    MessageDelta,
    MessageStart,
    MessageStop,
    TextContent,
    TextDelta,
    ToolUseContent,
)


def test_text_delta():
    event = ContentBlockDelta(index=3, delta=TextDelta(text="Hello"))
    assert translate(event) == TextDeltaEvent(text="Hello")


def test_tool_use_start():
    event = ContentBlockStart(index=1, content_block=ToolUseContent(id="call_1", name="bash", input={}))
    assert translate(event) == ToolCallStartEvent(id="call_1", name="bash")


def test_faults_become_error_events():
    assert translate(Fault(ServerError("Overloaded"))) == ErrorEvent(message="API error: Overloaded")
    assert translate(Fault(ParseError("bad frame"))) == ErrorEvent(message="Parse error: bad frame")


def test_internal_framing_is_not_exposed():
    silent = [
        MessageStart(),
        MessageDelta(),
        MessageStop(),
        ContentBlockStart(index=0, content_block=TextContent(text="")),
        ContentBlockDelta(index=0, delta=InputJsonDelta(partial_json='{"a"')),
        ContentBlockStop(index=0),
    ]
    assert [translate(e) for e in silent] == [None] * len(silent)


def test_events_serialize_without_index_fields():
    assert asdict(ToolCallStartEvent(id="c", name="read")) == {"id": "c", "name": "read"}
    assert asdict(TextDeltaEvent(text="x")) == {"text": "x"}
