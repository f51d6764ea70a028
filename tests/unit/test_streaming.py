"""Unit tests for tool call aggregation."""

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
    ToolCall,
    ToolCallAccumulator,
    ToolUseContent,
)
from necocode.errors import ServerError


def start_tool(index, call_id="c1", name="read", input=""):
    return ContentBlockStart(index=index, content_block=ToolUseContent(id=call_id, name=name, input=input))


def json_delta(index, fragment):
    return ContentBlockDelta(index=index, delta=InputJsonDelta(partial_json=fragment))


class TestToolCallAccumulator:
    def test_single_call_from_fragments(self):
        acc = ToolCallAccumulator()
        acc.process(start_tool(0, "call_1", "read"))
        for fragment in ['{"pa', 'th": "a', '.rs"}']:
            acc.process(json_delta(0, fragment))
        acc.process(ContentBlockStop(index=0))

        assert acc.has_completed_calls()
        assert acc.take_completed() == [ToolCall(id="call_1", name="read", input={"path": "a.rs"})]

    def test_incomplete_call_is_not_reported(self):
        acc = ToolCallAccumulator()
        acc.process(start_tool(0))
        acc.process(json_delta(0, '{"path": "a"}'))

        assert acc.is_active()
        assert not acc.has_completed_calls()

    def test_interleaved_indices_do_not_mix(self):
        acc = ToolCallAccumulator()
        acc.process(start_tool(1, "c1", "read"))
        acc.process(start_tool(2, "c2", "bash"))
        acc.process(json_delta(2, '{"cmd": '))
        acc.process(json_delta(1, '{"path": '))
        acc.process(json_delta(1, '"x.py"}'))
        acc.process(json_delta(2, '"ls"}'))
        acc.process(ContentBlockStop(index=2))
        acc.process(ContentBlockStop(index=1))

        calls = acc.take_completed()
        assert calls == [
            ToolCall(id="c1", name="read", input={"path": "x.py"}),
            ToolCall(id="c2", name="bash", input={"cmd": "ls"}),
        ]

    def test_take_completed_returns_ascending_index_order(self):
        acc = ToolCallAccumulator()
        for index, name in [(3, "c"), (0, "a"), (1, "b")]:
            acc.process(start_tool(index, f"id_{name}", name))
            acc.process(ContentBlockStop(index=index))

        assert [c.name for c in acc.take_completed()] == ["a", "b", "c"]

    def test_drain_on_empty_accumulator(self):
        acc = ToolCallAccumulator()
        assert acc.take_completed() == []
        assert not acc.has_completed_calls()

    def test_second_drain_is_empty(self):
        acc = ToolCallAccumulator()
        acc.process(start_tool(0))
        acc.process(ContentBlockStop(index=0))

        assert len(acc.take_completed()) == 1
        assert acc.take_completed() == []
        assert not acc.has_completed_calls()
        assert not acc.is_active()

    def test_take_completed_discards_unfinished_slots(self):
        acc = ToolCallAccumulator()
        acc.process(start_tool(0, "done"))
        acc.process(ContentBlockStop(index=0))
        acc.process(start_tool(1, "pending"))

        assert [c.id for c in acc.take_completed()] == ["done"]
        assert not acc.is_active()

    def test_seed_from_object_input(self):
        acc = ToolCallAccumulator()
        acc.process(start_tool(0, input={"path": "seeded.txt"}))
        acc.process(ContentBlockStop(index=0))

        assert acc.take_completed()[0].input == {"path": "seeded.txt"}

    def test_empty_object_input_starts_empty(self):
        acc = ToolCallAccumulator()
        acc.process(start_tool(0, input={}))
        acc.process(json_delta(0, '{"cmd": "pwd"}'))
        acc.process(ContentBlockStop(index=0))

        assert acc.take_completed()[0].input == {"cmd": "pwd"}

    def test_malformed_arguments_become_empty_object(self):
        acc = ToolCallAccumulator()
        acc.process(start_tool(0))
        acc.process(json_delta(0, '{"path": '))
        acc.process(ContentBlockStop(index=0))

        assert acc.take_completed() == [ToolCall(id="c1", name="read", input={})]

    def test_non_object_arguments_become_empty_object(self):
        acc = ToolCallAccumulator()
        acc.process(start_tool(0))
        acc.process(json_delta(0, '[1, 2]'))
        acc.process(ContentBlockStop(index=0))

        assert acc.take_completed()[0].input == {}

    def test_text_blocks_are_ignored(self):
        acc = ToolCallAccumulator()
        acc.process(ContentBlockStart(index=0, content_block=TextContent(text="")))
        acc.process(ContentBlockDelta(index=0, delta=TextDelta(text="hi")))
        acc.process(ContentBlockStop(index=0))

        assert not acc.has_completed_calls()
        assert acc.take_completed() == []

    def test_stop_on_padding_slot_is_ignored(self):
        acc = ToolCallAccumulator()
        acc.process(start_tool(1, "c1", "read"))
        acc.process(ContentBlockStop(index=0))

        assert not acc.has_completed_calls()

    def test_deltas_without_slot_are_ignored(self):
        acc = ToolCallAccumulator()
        acc.process(json_delta(5, '{"x": 1}'))
        acc.process(ContentBlockStop(index=5))

        assert not acc.is_active()
        assert acc.take_completed() == []

    def test_text_delta_at_tool_index_is_ignored(self):
        acc = ToolCallAccumulator()
        acc.process(start_tool(0))
        acc.process(ContentBlockDelta(index=0, delta=TextDelta(text="noise")))
        acc.process(json_delta(0, '{"path": "a"}'))
        acc.process(ContentBlockStop(index=0))

        assert acc.take_completed()[0].input == {"path": "a"}

    def test_envelope_events_are_no_ops(self):
        acc = ToolCallAccumulator()
        for event in [MessageStart(), MessageDelta(), MessageStop(), Fault(ServerError("x"))]:
            acc.process(event)
        assert not acc.is_active()

    def test_restart_at_same_index_replaces_slot(self):
        acc = ToolCallAccumulator()
        acc.process(start_tool(0, "old", "read"))
        acc.process(json_delta(0, '{"a": 1}'))
        acc.process(start_tool(0, "new", "bash"))
        acc.process(ContentBlockStop(index=0))

        assert acc.take_completed() == [ToolCall(id="new", name="bash", input={})]

    def test_reset(self):
        acc = ToolCallAccumulator()
        acc.process(start_tool(0))
        acc.process(ContentBlockStop(index=0))
        acc.reset()

        assert not acc.has_completed_calls()
        assert acc.take_completed() == []
