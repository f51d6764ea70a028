import copy
import json
from contextlib import aclosing, asynccontextmanager

import pytest

from necocode.agent import Agent
from necocode.provider import ModelProvider
from necocode.sse import decode_sse
from necocode.tools import tool


# ---------------------------------------------------------------------------
# SSE payload builders (mirror the Messages API stream shape)
# ---------------------------------------------------------------------------

def frame(payload) -> bytes:
    """Encode one ``data:`` frame; strings are sent verbatim."""
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {data}\n\n".encode()


def text_events(text: str, index: int = 0, pieces: int = 1) -> list[dict]:
    step = max(1, -(-len(text) // pieces)) if text else 1
    deltas = [text[i:i + step] for i in range(0, len(text), step)]
    return [
        {"type": "content_block_start", "index": index,
         "content_block": {"type": "text", "text": ""}},
        *[
            {"type": "content_block_delta", "index": index,
             "delta": {"type": "text_delta", "text": d}}
            for d in deltas
        ],
        {"type": "content_block_stop", "index": index},
    ]


def tool_events(name: str, args: dict, call_id: str, index: int, pieces: int = 2) -> list[dict]:
    raw = json.dumps(args)
    step = max(1, -(-len(raw) // pieces))
    return [
        {"type": "content_block_start", "index": index,
         "content_block": {"type": "tool_use", "id": call_id, "name": name, "input": {}}},
        *[
            {"type": "content_block_delta", "index": index,
             "delta": {"type": "input_json_delta", "partial_json": raw[i:i + step]}}
            for i in range(0, len(raw), step)
        ],
        {"type": "content_block_stop", "index": index},
    ]


def envelope(*events: dict) -> list[bytes]:
    """Wrap content events in message_start ... message_stop, then [DONE]."""
    payloads = [
        {"type": "message_start", "message": {"id": "msg_1", "role": "assistant"}},
        *events,
        {"type": "message_delta", "delta": {"stop_reason": "end_turn"}},
        {"type": "message_stop"},
    ]
    return [frame(p) for p in payloads] + [frame("[DONE]")]


def make_text_response(text: str) -> list[bytes]:
    """Fake streamed response with text only (no tool calls)."""
    return envelope(*text_events(text, pieces=3))


def make_tool_call_response(
    name: str,
    args: dict,
    call_id: str = "call_1",
    content: str | None = None,
) -> list[bytes]:
    """Fake streamed response containing a single tool call."""
    return make_multi_tool_call_response([(name, args, call_id)], content=content)


def make_multi_tool_call_response(
    calls: list[tuple[str, dict, str]],
    content: str | None = None,
) -> list[bytes]:
    """Fake streamed response containing several tool calls.

    Each item in *calls* is ``(tool_name, args_dict, call_id)``.
    """
    events = []
    offset = 0
    if content:
        events.extend(text_events(content, index=0))
        offset = 1
    for i, (name, args, call_id) in enumerate(calls):
        events.extend(tool_events(name, args, call_id, index=i + offset))
    return envelope(*events)


async def iter_chunks(chunks):
    for chunk in chunks:
        if isinstance(chunk, BaseException):
            raise chunk
        yield chunk


# ---------------------------------------------------------------------------
# Mock provider
# ---------------------------------------------------------------------------

class MockProvider(ModelProvider):
    """Provider that replays pre-queued SSE byte chunks. No network calls.

    Each queued response is a list of byte chunks (exceptions in the list
    are raised by the byte source) or an exception raised when the
    request is issued.
    """

    name = "mock"

    def __init__(self):
        self.responses: list = []
        self.call_log: list[dict] = []

    @asynccontextmanager
    async def stream(self, *, model, max_tokens, system, messages, tools=None):
        self.call_log.append({
            "model": model,
            "max_tokens": max_tokens,
            "system": system,
            "messages": copy.deepcopy(messages),
            "tools": tools,
        })
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        async with aclosing(decode_sse(iter_chunks(response))) as events:
            yield events


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@tool
def echo(text: str):
    """Echo text back."""
    return text


@tool
def fail(reason: str):
    """Always raises."""
    raise RuntimeError(reason)


@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def make_agent(mock_provider):
    """Factory fixture to build agents with the mock provider."""
    def _make(tools=None, capabilities=None, system_prompt="You are helpful.", provider=None):
        return Agent(
            model="mock-model",
            provider=provider or mock_provider,
            system_prompt=system_prompt,
            tools=[echo, fail] if tools is None else tools,
            capabilities=capabilities or [],
        )
    return _make
