import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum

from necocode.agent import Agent
from necocode.errors import ApiError, ServerError, StreamError
from necocode.events import (
    ErrorEvent,
    MessageStartEvent,
    MessageStopEvent,
    StreamEvent,
    ToolExecutingEvent,
    ToolResultEvent,
    translate,
)
from necocode.instrumentation import agent_span, record_error, tool_span
from necocode.message import Message, MessageRole, TextBlock, ToolUseBlock, tool_result
from necocode.session import Session
from necocode.streaming import (
    ContentBlockDelta,
    Fault,
    MessageStop,
    TextDelta,
    ToolCall,
    ToolCallAccumulator,
)

logger = logging.getLogger(__name__)


class LoopState(Enum):
    REQUESTING = "requesting"
    STREAMING = "streaming"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


@dataclass
class RunResult:
    """The result of a single Runner.run() invocation.

    ``aborted`` is set when the server reported an error mid-stream or the
    round limit was hit; the transcript then holds nothing from the
    unfinished turn.
    """

    rounds: int
    last_message: Message | None = None
    aborted: bool = False


class Runner:
    """Drives the request / stream / execute-tools loop for one agent.

    Each round issues one streamed request carrying the full transcript,
    drains it, and either executes the completed tool calls and loops or
    records the final answer and stops.  At most one request is in flight
    at a time.

    ``run()`` drains ``iter()``.  ``iter()`` is the streaming entry point and
    yields :class:`~necocode.events.StreamEvent` values in decode order.

    Request failures (:class:`~necocode.errors.NetworkError`,
    :class:`~necocode.errors.HttpError`) and broken streams
    (:class:`~necocode.errors.StreamError`) propagate to the caller and
    leave the transcript untouched for the failed round.

    Args:
        max_rounds: Maximum number of requests per invocation, ``None`` for
            no limit.  Hitting it yields an ``ErrorEvent`` and stops.
        parallel_tool_calls: Execute a round's tool calls concurrently.
            Results are still recorded in call order.
    """

    def __init__(
        self,
        max_rounds: int | None = 50,
        parallel_tool_calls: bool = False,
    ):
        self.max_rounds = max_rounds
        self.parallel_tool_calls = parallel_tool_calls
        self.transitions: list[LoopState] = []
        self.last_result: RunResult | None = None

    async def run(self, agent: Agent, session: Session) -> RunResult:
        """Run the agent loop until a final response."""
        async with agent_span(session.session_id, agent.model) as span:
            try:
                async for _event in self.iter(agent, session):
                    pass
            except ApiError as e:
                record_error(span, e)
                raise
        if self.last_result is None:
            raise RuntimeError("iter() ended without producing a result")
        return self.last_result

    async def iter(self, agent: Agent, session: Session) -> AsyncIterator[StreamEvent]:
        """Run the agent loop, yielding events as execution proceeds."""
        self.transitions = []
        self.last_result = None
        acc = ToolCallAccumulator()
        rounds = 0

        while True:
            if self.max_rounds is not None and rounds >= self.max_rounds:
                logger.warning(f"Stopping after {rounds} rounds")
                yield ErrorEvent(message=f"Maximum rounds ({self.max_rounds}) reached, stopping")
                self._finish(RunResult(rounds=rounds, aborted=True))
                return
            rounds += 1

            self._enter(LoopState.REQUESTING)
            acc.reset()
            current_text = ""
            aborted = False
            yield MessageStartEvent()

            async with agent.provider.stream(
                model=agent.model,
                max_tokens=agent.max_tokens,
                system=agent.system_prompt,
                messages=[m.model_dump() for m in session.transcript],
                tools=agent.tool_schemas,
            ) as events:
                self._enter(LoopState.STREAMING)
                async for event in events:
                    if isinstance(event, Fault) and isinstance(event.error, StreamError):
                        raise event.error
                    acc.process(event)
                    if isinstance(event, ContentBlockDelta) and isinstance(event.delta, TextDelta):
                        current_text += event.delta.text
                    translated = translate(event)
                    if translated is not None:
                        yield translated
                    if isinstance(event, Fault) and isinstance(event.error, ServerError):
                        logger.error(f"Server reported an error: {event.error.message}")
                        aborted = True
                        break
                    if isinstance(event, MessageStop):
                        break
                else:
                    logger.warning("Stream ended without message_stop")

            if aborted:
                self._enter(LoopState.DONE)
                self._finish(RunResult(rounds=rounds, aborted=True))
                return

            yield MessageStopEvent()

            if acc.has_completed_calls():
                calls = acc.take_completed()
                blocks: list = [TextBlock(text=current_text)] if current_text else []
                blocks.extend(ToolUseBlock(id=c.id, name=c.name, input=c.input) for c in calls)
                session.transcript.append(Message(role=MessageRole.ASSISTANT, content=blocks))

                self._enter(LoopState.EXECUTING_TOOLS)
                async for event in self._execute_tools(calls, agent, session):
                    yield event
                continue

            last_message = None
            if current_text:
                last_message = Message(
                    role=MessageRole.ASSISTANT,
                    content=[TextBlock(text=current_text)],
                )
                session.transcript.append(last_message)
            else:
                logger.info("Empty response with no tool calls")
            self._enter(LoopState.DONE)
            self._finish(RunResult(rounds=rounds, last_message=last_message))
            return

    def _enter(self, state: LoopState) -> None:
        logger.debug(f"Agent loop -> {state.value}")
        self.transitions.append(state)

    def _finish(self, result: RunResult) -> None:
        if not self.transitions or self.transitions[-1] is not LoopState.DONE:
            self._enter(LoopState.DONE)
        self.last_result = result

    # ------------------------------------------------------------------
    # Tool execution
    # ------------------------------------------------------------------

    async def _execute_tools(
        self, calls: list[ToolCall], agent: Agent, session: Session,
    ) -> AsyncIterator[StreamEvent]:
        if self.parallel_tool_calls and len(calls) > 1:
            for tc in calls:
                yield ToolExecutingEvent(name=tc.name)
            outputs = await asyncio.gather(
                *(self._execute_one(tc, agent) for tc in calls)
            )
            for tc, output in zip(calls, outputs):
                yield ToolResultEvent(name=tc.name, result=output)
                session.transcript.append(tool_result(tc.id, output))
            return

        for tc in calls:
            yield ToolExecutingEvent(name=tc.name)
            output = await self._execute_one(tc, agent)
            yield ToolResultEvent(name=tc.name, result=output)
            session.transcript.append(tool_result(tc.id, output))

    async def _execute_one(self, tc: ToolCall, agent: Agent) -> str:
        async with tool_span(tc.name, tc.id) as span:
            try:
                return await agent.tool_registry.execute(tc.name, tc.input)
            except Exception as e:
                logger.error(f"Tool {tc.name} raised: {e}")
                record_error(span, e)
                return f"error: {e}"
