"""OpenTelemetry spans for the agent loop.

Tracing is off until :func:`instrument` is called.  Every span helper is an
async context manager that yields ``None`` while tracing is off, so callers
never need to check whether ``opentelemetry-api`` is installed.

Span names and attributes follow the GenAI semantic conventions::

    invoke_agent <session_id>     one Runner.run() invocation or REPL turn
      chat <model>                issuing one streamed Messages API request
      execute_tool <tool_name>    one tool execution

Runner.iter() opens no agent span of its own; callers draining it directly
wrap the iteration in :func:`agent_span`, as the REPL does.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "necocode") -> None:
    """Start emitting spans through the globally configured TracerProvider.

    Configure the provider first, for example::

        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider

        trace.set_tracer_provider(TracerProvider())
        necocode.instrumentation.instrument()

    Raises:
        ImportError: ``opentelemetry-api`` is missing
            (``pip install necocode[otel]``).
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "Tracing needs opentelemetry-api. "
            "Install it with: pip install necocode[otel]"
        )
    from opentelemetry import trace

    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info("No TracerProvider configured, necocode spans will be dropped")
    else:
        logger.info(f"Tracing enabled with tracer '{tracer_name}'")


def uninstrument() -> None:
    global _tracer
    _tracer = None


@asynccontextmanager
async def _span(name: str, attributes: dict, client: bool = False):
    if _tracer is None:
        yield None
        return
    kwargs = {"attributes": attributes}
    if client:
        from opentelemetry.trace import SpanKind

        kwargs["kind"] = SpanKind.CLIENT
    with _tracer.start_as_current_span(name, **kwargs) as span:
        yield span


def agent_span(session_id: str, model: str):
    return _span(
        f"invoke_agent {session_id}",
        {
            "gen_ai.operation.name": "invoke_agent",
            "gen_ai.conversation.id": session_id,
            "gen_ai.request.model": model,
        },
    )


def completion_span(provider_name: str, model: str):
    return _span(
        f"chat {model}",
        {
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": provider_name,
            "gen_ai.request.model": model,
        },
        client=True,
    )


def tool_span(tool_name: str, call_id: str):
    return _span(
        f"execute_tool {tool_name}",
        {
            "gen_ai.operation.name": "execute_tool",
            "gen_ai.tool.name": tool_name,
            "gen_ai.tool.call.id": call_id,
        },
    )


def record_error(span, exception: BaseException) -> None:
    """Mark *span* as failed with *exception*; a ``None`` span is ignored."""
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute("error.type", type(exception).__qualname__)
