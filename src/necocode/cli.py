"""Command-line entry point: interactive REPL or a single message."""

import argparse
import asyncio
import logging
import os
import sys
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, TextIO

from necocode.agent import Agent
from necocode.config import ProviderRegistry
from necocode.errors import ApiError, ConfigError
from necocode.events import (
    ErrorEvent,
    MessageStartEvent,
    MessageStopEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolCallStartEvent,
    ToolExecutingEvent,
    ToolResultEvent,
)
from necocode.instrumentation import agent_span, record_error
from necocode.provider import AnthropicProvider
from necocode.runner import Runner
from necocode.session import Session

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s:%(name)s:%(levelname)s:%(message)s'
RESULT_PREVIEW_LINES = 10


def setup_logging(log_file: str | None = "neco.log", level: int = logging.INFO) -> None:
    """Send log records to *log_file*, keeping the terminal for the conversation."""
    handlers: list[logging.Handler] = (
        [logging.FileHandler(log_file)] if log_file else [logging.NullHandler()]
    )
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


class CommandKind(Enum):
    QUIT = "quit"
    CLEAR = "clear"
    MESSAGE = "message"


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    text: str = ""


def parse_input(line: str) -> Command:
    line = line.strip()
    if line in ("/q", "exit"):
        return Command(CommandKind.QUIT)
    if line == "/c":
        return Command(CommandKind.CLEAR)
    return Command(CommandKind.MESSAGE, line)


class ConsoleRenderer:
    """Prints stream events as plain text."""

    def __init__(self, out: TextIO | None = None):
        self.out = out or sys.stdout

    def render(self, event: StreamEvent) -> None:
        if isinstance(event, TextDeltaEvent):
            self.out.write(event.text)
        elif isinstance(event, ToolCallStartEvent):
            self.out.write(f"\n[tool call] {event.name} ({event.id})\n")
        elif isinstance(event, ToolExecutingEvent):
            self.out.write(f"[running] {event.name}\n")
        elif isinstance(event, ToolResultEvent):
            lines = event.result.splitlines()
            preview = "\n".join(f"  | {line}" for line in lines[:RESULT_PREVIEW_LINES])
            if len(lines) > RESULT_PREVIEW_LINES:
                preview += f"\n  | ... ({len(lines) - RESULT_PREVIEW_LINES} more lines)"
            self.out.write(preview + "\n")
        elif isinstance(event, ErrorEvent):
            self.out.write(f"\n[error] {event.message}\n")
        elif isinstance(event, MessageStopEvent):
            self.out.write("\n")
        elif isinstance(event, MessageStartEvent):
            pass
        self.out.flush()


class Repl:
    """Reads user lines and runs the agent loop for each message.

    Args:
        agent: The agent to run.
        runner: Loop driver; a default Runner when omitted.
        render: Callback receiving every stream event.
    """

    def __init__(
        self,
        agent: Agent,
        runner: Runner | None = None,
        render: Callable[[StreamEvent], None] | None = None,
    ):
        self.agent = agent
        self.runner = runner or Runner()
        self.render = render or ConsoleRenderer().render
        self.session = Session(session_id=str(uuid.uuid4()))

    async def send(self, text: str) -> bool:
        """Append a user message and run the agent loop once.

        Returns False when the turn did not complete: loop failures are
        reported as a single ``ErrorEvent``, and server errors or the round
        limit abort the turn. The transcript keeps whatever was recorded
        before the failure.
        """
        self.session.add_user_message(text)
        async with agent_span(self.session.session_id, self.agent.model) as span:
            try:
                async for event in self.runner.iter(self.agent, self.session):
                    self.render(event)
            except ApiError as e:
                logger.error(f"Agent loop failed: {e}")
                record_error(span, e)
                self.render(ErrorEvent(message=str(e)))
                return False
        result = self.runner.last_result
        return result is not None and not result.aborted

    async def handle(self, command: Command) -> bool:
        """Handle one command; returns False when the REPL should exit."""
        if command.kind is CommandKind.QUIT:
            return False
        if command.kind is CommandKind.CLEAR:
            self.session.clear()
            self.render(ErrorEvent(message="Conversation cleared"))
            return True
        await self.send(command.text)
        return True

    async def run_interactive(self, read_line: Callable[[], str | None]) -> None:
        while True:
            line = await asyncio.to_thread(read_line)
            if line is None:
                break
            if not line.strip():
                continue
            if not await self.handle(parse_input(line)):
                break


def _read_line() -> str | None:
    try:
        return input("> ")
    except EOFError:
        return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="neco", description="Streaming coding assistant")
    parser.add_argument("-m", "--model", help="model as 'provider/model' or a bare model name")
    parser.add_argument("-p", "--prompt", help="send a single message and exit")
    parser.add_argument("--max-rounds", type=int, default=50,
                        help="maximum requests per message (0 for no limit)")
    parser.add_argument("--parallel-tools", action="store_true",
                        help="run independent tool calls concurrently")
    parser.add_argument("--log-file", default="neco.log", help="log file path")
    return parser


async def _main(args: argparse.Namespace) -> int:
    try:
        settings = ProviderRegistry().resolve(args.model)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    logger.info(f"Using {settings.name}/{settings.model} at {settings.base_url} "
                f"(key {settings.masked_api_key()})")

    provider = AnthropicProvider(settings)
    agent = Agent.coding_assistant(
        model=settings.model, provider=provider, cwd=os.getcwd(),
        max_tokens=settings.max_tokens,
    )
    runner = Runner(
        max_rounds=args.max_rounds or None,
        parallel_tool_calls=args.parallel_tools,
    )
    repl = Repl(agent, runner)
    try:
        if args.prompt:
            if not await repl.send(args.prompt):
                return 1
        else:
            await repl.run_interactive(_read_line)
    finally:
        await provider.aclose()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_file)
    try:
        return asyncio.run(_main(args))
    except KeyboardInterrupt:
        print("\nFarewell!")
        return 130
