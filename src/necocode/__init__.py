from necocode.agent import Agent
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
from necocode.message import Message, MessageRole
from necocode.runner import LoopState, Runner, RunResult
from necocode.session import Session
from necocode.tools import Tool, tool
