import logging
import os

from necocode.capability import Capability, CodingTools
from necocode.config import DEFAULT_MAX_TOKENS
from necocode.provider import ModelProvider
from necocode.tools import Tool, ToolRegistry

logger = logging.getLogger(__name__)


def default_system_prompt(cwd: str | os.PathLike) -> str:
    return f"Concise coding assistant. cwd: {cwd}"


class Agent:
    """
    What the Runner needs to drive a conversation: the model, the provider
    that streams its responses, the system prompt, and the tools it may call.

    The tool schema list is generated once here and sent unchanged with
    every request.

    Args:
        model: String representing the model name.
        provider: Model provider that issues streamed requests.
        system_prompt: System prompt sent with every request.
        tools: Standalone tools to register.
        capabilities: Tool groups whose tools are registered as well.
        max_tokens: ``max_tokens`` for every request.
    """

    def __init__(
        self,
        model: str,
        provider: ModelProvider,
        system_prompt: str,
        tools: list[Tool] | None = None,
        capabilities: list[Capability] | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        self.model = model
        self.provider = provider
        self.system_prompt = system_prompt
        self.max_tokens = max_tokens

        all_tools = list(tools or [])
        for cap in capabilities or []:
            all_tools.extend(cap.tools())
        self.tool_registry = ToolRegistry(all_tools)
        self.tool_schemas = self.tool_registry.schemas()
        logger.debug(f"Agent tools: {self.tool_registry.names()}")

    @classmethod
    def coding_assistant(
        cls,
        model: str,
        provider: ModelProvider,
        cwd: str | os.PathLike = ".",
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> "Agent":
        """An agent with the six built-in coding tools rooted at *cwd*."""
        return cls(
            model=model,
            provider=provider,
            system_prompt=default_system_prompt(os.path.abspath(cwd)),
            capabilities=[CodingTools(cwd)],
            max_tokens=max_tokens,
        )
