import asyncio
import inspect
import json
import logging
import re
from types import UnionType
from typing import Any, Callable, Union, get_args, get_origin

from pydantic import BaseModel, Field

from necocode.errors import ToolError

logger = logging.getLogger(__name__)


class ToolCallResult(BaseModel):
    tool_name: str
    output: str


_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    tuple: "array",
    dict: "object",
}

_ARGS_HEADER = re.compile(r"^\s*(Args|Arguments|Parameters):\s*$")
_ARG_LINE = re.compile(r"^\s*(\w+)(?:\s*\([^)]*\))?:\s*(.*)$")


def _json_type(annotation: Any) -> str:
    origin = get_origin(annotation)
    if origin in (Union, UnionType):
        # int | None maps like int
        members = [a for a in get_args(annotation) if a is not type(None)]
        return _json_type(members[0]) if members else "null"
    if origin is not None:
        annotation = origin
    return _JSON_TYPES.get(annotation, "string")


def _parse_param_descriptions(func: Callable) -> dict[str, str]:
    """Read parameter descriptions from a Google-style ``Args:`` section."""
    doc = inspect.getdoc(func)
    if not doc:
        return {}

    descriptions: dict[str, list[str]] = {}
    in_args = False
    current: str | None = None
    base_indent: int | None = None
    for line in doc.splitlines():
        if _ARGS_HEADER.match(line):
            in_args = True
            continue
        if not in_args:
            continue
        if not line.strip():
            current = None
            continue
        indent = len(line) - len(line.lstrip())
        if base_indent is None:
            base_indent = indent
        if indent < base_indent:
            break
        match = _ARG_LINE.match(line)
        if indent == base_indent and match:
            current = match.group(1)
            descriptions[current] = [match.group(2).strip()]
        elif current is not None:
            descriptions[current].append(line.strip())
    return {k: "\n".join(v) for k, v in descriptions.items()}


def _build_parameters_schema(func: Callable) -> tuple[dict, list[str]]:
    signature = inspect.signature(func)
    descriptions = _parse_param_descriptions(func)
    properties = {}
    required = []
    for param_name, param in signature.parameters.items():
        properties[param_name] = {
            "type": _json_type(param.annotation),
            "description": descriptions.get(param_name, ""),
        }
        if param.default is inspect.Parameter.empty:
            required.append(param_name)
    schema = {"type": "object", "properties": properties, "required": required}
    return schema, required


class Tool(BaseModel):
    """A named capability the model can invoke.

    ``model_dump()`` returns the Messages API tool schema rather than the
    model's fields.  Awaiting the tool runs the wrapped function (sync
    functions in a worker thread) and wraps its output in a
    :class:`ToolCallResult`.
    """

    func: Callable = Field(exclude=True)
    name: str
    description: str = ""
    parameters_schema: dict = Field(default_factory=dict)
    model_config = {"arbitrary_types_allowed": True}

    def model_dump(self, **kwargs):
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters_schema,
        }

    def model_dump_json(self, **kwargs):
        return json.dumps(self.model_dump())

    async def __call__(self, **kwargs) -> ToolCallResult:
        if inspect.iscoroutinefunction(self.func):
            output = await self.func(**kwargs)
        else:
            # Blocking file I/O stays off the event loop
            output = await asyncio.to_thread(self.func, **kwargs)
        if inspect.isawaitable(output):
            output = await output
        if not isinstance(output, str):
            output = json.dumps(output)
        return ToolCallResult(tool_name=self.name, output=output)


def tool(func: Callable | None = None, *, name: str | None = None, description: str | None = None):
    """Turn a function into a :class:`Tool`.

    Usable bare (``@tool``) or with overrides
    (``@tool(name="custom", description="...")``).  The summary line of
    the docstring becomes the description when none is given.
    """

    def wrap(f: Callable) -> Tool:
        schema, _ = _build_parameters_schema(f)
        doc = inspect.getdoc(f) or ""
        return Tool(
            func=f,
            name=name or f.__name__,
            description=description if description is not None else doc.split("\n\n")[0].strip(),
            parameters_schema=schema,
        )

    if func is not None:
        return wrap(func)
    return wrap


class ToolRegistry:
    """Name-keyed set of tools; the Tool Executor used by the Runner."""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for t in tools or []:
            self.register(t)

    def register(self, t: Tool) -> None:
        if t.name in self._tools:
            raise ValueError(f"Duplicate tool name: '{t.name}'")
        self._tools[t.name] = t

    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def schemas(self) -> list[dict]:
        return [t.model_dump() for t in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    async def execute(self, name: str, params: dict) -> str:
        """Run tool *name* with *params* and return its output.

        Raises:
            ToolError: The tool is unknown or *params* do not match its
                signature.
        """
        tool_obj = self._tools.get(name)
        if tool_obj is None:
            raise ToolError(f"unknown tool '{name}'")

        try:
            inspect.signature(tool_obj.func).bind(**params)
        except TypeError as e:
            raise ToolError(f"invalid arguments for {name}: {e}") from e

        logger.info(f"Calling {name} with {params}")
        result = await tool_obj(**params)
        return result.output
