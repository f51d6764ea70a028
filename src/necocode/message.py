from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class MessageRole(Enum):
    ASSISTANT = "assistant"
    USER = "user"


class TextBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str


ContentBlock = Annotated[
    Union[TextBlock, ToolUseBlock, ToolResultBlock],
    Field(discriminator="type"),
]


class Message(BaseModel):
    """One conversation turn; ``model_dump()`` gives the API wire shape."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: list[ContentBlock]

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]


def user_text(text: str) -> Message:
    return Message(role=MessageRole.USER, content=[TextBlock(text=text)])


def tool_result(tool_use_id: str, content: str) -> Message:
    return Message(
        role=MessageRole.USER,
        content=[ToolResultBlock(tool_use_id=tool_use_id, content=content)],
    )
