from pydantic import BaseModel, Field

from necocode.message import Message, user_text


class Session(BaseModel):
    """Conversation history for one interactive session.

    The Runner appends assistant turns and tool results to ``transcript``;
    nothing else should mutate it while a loop invocation is running.
    """

    session_id: str
    transcript: list[Message] = Field(default_factory=list)

    def add_user_message(self, text: str) -> Message:
        msg = user_text(text)
        self.transcript.append(msg)
        return msg

    def clear(self) -> None:
        self.transcript.clear()
