"""Conversation models shared by the streaming pipeline and the history API.

Messages are mutable while a stream is being assembled (``content`` grows,
``has_tool_call_after``/``has_error`` flip); ``kind`` and ``created_at`` are
frozen at creation.
"""

from datetime import UTC, datetime
from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NEW_CHAT_TITLE = "New Chat"
_TITLE_MAX_LENGTH = 30


class MessageKind(StrEnum):
    """Kind of a conversation message (``type`` on the wire)."""

    USER = "user"
    AI = "ai"
    SYSTEM = "system"
    ERROR = "error"
    TOOL_CALL = "toolCall"
    TOOL_RESULT = "toolResult"


class AgentMode(StrEnum):
    """Response style requested from the agent."""

    MAIN = "main"
    SPIN = "spin"
    THINK = "think"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


def _new_id() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class Message(BaseModel):
    """A unit of conversation history.

    Only ``id, chatId, userId, content, type, mode, createdAt`` come from
    the history API; the remaining fields are client-side state and default
    when a message is loaded from the server.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(default_factory=_new_id, description="Opaque unique identifier")
    chat_id: str = Field(default="", description="Owning chat")
    user_id: str = Field(default="", description="Owning user")
    content: str = Field(default="", description="Message body")
    kind: MessageKind = Field(..., alias="type", frozen=True)
    mode: AgentMode | None = Field(default=None, description="Set only on AI messages")
    created_at: datetime = Field(default_factory=_now, frozen=True)

    # Client-side state
    has_error: bool = False
    has_tool_call_after: bool = False
    tool_call_id: str | None = None
    tool_name: str | None = None
    tool_args: dict[str, str] | None = None
    tool_result: dict[str, str] | None = None

    @classmethod
    def create_user(cls, content: str, *, chat_id: str = "", user_id: str = "") -> "Message":
        return cls(kind=MessageKind.USER, content=content, chat_id=chat_id, user_id=user_id)

    @classmethod
    def create_ai(
        cls,
        content: str,
        *,
        mode: AgentMode = AgentMode.MAIN,
        chat_id: str = "",
        user_id: str = "",
    ) -> "Message":
        return cls(
            kind=MessageKind.AI,
            content=content,
            mode=mode,
            chat_id=chat_id,
            user_id=user_id,
        )

    @classmethod
    def create_error(cls, content: str, *, chat_id: str = "", user_id: str = "") -> "Message":
        return cls(
            kind=MessageKind.ERROR,
            content=content,
            has_error=True,
            chat_id=chat_id,
            user_id=user_id,
        )

    @classmethod
    def create_tool_call(
        cls,
        name: str,
        args: dict[str, str],
        *,
        tool_call_id: str | None = None,
        chat_id: str = "",
        user_id: str = "",
    ) -> "Message":
        """Create a tool call message.

        The tool call id doubles as the message id when present, so a
        later result can be matched to its call by id.
        """
        return cls(
            id=tool_call_id or _new_id(),
            kind=MessageKind.TOOL_CALL,
            content=f"Tool Call: {name}",
            tool_call_id=tool_call_id,
            tool_name=name,
            tool_args=args,
            chat_id=chat_id,
            user_id=user_id,
        )

    @classmethod
    def create_tool_result(
        cls,
        content: str,
        *,
        tool_call_id: str,
        result: dict[str, str],
        chat_id: str = "",
        user_id: str = "",
    ) -> "Message":
        return cls(
            kind=MessageKind.TOOL_RESULT,
            content=content,
            tool_call_id=tool_call_id,
            tool_result=result,
            chat_id=chat_id,
            user_id=user_id,
        )

    def to_history_payload(self) -> dict[str, str]:
        """Body for ``POST /api/chats/{id}/messages``."""
        return {"content": self.content, "type": self.kind.value}


class Chat(BaseModel):
    """A conversation as stored by the history API."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(default_factory=_new_id)
    title: str = NEW_CHAT_TITLE
    user_id: str = ""
    project_id: str | None = None
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def title_from_content(self) -> str:
        """Derive a title from the first user message while still untitled."""
        if self.title != NEW_CHAT_TITLE:
            return self.title
        first_user = next((m for m in self.messages if m.kind == MessageKind.USER), None)
        if first_user is None:
            return self.title
        content = first_user.content
        if len(content) > _TITLE_MAX_LENGTH:
            self.title = content[:_TITLE_MAX_LENGTH] + "..."
        else:
            self.title = content
        return self.title
