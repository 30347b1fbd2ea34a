"""Pydantic models for the memory system."""

import uuid
from datetime import UTC, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

MemoryType = Literal["messages", "thoughts", "actions"]


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class Actor(BaseModel):
    """A participant (human or agent) as seen from inside a room."""

    id: str
    name: str
    username: str


class Account(BaseModel):
    """A user account owned by the persistence layer."""

    id: str
    name: str
    username: str


class Room(BaseModel):
    """A conversation scope."""

    id: str


class Participant(BaseModel):
    """Membership of an account in a room."""

    id: str
    room_id: str
    account: Account


class MessageContent(BaseModel):
    """One turn of conversation."""

    model_config = ConfigDict(frozen=True, extra="allow")

    text: str = ""
    action: str | None = None
    source: str | None = None
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    in_reply_to: str | None = None


class ThoughtContent(BaseModel):
    """Private reasoning tied to the message that triggered it."""

    model_config = ConfigDict(frozen=True)

    msg_id: str
    text: str


class ActionCallContent(BaseModel):
    """A requested action invocation."""

    model_config = ConfigDict(frozen=True)

    type: Literal["call"] = "call"
    name: str
    msg_id: str
    params: dict[str, Any] = Field(default_factory=dict)


class ActionResultContent(BaseModel):
    """The recorded outcome of an action call."""

    model_config = ConfigDict(frozen=True)

    type: Literal["result"] = "result"
    name: str
    msg_id: str
    call_id: str  # id of the originating call memory
    params: dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    error: str | None = None  # set when the call failed


ActionContent = Annotated[
    Union[ActionCallContent, ActionResultContent], Field(discriminator="type")
]


class Memory(BaseModel):
    """An immutable, room-scoped fact."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    type: MemoryType
    agent_id: str
    user_id: str
    room_id: str
    created_at: datetime = Field(default_factory=_now)
    content: Any
    metadata: dict[str, Any] = Field(default_factory=dict)


class Message(Memory):
    type: Literal["messages"] = "messages"
    content: MessageContent


class Thought(Memory):
    type: Literal["thoughts"] = "thoughts"
    content: ThoughtContent


class ActionMemory(Memory):
    type: Literal["actions"] = "actions"
    content: ActionContent


AnyMemory = Union[Message, Thought, ActionMemory]

MEMORY_MODELS: dict[str, type[Memory]] = {
    "messages": Message,
    "thoughts": Thought,
    "actions": ActionMemory,
}


def memory_model(table_name: str) -> type[Memory]:
    """Get the model class stored in a memory table.

    Raises:
        KeyError: If the table is unknown
    """
    if table_name not in MEMORY_MODELS:
        raise KeyError(f"Unknown memory table '{table_name}'")
    return MEMORY_MODELS[table_name]


def is_message(memory: Memory) -> bool:
    return memory.type == "messages"


def is_action_call(memory: Memory) -> bool:
    return isinstance(memory.content, ActionCallContent)


def is_action_result(memory: Memory) -> bool:
    return isinstance(memory.content, ActionResultContent)
