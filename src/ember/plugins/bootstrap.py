"""Bootstrap plugin: generic actions every agent gets."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, create_model, field_validator

from ember.agent.actions import action
from ember.memory.schema import Message
from ember.plugins.base import Plugin

if TYPE_CHECKING:
    from ember.agent.runtime import AgentRuntime
    from ember.agent.state import State

logger = logging.getLogger(__name__)


def other_clients(runtime: AgentRuntime, message: Message) -> list[str]:
    """Names of the connected clients other than the one the message came from."""
    return [name for name in runtime.clients if name != message.content.source]


def send_client_message_params(
    runtime: AgentRuntime, message: Message, state: State
) -> type[BaseModel]:
    """Parameter model whose ``client`` choices are the currently connected clients."""
    choices = other_clients(runtime, message)

    def check_client(cls: Any, value: str) -> str:
        if value not in choices:
            raise ValueError(f"client must be one of {choices}")
        return value

    return create_model(
        "SendClientMessageParams",
        client=(str, Field(description="Client to send through", json_schema_extra={"enum": choices})),
        room_id=(uuid.UUID, Field(description="Room to post the message in")),
        msg=(str, Field(description="Message text")),
        __validators__={"check_client": field_validator("client")(check_client)},
    )


async def has_other_clients(runtime: AgentRuntime, message: Message, state: State) -> bool:
    return bool(other_clients(runtime, message))


@action(
    name="send_client_message",
    description="Sends a message to a room through another connected client",
    parameters=send_client_message_params,
    validate=has_other_clients,
)
async def send_client_message(
    runtime: AgentRuntime, message: Message, state: State, params: Any
) -> dict[str, str]:
    client = runtime.clients.get(params.client)
    if client is None:
        raise ValueError(f"Client '{params.client}' is not connected")

    outbound = await runtime.memories.messages.create_memory(
        {
            "user_id": runtime.agent_id,
            "room_id": str(params.room_id),
            "content": {"text": params.msg, "source": client.name},
        }
    )
    delivered = await client.send_message(outbound)
    logger.info("Sent message %s via %s to room %s", delivered.id, client.name, params.room_id)
    return {"status": "sent", "message_id": delivered.id}


bootstrap_plugin = Plugin(
    name="bootstrap",
    description="Generic cross-client messaging",
    actions=[send_client_message],
)
