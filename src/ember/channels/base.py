"""Base protocol for client adapters."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ember.memory.schema import Message


@runtime_checkable
class Client(Protocol):
    """Protocol for messaging clients.

    A client connects the agent to a messaging surface. It forwards inbound
    messages to the runtime and delivers the agent's replies.
    """

    name: str

    async def start(self) -> None:
        """Start listening for messages."""
        ...

    async def stop(self) -> None:
        """Stop listening and clean up."""
        ...

    async def send_message(self, message: Message) -> Message:
        """Deliver an agent message.

        Args:
            message: Stored agent message to deliver

        Returns:
            The delivered message, possibly enriched by the transport
            (e.g. with the platform's message id in ``metadata``)
        """
        ...
