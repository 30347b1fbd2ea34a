"""Per-turn state snapshot and its composer."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any

from ember.config.schema import HistoryConfig
from ember.memory.manager import MemoryManagers
from ember.memory.schema import (
    ActionCallContent,
    ActionResultContent,
    Actor,
    Memory,
    Message,
    Room,
)
from ember.memory.storage import DatabaseAdapter

logger = logging.getLogger(__name__)


@dataclass
class ActionsState:
    """Action calls and results of a room.

    ``calls`` and ``results`` are keyed by memory id. ``processing`` holds
    the ids of calls that no result references yet.
    """

    calls: dict[str, Memory] = field(default_factory=dict)
    results: dict[str, Memory] = field(default_factory=dict)
    processing: set[str] = field(default_factory=set)

    @classmethod
    def from_memories(cls, memories: list[Memory]) -> ActionsState:
        calls: dict[str, Memory] = {}
        results: dict[str, Memory] = {}
        for memory in memories:
            if isinstance(memory.content, ActionCallContent):
                calls[memory.id] = memory
            elif isinstance(memory.content, ActionResultContent):
                results[memory.id] = memory

        settled = {result.content.call_id for result in results.values()}
        processing = {call_id for call_id in calls if call_id not in settled}
        return cls(calls=calls, results=results, processing=processing)


@dataclass
class State:
    """Read-model of a room, rebuilt every turn and never persisted.

    ``messages`` and ``thoughts`` are ordered newest first.
    """

    agent: Actor
    room: Room
    messages: list[Message] = field(default_factory=list)
    actors: list[Actor] = field(default_factory=list)
    actions: ActionsState = field(default_factory=ActionsState)
    thoughts: list[Memory] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


class StateComposer:
    """Builds :class:`State` snapshots from the memory store."""

    def __init__(
        self,
        db: DatabaseAdapter,
        memories: MemoryManagers,
        agent: Actor,
        history: HistoryConfig | None = None,
    ):
        """Initialize the composer.

        Args:
            db: Persistence adapter, used for the actor roster
            memories: Memory managers of the agent
            agent: The agent's own actor
            history: Recency window per memory table
        """
        self.db = db
        self.memories = memories
        self.agent = agent
        self.history = history or HistoryConfig()

    async def compose_state(
        self, message: Message, custom_state: dict[str, Any] | None = None
    ) -> State:
        """Compose the state of the room a message belongs to.

        Args:
            message: Message that triggered the turn
            custom_state: Caller-supplied values merged into ``State.extra``

        Returns:
            A fresh state snapshot
        """
        room_id = message.room_id
        actors, (messages, actions, thoughts) = await asyncio.gather(
            self.db.get_actor_details(room_id),
            self._load_recent(room_id),
        )

        state = State(
            agent=self.agent,
            room=Room(id=room_id),
            messages=messages,
            actors=actors,
            actions=ActionsState.from_memories(actions),
            thoughts=thoughts,
            extra=dict(custom_state or {}),
        )
        logger.debug(
            "Composed state for room %s: %d messages, %d calls (%d processing), %d thoughts",
            room_id,
            len(state.messages),
            len(state.actions.calls),
            len(state.actions.processing),
            len(state.thoughts),
        )
        return state

    async def update_recent_message_state(self, state: State) -> State:
        """Reload the room's memories into a new state.

        Agent, room, actors and extra are carried over from ``state``.
        """
        messages, actions, thoughts = await self._load_recent(state.room.id)
        return replace(
            state,
            messages=messages,
            actions=ActionsState.from_memories(actions),
            thoughts=thoughts,
        )

    async def _load_recent(self, room_id: str) -> tuple[list[Any], list[Memory], list[Memory]]:
        messages, actions, thoughts = await asyncio.gather(
            self.memories.messages.get_memories(room_id, count=self.history.messages),
            self.memories.actions.get_memories(room_id, count=self.history.actions),
            self.memories.thoughts.get_memories(room_id, count=self.history.thoughts),
        )
        return messages, actions, thoughts
