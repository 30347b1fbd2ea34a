"""Room-scoped memory managers, one per memory table."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ember.events import MEMORY_CREATED, EventEmitter
from ember.memory.schema import ActionResultContent, Memory, MemoryType, memory_model
from ember.memory.storage import DatabaseAdapter

logger = logging.getLogger(__name__)


class MemoryManager:
    """Append-only access to one memory table.

    Assigns identity and timestamps, validates records against the table's
    model, persists through the adapter and announces every new memory on
    the ``memory:created`` event.
    """

    def __init__(
        self,
        table_name: MemoryType,
        db: DatabaseAdapter,
        agent_id: str,
        events: EventEmitter | None = None,
    ):
        """Initialize the manager.

        Args:
            table_name: Memory table handled by this manager
            db: Persistence adapter
            agent_id: Agent stamped on every created memory
            events: Emitter notified after each successful create
        """
        self.table_name = table_name
        self.db = db
        self.agent_id = agent_id
        self.events = events
        self.model = memory_model(table_name)

    async def create_memory(self, data: Mapping[str, Any], unique: bool = False) -> Memory:
        """Persist a new memory.

        Args:
            data: Memory fields; ``id`` and ``created_at`` are assigned when absent.
                ``type`` and ``agent_id`` are always set by the manager.
            unique: Let the adapter return an existing identical memory instead
                of inserting a duplicate

        Returns:
            The stored memory

        Raises:
            pydantic.ValidationError: If the data does not fit the table's model
        """
        fields = {
            key: value for key, value in dict(data).items() if key not in ("type", "agent_id")
        }
        memory = self.model.model_validate(
            {**fields, "type": self.table_name, "agent_id": self.agent_id}
        )

        stored = await self.db.create_memory(memory, unique=unique)
        logger.debug("Created %s memory %s in room %s", self.table_name, stored.id, stored.room_id)

        if self.events is not None:
            self.events.emit(MEMORY_CREATED, {"type": self.table_name, "memory": stored})

        return stored

    async def get_memories(
        self,
        room_id: str,
        count: int | None = None,
        unique: bool = False,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Memory]:
        """Get memories for a room, newest first.

        Args:
            room_id: Room to query
            count: Maximum number of memories to return
            unique: Only return memories created with ``unique=True``
            start: Oldest creation time to include
            end: Newest creation time to include

        Returns:
            Memories ordered by recency
        """
        return await self.db.get_memories(
            self.table_name, room_id, count=count, unique=unique, start=start, end=end
        )

    async def get_memory_by_id(self, memory_id: str) -> Memory | None:
        return await self.db.get_memory_by_id(self.table_name, memory_id)

    async def get_memories_by_room_ids(self, room_ids: Sequence[str]) -> list[Memory]:
        return await self.db.get_memories_by_room_ids(self.table_name, room_ids)

    async def remove_memory(self, memory_id: str) -> None:
        await self.db.remove_memory(self.table_name, memory_id)

    async def remove_all_memories(self, room_id: str) -> None:
        await self.db.remove_all_memories(self.table_name, room_id)

    async def count_memories(self, room_id: str, unique: bool = False) -> int:
        return await self.db.count_memories(self.table_name, room_id, unique=unique)

    async def find_results(self, room_id: str, call_ids: Iterable[str]) -> dict[str, Memory]:
        """Find recorded results for the given action calls.

        Args:
            room_id: Room the calls belong to
            call_ids: Ids of the call memories

        Returns:
            Mapping of call id to its result memory, for calls that have one
        """
        wanted = set(call_ids)
        if not wanted:
            return {}

        found: dict[str, Memory] = {}
        for memory in await self.get_memories(room_id):
            content = memory.content
            if isinstance(content, ActionResultContent) and content.call_id in wanted:
                found.setdefault(content.call_id, memory)
        return found


@dataclass
class MemoryManagers:
    """The three memory tables of an agent."""

    messages: MemoryManager
    actions: MemoryManager
    thoughts: MemoryManager

    @classmethod
    def create(
        cls, db: DatabaseAdapter, agent_id: str, events: EventEmitter | None = None
    ) -> MemoryManagers:
        return cls(
            messages=MemoryManager("messages", db, agent_id, events),
            actions=MemoryManager("actions", db, agent_id, events),
            thoughts=MemoryManager("thoughts", db, agent_id, events),
        )

    def get(self, table_name: str) -> MemoryManager:
        """Get a manager by table name.

        Raises:
            KeyError: If the table is unknown
        """
        if table_name not in ("messages", "actions", "thoughts"):
            raise KeyError(f"Unknown memory table '{table_name}'")
        return getattr(self, table_name)
