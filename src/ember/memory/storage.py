"""Persistence port and the in-process adapter.

The core never talks to a database directly. Everything it needs from
persistence (accounts, rooms, participants and the three memory tables) goes
through :class:`DatabaseAdapter`.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable

from ember.memory.schema import Account, Actor, Memory, Participant, Room


@runtime_checkable
class DatabaseAdapter(Protocol):
    """Protocol for persistence adapters.

    Memory queries are always scoped to one table and one room (or an
    explicit list of rooms) and return records newest first.
    """

    async def init(self) -> None: ...

    async def close(self) -> None: ...

    async def get_account_by_id(self, user_id: str) -> Account | None: ...

    async def create_account(self, account: Account) -> bool: ...

    async def get_room(self, room_id: str) -> Room | None: ...

    async def create_room(self, room_id: str) -> Room: ...

    async def get_participants_for_account(self, user_id: str) -> list[Participant]: ...

    async def get_participants_for_room(self, room_id: str) -> list[str]: ...

    async def add_participant(self, user_id: str, room_id: str) -> bool: ...

    async def get_actor_details(self, room_id: str) -> list[Actor]: ...

    async def create_memory(self, memory: Memory, unique: bool = False) -> Memory: ...

    async def get_memories(
        self,
        table_name: str,
        room_id: str,
        count: int | None = None,
        unique: bool = False,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Memory]: ...

    async def get_memories_by_room_ids(
        self, table_name: str, room_ids: Sequence[str]
    ) -> list[Memory]: ...

    async def get_memory_by_id(self, table_name: str, memory_id: str) -> Memory | None: ...

    async def remove_memory(self, table_name: str, memory_id: str) -> None: ...

    async def remove_all_memories(self, table_name: str, room_id: str) -> None: ...

    async def count_memories(self, table_name: str, room_id: str, unique: bool = False) -> int: ...


def _in_window(memory: Memory, start: datetime | None, end: datetime | None) -> bool:
    if start is not None and memory.created_at < start:
        return False
    if end is not None and memory.created_at > end:
        return False
    return True


def _newest_first(memories: Sequence[Memory]) -> list[Memory]:
    # Stable sort over reversed insertion order: ties stay newest-inserted first
    return sorted(reversed(memories), key=lambda m: m.created_at, reverse=True)


class InMemoryDatabaseAdapter:
    """Process-local adapter backed by dictionaries.

    Default backend and the one used by tests. Nothing survives a restart.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}
        self.rooms: dict[str, Room] = {}
        self.participants: list[Participant] = []
        self.memories: dict[str, list[Memory]] = {}
        self._unique_ids: set[str] = set()
        self._participant_seq = 0

    async def init(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def get_account_by_id(self, user_id: str) -> Account | None:
        return self.accounts.get(user_id)

    async def create_account(self, account: Account) -> bool:
        if account.id in self.accounts:
            return False
        self.accounts[account.id] = account
        return True

    async def get_room(self, room_id: str) -> Room | None:
        return self.rooms.get(room_id)

    async def create_room(self, room_id: str) -> Room:
        room = self.rooms.setdefault(room_id, Room(id=room_id))
        return room

    async def get_participants_for_account(self, user_id: str) -> list[Participant]:
        return [p for p in self.participants if p.account.id == user_id]

    async def get_participants_for_room(self, room_id: str) -> list[str]:
        return [p.account.id for p in self.participants if p.room_id == room_id]

    async def add_participant(self, user_id: str, room_id: str) -> bool:
        if user_id in await self.get_participants_for_room(room_id):
            return False

        account = self.accounts.get(user_id) or Account(id=user_id, name=user_id, username=user_id)
        self._participant_seq += 1
        self.participants.append(
            Participant(id=f"participant-{self._participant_seq}", room_id=room_id, account=account)
        )
        return True

    async def get_actor_details(self, room_id: str) -> list[Actor]:
        actors = []
        for user_id in await self.get_participants_for_room(room_id):
            account = self.accounts.get(user_id)
            if account is None:
                continue
            actors.append(Actor(id=account.id, name=account.name, username=account.username))
        return actors

    async def create_memory(self, memory: Memory, unique: bool = False) -> Memory:
        table = self.memories.setdefault(memory.type, [])

        if unique:
            for existing in table:
                if existing.room_id == memory.room_id and existing.content == memory.content:
                    return existing
            self._unique_ids.add(memory.id)

        table.append(memory)
        return memory

    async def get_memories(
        self,
        table_name: str,
        room_id: str,
        count: int | None = None,
        unique: bool = False,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Memory]:
        matches = [
            m
            for m in self.memories.get(table_name, [])
            if m.room_id == room_id
            and _in_window(m, start, end)
            and (not unique or m.id in self._unique_ids)
        ]
        ordered = _newest_first(matches)
        return ordered[:count] if count is not None else ordered

    async def get_memories_by_room_ids(
        self, table_name: str, room_ids: Sequence[str]
    ) -> list[Memory]:
        wanted = set(room_ids)
        return _newest_first([m for m in self.memories.get(table_name, []) if m.room_id in wanted])

    async def get_memory_by_id(self, table_name: str, memory_id: str) -> Memory | None:
        for memory in self.memories.get(table_name, []):
            if memory.id == memory_id:
                return memory
        return None

    async def remove_memory(self, table_name: str, memory_id: str) -> None:
        table = self.memories.get(table_name, [])
        self.memories[table_name] = [m for m in table if m.id != memory_id]
        self._unique_ids.discard(memory_id)

    async def remove_all_memories(self, table_name: str, room_id: str) -> None:
        table = self.memories.get(table_name, [])
        self.memories[table_name] = [m for m in table if m.room_id != room_id]

    async def count_memories(self, table_name: str, room_id: str, unique: bool = False) -> int:
        return len(await self.get_memories(table_name, room_id, unique=unique))
