"""Room-scoped memory store for ember.

Memories are immutable facts partitioned into three tables: conversation
messages, the agent's private thoughts, and action calls with their results.
Every query is scoped to a room and returns records newest first.

Components:

- :class:`MemoryManager` - Append-only API for one table, emits ``memory:created``
- :class:`MemoryManagers` - The messages/actions/thoughts trio
- :class:`InMemoryDatabaseAdapter` - Process-local persistence adapter
- :class:`SQLiteDatabaseAdapter` - SQLite persistence adapter
"""

from ember.memory.manager import MemoryManager, MemoryManagers
from ember.memory.sqlite import SQLiteDatabaseAdapter
from ember.memory.storage import DatabaseAdapter, InMemoryDatabaseAdapter

__all__ = [
    "DatabaseAdapter",
    "InMemoryDatabaseAdapter",
    "MemoryManager",
    "MemoryManagers",
    "SQLiteDatabaseAdapter",
]
