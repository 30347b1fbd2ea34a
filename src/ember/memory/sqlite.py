"""SQLite persistence adapter.

Memories are stored whole as JSON next to the indexed columns used for
filtering and ordering. sqlite3 is blocking, so every public coroutine runs
its query in a worker thread.
"""

import asyncio
import json
import sqlite3
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from ember.memory.schema import Account, Actor, Memory, Participant, Room, memory_model


class SQLiteDatabaseAdapter:
    """SQLite-based storage for accounts, rooms, participants and memories."""

    def __init__(self, db_path: str | Path):
        """Initialize storage with database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path).expanduser()

    async def init(self) -> None:
        """Create tables and indexes if they don't exist."""
        await asyncio.to_thread(self._initialize_db)

    async def close(self) -> None:
        # Connections are opened per operation
        return None

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _initialize_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS accounts (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    username TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS rooms (
                    id TEXT PRIMARY KEY
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS participants (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    room_id TEXT NOT NULL,
                    UNIQUE (user_id, room_id)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS memories (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    type TEXT NOT NULL,
                    room_id TEXT NOT NULL,
                    created_ts REAL NOT NULL,
                    content TEXT NOT NULL,
                    is_unique INTEGER NOT NULL DEFAULT 0,
                    body TEXT NOT NULL
                )
            """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_memories_room ON memories(type, room_id, created_ts)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_participants_room ON participants(room_id)"
            )

            conn.commit()

    # Accounts and rooms

    async def get_account_by_id(self, user_id: str) -> Account | None:
        return await asyncio.to_thread(self._get_account_by_id, user_id)

    def _get_account_by_id(self, user_id: str) -> Account | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM accounts WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return Account(id=row["id"], name=row["name"], username=row["username"])

    async def create_account(self, account: Account) -> bool:
        return await asyncio.to_thread(self._create_account, account)

    def _create_account(self, account: Account) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO accounts (id, name, username) VALUES (?, ?, ?)",
                (account.id, account.name, account.username),
            )
            conn.commit()
            return cursor.rowcount > 0

    async def get_room(self, room_id: str) -> Room | None:
        return await asyncio.to_thread(self._get_room, room_id)

    def _get_room(self, room_id: str) -> Room | None:
        with self._connect() as conn:
            row = conn.execute("SELECT id FROM rooms WHERE id = ?", (room_id,)).fetchone()
        return Room(id=row["id"]) if row else None

    async def create_room(self, room_id: str) -> Room:
        return await asyncio.to_thread(self._create_room, room_id)

    def _create_room(self, room_id: str) -> Room:
        with self._connect() as conn:
            conn.execute("INSERT OR IGNORE INTO rooms (id) VALUES (?)", (room_id,))
            conn.commit()
        return Room(id=room_id)

    # Participants

    async def get_participants_for_account(self, user_id: str) -> list[Participant]:
        return await asyncio.to_thread(self._get_participants_for_account, user_id)

    def _get_participants_for_account(self, user_id: str) -> list[Participant]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT p.id AS pid, p.room_id, a.id, a.name, a.username
                FROM participants p JOIN accounts a ON a.id = p.user_id
                WHERE p.user_id = ?
                ORDER BY p.id
            """,
                (user_id,),
            ).fetchall()

        return [
            Participant(
                id=str(row["pid"]),
                room_id=row["room_id"],
                account=Account(id=row["id"], name=row["name"], username=row["username"]),
            )
            for row in rows
        ]

    async def get_participants_for_room(self, room_id: str) -> list[str]:
        return await asyncio.to_thread(self._get_participants_for_room, room_id)

    def _get_participants_for_room(self, room_id: str) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT user_id FROM participants WHERE room_id = ? ORDER BY id", (room_id,)
            ).fetchall()
        return [row["user_id"] for row in rows]

    async def add_participant(self, user_id: str, room_id: str) -> bool:
        return await asyncio.to_thread(self._add_participant, user_id, room_id)

    def _add_participant(self, user_id: str, room_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO participants (user_id, room_id) VALUES (?, ?)",
                (user_id, room_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    async def get_actor_details(self, room_id: str) -> list[Actor]:
        return await asyncio.to_thread(self._get_actor_details, room_id)

    def _get_actor_details(self, room_id: str) -> list[Actor]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT a.id, a.name, a.username
                FROM participants p JOIN accounts a ON a.id = p.user_id
                WHERE p.room_id = ?
                ORDER BY p.id
            """,
                (room_id,),
            ).fetchall()
        return [Actor(id=row["id"], name=row["name"], username=row["username"]) for row in rows]

    # Memories

    async def create_memory(self, memory: Memory, unique: bool = False) -> Memory:
        return await asyncio.to_thread(self._create_memory, memory, unique)

    def _create_memory(self, memory: Memory, unique: bool) -> Memory:
        content = json.dumps(memory.model_dump(mode="json")["content"], sort_keys=True)

        with self._connect() as conn:
            if unique:
                row = conn.execute(
                    "SELECT body FROM memories WHERE type = ? AND room_id = ? AND content = ? LIMIT 1",
                    (memory.type, memory.room_id, content),
                ).fetchone()
                if row is not None:
                    return memory_model(memory.type).model_validate_json(row["body"])

            conn.execute(
                """
                INSERT INTO memories (id, type, room_id, created_ts, content, is_unique, body)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    memory.id,
                    memory.type,
                    memory.room_id,
                    memory.created_at.timestamp(),
                    content,
                    1 if unique else 0,
                    memory.model_dump_json(),
                ),
            )
            conn.commit()

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
        return await asyncio.to_thread(
            self._get_memories, table_name, room_id, count, unique, start, end
        )

    def _get_memories(
        self,
        table_name: str,
        room_id: str,
        count: int | None,
        unique: bool,
        start: datetime | None,
        end: datetime | None,
    ) -> list[Memory]:
        query = "SELECT body FROM memories WHERE type = ? AND room_id = ?"
        params: list[Any] = [table_name, room_id]

        if unique:
            query += " AND is_unique = 1"
        if start is not None:
            query += " AND created_ts >= ?"
            params.append(start.timestamp())
        if end is not None:
            query += " AND created_ts <= ?"
            params.append(end.timestamp())

        query += " ORDER BY created_ts DESC, seq DESC"

        if count is not None:
            query += " LIMIT ?"
            params.append(count)

        return self._load(table_name, query, params)

    async def get_memories_by_room_ids(
        self, table_name: str, room_ids: Sequence[str]
    ) -> list[Memory]:
        if not room_ids:
            return []
        placeholders = ", ".join("?" for _ in room_ids)
        query = (
            f"SELECT body FROM memories WHERE type = ? AND room_id IN ({placeholders}) "
            "ORDER BY created_ts DESC, seq DESC"
        )
        return await asyncio.to_thread(self._load, table_name, query, [table_name, *room_ids])

    async def get_memory_by_id(self, table_name: str, memory_id: str) -> Memory | None:
        memories = await asyncio.to_thread(
            self._load,
            table_name,
            "SELECT body FROM memories WHERE type = ? AND id = ?",
            [table_name, memory_id],
        )
        return memories[0] if memories else None

    def _load(self, table_name: str, query: str, params: list[Any]) -> list[Memory]:
        model = memory_model(table_name)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [model.model_validate_json(row["body"]) for row in rows]

    async def remove_memory(self, table_name: str, memory_id: str) -> None:
        await asyncio.to_thread(
            self._execute, "DELETE FROM memories WHERE type = ? AND id = ?", (table_name, memory_id)
        )

    async def remove_all_memories(self, table_name: str, room_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "DELETE FROM memories WHERE type = ? AND room_id = ?",
            (table_name, room_id),
        )

    def _execute(self, query: str, params: tuple[Any, ...]) -> None:
        with self._connect() as conn:
            conn.execute(query, params)
            conn.commit()

    async def count_memories(self, table_name: str, room_id: str, unique: bool = False) -> int:
        return await asyncio.to_thread(self._count_memories, table_name, room_id, unique)

    def _count_memories(self, table_name: str, room_id: str, unique: bool) -> int:
        query = "SELECT COUNT(*) AS n FROM memories WHERE type = ? AND room_id = ?"
        if unique:
            query += " AND is_unique = 1"
        with self._connect() as conn:
            row = conn.execute(query, (table_name, room_id)).fetchone()
        return int(row["n"])
