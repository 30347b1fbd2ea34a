"""Tests for the persistence adapters."""

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from ember.memory.schema import (
    Account,
    ActionMemory,
    ActionResultContent,
    Message,
    MessageContent,
    Thought,
    ThoughtContent,
)
from ember.memory.sqlite import SQLiteDatabaseAdapter
from ember.memory.storage import DatabaseAdapter, InMemoryDatabaseAdapter


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def adapter(request, tmp_path):
    if request.param == "memory":
        db = InMemoryDatabaseAdapter()
    else:
        db = SQLiteDatabaseAdapter(tmp_path / "ember.db")
    await db.init()
    yield db
    await db.close()


def _message(room_id: str, text: str, **kwargs) -> Message:
    return Message(
        agent_id="agent", user_id="u1", room_id=room_id, content=MessageContent(text=text), **kwargs
    )


def test_adapters_satisfy_protocol(tmp_path):
    assert isinstance(InMemoryDatabaseAdapter(), DatabaseAdapter)
    assert isinstance(SQLiteDatabaseAdapter(tmp_path / "x.db"), DatabaseAdapter)


@pytest.mark.asyncio
async def test_accounts(adapter):
    account = Account(id="u1", name="Alice", username="alice")

    assert await adapter.get_account_by_id("u1") is None
    assert await adapter.create_account(account) is True
    assert await adapter.create_account(account) is False
    assert await adapter.get_account_by_id("u1") == account


@pytest.mark.asyncio
async def test_rooms(adapter):
    assert await adapter.get_room("r1") is None

    room = await adapter.create_room("r1")
    await adapter.create_room("r1")

    assert room.id == "r1"
    assert (await adapter.get_room("r1")).id == "r1"


@pytest.mark.asyncio
async def test_participants_and_actors(adapter):
    await adapter.create_account(Account(id="u1", name="Alice", username="alice"))
    await adapter.create_account(Account(id="u2", name="Bob", username="bob"))
    await adapter.create_room("r1")

    assert await adapter.add_participant("u1", "r1") is True
    assert await adapter.add_participant("u1", "r1") is False
    await adapter.add_participant("u2", "r1")

    assert await adapter.get_participants_for_room("r1") == ["u1", "u2"]

    participants = await adapter.get_participants_for_account("u1")
    assert [p.room_id for p in participants] == ["r1"]
    assert participants[0].account.username == "alice"

    actors = await adapter.get_actor_details("r1")
    assert [a.username for a in actors] == ["alice", "bob"]


@pytest.mark.asyncio
async def test_memory_round_trip(adapter):
    result = ActionMemory(
        agent_id="agent",
        user_id="agent",
        room_id="r1",
        content=ActionResultContent(
            name="lookup", msg_id="m1", call_id="c1", params={"q": "x"}, result={"n": 1}
        ),
    )
    await adapter.create_memory(result)

    loaded = await adapter.get_memory_by_id("actions", result.id)

    assert loaded == result
    assert isinstance(loaded.content, ActionResultContent)
    assert loaded.content.result == {"n": 1}


@pytest.mark.asyncio
async def test_tables_are_separate(adapter):
    message = _message("r1", "hello")
    thought = Thought(
        agent_id="agent", user_id="agent", room_id="r1", content=ThoughtContent(msg_id="m", text="t")
    )
    await adapter.create_memory(message)
    await adapter.create_memory(thought)

    assert [m.id for m in await adapter.get_memories("messages", "r1")] == [message.id]
    assert [m.id for m in await adapter.get_memories("thoughts", "r1")] == [thought.id]
    assert await adapter.get_memory_by_id("thoughts", message.id) is None


@pytest.mark.asyncio
async def test_ordering_count_and_window(adapter):
    now = datetime.now(UTC)
    old = _message("r1", "old", created_at=now - timedelta(hours=2))
    mid = _message("r1", "mid", created_at=now - timedelta(hours=1))
    new = _message("r1", "new", created_at=now)
    for memory in [mid, new, old]:
        await adapter.create_memory(memory)

    ordered = await adapter.get_memories("messages", "r1")
    assert [m.content.text for m in ordered] == ["new", "mid", "old"]

    assert [m.content.text for m in await adapter.get_memories("messages", "r1", count=1)] == [
        "new"
    ]

    window = await adapter.get_memories(
        "messages", "r1", start=now - timedelta(minutes=90), end=now - timedelta(minutes=30)
    )
    assert [m.content.text for m in window] == ["mid"]


@pytest.mark.asyncio
async def test_unique_memories(adapter):
    first = await adapter.create_memory(_message("r1", "same"), unique=True)
    duplicate = await adapter.create_memory(_message("r1", "same"), unique=True)
    await adapter.create_memory(_message("r1", "plain"))

    assert duplicate.id == first.id
    assert await adapter.count_memories("messages", "r1") == 2
    assert await adapter.count_memories("messages", "r1", unique=True) == 1
    assert [m.id for m in await adapter.get_memories("messages", "r1", unique=True)] == [first.id]


@pytest.mark.asyncio
async def test_memories_by_room_ids_and_removal(adapter):
    a = await adapter.create_memory(_message("r1", "a"))
    b = await adapter.create_memory(_message("r2", "b"))
    await adapter.create_memory(_message("r3", "c"))

    found = await adapter.get_memories_by_room_ids("messages", ["r1", "r2"])
    assert {m.id for m in found} == {a.id, b.id}
    assert await adapter.get_memories_by_room_ids("messages", []) == []

    await adapter.remove_memory("messages", a.id)
    assert await adapter.count_memories("messages", "r1") == 0

    await adapter.remove_all_memories("messages", "r2")
    assert await adapter.get_memories("messages", "r2") == []
    assert await adapter.count_memories("messages", "r3") == 1


@pytest.mark.asyncio
async def test_sqlite_persists_across_instances(tmp_path):
    path = tmp_path / "ember.db"
    first = SQLiteDatabaseAdapter(path)
    await first.init()
    stored = await first.create_memory(_message("r1", "durable"))

    second = SQLiteDatabaseAdapter(path)
    await second.init()

    assert await second.get_memory_by_id("messages", stored.id) == stored
