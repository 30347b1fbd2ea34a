"""Tests for the state composer."""

import pytest
import pytest_asyncio

from ember.agent.state import ActionsState


@pytest_asyncio.fixture
async def message(runtime, user, room_id):
    await runtime.connections.ensure_connection(user.id, room_id, user.username, user.name)
    return await runtime.memories.messages.create_memory(
        {"user_id": user.id, "room_id": room_id, "content": {"text": "find builder thescoho"}}
    )


async def _call(runtime, message, name="lookup"):
    return await runtime.memories.actions.create_memory(
        {
            "user_id": runtime.agent_id,
            "room_id": message.room_id,
            "content": {"type": "call", "name": name, "msg_id": message.id},
        }
    )


async def _result(runtime, message, call):
    return await runtime.memories.actions.create_memory(
        {
            "user_id": runtime.agent_id,
            "room_id": message.room_id,
            "content": {
                "type": "result",
                "name": call.content.name,
                "msg_id": message.id,
                "call_id": call.id,
                "result": "done",
            },
        }
    )


@pytest.mark.asyncio
async def test_compose_state(runtime, message, user, room_id):
    state = await runtime.composer.compose_state(message, {"channel": "general"})

    assert state.agent.id == runtime.agent_id
    assert state.room.id == room_id
    assert [m.id for m in state.messages] == [message.id]
    assert {a.username for a in state.actors} == {"ember", user.username}
    assert state.extra == {"channel": "general"}
    assert state.thoughts == []
    assert state.actions == ActionsState()


@pytest.mark.asyncio
async def test_pending_call_moves_from_processing_to_results(runtime, message):
    call = await _call(runtime, message)

    state = await runtime.composer.compose_state(message)
    assert call.id in state.actions.calls
    assert call.id in state.actions.processing
    assert state.actions.results == {}

    result = await _result(runtime, message, call)
    state = await runtime.composer.update_recent_message_state(state)

    assert call.id not in state.actions.processing
    assert result.id in state.actions.results
    assert state.actions.results[result.id].content.call_id == call.id


@pytest.mark.asyncio
async def test_update_keeps_identity_fields(runtime, message):
    state = await runtime.composer.compose_state(message, {"k": "v"})
    await runtime.memories.thoughts.create_memory(
        {
            "user_id": runtime.agent_id,
            "room_id": message.room_id,
            "content": {"msg_id": message.id, "text": "thinking"},
        }
    )

    updated = await runtime.composer.update_recent_message_state(state)

    assert updated is not state
    assert updated.agent == state.agent
    assert updated.room == state.room
    assert updated.actors == state.actors
    assert updated.extra == {"k": "v"}
    assert [t.content.text for t in updated.thoughts] == ["thinking"]
    assert state.thoughts == []


@pytest.mark.asyncio
async def test_history_window(runtime, message):
    runtime.composer.history.messages = 2
    for text in ["two", "three"]:
        await runtime.memories.messages.create_memory(
            {"user_id": message.user_id, "room_id": message.room_id, "content": {"text": text}}
        )

    state = await runtime.composer.compose_state(message)

    assert [m.content.text for m in state.messages] == ["three", "two"]


@pytest.mark.asyncio
async def test_other_rooms_do_not_leak(runtime, message, user):
    await runtime.memories.messages.create_memory(
        {"user_id": user.id, "room_id": "other-room", "content": {"text": "elsewhere"}}
    )

    state = await runtime.composer.compose_state(message)

    assert all(m.room_id == message.room_id for m in state.messages)
