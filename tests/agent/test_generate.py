"""Tests for generation rounds."""

import asyncio

import pytest
import pytest_asyncio
from pydantic import BaseModel

from ember.agent.actions import Action
from ember.agent.context import Context, RuntimeData
from ember.agent.generate import (
    ActionCallOutput,
    generate_action_calls,
    generate_action_results,
    generate_chat_output,
    generate_context_selection,
    parse_action_params,
)
from ember.llm.client import GenerationError, GenerationTimeoutError
from ember.prompt.template import Prompt


class ProfileParams(BaseModel):
    username: str


async def _profile(runtime, message, state, params):
    return {"username": params.username}


PROFILE_ACTION = Action(
    name="talent_get_builder_profile",
    handler=_profile,
    description="Get a builder profile",
    parameters=ProfileParams,
)


@pytest_asyncio.fixture
async def data(runtime, user, room_id):
    await runtime.connections.ensure_connection(user.id, room_id, user.username, user.name)
    message = await runtime.memories.messages.create_memory(
        {"user_id": user.id, "room_id": room_id, "content": {"text": "find builder thescoho"}}
    )
    state = await runtime.composer.compose_state(message)
    return RuntimeData.from_state(runtime, message, state)


def _chat_variables(data, **extra):
    return {
        "contexts": [{"name": "persona", "content": "You are Ember."}],
        "actions": [PROFILE_ACTION],
        "conversation": [],
        "msg": data.message,
        "data": [],
        **extra,
    }


def test_parse_action_params():
    assert parse_action_params("") == {}
    assert parse_action_params("  \n") == {}
    assert parse_action_params('{"a": 1}') == {"a": 1}
    with pytest.raises(ValueError):
        parse_action_params("[1, 2]")


@pytest.mark.asyncio
async def test_chat_output_parsing(runtime, generator, data):
    generator.replies.append(
        f'<thinking msgId="{data.message.id[:8]}">Need the profile</thinking>\n'
        '<response msgId="x">Looking it up</response>\n'
        '<action name="talent_get_builder_profile">{"username": "thescoho"}</action>'
    )

    output = await generate_chat_output(generator, _chat_variables(data), data)

    assert [t.content for t in output.thinking] == ["Need the profile"]
    assert output.thinking[0].msg_id == data.message.id[:8]
    assert [r.content for r in output.responses] == ["Looking it up"]
    assert output.calls == [
        ActionCallOutput(name="talent_get_builder_profile", params={"username": "thescoho"})
    ]


@pytest.mark.asyncio
async def test_request_shape(runtime, generator, data):
    generator.replies.append("<thinking>ok</thinking>")

    await generate_chat_output(generator, _chat_variables(data), data, params={"model": "SMALL"})

    [request] = generator.requests
    assert request.prompt == "<output>"
    assert request.stop == ["</output>"]
    assert request.model == "SMALL"
    assert '<context name="persona">You are Ember.</context>' in request.system
    assert "talent_get_builder_profile" in request.system
    assert '"username"' in request.system
    assert "find builder thescoho" in request.system


@pytest.mark.asyncio
async def test_malformed_action_keeps_the_rest(runtime, generator, data):
    generator.replies.append(
        "<thinking>t</thinking>"
        '<action name="talent_get_builder_profile">{"username": "a"}</action>'
        '<action name="talent_get_builder_profile">{"username": </action>'
        "<action>{}</action>"
        '<action name="ping"></action>'
    )

    output = await generate_chat_output(generator, _chat_variables(data), data)

    assert output.calls == [
        ActionCallOutput(name="talent_get_builder_profile", params={"username": "a"}),
        ActionCallOutput(name="ping", params={}),
    ]
    assert len(output.thinking) == 1


@pytest.mark.asyncio
async def test_output_wrapper_is_unwrapped(runtime, generator, data):
    generator.replies.append("<output><thinking>inside</thinking><response>hi</response></output>")

    output = await generate_chat_output(generator, _chat_variables(data), data)

    assert [t.content for t in output.thinking] == ["inside"]
    assert [r.content for r in output.responses] == ["hi"]


@pytest.mark.asyncio
async def test_missing_thinking_is_not_an_error(runtime, generator, data):
    generator.replies.append("just some prose without tags")

    output = await generate_chat_output(generator, _chat_variables(data), data)

    assert output.thinking == []
    assert output.responses == []
    assert output.calls == []


@pytest.mark.asyncio
async def test_generation_error_propagates(runtime, generator, data):
    generator.replies.append(GenerationError("backend down"))

    with pytest.raises(GenerationError, match="backend down"):
        await generate_chat_output(generator, _chat_variables(data), data)


@pytest.mark.asyncio
async def test_generation_timeout(runtime, data):
    class SlowGenerator:
        async def generate_text(self, params):
            await asyncio.sleep(5)
            return ""

    with pytest.raises(GenerationTimeoutError):
        await generate_chat_output(SlowGenerator(), _chat_variables(data), data, timeout=0.05)


@pytest.mark.asyncio
async def test_action_results_round(runtime, generator, data):
    call = await runtime.memories.actions.create_memory(
        {
            "user_id": runtime.agent_id,
            "room_id": data.message.room_id,
            "content": {
                "type": "call",
                "name": "talent_get_builder_profile",
                "msg_id": data.message.id,
                "params": {"username": "thescoho"},
            },
        }
    )
    result = await runtime.memories.actions.create_memory(
        {
            "user_id": runtime.agent_id,
            "room_id": data.message.room_id,
            "content": {
                "type": "result",
                "name": "talent_get_builder_profile",
                "msg_id": data.message.id,
                "call_id": call.id,
                "params": {"username": "thescoho"},
                "result": {"score": 87},
            },
        }
    )
    generator.replies.append("<thinking>got it</thinking><response>Score is 87</response>")

    output = await generate_action_results(
        generator,
        _chat_variables(data, response=None, calls=[call], results=[result], thinking=[]),
        data,
    )

    assert [r.content for r in output.responses] == ["Score is 87"]
    system = generator.requests[0].system
    assert "No response yet" in system
    assert '"score": 87' in system
    assert call.id.replace("-", "")[:8] in system


@pytest.mark.asyncio
async def test_data_loader_round(runtime, generator, data):
    generator.replies.append('<action name="load_wallet">{"chain": "base"}</action>')

    calls = await generate_action_calls(
        generator,
        {"actions": [PROFILE_ACTION], "data": [], "messages": data.state.messages},
        data,
    )

    assert calls == [ActionCallOutput(name="load_wallet", params={"chain": "base"})]


@pytest.mark.asyncio
async def test_context_selection_round(runtime, generator, data):
    contexts = [
        Context(name="wallet", description="Wallet tools", content=Prompt("wallet")),
        Context(name="talent", description="Talent search", content=Prompt("talent")),
    ]
    generator.replies.append('<load name="talent"/><unload name="wallet"/>')

    selection = await generate_context_selection(
        generator,
        {"contexts": contexts, "active": contexts[:1], "messages": data.state.messages},
        data,
    )

    assert selection.load == ["talent"]
    assert selection.unload == ["wallet"]
    assert '<context name="talent">Talent search</context>' in generator.requests[0].system
