"""Tests for the agent runtime."""

import uuid

import pytest

from ember.agent.actions import Action
from ember.agent.context import Context, Evaluator
from ember.agent.runtime import (
    AgentRuntime,
    MissingSettingError,
    create_database_adapter,
    string_to_uuid,
)
from ember.config.schema import EmberConfig
from ember.llm.retry import RetryingGenerator
from ember.memory.sqlite import SQLiteDatabaseAdapter
from ember.memory.storage import InMemoryDatabaseAdapter
from ember.plugins.base import Plugin
from ember.prompt.template import Prompt


async def noop(runtime, message, state, params):
    return None


def test_string_to_uuid_is_deterministic():
    assert string_to_uuid("Ember") == string_to_uuid("Ember")
    assert string_to_uuid("Ember") != string_to_uuid("Scout")
    uuid.UUID(string_to_uuid("Ember"))


def test_agent_id_derived_from_name(config, generator):
    runtime = AgentRuntime(config, generator=generator, db=InMemoryDatabaseAdapter())

    assert runtime.agent_id == string_to_uuid("Ember")
    assert runtime.agent.username == "ember"


def test_agent_id_from_config(generator):
    agent_id = str(uuid.uuid4())
    config = EmberConfig(agent={"id": agent_id})
    runtime = AgentRuntime(config, generator=generator, db=InMemoryDatabaseAdapter())

    assert runtime.agent_id == agent_id


def test_get_setting_prefers_config(monkeypatch, generator):
    monkeypatch.setenv("TALENT_API_KEY", "from-env")
    config = EmberConfig(settings={"TALENT_API_KEY": "from-config"})
    runtime = AgentRuntime(config, generator=generator, db=InMemoryDatabaseAdapter())

    assert runtime.get_setting("TALENT_API_KEY") == "from-config"


def test_get_setting_falls_back_to_env_then_default(monkeypatch, config, generator):
    monkeypatch.setenv("TALENT_API_KEY", "from-env")
    monkeypatch.delenv("EMBER_MISSING_SETTING", raising=False)
    runtime = AgentRuntime(config, generator=generator, db=InMemoryDatabaseAdapter())

    assert runtime.get_setting("TALENT_API_KEY") == "from-env"
    assert runtime.get_setting("EMBER_MISSING_SETTING", "fallback") == "fallback"
    with pytest.raises(MissingSettingError):
        runtime.get_setting("EMBER_MISSING_SETTING")


def test_register_plugin(config, generator, client):
    context = Context(name="talent", description="Talent search", content=Prompt("talent"))
    evaluator = Evaluator(name="record", handler=noop)
    plugin = Plugin(
        name="talent",
        actions=[Action(name="talent_get_builder_profile", handler=noop)],
        data_actions=[Action(name="load_profile", handler=noop)],
        evaluators=[evaluator],
        contexts=[context],
        clients=[client],
    )

    runtime = AgentRuntime(
        config, generator=generator, db=InMemoryDatabaseAdapter(), plugins=[plugin]
    )

    assert runtime.plugins == [plugin]
    assert runtime.actions.names == ["talent_get_builder_profile"]
    assert runtime.data_actions.names == ["load_profile"]
    assert runtime.evaluators == [evaluator]
    assert runtime.contexts == {"talent": context}
    assert runtime.clients == {"test": client}


@pytest.mark.asyncio
async def test_initialize_creates_agent_account_and_services(config, generator, db):
    initialized = []

    class Service:
        async def initialize(self, runtime):
            initialized.append(runtime.agent_id)

    runtime = AgentRuntime(config, generator=generator, db=db)
    runtime.register_service(Service())
    await runtime.initialize()

    account = await db.get_account_by_id(runtime.agent_id)
    assert account is not None
    assert account.username == "ember"
    assert initialized == [runtime.agent_id]


@pytest.mark.asyncio
async def test_start_and_stop(runtime, client):
    class BrokenClient:
        name = "broken"

        async def start(self):
            pass

        async def stop(self):
            raise RuntimeError("already gone")

        async def send_message(self, message):
            return message

    runtime.register_client(BrokenClient())

    await runtime.start()
    assert client.started

    await runtime.stop()
    assert not client.started


@pytest.mark.asyncio
async def test_handle_message_unknown_client(runtime, user, room_id):
    with pytest.raises(KeyError):
        await runtime.handle_client_message("nope", room_id, user, "hello")


@pytest.mark.asyncio
async def test_handle_message_registers_connection(runtime, generator, db, user, room_id):
    generator.replies.append("<thinking>t</thinking>")

    await runtime.handle_client_message("test", room_id, user, "hello")

    assert await db.get_room(room_id) is not None
    participants = await db.get_participants_for_room(room_id)
    assert set(participants) == {user.id, runtime.agent_id}


def test_create_database_adapter(tmp_path):
    assert isinstance(create_database_adapter(EmberConfig()), InMemoryDatabaseAdapter)

    config = EmberConfig(storage={"backend": "sqlite", "path": str(tmp_path / "ember.db")})
    assert isinstance(create_database_adapter(config), SQLiteDatabaseAdapter)


def test_from_config():
    runtime = AgentRuntime.from_config(EmberConfig())

    assert isinstance(runtime.generator, RetryingGenerator)
    assert isinstance(runtime.db, InMemoryDatabaseAdapter)


def test_get_setting_keeps_empty_values(monkeypatch, generator):
    monkeypatch.setenv("TALENT_API_KEY", "from-env")
    monkeypatch.setenv("EMBER_EMPTY_SETTING", "")
    config = EmberConfig(settings={"TALENT_API_KEY": ""})
    runtime = AgentRuntime(config, generator=generator, db=InMemoryDatabaseAdapter())

    assert runtime.get_setting("TALENT_API_KEY") == ""
    assert runtime.get_setting("EMBER_EMPTY_SETTING", "fallback") == ""
