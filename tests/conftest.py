"""Pytest configuration and shared fixtures."""

import uuid

import pytest
import pytest_asyncio

from ember.agent.runtime import AgentRuntime
from ember.config.schema import EmberConfig
from ember.llm.client import GenerateTextParams, GenerationError
from ember.memory.schema import Account, Message
from ember.memory.storage import InMemoryDatabaseAdapter


class ScriptedGenerator:
    """Text generator replaying canned replies in order.

    A reply that is an exception instance is raised instead of returned.
    """

    def __init__(self, replies=()):
        self.replies = list(replies)
        self.requests: list[GenerateTextParams] = []

    async def generate_text(self, params: GenerateTextParams) -> str:
        self.requests.append(params)
        if not self.replies:
            raise GenerationError("No scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class CollectingClient:
    """Client recording every delivered message."""

    def __init__(self, name: str = "test"):
        self.name = name
        self.sent: list[Message] = []
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    async def send_message(self, message: Message) -> Message:
        self.sent.append(message)
        return message


@pytest.fixture
def config() -> EmberConfig:
    """Provide a configuration with short timeouts for tests."""
    return EmberConfig(
        agent={"name": "Ember", "username": "ember"},
        runtime={"generation_timeout": 5.0, "action_timeout": 5.0},
    )


@pytest.fixture
def db() -> InMemoryDatabaseAdapter:
    return InMemoryDatabaseAdapter()


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def client() -> CollectingClient:
    return CollectingClient()


@pytest.fixture
def user() -> Account:
    return Account(id=str(uuid.uuid4()), name="Alice", username="alice")


@pytest.fixture
def room_id() -> str:
    return str(uuid.uuid4())


@pytest_asyncio.fixture
async def runtime(config, generator, db, client):
    """Provide an initialized runtime with a collecting client registered."""
    rt = AgentRuntime(config, generator=generator, db=db)
    rt.register_client(client)
    await rt.initialize()
    yield rt
    await rt.events.drain()
