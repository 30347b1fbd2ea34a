"""Agent runtime: the composition root wiring ports into the loop."""

from __future__ import annotations

import logging
import os
import uuid
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ember.agent.actions import Action, ActionDispatcher, ActionRegistry
from ember.agent.connection import ConnectionManager
from ember.agent.context import Context, Evaluator, Provider, Service
from ember.agent.loop import AgentLoop, TurnResult
from ember.agent.state import StateComposer
from ember.channels.base import Client
from ember.config.schema import EmberConfig
from ember.events import EventEmitter
from ember.llm.client import TextGenerator
from ember.llm.factory import create_text_generator
from ember.memory.manager import MemoryManagers
from ember.memory.schema import Account, Actor
from ember.memory.sqlite import SQLiteDatabaseAdapter
from ember.memory.storage import DatabaseAdapter, InMemoryDatabaseAdapter
from ember.plugins.base import Plugin

logger = logging.getLogger(__name__)


class MissingSettingError(KeyError):
    """A setting required by a plugin is not configured."""


def string_to_uuid(value: str) -> str:
    """Derive a stable UUID from a string."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, value))


def create_database_adapter(config: EmberConfig) -> DatabaseAdapter:
    """Create the persistence adapter selected by ``config.storage.backend``.

    Raises:
        ValueError: If the backend is not recognised.
    """
    backend = config.storage.backend
    if backend == "memory":
        return InMemoryDatabaseAdapter()
    elif backend == "sqlite":
        return SQLiteDatabaseAdapter(config.storage.path)
    else:
        raise ValueError(f"Unknown storage backend: {backend}")


class AgentRuntime:
    """Owns the agent's registries and wires the ports together.

    Handlers, providers and evaluators receive the runtime as their context:
    it exposes the agent identity, settings, memory managers, events and
    connected clients.
    """

    def __init__(
        self,
        config: EmberConfig,
        generator: TextGenerator,
        db: DatabaseAdapter,
        plugins: Iterable[Plugin] = (),
    ):
        """Initialize the runtime.

        Args:
            config: Ember configuration
            generator: Text-generation backend
            db: Persistence adapter
            plugins: Plugins registered at construction
        """
        self.config = config
        self.generator = generator
        self.db = db

        self.agent_id = config.agent.id or string_to_uuid(config.agent.name)
        self.agent = Actor(
            id=self.agent_id, name=config.agent.name, username=config.agent.username
        )

        self.events = EventEmitter()
        self.memories = MemoryManagers.create(db, self.agent_id, self.events)

        self.actions = ActionRegistry()
        self.data_actions = ActionRegistry()
        self.providers: list[Provider] = []
        self.evaluators: list[Evaluator] = []
        self.contexts: dict[str, Context] = {}
        self.services: list[Service] = []
        self.clients: dict[str, Client] = {}
        self.plugins: list[Plugin] = []

        history = config.runtime.history
        self.composer = StateComposer(db, self.memories, self.agent, history)
        self.connections = ConnectionManager(
            db, Account(id=self.agent_id, name=self.agent.name, username=self.agent.username)
        )
        self.dispatcher = ActionDispatcher(
            self.actions,
            self.memories,
            self.composer,
            self,
            timeout=config.runtime.action_timeout,
        )
        self.loop = AgentLoop(
            self,
            generator,
            self.memories,
            self.composer,
            self.dispatcher,
            self.connections,
            max_steps=config.agent.max_steps,
            generation_timeout=config.runtime.generation_timeout,
            action_timeout=config.runtime.action_timeout,
        )

        for plugin in plugins:
            self.register_plugin(plugin)

    @classmethod
    def from_config(cls, config: EmberConfig, plugins: Iterable[Plugin] = ()) -> AgentRuntime:
        """Build a runtime with the generator and adapter selected by configuration."""
        return cls(
            config,
            generator=create_text_generator(config),
            db=create_database_adapter(config),
            plugins=plugins,
        )

    # Registration

    def register_plugin(self, plugin: Plugin) -> None:
        self.plugins.append(plugin)
        for a in plugin.actions:
            self.register_action(a)
        for a in plugin.data_actions:
            self.register_data_action(a)
        for provider in plugin.providers:
            self.register_provider(provider)
        for evaluator in plugin.evaluators:
            self.register_evaluator(evaluator)
        for context in plugin.contexts:
            self.register_context(context)
        for service in plugin.services:
            self.register_service(service)
        for client in plugin.clients:
            self.register_client(client)
        logger.info("Registered plugin %s", plugin.name)

    def register_action(self, action: Action) -> None:
        self.actions.register(action)

    def register_data_action(self, action: Action) -> None:
        self.data_actions.register(action)

    def register_provider(self, provider: Provider) -> None:
        self.providers.append(provider)

    def register_evaluator(self, evaluator: Evaluator) -> None:
        self.evaluators.append(evaluator)

    def register_context(self, context: Context) -> None:
        self.contexts[context.name] = context

    def register_service(self, service: Service) -> None:
        self.services.append(service)

    def register_client(self, client: Client) -> None:
        self.clients[client.name] = client

    # Settings

    def get_setting(self, key: str, default: str | None = None) -> str:
        """Read a setting from configuration, then the environment.

        Args:
            key: Setting name (e.g. ``TALENT_API_KEY``)
            default: Value used when the setting is absent

        Returns:
            The setting value

        Raises:
            MissingSettingError: If the setting is absent and has no default
        """
        value = self.config.settings.get(key)
        if value is None:
            value = os.environ.get(key, default)
        if value is None:
            raise MissingSettingError(key)
        return value

    # Lifecycle

    async def initialize(self) -> None:
        """Prepare storage, the agent account and every registered service."""
        await self.db.init()
        await self.connections.ensure_user_exists(
            self.agent_id, self.agent.username, self.agent.name
        )
        for service in self.services:
            await service.initialize(self)
        logger.info(
            "Agent %s (%s) initialized with %d action(s), %d plugin(s)",
            self.agent.name,
            self.agent_id,
            len(self.actions),
            len(self.plugins),
        )

    async def start(self) -> None:
        """Start every registered client."""
        for client in self.clients.values():
            await client.start()

    async def stop(self) -> None:
        """Stop clients, wait for event listeners and release resources."""
        for client in self.clients.values():
            try:
                await client.stop()
            except Exception as e:
                logger.warning("Failed to stop client %s: %s", client.name, e)

        await self.events.drain()

        close = getattr(self.generator, "close", None)
        if close is not None:
            await close()
        await self.db.close()

    # Messages

    async def handle_client_message(
        self,
        client: str,
        room_id: str,
        user: Account,
        text: str,
        system: Sequence[Context] = (),
        metadata: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> TurnResult:
        """Handle a message a client received.

        Args:
            client: Name of the registered client the message came from
            room_id: Conversation scope
            user: Author of the message
            text: Message text
            system: Contexts always injected for this client
            metadata: Transport metadata attached to the message
            params: Overrides for the generation parameters

        Returns:
            Summary of the turn

        Raises:
            KeyError: If no client with that name is registered
        """
        if client not in self.clients:
            raise KeyError(f"Unknown client '{client}'")

        return await self.loop.handle_message(
            self.clients[client], system, room_id, user, text, metadata=metadata, params=params
        )
