"""Orchestration loop turning an inbound message into replies and actions.

One turn: record the message, compose state, let the LLM decide what to say
and which actions to call, dispatch the calls concurrently and feed their
results back into follow-up rounds, bounded by a step budget.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ember.agent.actions import ActionDispatcher
from ember.agent.connection import ConnectionManager
from ember.agent.context import Context, Evaluator, RuntimeData
from ember.agent.generate import (
    ChatOutput,
    generate_action_calls,
    generate_action_results,
    generate_chat_output,
    generate_context_selection,
)
from ember.agent.state import State, StateComposer
from ember.channels.base import Client
from ember.llm.client import TextGenerator
from ember.memory.manager import MemoryManagers
from ember.memory.schema import Account, Memory, Message

if TYPE_CHECKING:
    from ember.agent.runtime import AgentRuntime

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 3


class TurnPhase(str, Enum):
    """Phases of a turn."""

    IDLE = "idle"
    COMPOSING_STATE = "composing_state"
    GENERATING_INITIAL = "generating_initial"
    DISPATCHING = "dispatching"
    GENERATING_FOLLOWUP = "generating_followup"
    DONE = "done"


@dataclass
class TurnResult:
    """What happened while handling one inbound message.

    ``phase`` is the last phase entered; with ``error`` set it is the phase
    the turn failed in.
    """

    message: Message | None = None
    responses: list[Message] = field(default_factory=list)
    thoughts: list[Memory] = field(default_factory=list)
    calls: list[Memory] = field(default_factory=list)
    steps: int = 0
    dropped_calls: int = 0
    phase: TurnPhase = TurnPhase.IDLE
    error: Exception | None = None


class RoomLocks:
    """One asyncio lock per room so turns of a room never interleave.

    A room's lock is dropped once no turn holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def get(self, room_id: str) -> asyncio.Lock:
        if room_id not in self._locks:
            self._locks[room_id] = asyncio.Lock()
        return self._locks[room_id]

    @asynccontextmanager
    async def hold(self, room_id: str) -> AsyncIterator[None]:
        lock = self.get(room_id)
        self._users[room_id] = self._users.get(room_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[room_id] -= 1
            if not self._users[room_id]:
                del self._users[room_id]
                del self._locks[room_id]

    def locked(self, room_id: str) -> bool:
        return room_id in self._locks and self._locks[room_id].locked()

    def __len__(self) -> int:
        return len(self._locks)


class AgentLoop:
    """Runs turns for the agent.

    The loop receives its collaborators explicitly; the runtime is only used
    as the handler-facing context and as the source of the registered
    actions, providers, evaluators and contexts.
    """

    def __init__(
        self,
        runtime: AgentRuntime,
        generator: TextGenerator,
        memories: MemoryManagers,
        composer: StateComposer,
        dispatcher: ActionDispatcher,
        connections: ConnectionManager,
        max_steps: int = DEFAULT_MAX_STEPS,
        generation_timeout: float | None = None,
        action_timeout: float | None = None,
    ):
        """Initialize the loop.

        Args:
            runtime: Runtime handed to handlers, providers and evaluators
            generator: Text-generation backend
            memories: Memory managers of the agent
            composer: State composer
            dispatcher: Dispatcher executing action calls
            connections: Connection manager for accounts, rooms and participants
            max_steps: Maximum dispatch/follow-up rounds per turn
            generation_timeout: Seconds per LLM round (None disables)
            action_timeout: Seconds per data-loader action (None disables)
        """
        self.runtime = runtime
        self.generator = generator
        self.memories = memories
        self.composer = composer
        self.dispatcher = dispatcher
        self.connections = connections
        self.max_steps = max_steps
        self.generation_timeout = generation_timeout
        self.action_timeout = action_timeout
        self.locks = RoomLocks()
        self.active_contexts: dict[str, set[str]] = {}

    async def handle_message(
        self,
        client: Client,
        system_contexts: Sequence[Context],
        room_id: str,
        user: Account,
        text: str,
        metadata: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> TurnResult:
        """Handle one inbound message.

        Failures after the message is recorded are logged and end the turn
        silently; the user gets no reply from the loop itself.

        Args:
            client: Client delivering the agent's replies
            system_contexts: Contexts always injected into the chat prompts
            room_id: Conversation scope
            user: Author of the message
            text: Message text
            metadata: Metadata attached to the recorded message
            params: Overrides for the generation parameters (model, temperature)

        Returns:
            Summary of the turn
        """
        async with self.locks.hold(room_id):
            await self.connections.ensure_connection(user.id, room_id, user.username, user.name)

            message = await self.memories.messages.create_memory(
                {
                    "user_id": user.id,
                    "room_id": room_id,
                    "content": {"text": text, "source": client.name},
                    "metadata": dict(metadata or {}),
                }
            )
            logger.info("Handling message %s from %s in room %s", message.id, user.username, room_id)

            turn = TurnResult(message=message)
            try:
                await self._run_turn(turn, client, system_contexts, message, params)
            except Exception as e:
                logger.exception(
                    "Turn for message %s failed during %s", message.id, turn.phase.value
                )
                turn.error = e
                return turn

            turn.phase = TurnPhase.DONE
            logger.info(
                "Finished message %s: %d response(s), %d call(s), %d step(s)",
                message.id,
                len(turn.responses),
                len(turn.calls),
                turn.steps,
            )
            return turn

    async def _run_turn(
        self,
        turn: TurnResult,
        client: Client,
        system_contexts: Sequence[Context],
        message: Message,
        params: Mapping[str, Any] | None,
    ) -> None:
        turn.phase = TurnPhase.COMPOSING_STATE
        state = await self.composer.compose_state(message)
        data_ctx = RuntimeData.from_state(self.runtime, message, state)

        await self._run_providers(message, state)
        await self._select_contexts(message.room_id, state, data_ctx, params)
        data = await self._load_data(message, state, data_ctx, params)
        contexts = await self._prepare_contexts(system_contexts, message.room_id, data_ctx)

        turn.phase = TurnPhase.GENERATING_INITIAL
        actions = [
            a
            for a in self.runtime.actions.enabled()
            if await a.is_valid(self.runtime, message, state)
        ]
        msg, conversation = self._split_messages(state, message)
        output = await generate_chat_output(
            self.generator,
            {
                "contexts": contexts,
                "actions": actions,
                "conversation": conversation,
                "msg": msg,
                "data": data,
            },
            data_ctx,
            params=params,
            timeout=self.generation_timeout,
        )
        logger.debug(
            "Initial round: %d thinking, %d response(s), %d call(s)",
            len(output.thinking),
            len(output.responses),
            len(output.calls),
        )

        await self._record_thinking(turn, message, output)

        response: Message | None = None
        if output.responses:
            response, state = await self._respond(turn, client, message, output, state)

        pending = output.calls
        step = 0
        while pending and step < self.max_steps:
            turn.phase = TurnPhase.DISPATCHING
            new_calls = [
                await self.memories.actions.create_memory(
                    {
                        "user_id": self.runtime.agent_id,
                        "room_id": message.room_id,
                        "content": {
                            "type": "call",
                            "name": call.name,
                            "msg_id": message.id,
                            "params": call.params,
                        },
                    }
                )
                for call in pending
            ]
            turn.calls.extend(new_calls)

            state = await self.dispatcher.dispatch(message, new_calls, state)

            turn.phase = TurnPhase.GENERATING_FOLLOWUP
            data_ctx = RuntimeData.from_state(self.runtime, message, state)
            msg, conversation = self._split_messages(state, message)
            followup = await generate_action_results(
                self.generator,
                {
                    "contexts": contexts,
                    "actions": self.runtime.actions.all(),
                    "conversation": conversation,
                    "msg": msg,
                    "response": response,
                    "calls": turn.calls,
                    "results": list(state.actions.results.values()),
                    "thinking": state.thoughts,
                    "data": data,
                },
                data_ctx,
                params=params,
                timeout=self.generation_timeout,
            )

            await self._record_thinking(turn, message, followup)
            if followup.responses:
                response, state = await self._respond(turn, client, message, followup, state)

            pending = followup.calls
            step += 1

        turn.steps = step
        if pending:
            turn.dropped_calls = len(pending)
            logger.warning(
                "Step limit %d reached for message %s, dropping %d call(s): %s",
                self.max_steps,
                message.id,
                len(pending),
                ", ".join(call.name for call in pending),
            )

        await self._run_evaluators(message, state)

    @staticmethod
    def _split_messages(state: State, message: Message) -> tuple[Message, list[Message]]:
        """Triggering message and the rest of the conversation in chronological order."""
        return message, [m for m in reversed(state.messages) if m.id != message.id]

    async def _record_thinking(self, turn: TurnResult, message: Message, output: ChatOutput) -> None:
        if not output.thinking:
            logger.warning("No <thinking> in LLM output for message %s", message.id)
            return

        thought = await self.memories.thoughts.create_memory(
            {
                "user_id": self.runtime.agent_id,
                "room_id": message.room_id,
                "content": {"msg_id": message.id, "text": output.thinking[0].content},
                "metadata": dict(message.metadata),
            }
        )
        turn.thoughts.append(thought)

    async def _respond(
        self,
        turn: TurnResult,
        client: Client,
        message: Message,
        output: ChatOutput,
        state: State,
    ) -> tuple[Message, State]:
        response = await self.memories.messages.create_memory(
            {
                "user_id": self.runtime.agent_id,
                "room_id": message.room_id,
                "content": {
                    "text": "\n".join(r.content for r in output.responses),
                    "source": client.name,
                    "in_reply_to": message.id,
                },
            }
        )
        state = await self.composer.update_recent_message_state(state)
        delivered = await client.send_message(response)
        turn.responses.append(delivered)
        return delivered, state

    async def _run_providers(self, message: Message, state: State) -> None:
        providers = list(self.runtime.providers)
        if not providers:
            return

        results = await asyncio.gather(
            *(p.get(self.runtime, message, state) for p in providers), return_exceptions=True
        )
        for provider, result in zip(providers, results):
            if isinstance(result, Exception):
                logger.warning("Provider %s failed: %s", type(provider).__name__, result)

    async def _select_contexts(
        self,
        room_id: str,
        state: State,
        data_ctx: RuntimeData,
        params: Mapping[str, Any] | None,
    ) -> None:
        registered = self.runtime.contexts
        if not registered:
            return

        active = self.active_contexts.setdefault(room_id, set())
        selection = await generate_context_selection(
            self.generator,
            {
                "contexts": list(registered.values()),
                "active": [registered[name] for name in sorted(active) if name in registered],
                "messages": state.messages,
            },
            data_ctx,
            params=params,
            timeout=self.generation_timeout,
        )

        for name in selection.load:
            if name in registered:
                active.add(name)
            else:
                logger.warning("Cannot load unknown context '%s'", name)
        for name in selection.unload:
            active.discard(name)
        if not active:
            del self.active_contexts[room_id]

        logger.debug("Active contexts in room %s: %s", room_id, sorted(active))

    async def _load_data(
        self,
        message: Message,
        state: State,
        data_ctx: RuntimeData,
        params: Mapping[str, Any] | None,
    ) -> list[Any]:
        data_actions = self.runtime.data_actions
        if not data_actions.enabled():
            return []

        data: list[Any] = []
        calls = await generate_action_calls(
            self.generator,
            {"actions": data_actions.enabled(), "data": data, "messages": state.messages},
            data_ctx,
            params=params,
            timeout=self.generation_timeout,
        )

        for call in calls:
            data_action = data_actions.get(call.name)
            if data_action is None:
                logger.warning("No data action named '%s', skipping", call.name)
                continue
            try:
                schema = data_action.resolve_schema(self.runtime, message, state)
                result = await asyncio.wait_for(
                    data_action.handler(
                        self.runtime, message, state, schema.model_validate(call.params)
                    ),
                    timeout=self.action_timeout,
                )
            except Exception as e:
                logger.warning("Data action %s failed: %s", call.name, e)
                continue
            data.append(result)

        return data

    async def _prepare_contexts(
        self, system_contexts: Sequence[Context], room_id: str, data_ctx: RuntimeData
    ) -> list[dict[str, str]]:
        active = [
            self.runtime.contexts[name]
            for name in sorted(self.active_contexts.get(room_id, set()))
            if name in self.runtime.contexts
        ]
        return list(await asyncio.gather(*(c.render(data_ctx) for c in [*system_contexts, *active])))

    async def _run_evaluators(self, message: Message, state: State) -> None:
        evaluators = list(self.runtime.evaluators)
        if not evaluators:
            return

        async def evaluate(evaluator: Evaluator) -> None:
            if await evaluator.should_run(self.runtime, message, state):
                await evaluator.handler(self.runtime, message, state)

        results = await asyncio.gather(*(evaluate(e) for e in evaluators), return_exceptions=True)
        for evaluator, result in zip(evaluators, results):
            if isinstance(result, Exception):
                logger.warning("Evaluator %s failed: %s", evaluator.name, result)
