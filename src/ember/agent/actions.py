"""Action definitions, registry and concurrent dispatcher.

An action is a named async handler with a pydantic parameter model. The LLM
requests actions with ``<action>`` tags; each request is persisted as a Call
memory, executed by :class:`ActionDispatcher` and settled into exactly one
Result memory.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic_core import to_jsonable_python

from ember.memory.manager import MemoryManagers
from ember.memory.schema import ActionCallContent, Memory, Message

if TYPE_CHECKING:
    from ember.agent.runtime import AgentRuntime
    from ember.agent.state import State, StateComposer

logger = logging.getLogger(__name__)


class AnyParams(BaseModel):
    """Permissive parameter model for actions that declare none."""

    model_config = ConfigDict(extra="allow")


ParamsFactory = Callable[["AgentRuntime", Message, "State"], type[BaseModel]]
ActionHandler = Callable[["AgentRuntime", Message, "State", Any], Awaitable[Any]]
ActionValidator = Callable[["AgentRuntime", Message, "State"], Awaitable[bool]]


@dataclass
class Action:
    """A capability the agent can invoke.

    ``parameters`` is either a pydantic model class or a function of the live
    runtime, message and state returning one. The handler receives the
    validated model instance.
    """

    name: str
    handler: ActionHandler
    description: str = ""
    parameters: type[BaseModel] | ParamsFactory | None = None
    validate: ActionValidator | None = None
    enabled: bool = True

    def resolve_schema(
        self, runtime: AgentRuntime, message: Message, state: State
    ) -> type[BaseModel]:
        if self.parameters is None:
            return AnyParams
        if isinstance(self.parameters, type) and issubclass(self.parameters, BaseModel):
            return self.parameters
        return self.parameters(runtime, message, state)

    def json_schema(self, runtime: AgentRuntime, message: Message, state: State) -> dict[str, Any]:
        return self.resolve_schema(runtime, message, state).model_json_schema()

    async def is_valid(self, runtime: AgentRuntime, message: Message, state: State) -> bool:
        if self.validate is None:
            return True
        return await self.validate(runtime, message, state)


def action(
    description: str,
    name: str | None = None,
    parameters: type[BaseModel] | ParamsFactory | None = None,
    validate: ActionValidator | None = None,
    enabled: bool = True,
) -> Callable[[ActionHandler], Action]:
    """Decorator building an :class:`Action` from an async handler.

    Args:
        description: Human-readable description shown to the LLM
        name: Action name (defaults to the function name)
        parameters: Parameter model, or a function returning one
        validate: Predicate deciding whether the action is offered this turn
        enabled: Whether the action is offered at all

    Returns:
        Decorator returning the Action

    Example:
        class WeatherParams(BaseModel):
            city: str

        @action(description="Get the weather for a city", parameters=WeatherParams)
        async def get_weather(runtime, message, state, params: WeatherParams):
            ...
    """

    def decorator(fn: ActionHandler) -> Action:
        return Action(
            name=name or fn.__name__,
            handler=fn,
            description=description or (fn.__doc__ or "").strip(),
            parameters=parameters,
            validate=validate,
            enabled=enabled,
        )

    return decorator


class ActionRegistry:
    """Ordered collection of actions.

    Duplicate names are allowed; lookup returns the first registered.
    """

    def __init__(self, actions: Iterable[Action] = ()):
        self._actions: list[Action] = list(actions)

    def register(self, action: Action) -> None:
        self._actions.append(action)
        logger.debug("Registered action %s", action.name)

    def get(self, name: str) -> Action | None:
        for candidate in self._actions:
            if candidate.name == name:
                return candidate
        return None

    def all(self) -> list[Action]:
        return list(self._actions)

    def enabled(self) -> list[Action]:
        return [a for a in self._actions if a.enabled]

    @property
    def names(self) -> list[str]:
        return [a.name for a in self._actions]

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self) -> Iterator[Action]:
        return iter(list(self._actions))


CallStatus = Literal["created", "processing", "completed", "failed"]


@dataclass
class ActionOutcome:
    """Settled outcome of one action call."""

    call_id: str
    name: str
    status: CallStatus
    result: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "completed"


class ActionDispatcher:
    """Executes batches of action calls concurrently.

    Each call is claimed before it runs, so overlapping dispatches within the
    process never execute the same call twice, and a call that already holds
    a Result is never run again.
    """

    def __init__(
        self,
        registry: ActionRegistry,
        memories: MemoryManagers,
        composer: StateComposer,
        runtime: AgentRuntime,
        timeout: float | None = None,
    ):
        """Initialize the dispatcher.

        Args:
            registry: Actions available for dispatch
            memories: Memory managers receiving the Result memories
            composer: Composer used to refresh the state after a batch
            runtime: Runtime handed to action handlers
            timeout: Per-handler timeout in seconds (None disables)
        """
        self.registry = registry
        self.memories = memories
        self.composer = composer
        self.runtime = runtime
        self.timeout = timeout
        self._in_flight: set[str] = set()

    async def dispatch(self, message: Message, calls: Sequence[Memory], state: State) -> State:
        """Run a batch of Call memories and refresh the state.

        Claims are released only once every call of the batch has settled. A
        failure to persist a Result is raised after that point.

        Args:
            message: Message that triggered the calls
            calls: Call memories to execute (other memories are ignored)
            state: Current state, handed to handlers

        Returns:
            The state recomposed after every call settled
        """
        claimed = self._claim(calls)
        try:
            if claimed:
                settled = await self._settled_call_ids(claimed)
                runnable = [(a, call) for a, call in claimed if call.id not in settled]
                for _, call in claimed:
                    if call.id in settled:
                        logger.debug("Skipping call %s: already has a result", call.id)

                results = await asyncio.gather(
                    *(self.execute(message, a, call, state) for a, call in runnable),
                    return_exceptions=True,
                )
                outcomes = [r for r in results if isinstance(r, ActionOutcome)]
                errors = [r for r in results if isinstance(r, BaseException)]
                failed = sum(1 for outcome in outcomes if not outcome.ok)
                logger.info(
                    "Dispatched %d action call(s), %d failed, %d unrecorded",
                    len(results),
                    failed,
                    len(errors),
                )
                if errors:
                    raise errors[0]
        finally:
            for _, call in claimed:
                self._in_flight.discard(call.id)

        return await self.composer.update_recent_message_state(state)

    async def _settled_call_ids(self, claimed: Sequence[tuple[Action, Memory]]) -> set[str]:
        by_room: dict[str, list[str]] = {}
        for _, call in claimed:
            by_room.setdefault(call.room_id, []).append(call.id)

        settled: set[str] = set()
        for room_id, call_ids in by_room.items():
            settled.update(await self.memories.actions.find_results(room_id, call_ids))
        return settled

    def _claim(self, calls: Sequence[Memory]) -> list[tuple[Action, Memory]]:
        claimed: list[tuple[Action, Memory]] = []
        for call in calls:
            content = call.content
            if not isinstance(content, ActionCallContent):
                continue

            if call.id in self._in_flight:
                logger.debug("Skipping call %s: already in flight", call.id)
                continue

            matched = self.registry.get(content.name)
            if matched is None:
                logger.warning("No action named '%s', skipping call %s", content.name, call.id)
                continue

            self._in_flight.add(call.id)
            claimed.append((matched, call))
        return claimed

    async def execute(
        self, message: Message, action: Action, call: Memory, state: State
    ) -> ActionOutcome:
        """Run one call and record its Result memory.

        Validation errors, handler exceptions and timeouts settle the call as
        failed; they never propagate.
        """
        content: ActionCallContent = call.content
        logger.debug("Call %s (%s) processing", call.id, action.name)

        deadline = asyncio.timeout(self.timeout)
        try:
            schema = action.resolve_schema(self.runtime, message, state)
            params = schema.model_validate(content.params)
            async with deadline:
                result = await action.handler(self.runtime, message, state, params)
            outcome = ActionOutcome(
                call_id=call.id,
                name=action.name,
                status="completed",
                result=to_jsonable_python(result, fallback=str),
            )
        except ValidationError as e:
            logger.warning("Invalid params for action %s: %s", action.name, e)
            outcome = ActionOutcome(
                call_id=call.id, name=action.name, status="failed", error=f"Invalid params: {e}"
            )
        except TimeoutError as e:
            if deadline.expired():
                logger.warning("Action %s timed out after %ss", action.name, self.timeout)
                outcome = ActionOutcome(
                    call_id=call.id,
                    name=action.name,
                    status="failed",
                    error=f"Timed out after {self.timeout}s",
                )
            else:
                outcome = self._failed(action, call, e)
        except Exception as e:
            outcome = self._failed(action, call, e)

        await self.memories.actions.create_memory(
            {
                "user_id": call.user_id,
                "room_id": call.room_id,
                "content": {
                    "type": "result",
                    "name": content.name,
                    "msg_id": content.msg_id,
                    "call_id": call.id,
                    "params": content.params,
                    "result": outcome.result,
                    "error": outcome.error,
                },
                "metadata": dict(message.metadata),
            }
        )
        logger.debug("Call %s (%s) %s", call.id, action.name, outcome.status)
        return outcome

    @staticmethod
    def _failed(action: Action, call: Memory, error: Exception) -> ActionOutcome:
        logger.warning("Action %s failed: %s", action.name, error, exc_info=True)
        return ActionOutcome(
            call_id=call.id, name=action.name, status="failed", error=str(error) or repr(error)
        )
