"""Pluggable collaborators of the agent: contexts, providers, evaluators, services."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from ember.memory.schema import Actor, Message
from ember.prompt.template import Prompt

if TYPE_CHECKING:
    from ember.agent.runtime import AgentRuntime
    from ember.agent.state import State


@dataclass
class RuntimeData:
    """Live objects handed to prompt formatters and context preparation."""

    runtime: AgentRuntime
    message: Message
    state: State
    actors: dict[str, Actor] = field(default_factory=dict)

    @classmethod
    def from_state(cls, runtime: AgentRuntime, message: Message, state: State) -> RuntimeData:
        actors = {actor.id: actor for actor in state.actors}
        actors.setdefault(state.agent.id, state.agent)
        return cls(runtime=runtime, message=message, state=state, actors=actors)


ContextPrepare = Callable[[RuntimeData], Awaitable[Mapping[str, Any]]]


@dataclass
class Context:
    """A named prompt fragment.

    ``content`` is rendered with the variables returned by ``prepare`` (or
    none) and injected into the chat prompts as ``<context name="...">``.
    """

    name: str
    description: str
    content: Prompt[Any]
    prepare: ContextPrepare | None = None

    async def render(self, data: RuntimeData) -> dict[str, str]:
        variables = await self.prepare(data) if self.prepare is not None else {}
        return {"name": self.name, "content": self.content.render(variables, data)}


@runtime_checkable
class Provider(Protocol):
    """Source of extra context fetched at the start of every turn."""

    async def get(self, runtime: AgentRuntime, message: Message, state: State) -> Any: ...


EvaluatorHandler = Callable[["AgentRuntime", Message, "State"], Awaitable[Any]]
EvaluatorValidator = Callable[["AgentRuntime", Message, "State"], Awaitable[bool]]


@dataclass
class Evaluator:
    """Post-turn assessment run after every handled message."""

    name: str
    handler: EvaluatorHandler
    description: str = ""
    validate: EvaluatorValidator | None = None

    async def should_run(self, runtime: AgentRuntime, message: Message, state: State) -> bool:
        if self.validate is None:
            return True
        return await self.validate(runtime, message, state)


@runtime_checkable
class Service(Protocol):
    """Long-lived collaborator initialised once with the runtime."""

    async def initialize(self, runtime: AgentRuntime) -> None: ...
