"""Agent runtime and orchestration loop.

Components:

- :class:`AgentRuntime` - Composition root owning registries and settings
- :class:`AgentLoop` - Turn handling bounded by a step budget
- :class:`ActionRegistry` / :class:`ActionDispatcher` - Actions and their concurrent execution
- :class:`StateComposer` - Per-turn room state
"""

from ember.agent.actions import (
    Action,
    ActionDispatcher,
    ActionOutcome,
    ActionRegistry,
    AnyParams,
    action,
)
from ember.agent.connection import ConnectionManager
from ember.agent.context import Context, Evaluator, Provider, RuntimeData, Service
from ember.agent.loop import AgentLoop, RoomLocks, TurnPhase, TurnResult
from ember.agent.runtime import AgentRuntime, MissingSettingError, string_to_uuid
from ember.agent.state import ActionsState, State, StateComposer

__all__ = [
    "Action",
    "ActionDispatcher",
    "ActionOutcome",
    "ActionRegistry",
    "ActionsState",
    "AgentLoop",
    "AgentRuntime",
    "AnyParams",
    "ConnectionManager",
    "Context",
    "Evaluator",
    "MissingSettingError",
    "Provider",
    "RoomLocks",
    "RuntimeData",
    "Service",
    "State",
    "StateComposer",
    "TurnPhase",
    "TurnResult",
    "action",
    "string_to_uuid",
]
