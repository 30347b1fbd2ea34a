"""Plugin bundle type."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ember.agent.actions import Action
    from ember.agent.context import Context, Evaluator, Provider, Service
    from ember.channels.base import Client


@dataclass
class Plugin:
    """A named bundle of agent capabilities.

    Registering a plugin with the runtime registers everything it carries.
    """

    name: str
    description: str = ""
    actions: list[Action] = field(default_factory=list)
    data_actions: list[Action] = field(default_factory=list)
    providers: list[Provider] = field(default_factory=list)
    evaluators: list[Evaluator] = field(default_factory=list)
    contexts: list[Context] = field(default_factory=list)
    services: list[Service] = field(default_factory=list)
    clients: list[Client] = field(default_factory=list)
