"""Formatters turning runtime objects into prompt-ready values."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ember.memory.schema import (
    ActionCallContent,
    ActionResultContent,
    Actor,
    Memory,
    Message,
    Thought,
)

if TYPE_CHECKING:
    from ember.agent.actions import Action
    from ember.agent.context import RuntimeData


def short_id(memory_id: str) -> str:
    """First 8 hex digits of an id, used to reference memories in prompts."""
    return memory_id.replace("-", "")[:8]


def format_action(action: Action, data: RuntimeData) -> dict[str, Any]:
    """Describe an action with the JSON schema of its parameters.

    The schema is resolved against the live runtime, message and state so that
    dynamic parameter models are rendered as they currently stand.
    """
    return {
        "name": action.name,
        "description": action.description,
        "params": action.json_schema(data.runtime, data.message, data.state),
    }


def format_action_call(call: Memory) -> dict[str, Any]:
    content: ActionCallContent = call.content
    return {
        "callId": short_id(call.id),
        "name": content.name,
        "params": content.params,
        "msgId": short_id(content.msg_id),
    }


def format_action_result(result: Memory) -> dict[str, Any]:
    content: ActionResultContent = result.content
    formatted: dict[str, Any] = {
        "callId": short_id(content.call_id),
        "name": content.name,
        "params": content.params,
        "result": content.result,
        "msgId": short_id(content.msg_id),
    }
    if content.error is not None:
        formatted["error"] = content.error
    return formatted


def format_context(context: Mapping[str, str]) -> str:
    return f'<context name="{context["name"]}">{context["content"]}</context>'


def format_context_details(name: str, description: str) -> str:
    return f'<context name="{name}">{description}</context>'


def format_msg(actor: Actor | None, message: Message) -> str:
    """Render a message as a ``<msg>`` tag attributed to its author."""
    username = actor.username if actor is not None else message.user_id
    return (
        f'<msg id="{short_id(message.id)}" user="{username}" '
        f'time="{message.created_at.isoformat()}">{message.content.text}</msg>'
    )


def format_thought(thought: Thought) -> str:
    return f'<thought msgId="{short_id(thought.content.msg_id)}">{thought.content.text}</thought>'


def format_data(data: Any) -> str:
    """Render loaded data for the ``data`` variable."""
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    return json.dumps(data, default=str, indent=2)
