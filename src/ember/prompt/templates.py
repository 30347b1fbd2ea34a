"""Prompt templates for the chat, action, data-loader and context-loader rounds."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ember.prompt.formatters import (
    format_action,
    format_action_call,
    format_action_result,
    format_context,
    format_context_details,
    format_data,
    format_msg,
    format_thought,
)
from ember.prompt.template import Prompt

if TYPE_CHECKING:
    from ember.agent.context import RuntimeData


_OUTPUT_RULES = """\
Reply with tags only, inside a single <output> element:

- <thinking msgId="MSG_ID">your private reasoning</thinking> exactly once.
- <response msgId="MSG_ID">text sent to the user</response> zero or more times.
- <action name="ACTION_NAME">{"param": "value"}</action> zero or more times.
  The body is a JSON object matching the action's params schema.

Only call actions listed above. Never invent action results: when you need
information an action provides, call the action and wait for its result."""


CHAT_HANDLER_TEMPLATE = f"""\
# Contexts
{{{{contexts}}}}

# Data
{{{{data}}}}

# Available actions
{{{{actions}}}}

# Conversation (oldest first)
{{{{conversation}}}}

# New message
{{{{msg}}}}

# Instructions
Think about the new message, then decide whether to respond, call actions, or both.

{_OUTPUT_RULES}
"""


CHAT_ACTION_HANDLER_TEMPLATE = f"""\
# Contexts
{{{{contexts}}}}

# Data
{{{{data}}}}

# Available actions
{{{{actions}}}}

# Conversation (oldest first)
{{{{conversation}}}}

# New message
{{{{msg}}}}

# Your previous response
{{{{response}}}}

# Your previous thinking
{{{{thinking}}}}

# Action calls
{{{{calls}}}}

# Action results
{{{{results}}}}

# Instructions
The actions you called have finished. Use their results to answer the new
message. Call further actions only when the results are not enough, and never
repeat a call that already has a result.

{_OUTPUT_RULES}
"""


DATA_LOADER_TEMPLATE = """\
# Data already loaded
{{data}}

# Data actions
{{actions}}

# Recent messages
{{messages}}

# Instructions
Decide which data actions must run before answering the latest message.
Reply inside a single <output> element with one <action name="ACTION_NAME">{json params}</action>
per action to run, or an empty <output></output> when nothing is needed.
"""


CONTEXT_LOADER_TEMPLATE = """\
# Available contexts
{{contexts}}

# Active contexts
{{active}}

# Recent messages
{{messages}}

# Instructions
Pick the contexts needed to handle the latest message. Reply inside a single
<output> element with <load name="CONTEXT_NAME"/> for each context to activate and
<unload name="CONTEXT_NAME"/> for each active context that is no longer relevant.
"""


def _msg(data: RuntimeData, message: Any) -> str:
    return format_msg(data.actors.get(message.user_id), message)


def format_chat_variables(variables: Mapping[str, Any], data: RuntimeData) -> dict[str, Any]:
    return {
        "contexts": [format_context(c) for c in variables.get("contexts", [])],
        "data": format_data(variables.get("data")),
        "actions": [format_action(a, data) for a in variables.get("actions", [])],
        "conversation": [_msg(data, m) for m in variables.get("conversation", [])],
        "msg": _msg(data, variables["msg"]),
    }


def format_chat_action_variables(
    variables: Mapping[str, Any], data: RuntimeData
) -> dict[str, Any]:
    response = variables.get("response")
    return {
        **format_chat_variables(variables, data),
        "response": _msg(data, response) if response is not None else "No response yet",
        "thinking": [format_thought(t) for t in variables.get("thinking", [])],
        "calls": [format_action_call(c) for c in variables.get("calls", [])],
        "results": [format_action_result(r) for r in variables.get("results", [])],
    }


def format_data_loader_variables(
    variables: Mapping[str, Any], data: RuntimeData
) -> dict[str, Any]:
    return {
        "data": format_data(variables.get("data")),
        "actions": [format_action(a, data) for a in variables.get("actions", [])],
        "messages": [_msg(data, m) for m in variables.get("messages", [])],
    }


def format_context_loader_variables(
    variables: Mapping[str, Any], data: RuntimeData
) -> dict[str, Any]:
    return {
        "contexts": [format_context_details(c.name, c.description) for c in variables["contexts"]],
        "active": [format_context_details(c.name, c.description) for c in variables["active"]],
        "messages": [_msg(data, m) for m in variables.get("messages", [])],
    }


CHAT_HANDLER_PROMPT = Prompt(CHAT_HANDLER_TEMPLATE, format_chat_variables)
CHAT_ACTION_HANDLER_PROMPT = Prompt(CHAT_ACTION_HANDLER_TEMPLATE, format_chat_action_variables)
DATA_LOADER_PROMPT = Prompt(DATA_LOADER_TEMPLATE, format_data_loader_variables)
CONTEXT_LOADER_PROMPT = Prompt(CONTEXT_LOADER_TEMPLATE, format_context_loader_variables)
