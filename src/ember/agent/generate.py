"""Generation rounds: render a prompt, call the LLM, parse tagged output."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from ember.agent.context import RuntimeData
from ember.llm.client import GenerateTextParams, GenerationTimeoutError, TextGenerator
from ember.prompt.template import Prompt, PromptVisitor
from ember.prompt.templates import (
    CHAT_ACTION_HANDLER_PROMPT,
    CHAT_HANDLER_PROMPT,
    CONTEXT_LOADER_PROMPT,
    DATA_LOADER_PROMPT,
)
from ember.prompt.xml import ElementNode, ParseChildren

logger = logging.getLogger(__name__)

OutputT = TypeVar("OutputT")

OUTPUT_OPEN = "<output>"
OUTPUT_CLOSE = "</output>"


@dataclass
class ActionCallOutput:
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class ResponseOutput:
    msg_id: str | None
    content: str


@dataclass
class ChatOutput:
    """Parsed result of a chat round."""

    calls: list[ActionCallOutput] = field(default_factory=list)
    thinking: list[ResponseOutput] = field(default_factory=list)
    responses: list[ResponseOutput] = field(default_factory=list)


@dataclass
class ContextSelection:
    load: list[str] = field(default_factory=list)
    unload: list[str] = field(default_factory=list)


def parse_action_params(content: str) -> dict[str, Any]:
    """Decode an ``<action>`` body. An empty body means no parameters.

    Raises:
        ValueError: If the body is not a JSON object
    """
    if not content.strip():
        return {}
    params = json.loads(content)
    if not isinstance(params, dict):
        raise ValueError(f"action params must be a JSON object, got {type(params).__name__}")
    return params


def _visit_output(output: Any, node: ElementNode, parse_children: ParseChildren) -> None:
    parse_children()


def _visit_action(calls: list[ActionCallOutput], node: ElementNode) -> None:
    calls.append(
        ActionCallOutput(name=node.attributes["name"], params=parse_action_params(node.content))
    )


def _visit_chat_action(output: ChatOutput, node: ElementNode, parse_children: ParseChildren) -> None:
    _visit_action(output.calls, node)


def _visit_thinking(output: ChatOutput, node: ElementNode, parse_children: ParseChildren) -> None:
    output.thinking.append(ResponseOutput(msg_id=node.attributes.get("msgId"), content=node.content))


def _visit_response(output: ChatOutput, node: ElementNode, parse_children: ParseChildren) -> None:
    output.responses.append(
        ResponseOutput(msg_id=node.attributes.get("msgId"), content=node.content)
    )


CHAT_VISITORS: dict[str, PromptVisitor] = {
    "output": _visit_output,
    "action": _visit_chat_action,
    "thinking": _visit_thinking,
    "response": _visit_response,
}


async def generate_output(
    generator: TextGenerator,
    prompt: Prompt[OutputT],
    variables: Mapping[str, Any],
    data: RuntimeData | None,
    visitors: Mapping[str, PromptVisitor],
    output: OutputT,
    params: Mapping[str, Any] | None = None,
    timeout: float | None = None,
) -> OutputT:
    """Run one generation round.

    The rendered template is the system prompt; the user prompt opens an
    ``<output>`` element and generation stops at its close tag.

    Args:
        generator: Text-generation backend
        prompt: Template and formatter to render
        variables: Template variables
        data: Runtime data handed to the formatter
        visitors: Tag visitors applied to the reply
        output: Accumulator the visitors mutate
        params: Overrides for :class:`GenerateTextParams` fields (model, temperature)
        timeout: Seconds before the round is abandoned (None disables)

    Returns:
        The populated ``output``

    Raises:
        GenerationError: If the backend fails
        GenerationTimeoutError: If the round exceeds ``timeout``
    """
    system = prompt.render(variables, data)
    request = GenerateTextParams(
        system=system,
        prompt=OUTPUT_OPEN,
        stop=[OUTPUT_CLOSE],
        model="LARGE",
    )
    for key, value in (params or {}).items():
        if hasattr(request, key):
            setattr(request, key, value)

    logger.debug("System prompt:\n%s", system)

    try:
        response = await asyncio.wait_for(generator.generate_text(request), timeout=timeout)
    except TimeoutError as e:
        raise GenerationTimeoutError(f"Generation timed out after {timeout}s") from e

    logger.debug("LLM response:\n%s", response)
    return prompt.parse(response, {"output": _visit_output, **visitors}, output)


async def generate_chat_output(
    generator: TextGenerator,
    variables: Mapping[str, Any],
    data: RuntimeData,
    params: Mapping[str, Any] | None = None,
    timeout: float | None = None,
) -> ChatOutput:
    """Initial round: decide what to say and which actions to call."""
    return await generate_output(
        generator,
        CHAT_HANDLER_PROMPT,
        variables,
        data,
        CHAT_VISITORS,
        ChatOutput(),
        params=params,
        timeout=timeout,
    )


async def generate_action_results(
    generator: TextGenerator,
    variables: Mapping[str, Any],
    data: RuntimeData,
    params: Mapping[str, Any] | None = None,
    timeout: float | None = None,
) -> ChatOutput:
    """Follow-up round: react to the results of the calls made so far."""
    return await generate_output(
        generator,
        CHAT_ACTION_HANDLER_PROMPT,
        variables,
        data,
        CHAT_VISITORS,
        ChatOutput(),
        params=params,
        timeout=timeout,
    )


async def generate_action_calls(
    generator: TextGenerator,
    variables: Mapping[str, Any],
    data: RuntimeData,
    params: Mapping[str, Any] | None = None,
    timeout: float | None = None,
) -> list[ActionCallOutput]:
    """Data-loader round: pick the data actions to run before chatting."""
    return await generate_output(
        generator,
        DATA_LOADER_PROMPT,
        variables,
        data,
        {"action": lambda calls, node, parse_children: _visit_action(calls, node)},
        [],
        params=params,
        timeout=timeout,
    )


async def generate_context_selection(
    generator: TextGenerator,
    variables: Mapping[str, Any],
    data: RuntimeData,
    params: Mapping[str, Any] | None = None,
    timeout: float | None = None,
) -> ContextSelection:
    """Context-loader round: choose which registered contexts to (un)load."""
    return await generate_output(
        generator,
        CONTEXT_LOADER_PROMPT,
        variables,
        data,
        {
            "load": lambda out, node, parse_children: out.load.append(node.attributes["name"]),
            "unload": lambda out, node, parse_children: out.unload.append(node.attributes["name"]),
        },
        ContextSelection(),
        params=params,
        timeout=timeout,
    )
