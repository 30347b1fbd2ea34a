"""Prompt templates: ``{{variable}}`` rendering and tag-visitor parsing."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Mapping
from typing import Any, Generic, TypeVar

from ember.prompt.xml import ElementNode, Node, ParseChildren, parse_nodes

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")

OutputT = TypeVar("OutputT")

Formatter = Callable[[Mapping[str, Any], Any], Mapping[str, Any]]
PromptVisitor = Callable[[Any, ElementNode, ParseChildren], None]


def format_value(value: Any) -> str:
    """Turn a template variable into text.

    Sequences are newline-joined element by element, strings pass through,
    everything else is serialized as JSON.
    """
    if isinstance(value, (list, tuple)):
        return "\n".join(format_value(item) for item in value)
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def render_template(template: str, variables: Mapping[str, Any]) -> str:
    """Substitute every ``{{key}}`` placeholder in a template.

    Missing keys and ``None`` values render as the empty string.

    Example:
        >>> render_template("Hello {{name}}, items: {{items}}", {"name": "Bo", "items": ["a", "b"]})
        'Hello Bo, items: a\\nb'
    """

    def substitute(match: re.Match[str]) -> str:
        value = variables.get(match.group(1))
        if value is None:
            return ""
        return format_value(value)

    return _PLACEHOLDER_RE.sub(substitute, template)


def template_variables(template: str) -> list[str]:
    """List the placeholder names used in a template, in order of appearance."""
    seen: list[str] = []
    for name in _PLACEHOLDER_RE.findall(template):
        if name not in seen:
            seen.append(name)
    return seen


class Prompt(Generic[OutputT]):
    """A template paired with an optional formatter for its variables.

    The formatter turns rich inputs (actions, memories) into renderable
    values before substitution. ``parse`` applies tag visitors to a reply.
    """

    def __init__(self, template: str, formatter: Formatter | None = None):
        """Initialize the prompt.

        Args:
            template: Template text containing ``{{variable}}`` placeholders
            formatter: Default ``(variables, data) -> variables`` transform
        """
        self.template = template
        self.formatter = formatter

    @property
    def variables(self) -> list[str]:
        return template_variables(self.template)

    def render(
        self,
        variables: Mapping[str, Any],
        data: Any = None,
        formatter: Formatter | None = None,
    ) -> str:
        """Render the template.

        Args:
            variables: Raw template variables
            data: Extra data handed to the formatter (runtime, state, actors)
            formatter: Overrides the prompt's own formatter for this call

        Returns:
            The rendered prompt text
        """
        fmt = formatter or self.formatter
        values = fmt(variables, data) if fmt is not None else variables
        return render_template(self.template, values)

    def parse(
        self,
        response: str,
        visitors: Mapping[str, PromptVisitor],
        output: OutputT,
    ) -> OutputT:
        """Run tag visitors over an LLM reply.

        Each top-level element whose tag name has a visitor is handed to it
        together with the mutable ``output``. Unknown tags and free text are
        ignored. A visitor that raises only loses its own element.

        Args:
            response: Raw LLM reply
            visitors: Mapping of tag name to ``visitor(output, node, parse_children)``
            output: Accumulator mutated by the visitors

        Returns:
            The same ``output`` object
        """

        def visit(node: Node, parse_children: ParseChildren) -> Node:
            if isinstance(node, ElementNode) and node.name in visitors:
                try:
                    visitors[node.name](output, node, parse_children)
                except Exception as e:
                    logger.warning("Skipping malformed <%s> tag: %s", node.name, e)
            return node

        parse_nodes(response, visit)
        return output
