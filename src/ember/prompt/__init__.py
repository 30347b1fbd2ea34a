"""Prompt rendering and tolerant parsing of tagged LLM output."""

from ember.prompt.template import Prompt, format_value, render_template, template_variables
from ember.prompt.templates import (
    CHAT_ACTION_HANDLER_PROMPT,
    CHAT_HANDLER_PROMPT,
    CONTEXT_LOADER_PROMPT,
    DATA_LOADER_PROMPT,
)
from ember.prompt.xml import ElementNode, Node, TextNode, parse_nodes

__all__ = [
    "CHAT_ACTION_HANDLER_PROMPT",
    "CHAT_HANDLER_PROMPT",
    "CONTEXT_LOADER_PROMPT",
    "DATA_LOADER_PROMPT",
    "ElementNode",
    "Node",
    "Prompt",
    "TextNode",
    "format_value",
    "parse_nodes",
    "render_template",
    "template_variables",
]
