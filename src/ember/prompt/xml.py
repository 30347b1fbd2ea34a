"""Tolerant tag scanner for LLM output.

LLM replies are untyped text that only loosely follow the tag vocabulary the
prompt asks for, so this is deliberately not an XML parser. It accepts free
text between tags, self-closing tags, stray ``<`` characters, nested
same-named tags and unclosed tags, and never raises on malformed input.

Only top-level nodes are produced eagerly. A visitor receives each node
together with a callback that parses the node's inner content on demand.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal, Union

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"^([A-Za-z_][\w.:-]*)((?:\s[^<>]*)?)$", re.DOTALL)
_ATTR_RE = re.compile(r"""([\w-]+)\s*=\s*(?:"([^"]*)"|'([^']*)')""")


@dataclass
class TextNode:
    """Free text found outside of any recognised tag."""

    content: str
    parent: ElementNode | None = None
    type: Literal["text"] = "text"


@dataclass
class ElementNode:
    """A tag with its attributes and raw inner content."""

    name: str
    attributes: dict[str, str] = field(default_factory=dict)
    content: str = ""
    closed: bool = False  # True for self-closing tags
    parent: ElementNode | None = None
    children: list[Node] | None = None
    type: Literal["element"] = "element"


Node = Union[TextNode, ElementNode]
ParseChildren = Callable[[], list[Node]]
NodeVisitor = Callable[[Node, ParseChildren], Node]


def parse_attributes(text: str) -> dict[str, str]:
    """Extract ``name="value"`` pairs from the inside of an opening tag."""
    attributes: dict[str, str] = {}
    for match in _ATTR_RE.finditer(text):
        value = match.group(2) if match.group(2) is not None else match.group(3)
        attributes[match.group(1)] = value
    return attributes


def _find_close(text: str, name: str, start: int) -> int | None:
    """Locate the close tag matching an open tag whose body ends at ``start``.

    Nested opens of the same name are balanced so that sibling elements stay
    separate. When the opens cannot be balanced the last close tag wins.
    """
    close_tag = f"</{name}>"
    open_re = re.compile(rf"<{re.escape(name)}(?=[\s/>])[^<>]*?(/?)>")

    depth = 1
    pos = start
    while True:
        close = text.find(close_tag, pos)
        if close == -1:
            break
        for match in open_re.finditer(text, pos, close):
            if not match.group(1):
                depth += 1
        depth -= 1
        if depth == 0:
            return close
        pos = close + len(close_tag)

    last = text.rfind(close_tag, start)
    return last if last != -1 else None


def _identity(node: Node, parse: ParseChildren) -> Node:
    return node


def parse_nodes(
    text: str,
    visitor: NodeVisitor | None = None,
    parent: ElementNode | None = None,
) -> list[Node]:
    """Scan text into top-level nodes.

    Args:
        text: Raw text to scan
        visitor: Called with every top-level node and a callback that parses
            the node's inner content. Its return value replaces the node.
        parent: Element the text belongs to, attached to produced nodes

    Returns:
        Top-level nodes in document order
    """
    visit = visitor or _identity
    nodes: list[Node] = []
    pending = ""
    remaining = text.strip()

    def flush() -> None:
        nonlocal pending
        content = pending.strip()
        pending = ""
        if content:
            nodes.append(visit(TextNode(content=content, parent=parent), lambda: []))

    while remaining:
        tag_start = remaining.find("<")
        if tag_start == -1:
            pending += remaining
            break

        pending += remaining[:tag_start]

        tag_end = remaining.find(">", tag_start)
        if tag_end == -1:
            pending += remaining[tag_start:]
            break

        body = remaining[tag_start + 1 : tag_end]
        self_closing = body.endswith("/")
        if self_closing:
            body = body[:-1]

        match = _TAG_RE.match(body)
        if match is None:
            # Stray '<' (comparison, closing tag, prose): keep it as text
            pending += "<"
            remaining = remaining[tag_start + 1 :]
            continue

        flush()
        name = match.group(1)
        attributes = parse_attributes(match.group(2))

        if self_closing:
            node = ElementNode(name=name, attributes=attributes, closed=True, parent=parent)
            nodes.append(visit(node, lambda: []))
            remaining = remaining[tag_end + 1 :].strip()
            continue

        close_pos = _find_close(remaining, name, tag_end + 1)
        if close_pos is None:
            logger.debug("Unclosed <%s> tag, scanning past it", name)
            remaining = remaining[tag_end + 1 :]
            continue

        content = remaining[tag_end + 1 : close_pos].strip()
        element = ElementNode(name=name, attributes=attributes, content=content, parent=parent)

        def parse_children(element: ElementNode = element) -> list[Node]:
            element.children = parse_nodes(element.content, visit, element)
            return element.children

        nodes.append(visit(element, parse_children))
        remaining = remaining[close_pos + len(f"</{name}>") :].strip()

    flush()
    return nodes
