"""
Operational documentation embedded in template comments.

Resources document their failure impact in comment blocks placed right
after the property that names them::

    Properties:
      QueueName: panther-resources-queue
      # <cfndoc>
      # This sqs queue has events from recently changed infrastructure.
      # </cfndoc>
      VisibilityTimeout: 60

The block is labelled with that property's literal value.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .core.document import Document, Mapping, Node, Scalar, walk
from .core.errors import format_path

logger = logging.getLogger(__name__)

_OPEN = "<cfndoc>"
_CLOSE = "</cfndoc>"


@dataclass(frozen=True)
class CfnDoc:
    """One documentation block."""

    label: str
    resource: str
    text: str


def _comment_body(line: str) -> str:
    body = line[1:] if line.startswith("#") else line
    return body[1:] if body.startswith(" ") else body


def _blocks(lines: list[str]) -> list[str]:
    """Extract the text of every cfndoc block in a list of comment lines."""
    blocks: list[str] = []
    current: list[str] | None = None
    for line in lines:
        body = _comment_body(line)
        if current is None:
            if _OPEN not in body:
                continue
            body = body.split(_OPEN, 1)[1]
            current = []
        if _CLOSE in body:
            current.append(body.split(_CLOSE, 1)[0])
            blocks.append("\n".join(current).strip())
            current = None
        else:
            current.append(body.rstrip())
    if current is not None:
        logger.warning("Unterminated %s block", _OPEN)
    return blocks


def _resource_id(path: tuple[str | int, ...]) -> str:
    if len(path) >= 2 and path[0] == "Resources":
        return str(path[1])
    return format_path(path) or "<root>"


def _label(previous: Node | None, resource: str) -> str:
    if isinstance(previous, Scalar) and isinstance(previous.value, str):
        return previous.value
    return resource


def _last_entry(root: Node) -> tuple[tuple[str | int, ...], Node | None]:
    path: tuple[str | int, ...] = ()
    node = root
    while isinstance(node, Mapping) and len(node):
        key, value = node.items()[-1]
        if not isinstance(value, Mapping):
            return path, value
        path = (*path, key)
        node = value
    return path, None


def extract_cfndocs(document: Document) -> list[CfnDoc]:
    """Collect cfndoc blocks in document order."""
    docs: list[CfnDoc] = []
    for path, node in walk(document.root):
        if not isinstance(node, Mapping):
            continue
        resource = _resource_id(path)
        previous: Node | None = None
        for _key, value in node.items():
            for text in _blocks(value.comments.before):
                docs.append(CfnDoc(label=_label(previous, resource), resource=resource, text=text))
            previous = value

    # blocks after the last line of the file belong to the deepest last entry
    trailing = _blocks(document.root.comments.after)
    if trailing:
        path, last = _last_entry(document.root)
        resource = _resource_id(path)
        docs.extend(CfnDoc(label=_label(last, resource), resource=resource, text=text) for text in trailing)
    logger.debug("Found %d cfndoc block(s) in %s", len(docs), document.name)
    return docs


def render_markdown(docs: list[CfnDoc]) -> str:
    """Render documentation blocks as Markdown, sorted by label."""
    sections = ["# Operational Documentation", ""]
    for doc in sorted(docs, key=lambda d: (d.label.lower(), d.resource)):
        sections.extend([f"## {doc.label}", "", doc.text, ""])
    return "\n".join(sections).rstrip("\n") + "\n"
