"""
Template dumper.

Emits block-style YAML with two-space indentation and the comments recorded
on each node. Individual scalars are rendered through PyYAML's serializer so
quoting always round-trips (``"200"`` stays a string, ``yes`` is quoted);
the block layout around them is written here because PyYAML has no notion
of comments.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import yaml
from yaml.nodes import ScalarNode, SequenceNode
from yaml.representer import SafeRepresenter

from .document import Document, Mapping, Node, Scalar, Sequence, Tagged, to_python
from .loader import resolve_plain

logger = logging.getLogger(__name__)

INDENT = 2

_SEQ_TAG = "tag:yaml.org,2002:seq"
_BLOCK_STYLES = ("|", ">")


# =============================================================================
# Scalar formatting
# =============================================================================


def _serialize(node: yaml.Node) -> list[str]:
    text = yaml.serialize(
        node,
        Dumper=yaml.SafeDumper,
        width=float("inf"),
        allow_unicode=True,
    )
    if text.endswith("\n...\n"):
        text = text[: -len("...\n")]
    if text.endswith("\n"):
        text = text[:-1]
    return text.split("\n")


def _scalar_lines(scalar: Scalar, *, flow: bool = False) -> list[str]:
    """Render a scalar; only block styles produce more than one line."""
    value = scalar.value
    style = scalar.style
    if scalar.text == "" and style is None:
        # empty plain scalar; serialized alone it is only a document end marker
        if not flow:
            return [""]
        return ["null" if value is None else "''"]
    if scalar.text is not None and style is None:
        tag, text = resolve_plain(scalar.text), scalar.text
    else:
        represented = SafeRepresenter().represent_data(value)
        tag, text = represented.tag, represented.value

    if isinstance(value, str) and "\n" in value:
        if flow:
            style = '"'
        elif style not in (*_BLOCK_STYLES, '"'):
            style = "|"
    elif flow and style in _BLOCK_STYLES:
        style = None

    node = ScalarNode(tag, text, style=style)
    if flow:
        # a one-item flow sequence gives flow-context quoting rules
        wrapped = _serialize(SequenceNode(_SEQ_TAG, [node], flow_style=True))[0]
        return [wrapped[1:-1]]
    return _serialize(node)


def _key_text(key: str, *, flow: bool = False) -> str:
    lines = _scalar_lines(Scalar(key), flow=flow)
    if len(lines) > 1:
        lines = _scalar_lines(Scalar(key, style='"'), flow=flow)
    return lines[0]


def _tag_text(tag: str) -> str:
    if ":" in tag and not tag.startswith("!"):
        return f"!<{tag}>"
    return f"!{tag}"


def _flow(node: Node) -> str:
    """Render a node on one line in flow style."""
    if isinstance(node, Scalar):
        return _scalar_lines(node, flow=True)[0]
    if isinstance(node, Tagged):
        return f"{_tag_text(node.tag)} {_flow(node.payload)}"
    if isinstance(node, Mapping):
        entries = ", ".join(f"{_key_text(key, flow=True)}: {_flow(value)}" for key, value in node.items())
        return "{" + entries + "}"
    if isinstance(node, Sequence):
        return "[" + ", ".join(_flow(item) for item in node) + "]"
    raise TypeError(f"not a document node: {type(node).__name__}")


def _is_block_collection(node: Node) -> bool:
    return isinstance(node, (Mapping, Sequence)) and not node.flow_style and len(node) > 0


def _inline_lines(node: Node) -> list[str]:
    """Text of a node that starts on its header line."""
    if isinstance(node, Scalar):
        return _scalar_lines(node)
    if isinstance(node, Tagged) and isinstance(node.payload, Scalar):
        lines = _scalar_lines(node.payload)
        return [" ".join(part for part in (_tag_text(node.tag), lines[0]) if part), *lines[1:]]
    return [_flow(node)]


# =============================================================================
# Block emitter
# =============================================================================


class _Emitter:
    def __init__(self) -> None:
        self.lines: list[str] = []

    def comments(self, entries: list[str], indent: int) -> None:
        pad = " " * indent
        self.lines.extend(f"{pad}{entry}" if entry else "" for entry in entries)

    def header(self, text: str, node: Node) -> None:
        if node.comments.inline:
            text = f"{text} {node.comments.inline}"
        self.lines.append(text)

    def entry(self, head: str, node: Node, indent: int) -> None:
        """Emit ``node`` after a header such as ``key:`` or ``-``."""
        child = node.payload if isinstance(node, Tagged) else node
        if _is_block_collection(child):
            if isinstance(node, Tagged):
                head = f"{head} {_tag_text(node.tag)}" if head else _tag_text(node.tag)
            self.header(head, node)
            self.block(child, indent + INDENT)
            return

        lines = _inline_lines(node)
        first = " ".join(part for part in (head, lines[0]) if part)
        self.header(first, node)
        pad = " " * indent
        self.lines.extend(f"{pad}{line}" if line else "" for line in lines[1:])

    def block(self, node: Mapping | Sequence, indent: int) -> None:
        if isinstance(node, Mapping):
            self.mapping(node, indent)
        else:
            self.sequence(node, indent)

    def mapping(self, mapping: Mapping, indent: int) -> None:
        pad = " " * indent
        for key, value in mapping.items():
            self.comments(value.comments.before, indent)
            self.entry(f"{pad}{_key_text(key)}:", value, indent)
            self.comments(value.comments.after, indent)

    def sequence(self, sequence: Sequence, indent: int) -> None:
        pad = " " * indent
        for item in sequence:
            self.comments(item.comments.before, indent)
            if _is_block_collection(item) and not item.comments.inline:
                # nested block starts on the dash line; its leading comments go above the dash
                start = len(self.lines)
                self.block(item, indent + INDENT)  # type: ignore[arg-type]
                body = self.lines[start:]
                del self.lines[start:]
                lead = 0
                while lead < len(body) and (not body[lead] or body[lead].lstrip().startswith("#")):
                    lead += 1
                self.lines.extend(f"{pad}{line.lstrip()}" if line else "" for line in body[:lead])
                self.lines.append(f"{pad}- {body[lead][indent + INDENT:]}")
                self.lines.extend(body[lead + 1 :])
            else:
                self.entry(f"{pad}-", item, indent)
            self.comments(item.comments.after, indent)


def dump(node: Node) -> str:
    """
    Serialize a node tree to YAML text.

    Comments are emitted where they are attached: ``before`` above the
    node, ``inline`` at the end of its first line, ``after`` below it.
    """
    emitter = _Emitter()
    emitter.comments(node.comments.before, 0)
    child = node.payload if isinstance(node, Tagged) else node
    if _is_block_collection(child):
        if isinstance(node, Tagged):
            emitter.header(_tag_text(node.tag), node)
        elif node.comments.inline:
            emitter.lines.append(node.comments.inline)
        emitter.block(child, 0)  # type: ignore[arg-type]
    else:
        emitter.entry("", node, 0)
    emitter.comments(node.comments.after, 0)
    return "\n".join(emitter.lines) + "\n"


def dump_json(node: Node, indent: int = 2) -> str:
    """Serialize to JSON with intrinsics in long form; comments are dropped."""
    return json.dumps(to_python(node, long_form=True), indent=indent, ensure_ascii=False) + "\n"


def canonical(node: Node) -> Node:
    """Return a deep copy with mapping keys sorted at every level."""
    if isinstance(node, Mapping):
        return Mapping(
            [(key, canonical(node[key])) for key in sorted(node.keys())],
            flow_style=node.flow_style,
            comments=node.comments.copy(),
        )
    if isinstance(node, Sequence):
        return Sequence(
            [canonical(item) for item in node],
            flow_style=node.flow_style,
            comments=node.comments.copy(),
        )
    if isinstance(node, Tagged):
        return Tagged(node.tag, canonical(node.payload), comments=node.comments.copy())
    return node.copy()


def dump_document(document: Document, path: Path | str) -> Path:
    """
    Write a document, choosing JSON for a ``.json`` suffix and YAML otherwise.

    Returns:
        The path written
    """
    path = Path(path)
    text = dump_json(document.root) if path.suffix.lower() == ".json" else dump(document.root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    logger.info("Wrote %s", path)
    return path

