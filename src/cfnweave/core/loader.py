"""
Template loader.

Builds the document model from YAML or JSON text. YAML goes through
PyYAML's composer (``yaml.compose`` on ``SafeLoader``) so every node keeps
its source marks; comments are recovered from the gaps between PyYAML
scanner tokens and attached to the block entry they belong to:

- full-line comments and blank lines become ``before`` of the next entry
- a trailing comment becomes ``inline`` of the entry ending on that line
- a header block separated from the first entry by a blank line stays on
  the document root
- anything left at the end of the file becomes the root's ``after``

Mapping values are anchored at their key's line and sequence items at their
first line. When several entries start on one line the outermost wins.
"""

from __future__ import annotations

import bisect
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from yaml.constructor import SafeConstructor
from yaml.nodes import MappingNode, ScalarNode, SequenceNode
from yaml.resolver import Resolver

from .document import Document, Mapping, Node, Scalar, Sequence, Tagged, from_python
from .errors import ParseError, make_parse_error, make_reference_error
from .intrinsics import validate

logger = logging.getLogger(__name__)

_CORE_PREFIX = "tag:yaml.org,2002:"
_MERGE_TAG = _CORE_PREFIX + "merge"

_CONSTRUCTORS = {
    _CORE_PREFIX + "str": SafeConstructor.construct_yaml_str,
    _CORE_PREFIX + "int": SafeConstructor.construct_yaml_int,
    _CORE_PREFIX + "float": SafeConstructor.construct_yaml_float,
    _CORE_PREFIX + "bool": SafeConstructor.construct_yaml_bool,
    _CORE_PREFIX + "null": SafeConstructor.construct_yaml_null,
}

_RESOLVER = Resolver()
_COMMENT = re.compile(r"#[^\n]*")


def resolve_plain(text: str) -> str:
    """Tag PyYAML would give ``text`` written as a plain scalar."""
    return _RESOLVER.resolve(ScalarNode, text, (True, False))


# =============================================================================
# Comment scanning
# =============================================================================


@dataclass
class _Comment:
    line: int
    text: str
    full_line: bool


def _scan_comments(text: str) -> tuple[dict[int, _Comment], set[int]]:
    """
    Find comments between scanner tokens.

    Returns comments keyed by 0-indexed line, plus the continuation lines
    covered by multi-line scalars (blank lines there are scalar content).
    """
    line_starts = [0] + [match.end() for match in re.finditer("\n", text)]
    comments: dict[int, _Comment] = {}
    covered: set[int] = set()

    def _collect(start: int, end: int) -> None:
        for match in _COMMENT.finditer(text, start, end):
            index = match.start()
            line = bisect.bisect_right(line_starts, index) - 1
            prefix = text[line_starts[line] : index]
            comments[line] = _Comment(line=line, text=match.group(0).rstrip(), full_line=not prefix.strip())

    position = 0
    for token in yaml.scan(text, Loader=yaml.SafeLoader):
        start = token.start_mark.index
        if start > position:
            _collect(position, start)
        if isinstance(token, yaml.ScalarToken) and token.end_mark.line > token.start_mark.line:
            covered.update(range(token.start_mark.line + 1, token.end_mark.line + 1))
        position = max(position, token.end_mark.index)
    if position < len(text):
        _collect(position, len(text))
    return comments, covered


# =============================================================================
# Node building
# =============================================================================


class _Builder:
    """Converts a PyYAML node graph into document nodes, recording comment anchors."""

    def __init__(self, source: Path | str | None, validate_intrinsics: bool):
        self.source = source
        self.validate_intrinsics = validate_intrinsics
        self.constructor = SafeConstructor()
        self.slots: dict[int, tuple[int, Node]] = {}
        self.line_ends: dict[int, Node] = {}
        self._seen: set[int] = set()
        self._active: set[int] = set()
        self._quiet = 0

    def error(self, message: str, mark: Any, path: tuple[str | int, ...]) -> ParseError:
        return make_parse_error(
            message,
            self.source,
            line=mark.line + 1 if mark else None,
            column=mark.column + 1 if mark else None,
            key_path=path,
        )

    def node(self, pynode: yaml.Node, path: tuple[str | int, ...]) -> Node:
        key = id(pynode)
        if key in self._active:
            raise self.error("recursive alias cannot be expanded", pynode.start_mark, path)
        repeat = key in self._seen
        self._seen.add(key)
        self._active.add(key)
        if repeat:
            # alias copies keep no comment anchors
            self._quiet += 1
        try:
            return self._convert(pynode, path)
        finally:
            self._active.discard(key)
            if repeat:
                self._quiet -= 1

    def _convert(self, pynode: yaml.Node, path: tuple[str | int, ...]) -> Node:
        if pynode.tag.startswith(_CORE_PREFIX):
            return self._untagged(pynode, path, tagged=False)
        tagged = Tagged(pynode.tag, self._untagged(pynode, path, tagged=True))
        if self.validate_intrinsics:
            validate(tagged, path, self.source)
        return tagged

    def _untagged(self, pynode: yaml.Node, path: tuple[str | int, ...], *, tagged: bool) -> Node:
        if isinstance(pynode, ScalarNode):
            return self._scalar(pynode, tagged=tagged)
        if isinstance(pynode, SequenceNode):
            return self._sequence(pynode, path)
        if isinstance(pynode, MappingNode):
            return self._mapping(pynode, path)
        raise self.error(f"unsupported node {type(pynode).__name__}", pynode.start_mark, path)

    def _scalar(self, pynode: ScalarNode, *, tagged: bool) -> Scalar:
        plain = pynode.style is None
        if tagged:
            return Scalar(pynode.value, style=pynode.style, text=pynode.value if plain else None)
        construct = _CONSTRUCTORS.get(pynode.tag)
        value = construct(self.constructor, pynode) if construct else pynode.value
        text = pynode.value if plain and resolve_plain(pynode.value) == pynode.tag else None
        return Scalar(value, style=pynode.style, text=text)

    def _sequence(self, pynode: SequenceNode, path: tuple[str | int, ...]) -> Sequence:
        sequence = Sequence(flow_style=True if pynode.flow_style else None)
        for index, item in enumerate(pynode.value):
            alias = id(item) in self._seen
            child = sequence.append(self.node(item, (*path, index)))
            if not pynode.flow_style and not alias:
                self._slot(item.start_mark.line, len(path) + 1, child)
                self._end(item, child)
        return sequence

    def _mapping(self, pynode: MappingNode, path: tuple[str | int, ...]) -> Mapping:
        mapping = Mapping(flow_style=True if pynode.flow_style else None)
        merged: list[tuple[str, Node]] = []
        for key_node, value_node in pynode.value:
            if key_node.tag == _MERGE_TAG:
                merged.extend(self._merge_sources(value_node, path))
                continue
            if not isinstance(key_node, ScalarNode):
                raise self.error("complex mapping keys are not supported", key_node.start_mark, path)
            key = key_node.value
            if key in mapping:
                raise self.error(f"duplicate key {key!r}", key_node.start_mark, path)
            alias = id(value_node) in self._seen
            child = mapping.insert(key, self.node(value_node, (*path, key)))
            if not pynode.flow_style:
                self._slot(key_node.start_mark.line, len(path) + 1, child)
                if not alias:
                    self._end(value_node, child)

        position = 0
        for key, child in merged:
            if key not in mapping:
                mapping.insert(key, child, index=position)
                position += 1
        return mapping

    def _merge_sources(self, pynode: yaml.Node, path: tuple[str | int, ...]) -> list[tuple[str, Node]]:
        sources = pynode.value if isinstance(pynode, SequenceNode) else [pynode]
        entries: list[tuple[str, Node]] = []
        for source in sources:
            if not isinstance(source, MappingNode):
                raise self.error("merge value must be a mapping or list of mappings", source.start_mark, path)
            self._quiet += 1
            try:
                merged = self.node(source, path)
            finally:
                self._quiet -= 1
            known = {key for key, _ in entries}
            entries.extend((key, child) for key, child in merged.items() if key not in known)
        return entries

    def _slot(self, line: int, depth: int, node: Node) -> None:
        if self._quiet:
            return
        current = self.slots.get(line)
        if current is None or depth < current[0]:
            self.slots[line] = (depth, node)

    def _end(self, pynode: yaml.Node, node: Node) -> None:
        if self._quiet:
            return
        if isinstance(pynode, ScalarNode) and pynode.style in ("|", ">"):
            return
        if isinstance(pynode, (SequenceNode, MappingNode)) and not pynode.flow_style and pynode.value:
            return
        self.line_ends[pynode.end_mark.line] = node

    def attach_comments(
        self,
        root: Node,
        text: str,
        comments: dict[int, _Comment],
        covered: set[int],
    ) -> None:
        pending: list[str] = []
        first = True
        for number, raw in enumerate(text.split("\n")):
            slot = self.slots.get(number)
            if slot is not None:
                node = slot[1]
                if first:
                    pending = _split_header(root, node, pending)
                    first = False
                node.comments.before.extend(pending)
                pending = []

            comment = comments.get(number)
            if comment is not None:
                if comment.full_line:
                    pending.append(comment.text)
                    continue
                target = self.line_ends.get(number)
                if target is None and slot is not None:
                    target = slot[1]
                if target is not None and target.comments.inline is None:
                    target.comments.inline = comment.text
                else:
                    pending.append(comment.text)
            elif not raw.strip() and number not in covered:
                pending.append("")

        while pending and pending[-1] == "":
            pending.pop()
        if first:
            while pending and pending[0] == "":
                pending.pop(0)
        root.comments.after.extend(pending)


def _split_header(root: Node, first: Node, pending: list[str]) -> list[str]:
    """Move a blank-line-terminated header block from ``pending`` onto the root."""
    while pending and pending[0] == "":
        pending.pop(0)
    if first is root or "" not in pending:
        return pending
    cut = len(pending) - 1 - pending[::-1].index("")
    root.comments.before.extend(pending[: cut + 1])
    return pending[cut + 1 :]


# =============================================================================
# Public API
# =============================================================================


def _yaml_parse_error(exc: yaml.YAMLError, source: Path | str | None) -> ParseError:
    mark = getattr(exc, "problem_mark", None) or getattr(exc, "context_mark", None)
    problem = getattr(exc, "problem", None) or str(exc)
    context = getattr(exc, "context", None)
    message = f"{problem} ({context})" if context else problem
    return make_parse_error(
        message,
        source,
        line=mark.line + 1 if mark else None,
        column=mark.column + 1 if mark else None,
    )


def _unique_pairs(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f"duplicate key {key!r}")
        result[key] = value
    return result


def _load_json(text: str, source: Path | str | None) -> Node:
    try:
        data = json.loads(text, object_pairs_hook=_unique_pairs)
    except json.JSONDecodeError as exc:
        raise make_parse_error(exc.msg, source, line=exc.lineno, column=exc.colno) from exc
    except ValueError as exc:
        raise make_parse_error(str(exc), source) from exc
    return from_python(data)


def load(
    text: str,
    source: Path | str | None = None,
    *,
    validate_intrinsics: bool = True,
) -> Node:
    """
    Parse YAML or JSON text into a document node.

    Args:
        text: Document text
        source: Path or name used in error messages; a ``.json`` suffix
            selects the strict JSON parser
        validate_intrinsics: Check payload shapes of recognized tags

    Raises:
        ParseError: Invalid syntax, duplicate keys, recursive aliases, or
            more than one document
        TypeMismatch: A recognized tag with a malformed payload
    """
    text = text.replace("\r\n", "\n")
    if source is not None and Path(source).suffix.lower() == ".json":
        return _load_json(text, source)

    try:
        pyroot = yaml.compose(text, Loader=yaml.SafeLoader)
        comments, covered = _scan_comments(text)
    except yaml.YAMLError as exc:
        raise _yaml_parse_error(exc, source) from exc

    builder = _Builder(source, validate_intrinsics)
    if pyroot is None:
        root: Node = Scalar(None)
    else:
        try:
            root = builder.node(pyroot, ())
        except yaml.YAMLError as exc:
            raise _yaml_parse_error(exc, source) from exc
    builder.attach_comments(root, text, comments, covered)
    return root


def load_document(path: Path | str, *, validate_intrinsics: bool = True) -> Document:
    """
    Load a template file.

    Raises:
        ReferenceNotFound: If the file does not exist
        ParseError: If the file cannot be parsed
    """
    path = Path(path)
    if not path.is_file():
        raise make_reference_error(f"document not found: {path}", document=path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise make_reference_error(f"cannot read document: {exc}", document=path) from exc
    except UnicodeDecodeError as exc:
        raise make_parse_error(f"document is not valid UTF-8: {exc.reason}", document=path) from exc
    root = load(text, source=path, validate_intrinsics=validate_intrinsics)
    logger.debug("Loaded %s", path)
    return Document(root=root, source=path)
