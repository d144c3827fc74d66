"""
Document model for templates.

A template is a tree of four node kinds:
- Scalar: str, int, float, bool, or null
- Mapping: ordered, unique, case-sensitive string keys
- Sequence: ordered items
- Tagged: a provider intrinsic (``!Ref``, ``!Sub``, ...) wrapping a payload

Every node carries an optional ``Comments`` annotation. Comments are
metadata: they survive dumping but never take part in equality.

Each node has exactly one parent. Inserting a node that already belongs to
another collection inserts a deep copy instead.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence as SequenceABC
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Union

from .errors import make_not_found, make_type_mismatch

ScalarValue = Union[str, int, float, bool, None]
KeyPath = tuple[Union[str, int], ...]


class Intrinsic(StrEnum):
    """Recognized provider intrinsic functions, plus the opaque catch-all."""

    SUB = "Sub"
    REF = "Ref"
    GET_ATT = "GetAtt"
    IF = "If"
    JOIN = "Join"
    SPLIT = "Split"
    NOT = "Not"
    EQUALS = "Equals"
    IMPORT_VALUE = "ImportValue"
    OPAQUE = "*"

    @classmethod
    def classify(cls, tag: str) -> Intrinsic:
        """Map a tag name (without ``!``) to its variant."""
        try:
            member = cls(tag)
        except ValueError:
            return cls.OPAQUE
        return member

    @property
    def recognized(self) -> bool:
        return self is not Intrinsic.OPAQUE


@dataclass
class Comments:
    """
    Comment annotation attached to a node.

    Attributes:
        before: Full-line comments (``"# text"``) and blank lines (``""``)
            directly above the node
        inline: Trailing comment on the node's own line
        after: Comments following the node (used at end of document)
    """

    before: list[str] = field(default_factory=list)
    inline: str | None = None
    after: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.before or self.inline or self.after)

    def copy(self) -> Comments:
        return Comments(before=list(self.before), inline=self.inline, after=list(self.after))


class Node:
    """Base class for document nodes."""

    def __init__(self, comments: Comments | None = None):
        self.comments = comments if comments is not None else Comments()
        self._owned = False

    __hash__ = None  # type: ignore[assignment]

    def copy(self) -> Node:
        """Return a deep copy, comments included."""
        raise NotImplementedError

    @property
    def kind(self) -> str:
        """Short human-readable node kind for error messages."""
        raise NotImplementedError


def _adopt(node: Node) -> Node:
    if not isinstance(node, Node):
        raise TypeError(f"expected a document node, got {type(node).__name__}")
    if node._owned:
        node = node.copy()
    node._owned = True
    return node


def _release(node: Node) -> Node:
    node._owned = False
    return node


class Scalar(Node):
    """
    A scalar value.

    ``style`` is the source quoting style (None for plain, or one of
    ``'``, ``"``, ``|``, ``>``). ``text`` is the source spelling of a plain
    scalar; it is dropped as soon as the value is reassigned.
    """

    def __init__(
        self,
        value: ScalarValue = None,
        *,
        style: str | None = None,
        text: str | None = None,
        comments: Comments | None = None,
    ):
        super().__init__(comments)
        if not isinstance(value, (str, int, float, type(None))):
            raise TypeError(f"unsupported scalar type: {type(value).__name__}")
        self._value = value
        self.style = style
        self._text = text

    @property
    def value(self) -> ScalarValue:
        return self._value

    @value.setter
    def value(self, value: ScalarValue) -> None:
        self._value = value
        self._text = None

    @property
    def text(self) -> str | None:
        return self._text

    @property
    def kind(self) -> str:
        return "scalar"

    def copy(self) -> Scalar:
        return Scalar(self._value, style=self.style, text=self._text, comments=self.comments.copy())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Scalar):
            return NotImplemented
        return type(self._value) is type(other._value) and self._value == other._value

    def __repr__(self) -> str:
        return f"Scalar({self._value!r})"


class Mapping(Node):
    """An ordered mapping with unique string keys."""

    def __init__(
        self,
        entries: dict[str, Node] | Iterable[tuple[str, Node]] | None = None,
        *,
        flow_style: bool | None = None,
        comments: Comments | None = None,
    ):
        super().__init__(comments)
        self.flow_style = flow_style
        self._entries: dict[str, Node] = {}
        if isinstance(entries, dict):
            entries = entries.items()
        for key, node in entries or ():
            self.insert(key, node)

    @property
    def kind(self) -> str:
        return "mapping"

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __getitem__(self, key: str) -> Node:
        return self._entries[key]

    def get(self, key: str, default: Node | None = None) -> Node | None:
        return self._entries.get(key, default)

    def keys(self) -> list[str]:
        return list(self._entries)

    def values(self) -> list[Node]:
        return list(self._entries.values())

    def items(self) -> list[tuple[str, Node]]:
        return list(self._entries.items())

    def index(self, key: str) -> int:
        """Position of ``key`` in insertion order."""
        for position, existing in enumerate(self._entries):
            if existing == key:
                return position
        raise KeyError(key)

    def insert(
        self,
        key: str,
        node: Node,
        *,
        index: int | None = None,
        before: str | None = None,
        after: str | None = None,
    ) -> Node:
        """
        Insert a new key at a position (default: at the end).

        Raises:
            ValueError: If the key already exists
            KeyError: If ``before``/``after`` names a missing key
        """
        if not isinstance(key, str):
            raise TypeError(f"mapping keys must be strings, got {type(key).__name__}")
        if key in self._entries:
            raise ValueError(f"duplicate mapping key: {key!r}")
        node = _adopt(node)
        if before is not None:
            index = self.index(before)
        elif after is not None:
            index = self.index(after) + 1
        if index is None or index >= len(self._entries):
            self._entries[key] = node
        else:
            items = list(self._entries.items())
            items.insert(index, (key, node))
            self._entries = dict(items)
        return node

    def set(self, key: str, node: Node) -> Node:
        """Set a key, keeping its position when it already exists."""
        if key not in self._entries:
            return self.insert(key, node)
        node = _adopt(node)
        _release(self._entries[key])
        self._entries[key] = node
        return node

    def replace(self, key: str, node: Node) -> Node:
        """
        Replace the value of an existing key, keeping the old node's comments.

        Comments already set on the new node take precedence.
        """
        old = self._entries[key]
        node = _adopt(node)
        if not node.comments:
            node.comments = old.comments.copy()
        _release(old)
        self._entries[key] = node
        return node

    def remove(self, key: str) -> Node:
        return _release(self._entries.pop(key))

    def copy(self) -> Mapping:
        return Mapping(
            [(key, node.copy()) for key, node in self._entries.items()],
            flow_style=self.flow_style,
            comments=self.comments.copy(),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        return list(self._entries.items()) == list(other._entries.items())

    def __repr__(self) -> str:
        return f"Mapping({self._entries!r})"


class Sequence(Node):
    """An ordered list of nodes."""

    def __init__(
        self,
        items: Iterable[Node] | None = None,
        *,
        flow_style: bool | None = None,
        comments: Comments | None = None,
    ):
        super().__init__(comments)
        self.flow_style = flow_style
        self._items: list[Node] = []
        for item in items or ():
            self.append(item)

    @property
    def kind(self) -> str:
        return "sequence"

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Node]:
        return iter(self._items)

    def __getitem__(self, index: int) -> Node:
        return self._items[index]

    def append(self, node: Node) -> Node:
        node = _adopt(node)
        self._items.append(node)
        return node

    def insert(self, index: int, node: Node) -> Node:
        node = _adopt(node)
        self._items.insert(index, node)
        return node

    def replace(self, index: int, node: Node) -> Node:
        """Replace an item, keeping the old item's comments unless the new one has its own."""
        old = self._items[index]
        node = _adopt(node)
        if not node.comments:
            node.comments = old.comments.copy()
        _release(old)
        self._items[index] = node
        return node

    def pop(self, index: int = -1) -> Node:
        return _release(self._items.pop(index))

    def copy(self) -> Sequence:
        return Sequence(
            [item.copy() for item in self._items],
            flow_style=self.flow_style,
            comments=self.comments.copy(),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Sequence):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"Sequence({self._items!r})"


class Tagged(Node):
    """A tagged node such as ``!Ref Bucket``; ``tag`` is stored without ``!``."""

    def __init__(self, tag: str, payload: Node, *, comments: Comments | None = None):
        super().__init__(comments)
        self.tag = tag[1:] if tag.startswith("!") else tag
        self._payload = _adopt(payload)

    @property
    def payload(self) -> Node:
        return self._payload

    @payload.setter
    def payload(self, node: Node) -> None:
        _release(self._payload)
        self._payload = _adopt(node)

    @property
    def function(self) -> Intrinsic:
        return Intrinsic.classify(self.tag)

    @property
    def kind(self) -> str:
        return f"!{self.tag}"

    def copy(self) -> Tagged:
        return Tagged(self.tag, self._payload.copy(), comments=self.comments.copy())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Tagged):
            return NotImplemented
        return self.tag == other.tag and self._payload == other._payload

    def __repr__(self) -> str:
        return f"Tagged({self.tag!r}, {self._payload!r})"


@dataclass
class Document:
    """A root node plus the location it was loaded from."""

    root: Node
    source: Path | None = None

    @property
    def name(self) -> str:
        return str(self.source) if self.source is not None else "<string>"

    def get(self, path: SequenceABC[str | int]) -> Node:
        return get(self.root, path, document=self.source)

    def find(self, path: SequenceABC[str | int]) -> Node | None:
        return find(self.root, path, document=self.source)


# =============================================================================
# Navigation
# =============================================================================


def get(
    root: Node,
    path: SequenceABC[str | int],
    *,
    document: Path | str | None = None,
) -> Node:
    """
    Navigate from ``root`` along a key path.

    Raises:
        NotFound: A key or index does not exist
        TypeMismatch: An intermediate node is not the expected collection
    """
    node = root
    walked: list[str | int] = []
    for segment in path:
        if isinstance(segment, int) and not isinstance(segment, bool):
            if not isinstance(node, Sequence):
                raise make_type_mismatch(
                    f"expected a sequence for index {segment}, found {node.kind}",
                    walked,
                    document,
                )
            if not 0 <= segment < len(node):
                raise make_not_found(
                    f"index {segment} out of range (length {len(node)})",
                    [*walked, segment],
                    document,
                )
            node = node[segment]
        else:
            if not isinstance(node, Mapping):
                raise make_type_mismatch(
                    f"expected a mapping for key {segment!r}, found {node.kind}",
                    walked,
                    document,
                )
            if segment not in node:
                raise make_not_found(f"key {segment!r} not found", [*walked, segment], document)
            node = node[segment]
        walked.append(segment)
    return node


def find(
    root: Node,
    path: SequenceABC[str | int],
    *,
    document: Path | str | None = None,
) -> Node | None:
    """Like ``get`` but returns None for a missing key or index."""
    from .errors import NotFound

    try:
        return get(root, path, document=document)
    except NotFound:
        return None


def walk(root: Node, path: KeyPath = ()) -> Iterator[tuple[KeyPath, Node]]:
    """Yield ``(path, node)`` pairs depth-first in document order."""
    yield path, root
    if isinstance(root, Mapping):
        for key, child in root.items():
            yield from walk(child, (*path, key))
    elif isinstance(root, Sequence):
        for index, child in enumerate(root):
            yield from walk(child, (*path, index))
    elif isinstance(root, Tagged):
        yield from walk(root.payload, path)


# =============================================================================
# Conversion
# =============================================================================


def to_python(node: Node, *, long_form: bool = False) -> Any:
    """
    Convert a node tree to plain Python data.

    Tagged nodes become ``{"!Tag": payload}``, or CloudFormation long form
    (``{"Ref": ...}``, ``{"Fn::Sub": ...}``) when ``long_form`` is set.
    """
    if isinstance(node, Scalar):
        return node.value
    if isinstance(node, Mapping):
        return {key: to_python(child, long_form=long_form) for key, child in node.items()}
    if isinstance(node, Sequence):
        return [to_python(child, long_form=long_form) for child in node]
    if isinstance(node, Tagged):
        if long_form:
            from .intrinsics import long_form as to_long_form

            key, payload = to_long_form(node)
            return {key: to_python(payload, long_form=True)}
        return {f"!{node.tag}": to_python(node.payload)}
    raise TypeError(f"not a document node: {type(node).__name__}")


def from_python(data: Any) -> Node:
    """
    Build nodes from dicts, lists, and scalars, keeping dict order.

    Node instances found in the data are used as they are.
    """
    if isinstance(data, Node):
        return data
    if isinstance(data, dict):
        return Mapping([(str(key), from_python(value)) for key, value in data.items()])
    if isinstance(data, (list, tuple)):
        return Sequence([from_python(item) for item in data])
    return Scalar(data)
