"""
Tagged intrinsic functions: payload shape checks, long-form conversion, and
compile-time ``${...}`` interpolation.

Only interpolation against known values is performed. Every other function
passes through untouched for the provisioning engine to evaluate.
"""

from __future__ import annotations

import re
from collections.abc import Mapping as MappingABC
from collections.abc import Sequence as SequenceABC
from pathlib import Path

from .document import Intrinsic, Mapping, Node, Scalar, Sequence, Tagged
from .errors import make_type_mismatch

__all__ = [
    "Intrinsic",
    "interpolate",
    "long_form",
    "placeholders",
    "validate",
]

_PLACEHOLDER = re.compile(r"\$\{([^}]*)\}")


def _is_string(node: Node) -> bool:
    return isinstance(node, Scalar) and isinstance(node.value, str)


def _items(node: Node, count: int) -> list[Node] | None:
    if isinstance(node, Sequence) and len(node) == count:
        return list(node)
    return None


def _shape_ok(function: Intrinsic, payload: Node) -> bool:
    if function is Intrinsic.SUB:
        if _is_string(payload):
            return True
        items = _items(payload, 2)
        return items is not None and _is_string(items[0]) and isinstance(items[1], Mapping)

    if function is Intrinsic.REF:
        return _is_string(payload)

    if function is Intrinsic.GET_ATT:
        if _is_string(payload):
            return "." in payload.value  # type: ignore[union-attr, operator]
        return _items(payload, 2) is not None

    if function is Intrinsic.IF:
        items = _items(payload, 3)
        return items is not None and _is_string(items[0])

    if function is Intrinsic.JOIN:
        items = _items(payload, 2)
        return (
            items is not None
            and _is_string(items[0])
            and isinstance(items[1], (Sequence, Tagged))
        )

    if function is Intrinsic.SPLIT:
        items = _items(payload, 2)
        return items is not None and _is_string(items[0])

    if function is Intrinsic.NOT:
        return _items(payload, 1) is not None

    if function is Intrinsic.EQUALS:
        return _items(payload, 2) is not None

    if function is Intrinsic.IMPORT_VALUE:
        return isinstance(payload, (Scalar, Tagged))

    return True


_EXPECTED = {
    Intrinsic.SUB: "a string or [string, mapping]",
    Intrinsic.REF: "a string",
    Intrinsic.GET_ATT: '"Resource.Attribute" or [resource, attribute]',
    Intrinsic.IF: "[condition, value_if_true, value_if_false]",
    Intrinsic.JOIN: "[delimiter, list]",
    Intrinsic.SPLIT: "[delimiter, source]",
    Intrinsic.NOT: "[condition]",
    Intrinsic.EQUALS: "[value, value]",
    Intrinsic.IMPORT_VALUE: "a scalar or function",
}


def validate(
    tagged: Tagged,
    path: SequenceABC[str | int] = (),
    document: Path | str | None = None,
) -> None:
    """
    Check the payload shape of a recognized intrinsic.

    Opaque tags are never checked.

    Raises:
        TypeMismatch: If the payload does not have the function's shape
    """
    function = tagged.function
    if not function.recognized:
        return
    if not _shape_ok(function, tagged.payload):
        raise make_type_mismatch(
            f"!{tagged.tag} expects {_EXPECTED[function]}, found {tagged.payload.kind}",
            path,
            document,
        )


def long_form(tagged: Tagged) -> tuple[str, Node]:
    """
    Return the long-form key and value for a short-form tag.

    ``!Ref X`` becomes ``("Ref", X)``; ``!GetAtt A.B`` becomes
    ``("Fn::GetAtt", [A, B])``; other tags become ``("Fn::<Tag>", payload)``.
    """
    payload = tagged.payload.copy()
    if tagged.tag in ("Ref", "Condition"):
        return tagged.tag, payload
    if tagged.function is Intrinsic.GET_ATT and _is_string(payload):
        resource, _, attribute = str(payload.value).partition(".")  # type: ignore[union-attr]
        return "Fn::GetAtt", Sequence([Scalar(resource), Scalar(attribute)])
    return f"Fn::{tagged.tag}", payload


def placeholders(template: str) -> list[str]:
    """List ``${Name}`` placeholder names, skipping ``${!Literal}`` escapes."""
    return [name for name in _PLACEHOLDER.findall(template) if not name.startswith("!")]


def interpolate(template: str, context: MappingABC[str, str]) -> Scalar | Tagged:
    """
    Resolve ``${Name}`` placeholders found in ``context``.

    Returns a plain Scalar when every placeholder resolved. Otherwise returns
    ``!Sub`` over the partially resolved string so the provisioning engine
    evaluates the rest (``${AWS::Region}``, ``${Resource.Arn}``, ...).

    Example:
        >>> interpolate("${template}-${AWS::Region}", {"template": "auth"})
        Tagged('Sub', Scalar('auth-${AWS::Region}'))
    """
    unresolved = [name for name in placeholders(template) if name not in context]

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name.startswith("!"):
            # escapes only mean something inside !Sub
            return match.group(0) if unresolved else "${" + name[1:] + "}"
        if name in context:
            value = str(context[name])
            return value.replace("${", "${!") if unresolved else value
        return match.group(0)

    result = _PLACEHOLDER.sub(_replace, template)
    if unresolved:
        return Tagged("Sub", Scalar(result))
    return Scalar(result)
