"""
Error types for cfnweave loading, embedding, and alarm generation.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pydantic import ValidationError as PydanticValidationError


class CompilerError(Exception):
    """Base exception for all cfnweave errors."""

    def __init__(self, message: str, context: ErrorContext | None = None):
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context if available."""
        if self.context:
            location = self.context.format()
            if location:
                return f"{location}: {self.message}"
        return self.message

    @property
    def document(self) -> str | None:
        """Identity of the document the error was raised for."""
        if self.context and self.context.document is not None:
            return str(self.context.document)
        return None

    @property
    def key_path(self) -> tuple[str | int, ...]:
        """Key path at which the error occurred (empty if unknown)."""
        if self.context:
            return self.context.key_path
        return ()


class ParseError(CompilerError):
    """
    Raised when document text cannot be parsed.

    Examples:
    - Invalid YAML or JSON syntax
    - Duplicate mapping keys
    - Multiple documents in one stream
    - Recursive aliases
    """

    pass


class NotFound(CompilerError):
    """
    Raised when a key path does not resolve to a node.

    Navigation raises this instead of aborting so callers can decide
    whether a missing optional subtree is fatal.
    """

    pass


class ReferenceNotFound(NotFound):
    """
    Raised when a reference resolves to nothing.

    Examples:
    - An API definition pointer naming a file that does not exist
    - A template listed for alarm generation with no source file
    """

    pass


class TypeMismatch(CompilerError):
    """
    Raised when a node exists but has the wrong shape for an operation.

    Examples:
    - Navigating into a scalar as if it were a mapping
    - A recognized intrinsic function with a malformed payload
    - An embedded definition whose root is not a mapping
    """

    pass


class UnknownMetric(CompilerError):
    """
    Raised when an AlarmSpec entry names a metric missing from the catalog.

    ``metric`` is the first offending name; ``metrics`` lists every one.
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        template: str,
        metric: str,
        metrics: Sequence[str] = (),
    ):
        self.template = template
        self.metric = metric
        self.metrics = list(metrics) or [metric]
        super().__init__(message, context)


class ValidationError(CompilerError):
    """
    Raised when a catalog, AlarmSpec, or config file fails schema validation.

    Examples:
    - Non-positive evaluation period count
    - Unsupported statistic or comparison operator
    - Missing required field
    """

    pass


def format_path(path: Sequence[str | int]) -> str:
    """
    Render a key path as a dotted string.

    Returns:
        String like ``Resources.Api.Properties.Tags[0].Key``
    """
    parts: list[str] = []
    for segment in path:
        if isinstance(segment, int):
            parts.append(f"[{segment}]")
        elif parts:
            parts.append(f".{segment}")
        else:
            parts.append(str(segment))
    return "".join(parts)


@dataclass
class ErrorContext:
    """
    Context information for an error.

    Attributes:
        document: Path or name of the document being processed
        key_path: Key path inside the document
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """

    document: Path | str | None = None
    key_path: tuple[str | int, ...] = ()
    line: int | None = None
    column: int | None = None

    def format(self) -> str:
        """
        Format error context as a human-readable string.

        Returns:
            Formatted string like: "auth.yml:10:5 at Resources.Api"
        """
        location = ""
        if self.document is not None:
            location = str(self.document)
            if self.line is not None:
                location += f":{self.line}"
                if self.column is not None:
                    location += f":{self.column}"
        if self.key_path:
            where = f"at {format_path(self.key_path)}"
            location = f"{location} {where}" if location else where
        return location


def make_parse_error(
    message: str,
    document: Path | str | None = None,
    line: int | None = None,
    column: int | None = None,
    key_path: Sequence[str | int] = (),
) -> ParseError:
    """
    Helper to create a ParseError with context.

    Args:
        message: Error description
        document: Source document path or name
        line: Line number (1-indexed)
        column: Column number (1-indexed)
        key_path: Key path the parse failure belongs to

    Returns:
        ParseError with context attached
    """
    context = ErrorContext(
        document=document, key_path=tuple(key_path), line=line, column=column
    )
    return ParseError(message, context)


def make_not_found(
    message: str,
    key_path: Sequence[str | int],
    document: Path | str | None = None,
) -> NotFound:
    """Helper to create a NotFound error for a key path."""
    return NotFound(message, ErrorContext(document=document, key_path=tuple(key_path)))


def make_reference_error(
    message: str,
    document: Path | str | None = None,
    key_path: Sequence[str | int] = (),
) -> ReferenceNotFound:
    """Helper to create a ReferenceNotFound error with optional context."""
    return ReferenceNotFound(
        message, ErrorContext(document=document, key_path=tuple(key_path))
    )


def make_type_mismatch(
    message: str,
    key_path: Sequence[str | int] = (),
    document: Path | str | None = None,
) -> TypeMismatch:
    """Helper to create a TypeMismatch error for a key path."""
    return TypeMismatch(
        message, ErrorContext(document=document, key_path=tuple(key_path))
    )


def make_validation_error(
    message: str,
    document: Path | str | None = None,
    key_path: Sequence[str | int] = (),
) -> ValidationError:
    """Helper to create a ValidationError with optional context."""
    if document is None and not key_path:
        return ValidationError(message)
    return ValidationError(
        message, ErrorContext(document=document, key_path=tuple(key_path))
    )


def from_pydantic_error(
    exc: PydanticValidationError,
    document: Path | str | None = None,
    prefix: Sequence[str | int] = (),
) -> ValidationError:
    """
    Convert a pydantic validation failure into a ValidationError.

    The key path points at the first failing field; the message lists
    every failure.
    """
    failures = exc.errors()
    first = tuple(failures[0]["loc"]) if failures else ()
    messages = "; ".join(
        f"{format_path((*prefix, *failure['loc'])) or '<root>'}: {failure['msg']}"
        for failure in failures
    )
    return make_validation_error(messages, document, (*prefix, *first))
