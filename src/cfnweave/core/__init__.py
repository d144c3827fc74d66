"""Core cfnweave functionality: document model, intrinsics, loader, dumper, errors."""

from .document import (
    Comments,
    Document,
    Intrinsic,
    KeyPath,
    Mapping,
    Node,
    Scalar,
    Sequence,
    Tagged,
    find,
    from_python,
    get,
    to_python,
    walk,
)
from .dumper import canonical, dump, dump_document, dump_json
from .errors import (
    CompilerError,
    ErrorContext,
    NotFound,
    ParseError,
    ReferenceNotFound,
    TypeMismatch,
    UnknownMetric,
    ValidationError,
    format_path,
)
from .intrinsics import interpolate, long_form, placeholders, validate
from .loader import load, load_document

__all__ = [
    "Comments",
    "Document",
    "Intrinsic",
    "KeyPath",
    "Mapping",
    "Node",
    "Scalar",
    "Sequence",
    "Tagged",
    "find",
    "from_python",
    "get",
    "to_python",
    "walk",
    "canonical",
    "dump",
    "dump_document",
    "dump_json",
    "CompilerError",
    "ErrorContext",
    "NotFound",
    "ParseError",
    "ReferenceNotFound",
    "TypeMismatch",
    "UnknownMetric",
    "ValidationError",
    "format_path",
    "interpolate",
    "long_form",
    "placeholders",
    "validate",
    "load",
    "load_document",
]
