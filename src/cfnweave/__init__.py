"""
cfnweave - template compiler for CloudFormation/SAM templates.

Embeds externally authored API definitions into parent templates and
generates CloudWatch alarm templates from a metric catalog, keeping key
order, comments, and intrinsic tags intact.
"""

from __future__ import annotations

from ._version import __version__
from .core.errors import (
    CompilerError,
    NotFound,
    ParseError,
    ReferenceNotFound,
    TypeMismatch,
    UnknownMetric,
    ValidationError,
)

__all__ = [
    "__version__",
    "CompilerError",
    "NotFound",
    "ParseError",
    "ReferenceNotFound",
    "TypeMismatch",
    "UnknownMetric",
    "ValidationError",
]
