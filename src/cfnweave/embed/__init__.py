"""Embedding of external API definition documents into templates."""

from .embedder import (
    DEFAULT_DEFINITION_PROPERTIES,
    ApiEmbedder,
    DefinitionPointer,
    EmbeddedDefinition,
    embedded_output_path,
)

__all__ = [
    "DEFAULT_DEFINITION_PROPERTIES",
    "ApiEmbedder",
    "DefinitionPointer",
    "EmbeddedDefinition",
    "embedded_output_path",
]
