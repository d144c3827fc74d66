"""
API definition embedder.

API resources in a template may point at an external Swagger/OpenAPI file
instead of carrying the definition inline::

    Resources:
      GatewayApi:
        Type: AWS::Serverless::Api
        Properties:
          DefinitionBody: api/gateway/resources/api.yml

The embedder replaces every such pointer with a deep copy of the referenced
document's root mapping. Comments around the pointer stay where they were.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from ..core.document import Document, KeyPath, Mapping, Scalar, walk
from ..core.errors import (
    ParseError,
    format_path,
    make_parse_error,
    make_reference_error,
    make_type_mismatch,
)
from ..core.loader import load_document

logger = logging.getLogger(__name__)

DEFAULT_DEFINITION_PROPERTIES: dict[str, str] = {
    "AWS::Serverless::Api": "DefinitionBody",
    "AWS::Serverless::HttpApi": "DefinitionBody",
    "AWS::ApiGateway::RestApi": "Body",
    "AWS::ApiGatewayV2::Api": "Body",
}


@dataclass
class DefinitionPointer:
    """A matched pointer: where it sits and which file it names."""

    resource: str
    properties: Mapping
    property_name: str
    reference: str
    key_path: KeyPath


@dataclass
class EmbeddedDefinition:
    """Record of one splice performed during an embedding pass."""

    resource: str
    key_path: KeyPath
    source: Path
    document: Document


class ApiEmbedder:
    """
    Replaces API definition pointers with the documents they name.

    Args:
        definition_properties: Resource type to definition property table
        api_root: Base directory for relative pointers (default: the parent
            document's directory)
        validate_intrinsics: Check intrinsic payload shapes in loaded files
    """

    def __init__(
        self,
        definition_properties: dict[str, str] | None = None,
        api_root: Path | None = None,
        *,
        validate_intrinsics: bool = True,
    ):
        self.definition_properties = dict(
            DEFAULT_DEFINITION_PROPERTIES if definition_properties is None else definition_properties
        )
        self.api_root = api_root
        self.validate_intrinsics = validate_intrinsics

    def find_pointers(self, document: Document) -> list[DefinitionPointer]:
        """Collect every definition pointer in document order."""
        pointers: list[DefinitionPointer] = []
        for path, node in walk(document.root):
            if not isinstance(node, Mapping):
                continue
            type_node = node.get("Type")
            if not isinstance(type_node, Scalar) or not isinstance(type_node.value, str):
                continue
            property_name = self.definition_properties.get(type_node.value)
            if property_name is None:
                continue
            properties = node.get("Properties")
            if not isinstance(properties, Mapping):
                continue
            pointer = properties.get(property_name)
            # inline mappings and intrinsics are definitions already
            if not isinstance(pointer, Scalar) or not isinstance(pointer.value, str):
                continue
            if not pointer.value.strip():
                continue
            resource = path[-1] if path and isinstance(path[-1], str) else format_path(path)
            pointers.append(
                DefinitionPointer(
                    resource=resource,
                    properties=properties,
                    property_name=property_name,
                    reference=pointer.value.strip(),
                    key_path=(*path, "Properties", property_name),
                )
            )
        return pointers

    def resolve(self, document: Document, reference: str) -> Path:
        """Resolve a pointer against ``api_root``, the document's directory, or cwd."""
        target = Path(reference)
        if target.is_absolute():
            return target
        if self.api_root is not None:
            base = self.api_root
        elif document.source is not None:
            base = document.source.parent
        else:
            base = Path.cwd()
        return base / target

    def _load_definition(self, document: Document, pointer: DefinitionPointer, target: Path) -> Document:
        if not target.is_file():
            raise make_reference_error(
                f"API definition not found: {pointer.reference} (resolved to {target})",
                document=document.name,
                key_path=pointer.key_path,
            )
        try:
            definition = load_document(target, validate_intrinsics=self.validate_intrinsics)
        except ParseError as exc:
            context = exc.context
            raise make_parse_error(
                f"invalid API definition referenced from "
                f"{document.name} at {format_path(pointer.key_path)}: {exc.message}",
                document=target,
                line=context.line if context else None,
                column=context.column if context else None,
            ) from exc
        if not isinstance(definition.root, Mapping):
            raise make_type_mismatch(
                f"API definition {target} must be a mapping, found {definition.root.kind}",
                pointer.key_path,
                document.name,
            )
        return definition

    def embed(self, document: Document) -> list[EmbeddedDefinition]:
        """
        Embed every referenced API definition into ``document`` in place.

        All referenced files are loaded before the document is modified, so
        a failure leaves it untouched. Each distinct file is read once.

        Raises:
            ReferenceNotFound: A pointer names a missing file
            ParseError: A referenced file is not valid YAML/JSON
            TypeMismatch: A referenced file's root is not a mapping
        """
        pointers = self.find_pointers(document)
        if not pointers:
            logger.debug("No API definition pointers in %s", document.name)
            return []

        cache: dict[Path, Document] = {}
        loaded: list[tuple[DefinitionPointer, Path, Document]] = []
        for pointer in pointers:
            target = self.resolve(document, pointer.reference)
            key = target.resolve()
            if key not in cache:
                cache[key] = self._load_definition(document, pointer, target)
            loaded.append((pointer, target, cache[key]))

        embedded: list[EmbeddedDefinition] = []
        for pointer, target, definition in loaded:
            body = Mapping([(key, value.copy()) for key, value in definition.root.items()])  # type: ignore[union-attr]
            pointer.properties.replace(pointer.property_name, body)
            logger.debug(
                "Embedded %s into %s at %s", target, document.name, format_path(pointer.key_path)
            )
            embedded.append(
                EmbeddedDefinition(
                    resource=pointer.resource,
                    key_path=pointer.key_path,
                    source=target,
                    document=definition,
                )
            )
        logger.info("Embedded %d API definition(s) into %s", len(embedded), document.name)
        return embedded

    def embed_file(self, path: Path | str) -> tuple[Document, list[EmbeddedDefinition]]:
        """Load a template and embed its API definitions."""
        document = load_document(path, validate_intrinsics=self.validate_intrinsics)
        return document, self.embed(document)


def embedded_output_path(
    template: Path,
    out_dir: Path,
    prefix: str = "embedded.",
    suffix: str | None = None,
) -> Path:
    """
    Output path for an embedded template.

    Example:
        >>> embedded_output_path(Path("deployments/web.yml"), Path("out"))
        PosixPath('out/embedded.web.yml')
    """
    return out_dir / f"{prefix}{template.stem}{suffix or template.suffix or '.yml'}"
