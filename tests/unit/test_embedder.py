"""Tests for the API definition embedder."""

from pathlib import Path

import pytest

from cfnweave.core.document import Document, Mapping, Scalar, Tagged, get
from cfnweave.core.dumper import dump
from cfnweave.core.errors import ParseError, ReferenceNotFound, TypeMismatch
from cfnweave.core.loader import load, load_document
from cfnweave.embed import ApiEmbedder, embedded_output_path

SHARED_TEMPLATE = """\
Resources:
  PublicApi:
    Type: AWS::Serverless::Api
    Properties:
      DefinitionBody: shared.yml
  PrivateApi:
    Type: AWS::ApiGateway::RestApi
    Properties:
      Body: shared.yml
"""


def _write(directory: Path, name: str, text: str) -> Path:
    path = directory / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestFindPointers:
    """Pointer discovery."""

    def test_finds_pointers_in_document_order(self, templates_dir: Path):
        document = load_document(templates_dir / "valid-api.yml")
        pointers = ApiEmbedder().find_pointers(document)

        assert [p.resource for p in pointers] == ["FirstApi", "SecondApi"]
        assert [p.reference for p in pointers] == ["api/first.yml", "api/second.yml"]
        assert pointers[0].key_path == ("Resources", "FirstApi", "Properties", "DefinitionBody")

    def test_inline_definitions_are_skipped(self):
        root = load(
            "Resources:\n"
            "  Inline:\n"
            "    Type: AWS::Serverless::Api\n"
            "    Properties:\n"
            "      DefinitionBody:\n"
            "        openapi: 3.0.1\n"
            "  Computed:\n"
            "    Type: AWS::Serverless::Api\n"
            "    Properties:\n"
            "      DefinitionBody: !Sub '${Bucket}/api.yml'\n"
        )
        assert ApiEmbedder().find_pointers(Document(root=root)) == []

    def test_custom_property_table(self):
        root = load(
            "Resources:\n"
            "  Machine:\n"
            "    Type: AWS::StepFunctions::StateMachine\n"
            "    Properties:\n"
            "      DefinitionBody: machine.yml\n"
        )
        embedder = ApiEmbedder({"AWS::StepFunctions::StateMachine": "DefinitionBody"})
        assert len(embedder.find_pointers(Document(root=root))) == 1
        assert ApiEmbedder().find_pointers(Document(root=root)) == []


class TestEmbed:
    """Embedding the fixture deployment."""

    def test_embeds_both_definitions(self, templates_dir: Path):
        document, embedded = ApiEmbedder().embed_file(templates_dir / "valid-api.yml")

        assert len(embedded) == 2
        first = document.get(("Resources", "FirstApi", "Properties", "DefinitionBody"))
        second = document.get(("Resources", "SecondApi", "Properties", "DefinitionBody"))
        assert isinstance(first, Mapping) and isinstance(second, Mapping)
        assert first["swagger"] == Scalar("2.0")
        assert get(first, ("info", "title")) == Scalar("panther-first-api")
        assert second["openapi"] == Scalar("3.0.1")

    def test_embedded_tags_are_preserved(self, templates_dir: Path):
        document, _ = ApiEmbedder().embed_file(templates_dir / "valid-api.yml")
        uri = document.get(
            (
                "Resources",
                "SecondApi",
                "Properties",
                "DefinitionBody",
                "paths",
                "/health",
                "get",
                "x-amazon-apigateway-integration",
                "uri",
            )
        )
        assert uri == Tagged("GetAtt", Scalar("HealthFunction.Arn"))

    def test_comments_around_pointer_are_kept(self, templates_dir: Path):
        document, _ = ApiEmbedder().embed_file(templates_dir / "valid-api.yml")
        properties = ("Resources", "FirstApi", "Properties")

        assert document.get((*properties, "DefinitionBody")).comments.before == ["# preceding comment"]
        assert document.get((*properties, "Name")).comments.before == ["# trailing comment"]
        second = document.get(("Resources", "SecondApi", "Properties", "DefinitionBody"))
        assert second.comments.inline == "# pointer comment"

    def test_dumped_output(self, templates_dir: Path):
        document, _ = ApiEmbedder().embed_file(templates_dir / "valid-api.yml")
        text = dump(document.root)

        assert text.startswith("# Example deployment used by the embedding tests.\n")
        assert "      # preceding comment\n      DefinitionBody:\n        swagger: \"2.0\"\n" in text
        assert "      # trailing comment\n      Name: first-api\n" in text
        assert "      DefinitionBody: # pointer comment\n        openapi: 3.0.1\n" in text
        assert "# health check lambda" in text
        assert "REGION: !Sub ${AWS::Region}" in text

    def test_definition_header_is_not_copied(self, templates_dir: Path):
        document, _ = ApiEmbedder().embed_file(templates_dir / "valid-api.yml")
        assert "This header stays with the file" not in dump(document.root)

    def test_other_content_unchanged(self, templates_dir: Path):
        original = load_document(templates_dir / "valid-api.yml")
        document, _ = ApiEmbedder().embed_file(templates_dir / "valid-api.yml")

        for name in ("AWSTemplateFormatVersion", "Transform", "Description"):
            assert document.get((name,)) == original.get((name,))
        assert document.get(("Resources", "TestHandlerFunction")) == original.get(
            ("Resources", "TestHandlerFunction")
        )

    def test_embedding_is_idempotent(self, templates_dir: Path):
        embedder = ApiEmbedder()
        document, _ = embedder.embed_file(templates_dir / "valid-api.yml")
        once = dump(document.root)

        assert embedder.embed(document) == []
        assert dump(document.root) == once

    def test_same_file_embedded_at_every_pointer(self, tmp_path: Path):
        _write(tmp_path, "shared.yml", "openapi: 3.0.1\npaths: {}\n")
        template = _write(tmp_path, "stack.yml", SHARED_TEMPLATE)

        document, embedded = ApiEmbedder().embed_file(template)

        assert [item.resource for item in embedded] == ["PublicApi", "PrivateApi"]
        assert embedded[0].document is embedded[1].document
        public = document.get(("Resources", "PublicApi", "Properties", "DefinitionBody"))
        private = document.get(("Resources", "PrivateApi", "Properties", "Body"))
        assert public == private
        assert public is not private

    def test_api_root_overrides_document_directory(self, tmp_path: Path):
        _write(tmp_path / "apis", "shared.yml", "openapi: 3.0.1\n")
        template = _write(tmp_path / "deployments", "stack.yml", SHARED_TEMPLATE)

        document, embedded = ApiEmbedder(api_root=tmp_path / "apis").embed_file(template)

        assert len(embedded) == 2
        assert embedded[0].source == tmp_path / "apis" / "shared.yml"


class TestEmbedErrors:
    """Failures name the offending document and leave the template untouched."""

    def test_missing_definition_raises(self, tmp_path: Path):
        template = _write(tmp_path, "stack.yml", SHARED_TEMPLATE)
        document = load_document(template)
        before = dump(document.root)

        with pytest.raises(ReferenceNotFound) as exc_info:
            ApiEmbedder().embed(document)

        error = exc_info.value
        assert "shared.yml" in error.message
        assert error.document == str(template)
        assert error.key_path == ("Resources", "PublicApi", "Properties", "DefinitionBody")
        assert dump(document.root) == before

    def test_invalid_definition_names_nested_file(self, tmp_path: Path):
        broken = _write(tmp_path, "shared.yml", "openapi: [3.0.1\npaths: {}\n")
        template = _write(tmp_path, "stack.yml", SHARED_TEMPLATE)

        with pytest.raises(ParseError) as exc_info:
            ApiEmbedder().embed_file(template)

        error = exc_info.value
        assert error.document == str(broken)
        assert str(template) in error.message
        assert error.context is not None and error.context.line is not None

    def test_non_mapping_definition_raises(self, tmp_path: Path):
        _write(tmp_path, "shared.yml", "- not\n- a mapping\n")
        template = _write(tmp_path, "stack.yml", SHARED_TEMPLATE)

        with pytest.raises(TypeMismatch, match="must be a mapping"):
            ApiEmbedder().embed_file(template)


class TestOutputPath:
    """Tests for embedded_output_path."""

    def test_default_prefix(self):
        assert embedded_output_path(Path("deployments/web.yml"), Path("out")) == Path("out/embedded.web.yml")

    def test_suffix_override(self):
        path = embedded_output_path(Path("web.yaml"), Path("out"), prefix="", suffix=".json")
        assert path == Path("out/web.json")
