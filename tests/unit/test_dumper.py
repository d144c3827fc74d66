"""Tests for the template dumper."""

import json
from pathlib import Path

import pytest

from cfnweave.core.document import Comments, Document, Mapping, Scalar, Sequence, Tagged, from_python
from cfnweave.core.dumper import canonical, dump, dump_document, dump_json
from cfnweave.core.loader import load

ROUND_TRIP_SOURCES = [
    "a: 1\nb: text\n",
    "flag: yes\nversion: 2010-09-09\nport: '8080'\n",
    "list:\n  - 1\n  - two\n  - null\n",
    "nested:\n  - name: a\n    value: 1\n  - name: b\n    tags:\n      - x\n      - y\n",
    "flow: {a: 1, b: [x, y]}\nempty: []\nnone: {}\n",
    "ref: !Ref Bucket\nsub: !Sub 'arn:${AWS::Partition}:s3:::${Bucket}/*'\n",
    "cond: !If [IsProd, !Ref ProdValue, !Ref 'AWS::NoValue']\n",
    "join: !Join\n  - ''\n  - - 'arn:aws:s3:::'\n    - !Ref Bucket\n",
    "script: |\n  #!/bin/bash\n  echo hi\nfolded: >\n  one\n  two\n",
    'quoted: "line one\\nline two"\nspecial: "a: b"\nhash: "x #y"\n',
    "responses:\n  '200':\n    description: OK\n",
    "matrix:\n  - - 1\n    - 2\n  - - 3\n",
    "opaque: !FindInMap [RegionMap, !Ref 'AWS::Region', AMI]\n",
    "a:\n  b: !Sub\n    - '${x}'\n    - x: 1\n  c: 2\n",
    "R:\n  P:\n    Layers: !If\n      - C\n      - x\n      - y\n    B: 2\n",
    "zones: !GetAZs\nempty:\nitems:\n  - !GetAZs\n  -\n",
    "flow: [!GetAZs '', null]\n",
]


class TestRoundTrip:
    """load(dump(load(x))) == load(x)."""

    @pytest.mark.parametrize("source", ROUND_TRIP_SOURCES)
    def test_structural_round_trip(self, source: str):
        first = load(source)
        second = load(dump(first))
        assert second == first

    @pytest.mark.parametrize("source", ROUND_TRIP_SOURCES)
    def test_dump_is_stable(self, source: str):
        once = dump(load(source))
        assert dump(load(once)) == once

    def test_fixture_template_round_trip(self, templates_dir: Path):
        for name in ("valid-api.yml", "auth.yml", "api/first.yml", "api/second.yml"):
            text = (templates_dir / name).read_text()
            first = load(text)
            assert load(dump(first)) == first, name

    def test_nested_intrinsic_blocks_round_trip(self, fixtures_dir: Path):
        text = (fixtures_dir / "round_trip" / "function.yml").read_text()
        first = load(text)
        once = dump(first)
        assert load(once) == first
        assert "      Layers: !If\n        - AttachLayers\n" in once
        assert "            - base: !Join [',', !Ref LayerVersionArns]\n" in once


class TestLayout:
    """Emitted text."""

    def test_simple_mapping(self):
        assert dump(load("a: 1\nb: text\n")) == "a: 1\nb: text\n"

    def test_sequences_are_indented(self):
        assert dump(load("items:\n- a\n- b\n")) == "items:\n  - a\n  - b\n"

    def test_mapping_items_start_on_dash_line(self):
        text = "items:\n  - name: a\n    value: 1\n"
        assert dump(load(text)) == text

    def test_plain_spellings_are_reused(self):
        text = "AWSTemplateFormatVersion: 2010-09-09\nEnabled: True\nMode: 0755\n"
        assert dump(load(text)) == text

    def test_strings_that_look_like_other_types_are_quoted(self):
        node = from_python({"a": "200", "b": "yes", "c": "null", "d": "2010-09-09"})
        reloaded = load(dump(node))
        assert reloaded == node

    def test_short_form_tags(self):
        text = "Bucket: !Ref MyBucket\nArn: !GetAtt Function.Arn\n"
        assert dump(load(text)) == text

    def test_tag_with_block_payload(self):
        text = "Value: !If\n  - IsProd\n  - a\n  - b\n"
        assert dump(load(text)) == text

    def test_nested_tag_with_block_payload_keeps_indent(self):
        text = "Resources:\n  Fn:\n    Layers: !If\n      - C\n      - x\n      - y\n    Size: 2\n"
        assert dump(load(text)) == text

    def test_empty_tagged_scalar(self):
        text = "Zones: !GetAZs\nRegion:\n"
        assert dump(load(text)) == text

    def test_new_multiline_string_uses_literal_style(self):
        node = Mapping([("script", Scalar("one\ntwo\n"))])
        assert dump(node) == "script: |\n  one\n  two\n"

    def test_new_tagged_node(self):
        node = Mapping([("Actions", Sequence([Tagged("Ref", Scalar("Topic"))]))])
        assert dump(node) == "Actions:\n  - !Ref Topic\n"

    def test_empty_collections(self):
        assert dump(Mapping()) == "{}\n"
        assert dump(Mapping([("a", Sequence())])) == "a: []\n"


class TestComments:
    """Comments are emitted where they are attached."""

    def test_comments_survive(self):
        text = (
            "# Header\n"
            "\n"
            "Resources:\n"
            "  # the api\n"
            "  Api:\n"
            "    Type: AWS::Serverless::Api # type\n"
            "    Properties:\n"
            "      Name: api\n"
            "# footer\n"
        )
        assert dump(load(text)) == text

    def test_sequence_comments(self):
        text = "items:\n  # first\n  - a\n  - b # second\n"
        assert dump(load(text)) == text

    def test_comment_on_mapping_item_goes_above_dash(self):
        node = Mapping(
            [
                (
                    "items",
                    Sequence(
                        [Mapping([("name", Scalar("a", comments=Comments(before=["# note"])))])]
                    ),
                )
            ]
        )
        assert dump(node) == "items:\n  # note\n  - name: a\n"


class TestJson:
    """JSON output."""

    def test_long_form_intrinsics(self):
        node = load("a: !Ref Bucket\nb: !GetAtt Fn.Arn\nc: !Sub x-${AWS::Region}\n")
        data = json.loads(dump_json(node))
        assert data == {
            "a": {"Ref": "Bucket"},
            "b": {"Fn::GetAtt": ["Fn", "Arn"]},
            "c": {"Fn::Sub": "x-${AWS::Region}"},
        }

    def test_dump_document_picks_format(self, tmp_path: Path):
        document = Document(root=from_python({"a": 1}))
        json_path = dump_document(document, tmp_path / "out" / "doc.json")
        yaml_path = dump_document(document, tmp_path / "out" / "doc.yml")

        assert json.loads(json_path.read_text()) == {"a": 1}
        assert yaml_path.read_text() == "a: 1\n"


class TestCanonical:
    """Sorted-key fallback."""

    def test_sorts_keys_at_every_level(self):
        node = from_python({"b": {"z": 1, "y": 2}, "a": [{"d": 1, "c": 2}]})
        assert dump(canonical(node)) == "a:\n  - c: 2\n    d: 1\nb:\n  y: 2\n  z: 1\n"

    def test_does_not_modify_original(self):
        node = from_python({"b": 1, "a": 2})
        canonical(node)
        assert node.keys() == ["b", "a"]  # type: ignore[attr-defined]
