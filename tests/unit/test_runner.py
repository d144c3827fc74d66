"""Tests for the batch compile runner."""

import json
from pathlib import Path

import pytest

from cfnweave.config import CompilerConfig, OutputFormat
from cfnweave.core.document import Mapping, Scalar, get
from cfnweave.core.errors import ParseError, ReferenceNotFound, UnknownMetric, ValidationError
from cfnweave.core.loader import load_document
from cfnweave.metrics import AlarmSpecSet, MetricCatalog
from cfnweave.runner import CompileResult, CompileRunner, find_template

MISSING_POINTER_TEMPLATE = """\
Resources:
  Api:
    Type: AWS::Serverless::Api
    Properties:
      DefinitionBody: missing.yml
"""


@pytest.fixture
def broken_template(tmp_path: Path) -> Path:
    path = tmp_path / "broken.yml"
    path.write_text(MISSING_POINTER_TEMPLATE)
    return path


class TestCompileResult:
    def test_success_tracks_errors(self):
        result = CompileResult()
        assert result.success

        result.add_warning("careful")
        assert result.success

        result.add_error("boom")
        assert not result.success
        assert result.summary()["errors"] == ["boom"]


class TestEmbed:
    def test_writes_embedded_template(
        self, compiler_config: CompilerConfig, templates_dir: Path, tmp_path: Path
    ):
        template = templates_dir / "valid-api.yml"
        result = CompileRunner(compiler_config, project_root=tmp_path).embed([template])

        assert result.success
        output = tmp_path / "out" / "embedded.valid-api.yml"
        assert result.files_created == [output]
        assert result.documents == [str(template)]
        assert len(result.artifacts["embedded"][str(template)]) == 2

        written = load_document(output)
        body = written.get(("Resources", "FirstApi", "Properties", "DefinitionBody"))
        assert isinstance(body, Mapping)
        assert output.read_text().startswith("# Example deployment used by the embedding tests.\n")

    def test_json_output(self, compiler_config: CompilerConfig, templates_dir: Path, tmp_path: Path):
        compiler_config.output.format = OutputFormat.JSON
        result = CompileRunner(compiler_config, project_root=tmp_path).embed([templates_dir / "valid-api.yml"])

        output = tmp_path / "out" / "embedded.valid-api.json"
        assert result.files_created == [output]
        data = json.loads(output.read_text())
        assert data["Resources"]["FirstApi"]["Properties"]["DefinitionBody"]["swagger"] == "2.0"

    def test_stops_at_first_failure(
        self, compiler_config: CompilerConfig, templates_dir: Path, broken_template: Path, tmp_path: Path
    ):
        runner = CompileRunner(compiler_config, project_root=tmp_path)
        result = runner.embed([broken_template, templates_dir / "valid-api.yml"])

        assert not result.success
        assert result.documents == []
        assert isinstance(result.failures[str(broken_template)], ReferenceNotFound)
        assert any("Stopped after" in warning for warning in result.warnings)
        assert not (tmp_path / "out" / "embedded.valid-api.yml").exists()

    def test_best_effort_continues(
        self, compiler_config: CompilerConfig, templates_dir: Path, broken_template: Path, tmp_path: Path
    ):
        compiler_config.run.best_effort = True
        runner = CompileRunner(compiler_config, project_root=tmp_path)
        result = runner.embed([broken_template, templates_dir / "valid-api.yml"])

        assert not result.success
        assert result.documents == [str(templates_dir / "valid-api.yml")]
        assert list(result.failures) == [str(broken_template)]
        assert (tmp_path / "out" / "embedded.valid-api.yml").exists()

    def test_undecodable_definition_is_reported(
        self, compiler_config: CompilerConfig, templates_dir: Path, tmp_path: Path
    ):
        template = tmp_path / "binary.yml"
        template.write_text(MISSING_POINTER_TEMPLATE.replace("missing.yml", "binary-api.yml"))
        (tmp_path / "binary-api.yml").write_bytes(b"swagger: \xff\xfe\n")
        compiler_config.run.best_effort = True
        runner = CompileRunner(compiler_config, project_root=tmp_path)
        result = runner.embed([template, templates_dir / "valid-api.yml"])

        assert isinstance(result.failures[str(template)], ParseError)
        assert result.documents == [str(templates_dir / "valid-api.yml")]

    def test_same_stem_outputs_collide(self, compiler_config: CompilerConfig, tmp_path: Path):
        first = tmp_path / "a" / "api.yml"
        second = tmp_path / "b" / "api.yml"
        for path in (first, second):
            path.parent.mkdir()
            path.write_text("Resources: {}\n")
        compiler_config.run.best_effort = True
        result = CompileRunner(compiler_config, project_root=tmp_path).embed([first, second])

        assert result.documents == [str(first)]
        assert isinstance(result.failures[str(second)], ValidationError)
        assert result.files_created == [tmp_path / "out" / "embedded.api.yml"]


class TestAlarms:
    def test_one_template_per_spec(
        self, compiler_config: CompilerConfig, catalog: MetricCatalog, alarm_specs: AlarmSpecSet, tmp_path: Path
    ):
        result = CompileRunner(compiler_config, project_root=tmp_path).alarms(alarm_specs, catalog)

        assert result.success
        assert result.documents == ["auth", "api"]
        assert result.files_created == [
            tmp_path / "out" / "alarms.auth.yml",
            tmp_path / "out" / "alarms.api.yml",
        ]

    def test_parallel_keeps_input_order(
        self, compiler_config: CompilerConfig, catalog: MetricCatalog, alarm_specs: AlarmSpecSet, tmp_path: Path
    ):
        sequential = CompileRunner(compiler_config, project_root=tmp_path).alarms(alarm_specs, catalog)
        first_pass = [path.read_text() for path in sequential.files_created]

        compiler_config.run.workers = 4
        parallel = CompileRunner(compiler_config, project_root=tmp_path).alarms(alarm_specs, catalog)

        assert parallel.documents == ["auth", "api"]
        assert [path.read_text() for path in parallel.files_created] == first_pass

    def test_source_templates_fill_names(
        self,
        compiler_config: CompilerConfig,
        catalog: MetricCatalog,
        alarm_specs: AlarmSpecSet,
        templates_dir: Path,
        tmp_path: Path,
    ):
        runner = CompileRunner(compiler_config, project_root=tmp_path)
        result = runner.alarms(alarm_specs, catalog, template_dir=templates_dir)

        assert result.success
        auth = load_document(tmp_path / "out" / "alarms.auth.yml")
        value = get(auth.root, ("Resources", "AuthLambdaErrorsAlarm", "Properties", "Dimensions", 0, "Value"))
        assert value == Scalar("panther-auth")

    def test_missing_source_template(
        self, compiler_config: CompilerConfig, catalog: MetricCatalog, templates_dir: Path, tmp_path: Path
    ):
        specs = AlarmSpecSet.from_dict(
            {
                "billing": [
                    {
                        "metric": "FailedLogins",
                        "comparison": "GreaterThan",
                        "threshold": 1,
                        "evaluation_periods": 1,
                        "period_seconds": 60,
                    }
                ]
            }
        )
        result = CompileRunner(compiler_config, project_root=tmp_path).alarms(
            specs, catalog, template_dir=templates_dir
        )

        assert isinstance(result.failures["billing"], ReferenceNotFound)

    def test_unknown_metric_fails_template(
        self, compiler_config: CompilerConfig, catalog: MetricCatalog, tmp_path: Path
    ):
        specs = AlarmSpecSet.from_dict(
            {
                "auth": [
                    {
                        "metric": "DiskFull",
                        "comparison": "GreaterThan",
                        "threshold": 90,
                        "evaluation_periods": 1,
                        "period_seconds": 60,
                    }
                ]
            }
        )
        result = CompileRunner(compiler_config, project_root=tmp_path).alarms(specs, catalog)

        assert isinstance(result.failures["auth"], UnknownMetric)
        assert result.files_created == []


class TestDocs:
    def test_collects_markdown(self, compiler_config: CompilerConfig, templates_dir: Path, tmp_path: Path):
        runner = CompileRunner(compiler_config, project_root=tmp_path)
        result = runner.docs([templates_dir / "valid-api.yml", templates_dir / "auth.yml"])

        assert result.success
        assert [doc.label for doc in result.artifacts["cfndocs"]] == ["panther-test-handler"]
        assert "## panther-test-handler" in result.artifacts["markdown"]
        assert result.warnings == [f"No cfndoc blocks in {templates_dir / 'auth.yml'}"]
        assert result.files_created == []

    def test_missing_template(self, compiler_config: CompilerConfig, tmp_path: Path):
        result = CompileRunner(compiler_config, project_root=tmp_path).docs([tmp_path / "missing.yml"])
        assert not result.success
        assert result.artifacts["markdown"] == "# Operational Documentation\n"


class TestFindTemplate:
    def test_direct_match(self, templates_dir: Path):
        assert find_template(templates_dir, "auth") == templates_dir / "auth.yml"

    def test_nested_match(self, templates_dir: Path):
        assert find_template(templates_dir, "second") == templates_dir / "api" / "second.yml"

    def test_no_match(self, templates_dir: Path):
        with pytest.raises(ReferenceNotFound):
            find_template(templates_dir, "billing")
