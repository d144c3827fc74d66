"""
Batch runner for embedding, alarm generation, and documentation extraction.

Templates are compiled independently. With ``run.workers > 1`` they are
compiled on a thread pool; results are always written in input order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .cfndoc import CfnDoc, extract_cfndocs, render_markdown
from .config import CONFIG_FILE, CompilerConfig, load_compiler_config
from .core.document import Document
from .core.dumper import dump_document
from .core.errors import CompilerError, make_reference_error, make_validation_error
from .core.loader import load_document
from .embed.embedder import ApiEmbedder, embedded_output_path
from .metrics.alarm_spec import AlarmSpecSet
from .metrics.catalog import MetricCatalog
from .metrics.generator import AlarmGenerator

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIXES = (".yml", ".yaml", ".json")


# =============================================================================
# Compile Result
# =============================================================================


@dataclass
class CompileResult:
    """Result from a batch compile run."""

    files_created: list[Path] = field(default_factory=list)
    documents: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    artifacts: dict[str, Any] = field(default_factory=dict)
    failures: dict[str, CompilerError] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        """Check if every document compiled."""
        return len(self.errors) == 0

    def add_error(self, error: str) -> None:
        """Add an error message."""
        self.errors.append(error)

    def add_warning(self, warning: str) -> None:
        """Add a warning message."""
        self.warnings.append(warning)

    def add_failure(self, name: str, error: CompilerError) -> None:
        """Record a document that failed to compile."""
        self.failures[name] = error
        self.add_error(str(error))

    def summary(self) -> dict[str, Any]:
        """Get a summary of the compile result."""
        return {
            "success": self.success,
            "files_created": len(self.files_created),
            "documents": self.documents,
            "errors": self.errors,
            "warnings": self.warnings,
        }


@dataclass
class _Job:
    name: str
    output: Path
    build: Callable[[], Document]


@dataclass
class _Outcome:
    document: Document | None = None
    error: CompilerError | None = None


def _attempt(build: Callable[[], Document]) -> _Outcome:
    try:
        return _Outcome(document=build())
    except CompilerError as exc:
        return _Outcome(error=exc)


def _claim_outputs(jobs: Sequence[_Job]) -> None:
    """Turn every job whose output path is already taken into a failing job."""
    claimed: dict[Path, str] = {}
    for job in jobs:
        owner = claimed.setdefault(job.output, job.name)
        if owner != job.name:
            job.build = _collision(job, owner)


def _collision(job: _Job, owner: str) -> Callable[[], Document]:
    def _build() -> Document:
        raise make_validation_error(f"output {job.output} is already written by {owner}", document=job.name)

    return _build


# =============================================================================
# Compile Runner
# =============================================================================


class CompileRunner:
    """
    Runs a compile step over a batch of templates.

    Usage:
        runner = CompileRunner(config, project_root)
        result = runner.embed([Path("deployments/web.yml")])
    """

    def __init__(self, config: CompilerConfig | None = None, project_root: Path | None = None):
        self.project_root = project_root or Path.cwd()
        if config is None:
            config = load_compiler_config(self.project_root / CONFIG_FILE)
        self.config = config
        self.output_dir = config.output.get_output_path(self.project_root)

    @property
    def suffix(self) -> str:
        return self.config.output.format.suffix

    def _outcomes(self, jobs: Sequence[_Job]) -> Iterator[tuple[_Job, _Outcome]]:
        workers = self.config.run.workers
        if workers <= 1 or len(jobs) <= 1:
            for job in jobs:
                yield job, _attempt(job.build)
            return

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(_attempt, job.build) for job in jobs]
            try:
                for job, future in zip(jobs, futures):
                    yield job, future.result()
            finally:
                for future in futures:
                    future.cancel()

    def _run(self, jobs: Sequence[_Job], result: CompileResult) -> CompileResult:
        best_effort = self.config.run.best_effort
        with closing(self._outcomes(jobs)) as outcomes:
            for job, outcome in outcomes:
                if outcome.error is not None:
                    logger.error("%s: %s", job.name, outcome.error)
                    result.add_failure(job.name, outcome.error)
                    if not best_effort:
                        skipped = len(jobs) - len(result.documents) - len(result.failures)
                        if skipped:
                            result.add_warning(f"Stopped after {job.name}; {skipped} document(s) not compiled")
                        break
                    continue
                assert outcome.document is not None
                result.files_created.append(dump_document(outcome.document, job.output))
                result.documents.append(job.name)
        return result

    def embed(self, templates: Sequence[Path]) -> CompileResult:
        """Embed API definitions into each template and write the results."""
        embed_config = self.config.embed
        embedder = ApiEmbedder(
            definition_properties=embed_config.definition_properties,
            api_root=embed_config.get_api_root(self.project_root),
            validate_intrinsics=embed_config.validate_intrinsics,
        )
        result = CompileResult()
        embedded: dict[str, list[str]] = {}
        result.artifacts["embedded"] = embedded

        def build(path: Path) -> Callable[[], Document]:
            def _build() -> Document:
                document, definitions = embedder.embed_file(path)
                embedded[str(path)] = [str(definition.source) for definition in definitions]
                return document

            return _build

        jobs = [
            _Job(
                name=str(path),
                output=embedded_output_path(path, self.output_dir, embed_config.output_prefix, self.suffix),
                build=build(path),
            )
            for path in templates
        ]
        _claim_outputs(jobs)
        return self._run(jobs, result)

    def alarms(
        self,
        specs: AlarmSpecSet,
        catalog: MetricCatalog,
        template_dir: Path | None = None,
    ) -> CompileResult:
        """
        Generate one alarm template per AlarmSpec template.

        With ``template_dir`` set, each source template is loaded so its
        resources' physical names can fill dimension placeholders.
        """
        generator = AlarmGenerator(catalog, self.config.alarms)
        validate_intrinsics = self.config.embed.validate_intrinsics

        def build(template: str) -> Callable[[], Document]:
            def _build() -> Document:
                source = None
                if template_dir is not None:
                    source = load_document(
                        find_template(template_dir, template), validate_intrinsics=validate_intrinsics
                    )
                return generator.generate(template, specs[template].entries, source=source)

            return _build

        jobs = [
            _Job(
                name=template,
                output=self.output_dir / f"alarms.{template}{self.suffix}",
                build=build(template),
            )
            for template in specs
        ]
        return self._run(jobs, CompileResult())

    def docs(self, templates: Sequence[Path]) -> CompileResult:
        """
        Extract cfndoc blocks from templates.

        Nothing is written; the rendered Markdown is returned in
        ``artifacts["markdown"]`` and the blocks in ``artifacts["cfndocs"]``.
        """
        result = CompileResult()
        docs: list[CfnDoc] = []
        for path in templates:
            try:
                document = load_document(path, validate_intrinsics=self.config.embed.validate_intrinsics)
            except CompilerError as exc:
                logger.error("%s: %s", path, exc)
                result.add_failure(str(path), exc)
                if not self.config.run.best_effort:
                    break
                continue
            found = extract_cfndocs(document)
            if not found:
                result.add_warning(f"No cfndoc blocks in {path}")
            docs.extend(found)
            result.documents.append(str(path))
        result.artifacts["cfndocs"] = docs
        result.artifacts["markdown"] = render_markdown(docs)
        return result


def find_template(template_dir: Path, name: str) -> Path:
    """
    Locate ``<name>.yml`` (or ``.yaml``/``.json``) under ``template_dir``.

    Raises:
        ReferenceNotFound: If no matching file exists
    """
    for suffix in TEMPLATE_SUFFIXES:
        candidate = template_dir / f"{name}{suffix}"
        if candidate.is_file():
            return candidate
    matches = sorted(
        path for suffix in TEMPLATE_SUFFIXES for path in template_dir.rglob(f"{name}{suffix}")
    )
    if matches:
        return matches[0]
    raise make_reference_error(f"no template named {name!r} in {template_dir}", document=name)
