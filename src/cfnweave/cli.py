"""
cfnweave command line.

Commands:
    embed    Embed API definitions into templates
    alarms   Generate CloudWatch alarm templates
    docs     Extract cfndoc operational documentation
    version  Show the cfnweave version
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import CONFIG_FILE, CompilerConfig, load_compiler_config
from .core.errors import CompilerError
from .runner import CompileResult, CompileRunner

app = typer.Typer(
    help="Embed API definitions and generate CloudWatch alarm templates",
    no_args_is_help=True,
)

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _fail(error: CompilerError) -> typer.Exit:
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    return typer.Exit(1)


def _load_config(
    config_path: Path,
    out: Path | None = None,
    workers: int | None = None,
    best_effort: bool = False,
) -> CompilerConfig:
    """Load cfnweave.toml and apply command-line overrides."""
    try:
        config = load_compiler_config(config_path)
    except CompilerError as exc:
        raise _fail(exc) from exc

    if out is not None:
        config.output.directory = str(out)
    if workers is not None:
        config.run.workers = workers
    if best_effort:
        config.run.best_effort = True
    return config


def _report(result: CompileResult, title: str) -> None:
    """Print a compile result; exit 1 if anything failed."""
    if result.files_created:
        table = Table(title=title)
        table.add_column("Document", style="cyan")
        table.add_column("Output", style="green")
        for name, path in zip(result.documents, result.files_created):
            table.add_row(escape(name), escape(str(path)))
        console.print(table)

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")

    if not result.success:
        console.print()
        for error in result.errors:
            console.print(f"[red]Error:[/red] {escape(error)}")
        console.print(
            Panel(
                f"{len(result.documents)} succeeded, {len(result.failures)} failed",
                title="[red]Compile failed[/red]",
                border_style="red",
            )
        )
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] {len(result.documents)} document(s) written")


ConfigOption = Annotated[
    Path,
    typer.Option("--config", "-c", help="Path to cfnweave.toml"),
]
OutOption = Annotated[
    Path | None,
    typer.Option("--out", "-o", help="Output directory (overrides [output].directory)"),
]
BestEffortOption = Annotated[
    bool,
    typer.Option("--best-effort", help="Keep going after a document fails"),
]


@app.callback()
def main_callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """cfnweave: template compiler for CloudFormation/SAM templates."""
    _configure_logging(verbose)


@app.command(name="embed")
def embed_command(
    templates: Annotated[
        list[Path],
        typer.Argument(help="Templates to process", exists=True, dir_okay=False),
    ],
    out: OutOption = None,
    api_root: Annotated[
        Path | None,
        typer.Option("--api-root", help="Base directory for API definition pointers"),
    ] = None,
    best_effort: BestEffortOption = False,
    config_path: ConfigOption = Path(CONFIG_FILE),
) -> None:
    """
    Embed referenced API definitions into templates.

    Example:
        cfnweave embed deployments/web.yml --out out/deployments
    """
    config = _load_config(config_path, out=out, best_effort=best_effort)
    if api_root is not None:
        config.embed.api_root = str(api_root.resolve())

    runner = CompileRunner(config, project_root=Path.cwd())
    _report(runner.embed(templates), "Embedded Templates")


@app.command(name="alarms")
def alarms_command(
    catalog_path: Annotated[
        Path,
        typer.Option("--catalog", help="Metric catalog file", exists=True, dir_okay=False),
    ],
    spec_path: Annotated[
        Path,
        typer.Option("--spec", help="AlarmSpec file", exists=True, dir_okay=False),
    ],
    templates_dir: Annotated[
        Path | None,
        typer.Option(
            "--templates",
            help="Directory of source templates (for resource names)",
            exists=True,
            file_okay=False,
        ),
    ] = None,
    out: OutOption = None,
    workers: Annotated[
        int | None,
        typer.Option("--workers", "-w", min=1, help="Templates to compile in parallel"),
    ] = None,
    best_effort: BestEffortOption = False,
    config_path: ConfigOption = Path(CONFIG_FILE),
) -> None:
    """
    Generate CloudWatch alarm templates from a metric catalog and AlarmSpec.

    Example:
        cfnweave alarms --catalog metrics.yml --spec alarms.yml
    """
    from .metrics import load_alarm_specs, load_catalog

    config = _load_config(config_path, out=out, workers=workers, best_effort=best_effort)
    try:
        catalog = load_catalog(catalog_path)
        specs = load_alarm_specs(spec_path)
    except CompilerError as exc:
        raise _fail(exc) from exc

    runner = CompileRunner(config, project_root=Path.cwd())
    _report(runner.alarms(specs, catalog, template_dir=templates_dir), "Alarm Templates")


@app.command(name="docs")
def docs_command(
    templates: Annotated[
        list[Path],
        typer.Argument(help="Templates to scan", exists=True, dir_okay=False),
    ],
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write Markdown to this file instead of stdout"),
    ] = None,
    config_path: ConfigOption = Path(CONFIG_FILE),
) -> None:
    """Extract <cfndoc> operational documentation from template comments."""
    config = _load_config(config_path)
    result = CompileRunner(config, project_root=Path.cwd()).docs(templates)
    if not result.success:
        for error in result.errors:
            console.print(f"[red]Error:[/red] {escape(error)}")
        raise typer.Exit(1)

    markdown = result.artifacts["markdown"]
    if output is None:
        console.print(markdown, markup=False, highlight=False)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(markdown, encoding="utf-8")
    console.print(f"[green]✓[/green] {len(result.artifacts['cfndocs'])} block(s) written to {escape(str(output))}")


@app.command(name="version")
def version_command() -> None:
    """Show the cfnweave version."""
    from ._version import __version__

    console.print(f"cfnweave {__version__}")


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
