"""lsp-image-builder CLI.

Commands:
- init    write a pipeline.json with the stock defaults
- render  print or write the two-stage Dockerfile
- build   run build stage -> final stage and record image.lock.json
- verify  check entrypoint, identity and absence of build tooling
- run     start the image with runtime arguments passed through
- digest  print the digest of the staged source inputs
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import NoReturn

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from lsp_image_builder.config import load_pipeline, write_scaffold
from lsp_image_builder.conformance.checks import verify_image
from lsp_image_builder.conformance.runner import smoke_run
from lsp_image_builder.core import build_image
from lsp_image_builder.errors import PipelineError, StageError
from lsp_image_builder.logging import set_verbose
from lsp_image_builder.package.context import stage_context
from lsp_image_builder.package.dockerfile import render_dockerfile
from lsp_image_builder.signing.checks import same_digest
from lsp_image_builder.types import PipelineSpec, VerifyReport

app = typer.Typer(add_completion=False, help="Build minimal, non-root LSP server images")
console = Console()

ConfigOpt = typer.Option(None, "--config", "-c", help="Path to pipeline.json")


def _spec(config: str | None, tag: str | None = None) -> PipelineSpec:
    spec = load_pipeline(Path(config) if config else None)
    if tag:
        spec = spec.model_copy(update={"image": tag})
    return spec


def _fail(exc: PipelineError) -> NoReturn:
    if isinstance(exc, StageError):
        rprint(f"[red]Error ({exc.kind}):[/red] {exc}")
    else:
        rprint(f"[red]Error:[/red] {exc}")
    if isinstance(exc, StageError) and exc.log_tail:
        console.print(exc.log_tail, style="dim", markup=False, highlight=False)
    raise typer.Exit(1)


def _report_table(report: VerifyReport) -> Table:
    table = Table(title=f"Verify {report.image}")
    table.add_column("Check", style="cyan")
    table.add_column("Result")
    table.add_column("Detail")
    for c in report.checks:
        result = "[yellow]skip[/yellow]" if c.skipped else (
            "[green]pass[/green]" if c.passed else "[red]fail[/red]"
        )
        table.add_row(c.name, result, c.detail)
    return table


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine output")) -> None:
    set_verbose(verbose)


@app.command()
def init(
    path: str = typer.Argument(".", help="Directory or file to write pipeline.json to"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    try:
        written = write_scaffold(Path(path), force=force)
    except FileExistsError as exc:
        rprint(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc
    rprint(f"[green]Scaffolded:[/green] {written}")


@app.command()
def render(
    config: str | None = ConfigOpt,
    out: str | None = typer.Option(None, "--out", help="Write to file instead of stdout"),
) -> None:
    try:
        text = render_dockerfile(_spec(config))
    except PipelineError as exc:
        _fail(exc)
    if out:
        Path(out).write_text(text, encoding="utf-8")
        rprint(f"[green]Dockerfile written:[/green] {out}")
    else:
        print(text, end="")


@app.command()
def build(
    source: str = typer.Argument(".", help="Path to the LSP server source tree"),
    config: str | None = ConfigOpt,
    tag: str | None = typer.Option(None, "--tag", "-t", help="Override the image tag"),
    out: str = typer.Option("./dist", help="Directory for image.lock.json"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Do not use the build cache"),
    keep_builder: bool = typer.Option(
        False, "--keep-builder", help="Keep the intermediate build stage image"
    ),
    verify: bool = typer.Option(False, "--verify", help="Run image checks after building"),
) -> None:
    try:
        spec = _spec(config, tag)
        result = build_image(
            spec,
            Path(source),
            outdir=Path(out),
            no_cache=no_cache,
            keep_builder=keep_builder,
        )
    except PipelineError as exc:
        _fail(exc)

    table = Table(title="Build Summary")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("image", result.image)
    table.add_row("image id", result.image_id)
    table.add_row("artifact", f"{result.artifact.stage}:{result.artifact.path}")
    table.add_row("entrypoint", spec.final.entrypoint.path)
    table.add_row("user", spec.final.identity.name)
    table.add_row("sources", f"sha256:{result.source_digest}")
    table.add_row("states", " -> ".join(s.value for s in result.history))
    if result.lock_path:
        table.add_row("lock", str(result.lock_path))
    console.print(table)

    if verify:
        report = verify_image(spec, result.image)
        console.print(_report_table(report))
        if not report.ok:
            raise typer.Exit(1)


@app.command()
def verify(
    image: str = typer.Argument(..., help="Image reference to check"),
    config: str | None = ConfigOpt,
) -> None:
    try:
        report = verify_image(_spec(config), image)
    except (PipelineError, LookupError) as exc:
        rprint(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc
    console.print(_report_table(report))
    if not report.ok:
        raise typer.Exit(1)
    rprint("[green]All checks passed.[/green]")


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def run(
    image: str = typer.Argument(..., help="Image reference to run"),
    args: list[str] | None = typer.Argument(None, help="Arguments for the LSP server"),
    publish: list[str] | None = typer.Option(
        None, "--publish", "-p", help="HOST:CONTAINER port mapping", show_default=False
    ),
    env: list[str] | None = typer.Option(
        None, "--env", help="KEY=VAL env vars", show_default=False
    ),
) -> None:
    try:
        code = smoke_run(image, args or [], publish=publish or [], extra_env=env or [])
    except (PipelineError, ValueError) as exc:
        rprint(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc
    raise typer.Exit(code)


@app.command()
def digest(
    source: str = typer.Argument(".", help="Path to the LSP server source tree"),
    config: str | None = ConfigOpt,
    lock: str | None = typer.Option(
        None, "--lock", help="image.lock.json to compare the sources against"
    ),
) -> None:
    try:
        with stage_context(_spec(config), Path(source)) as ctx:
            got = ctx.source_digest
    except PipelineError as exc:
        _fail(exc)
    print(f"sha256:{got}")
    if lock is None:
        return
    try:
        recorded = json.loads(Path(lock).read_text(encoding="utf-8")).get("source_sha256", "")
    except (OSError, ValueError) as exc:
        rprint(f"[red]Error:[/red] cannot read {lock}: {exc}")
        raise typer.Exit(1) from exc
    if not same_digest(got, recorded):
        rprint(f"[red]Sources changed since {lock}[/red] (recorded sha256:{recorded})")
        raise typer.Exit(1)
    rprint(f"[green]Sources match {lock}.[/green]")


if __name__ == "__main__":
    app()
