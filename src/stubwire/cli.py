from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from stubwire.orchestrator.pipeline import (
    CompileResult,
    load_bundle,
    run_compile,
    write_bundle,
    write_stub_module,
)
from stubwire.repo.scanner import DEFAULT_PATTERNS

app = typer.Typer(no_args_is_help=True, add_completion=False)

console = Console()


@app.callback()
def _setup(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _repo(repo: str) -> Path:
    repo_path = Path(repo).expanduser().resolve()
    if not repo_path.exists():
        raise typer.BadParameter(f"Repo path does not exist: {repo_path}")
    if not repo_path.is_dir():
        raise typer.BadParameter(f"Repo path is not a directory: {repo_path}")
    return repo_path


def _compile(repo: str, pattern: Optional[List[str]], max_files: Optional[int]) -> CompileResult:
    patterns = tuple(pattern) if pattern else DEFAULT_PATTERNS
    return run_compile(_repo(repo), patterns=patterns, max_files=max_files)


def _print_errors(result: CompileResult) -> None:
    if not result.errors and not result.warnings:
        return
    console.print("")
    for fe in result.errors:
        console.print(f"[yellow]skipped[/yellow] {fe.rel_path}: {fe.error}")
    for w in result.warnings:
        console.print(f"[yellow]warning[/yellow] {w}")


@app.command()
def scan(
    repo: str = typer.Argument(..., help="Path to the repo to scan"),
    pattern: Optional[List[str]] = typer.Option(None, "--pattern", "-p", help="Glob for service files (repeatable)"),
    max_files: Optional[int] = typer.Option(None, help="Limit scanned files (debug)"),
) -> None:
    """List every compiled endpoint and event."""
    result = _compile(repo, pattern, max_files)

    console.print(f"[bold green]stubwire[/bold green] scan: {result.repo_path}")
    console.print(f"Files scanned: {result.files_scanned}")
    console.print(f"Candidate files: {len(result.candidate_files)}")
    console.print(f"Services: [bold]{len(result.bundle.services)}[/bold]")

    table = Table(show_header=True, header_style="bold")
    table.add_column("SERVICE", no_wrap=True)
    table.add_column("KIND", no_wrap=True)
    table.add_column("METHOD")
    table.add_column("VERB/EVENT", no_wrap=True)
    table.add_column("PATH")
    table.add_column("FILE", no_wrap=True)

    for s in result.bundle.services:
        for e in s.endpoints:
            upload = f" [dim]({e.file_upload.shape})[/dim]" if e.file_upload else ""
            table.add_row(s.name, s.kind, e.name, e.verb, e.path_template + upload, s.source_path)
        for ev in s.events:
            label = ev.event + (" [dim](ack)[/dim]" if ev.expects_ack else "")
            table.add_row(s.name, s.kind, ev.name, label, ev.namespace or "", s.source_path)

    console.print(table)
    _print_errors(result)


@app.command("compile")
def compile_(
    repo: str = typer.Argument(..., help="Path to the repo to compile"),
    out: str = typer.Option("contracts.json", "--out", "-o", help="Where to write the contract bundle"),
    pattern: Optional[List[str]] = typer.Option(None, "--pattern", "-p", help="Glob for service files (repeatable)"),
    max_files: Optional[int] = typer.Option(None, help="Limit scanned files (debug)"),
) -> None:
    """Compile annotated services into a JSON contract bundle."""
    result = _compile(repo, pattern, max_files)
    out_path = write_bundle(result.bundle, Path(out).expanduser())
    console.print(
        f"[bold green]Wrote[/bold green] {len(result.bundle.services)} services "
        f"({result.endpoint_count} endpoints, {result.event_count} events) to: {out_path}"
    )
    _print_errors(result)


@app.command()
def generate(
    repo: Optional[str] = typer.Argument(None, help="Path to the repo (omit with --bundle)"),
    out: str = typer.Option("stubs.py", "--out", "-o", help="Where to write the stub module"),
    bundle: Optional[str] = typer.Option(None, help="Render from a compiled bundle instead of scanning"),
    pattern: Optional[List[str]] = typer.Option(None, "--pattern", "-p", help="Glob for service files (repeatable)"),
    max_files: Optional[int] = typer.Option(None, help="Limit scanned files (debug)"),
) -> None:
    """Render a Python stub module importing only stubwire.runtime.entry."""
    if bundle:
        compiled = load_bundle(Path(bundle).expanduser())
        result = None
    elif repo:
        result = _compile(repo, pattern, max_files)
        compiled = result.bundle
    else:
        raise typer.BadParameter("give a repo path or --bundle")

    out_path = write_stub_module(compiled, Path(out).expanduser())
    console.print(f"[bold green]Wrote[/bold green] stubs for {len(compiled.services)} services to: {out_path}")
    if result is not None:
        _print_errors(result)


@app.command()
def ping() -> None:
    console.print("pong")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
