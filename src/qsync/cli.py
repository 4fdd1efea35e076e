from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from qsync.config import DEFAULT_INPUT, DEFAULT_OUTPUT, SyncConfig
from qsync.domain.models import summarize_route, summarize_type
from qsync.errors import QsyncError
from qsync.orchestrator.pipeline import load_model, run_sync


app = typer.Typer(
    name="qsync",
    help="Keep a generated TypeScript API client in sync with Rust backend types and routes.",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)

model_app = typer.Typer(no_args_is_help=True, help="Inspect the resolved type and route model.")
app.add_typer(model_app, name="model")

console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _fail(err: QsyncError) -> None:
    err_console.print(f"[bold red]error[/bold red] [{err.kind}] {err}")
    raise typer.Exit(code=1)


@app.command()
def sync(
    inputs: Optional[List[Path]] = typer.Option(
        None,
        "--input",
        "-i",
        help="Rust file or directory to read types and routes from (repeatable)",
        envvar="QSYNC_INPUT",
    ),
    output: Path = typer.Option(
        DEFAULT_OUTPUT, "--output", "-o", help="File to write the generated client to", envvar="QSYNC_OUTPUT"
    ),
    debug: bool = typer.Option(False, "--debug", "-d", help="Dry-run: print to stdout, leave the output file alone"),
    base_url: str = typer.Option("", help="Prefix for every route path (e.g. /api)", envvar="QSYNC_BASE_URL"),
    react_query: bool = typer.Option(
        False, "--react-query", help="Also generate @tanstack/react-query hooks", envvar="QSYNC_REACT_QUERY"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every phase"),
) -> None:
    """Regenerate the TypeScript client from backend sources."""
    _setup_logging(verbose)

    try:
        config = SyncConfig(
            input_paths=inputs or [DEFAULT_INPUT],
            output_path=output,
            debug=debug,
            base_url=base_url,
            react_query=react_query,
        )
    except ValidationError as e:
        raise typer.BadParameter(str(e)) from e

    try:
        result = run_sync(config)
    except QsyncError as e:
        _fail(e)
        return

    if result.written:
        console.print(
            f"[bold green]qsync[/bold green] wrote {result.output}: "
            f"{result.types} type(s), {result.routes} route(s) from {result.files_scanned} file(s)"
        )
    if result.cyclic_types:
        err_console.print(f"Recursive types (rendered by name): {', '.join(result.cyclic_types)}")


def _display_path(file_path: str, roots: List[Path]) -> str:
    """Path relative to the input directory it was found under."""
    p = Path(file_path)
    for root in roots:
        root = root.expanduser().resolve()
        if root.is_dir() and p.is_relative_to(root):
            return p.relative_to(root).as_posix()
    return file_path


def _load(paths: List[Path]):
    try:
        return load_model(paths)
    except QsyncError as e:
        _fail(e)


@model_app.command("types")
def model_types(
    paths: List[Path] = typer.Argument(..., help="Rust files or directories"),
    format: str = typer.Option("table", help="Output format: table|json"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """List every #[tsync] type."""
    _setup_logging(verbose)
    model = _load(paths)
    try:
        rows = [summarize_type(d, d.name in model.symbols.cyclic) for d in model.symbols.sorted_decls()]
    except QsyncError as e:
        _fail(e)
        return

    if format.lower() == "json":
        console.print_json(json.dumps([r.model_dump() for r in rows]))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("NAME", no_wrap=True)
    table.add_column("KIND", no_wrap=True)
    table.add_column("MEMBERS")
    table.add_column("FILE:LINE", overflow="fold")

    for r in rows:
        if r.kind == "alias":
            members = f"= {r.target}"
        elif r.kind == "sum":
            members = " | ".join(r.variants)
        else:
            members = ", ".join(f"{f.wire_name}{'?' if f.optional else ''}: {f.type}" for f in r.fields)
        name = f"{r.name}<{', '.join(r.params)}>" if r.params else r.name
        if r.recursive:
            name += " (recursive)"
        table.add_row(name, r.kind, members, f"{_display_path(r.file_path, paths)}:{r.line}")

    console.print(f"[bold]Types:[/bold] {len(rows)}")
    console.print(table)


@model_app.command("routes")
def model_routes(
    paths: List[Path] = typer.Argument(..., help="Rust files or directories"),
    format: str = typer.Option("table", help="Output format: table|json"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """List every route handler and the function generated for it."""
    _setup_logging(verbose)
    model = _load(paths)
    try:
        rows = [summarize_route(r) for r in model.routes]
    except QsyncError as e:
        _fail(e)
        return

    if format.lower() == "json":
        console.print_json(json.dumps([r.model_dump() for r in rows]))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH")
    table.add_column("FUNCTION")
    table.add_column("RESPONSE")
    table.add_column("FILE:LINE", overflow="fold")

    for r in rows:
        table.add_row(r.method, r.path, r.function, r.response, f"{_display_path(r.file_path, paths)}:{r.line}")

    console.print(f"[bold]Routes:[/bold] {len(rows)}")
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
