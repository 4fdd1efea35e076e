from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence, TextIO

from qsync.config import SyncConfig
from qsync.domain.types import RouteDecl, SourceUnit
from qsync.emit.typescript import EmitOptions, render_typescript
from qsync.emit.writer import write_output
from qsync.extractors.rust.parser import parse_source
from qsync.repo.ignore import DEFAULT_IGNORES
from qsync.repo.scanner import DEFAULT_EXTENSIONS, scan_source_files
from qsync.resolver.routes import build_routes
from qsync.resolver.types import SymbolTable, resolve_types

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncModel:
    files: list[str]
    symbols: SymbolTable
    routes: list[RouteDecl]


@dataclass(frozen=True)
class SyncResult:
    files_scanned: int
    types: int
    routes: int
    cyclic_types: list[str]
    output: str  # file path, or "<stdout>" in debug mode
    written: bool
    text: str


def build_model(units: Sequence[SourceUnit]) -> SyncModel:
    """Parse every unit, then resolve types and routes (strictly in that order)."""
    parsed = [parse_source(u) for u in units]

    raw_types = [t for p in parsed for t in p.types]
    raw_routes = [r for p in parsed for r in p.routes]
    logger.info("Found %d marked type(s) and %d route(s)", len(raw_types), len(raw_routes))

    symbols = resolve_types(raw_types)
    routes = build_routes(raw_routes, symbols)
    return SyncModel(files=[u.path for u in units], symbols=symbols, routes=routes)


def load_model(
    input_paths: Sequence[Path | str],
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    ignore_dirs: Iterable[str] = DEFAULT_IGNORES,
) -> SyncModel:
    units = scan_source_files(input_paths, extensions=extensions, ignore_dirs=ignore_dirs)
    return build_model(units)


def process(
    input_paths: Sequence[Path | str],
    output_path: Path | str,
    debug: bool = False,
    *,
    base_url: str = "",
    react_query: bool = False,
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    ignore_dirs: Iterable[str] = DEFAULT_IGNORES,
    stream: Optional[TextIO] = None,
) -> SyncResult:
    """
    Scan, parse, resolve, render, write.

    Every phase finishes before the next starts, and the output is fully
    rendered in memory before anything is written: a failure anywhere leaves
    the destination exactly as it was.
    """
    model = load_model(input_paths, extensions=extensions, ignore_dirs=ignore_dirs)
    text = render_typescript(
        model.symbols,
        model.routes,
        EmitOptions(base_url=base_url.rstrip("/"), react_query=react_query),
    )
    written = write_output(text, Path(output_path), debug=debug, stream=stream)

    return SyncResult(
        files_scanned=len(model.files),
        types=len(model.symbols),
        routes=len(model.routes),
        cyclic_types=sorted(model.symbols.cyclic),
        output="<stdout>" if debug else str(output_path),
        written=written,
        text=text,
    )


def run_sync(config: SyncConfig, stream: Optional[TextIO] = None) -> SyncResult:
    return process(
        config.input_paths,
        config.output_path,
        config.debug,
        base_url=config.base_url,
        react_query=config.react_query,
        extensions=config.extensions,
        ignore_dirs=config.ignore_dirs,
        stream=stream,
    )
