from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Sequence

from qsync.domain.types import SourceUnit
from qsync.errors import EmptyInput, NotFound, UnreadableSource
from qsync.repo.ignore import DEFAULT_IGNORES, should_ignore_dir

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".rs",)


def expand_paths(
    paths: Sequence[Path | str],
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    ignore_dirs: Iterable[str] = DEFAULT_IGNORES,
) -> list[Path]:
    """
    Expand files and directories into a de-duplicated list of source files.

    Ordered by (directory depth, lexical path) so every run sees the same
    sequence. Explicitly named files are kept whatever their suffix.
    """
    exts = tuple(extensions)
    ignores = frozenset(ignore_dirs)
    found: dict[str, Path] = {}

    for raw in paths:
        p = Path(raw).expanduser()
        if not p.exists():
            raise NotFound(str(raw))

        if p.is_file():
            resolved = p.resolve()
            found.setdefault(str(resolved), resolved)
            continue

        for root, dirs, files in _walk(p):
            root_p = Path(root)
            # prune ignored dirs
            dirs[:] = [d for d in dirs if not should_ignore_dir(root_p / d, ignores)]
            for f in files:
                if f.endswith(exts):
                    resolved = (root_p / f).resolve()
                    found.setdefault(str(resolved), resolved)

    return sorted(found.values(), key=lambda x: (len(x.parts), x.as_posix()))


def scan_source_files(
    paths: Sequence[Path | str],
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    ignore_dirs: Iterable[str] = DEFAULT_IGNORES,
) -> list[SourceUnit]:
    exts = tuple(extensions)
    files = expand_paths(paths, extensions=exts, ignore_dirs=ignore_dirs)
    if not files:
        raise EmptyInput([str(p) for p in paths], exts)

    units = [SourceUnit(path=str(f), text=_read_source(f)) for f in files]
    logger.info("Scanned %d source file(s)", len(units))
    return units


def _walk(path: Path):
    # Separate helper to make unit testing easier (can be mocked)
    return os.walk(path)


def _read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise UnreadableSource(str(path), f"not valid UTF-8 at byte {e.start}") from e
    except OSError as e:
        raise UnreadableSource(str(path), e.strerror or str(e)) from e
