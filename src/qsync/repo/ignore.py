from __future__ import annotations

from pathlib import Path
from typing import Iterable

DEFAULT_IGNORES = frozenset(
    {
        ".git",
        "target",
        "node_modules",
        "dist",
        "build",
        ".cargo",
        ".idea",
        ".vscode",
    }
)


def should_ignore_dir(dir_path: Path, ignores: Iterable[str] = DEFAULT_IGNORES) -> bool:
    return dir_path.name in ignores
