"""Typed configuration for a sync run.

Defaults follow the layout of a generated full-stack project: Rust services
under ``backend/services`` and the client at ``frontend/src/api.generated.ts``.
The CLI fills these from options (or ``QSYNC_*`` environment variables).
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from qsync.repo.ignore import DEFAULT_IGNORES
from qsync.repo.scanner import DEFAULT_EXTENSIONS

DEFAULT_INPUT = Path("backend/services")
DEFAULT_OUTPUT = Path("frontend/src/api.generated.ts")


class SyncConfig(BaseModel):
    """Everything one invocation of the sync pipeline needs."""

    input_paths: list[Path] = Field(default_factory=lambda: [DEFAULT_INPUT])
    output_path: Path = Field(default=DEFAULT_OUTPUT)
    debug: bool = Field(default=False, description="Print to stdout instead of writing output_path")
    extensions: tuple[str, ...] = Field(default=DEFAULT_EXTENSIONS)
    ignore_dirs: frozenset[str] = Field(default=DEFAULT_IGNORES)
    base_url: str = Field(default="", description="Prefix prepended to every route path")
    react_query: bool = Field(default=False, description="Also emit @tanstack/react-query hooks")

    @field_validator("input_paths")
    @classmethod
    def _non_empty(cls, value: list[Path]) -> list[Path]:
        if not value:
            raise ValueError("at least one input path is required")
        return value

    @field_validator("extensions")
    @classmethod
    def _dotted(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        bad = [e for e in value if not e.startswith(".")]
        if bad:
            raise ValueError(f"extensions must start with '.': {bad}")
        if not value:
            raise ValueError("at least one extension is required")
        return value

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.rstrip("/")
