from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from qsync.domain.types import TypeKind


@dataclass(frozen=True)
class RawType:
    """
    Syntactic type expression as written in the source.

    Paths are reduced to their last segment; references and lifetimes are
    already stripped. Tuples are named "()" and arrays/slices "[]".
    """

    name: str
    args: tuple["RawType", ...] = ()
    line: int = 0

    def __str__(self) -> str:
        if self.name == "()":
            return "(" + ", ".join(str(a) for a in self.args) + ")"
        if self.name == "[]":
            return f"[{self.args[0]}]" if self.args else "[]"
        if not self.args:
            return self.name
        return f"{self.name}<{', '.join(str(a) for a in self.args)}>"


@dataclass(frozen=True)
class SerdeAttrs:
    rename: Optional[str] = None
    rename_all: Optional[str] = None
    skip: bool = False
    tag: Optional[str] = None
    content: Optional[str] = None
    untagged: bool = False


@dataclass(frozen=True)
class RawField:
    name: str
    type: RawType
    line: int = 0
    doc: str = ""
    serde: SerdeAttrs = SerdeAttrs()


@dataclass(frozen=True)
class RawVariant:
    name: str
    line: int = 0
    doc: str = ""
    serde: SerdeAttrs = SerdeAttrs()
    payload: Optional[tuple[RawType, ...]] = None
    fields: Optional[tuple[RawField, ...]] = None


@dataclass(frozen=True)
class RawTypeDecl:
    name: str
    kind: TypeKind
    path: str
    line: int = 0
    params: tuple[str, ...] = ()
    fields: tuple[RawField, ...] = ()
    variants: tuple[RawVariant, ...] = ()
    target: Optional[RawType] = None
    doc: str = ""
    serde: SerdeAttrs = SerdeAttrs()


@dataclass(frozen=True)
class RawPathBinding:
    names: tuple[str, ...]
    type: RawType
    line: int = 0


@dataclass(frozen=True)
class RawRoute:
    method: str
    template: str
    handler: str
    path: str
    line: int = 0
    path_bindings: tuple[RawPathBinding, ...] = ()
    query: Optional[RawType] = None
    body: Optional[RawType] = None
    response: Optional[RawType] = None
    requires_auth: bool = False
    mutate: Optional[bool] = None
    doc: str = ""


@dataclass
class ParsedUnit:
    path: str
    types: list[RawTypeDecl] = field(default_factory=list)
    routes: list[RawRoute] = field(default_factory=list)
