from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Union

TypeKind = Literal["product", "sum", "alias"]
VariantStyle = Literal["unit", "tuple", "struct"]
TaggingMode = Literal["external", "internal", "adjacent", "untagged"]


@dataclass(frozen=True)
class SourceUnit:
    path: str
    text: str


# ---------------------------------------------------------------------------
# Canonical type references (language-neutral)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Primitive:
    kind: str  # string, integer, float, boolean, unit, datetime, date, uuid, json, int128


@dataclass(frozen=True)
class NamedType:
    name: str
    args: tuple["TypeRef", ...] = ()


@dataclass(frozen=True)
class TypeParam:
    name: str


@dataclass(frozen=True)
class ListOf:
    item: "TypeRef"


@dataclass(frozen=True)
class OptionalOf:
    inner: "TypeRef"


@dataclass(frozen=True)
class MapOf:
    key: "TypeRef"
    value: "TypeRef"


@dataclass(frozen=True)
class TupleOf:
    items: tuple["TypeRef", ...]


TypeRef = Union[Primitive, NamedType, TypeParam, ListOf, OptionalOf, MapOf, TupleOf]


def named_refs(ref: TypeRef) -> list[str]:
    """Names of every declared type mentioned anywhere inside ``ref``."""
    if isinstance(ref, NamedType):
        out = [ref.name]
        for a in ref.args:
            out.extend(named_refs(a))
        return out
    if isinstance(ref, ListOf):
        return named_refs(ref.item)
    if isinstance(ref, OptionalOf):
        return named_refs(ref.inner)
    if isinstance(ref, MapOf):
        return named_refs(ref.key) + named_refs(ref.value)
    if isinstance(ref, TupleOf):
        out = []
        for item in ref.items:
            out.extend(named_refs(item))
        return out
    return []


# ---------------------------------------------------------------------------
# Resolved declarations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldDecl:
    name: str
    wire_name: str
    type: TypeRef
    optional: bool = False
    doc: str = ""
    line: int = 0


@dataclass(frozen=True)
class VariantDecl:
    name: str
    wire_name: str
    style: VariantStyle
    payload: Optional[TypeRef] = None  # tuple variants
    fields: tuple[FieldDecl, ...] = ()  # struct variants
    doc: str = ""
    line: int = 0


@dataclass(frozen=True)
class Tagging:
    mode: TaggingMode = "external"
    tag: str = ""
    content: str = ""


@dataclass(frozen=True)
class TypeDecl:
    name: str
    kind: TypeKind
    path: str
    line: int = 0
    params: tuple[str, ...] = ()
    fields: tuple[FieldDecl, ...] = ()
    variants: tuple[VariantDecl, ...] = ()
    target: Optional[TypeRef] = None  # aliases
    tagging: Tagging = Tagging()
    doc: str = ""


@dataclass(frozen=True)
class ParamDecl:
    name: str
    type: TypeRef
    optional: bool = False


@dataclass(frozen=True)
class RouteDecl:
    method: str
    template: str
    handler: str
    function_name: str
    path: str
    line: int
    response: TypeRef
    path_params: tuple[ParamDecl, ...] = ()
    query_params: tuple[ParamDecl, ...] = ()
    body: Optional[TypeRef] = None
    requires_auth: bool = False
    mutate: bool = False
    doc: str = ""
