from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from qsync.domain.raw import RawField, RawType, RawTypeDecl, RawVariant
from qsync.domain.types import (
    FieldDecl,
    ListOf,
    MapOf,
    NamedType,
    OptionalOf,
    Primitive,
    Tagging,
    TupleOf,
    TypeDecl,
    TypeParam,
    TypeRef,
    VariantDecl,
    named_refs,
)
from qsync.errors import DuplicateType, MalformedDeclaration, TypeArityMismatch, UnknownType
from qsync.naming import rename_field, rename_variant

logger = logging.getLogger(__name__)

PRIMITIVES: dict[str, str] = {
    "String": "string",
    "str": "string",
    "char": "string",
    "i8": "integer",
    "i16": "integer",
    "i32": "integer",
    "i64": "integer",
    "isize": "integer",
    "u8": "integer",
    "u16": "integer",
    "u32": "integer",
    "u64": "integer",
    "usize": "integer",
    "f32": "float",
    "f64": "float",
    "bool": "boolean",
    "NaiveDateTime": "datetime",
    "DateTime": "datetime",
    "NaiveDate": "date",
    "NaiveTime": "time",
    "Uuid": "uuid",
    "Value": "json",
    "i128": "int128",
    "u128": "int128",
}

LIST_WRAPPERS = frozenset({"Vec", "VecDeque", "LinkedList", "HashSet", "BTreeSet", "IndexSet", "[]"})
MAP_WRAPPERS = frozenset({"HashMap", "BTreeMap", "IndexMap"})
TRANSPARENT_WRAPPERS = frozenset({"Box", "Rc", "Arc", "Cow"})


@dataclass(frozen=True)
class SymbolTable:
    """
    Every resolved wire-visible type, by name.

    Built once per run by resolve_types(); later phases only read it.
    """

    decls: Mapping[str, TypeDecl]
    cyclic: frozenset[str] = frozenset()

    def __contains__(self, name: object) -> bool:
        return name in self.decls

    def __len__(self) -> int:
        return len(self.decls)

    def get(self, name: str) -> Optional[TypeDecl]:
        return self.decls.get(name)

    def sorted_decls(self) -> list[TypeDecl]:
        return [self.decls[n] for n in sorted(self.decls)]

    def resolver(self) -> "TypeResolver":
        return TypeResolver({name: len(d.params) for name, d in self.decls.items()})


class TypeResolver:
    """Turn syntactic RawTypes into canonical TypeRefs against a set of known names."""

    def __init__(self, arity: Mapping[str, int]) -> None:
        self.arity = arity

    def resolve(
        self,
        raw: RawType,
        *,
        decl: str,
        member: str = "",
        path: str = "",
        params: Iterable[str] = (),
    ) -> TypeRef:
        return self._resolve(raw, decl, member, path, frozenset(params))

    def _resolve(self, raw: RawType, decl: str, member: str, path: str, params: frozenset[str]) -> TypeRef:
        name = raw.name
        line = raw.line or None

        def sub(r: RawType) -> TypeRef:
            return self._resolve(r, decl, member, path, params)

        def need(count: int) -> None:
            if len(raw.args) != count:
                raise TypeArityMismatch(
                    f"'{name}' takes {count} type argument(s), got {len(raw.args)} in {raw}",
                    path=path, line=line, decl=decl, member=member,
                )

        if name in params:
            need(0)
            return TypeParam(name)

        if name in self.arity:
            need(self.arity[name])
            return NamedType(name, tuple(sub(a) for a in raw.args))

        if name == "()":
            if not raw.args:
                return Primitive("unit")
            return TupleOf(tuple(sub(a) for a in raw.args))

        if name in PRIMITIVES:
            # DateTime<Utc> and friends: the argument is a timezone marker, not data
            return Primitive(PRIMITIVES[name])

        if name == "Option":
            need(1)
            return OptionalOf(sub(raw.args[0]))

        if name in LIST_WRAPPERS:
            need(1)
            return ListOf(sub(raw.args[0]))

        if name in MAP_WRAPPERS:
            need(2)
            return MapOf(sub(raw.args[0]), sub(raw.args[1]))

        if name in TRANSPARENT_WRAPPERS:
            need(1)
            return sub(raw.args[0])

        raise UnknownType(name, referenced_by=decl, member=member, path=path, line=line)


def resolve_types(raw_decls: Iterable[RawTypeDecl]) -> SymbolTable:
    """
    Build the SymbolTable in two passes.

    Pass one only collects names (so forward references and cycles need no
    particular file order); pass two resolves every field against the full
    set of names. A final reachability pass records which types sit on a
    reference cycle.
    """
    by_name: dict[str, RawTypeDecl] = {}
    for raw in raw_decls:
        first = by_name.get(raw.name)
        if first is not None:
            raise DuplicateType(raw.name, first.path, raw.path, raw.line or None)
        by_name[raw.name] = raw

    resolver = TypeResolver({name: len(r.params) for name, r in by_name.items()})
    decls = {name: _resolve_decl(resolver, raw) for name, raw in sorted(by_name.items())}

    cyclic = find_cyclic_types(decls)
    if cyclic:
        logger.debug("Recursive types: %s", ", ".join(sorted(cyclic)))
    logger.info("Resolved %d type(s)", len(decls))

    return SymbolTable(decls=MappingProxyType(decls), cyclic=cyclic)


def _resolve_decl(resolver: TypeResolver, raw: RawTypeDecl) -> TypeDecl:
    if raw.kind == "alias":
        if raw.target is None:
            raise MalformedDeclaration("type alias has no target type", path=raw.path, line=raw.line, decl=raw.name)
        target = resolver.resolve(raw.target, decl=raw.name, path=raw.path, params=raw.params)
        return TypeDecl(
            name=raw.name, kind="alias", path=raw.path, line=raw.line,
            params=raw.params, target=target, doc=raw.doc,
        )

    if raw.kind == "product":
        fields = _resolve_fields(resolver, raw, raw.fields, raw.serde.rename_all)
        return TypeDecl(
            name=raw.name, kind="product", path=raw.path, line=raw.line,
            params=raw.params, fields=fields, doc=raw.doc,
        )

    variants = tuple(
        _resolve_variant(resolver, raw, v) for v in raw.variants if not v.serde.skip
    )
    return TypeDecl(
        name=raw.name, kind="sum", path=raw.path, line=raw.line,
        params=raw.params, variants=variants, tagging=_tagging(raw), doc=raw.doc,
    )


def _resolve_fields(
    resolver: TypeResolver,
    owner: RawTypeDecl,
    fields: Iterable[RawField],
    rename_all: Optional[str],
    prefix: str = "",
) -> tuple[FieldDecl, ...]:
    out: list[FieldDecl] = []
    for f in fields:
        if f.serde.skip:
            continue
        ref = resolver.resolve(
            f.type, decl=owner.name, member=prefix + f.name, path=owner.path, params=owner.params,
        )
        out.append(
            FieldDecl(
                name=f.name,
                wire_name=_wire_field_name(f, rename_all),
                type=ref,
                optional=isinstance(ref, OptionalOf),
                doc=f.doc,
                line=f.line,
            )
        )
    return tuple(out)


def _wire_field_name(f: RawField, rename_all: Optional[str]) -> str:
    if f.serde.rename:
        return f.serde.rename
    if rename_all:
        return rename_field(f.name, rename_all)
    return f.name


def _resolve_variant(resolver: TypeResolver, owner: RawTypeDecl, v: RawVariant) -> VariantDecl:
    if v.serde.rename:
        wire = v.serde.rename
    elif owner.serde.rename_all:
        wire = rename_variant(v.name, owner.serde.rename_all)
    else:
        wire = v.name

    if v.fields is not None:
        fields = _resolve_fields(resolver, owner, v.fields, v.serde.rename_all, prefix=f"{v.name}.")
        return VariantDecl(name=v.name, wire_name=wire, style="struct", fields=fields, doc=v.doc, line=v.line)

    if v.payload is not None:
        items = tuple(
            resolver.resolve(p, decl=owner.name, member=v.name, path=owner.path, params=owner.params)
            for p in v.payload
        )
        payload: TypeRef = items[0] if len(items) == 1 else TupleOf(items)
        return VariantDecl(name=v.name, wire_name=wire, style="tuple", payload=payload, doc=v.doc, line=v.line)

    return VariantDecl(name=v.name, wire_name=wire, style="unit", doc=v.doc, line=v.line)


def _tagging(raw: RawTypeDecl) -> Tagging:
    serde = raw.serde
    if serde.untagged:
        return Tagging(mode="untagged")
    if serde.tag and serde.content:
        return Tagging(mode="adjacent", tag=serde.tag, content=serde.content)
    if serde.tag:
        return Tagging(mode="internal", tag=serde.tag)
    return Tagging()


def decl_references(decl: TypeDecl) -> list[str]:
    """Names of declared types this declaration refers to, in declaration order."""
    refs: list[str] = []
    if decl.target is not None:
        refs.extend(named_refs(decl.target))
    for f in decl.fields:
        refs.extend(named_refs(f.type))
    for v in decl.variants:
        if v.payload is not None:
            refs.extend(named_refs(v.payload))
        for f in v.fields:
            refs.extend(named_refs(f.type))
    return refs


def find_cyclic_types(decls: Mapping[str, TypeDecl]) -> frozenset[str]:
    """Names of every type that can reach itself through its references (Tarjan SCC)."""
    graph = {name: sorted(set(decl_references(d))) for name, d in decls.items()}
    index: dict[str, int] = {}
    low: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    cyclic: set[str] = set()
    counter = 0

    def visit(node: str) -> None:
        nonlocal counter
        index[node] = low[node] = counter
        counter += 1
        stack.append(node)
        on_stack.add(node)

        for nxt in graph.get(node, ()):
            if nxt not in index:
                visit(nxt)
                low[node] = min(low[node], low[nxt])
            elif nxt in on_stack:
                low[node] = min(low[node], index[nxt])

        if low[node] == index[node]:
            component: list[str] = []
            while True:
                top = stack.pop()
                on_stack.discard(top)
                component.append(top)
                if top == node:
                    break
            if len(component) > 1 or node in graph.get(node, ()):
                cyclic.update(component)

    for name in sorted(graph):
        if name not in index:
            visit(name)

    return frozenset(cyclic)
