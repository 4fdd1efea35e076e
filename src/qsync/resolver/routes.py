from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Mapping, Optional

from qsync.domain.raw import RawPathBinding, RawRoute
from qsync.domain.types import (
    FieldDecl,
    ListOf,
    MapOf,
    NamedType,
    OptionalOf,
    ParamDecl,
    Primitive,
    RouteDecl,
    TupleOf,
    TypeParam,
    TypeRef,
)
from qsync.errors import DuplicateRoute, MalformedDeclaration, PathParamMismatch
from qsync.naming import to_lower_camel, ts_identifier
from qsync.resolver.types import SymbolTable, TypeResolver

logger = logging.getLogger(__name__)

_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def placeholder_spans(template: str) -> list[tuple[str, int, int]]:
    """
    (name, start, end) of each ``{name}`` or actix ``{name:regex}`` segment.

    Braces inside the regex nest, so ``{id:\\d{3}}`` is one placeholder.
    Raises ValueError for an unclosed brace or a segment without a name.
    """
    spans: list[tuple[str, int, int]] = []
    pos = 0
    while True:
        start = template.find("{", pos)
        if start == -1:
            return spans
        depth = 0
        end = start
        while end < len(template):
            c = template[end]
            if c == "\\":
                end += 2
                continue
            if c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    break
            end += 1
        else:
            raise ValueError(f"unclosed '{{' at offset {start} in path '{template}'")
        segment = template[start + 1 : end]
        name = segment.split(":", 1)[0]
        if not _NAME.fullmatch(name):
            raise ValueError(f"placeholder '{{{segment}}}' in path '{template}' has no valid name")
        spans.append((name, start, end + 1))
        pos = end + 1


def path_placeholders(template: str) -> list[str]:
    return [name for name, _, _ in placeholder_spans(template)]


def build_routes(raw_routes: Iterable[RawRoute], symbols: SymbolTable) -> list[RouteDecl]:
    """
    Resolve every raw route into a RouteDecl.

    Output is ordered by (path template, method). Function names are
    assigned after sorting so they come out the same on every run.
    """
    resolver = symbols.resolver()
    seen: dict[tuple[str, str], RawRoute] = {}
    resolved: list[RouteDecl] = []

    for raw in raw_routes:
        key = (raw.method, raw.template)
        first = seen.get(key)
        if first is not None:
            raise DuplicateRoute(
                raw.method,
                raw.template,
                first_handler=f"{first.handler} ({first.path}:{first.line})",
                handler=raw.handler,
                path=raw.path,
                line=raw.line,
            )
        seen[key] = raw
        resolved.append(_resolve_route(raw, symbols, resolver))

    resolved.sort(key=lambda r: (r.template, r.method))
    routes = _assign_function_names(resolved)
    logger.info("Resolved %d route(s)", len(routes))
    return routes


def _resolve_route(raw: RawRoute, symbols: SymbolTable, resolver: TypeResolver) -> RouteDecl:
    def resolve(member: str, ty) -> TypeRef:
        return resolver.resolve(ty, decl=raw.handler, member=member, path=raw.path)

    path_params: list[ParamDecl] = []
    for binding in raw.path_bindings:
        path_params.extend(_path_params(raw, binding, resolve("path", binding.type), symbols))

    query_params: tuple[ParamDecl, ...] = ()
    if raw.query is not None:
        query_params = _query_params(raw, resolve("query", raw.query), symbols)

    body = resolve("body", raw.body) if raw.body is not None else None
    response = resolve("response", raw.response) if raw.response is not None else Primitive("unit")

    try:
        placeholders = path_placeholders(raw.template)
    except ValueError as e:
        raise MalformedDeclaration(str(e), path=raw.path, line=raw.line, decl=raw.handler) from None
    names = [p.name for p in path_params]
    if sorted(placeholders) != sorted(names) or len(set(names)) != len(names):
        raise PathParamMismatch(
            raw.method, raw.template, placeholders, names,
            handler=raw.handler, path=raw.path, line=raw.line,
        )

    return RouteDecl(
        method=raw.method,
        template=raw.template,
        handler=raw.handler,
        function_name=raw.handler,
        path=raw.path,
        line=raw.line,
        response=response,
        path_params=tuple(path_params),
        query_params=query_params,
        body=body,
        requires_auth=raw.requires_auth,
        mutate=raw.mutate if raw.mutate is not None else raw.method != "GET",
        doc=raw.doc,
    )


def _path_params(raw: RawRoute, binding: RawPathBinding, ref: TypeRef, symbols: SymbolTable) -> list[ParamDecl]:
    names = binding.names
    if isinstance(ref, TupleOf):
        if len(names) != len(ref.items):
            raise MalformedDeclaration(
                f"Path tuple has {len(ref.items)} item(s) but the pattern binds {len(names)} name(s); "
                "destructure it as Path((a, b))",
                path=raw.path, line=binding.line, decl=raw.handler,
            )
        return [ParamDecl(name=n, type=t) for n, t in zip(names, ref.items)]

    if len(names) != 1:
        raise MalformedDeclaration(
            f"Path pattern binds {len(names)} names for a single value",
            path=raw.path, line=binding.line, decl=raw.handler,
        )

    fields = _struct_fields(ref, symbols)
    if fields is not None:
        return [ParamDecl(name=f.wire_name, type=f.type, optional=f.optional) for f in fields]
    return [ParamDecl(name=names[0], type=ref)]


def _query_params(raw: RawRoute, ref: TypeRef, symbols: SymbolTable) -> tuple[ParamDecl, ...]:
    fields = _struct_fields(ref, symbols)
    if fields is None:
        raise MalformedDeclaration(
            "Query<...> must name a #[tsync] struct so each query parameter has a name and a type",
            path=raw.path, line=raw.line, decl=raw.handler, member="query",
        )
    return tuple(ParamDecl(name=f.wire_name, type=f.type, optional=f.optional) for f in fields)


def _struct_fields(
    ref: TypeRef, symbols: SymbolTable, seen: frozenset[str] = frozenset()
) -> Optional[tuple[FieldDecl, ...]]:
    """Fields of a product type reference, with generic arguments substituted."""
    if not isinstance(ref, NamedType) or ref.name in seen:
        return None
    decl = symbols.get(ref.name)
    if decl is None:
        return None
    if decl.kind == "alias" and decl.target is not None:
        target = substitute(decl.target, dict(zip(decl.params, ref.args)))
        return _struct_fields(target, symbols, seen | {ref.name})
    if decl.kind != "product":
        return None
    mapping = dict(zip(decl.params, ref.args))
    return tuple(
        FieldDecl(
            name=f.name,
            wire_name=f.wire_name,
            type=substitute(f.type, mapping),
            optional=f.optional,
            doc=f.doc,
            line=f.line,
        )
        for f in decl.fields
    )


def substitute(ref: TypeRef, mapping: Mapping[str, TypeRef]) -> TypeRef:
    if not mapping:
        return ref
    if isinstance(ref, TypeParam):
        return mapping.get(ref.name, ref)
    if isinstance(ref, NamedType):
        return NamedType(ref.name, tuple(substitute(a, mapping) for a in ref.args))
    if isinstance(ref, ListOf):
        return ListOf(substitute(ref.item, mapping))
    if isinstance(ref, OptionalOf):
        return OptionalOf(substitute(ref.inner, mapping))
    if isinstance(ref, MapOf):
        return MapOf(substitute(ref.key, mapping), substitute(ref.value, mapping))
    if isinstance(ref, TupleOf):
        return TupleOf(tuple(substitute(i, mapping) for i in ref.items))
    return ref


def _file_stem(path: str) -> str:
    p = Path(path)
    if p.stem in ("mod", "lib", "main") and p.parent.name:
        return p.parent.name
    return p.stem


def _ensure_unique(base: str, used: dict[str, int]) -> str:
    if base not in used:
        used[base] = 1
        return base
    used[base] += 1
    return f"{base}{used[base]}"


def _assign_function_names(routes: list[RouteDecl]) -> list[RouteDecl]:
    """
    Handler name in lowerCamelCase; handlers sharing a name get their file
    stem as a prefix (todos.rs `read` -> todosRead); a numeric suffix breaks
    any remaining tie.
    """
    base_counts = Counter(to_lower_camel(r.handler) for r in routes)
    used: dict[str, int] = {}
    out: list[RouteDecl] = []
    for r in routes:
        base = to_lower_camel(r.handler)
        if base_counts[base] > 1:
            base = to_lower_camel(f"{_file_stem(r.path)}_{r.handler}")
        name = _ensure_unique(ts_identifier(base), used)
        out.append(replace(r, function_name=name))
    return out
