"""Render the resolved model into a TypeScript API client.

Type declarations are rendered here, one block per TypeDecl; the file
layout (runtime helper, route functions, optional react-query hooks) lives
in templates/api.ts.j2.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

import jinja2

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
    TypeDecl,
    TypeParam,
    TypeRef,
    VariantDecl,
)
from qsync.errors import UnsupportedType
from qsync.naming import ts_identifier, ts_property
from qsync.resolver.routes import placeholder_spans, substitute
from qsync.resolver.types import SymbolTable

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"
TEMPLATE_NAME = "api.ts.j2"

PRIMITIVE_TS: dict[str, str] = {
    "string": "string",
    "integer": "number",
    "float": "number",
    "boolean": "boolean",
    "unit": "null",
    "datetime": "string",
    "date": "string",
    "time": "string",
    "uuid": "string",
    "json": "unknown",
}

UNSUPPORTED_PRIMITIVES: dict[str, str] = {
    "int128": "128-bit integers cannot be represented exactly as a JSON number",
}


@dataclass(frozen=True)
class EmitOptions:
    base_url: str = ""
    react_query: bool = False


@dataclass(frozen=True)
class EmissionPlan:
    type_blocks: tuple[str, ...]
    routes: tuple[dict[str, Any], ...]
    options: EmitOptions


class RenderContext:
    """Where a type reference sits, for error messages."""

    def __init__(self, decl: str, member: str = "", path: str = "", line: int = 0) -> None:
        self.decl = decl
        self.member = member
        self.path = path
        self.line = line

    def at(self, member: str, line: int = 0) -> "RenderContext":
        return RenderContext(self.decl, member, self.path, line or self.line)


def render_type(ref: TypeRef, ctx: RenderContext) -> str:
    if isinstance(ref, Primitive):
        if ref.kind in UNSUPPORTED_PRIMITIVES:
            raise UnsupportedType(
                f"{UNSUPPORTED_PRIMITIVES[ref.kind]} ({ref.kind})",
                path=ctx.path, line=ctx.line or None, decl=ctx.decl, member=ctx.member,
            )
        ts = PRIMITIVE_TS.get(ref.kind)
        if ts is None:
            raise UnsupportedType(
                f"no TypeScript mapping for primitive '{ref.kind}'",
                path=ctx.path, line=ctx.line or None, decl=ctx.decl, member=ctx.member,
            )
        return ts
    if isinstance(ref, NamedType):
        # always a named reference: recursive types never get inlined
        if not ref.args:
            return ref.name
        return f"{ref.name}<{', '.join(render_type(a, ctx) for a in ref.args)}>"
    if isinstance(ref, TypeParam):
        return ref.name
    if isinstance(ref, ListOf):
        return f"Array<{render_type(ref.item, ctx)}>"
    if isinstance(ref, OptionalOf):
        return f"{render_type(ref.inner, ctx)} | null"
    if isinstance(ref, MapOf):
        return f"Record<{render_type(ref.key, ctx)}, {render_type(ref.value, ctx)}>"
    if isinstance(ref, TupleOf):
        return "[" + ", ".join(render_type(i, ctx) for i in ref.items) + "]"
    raise UnsupportedType(
        f"no TypeScript mapping for {ref!r}",
        path=ctx.path, line=ctx.line or None, decl=ctx.decl, member=ctx.member,
    )


def _render_member(name: str, ref: TypeRef, optional: bool, ctx: RenderContext) -> str:
    if optional and isinstance(ref, OptionalOf):
        return f"{ts_property(name)}?: {render_type(ref.inner, ctx)}"
    return f"{ts_property(name)}: {render_type(ref, ctx)}"


def _render_field(f: FieldDecl, ctx: RenderContext) -> str:
    return _render_member(f.wire_name, f.type, f.optional, ctx.at(f.name, f.line))


def _inline_object(members: Iterable[str]) -> str:
    members = list(members)
    if not members:
        return "{}"
    return "{ " + "; ".join(members) + " }"


def _jsdoc(doc: str, indent: str = "") -> list[str]:
    if not doc:
        return []
    lines = doc.replace("*/", "*\\/").splitlines()
    if len(lines) == 1:
        return [f"{indent}/** {lines[0]} */"]
    return [f"{indent}/**"] + [f"{indent} * {line}".rstrip() for line in lines] + [f"{indent} */"]


def _type_head(decl: TypeDecl) -> str:
    if decl.params:
        return f"{decl.name}<{', '.join(decl.params)}>"
    return decl.name


def _index_key(ref: TypeRef) -> Optional[str]:
    if isinstance(ref, Primitive) and PRIMITIVE_TS.get(ref.kind) in ("string", "number"):
        return PRIMITIVE_TS[ref.kind]
    return None


def _is_index_interface(decl: TypeDecl, symbols: Optional[SymbolTable]) -> bool:
    """A recursive alias of a map renders as an interface with an index signature."""
    if decl.kind != "alias" or not isinstance(decl.target, MapOf) or _index_key(decl.target.key) is None:
        return False
    if symbols is not None and decl.name in symbols.cyclic:
        return True
    return decl.name in _bare_refs_of_decl(decl, symbols)


def _exposed_refs(decl: TypeDecl) -> list[TypeRef]:
    """References a rendered decl shows outside any object literal or array."""
    if decl.kind == "alias":
        return [decl.target] if decl.target is not None else []
    if decl.kind == "sum" and decl.tagging.mode in ("internal", "untagged"):
        return [v.payload for v in decl.variants if v.style == "tuple" and v.payload is not None]
    return []


def _bare_refs(ref: TypeRef, symbols: Optional[SymbolTable], seen: frozenset[str]) -> set[str]:
    """
    Names reached from `ref` through unions, Record values and other type
    aliases only. tsc rejects an alias that reaches itself this way.
    """
    if isinstance(ref, OptionalOf):
        return _bare_refs(ref.inner, symbols, seen)
    if isinstance(ref, MapOf):
        return _bare_refs(ref.value, symbols, seen)
    if not isinstance(ref, NamedType):
        return set()
    names = {ref.name}
    decl = symbols.get(ref.name) if symbols is not None else None
    if decl is None or ref.name in seen or _is_index_interface(decl, symbols):
        return names
    mapping = dict(zip(decl.params, ref.args))
    for exposed in _exposed_refs(decl):
        names |= _bare_refs(substitute(exposed, mapping), symbols, seen | {ref.name})
    return names


def _bare_refs_of_decl(decl: TypeDecl, symbols: Optional[SymbolTable]) -> set[str]:
    names: set[str] = set()
    for ref in _exposed_refs(decl):
        names |= _bare_refs(ref, symbols, frozenset({decl.name}))
    return names


def _unrepresentable(decl: TypeDecl, ctx: RenderContext) -> UnsupportedType:
    return UnsupportedType(
        f"'{decl.name}' refers to itself outside any object or array, which TypeScript cannot express",
        path=ctx.path, line=ctx.line or None, decl=decl.name,
    )


def render_decl(decl: TypeDecl, symbols: Optional[SymbolTable] = None) -> str:
    """
    One exported declaration. Pass the symbol table so self-references
    through other aliases are detected too.
    """
    ctx = RenderContext(decl.name, path=decl.path, line=decl.line)
    lines = _jsdoc(decl.doc)

    if decl.kind == "alias":
        if decl.target is None:
            raise UnsupportedType(
                f"alias '{decl.name}' has no target type", path=ctx.path, line=ctx.line or None, decl=decl.name
            )
        if isinstance(decl.target, MapOf) and _is_index_interface(decl, symbols):
            key = _index_key(decl.target.key)
            lines.append(f"export interface {_type_head(decl)} {{")
            lines.append(f"  [key: {key}]: {render_type(decl.target.value, ctx)}")
            lines.append("}")
            return "\n".join(lines)
        if decl.name in _bare_refs_of_decl(decl, symbols):
            raise _unrepresentable(decl, ctx)
        lines.append(f"export type {_type_head(decl)} = {render_type(decl.target, ctx)}")
        return "\n".join(lines)

    if decl.kind == "product":
        if not decl.fields:
            lines.append(f"export interface {_type_head(decl)} {{}}")
            return "\n".join(lines)
        lines.append(f"export interface {_type_head(decl)} {{")
        for f in decl.fields:
            lines.extend(_jsdoc(f.doc, "  "))
            lines.append("  " + _render_field(f, ctx))
        lines.append("}")
        return "\n".join(lines)

    if decl.name in _bare_refs_of_decl(decl, symbols):
        raise _unrepresentable(decl, ctx)
    options = [_render_variant(decl, v, ctx.at(v.name, v.line)) for v in decl.variants]
    if not options:
        lines.append(f"export type {_type_head(decl)} = never")
    elif len(options) == 1:
        lines.append(f"export type {_type_head(decl)} = {options[0]}")
    else:
        lines.append(f"export type {_type_head(decl)} =")
        lines.extend(f"  | {o}" for o in options)
    return "\n".join(lines)


def _render_variant(decl: TypeDecl, v: VariantDecl, ctx: RenderContext) -> str:
    """Shape of one enum variant on the wire, following serde's tagging modes."""
    tagging = decl.tagging
    literal = _string_literal(v.wire_name)

    def body() -> str:
        if v.style == "struct":
            return _inline_object(_render_field(f, ctx) for f in v.fields)
        if v.payload is None:
            raise UnsupportedType(
                f"variant '{v.name}' has no payload type",
                path=ctx.path, line=ctx.line or None, decl=ctx.decl, member=v.name,
            )
        return render_type(v.payload, ctx)

    if tagging.mode == "external":
        if v.style == "unit":
            return literal
        return _inline_object([f"{ts_property(v.wire_name)}: {body()}"])

    tag = ts_property(tagging.tag)

    if tagging.mode == "internal":
        if v.style == "unit":
            return _inline_object([f"{tag}: {literal}"])
        if v.style == "struct":
            return _inline_object([f"{tag}: {literal}"] + [_render_field(f, ctx) for f in v.fields])
        if isinstance(v.payload, NamedType):
            return f"({_inline_object([f'{tag}: {literal}'])} & {render_type(v.payload, ctx)})"
        raise UnsupportedType(
            f"internally tagged variant '{v.name}' must wrap a struct",
            path=ctx.path, line=ctx.line or None, decl=ctx.decl, member=v.name,
        )

    if tagging.mode == "adjacent":
        if v.style == "unit":
            return _inline_object([f"{tag}: {literal}"])
        return _inline_object([f"{tag}: {literal}", f"{ts_property(tagging.content)}: {body()}"])

    # untagged
    if v.style == "unit":
        return "null"
    return body()


def _string_literal(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _template_literal_text(text: str) -> str:
    return text.replace("\\", "\\\\").replace("`", "\\`").replace("${", "\\${")


def route_url(route: RouteDecl, base_url: str = "") -> str:
    """`/todos/${encodeURIComponent(String(id))}` for GET /todos/{id}."""
    template = route.template
    out = [_template_literal_text(base_url.rstrip("/"))] if base_url else []
    pos = 0
    names = {p.name: ts_identifier(p.name) for p in route.path_params}
    for name, start, end in placeholder_spans(template):
        out.append(_template_literal_text(template[pos:start]))
        out.append(f"${{encodeURIComponent(String({names.get(name, name)}))}}")
        pos = end
    out.append(_template_literal_text(template[pos:]))
    return "`" + "".join(out) + "`"


def _query_type(params: tuple[ParamDecl, ...], ctx: RenderContext) -> str:
    return _inline_object(_render_member(p.name, p.type, p.optional, ctx.at(p.name)) for p in params)


def route_context(route: RouteDecl, base_url: str = "") -> dict[str, Any]:
    ctx = RenderContext(route.handler, path=route.path, line=route.line)
    response = route.response
    if isinstance(response, Primitive) and response.kind == "unit":
        response_ts = "void"
    else:
        response_ts = render_type(response, ctx.at("response"))

    params: list[tuple[str, str]] = []
    options: list[str] = []
    if route.requires_auth:
        params.append(("accessToken", "string"))
        options.append("accessToken")
    for p in route.path_params:
        params.append((ts_identifier(p.name), render_type(p.type, ctx.at(p.name))))
    if route.query_params:
        # a required body may not follow an optional parameter
        query_optional = route.body is None and all(p.optional for p in route.query_params)
        params.append(("query" + ("?" if query_optional else ""), _query_type(route.query_params, ctx)))
        options.append("query")
    if route.body is not None:
        params.append(("body", render_type(route.body, ctx.at("body"))))
        options.append("body")

    arg_names = [name.rstrip("?") for name, _ in params]
    name = route.function_name
    return {
        "name": name,
        "hook": "use" + name[:1].upper() + name[1:],
        "method": route.method,
        "template": route.template,
        "doc": "\n".join(_jsdoc(route.doc)),
        "params": [f"{n}: {t}" for n, t in params],
        "arg_names": arg_names,
        "vars_type": _inline_object(f"{n}: {t}" for n, t in params),
        "options": options,
        "url": route_url(route, base_url),
        "response": response_ts,
        "mutate": route.mutate,
    }


def plan_emission(symbols: SymbolTable, routes: list[RouteDecl], options: EmitOptions) -> EmissionPlan:
    type_blocks = tuple(render_decl(d, symbols) for d in symbols.sorted_decls())
    route_blocks = tuple(route_context(r, options.base_url) for r in routes)
    return EmissionPlan(type_blocks=type_blocks, routes=route_blocks, options=options)


def _environment() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=jinja2.StrictUndefined,
    )


def render_plan(plan: EmissionPlan) -> str:
    template = _environment().get_template(TEMPLATE_NAME)
    return template.render(
        types=plan.type_blocks,
        routes=plan.routes,
        react_query=plan.options.react_query,
    )


def render_typescript(
    symbols: SymbolTable,
    routes: list[RouteDecl],
    options: EmitOptions = EmitOptions(),
) -> str:
    plan = plan_emission(symbols, routes, options)
    text = render_plan(plan)
    logger.info("Rendered %d type(s) and %d route function(s)", len(plan.type_blocks), len(plan.routes))
    return text
