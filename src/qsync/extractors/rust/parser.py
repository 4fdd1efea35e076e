from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from qsync.domain.raw import (
    ParsedUnit,
    RawField,
    RawPathBinding,
    RawRoute,
    RawType,
    RawTypeDecl,
    RawVariant,
    SerdeAttrs,
)
from qsync.domain.types import SourceUnit
from qsync.errors import MalformedDeclaration
from qsync.extractors.rust.tokens import Token, tokenize
from qsync.naming import RENAME_RULES

logger = logging.getLogger(__name__)

_TSYNC_MARKERS = {"tsync", "tsync::tsync"}

_HTTP_METHODS = {
    "get": "GET",
    "post": "POST",
    "put": "PUT",
    "patch": "PATCH",
    "delete": "DELETE",
    "head": "HEAD",
    "options": "OPTIONS",
}

# methods a fetch client can send
_ROUTE_METHODS = set(_HTTP_METHODS.values())

# Tokens that may sit between an item's attributes and its keyword.
_ITEM_QUALIFIERS = {"pub", "async", "unsafe", "const", "extern", "default"}

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")", "]", "}"}

AttrValue = Union[str, bool, list]


class _SyntaxError(Exception):
    def __init__(self, message: str, line: int) -> None:
        super().__init__(message)
        self.message = message
        self.line = line


@dataclass
class Attribute:
    path: str
    line: int
    args: list[Token] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.path.rsplit("::", 1)[-1]


class _Cursor:
    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.pos = 0

    @property
    def done(self) -> bool:
        return self.pos >= len(self.tokens)

    @property
    def line(self) -> int:
        if self.done:
            return self.tokens[-1].line if self.tokens else 0
        return self.tokens[self.pos].line

    def peek(self, offset: int = 0) -> Optional[Token]:
        idx = self.pos + offset
        if idx < len(self.tokens):
            return self.tokens[idx]
        return None

    def next(self) -> Token:
        tok = self.peek()
        if tok is None:
            raise _SyntaxError("unexpected end of input", self.line)
        self.pos += 1
        return tok

    def at_punct(self, value: str) -> bool:
        tok = self.peek()
        return tok is not None and tok.is_punct(value)

    def at_ident(self, value: Optional[str] = None) -> bool:
        tok = self.peek()
        if tok is None or tok.kind != "ident":
            return False
        return value is None or tok.value == value

    def accept_punct(self, value: str) -> bool:
        if self.at_punct(value):
            self.pos += 1
            return True
        return False

    def expect_punct(self, value: str, what: str = "") -> Token:
        tok = self.peek()
        if tok is None or not tok.is_punct(value):
            found = tok.value if tok else "end of input"
            raise _SyntaxError(f"expected '{value}'{' ' + what if what else ''}, found '{found}'", self.line)
        self.pos += 1
        return tok

    def expect_ident(self, what: str = "identifier") -> Token:
        tok = self.peek()
        if tok is None or tok.kind != "ident":
            found = tok.value if tok else "end of input"
            raise _SyntaxError(f"expected {what}, found '{found}'", self.line)
        self.pos += 1
        return tok

    def skip_group(self) -> list[Token]:
        """Consume a balanced (), [] or {} group and return its inner tokens."""
        opener = self.next()
        closer = _OPENERS[opener.value]
        stack = [closer]
        inner: list[Token] = []
        while stack:
            tok = self.next()
            if tok.kind == "punct" and tok.value in _OPENERS:
                stack.append(_OPENERS[tok.value])
            elif tok.kind == "punct" and tok.value in _CLOSERS:
                if tok.value != stack[-1]:
                    raise _SyntaxError(f"unbalanced '{tok.value}'", tok.line)
                stack.pop()
                if not stack:
                    break
            inner.append(tok)
        return inner

    def skip_angle_group(self) -> None:
        self.expect_punct("<")
        depth = 1
        while depth:
            tok = self.peek()
            if tok is None:
                raise _SyntaxError("unterminated generic parameter list", self.line)
            if tok.kind == "punct" and tok.value in _OPENERS:
                self.skip_group()
                continue
            self.pos += 1
            if tok.is_punct("<"):
                depth += 1
            elif tok.is_punct(">"):
                depth -= 1


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def parse_source(unit: SourceUnit) -> ParsedUnit:
    """
    Extract marked declarations from one source file.

    A small state machine over the token stream: attributes and doc comments
    are buffered, and only when the following item keyword is reached does
    the parser decide whether the buffered markers make it a declaration
    worth extracting. Every other token is discarded without being modeled.
    """
    result = ParsedUnit(path=unit.path)
    cur = _Cursor(tokenize(unit.text))
    attrs: list[Attribute] = []
    docs: list[str] = []

    while not cur.done:
        tok = cur.tokens[cur.pos]

        if tok.kind == "doc":
            docs.append(tok.value)
            cur.pos += 1
            continue

        if tok.is_punct("#"):
            attr = _read_attribute(cur, unit.path)
            if attr is not None:
                attrs.append(attr)
            continue

        if tok.kind == "ident" and tok.value in _ITEM_QUALIFIERS and (attrs or docs):
            cur.pos += 1
            if tok.value == "pub" and cur.at_punct("("):
                cur.skip_group()
            elif tok.value == "extern" and cur.peek() is not None and cur.peek().kind == "string":
                cur.pos += 1
            continue

        if tok.kind == "ident" and tok.value in ("struct", "enum", "type") and _has_tsync(attrs):
            result.types.append(_parse_type_item(cur, unit.path, attrs, docs))
            attrs, docs = [], []
            continue

        if tok.is_ident("fn") and _route_attrs(attrs):
            result.routes.extend(_parse_handler(cur, unit.path, attrs, docs))
            attrs, docs = [], []
            continue

        attrs, docs = [], []
        cur.pos += 1

    logger.debug(
        "%s: %d type(s), %d route(s)", unit.path, len(result.types), len(result.routes)
    )
    return result


def parse_type_expr(text: str, *, path: str = "", line: int = 0, decl: str = "") -> RawType:
    """Parse a standalone type expression such as ``Vec<Option<Todo>>``."""
    # lexed in alias position so tree-sitter reads it as a type
    tokens = tokenize(f"type T = {text};")[3:]
    if tokens and tokens[-1].is_punct(";"):
        tokens.pop()
    cur = _Cursor(_relined(tokens, line))
    try:
        ty = _parse_type(cur)
        if not cur.done:
            raise _SyntaxError(f"unexpected '{cur.peek().value}' after type", cur.line)
    except _SyntaxError as e:
        raise MalformedDeclaration(
            f"invalid type expression '{text}': {e.message}", path=path, line=line, decl=decl
        ) from None
    return ty


def _relined(tokens: list[Token], line: int) -> list[Token]:
    if not line:
        return tokens
    return [Token(t.kind, t.value, line) for t in tokens]


# ---------------------------------------------------------------------------
# Attributes
# ---------------------------------------------------------------------------


def _read_attribute(cur: _Cursor, path: str) -> Optional[Attribute]:
    """Read ``#[...]``; inner attributes (``#![...]``) are consumed and dropped."""
    hash_tok = cur.next()
    inner = cur.accept_punct("!")
    if not cur.at_punct("["):
        return None
    try:
        body = cur.skip_group()
    except _SyntaxError as e:
        # not necessarily one of ours; unrelated code is never an error
        logger.debug("%s:%d: skipping unreadable attribute (%s)", path, hash_tok.line, e.message)
        return None
    if inner or not body:
        return None

    segments: list[str] = []
    i = 0
    while i < len(body) and body[i].kind == "ident":
        segments.append(body[i].value)
        i += 1
        if i < len(body) and body[i].is_punct("::"):
            i += 1
            continue
        break

    args = body[i:]
    if args and args[0].is_punct("(") and args[-1].is_punct(")"):
        args = args[1:-1]
    return Attribute(path="::".join(segments), line=hash_tok.line, args=args)


def _attr_items(tokens: list[Token]) -> list[tuple[Optional[str], AttrValue]]:
    """
    Split attribute arguments into (key, value) pairs.

      "/path"                -> (None, "/path")
      rename = "x"           -> ("rename", "x")
      untagged               -> ("untagged", True)
      mutate = false         -> ("mutate", False)
      rename(serialize="x")  -> ("rename", [("serialize", "x")])
    """
    items: list[tuple[Optional[str], AttrValue]] = []
    for part in _split_top_level(tokens):
        if not part:
            continue
        head = part[0]
        if head.kind == "string":
            items.append((None, head.value))
            continue
        if head.kind != "ident":
            continue
        key = head.value
        rest = part[1:]
        if not rest:
            items.append((key, True))
        elif rest[0].is_punct("=") and len(rest) > 1:
            value = rest[1]
            if value.kind == "string":
                items.append((key, value.value))
            elif value.is_ident("true"):
                items.append((key, True))
            elif value.is_ident("false"):
                items.append((key, False))
            else:
                items.append((key, value.value))
        elif rest[0].is_punct("(") and rest[-1].is_punct(")"):
            items.append((key, _attr_items(rest[1:-1])))
    return items


def _split_top_level(tokens: list[Token]) -> list[list[Token]]:
    parts: list[list[Token]] = [[]]
    depth = 0
    for tok in tokens:
        if tok.kind == "punct" and tok.value in _OPENERS:
            depth += 1
        elif tok.kind == "punct" and tok.value in _CLOSERS:
            depth -= 1
        if depth == 0 and tok.is_punct(","):
            parts.append([])
            continue
        parts[-1].append(tok)
    return parts


def _has_tsync(attrs: list[Attribute]) -> bool:
    return any(a.path in _TSYNC_MARKERS for a in attrs)


def _route_attrs(attrs: list[Attribute]) -> list[Attribute]:
    return [a for a in attrs if a.name in _HTTP_METHODS or a.name == "route"]


def _serde_attrs(attrs: list[Attribute], path: str, decl: str) -> SerdeAttrs:
    values: dict[str, AttrValue] = {}
    for attr in attrs:
        if attr.path != "serde":
            continue
        for key, value in _attr_items(attr.args):
            if key is None:
                continue
            if isinstance(value, list):
                # rename(serialize = "x", deserialize = "y"): the wire shape we emit is the serialized one
                value = next((v for k, v in value if k == "serialize"), None)
                if value is None:
                    continue
            values[key] = value

    rename_all = values.get("rename_all")
    if isinstance(rename_all, str) and rename_all not in RENAME_RULES:
        raise MalformedDeclaration(
            f"unknown serde rename_all rule '{rename_all}'", path=path, line=attrs[0].line, decl=decl
        )

    def _str(key: str) -> Optional[str]:
        v = values.get(key)
        return v if isinstance(v, str) else None

    return SerdeAttrs(
        rename=_str("rename"),
        rename_all=_str("rename_all"),
        skip=bool(values.get("skip") is True or values.get("skip_serializing") is True),
        tag=_str("tag"),
        content=_str("content"),
        untagged=values.get("untagged") is True,
    )


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


def _parse_type(cur: _Cursor) -> RawType:
    tok = cur.peek()
    if tok is None:
        raise _SyntaxError("expected a type, found end of input", cur.line)
    line = tok.line

    if tok.is_punct("&"):
        cur.pos += 1
        if cur.peek() is not None and cur.peek().kind == "lifetime":
            cur.pos += 1
        if cur.at_ident("mut"):
            cur.pos += 1
        return _parse_type(cur)

    if tok.is_punct("*"):
        cur.pos += 1
        if cur.at_ident("const") or cur.at_ident("mut"):
            cur.pos += 1
        return _parse_type(cur)

    if tok.is_punct("("):
        cur.pos += 1
        items: list[RawType] = []
        trailing_comma = False
        while not cur.at_punct(")"):
            items.append(_parse_type(cur))
            trailing_comma = cur.accept_punct(",")
            if not trailing_comma and not cur.at_punct(")"):
                raise _SyntaxError("expected ',' or ')' in tuple type", cur.line)
        cur.pos += 1
        if len(items) == 1 and not trailing_comma:
            return items[0]
        return RawType("()", tuple(items), line)

    if tok.is_punct("["):
        cur.pos += 1
        inner = _parse_type(cur)
        if cur.accept_punct(";"):
            depth = 0
            while not (depth == 0 and cur.at_punct("]")):
                t = cur.next()
                if t.kind == "punct" and t.value in _OPENERS:
                    depth += 1
                elif t.kind == "punct" and t.value in _CLOSERS:
                    depth -= 1
        cur.expect_punct("]", "to close array type")
        return RawType("[]", (inner,), line)

    if tok.is_punct("!"):
        cur.pos += 1
        return RawType("!", (), line)

    if tok.kind == "ident" and tok.value in ("dyn", "impl"):
        cur.pos += 1
        trait = _parse_type(cur)
        while cur.accept_punct("+"):
            if cur.peek() is not None and cur.peek().kind == "lifetime":
                cur.pos += 1
            else:
                _parse_type(cur)
        return RawType(f"{tok.value} {trait.name}", trait.args, line)

    if tok.is_ident("fn"):
        cur.pos += 1
        if cur.at_punct("("):
            cur.skip_group()
        if cur.accept_punct("->"):
            _parse_type(cur)
        return RawType("fn", (), line)

    return _parse_path_type(cur)


def _parse_path_type(cur: _Cursor) -> RawType:
    cur.accept_punct("::")
    first = cur.expect_ident("a type")
    name = first.value
    args: tuple[RawType, ...] = ()

    while True:
        if cur.at_punct("<"):
            args = _parse_generic_args(cur)
        if cur.at_punct("::"):
            nxt = cur.peek(1)
            if nxt is not None and nxt.kind == "ident":
                cur.pos += 2
                name = nxt.value
                args = ()
                continue
            if nxt is not None and nxt.is_punct("<"):
                # turbofish: Foo::<T>
                cur.pos += 1
                continue
        break

    return RawType(name, args, first.line)


def _parse_generic_args(cur: _Cursor) -> tuple[RawType, ...]:
    cur.expect_punct("<")
    args: list[RawType] = []
    while not cur.at_punct(">"):
        tok = cur.peek()
        if tok is None:
            raise _SyntaxError("unterminated generic argument list", cur.line)
        if tok.kind == "lifetime":
            cur.pos += 1
        elif tok.kind == "ident" and cur.peek(1) is not None and cur.peek(1).is_punct("="):
            # associated type binding: Item = T
            cur.pos += 2
            _parse_type(cur)
        elif tok.kind in ("number", "char", "string") or tok.is_punct("{") or tok.is_punct("-"):
            # const generic argument
            if tok.is_punct("{"):
                cur.skip_group()
            else:
                cur.pos += 1
                if tok.is_punct("-"):
                    cur.pos += 1
        else:
            args.append(_parse_type(cur))
        if not cur.accept_punct(","):
            break
    cur.expect_punct(">", "to close generic arguments")
    return tuple(args)


def _parse_generic_params(cur: _Cursor) -> tuple[str, ...]:
    """Read ``<'a, T: Bound, const N: usize>`` keeping only type parameter names."""
    if not cur.at_punct("<"):
        return ()
    cur.pos += 1
    names: list[str] = []
    while not cur.at_punct(">"):
        tok = cur.next()
        if tok.kind == "lifetime":
            pass
        elif tok.is_ident("const"):
            cur.expect_ident("const parameter name")
        elif tok.kind == "ident":
            names.append(tok.value)
        else:
            raise _SyntaxError(f"unexpected '{tok.value}' in generic parameters", tok.line)
        # skip bounds and defaults up to the next top-level ',' or '>'
        depth = 0
        while True:
            t = cur.peek()
            if t is None:
                raise _SyntaxError("unterminated generic parameter list", cur.line)
            if depth == 0 and (t.is_punct(",") or t.is_punct(">")):
                break
            if t.kind == "punct" and t.value in _OPENERS:
                cur.skip_group()
                continue
            if t.is_punct("<"):
                depth += 1
            elif t.is_punct(">"):
                depth -= 1
            cur.pos += 1
        cur.accept_punct(",")
    cur.expect_punct(">")
    return tuple(names)


def _skip_where_clause(cur: _Cursor) -> None:
    if not cur.at_ident("where"):
        return
    while not cur.done and not (cur.at_punct("{") or cur.at_punct(";")):
        tok = cur.peek()
        if tok.kind == "punct" and tok.value in ("(", "["):
            cur.skip_group()
        else:
            cur.pos += 1


# ---------------------------------------------------------------------------
# Type declarations
# ---------------------------------------------------------------------------


def _parse_type_item(cur: _Cursor, path: str, attrs: list[Attribute], docs: list[str]) -> RawTypeDecl:
    keyword = cur.next()
    name_tok = cur.peek()
    name = name_tok.value if name_tok is not None and name_tok.kind == "ident" else "<anonymous>"
    serde = _serde_attrs(attrs, path, name)
    doc = "\n".join(docs)

    try:
        name = cur.expect_ident(f"{keyword.value} name").value
        params = _parse_generic_params(cur)

        if keyword.value == "type":
            _skip_where_clause(cur)
            cur.expect_punct("=", "in type alias")
            target = _parse_type(cur)
            cur.expect_punct(";", "after type alias")
            return RawTypeDecl(
                name=name, kind="alias", path=path, line=keyword.line,
                params=params, target=target, doc=doc, serde=serde,
            )

        if keyword.value == "struct":
            return _parse_struct_body(cur, path, name, keyword.line, params, doc, serde)

        _skip_where_clause(cur)
        variants = _parse_enum_body(cur, path, name)
        return RawTypeDecl(
            name=name, kind="sum", path=path, line=keyword.line,
            params=params, variants=variants, doc=doc, serde=serde,
        )
    except _SyntaxError as e:
        raise MalformedDeclaration(e.message, path=path, line=e.line, decl=name) from None


def _parse_struct_body(
    cur: _Cursor,
    path: str,
    name: str,
    line: int,
    params: tuple[str, ...],
    doc: str,
    serde: SerdeAttrs,
) -> RawTypeDecl:
    if cur.at_punct("("):
        items = _parse_tuple_fields(cur, path, name)
        _skip_where_clause(cur)
        cur.expect_punct(";", "after tuple struct")
        if not items:
            return RawTypeDecl(name=name, kind="product", path=path, line=line, params=params, doc=doc, serde=serde)
        target = items[0] if len(items) == 1 else RawType("()", tuple(items), line)
        return RawTypeDecl(
            name=name, kind="alias", path=path, line=line,
            params=params, target=target, doc=doc, serde=serde,
        )

    _skip_where_clause(cur)
    if cur.accept_punct(";"):
        return RawTypeDecl(name=name, kind="product", path=path, line=line, params=params, doc=doc, serde=serde)

    fields = _parse_named_fields(cur, path, name)
    return RawTypeDecl(
        name=name, kind="product", path=path, line=line,
        params=params, fields=fields, doc=doc, serde=serde,
    )


def _collect_member_prelude(cur: _Cursor, path: str) -> tuple[list[Attribute], list[str]]:
    attrs: list[Attribute] = []
    docs: list[str] = []
    while True:
        tok = cur.peek()
        if tok is None:
            return attrs, docs
        if tok.kind == "doc":
            docs.append(tok.value)
            cur.pos += 1
        elif tok.is_punct("#"):
            attr = _read_attribute(cur, path)
            if attr is not None:
                attrs.append(attr)
        elif tok.is_ident("pub"):
            cur.pos += 1
            if cur.at_punct("("):
                cur.skip_group()
        else:
            return attrs, docs


def _parse_named_fields(cur: _Cursor, path: str, decl: str) -> tuple[RawField, ...]:
    cur.expect_punct("{", f"to open '{decl}'")
    fields: list[RawField] = []
    while True:
        attrs, docs = _collect_member_prelude(cur, path)
        if cur.accept_punct("}"):
            break
        name_tok = cur.expect_ident("field name")
        if not cur.at_punct(":"):
            raise MalformedDeclaration(
                f"field '{name_tok.value}' has no type", path=path, line=name_tok.line, decl=decl,
            )
        cur.pos += 1
        ty = _parse_type(cur)
        fields.append(
            RawField(
                name=name_tok.value,
                type=ty,
                line=name_tok.line,
                doc="\n".join(docs),
                serde=_serde_attrs(attrs, path, decl),
            )
        )
        if cur.accept_punct(","):
            continue
        cur.expect_punct("}", f"after field '{name_tok.value}'")
        break
    return tuple(fields)


def _parse_tuple_fields(cur: _Cursor, path: str, decl: str) -> list[RawType]:
    cur.expect_punct("(")
    items: list[RawType] = []
    while True:
        _collect_member_prelude(cur, path)
        if cur.accept_punct(")"):
            break
        items.append(_parse_type(cur))
        if cur.accept_punct(","):
            continue
        cur.expect_punct(")", "after tuple field")
        break
    return items


def _parse_enum_body(cur: _Cursor, path: str, decl: str) -> tuple[RawVariant, ...]:
    cur.expect_punct("{", f"to open '{decl}'")
    variants: list[RawVariant] = []
    while True:
        attrs, docs = _collect_member_prelude(cur, path)
        if cur.accept_punct("}"):
            break
        name_tok = cur.expect_ident("variant name")
        serde = _serde_attrs(attrs, path, decl)
        payload: Optional[tuple[RawType, ...]] = None
        fields: Optional[tuple[RawField, ...]] = None

        if cur.at_punct("("):
            payload = tuple(_parse_tuple_fields(cur, path, decl))
        elif cur.at_punct("{"):
            fields = _parse_named_fields(cur, path, f"{decl}::{name_tok.value}")

        if cur.accept_punct("="):
            # explicit discriminant: skip the expression
            while not cur.done and not (cur.at_punct(",") or cur.at_punct("}")):
                if cur.peek().kind == "punct" and cur.peek().value in _OPENERS:
                    cur.skip_group()
                else:
                    cur.pos += 1

        variants.append(
            RawVariant(
                name=name_tok.value,
                line=name_tok.line,
                doc="\n".join(docs),
                serde=serde,
                payload=payload,
                fields=fields,
            )
        )
        if cur.accept_punct(","):
            continue
        cur.expect_punct("}", f"after variant '{name_tok.value}'")
        break
    return tuple(variants)


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


@dataclass
class _HandlerParam:
    pattern: list[Token]
    type: RawType
    line: int


def _parse_handler(cur: _Cursor, path: str, attrs: list[Attribute], docs: list[str]) -> list[RawRoute]:
    fn_tok = cur.next()
    name_tok = cur.peek()
    handler = name_tok.value if name_tok is not None and name_tok.kind == "ident" else "<anonymous>"

    try:
        endpoints = _route_endpoints(attrs, path, handler)
        handler = cur.expect_ident("function name").value
        if cur.at_punct("<"):
            cur.skip_angle_group()
        params = _parse_fn_params(cur)
        ret: Optional[RawType] = None
        if cur.accept_punct("->"):
            ret = _parse_type(cur)
    except _SyntaxError as e:
        raise MalformedDeclaration(e.message, path=path, line=e.line, decl=handler) from None

    options = _qsync_options(attrs)
    response: Optional[RawType] = None
    return_type = options.get("return_type")
    if isinstance(return_type, str):
        response = parse_type_expr(return_type, path=path, line=fn_tok.line, decl=handler)
    elif ret is not None:
        response = _json_response(ret)

    mutate = options.get("mutate")
    path_bindings: list[RawPathBinding] = []
    query: Optional[RawType] = None
    body: Optional[RawType] = None
    requires_auth = False

    for p in params:
        kind = p.type.name
        if kind == "Path":
            if len(p.type.args) != 1:
                raise MalformedDeclaration(
                    "Path extractor needs exactly one type argument", path=path, line=p.line, decl=handler
                )
            path_bindings.append(RawPathBinding(names=_binding_names(p.pattern), type=p.type.args[0], line=p.line))
        elif kind == "Query":
            if len(p.type.args) != 1:
                raise MalformedDeclaration(
                    "Query extractor needs exactly one type argument", path=path, line=p.line, decl=handler
                )
            query = p.type.args[0]
        elif kind == "Json":
            if len(p.type.args) != 1:
                raise MalformedDeclaration(
                    "Json extractor needs exactly one type argument", path=path, line=p.line, decl=handler
                )
            body = p.type.args[0]
        elif kind == "Auth":
            requires_auth = True

    return [
        RawRoute(
            method=method,
            template=template,
            handler=handler,
            path=path,
            line=line,
            path_bindings=tuple(path_bindings),
            query=query,
            body=body,
            response=response,
            requires_auth=requires_auth,
            mutate=mutate if isinstance(mutate, bool) else None,
            doc="\n".join(docs),
        )
        for method, template, line in endpoints
    ]


def _route_endpoints(attrs: list[Attribute], path: str, handler: str) -> list[tuple[str, str, int]]:
    out: list[tuple[str, str, int]] = []
    for attr in _route_attrs(attrs):
        items = _attr_items(attr.args)
        template = next((v for k, v in items if k is None and isinstance(v, str)), None)
        if template is None:
            raise MalformedDeclaration(
                f"#[{attr.path}] needs a string path as its first argument",
                path=path, line=attr.line, decl=handler,
            )
        if attr.name == "route":
            methods = [v.upper() for k, v in items if k == "method" and isinstance(v, str)]
            if not methods:
                raise MalformedDeclaration(
                    "#[route] needs at least one method = \"...\" argument",
                    path=path, line=attr.line, decl=handler,
                )
            for m in methods:
                if m not in _ROUTE_METHODS:
                    raise MalformedDeclaration(
                        f"#[route] method '{m}' is not one of {', '.join(sorted(_ROUTE_METHODS))}",
                        path=path, line=attr.line, decl=handler,
                    )
            out.extend((m, template, attr.line) for m in methods)
        else:
            out.append((_HTTP_METHODS[attr.name], template, attr.line))
    return out


def _qsync_options(attrs: list[Attribute]) -> dict[str, AttrValue]:
    options: dict[str, AttrValue] = {}
    for attr in attrs:
        if attr.path in ("qsync", "qsync::qsync"):
            for key, value in _attr_items(attr.args):
                if key is not None:
                    options[key] = value
    return options


def _json_response(ret: RawType) -> Optional[RawType]:
    """Unwrap ``Json<T>`` and ``Result<Json<T>, E>``; anything else has no typed body."""
    if ret.name == "Result" and ret.args:
        ret = ret.args[0]
    if ret.name == "Json" and len(ret.args) == 1:
        return ret.args[0]
    return None


def _parse_fn_params(cur: _Cursor) -> list[_HandlerParam]:
    cur.expect_punct("(", "to open parameter list")
    params: list[_HandlerParam] = []
    while True:
        while cur.at_punct("#"):
            cur.pos += 1
            if cur.at_punct("["):
                cur.skip_group()
        if cur.accept_punct(")"):
            break

        line = cur.line
        pattern: list[Token] = []
        depth = 0
        while True:
            tok = cur.peek()
            if tok is None:
                raise _SyntaxError("unterminated parameter list", line)
            if depth == 0 and (tok.is_punct(":") or tok.is_punct(",") or tok.is_punct(")")):
                break
            if tok.kind == "punct" and tok.value in _OPENERS:
                depth += 1
            elif tok.kind == "punct" and tok.value in _CLOSERS:
                depth -= 1
            pattern.append(tok)
            cur.pos += 1

        if cur.accept_punct(":"):
            params.append(_HandlerParam(pattern=pattern, type=_parse_type(cur), line=line))
        # receivers (self, &mut self) carry no type

        if cur.accept_punct(","):
            continue
        cur.expect_punct(")", "to close parameter list")
        break
    return params


def _binding_names(pattern: list[Token]) -> tuple[str, ...]:
    """
    Names bound by a parameter pattern.

      id                     -> ("id",)
      mut id                 -> ("id",)
      Path(id)               -> ("id",)
      web::Path((a, b))      -> ("a", "b")
      (a, b)                 -> ("a", "b")
    """
    toks = [t for t in pattern if not (t.is_ident("mut") or t.is_ident("ref") or t.is_punct("&"))]

    # strip a leading tuple-struct pattern: Path( ... ) / web::Path( ... )
    i = 0
    while i < len(toks) and (toks[i].kind == "ident" or toks[i].is_punct("::")):
        i += 1
    if 0 < i < len(toks) and toks[i].is_punct("(") and toks[-1].is_punct(")"):
        return _binding_names(toks[i + 1 : -1])

    if len(toks) == 1 and toks[0].kind == "ident":
        return (toks[0].value,)

    if toks and toks[0].is_punct("(") and toks[-1].is_punct(")"):
        names: list[str] = []
        for part in _split_top_level(toks[1:-1]):
            names.extend(_binding_names(part))
        return tuple(names)

    return tuple(t.value for t in toks if t.kind == "ident")
