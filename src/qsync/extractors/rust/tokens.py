"""
Flat token stream for Rust sources, read off a tree-sitter parse.

tree-sitter does the lexing (nested block comments, raw strings, lifetimes
versus char literals) and recovers from syntax errors, so every file yields
tokens. The declaration parser only needs the leaves in source order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterator, Literal, cast

from tree_sitter import Node, Parser
from tree_sitter_language_pack import SupportedLanguage, get_parser

TokenKind = Literal["ident", "lifetime", "string", "char", "number", "punct", "doc"]

_TWO_CHAR_PUNCT = {"::", "->", "=>"}

# read as a single token, without descending into children
_STRING_NODES = {"string_literal", "raw_string_literal"}
_COMMENT_NODES = {"line_comment", "block_comment"}
_NUMBER_NODES = {"integer_literal", "float_literal"}

_ESCAPE = re.compile(r"\\(u\{[0-9a-fA-F_]*\}|x[0-9a-fA-F]{2}|\r?\n[ \t\r\n]*|.)", re.DOTALL)
_RAW_STRING = re.compile(r'b?r(#*)"(.*)"\1', re.DOTALL)

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\0",
    "\\": "\\",
    '"': '"',
    "'": "'",
}


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    line: int

    def is_punct(self, value: str) -> bool:
        return self.kind == "punct" and self.value == value

    def is_ident(self, value: str) -> bool:
        return self.kind == "ident" and self.value == value


@lru_cache(maxsize=1)
def _rust_parser() -> Parser:
    return get_parser(cast(SupportedLanguage, "rust"))


def tokenize(source: str) -> list[Token]:
    return list(iter_tokens(source))


def iter_tokens(source: str) -> Iterator[Token]:
    """
    Yield the leaves of the tree-sitter parse of `source` as tokens.

    Ordinary comments are dropped; outer doc comments (/// and /** */) are
    kept as "doc" tokens. Operators other than `::`, `->` and `=>` are split
    into single characters so `>>` closes two generic lists. Zero-width
    nodes inserted by error recovery are skipped.
    """
    data = source.encode("utf-8")
    tree = _rust_parser().parse(data)
    stack: list[Node] = [tree.root_node]

    while stack:
        node = stack.pop()
        if node.start_byte == node.end_byte:
            continue
        text = data[node.start_byte : node.end_byte].decode("utf-8", errors="replace")
        line = node.start_point[0] + 1
        kind = node.type

        if kind in _COMMENT_NODES:
            doc = _doc_text(text)
            if doc is not None:
                yield Token("doc", doc, line)
        elif kind == "string_literal":
            yield Token("string", _string_value(node, text), line)
        elif kind == "raw_string_literal":
            m = _RAW_STRING.fullmatch(text)
            yield Token("string", m.group(2) if m else text, line)
        elif kind == "string_content":
            # only reached when error recovery split a literal apart
            yield Token("string", _unescape(text), line)
        elif kind == "char_literal":
            body = text[1:] if text.startswith("b") else text
            yield Token("char", body[1:-1] if body.endswith("'") else body[1:], line)
        elif kind == "lifetime":
            yield Token("lifetime", text[1:].strip(), line)
        elif node.child_count:
            stack.extend(reversed(node.children))
        else:
            yield from _leaf_tokens(kind, text, line)


def _leaf_tokens(kind: str, text: str, line: int) -> Iterator[Token]:
    if kind in _NUMBER_NODES or text[0].isdigit():
        yield Token("number", text, line)
    elif text[0].isalpha() or text[0] == "_":
        yield Token("ident", text[2:] if text.startswith("r#") else text, line)
    elif text in _TWO_CHAR_PUNCT:
        yield Token("punct", text, line)
    else:
        for c in text:
            if not c.isspace():
                yield Token("punct", c, line)


def _string_value(node: Node, text: str) -> str:
    body = text[1:] if text.startswith("b") else text
    body = body[1:]
    if _closed(node, text):
        body = body[:-1]
    return _unescape(body)


def _closed(node: Node, text: str) -> bool:
    if node.child_count:
        last = node.children[-1]
        return last.type == '"' and last.end_byte > last.start_byte
    return len(text) > 1 and text.endswith('"')


def _unescape(body: str) -> str:
    def replace(m: re.Match[str]) -> str:
        seq = m.group(1)
        if seq[0] in "\r\n":
            return ""  # line continuation
        try:
            if seq.startswith("u{"):
                return chr(int(seq[2:-1].replace("_", ""), 16))
            if seq.startswith("x"):
                return chr(int(seq[1:], 16))
        except ValueError:
            return m.group(0)
        return _ESCAPES.get(seq, seq)

    return _ESCAPE.sub(replace, body)


def _doc_text(text: str) -> str | None:
    if text.startswith("///") and not text.startswith("////"):
        body = text[3:].rstrip("\r\n")
        return body[1:] if body.startswith(" ") else body
    if text.startswith("/**") and not text.startswith("/***") and text != "/**/":
        body = text[3:-2] if text.endswith("*/") else text[3:]
        return _strip_doc_block(body)
    return None


def _strip_doc_block(body: str) -> str:
    lines = []
    for raw in body.splitlines():
        s = raw.strip()
        if s.startswith("*"):
            s = s[1:].lstrip() if s != "*" else ""
        lines.append(s)
    while lines and not lines[0]:
        lines.pop(0)
    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines)
