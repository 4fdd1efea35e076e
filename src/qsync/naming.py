"""Identifier case conversion.

Covers serde's ``rename_all`` rules (applied to Rust field and variant
names) and the lowerCamelCase names used for generated functions.

Examples:
  rename_field("created_at", "camelCase")         -> createdAt
  rename_variant("InProgress", "snake_case")      -> in_progress
  rename_variant("InProgress", "SCREAMING-KEBAB-CASE") -> IN-PROGRESS
  to_lower_camel("read_all")                      -> readAll
"""

from __future__ import annotations

import re

RENAME_RULES = frozenset(
    {
        "lowercase",
        "UPPERCASE",
        "PascalCase",
        "camelCase",
        "snake_case",
        "SCREAMING_SNAKE_CASE",
        "kebab-case",
        "SCREAMING-KEBAB-CASE",
    }
)

_TS_RESERVED = frozenset(
    {
        "break", "case", "catch", "class", "const", "continue", "debugger",
        "default", "delete", "do", "else", "enum", "export", "extends", "false",
        "finally", "for", "function", "if", "import", "in", "instanceof", "new",
        "null", "return", "super", "switch", "this", "throw", "true", "try",
        "typeof", "var", "void", "while", "with", "let", "static", "yield",
        "await", "implements", "interface", "package", "private", "protected",
        "public",
    }
)

_IDENT = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


def camel_to_snake(name: str) -> str:
    """Convert camelCase or PascalCase to snake_case."""
    s1 = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    return re.sub(r"([a-z\d])([A-Z])", r"\1_\2", s1).lower()


def _pascal(snake: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in snake.split("_"))


def rename_field(name: str, rule: str) -> str:
    """Apply a serde rename_all rule to a snake_case field name."""
    if rule == "lowercase":
        return name.lower()
    if rule == "UPPERCASE":
        return name.upper()
    if rule == "PascalCase":
        return _pascal(name)
    if rule == "camelCase":
        pascal = _pascal(name)
        return pascal[:1].lower() + pascal[1:]
    if rule == "snake_case":
        return name
    if rule == "SCREAMING_SNAKE_CASE":
        return name.upper()
    if rule == "kebab-case":
        return name.replace("_", "-")
    if rule == "SCREAMING-KEBAB-CASE":
        return name.upper().replace("_", "-")
    raise ValueError(f"unknown rename rule: {rule}")


def rename_variant(name: str, rule: str) -> str:
    """Apply a serde rename_all rule to a PascalCase variant name."""
    if rule == "lowercase":
        return name.lower()
    if rule == "UPPERCASE":
        return name.upper()
    if rule == "PascalCase":
        return name
    if rule == "camelCase":
        return name[:1].lower() + name[1:]
    if rule == "snake_case":
        return camel_to_snake(name)
    if rule == "SCREAMING_SNAKE_CASE":
        return camel_to_snake(name).upper()
    if rule == "kebab-case":
        return camel_to_snake(name).replace("_", "-")
    if rule == "SCREAMING-KEBAB-CASE":
        return camel_to_snake(name).upper().replace("_", "-")
    raise ValueError(f"unknown rename rule: {rule}")


def to_lower_camel(name: str) -> str:
    """Convert a snake_case (or already camel) name to lowerCamelCase."""
    parts = [p for p in re.split(r"[^A-Za-z0-9]+", name) if p]
    if not parts:
        return name
    first, *rest = parts
    out = first[:1].lower() + first[1:] + "".join(p[:1].upper() + p[1:] for p in rest)
    if out[0].isdigit():
        out = "_" + out
    return out


def ts_identifier(name: str) -> str:
    """Make ``name`` usable as a TypeScript parameter or function name."""
    if name in _TS_RESERVED:
        return name + "_"
    return name


def ts_property(name: str) -> str:
    """Render a property key, quoting it when it is not a plain identifier."""
    if _IDENT.match(name):
        return name
    return '"' + name.replace("\\", "\\\\").replace('"', '\\"') + '"'
