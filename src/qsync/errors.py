from __future__ import annotations

from typing import Optional


class QsyncError(Exception):
    """
    Base for every error that aborts a sync run.

    Carries enough context to point at the offending declaration:
    file path, line, declaration name and (where it applies) the field or
    parameter name.
    """

    kind = "error"

    def __init__(
        self,
        message: str,
        *,
        path: str = "",
        line: Optional[int] = None,
        decl: str = "",
        member: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.line = line
        self.decl = decl
        self.member = member

    @property
    def location(self) -> str:
        if not self.path:
            return ""
        if self.line:
            return f"{self.path}:{self.line}"
        return self.path

    def __str__(self) -> str:
        where = self.location
        return f"{where}: {self.message}" if where else self.message


# scanning


class NotFound(QsyncError):
    kind = "not-found"

    def __init__(self, path: str) -> None:
        super().__init__(f"input path does not exist: {path}", path=path)


class EmptyInput(QsyncError):
    kind = "empty-input"

    def __init__(self, paths: list[str], extensions: tuple[str, ...]) -> None:
        exts = ", ".join(extensions)
        super().__init__(
            f"no source files ({exts}) found under: {', '.join(paths)}"
        )
        self.paths = paths


class UnreadableSource(QsyncError):
    kind = "unreadable-source"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"cannot read source file: {reason}", path=path)
        self.reason = reason


# parsing


class MalformedDeclaration(QsyncError):
    kind = "malformed-declaration"


# type resolution


class DuplicateType(QsyncError):
    kind = "duplicate-type"

    def __init__(self, name: str, first_path: str, path: str, line: Optional[int] = None) -> None:
        super().__init__(
            f"type '{name}' is declared more than once (first declared in {first_path})",
            path=path,
            line=line,
            decl=name,
        )
        self.first_path = first_path


class UnknownType(QsyncError):
    kind = "unknown-type"

    def __init__(
        self,
        name: str,
        *,
        referenced_by: str,
        member: str = "",
        path: str = "",
        line: Optional[int] = None,
    ) -> None:
        target = f"{referenced_by}.{member}" if member else referenced_by
        super().__init__(
            f"unknown type '{name}' referenced by {target}",
            path=path,
            line=line,
            decl=referenced_by,
            member=member,
        )
        self.name = name


class TypeArityMismatch(QsyncError):
    kind = "type-arity-mismatch"


# route resolution


class PathParamMismatch(QsyncError):
    kind = "path-param-mismatch"

    def __init__(
        self,
        method: str,
        template: str,
        placeholders: list[str],
        params: list[str],
        *,
        handler: str = "",
        path: str = "",
        line: Optional[int] = None,
    ) -> None:
        super().__init__(
            f"{method} {template}: placeholders {placeholders} do not match "
            f"declared path parameters {params}",
            path=path,
            line=line,
            decl=handler,
        )
        self.placeholders = placeholders
        self.params = params


class DuplicateRoute(QsyncError):
    kind = "duplicate-route"

    def __init__(
        self,
        method: str,
        template: str,
        *,
        first_handler: str,
        handler: str,
        path: str = "",
        line: Optional[int] = None,
    ) -> None:
        super().__init__(
            f"route {method} {template} is declared by both "
            f"'{first_handler}' and '{handler}'",
            path=path,
            line=line,
            decl=handler,
        )


# emission


class UnsupportedType(QsyncError):
    kind = "unsupported-type"
