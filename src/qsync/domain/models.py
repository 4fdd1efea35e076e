from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from qsync.domain.types import ParamDecl, RouteDecl, TypeDecl
from qsync.emit.typescript import RenderContext, render_type

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


class ParamSpec(BaseModel):
    name: str
    type: str
    optional: bool = False


class FieldSpec(BaseModel):
    name: str
    wire_name: str
    type: str
    optional: bool = False


class TypeSummary(BaseModel):
    name: str
    kind: Literal["product", "sum", "alias"]
    file_path: str
    line: int
    params: list[str] = Field(default_factory=list)
    fields: list[FieldSpec] = Field(default_factory=list)
    variants: list[str] = Field(default_factory=list)
    target: Optional[str] = None
    recursive: bool = False


class RouteSummary(BaseModel):
    method: HttpMethod
    path: str
    function: str
    handler: str
    file_path: str
    line: int
    requires_auth: bool = False
    path_params: list[ParamSpec] = Field(default_factory=list)
    query_params: list[ParamSpec] = Field(default_factory=list)
    body: Optional[str] = None
    response: str


def summarize_type(decl: TypeDecl, recursive: bool = False) -> TypeSummary:
    ctx = RenderContext(decl.name, path=decl.path, line=decl.line)
    return TypeSummary(
        name=decl.name,
        kind=decl.kind,
        file_path=decl.path,
        line=decl.line,
        params=list(decl.params),
        fields=[
            FieldSpec(name=f.name, wire_name=f.wire_name, type=render_type(f.type, ctx), optional=f.optional)
            for f in decl.fields
        ],
        variants=[v.wire_name for v in decl.variants],
        target=render_type(decl.target, ctx) if decl.target is not None else None,
        recursive=recursive,
    )


def _param(p: ParamDecl, ctx: RenderContext) -> ParamSpec:
    return ParamSpec(name=p.name, type=render_type(p.type, ctx), optional=p.optional)


def summarize_route(route: RouteDecl) -> RouteSummary:
    ctx = RenderContext(route.handler, path=route.path, line=route.line)
    return RouteSummary(
        method=route.method,
        path=route.template,
        function=route.function_name,
        handler=route.handler,
        file_path=route.path,
        line=route.line,
        requires_auth=route.requires_auth,
        path_params=[_param(p, ctx) for p in route.path_params],
        query_params=[_param(p, ctx) for p in route.query_params],
        body=render_type(route.body, ctx) if route.body is not None else None,
        response=render_type(route.response, ctx),
    )
