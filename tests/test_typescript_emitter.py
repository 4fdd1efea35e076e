import textwrap

import pytest

from qsync.domain.types import SourceUnit
from qsync.emit.typescript import EmitOptions, render_decl, render_typescript
from qsync.errors import UnsupportedType
from qsync.orchestrator.pipeline import build_model


def model(src: str, path: str = "src/api.rs"):
    return build_model([SourceUnit(path=path, text=textwrap.dedent(src))])


def decl_text(src: str, name: str) -> str:
    return render_decl(model(src).symbols.get(name))


def test_interface_with_docs_and_optional_fields():
    text = decl_text(
        """
        /// A todo item.
        #[tsync]
        #[serde(rename_all = "camelCase")]
        struct Todo {
            id: i32,
            /// Display text
            text: String,
            created_at: Option<NaiveDateTime>,
            tags: Option<Vec<Option<String>>>,
            labels: HashMap<String, bool>,
        }
        """,
        "Todo",
    )
    assert text == textwrap.dedent(
        """\
        /** A todo item. */
        export interface Todo {
          id: number
          /** Display text */
          text: string
          createdAt?: string
          tags?: Array<string | null>
          labels: Record<string, boolean>
        }"""
    )


def test_aliases_generics_and_empty_structs():
    m = model(
        """
        #[tsync]
        type Id = i64;

        #[tsync]
        struct Page<T> { items: Vec<T> }

        #[tsync]
        struct Pair(String, i32);

        #[tsync]
        struct Marker;
        """
    )
    assert render_decl(m.symbols.get("Id")) == "export type Id = number"
    assert render_decl(m.symbols.get("Page")) == "export interface Page<T> {\n  items: Array<T>\n}"
    assert render_decl(m.symbols.get("Pair")) == "export type Pair = [string, number]"
    assert render_decl(m.symbols.get("Marker")) == "export interface Marker {}"


def test_enum_tagging_modes():
    m = model(
        """
        #[tsync]
        enum Status { Open, Closed }

        #[tsync]
        enum Shape { Circle { radius: f64 }, Square(f64), Empty }

        #[tsync]
        #[serde(tag = "type")]
        enum Internal { A { x: i32 }, B }

        #[tsync]
        #[serde(tag = "t", content = "c")]
        enum Adjacent { Num(i32), Nothing }

        #[tsync]
        #[serde(untagged)]
        enum Either { Num(f64), Text(String) }
        """
    )
    assert render_decl(m.symbols.get("Status")) == 'export type Status =\n  | "Open"\n  | "Closed"'
    assert render_decl(m.symbols.get("Shape")) == (
        "export type Shape =\n"
        "  | { Circle: { radius: number } }\n"
        "  | { Square: number }\n"
        '  | "Empty"'
    )
    assert render_decl(m.symbols.get("Internal")) == (
        'export type Internal =\n  | { type: "A"; x: number }\n  | { type: "B" }'
    )
    assert render_decl(m.symbols.get("Adjacent")) == (
        'export type Adjacent =\n  | { t: "Num"; c: number }\n  | { t: "Nothing" }'
    )
    assert render_decl(m.symbols.get("Either")) == "export type Either =\n  | number\n  | string"


def test_internally_tagged_primitive_payload_is_unsupported():
    m = model(
        """
        #[tsync]
        #[serde(tag = "kind")]
        enum Bad { Count(i32) }
        """
    )
    with pytest.raises(UnsupportedType):
        render_decl(m.symbols.get("Bad"))


def test_128_bit_integers_are_unsupported():
    m = model(
        """
        #[tsync]
        struct Big { value: u128 }
        """
    )
    with pytest.raises(UnsupportedType) as exc:
        render_typescript(m.symbols, m.routes)
    assert exc.value.decl == "Big"
    assert exc.value.member == "value"


def test_route_functions():
    m = model(
        """
        #[tsync]
        struct Todo { id: i32 }

        #[tsync]
        struct NewTodo { text: String }

        #[tsync]
        struct ListParams { page: Option<i64> }

        #[get("/todos/{id}")]
        async fn read(id: Path<i32>) -> Json<Todo> { todo!() }

        #[post("/todos")]
        async fn create(auth: Auth, item: Json<NewTodo>) -> Json<Todo> { todo!() }

        #[get("/todos")]
        async fn index(q: Query<ListParams>) -> Json<Vec<Todo>> { todo!() }

        #[delete("/todos/{id}")]
        async fn destroy(id: Path<i32>) -> HttpResponse { todo!() }
        """
    )
    text = render_typescript(m.symbols, m.routes, EmitOptions(base_url="/api"))

    assert (
        "export const read = (id: number): Promise<Todo> =>\n"
        '  request<Todo>("GET", `/api/todos/${encodeURIComponent(String(id))}`)'
    ) in text
    assert (
        "export const create = (accessToken: string, body: NewTodo): Promise<Todo> =>\n"
        '  request<Todo>("POST", `/api/todos`, { accessToken, body })'
    ) in text
    assert (
        "export const index = (query?: { page?: number }): Promise<Array<Todo>> =>\n"
        '  request<Array<Todo>>("GET", `/api/todos`, { query })'
    ) in text
    assert "export const destroy = (id: number): Promise<void> =>" in text
    assert "useQuery" not in text

    # types come before routes, in name order
    assert text.index("export interface ListParams") < text.index("export interface NewTodo")
    assert text.index("export interface Todo") < text.index("export const create")
    assert text.index("export const index") < text.index("export const create")


def test_react_query_hooks():
    m = model(
        """
        #[tsync]
        struct Todo { id: i32 }

        #[get("/todos/{id}")]
        async fn read(id: Path<i32>) -> Json<Todo> { todo!() }

        #[post("/todos/{id}/done")]
        async fn finish(id: Path<i32>) -> Json<Todo> { todo!() }
        """
    )
    text = render_typescript(m.symbols, m.routes, EmitOptions(react_query=True))
    assert 'import { useMutation, useQuery } from "@tanstack/react-query"' in text
    assert 'queryKey: ["read", id],' in text
    assert "mutationFn: (vars: { id: number }) => finish(vars.id)," in text


def test_rendering_is_deterministic():
    src = """
        #[tsync]
        struct B { a: Option<A> }

        #[tsync]
        struct A { b: Vec<B> }

        #[get("/b")]
        async fn get_b() -> Json<B> { todo!() }

        #[get("/a")]
        async fn get_a() -> Json<A> { todo!() }
        """
    m1 = model(src)
    m2 = model(src)
    assert render_typescript(m1.symbols, m1.routes) == render_typescript(m2.symbols, m2.routes)


def test_recursive_map_newtype_becomes_index_interface():
    m = model(
        """
        /// A directory tree.
        #[tsync]
        struct Tree(HashMap<String, Tree>);

        #[tsync]
        struct Nested(Vec<Nested>);
        """
    )
    assert render_decl(m.symbols.get("Tree"), m.symbols) == (
        "/** A directory tree. */\nexport interface Tree {\n  [key: string]: Tree\n}"
    )
    # arrays break the cycle on their own
    assert render_decl(m.symbols.get("Nested"), m.symbols) == "export type Nested = Array<Nested>"
    text = render_typescript(m.symbols, m.routes)
    assert "export type Tree =" not in text


def test_alias_that_only_reaches_itself_is_unsupported():
    m = model(
        """
        #[tsync]
        struct List(Option<Box<List>>);
        """
    )
    with pytest.raises(UnsupportedType) as exc:
        render_typescript(m.symbols, m.routes)
    assert exc.value.decl == "List"


def test_self_reference_through_another_alias_is_unsupported():
    m = model(
        """
        #[tsync]
        type A = Option<B>;

        #[tsync]
        type B = Box<A>;

        #[tsync]
        #[serde(untagged)]
        enum Loop { One(Loop), Leaf(i32) }

        #[tsync]
        struct Holder { next: Option<Box<Holder>> }
        """
    )
    for name in ("A", "B", "Loop"):
        with pytest.raises(UnsupportedType):
            render_decl(m.symbols.get(name), m.symbols)
    # an interface breaks the cycle
    assert render_decl(m.symbols.get("Holder"), m.symbols) == "export interface Holder {\n  next?: Holder\n}"


def test_route_url_with_nested_regex_braces():
    m = model(
        r"""
        #[tsync]
        struct Item { id: i32 }

        #[get("/items/{id:\\d{3}}/tags/{tag}")]
        async fn read(Path((id, tag)): Path<(i32, String)>) -> Json<Item> { todo!() }
        """
    )
    text = render_typescript(m.symbols, m.routes)
    assert (
        "`/items/${encodeURIComponent(String(id))}/tags/${encodeURIComponent(String(tag))}`"
    ) in text
