import io
import textwrap
from pathlib import Path

import pytest

from qsync.config import SyncConfig
from qsync.errors import DuplicateType, EmptyInput, NotFound, UnknownType
from qsync.orchestrator.pipeline import process, run_sync


def write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")


@pytest.fixture
def backend(tmp_path: Path) -> Path:
    services = tmp_path / "backend" / "services"
    write(
        services / "todos" / "mod.rs",
        """
        use actix_web::{get, post, web::{Json, Path}};

        /// A todo item.
        #[tsync]
        pub struct Todo {
            pub id: i32,
            pub text: String,
        }

        #[get("/todos/{id}")]
        async fn read(id: Path<i32>) -> Json<Todo> {
            todo!()
        }

        #[post("/todos")]
        async fn create(item: Json<NewTodo>) -> Json<Todo> {
            todo!()
        }
        """,
    )
    write(
        services / "models.rs",
        """
        #[tsync]
        pub struct NewTodo {
            pub text: String,
        }
        """,
    )
    return services


def test_process_writes_client(tmp_path: Path, backend: Path):
    out = tmp_path / "frontend" / "src" / "api.generated.ts"
    result = process([backend], out)

    assert result.written is True
    assert result.files_scanned == 2
    assert (result.types, result.routes) == (2, 2)
    text = out.read_text(encoding="utf-8")
    assert text == result.text
    assert "export interface Todo {" in text
    assert "export const create = (body: NewTodo): Promise<Todo> =>" in text
    # no stray temp files next to the output
    assert sorted(p.name for p in out.parent.iterdir()) == ["api.generated.ts"]


def test_process_is_byte_for_byte_repeatable(tmp_path: Path, backend: Path):
    out = tmp_path / "api.ts"
    process([backend], out)
    first = out.read_bytes()
    process([backend], out)
    assert out.read_bytes() == first


def test_debug_prints_and_leaves_output_alone(tmp_path: Path, backend: Path):
    out = tmp_path / "api.ts"
    out.write_text("// previous", encoding="utf-8")
    stream = io.StringIO()

    result = process([backend], out, debug=True, stream=stream)

    assert result.written is False
    assert result.output == "<stdout>"
    assert stream.getvalue() == result.text
    assert out.read_text(encoding="utf-8") == "// previous"


def test_debug_defaults_to_stdout(tmp_path: Path, backend: Path, capsys):
    out = tmp_path / "api.ts"
    result = process([backend], out, debug=True)
    assert capsys.readouterr().out == result.text
    assert not out.exists()


def test_debug_does_not_create_missing_output(tmp_path: Path, backend: Path):
    out = tmp_path / "nowhere" / "api.ts"
    process([backend], out, debug=True, stream=io.StringIO())
    assert not out.parent.exists()


def test_failure_keeps_previous_output(tmp_path: Path, backend: Path):
    out = tmp_path / "api.ts"
    process([backend], out)
    before = out.read_text(encoding="utf-8")

    write(
        backend / "broken.rs",
        """
        #[tsync]
        pub struct Broken { owner: Person }
        """,
    )
    with pytest.raises(UnknownType):
        process([backend], out)
    assert out.read_text(encoding="utf-8") == before


def test_empty_and_missing_inputs(tmp_path: Path):
    empty = tmp_path / "empty"
    empty.mkdir()
    with pytest.raises(EmptyInput):
        process([empty], tmp_path / "api.ts")
    with pytest.raises(NotFound):
        process([tmp_path / "missing"], tmp_path / "api.ts")
    assert not (tmp_path / "api.ts").exists()


def test_run_sync_uses_config(tmp_path: Path, backend: Path):
    out = tmp_path / "client.ts"
    config = SyncConfig(input_paths=[backend], output_path=out, base_url="/api/")
    result = run_sync(config)
    assert config.base_url == "/api"
    assert result.written is True
    assert "`/api/todos`" in out.read_text(encoding="utf-8")


def test_config_rejects_bad_values():
    with pytest.raises(ValueError):
        SyncConfig(input_paths=[])
    with pytest.raises(ValueError):
        SyncConfig(extensions=("rs",))


def test_shared_type_is_declared_once(tmp_path: Path, backend: Path):
    write(
        backend / "todos" / "lists.rs",
        """
        #[tsync]
        pub struct TodoList {
            pub items: Vec<Todo>,
            pub pinned: Option<Todo>,
        }

        #[get("/todos")]
        async fn index() -> Json<Vec<Todo>> {
            todo!()
        }
        """,
    )
    out = tmp_path / "api.ts"
    result = process([backend], out)

    text = out.read_text(encoding="utf-8")
    assert result.types == 3
    assert text.count("export interface Todo {") == 1
    # every referenced type is declared in the same file
    for name in ("Todo", "NewTodo", "TodoList"):
        assert f"export interface {name} {{" in text
    assert text.index("export interface Todo {") < text.index("export interface TodoList {")


def test_duplicate_type_across_files_keeps_previous_output(tmp_path: Path, backend: Path):
    out = tmp_path / "api.ts"
    process([backend], out)
    before = out.read_bytes()

    write(
        backend / "legacy.rs",
        """
        #[tsync]
        pub struct Todo {
            pub title: String,
        }
        """,
    )
    with pytest.raises(DuplicateType) as exc:
        process([backend], out)

    err = exc.value
    assert err.decl == "Todo"
    assert {Path(err.path).name, Path(err.first_path).name} == {"legacy.rs", "mod.rs"}
    assert out.read_bytes() == before
