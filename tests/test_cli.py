import textwrap
from pathlib import Path

from typer.testing import CliRunner

from qsync import cli
from qsync.cli import app

runner = CliRunner()


def write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")


def make_backend(root: Path) -> Path:
    services = root / "services"
    write(
        services / "todos.rs",
        """
        #[tsync]
        pub struct Todo { pub id: i32 }

        #[get("/todos/{id}")]
        async fn read(id: Path<i32>) -> Json<Todo> { todo!() }
        """,
    )
    return services


def test_sync_writes_output(tmp_path: Path):
    services = make_backend(tmp_path)
    out = tmp_path / "api.ts"

    result = runner.invoke(app, ["sync", "--input", str(services), "--output", str(out)])

    assert result.exit_code == 0, result.output
    assert "export const read" in out.read_text(encoding="utf-8")


def test_sync_debug_prints_instead_of_writing(tmp_path: Path):
    services = make_backend(tmp_path)
    out = tmp_path / "api.ts"

    result = runner.invoke(app, ["sync", "-i", str(services), "-o", str(out), "-d"])

    assert result.exit_code == 0, result.output
    assert "export interface Todo" in result.output
    assert not out.exists()


def test_sync_reports_errors_with_exit_code(tmp_path: Path):
    services = tmp_path / "services"
    write(
        services / "bad.rs",
        """
        #[tsync]
        pub struct Todo { pub owner: Person }
        """,
    )
    out = tmp_path / "api.ts"

    result = runner.invoke(app, ["sync", "-i", str(services), "-o", str(out)])

    assert result.exit_code == 1
    assert not out.exists()


def test_sync_missing_input_fails(tmp_path: Path):
    result = runner.invoke(app, ["sync", "-i", str(tmp_path / "nope"), "-o", str(tmp_path / "api.ts")])
    assert result.exit_code == 1


def test_model_routes_json(tmp_path: Path):
    services = make_backend(tmp_path)

    result = runner.invoke(app, ["model", "routes", str(services), "--format", "json"])

    assert result.exit_code == 0, result.output
    assert '"function": "read"' in result.output
    assert '"method": "GET"' in result.output


def test_model_types_table(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(cli.console, "width", 120)
    services = make_backend(tmp_path)

    result = runner.invoke(app, ["model", "types", str(services)])

    assert result.exit_code == 0, result.output
    assert "Types:" in result.output
    assert "Todo" in result.output
    # paths are shown relative to the input directory
    assert "todos.rs:3" in result.output
    assert str(tmp_path) not in result.output


def test_model_types_table_keeps_names_in_narrow_terminals(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(cli.console, "width", 60)
    services = tmp_path / "a" / "very" / "deeply" / "nested" / "backend" / "services"
    make_backend(services.parent)

    result = runner.invoke(app, ["model", "types", str(services)])

    assert result.exit_code == 0, result.output
    assert "Todo" in result.output


def test_model_routes_accepts_options_routes(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(cli.console, "width", 120)
    write(
        tmp_path / "cors.rs",
        """
        #[route("/todos", method = "OPTIONS")]
        async fn preflight() -> HttpResponse { todo!() }
        """,
    )

    table = runner.invoke(app, ["model", "routes", str(tmp_path)])
    as_json = runner.invoke(app, ["model", "routes", str(tmp_path), "--format", "json"])

    assert table.exit_code == 0, table.output
    assert "OPTIONS" in table.output
    assert as_json.exit_code == 0, as_json.output
    assert '"method": "OPTIONS"' in as_json.output


def test_model_routes_reports_unknown_method(tmp_path: Path):
    write(
        tmp_path / "odd.rs",
        """
        #[route("/todos", method = "BREW")]
        async fn brew() -> HttpResponse { todo!() }
        """,
    )

    result = runner.invoke(app, ["model", "routes", str(tmp_path)])

    assert result.exit_code == 1
