from pathlib import Path

import pytest

from qsync.errors import EmptyInput, NotFound, UnreadableSource
from qsync.repo.scanner import expand_paths, scan_source_files


def touch(p: Path, s: str = "") -> Path:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(s, encoding="utf-8")
    return p


def test_expand_paths_orders_by_depth_then_path(tmp_path: Path):
    root = tmp_path / "services"
    touch(root / "todos" / "mod.rs")
    touch(root / "b.rs")
    touch(root / "a.rs")
    touch(root / "todos" / "deep" / "x.rs")

    files = expand_paths([root])
    rel = [f.relative_to(root.resolve()).as_posix() for f in files]
    assert rel == ["a.rs", "b.rs", "todos/mod.rs", "todos/deep/x.rs"]


def test_expand_paths_skips_ignored_dirs_and_other_extensions(tmp_path: Path):
    root = tmp_path / "backend"
    touch(root / "lib.rs")
    touch(root / "notes.md")
    touch(root / "target" / "debug" / "build.rs")
    touch(root / ".git" / "hooks.rs")

    files = expand_paths([root])
    assert [f.name for f in files] == ["lib.rs"]


def test_expand_paths_keeps_explicit_files_and_dedupes(tmp_path: Path):
    root = tmp_path / "backend"
    rs = touch(root / "models.rs")
    other = touch(tmp_path / "extra.txt")

    files = expand_paths([root, rs, other])
    assert sorted(f.name for f in files) == ["extra.txt", "models.rs"]


def test_missing_input_raises_not_found(tmp_path: Path):
    with pytest.raises(NotFound) as exc:
        expand_paths([tmp_path / "nope"])
    assert "nope" in str(exc.value)


def test_no_source_files_raises_empty_input(tmp_path: Path):
    touch(tmp_path / "readme.md", "# hi")
    with pytest.raises(EmptyInput):
        scan_source_files([tmp_path])


def test_scan_source_files_reads_text(tmp_path: Path):
    touch(tmp_path / "a.rs", "struct A;")
    units = scan_source_files([tmp_path])
    assert len(units) == 1
    assert units[0].text == "struct A;"
    assert units[0].path.endswith("a.rs")


def test_undecodable_file_names_its_path(tmp_path: Path):
    touch(tmp_path / "a.rs", "struct A;")
    bad = tmp_path / "latin1.rs"
    bad.write_bytes(b"// caf\xe9\nstruct B;\n")

    with pytest.raises(UnreadableSource) as exc:
        scan_source_files([tmp_path])
    assert exc.value.path == str(bad.resolve())
    assert exc.value.kind == "unreadable-source"
    assert "UTF-8" in str(exc.value)
