from pathlib import Path

from companion.utils.helpers import atomic_write_text, safe_filename


def test_atomic_write_text_creates_and_overwrites_file(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "sample.txt"
    atomic_write_text(path, "v1\n", encoding="utf-8")
    assert path.read_text(encoding="utf-8") == "v1\n"

    atomic_write_text(path, "v2\n", encoding="utf-8")
    assert path.read_text(encoding="utf-8") == "v2\n"


def test_atomic_write_text_leaves_no_temp_files(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    atomic_write_text(path, "{}")
    assert [p.name for p in tmp_path.iterdir()] == ["state.json"]


def test_safe_filename_replaces_unsafe_chars() -> None:
    assert safe_filename('a/b:c*d?"e') == "a_b_c_d__e"
    assert safe_filename("   ") == "_"
