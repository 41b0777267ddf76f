from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from packsync.core.utils.io import (
    atomic_write,
    read_json,
    read_lines,
    read_text,
    read_yaml,
    write_json_atomic,
    write_lines,
    write_text,
    write_yaml,
)


def test_write_text_creates_parents(tmp_path: Path):
    target = tmp_path / "a" / "b" / "file.txt"

    write_text(target, "hello")

    assert read_text(target) == "hello"


def test_read_text_missing_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        read_text(tmp_path / "missing.txt")


def test_atomic_write_leaves_no_temp_on_failure(tmp_path: Path):
    out_dir = tmp_path / "io"
    out_dir.mkdir()
    target = out_dir / "out.txt"
    target.write_text("before", encoding="utf-8")

    def _boom(f):
        f.write("partial")
        raise RuntimeError("writer failed")

    with pytest.raises(RuntimeError):
        atomic_write(target, _boom)

    assert target.read_text(encoding="utf-8") == "before"
    assert [p.name for p in out_dir.iterdir()] == ["out.txt"]


def test_lines_round_trip(tmp_path: Path):
    path = tmp_path / ".gitignore"

    assert read_lines(path) == []
    write_lines(path, ["a", "b"])
    assert path.read_text(encoding="utf-8") == "a\nb\n"
    assert read_lines(path) == ["a", "b"]

    write_lines(path, [])
    assert path.read_text(encoding="utf-8") == ""


def test_json_formatting_options(tmp_path: Path):
    path = tmp_path / "data.json"

    write_json_atomic(path, {"b": 1, "a": "é"}, indent=4)

    text = path.read_text(encoding="utf-8")
    assert text.index('"a"') < text.index('"b"')
    assert "é" in text
    assert text.endswith("}\n")
    assert read_json(path) == {"a": "é", "b": 1}


def test_read_json_default_and_errors(tmp_path: Path):
    assert read_json(tmp_path / "missing.json", default={}) == {}
    with pytest.raises(FileNotFoundError):
        read_json(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    with pytest.raises(json.JSONDecodeError):
        read_json(broken)


def test_yaml_multiline_strings_use_block_style(tmp_path: Path):
    path = tmp_path / "data.yaml"

    write_yaml(path, {"body": "line one\nline two\n"})

    assert "|" in path.read_text(encoding="utf-8")
    assert read_yaml(path) == {"body": "line one\nline two\n"}


def test_read_yaml_default_unless_strict(tmp_path: Path):
    broken = tmp_path / "broken.yaml"
    broken.write_text("key: [unclosed\n", encoding="utf-8")

    assert read_yaml(broken, default={"x": 1}) == {"x": 1}
    with pytest.raises(yaml.YAMLError):
        read_yaml(broken, raise_on_error=True)
