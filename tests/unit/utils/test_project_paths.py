from __future__ import annotations

from pathlib import Path

import pytest

from packsync.core.exceptions import InvalidConfiguration
from packsync.core.utils.paths import find_git_root, resolve_project_root


def test_git_root_from_subdirectory(project_dir: Path, monkeypatch: pytest.MonkeyPatch):
    nested = project_dir / "src" / "pkg"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert find_git_root(nested) == project_dir.resolve()
    assert resolve_project_root() == project_dir.resolve()


def test_explicit_project_must_exist(tmp_path: Path):
    with pytest.raises(InvalidConfiguration, match="does not exist"):
        resolve_project_root(tmp_path / "nope")

    assert resolve_project_root(tmp_path) == tmp_path.resolve()


def test_without_git_falls_back_to_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    plain = tmp_path / "plain"
    plain.mkdir()
    monkeypatch.chdir(plain)

    assert resolve_project_root() == plain.resolve()
