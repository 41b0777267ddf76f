from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from packsync.core.exceptions import InvalidConfiguration
from packsync.core.state import Lockfile
from packsync.core.state.lockfile import is_commit_sha


def test_is_commit_sha():
    assert is_commit_sha("a1b2c3d")
    assert is_commit_sha("0" * 40)
    assert not is_commit_sha("v1.2.0")
    assert not is_commit_sha("main")
    assert not is_commit_sha("ABCDEF1")


def test_missing_lockfile(tmp_path: Path):
    lock = Lockfile.load(tmp_path / "packsync.lock.yaml")

    assert not lock.exists
    assert lock.pins == {}


def test_pin_and_save(tmp_path: Path):
    path = tmp_path / "packsync.lock.yaml"
    lock = Lockfile(path)
    lock.pin("web", "a1b2c3d")
    lock.pin("api", "local")
    lock.save()

    assert yaml.safe_load(path.read_text(encoding="utf-8")) == {"api": "local", "web": "a1b2c3d"}
    assert Lockfile.load(path).get("web") == "a1b2c3d"


def test_non_mapping_lockfile_is_invalid(tmp_path: Path):
    path = tmp_path / "packsync.lock.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(InvalidConfiguration):
        Lockfile.load(path)
