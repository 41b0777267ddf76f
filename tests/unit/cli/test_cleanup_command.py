"""``packsync cleanup``."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from packsync.cli._dispatcher import main


@pytest.fixture
def backups(config, project_dir: Path) -> list:
    global_backup = config.global_claude_dir / "settings.json.backup.20240101_000000"
    project_backup = project_dir / "CLAUDE.local.md.backup.20240102_000000"
    global_backup.parent.mkdir(parents=True)
    for path in (global_backup, project_backup):
        path.write_text("old", encoding="utf-8")
    (project_dir / "CLAUDE.local.md").write_text("current", encoding="utf-8")
    return sorted([global_backup, project_backup])


def test_lists_without_deleting(backups: list, capsys: pytest.CaptureFixture):
    assert main(["cleanup"]) == 0

    out = capsys.readouterr().out
    assert "Found 2 backup file(s)" in out
    assert "cleanup --force" in out
    assert all(path.exists() for path in backups)


def test_force_deletes(backups: list, project_dir: Path, capsys: pytest.CaptureFixture):
    assert main(["cleanup", "--force", "--json"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["backups"] == [str(p) for p in backups]
    assert payload["deleted"] == payload["backups"]
    assert payload["failed"] == []
    assert not any(path.exists() for path in backups)
    assert (project_dir / "CLAUDE.local.md").exists()


def test_nothing_to_clean(project_dir: Path, capsys: pytest.CaptureFixture):
    assert main(["cleanup", "--force"]) == 0
    assert "No backup files found." in capsys.readouterr().out
