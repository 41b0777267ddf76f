"""``packsync doctor`` drift checks."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from packsync.cli._dispatcher import main
from packsync.cli.commands import sync as sync_cmd

from helpers.fakes import FakeShell
from helpers.packs import register, write_pack


@pytest.fixture(autouse=True)
def fake_shell(monkeypatch: pytest.MonkeyPatch, shell: FakeShell) -> FakeShell:
    monkeypatch.setattr(sync_cmd, "get_shell", lambda config: shell)
    return shell


def _doctor(capsys: pytest.CaptureFixture) -> tuple[int, dict]:
    capsys.readouterr()
    code = main(["doctor", "--json"])
    return code, json.loads(capsys.readouterr().out)


def test_fresh_sync_is_healthy(project_dir: Path, capsys: pytest.CaptureFixture):
    main(["sync", "--pack", "core"])
    capsys.readouterr()

    assert main(["doctor"]) == 0
    out = capsys.readouterr().out
    assert "Doctor report for project demo-app:" in out
    assert "All checks passed" in out


def test_edited_section_is_outdated(project_dir: Path, capsys: pytest.CaptureFixture):
    main(["sync", "--pack", "core"])
    document = project_dir / "CLAUDE.local.md"
    document.write_text(document.read_text(encoding="utf-8").replace("Keep changes small", "Whatever"), encoding="utf-8")

    code, payload = _doctor(capsys)

    assert code == 1
    assert payload["healthy"] is False
    assert [f["check"] for f in payload["findings"]] == ["document"]
    assert "section 'core' is outdated" in payload["findings"][0]["detail"]


def test_unpaired_and_missing_section(project_dir: Path, capsys: pytest.CaptureFixture):
    main(["sync", "--pack", "core"])
    (project_dir / "CLAUDE.local.md").write_text("<!-- begin:core v0.0.1 -->\nhalf\n", encoding="utf-8")

    code, payload = _doctor(capsys)

    assert code == 1
    details = [f["detail"] for f in payload["findings"]]
    assert details == ["section 'core' has a begin marker without an end marker"]


def test_missing_file_and_hook(project_dir: Path, tmp_path: Path, config, capsys: pytest.CaptureFixture):
    pack_dir = write_pack(
        tmp_path / "packs",
        "lint",
        components=[
            {
                "id": "hook",
                "type": "file-copy",
                "source": "lint.sh",
                "destination": "lint.sh",
                "fileType": "hook",
                "hookEvent": "Stop",
            }
        ],
        files={"lint.sh": "#!/bin/sh\n"},
    )
    register(config.registry_path, pack_dir)
    main(["sync", "--pack", "lint"])
    (project_dir / ".claude" / "hooks" / "lint.sh").unlink()
    (project_dir / ".claude" / "settings.local.json").write_text("{}", encoding="utf-8")

    code, payload = _doctor(capsys)

    assert code == 1
    assert {f["check"] for f in payload["findings"]} == {"files", "hooks"}


def test_configured_pack_that_disappeared(project_dir: Path, tmp_path: Path, config, capsys: pytest.CaptureFixture):
    pack_dir = write_pack(tmp_path / "packs", "gone")
    registry_file = register(config.registry_path, pack_dir)
    main(["sync", "--pack", "gone"])
    registry_file.remove("gone")

    code, payload = _doctor(capsys)

    assert code == 1
    assert payload["findings"] == [
        {"check": "pack", "status": "problem", "detail": "gone: configured but not installed"}
    ]
