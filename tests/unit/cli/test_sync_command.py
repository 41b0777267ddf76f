"""``packsync sync`` through the dispatcher, in-process."""
from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from packsync.cli._dispatcher import main
from packsync.cli.commands import sync as sync_cmd
from packsync.core.state import SyncState
from packsync.core.utils.io import acquire_process_lock

from helpers.fakes import FakeShell
from helpers.packs import register, write_pack


@pytest.fixture(autouse=True)
def fake_shell(monkeypatch: pytest.MonkeyPatch, shell: FakeShell) -> FakeShell:
    monkeypatch.setattr(sync_cmd, "get_shell", lambda config: shell)
    return shell


@pytest.fixture
def tools_pack(tmp_path: Path, config) -> Path:
    pack_dir = write_pack(
        tmp_path / "packs",
        "tools",
        components=[
            {"id": "jq", "type": "package", "package": "jq"},
            {"id": "rg", "type": "package", "package": "ripgrep"},
        ],
    )
    register(config.registry_path, pack_dir)
    return pack_dir


def _json(capsys: pytest.CaptureFixture) -> dict:
    return json.loads(capsys.readouterr().out)


def test_core_pack_sync_and_resync(project_dir: Path, capsys: pytest.CaptureFixture):
    assert main(["sync", "--pack", "core", "--json"]) == 0
    first = _json(capsys)

    assert first["configuredPacks"] == ["core"]
    assert {"pack": "core", "action": "add", "kind": "ignore_entries", "item": "*.local.*"} in first["operations"]
    assert (project_dir / "CLAUDE.local.md").exists()
    assert not (project_dir / "packsync.lock.yaml").exists()

    assert main(["sync", "--json"]) == 0
    second = _json(capsys)
    assert second["operations"] == []
    assert second["configuredPacks"] == ["core"]


def test_text_report(project_dir: Path, capsys: pytest.CaptureFixture):
    assert main(["sync", "--pack", "core"]) == 0

    out = capsys.readouterr().out
    assert "Changes for project demo-app:" in out
    assert "add template_sections core (core)" in out
    assert "Configured packs: core" in out


def test_dry_run_changes_nothing(project_dir: Path, capsys: pytest.CaptureFixture):
    assert main(["sync", "--pack", "core", "--dry-run", "--json"]) == 0

    payload = _json(capsys)
    assert payload["dryRun"] is True
    assert payload["operations"]
    assert not (project_dir / ".gitignore").exists()
    assert not (project_dir / ".claude").exists()


def test_external_pack_is_pinned_in_lockfile(project_dir: Path, tools_pack: Path, fake_shell: FakeShell):
    assert main(["sync", "--pack", "core", "--pack", "tools"]) == 0

    assert sorted(c[2] for c in fake_shell.commands("brew", "install")) == ["jq", "ripgrep"]
    assert yaml.safe_load((project_dir / "packsync.lock.yaml").read_text(encoding="utf-8")) == {"tools": "local"}


def test_exclude_accepts_unqualified_id_for_single_pack(project_dir: Path, tools_pack: Path, fake_shell: FakeShell):
    assert main(["sync", "--pack", "tools", "--exclude", "rg"]) == 0

    assert fake_shell.commands("brew", "install") == [("brew", "install", "jq")]
    state = SyncState.load(project_dir / ".claude" / ".packsync-project.json")
    assert state.excluded("tools") == ["tools.rg"]


def test_ambiguous_exclude_is_rejected(project_dir: Path, tools_pack: Path, capsys: pytest.CaptureFixture):
    assert main(["sync", "--pack", "core", "--pack", "tools", "--exclude", "rg"]) == 1

    assert "Cannot tell which pack" in capsys.readouterr().err


def test_customize_needs_a_pack_selection(project_dir: Path, capsys: pytest.CaptureFixture):
    assert main(["sync", "--customize"]) == 1

    assert "need --pack or --all" in capsys.readouterr().err


def test_bad_assignment(project_dir: Path, capsys: pytest.CaptureFixture):
    assert main(["sync", "--pack", "core", "--set", "NOEQUALS"]) == 1

    assert "Expected KEY=VALUE" in capsys.readouterr().err


def test_unknown_pack_fails_but_syncs_the_rest(project_dir: Path, capsys: pytest.CaptureFixture):
    assert main(["sync", "--pack", "core", "--pack", "ghost", "--json"]) == 1

    payload = _json(capsys)
    assert payload["configuredPacks"] == ["core"]
    assert payload["errors"][0]["message"] == "Unknown pack 'ghost'"


def test_artifact_failures_and_ignore_failures(
    project_dir: Path, tools_pack: Path, fake_shell: FakeShell, capsys: pytest.CaptureFixture
):
    fake_shell.fail(("brew", "install", "jq"), stderr="Error: no bottle")

    assert main(["sync", "--pack", "tools"]) == 1
    assert "no bottle" in capsys.readouterr().err
    assert not (project_dir / "packsync.lock.yaml").exists()

    assert main(["sync", "--ignore-failures"]) == 0


def test_lock_without_lockfile(project_dir: Path, capsys: pytest.CaptureFixture):
    assert main(["sync", "--lock"]) == 1

    assert "No lockfile found" in capsys.readouterr().err


def test_lock_and_update_are_exclusive(project_dir: Path):
    with pytest.raises(SystemExit):
        main(["sync", "--lock", "--update"])


def test_concurrent_run_is_refused(project_dir: Path, config, capsys: pytest.CaptureFixture):
    with acquire_process_lock(config.lock_path):
        assert main(["sync", "--pack", "core"]) == 1

    assert "Another packsync instance is running" in capsys.readouterr().err


def test_global_scope(isolated_home: Path, capsys: pytest.CaptureFixture):
    assert main(["sync", "--global", "--pack", "core", "--json"]) == 0

    assert _json(capsys)["scope"] == "global"
    assert (isolated_home / ".claude" / "CLAUDE.md").exists()
    assert "*.local.*" in (isolated_home / ".config" / "git" / "ignore").read_text(encoding="utf-8")


def test_explicit_project_directory(tmp_path: Path, capsys: pytest.CaptureFixture):
    other = tmp_path / "elsewhere"
    other.mkdir()

    assert main(["sync", "--project", str(other), "--pack", "core"]) == 0
    assert (other / "CLAUDE.local.md").exists()
