"""``packsync pack add|list|remove|update``."""
from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest

from packsync.cli._dispatcher import main
from packsync.cli.pack import add as add_cmd
from packsync.cli.pack import remove as remove_cmd
from packsync.cli.pack import update as update_cmd
from packsync.core.packs import RegistryFile
from packsync.core.state import IndexData, ReferenceIndex

from helpers.fakes import AdvancingShell, FakeShell
from helpers.packs import write_pack

SHA = "c0ffee" + "0" * 34
NEW_SHA = "beef" + "0" * 36


class CloningShell(FakeShell):
    """Materialises ``git clone`` by copying a prepared pack directory."""

    def __init__(self, template: Path) -> None:
        super().__init__()
        self.template = template
        self.script(("git", "rev-parse", "HEAD"), stdout=SHA)

    def run(self, cmd, *, cwd=None, env=None):
        result = super().run(cmd, cwd=cwd, env=env)
        argv = [str(p) for p in cmd]
        if argv[:2] == ["git", "clone"] and result.succeeded:
            shutil.copytree(self.template, argv[-1])
        return result


@pytest.fixture
def local_pack(tmp_path: Path) -> Path:
    return write_pack(tmp_path / "src", "web", description="Web tooling")


def _json(capsys: pytest.CaptureFixture) -> dict:
    return json.loads(capsys.readouterr().out)


def test_list_shows_builtin_core(capsys: pytest.CaptureFixture):
    assert main(["pack", "list", "--json"]) == 0

    payload = _json(capsys)
    assert payload["count"] == 1
    assert payload["packs"][0]["id"] == "core"
    assert payload["packs"][0]["source"] == "builtin"


def test_add_local_then_list(local_pack: Path, config, capsys: pytest.CaptureFixture):
    assert main(["pack", "add", str(local_pack)]) == 0
    assert "Added pack web (local)" in capsys.readouterr().out

    entry = RegistryFile(config.registry_path).get("web")
    assert entry.local
    assert entry.path == local_pack.resolve()

    assert main(["pack", "list"]) == 0
    out = capsys.readouterr().out
    assert "web  v1.0.0  Web" in out
    assert "    Web tooling" in out


def test_add_rejects_builtin_id(tmp_path: Path, capsys: pytest.CaptureFixture):
    pack_dir = write_pack(tmp_path / "src", "core")

    assert main(["pack", "add", str(pack_dir)]) == 1
    assert "reserved" in capsys.readouterr().err


def test_add_invalid_manifest(tmp_path: Path, capsys: pytest.CaptureFixture):
    broken = tmp_path / "broken"
    broken.mkdir()
    (broken / "pack.yaml").write_text("id: broken\n", encoding="utf-8")

    assert main(["pack", "add", str(broken), "--json"]) == 1
    error = json.loads(capsys.readouterr().err)
    assert error["error"] == "pack_add_error"
    assert error["code"] == "InvalidConfiguration"


def test_add_git_moves_checkout_to_manifest_id(
    local_pack: Path, config, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
):
    shell = CloningShell(local_pack)
    monkeypatch.setattr(add_cmd, "get_shell", lambda config: shell)

    assert main(["pack", "add", "https://example.com/acme/web-pack.git", "--ref", "v1", "--json"]) == 0

    pack = _json(capsys)["pack"]
    target = (config.packs_dir / "web").resolve()
    assert pack["commit"] == SHA
    assert pack["ref"] == "v1"
    assert Path(pack["path"]) == target
    assert (target / "pack.yaml").exists()
    assert not (config.packs_dir / ".staging-web-pack").exists()
    assert shell.commands("git", "clone")[0][-2] == "https://example.com/acme/web-pack.git"


def test_failed_git_add_leaves_no_staging(
    tmp_path: Path, config, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
):
    empty = tmp_path / "empty"
    empty.mkdir()
    shell = CloningShell(empty)
    monkeypatch.setattr(add_cmd, "get_shell", lambda config: shell)

    assert main(["pack", "add", "https://example.com/acme/nothing.git"]) == 1

    assert "Pack manifest not found" in capsys.readouterr().err
    assert list(config.packs_dir.iterdir()) == []
    assert RegistryFile(config.registry_path).load() == []


class TestRemove:
    def test_not_installed(self, capsys: pytest.CaptureFixture):
        assert main(["pack", "remove", "ghost"]) == 1
        assert "not installed" in capsys.readouterr().err

    def test_refuses_while_in_use(self, local_pack: Path, config, tmp_path: Path, capsys: pytest.CaptureFixture):
        main(["pack", "add", str(local_pack)])
        user = tmp_path / "user-project"
        user.mkdir()
        data = IndexData()
        ReferenceIndex.upsert(data, str(user), ["web"])
        ReferenceIndex(config.index_path).save(data)
        capsys.readouterr()

        assert main(["pack", "remove", "web"]) == 1
        assert str(user) in capsys.readouterr().err

        assert main(["pack", "remove", "web", "--force", "--json"]) == 0
        assert _json(capsys) == {"id": "web", "removed": True, "checkoutDeleted": False}
        assert local_pack.exists()
        assert RegistryFile(config.registry_path).get("web") is None

    def test_git_pack_checkout_is_deleted(
        self, local_pack: Path, config, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
    ):
        shell = CloningShell(local_pack)
        monkeypatch.setattr(add_cmd, "get_shell", lambda config: shell)
        monkeypatch.setattr(remove_cmd, "get_shell", lambda config: shell)
        main(["pack", "add", "https://example.com/web.git"])
        capsys.readouterr()

        assert main(["pack", "remove", "web", "--json"]) == 0

        assert _json(capsys)["checkoutDeleted"] is True
        assert not (config.packs_dir / "web").exists()


class TestUpdate:
    def test_not_installed(self, capsys: pytest.CaptureFixture):
        assert main(["pack", "update", "ghost"]) == 1
        assert "not installed" in capsys.readouterr().err

    def test_local_pack_is_skipped(self, local_pack: Path, capsys: pytest.CaptureFixture):
        main(["pack", "add", str(local_pack)])
        capsys.readouterr()

        assert main(["pack", "update", "--json"]) == 0
        assert _json(capsys) == {"messages": ["web: local pack (skipped)"]}

    def test_git_pack_moves_to_latest_commit(
        self, local_pack: Path, config, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
    ):
        monkeypatch.setattr(add_cmd, "get_shell", lambda config: CloningShell(local_pack))
        main(["pack", "add", "https://example.com/web.git"])
        capsys.readouterr()
        shell = AdvancingShell(SHA, NEW_SHA)
        monkeypatch.setattr(update_cmd, "get_shell", lambda config: shell)

        assert main(["pack", "update", "web"]) == 0

        out = capsys.readouterr().out
        assert "web: updated (beef000)" in out
        assert "Run 'packsync sync'" in out
        assert RegistryFile(config.registry_path).get("web").commit == NEW_SHA
        assert shell.commands("git", "fetch")
