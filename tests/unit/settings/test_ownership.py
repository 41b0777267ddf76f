from __future__ import annotations

from pathlib import Path

from packsync.core.settings import SettingsOwnership


def test_missing_ledger_owns_nothing(tmp_path: Path):
    ledger = SettingsOwnership(tmp_path / ".packsync-settings-keys")

    assert ledger.managed_keys == []
    assert not ledger.owns("env.FOO")


def test_save_and_reload(tmp_path: Path):
    path = tmp_path / ".packsync-settings-keys"
    ledger = SettingsOwnership(path)
    ledger.record("permissions.defaultMode", "1.0.0")
    ledger.record("env.FOO", "1.2.0")
    ledger.save()

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[1] == "# format=1"
    assert lines[2:] == ["env.FOO=1.2.0", "permissions.defaultMode=1.0.0"]

    reloaded = SettingsOwnership(path)
    assert reloaded.owns("env.FOO")
    assert reloaded.version("env.FOO") == "1.2.0"


def test_malformed_lines_are_skipped(tmp_path: Path):
    path = tmp_path / "ledger"
    path.write_text("# header\nenv.A=1.0.0\ngarbage\n=1.0.0\n\n", encoding="utf-8")

    assert SettingsOwnership(path).managed_keys == ["env.A"]


def test_stale_keys_are_owned_but_undeclared(tmp_path: Path):
    ledger = SettingsOwnership(tmp_path / "ledger")
    ledger.record("env.A", "1")
    ledger.record("env.B", "1")

    assert ledger.stale_keys(["env.A", "env.C"]) == ["env.B"]

    ledger.remove("env.B")
    assert ledger.stale_keys(["env.A"]) == []
