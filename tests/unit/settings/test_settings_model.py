"""Typed settings document: hooks, plugins and the open ``extra`` bag."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from packsync.core.settings import Settings, fragment_hooks, fragment_key_paths

RAW = {
    "hooks": {
        "PreToolUse": [
            {"matcher": "Bash", "hooks": [{"type": "command", "command": "bash .claude/hooks/guard.sh"}]}
        ]
    },
    "enabledPlugins": {"review@market": True},
    "env": {"USER_VAR": "1"},
    "permissions": {"defaultMode": "plan"},
    "unknownFutureKey": {"nested": [1, 2, 3]},
}


def test_round_trip_keeps_unknown_keys():
    assert Settings.from_dict(RAW).to_dict() == RAW


def test_load_missing_file_is_empty(tmp_path: Path):
    assert Settings.load(tmp_path / "settings.json").to_dict() == {}


def test_load_rejects_invalid_json(tmp_path: Path):
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValueError, match="not valid JSON"):
        Settings.load(path)


def test_load_rejects_non_object_hooks(tmp_path: Path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"hooks": []}), encoding="utf-8")

    with pytest.raises(ValueError, match="'hooks' must be an object"):
        Settings.load(path)


def test_save_is_loadable(tmp_path: Path):
    path = tmp_path / ".claude" / "settings.json"
    Settings.from_dict(RAW).save(path, indent=2, sort_keys=True)

    assert json.loads(path.read_text(encoding="utf-8")) == RAW


class TestHooks:
    def test_add_hook_dedupes_by_command(self):
        settings = Settings.from_dict(RAW)

        assert settings.add_hook("PreToolUse", "bash .claude/hooks/guard.sh") is False
        assert settings.add_hook("Stop", "bash .claude/hooks/done.sh") is True
        assert settings.hook_commands("Stop") == ["bash .claude/hooks/done.sh"]

    def test_remove_hook_prunes_empty_groups_and_events(self):
        settings = Settings.from_dict(RAW)

        assert settings.remove_hook("bash .claude/hooks/guard.sh") is True
        assert "hooks" not in settings.to_dict()
        assert settings.remove_hook("bash .claude/hooks/guard.sh") is False

    def test_remove_hook_keeps_sibling_entries(self):
        settings = Settings(
            hooks={
                "Stop": [
                    {"hooks": [{"type": "command", "command": "a"}, {"type": "command", "command": "b"}]}
                ]
            }
        )

        settings.remove_hook("a")

        assert settings.hook_commands() == ["b"]


class TestKeyPaths:
    def test_get_set_has(self):
        settings = Settings.from_dict(RAW)

        assert settings.get("env.USER_VAR") == "1"
        assert settings.has("permissions.defaultMode")
        assert not settings.has("env.MISSING")
        settings.set("env.NEW", "2")
        settings.set("alwaysThinkingEnabled", True)
        settings.set("enabledPlugins.lint", True)

        data = settings.to_dict()
        assert data["env"] == {"USER_VAR": "1", "NEW": "2"}
        assert data["alwaysThinkingEnabled"] is True
        assert data["enabledPlugins"]["lint"] is True

    def test_set_value_is_copied(self):
        settings = Settings()
        value = {"allow": ["Bash"]}
        settings.set("permissions", value)
        value["allow"].append("Edit")

        assert settings.get("permissions") == {"allow": ["Bash"]}

    def test_remove_key_drops_emptied_parent(self):
        settings = Settings.from_dict(RAW)

        assert settings.remove_key("permissions.defaultMode") is True
        assert "permissions" not in settings.to_dict()
        assert settings.remove_key("permissions.defaultMode") is False

    def test_remove_plugin_key(self):
        settings = Settings.from_dict(RAW)

        assert settings.remove_key("enabledPlugins.review@market") is True
        assert "enabledPlugins" not in settings.to_dict()


def test_fragment_key_paths_flatten_one_level():
    fragment = {
        "env": {"A": "1", "B": "2"},
        "alwaysThinkingEnabled": True,
        "permissions": {"allow": ["Bash(git:*)"]},
        "hooks": {"Stop": [{"hooks": [{"type": "command", "command": "x"}]}]},
        "emptyObject": {},
    }

    assert fragment_key_paths(fragment) == {
        "env.A": "1",
        "env.B": "2",
        "alwaysThinkingEnabled": True,
        "permissions.allow": ["Bash(git:*)"],
        "emptyObject": {},
    }
    assert fragment_hooks(fragment) == [("Stop", "x")]
