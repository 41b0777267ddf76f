"""Loading external ``pack.yaml`` manifests into Pack values."""
from __future__ import annotations

from pathlib import Path

import pytest

from packsync.core.exceptions import DependencyCycleError, InvalidConfiguration
from packsync.core.packs import ComponentType, load_manifest
from packsync.core.packs.model import (
    CopyFileAction,
    CopyFileType,
    ExternalSource,
    IgnoreEntriesAction,
    McpServerAction,
    SettingsFragmentAction,
)

from helpers.packs import write_pack


def test_full_manifest_is_normalized(tmp_path: Path):
    pack_dir = write_pack(
        tmp_path,
        "ios",
        version="2.1.0",
        description="iOS tooling",
        components=[
            {
                "id": "xcode-mcp",
                "type": "remote-service",
                "server": {"name": "xcode", "command": "npx", "args": ["-y", "xcode-mcp"], "env": {"B": "2", "A": "1"}},
            },
            {
                "id": "lint-hook",
                "type": "file-copy",
                "source": "hooks/lint.sh",
                "destination": "lint.sh",
                "fileType": "hook",
                "hookEvent": "PostToolUse",
                "dependencies": ["xcode-mcp"],
            },
            {"id": "prefs", "type": "settings-fragment", "settings": {"env": {"IOS": "1"}}},
        ],
        templates=[{"sectionId": "ios", "content": "Use __PROJECT__.\n"}],
        prompts=[{"key": "PROJECT", "label": "Xcode project", "default": "App.xcodeproj"}],
        ignoreEntries=["*.xcuserstate"],
        files={"hooks/lint.sh": "#!/bin/sh\nswiftlint\n"},
    )

    pack = load_manifest(pack_dir)

    assert pack.id == "ios"
    assert pack.version == "2.1.0"
    assert isinstance(pack.source, ExternalSource)
    assert pack.source.root == pack_dir
    assert pack.component_ids == ["ios.xcode-mcp", "ios.lint-hook", "ios.prefs", "ios.ignore-entries"]

    server = pack.component("ios.xcode-mcp").action
    assert isinstance(server, McpServerAction)
    assert server.env == (("A", "1"), ("B", "2"))
    assert server.args == ("-y", "xcode-mcp")

    hook = pack.component("ios.lint-hook")
    assert isinstance(hook.action, CopyFileAction)
    assert hook.action.file_type is CopyFileType.HOOK
    assert hook.action.source == (pack_dir / "hooks" / "lint.sh").resolve()
    assert hook.hook_event == "PostToolUse"
    assert hook.dependencies == ("ios.xcode-mcp",)

    assert isinstance(pack.component("ios.prefs").action, SettingsFragmentAction)

    ignore = pack.component("ios.ignore-entries")
    assert ignore.type is ComponentType.IGNORE_ENTRIES
    assert ignore.is_required
    assert ignore.action == IgnoreEntriesAction(entries=("*.xcuserstate",))

    assert pack.templates[0].section_id == "ios"
    assert pack.templates[0].version == "2.1.0"
    assert pack.templates[0].content == "Use __PROJECT__."
    assert pack.prompts[0].default == "App.xcodeproj"


def test_template_and_settings_can_come_from_files(tmp_path: Path):
    pack_dir = write_pack(
        tmp_path,
        "web",
        components=[{"id": "settings", "type": "settings-fragment", "source": "settings.json"}],
        templates=[{"sectionId": "web.rules", "source": "templates/rules.md"}],
        files={"settings.json": '{"alwaysThinkingEnabled": true}', "templates/rules.md": "Lint first.\n\n"},
    )

    pack = load_manifest(pack_dir / "pack.yaml")

    assert pack.component("web.settings").action.fragment == {"alwaysThinkingEnabled": True}
    assert pack.templates[0].content == "Lint first."


def test_schema_violation_names_the_manifest(tmp_path: Path):
    pack_dir = write_pack(tmp_path, "broken", components=[{"id": "x", "type": "plugin"}])

    with pytest.raises(InvalidConfiguration) as excinfo:
        load_manifest(pack_dir)

    assert excinfo.value.pack_id == "broken"
    assert "pack.yaml" in str(excinfo.value)


def test_unparsable_yaml_is_invalid_configuration(tmp_path: Path):
    pack_dir = tmp_path / "bad"
    pack_dir.mkdir()
    (pack_dir / "pack.yaml").write_text("id: [unclosed\n", encoding="utf-8")

    with pytest.raises(InvalidConfiguration):
        load_manifest(pack_dir)


def test_missing_manifest(tmp_path: Path):
    with pytest.raises(InvalidConfiguration, match="not found"):
        load_manifest(tmp_path, expected_id="ghost")


def test_source_outside_the_pack_is_rejected(tmp_path: Path):
    pack_dir = write_pack(
        tmp_path,
        "sneaky",
        components=[{"id": "f", "type": "file-copy", "source": "../../etc/passwd", "destination": "x"}],
    )

    with pytest.raises(InvalidConfiguration, match="escapes the pack directory"):
        load_manifest(pack_dir)


def test_hook_event_requires_a_hook_file(tmp_path: Path):
    pack_dir = write_pack(
        tmp_path,
        "hooks",
        components=[
            {
                "id": "cmd",
                "type": "file-copy",
                "source": "c.md",
                "destination": "c.md",
                "fileType": "command",
                "hookEvent": "Stop",
            }
        ],
        files={"c.md": "hi"},
    )

    with pytest.raises(InvalidConfiguration, match="hookEvent"):
        load_manifest(pack_dir)


def test_template_section_must_be_namespaced_by_pack(tmp_path: Path):
    pack_dir = write_pack(tmp_path, "web", templates=[{"sectionId": "other", "content": "x"}])

    with pytest.raises(InvalidConfiguration, match="must be 'web'"):
        load_manifest(pack_dir)


def test_duplicate_component_ids(tmp_path: Path):
    pack_dir = write_pack(
        tmp_path,
        "dup",
        components=[
            {"id": "tool", "type": "package", "package": "jq"},
            {"id": "dup.tool", "type": "package", "package": "yq"},
        ],
    )

    with pytest.raises(InvalidConfiguration, match="Duplicate component ids: dup.tool"):
        load_manifest(pack_dir)


def test_dependency_cycle_fails_at_load_time(tmp_path: Path):
    pack_dir = write_pack(
        tmp_path,
        "loop",
        components=[
            {"id": "a", "type": "package", "package": "a", "dependencies": ["b"]},
            {"id": "b", "type": "package", "package": "b", "dependencies": ["a"]},
        ],
    )

    with pytest.raises(DependencyCycleError) as excinfo:
        load_manifest(pack_dir)

    assert excinfo.value.pack_id == "loop"
    assert set(excinfo.value.cycle) == {"loop.a", "loop.b"}


def test_expected_id_mismatch(tmp_path: Path):
    pack_dir = write_pack(tmp_path, "real")

    with pytest.raises(InvalidConfiguration, match="expected 'other'"):
        load_manifest(pack_dir, expected_id="other")
