"""ComponentExecutor against a recording shell."""
from __future__ import annotations

from pathlib import Path

import pytest

from packsync.core.exceptions import ArtifactApplyFailure
from packsync.core.packs.model import McpServerAction
from packsync.core.sync import ComponentExecutor, IgnoreFile
from packsync.core.sync.executor import mcp_add_arguments

from helpers.fakes import FakeShell


@pytest.fixture
def executor(shell: FakeShell) -> ComponentExecutor:
    return ComponentExecutor(shell, pack_id="web")


class TestMcpServers:
    def test_stdio_arguments(self):
        server = McpServerAction(name="docs", command="npx", args=("-y", "docs-mcp"), env=(("B", "2"), ("A", "1")))

        assert mcp_add_arguments(server, "local") == [
            "mcp", "add", "-s", "local", "docs", "-e", "A=1", "-e", "B=2", "--", "npx", "-y", "docs-mcp",
        ]

    def test_http_arguments(self):
        server = McpServerAction(name="api", url="https://mcp.example.com")

        assert mcp_add_arguments(server, "user") == [
            "mcp", "add", "-s", "user", "api", "--transport", "http", "https://mcp.example.com",
        ]

    def test_add_removes_existing_registration_first(self, executor: ComponentExecutor, shell: FakeShell):
        executor.add_mcp_server(McpServerAction(name="docs", command="docs-mcp"), scope="project")

        assert shell.calls[0] == ("claude", "mcp", "remove", "-s", "project", "docs")
        assert shell.calls[1][:5] == ("claude", "mcp", "add", "-s", "project")
        assert all(env == {"CLAUDECODE": ""} for env in shell.envs)

    def test_add_failure_carries_pack_and_artifact(self, executor: ComponentExecutor, shell: FakeShell):
        shell.fail(("claude", "mcp", "add"), stderr="bad server")

        with pytest.raises(ArtifactApplyFailure) as info:
            executor.add_mcp_server(McpServerAction(name="docs", command="docs-mcp"), scope="local")

        assert info.value.pack_id == "web"
        assert info.value.artifact == "mcp:docs"
        assert "bad server" in str(info.value)

    def test_remove_tolerates_absent_server(self, executor: ComponentExecutor, shell: FakeShell):
        shell.fail(("claude", "mcp", "remove"), stderr="No MCP server found with name: docs")

        executor.remove_mcp_server("docs", scope="local")

    def test_remove_reports_real_failures(self, executor: ComponentExecutor, shell: FakeShell):
        shell.fail(("claude", "mcp", "remove"), stderr="permission denied")

        with pytest.raises(ArtifactApplyFailure):
            executor.remove_mcp_server("docs", scope="local")


class TestPlugins:
    def test_install_registers_marketplace_then_installs(self, executor: ComponentExecutor, shell: FakeShell):
        executor.install_plugin("review@acme/plugins")

        assert shell.calls == [
            ("claude", "plugin", "marketplace", "add", "acme/plugins"),
            ("claude", "plugin", "install", "review"),
        ]

    def test_bare_name_uses_official_marketplace(self, executor: ComponentExecutor, shell: FakeShell):
        executor.install_plugin("lint")

        assert shell.calls[0] == ("claude", "plugin", "marketplace", "add", "anthropics/claude-plugins-official")

    def test_marketplace_failure_only_matters_via_install(self, executor: ComponentExecutor, shell: FakeShell):
        shell.fail(("claude", "plugin", "marketplace"), stderr="already added")

        executor.install_plugin("lint")

    def test_uninstall(self, executor: ComponentExecutor, shell: FakeShell):
        executor.uninstall_plugin("review@acme/plugins")

        assert shell.calls == [("claude", "plugin", "remove", "review")]


class TestPackages:
    def test_package_on_path_is_not_installed(self, shell: FakeShell):
        shell.available.add("jq")

        ComponentExecutor(shell).install_package("jq")

        assert shell.calls == []

    def test_package_installed_with_brew(self, executor: ComponentExecutor, shell: FakeShell):
        executor.install_package("jq")

        assert shell.calls == [("brew", "install", "jq")]

    def test_missing_brew_fails(self):
        executor = ComponentExecutor(FakeShell(available=()), pack_id="web")

        with pytest.raises(ArtifactApplyFailure, match="Homebrew not found"):
            executor.install_package("jq")

    def test_uninstall_tolerates_missing_keg(self, executor: ComponentExecutor, shell: FakeShell):
        shell.fail(("brew", "uninstall"), stderr="Error: No such keg: /opt/homebrew/Cellar/jq")

        executor.uninstall_package("jq")


class TestFiles:
    def test_write_file_is_executable_when_asked(self, executor: ComponentExecutor, tmp_path: Path):
        target = tmp_path / ".claude" / "hooks" / "lint.sh"

        executor.write_file(target, b"#!/bin/sh\n", executable=True)

        assert target.read_bytes() == b"#!/bin/sh\n"
        assert target.stat().st_mode & 0o111
        assert [p.name for p in target.parent.iterdir()] == ["lint.sh"]

    def test_remove_file_prunes_empty_dirs_below_stop(self, executor: ComponentExecutor, tmp_path: Path):
        claude_dir = tmp_path / ".claude"
        target = claude_dir / "skills" / "review" / "SKILL.md"
        executor.write_file(target, b"x")
        (claude_dir / "keep.txt").write_text("user file", encoding="utf-8")

        executor.remove_file(target, stop_at=claude_dir)

        assert not (claude_dir / "skills").exists()
        assert (claude_dir / "keep.txt").exists()

    def test_remove_missing_file_is_fine(self, executor: ComponentExecutor, tmp_path: Path):
        executor.remove_file(tmp_path / ".claude" / "gone.md", stop_at=tmp_path / ".claude")


def test_shell_action_failure(executor: ComponentExecutor, shell: FakeShell, tmp_path: Path):
    shell.fail(("make setup",), stderr="make: *** no rule")

    with pytest.raises(ArtifactApplyFailure) as info:
        executor.run_shell("make setup", cwd=tmp_path, component_id="web.setup")

    assert info.value.artifact == "shell:web.setup"
    assert shell.shell_calls == [("make setup", tmp_path)]


def test_ignore_entries(executor: ComponentExecutor, tmp_path: Path):
    ignore = IgnoreFile(tmp_path / ".gitignore")
    (tmp_path / ".gitignore").write_text("# mine\nnode_modules\n", encoding="utf-8")

    executor.add_ignore_entry(ignore, "*.local.*")
    executor.add_ignore_entry(ignore, "*.local.*")

    assert (tmp_path / ".gitignore").read_text(encoding="utf-8") == "# mine\nnode_modules\n*.local.*\n"
    assert ignore.entries() == ["node_modules", "*.local.*"]

    executor.remove_ignore_entry(ignore, "*.local.*")
    assert not ignore.contains("*.local.*")
    assert ignore.remove("*.local.*") is False
