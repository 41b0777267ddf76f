"""Side effects of installing and removing single artifacts.

``ComponentExecutor`` is the only place the sync engine touches the
``claude`` CLI, Homebrew, pack shell actions and copied files. Every method
either succeeds or raises :class:`ArtifactApplyFailure`; the engine collects
those into the run report.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from packsync.core.exceptions import ArtifactApplyFailure
from packsync.core.packs.model import McpServerAction, PluginAction
from packsync.core.utils.io import ensure_parent_dir
from packsync.core.utils.subprocess import ShellResult, ShellRunner

from .ignore import IgnoreFile

logger = logging.getLogger(__name__)

CLAUDE_COMMAND = "claude"
BREW_COMMAND = "brew"

# Unset so the claude CLI does not refuse to run nested inside a session.
_CLAUDE_ENV = {"CLAUDECODE": ""}

_ABSENT_MARKERS = ("not found", "no mcp server", "not installed", "no such keg")


def _reports_absent(result: ShellResult) -> bool:
    text = f"{result.stdout}\n{result.stderr}".lower()
    return any(marker in text for marker in _ABSENT_MARKERS)


def mcp_add_arguments(server: McpServerAction, scope: str) -> List[str]:
    """``claude mcp add`` argv for ``server`` (env flags sorted by key)."""
    args = ["mcp", "add", "-s", scope, server.name]
    for key, value in sorted(server.env):
        args.extend(["-e", f"{key}={value}"])
    if server.is_http:
        args.extend(["--transport", "http"])
        if server.url:
            args.append(server.url)
        args.extend(server.args)
    else:
        args.append("--")
        args.append(server.command)
        args.extend(server.args)
    return args


class ComponentExecutor:
    def __init__(self, shell: ShellRunner, *, pack_id: Optional[str] = None) -> None:
        self.shell = shell
        self.pack_id = pack_id

    def for_pack(self, pack_id: str) -> "ComponentExecutor":
        return ComponentExecutor(self.shell, pack_id=pack_id)

    def _fail(self, message: str, artifact: str, result: Optional[ShellResult] = None) -> ArtifactApplyFailure:
        context: Dict[str, object] = {}
        if result is not None:
            context["returncode"] = result.returncode
            message = f"{message}: {result.summary()}"
        return ArtifactApplyFailure(message, pack_id=self.pack_id, artifact=artifact, context=context)

    def _claude(self, *args: str) -> ShellResult:
        return self.shell.run([CLAUDE_COMMAND, *args], env=_CLAUDE_ENV)

    # ---------- MCP servers ----------

    def add_mcp_server(self, server: McpServerAction, *, scope: str) -> None:
        """Register ``server``; an existing registration is removed first."""
        self._claude("mcp", "remove", "-s", scope, server.name)
        result = self._claude(*mcp_add_arguments(server, scope))
        if not result.succeeded:
            raise self._fail(f"Failed to register MCP server '{server.name}'", f"mcp:{server.name}", result)
        logger.info("Registered MCP server %s (scope %s)", server.name, scope)

    def remove_mcp_server(self, name: str, *, scope: str) -> None:
        result = self._claude("mcp", "remove", "-s", scope, name)
        if not result.succeeded and not _reports_absent(result):
            raise self._fail(f"Failed to remove MCP server '{name}'", f"mcp:{name}", result)
        logger.info("Removed MCP server %s (scope %s)", name, scope)

    # ---------- plugins ----------

    def install_plugin(self, name: str) -> None:
        ref = PluginAction(name)
        # Marketplace registration is idempotent; its result only matters via install.
        self._claude("plugin", "marketplace", "add", ref.marketplace_repo)
        result = self._claude("plugin", "install", ref.bare_name)
        if not result.succeeded:
            raise self._fail(f"Failed to install plugin '{ref.bare_name}'", f"plugin:{name}", result)
        logger.info("Installed plugin %s", ref.bare_name)

    def uninstall_plugin(self, name: str) -> None:
        ref = PluginAction(name)
        result = self._claude("plugin", "remove", ref.bare_name)
        if not result.succeeded and not _reports_absent(result):
            raise self._fail(f"Failed to remove plugin '{ref.bare_name}'", f"plugin:{name}", result)
        logger.info("Removed plugin %s", ref.bare_name)

    # ---------- packages ----------

    def install_package(self, name: str) -> None:
        if self.shell.which(name):
            logger.debug("Package %s already available on PATH", name)
            return
        if not self.shell.which(BREW_COMMAND):
            raise self._fail(f"Homebrew not found, cannot install '{name}'", f"package:{name}")
        result = self.shell.run([BREW_COMMAND, "install", name])
        if not result.succeeded:
            raise self._fail(f"Failed to install package '{name}'", f"package:{name}", result)
        logger.info("Installed package %s", name)

    def uninstall_package(self, name: str) -> None:
        if not self.shell.which(BREW_COMMAND):
            raise self._fail(f"Homebrew not found, cannot remove '{name}'", f"package:{name}")
        result = self.shell.run([BREW_COMMAND, "uninstall", name])
        if not result.succeeded and not _reports_absent(result):
            raise self._fail(f"Failed to remove package '{name}'", f"package:{name}", result)
        logger.info("Removed package %s", name)

    # ---------- files ----------

    def write_file(self, path: Path, content: bytes, *, executable: bool = False) -> None:
        """Write ``content`` to ``path``, replacing any existing file."""
        try:
            ensure_parent_dir(path)
            tmp = path.with_name(f".{path.name}.tmp")
            tmp.write_bytes(content)
            if executable:
                os.chmod(tmp, 0o755)
            os.replace(tmp, path)
        except OSError as exc:
            raise self._fail(f"Cannot write {path}: {exc}", f"file:{path}") from exc
        logger.debug("Wrote %s (%d bytes)", path, len(content))

    def remove_file(self, path: Path, *, stop_at: Path) -> None:
        """Delete ``path`` and prune parent directories left empty below ``stop_at``."""
        try:
            if path.is_file() or path.is_symlink():
                path.unlink()
        except OSError as exc:
            raise self._fail(f"Cannot remove {path}: {exc}", f"file:{path}") from exc

        parent = path.parent
        stop = stop_at.resolve()
        while parent.is_dir() and stop in parent.resolve().parents:
            if any(parent.iterdir()):
                break
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent
        logger.debug("Removed %s", path)

    # ---------- ignore entries ----------

    def add_ignore_entry(self, ignore: IgnoreFile, entry: str) -> None:
        try:
            ignore.add(entry)
        except OSError as exc:
            raise self._fail(f"Cannot update {ignore.path}: {exc}", f"ignore:{entry}") from exc

    def remove_ignore_entry(self, ignore: IgnoreFile, entry: str) -> None:
        try:
            ignore.remove(entry)
        except OSError as exc:
            raise self._fail(f"Cannot update {ignore.path}: {exc}", f"ignore:{entry}") from exc

    # ---------- shell actions ----------

    def run_shell(self, command: str, *, cwd: Path, component_id: str) -> None:
        result = self.shell.run_shell(command, cwd=cwd)
        if not result.succeeded:
            raise self._fail(f"Shell action '{component_id}' failed", f"shell:{component_id}", result)
        logger.info("Ran shell action %s", component_id)


__all__ = ["ComponentExecutor", "mcp_add_arguments", "CLAUDE_COMMAND", "BREW_COMMAND"]
