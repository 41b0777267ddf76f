"""Where one sync run reads and writes.

A scope is either a project directory or the user's global environment.
Everything that differs between the two is captured here so the engine
never branches on scope identity for paths.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from packsync.core.config import SyncConfig
from packsync.core.state.index import GLOBAL_SENTINEL
from packsync.core.utils.paths import find_git_root


@dataclass(frozen=True)
class SyncScope:
    key: str
    label: str
    root: Path
    claude_dir: Path
    state_file: Path
    settings_file: Path
    ledger_file: Path
    document_file: Path
    ignore_file: Path
    lockfile_path: Path
    is_global: bool
    hook_command_prefix: str

    @classmethod
    def project(cls, project_dir: Path, config: SyncConfig) -> "SyncScope":
        root = Path(project_dir).resolve()
        claude_dir = root / config.claude_dir_name
        return cls(
            key=str(root),
            label=f"project {root.name}",
            root=root,
            claude_dir=claude_dir,
            state_file=claude_dir / config.file_name("project_state"),
            settings_file=claude_dir / config.file_name("project_settings"),
            ledger_file=claude_dir / config.file_name("ownership_ledger"),
            document_file=root / config.file_name("project_document"),
            ignore_file=root / config.file_name("project_ignore"),
            lockfile_path=root / config.file_name("project_lockfile"),
            is_global=False,
            hook_command_prefix=f"bash {config.claude_dir_name}/hooks/",
        )

    @classmethod
    def global_(cls, config: SyncConfig) -> "SyncScope":
        claude_dir = config.global_claude_dir
        return cls(
            key=GLOBAL_SENTINEL,
            label="global",
            root=config.home,
            claude_dir=claude_dir,
            state_file=config.user_dir / config.file_name("global_state"),
            settings_file=claude_dir / config.file_name("global_settings"),
            ledger_file=config.user_dir / config.file_name("global_ownership_ledger"),
            document_file=claude_dir / config.file_name("global_document"),
            ignore_file=config.global_ignore_file,
            lockfile_path=config.user_dir / config.file_name("global_lockfile"),
            is_global=True,
            hook_command_prefix=f"bash ~/{config.claude_dir_name}/hooks/",
        )

    def relative(self, path: Path) -> str:
        """Record form of a path inside the scope (relative to ``root``)."""
        return Path(path).relative_to(self.root).as_posix()

    def absolute(self, recorded: str) -> Path:
        return self.root / recorded

    def contains(self, path: Path) -> bool:
        base = self.claude_dir.resolve()
        target = Path(path).resolve()
        return target == base or base in target.parents

    def builtin_values(self) -> Dict[str, str]:
        """Template values every project sync provides without prompting."""
        if self.is_global:
            return {}
        repo = find_git_root(self.root) or self.root
        return {"REPO_NAME": repo.name, "PROJECT_DIR_NAME": self.root.name}


__all__ = ["SyncScope"]
