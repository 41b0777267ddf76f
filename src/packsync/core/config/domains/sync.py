"""Typed access to packsync's directory, file, logging and I/O settings."""
from __future__ import annotations

from functools import cached_property
from pathlib import Path
from typing import Any, Dict

from ..base import BaseDomainConfig


class SyncConfig(BaseDomainConfig):
    """Resolved locations and knobs used by the sync engine and CLI."""

    def _config_section(self) -> str:
        return "files"

    def _resolve_home_relative(self, value: str) -> Path:
        p = Path(value).expanduser()
        return p if p.is_absolute() else self.home / p

    @cached_property
    def user_dir(self) -> Path:
        """packsync's per-user directory (``~/.packsync``)."""
        return self._resolve_home_relative(str(self._get("paths", "user_dir", ".packsync")))

    @cached_property
    def claude_dir_name(self) -> str:
        return str(self._get("paths", "claude_dir", ".claude"))

    @cached_property
    def global_claude_dir(self) -> Path:
        return self.home / self.claude_dir_name

    @cached_property
    def global_ignore_file(self) -> Path:
        return self._resolve_home_relative(
            str(self._get("paths", "global_ignore_file", ".config/git/ignore"))
        )

    def file_name(self, key: str) -> str:
        value = self.section.get(key)
        if not value:
            raise KeyError(f"files.{key} is not configured")
        return str(value)

    @cached_property
    def lock_path(self) -> Path:
        return self.user_dir / self.file_name("lock")

    @cached_property
    def index_path(self) -> Path:
        return self.user_dir / self.file_name("project_index")

    @cached_property
    def registry_path(self) -> Path:
        return self.user_dir / self.file_name("registry")

    @cached_property
    def packs_dir(self) -> Path:
        """Checkout directory for git-sourced packs."""
        return self.user_dir / "packs"

    @cached_property
    def log_enabled(self) -> bool:
        return bool(self._get("logging", "enabled", True))

    @cached_property
    def log_level(self) -> str:
        return str(self._get("logging", "level", "INFO"))

    @cached_property
    def log_path(self) -> Path:
        return self.user_dir / str(self._get("logging", "file", "logs/packsync.log"))

    @cached_property
    def subprocess_timeout(self) -> float:
        return float(self._get("subprocess", "timeout_seconds", 120))

    @cached_property
    def json_io(self) -> Dict[str, Any]:
        return {
            "indent": int(self._get("json_io", "indent", 2)),
            "sort_keys": bool(self._get("json_io", "sort_keys", True)),
            "ensure_ascii": bool(self._get("json_io", "ensure_ascii", False)),
        }

    @cached_property
    def backups_enabled(self) -> bool:
        return bool(self._get("backups", "enabled", True))


__all__ = ["SyncConfig"]
