"""Project root detection."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from packsync.core.exceptions import InvalidConfiguration


def find_git_root(start: Path) -> Optional[Path]:
    """Closest ancestor of ``start`` (inclusive) containing a ``.git`` entry."""
    current = Path(start).resolve()
    for candidate in (current, *current.parents):
        if (candidate / ".git").exists():
            return candidate
    return None


def resolve_project_root(explicit: Optional[Path] = None) -> Path:
    """Resolve the project directory a sync targets.

    Resolution priority:
    1. ``explicit`` (``--project``), which must exist
    2. The git repository containing the current directory
    3. The current directory
    """
    if explicit is not None:
        path = Path(explicit).expanduser().resolve()
        if not path.is_dir():
            raise InvalidConfiguration(f"Project directory does not exist: {path}")
        return path
    cwd = Path.cwd().resolve()
    return find_git_root(cwd) or cwd


__all__ = ["find_git_root", "resolve_project_root"]
