"""Timestamped copies of shared documents taken before they are rewritten.

A backup of ``settings.json`` is written next to it as
``settings.json.backup.20240131_142501``. ``packsync cleanup`` finds and
deletes them.
"""
from __future__ import annotations

import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from .core import PathLike

logger = logging.getLogger(__name__)

BACKUP_MARKER = ".backup."
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

# Directories never searched for backups.
_SKIP_DIRS = {".git", "node_modules"}


def backup_path_for(path: PathLike, now: Optional[datetime] = None) -> Path:
    path = Path(path)
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    return path.with_name(f"{path.name}{BACKUP_MARKER}{stamp}")


def backup_file(path: PathLike, *, now: Optional[datetime] = None) -> Optional[Path]:
    """Copy ``path`` to a timestamped sibling; ``None`` when there is nothing to back up.

    Raises:
        OSError: The copy could not be written.
    """
    path = Path(path)
    if not path.is_file():
        return None
    target = backup_path_for(path, now)
    shutil.copy2(path, target)
    logger.info("Backed up %s to %s", path, target.name)
    return target


def find_backups(directory: PathLike) -> List[Path]:
    """Every backup file below ``directory``, sorted by path."""
    root = Path(directory)
    if not root.is_dir():
        return []
    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in _SKIP_DIRS]
        found.extend(Path(dirpath) / name for name in filenames if BACKUP_MARKER in name)
    return sorted(found)


def delete_backups(paths: Iterable[PathLike]) -> List[Path]:
    """Delete ``paths``; return the ones that could not be removed."""
    failures: List[Path] = []
    for item in paths:
        path = Path(item)
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("Could not delete backup %s: %s", path, exc)
            failures.append(path)
    return failures


__all__ = [
    "BACKUP_MARKER",
    "backup_file",
    "backup_path_for",
    "delete_backups",
    "find_backups",
]
