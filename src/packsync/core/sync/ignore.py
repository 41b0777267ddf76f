"""Idempotent line edits on a git ignore file."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from packsync.core.utils.io import read_lines, write_lines

logger = logging.getLogger(__name__)


class IgnoreFile:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def entries(self) -> List[str]:
        return [line.strip() for line in read_lines(self.path) if line.strip() and not line.startswith("#")]

    def contains(self, entry: str) -> bool:
        return entry in self.entries()

    def add(self, entry: str) -> bool:
        """Append ``entry`` unless an identical line is already present."""
        lines = read_lines(self.path)
        if entry in (line.strip() for line in lines):
            return False
        write_lines(self.path, lines + [entry])
        logger.info("Added %r to %s", entry, self.path)
        return True

    def remove(self, entry: str) -> bool:
        lines = read_lines(self.path)
        kept = [line for line in lines if line.strip() != entry]
        if len(kept) == len(lines):
            return False
        write_lines(self.path, kept)
        logger.info("Removed %r from %s", entry, self.path)
        return True


__all__ = ["IgnoreFile"]
