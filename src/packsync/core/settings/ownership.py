"""Ledger of settings key paths packsync wrote.

Stored as a line-based sidecar next to the settings file::

    # packsync settings ownership - do not edit manually
    # format=1
    env.FOO=1.0.0
    permissions.defaultMode=1.0.0

A key is recorded only when packsync writes it into a document where it was
absent. Keys not in the ledger belong to the user and are never modified.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List

from packsync.core.exceptions import StatePersistenceFailure
from packsync.core.utils.io import read_lines, write_lines

logger = logging.getLogger(__name__)

LEDGER_FORMAT = "1"


class SettingsOwnership:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.entries: Dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        for line in read_lines(self.path):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            key, sep, version = stripped.partition("=")
            if not sep or not key:
                logger.warning("Ignoring malformed ownership line in %s: %r", self.path, line)
                continue
            self.entries[key] = version

    def record(self, key_path: str, version: str) -> None:
        self.entries[key_path] = version

    def remove(self, key_path: str) -> None:
        self.entries.pop(key_path, None)

    def owns(self, key_path: str) -> bool:
        return key_path in self.entries

    def version(self, key_path: str) -> str | None:
        return self.entries.get(key_path)

    @property
    def managed_keys(self) -> List[str]:
        return sorted(self.entries)

    def stale_keys(self, current: Iterable[str]) -> List[str]:
        """Owned keys that no current pack declares any more."""
        wanted = set(current)
        return [k for k in self.managed_keys if k not in wanted]

    def save(self) -> None:
        lines = ["# packsync settings ownership - do not edit manually", f"# format={LEDGER_FORMAT}"]
        lines.extend(f"{k}={v}" for k, v in sorted(self.entries.items()))
        try:
            write_lines(self.path, lines)
        except OSError as exc:
            raise StatePersistenceFailure(
                f"Cannot write ownership ledger {self.path}: {exc}", path=str(self.path)
            ) from exc


__all__ = ["LEDGER_FORMAT", "SettingsOwnership"]
