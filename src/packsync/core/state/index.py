"""Cross-scope reference index (``~/.packsync/projects.yaml``).

Maps every scope that has been synced to the pack ids it uses, so shared
global resources are only removed when no other scope still needs them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List

import yaml

from packsync.core.exceptions import ReferenceIndexUnreadable, StatePersistenceFailure
from packsync.core.utils.io import read_yaml, write_yaml

logger = logging.getLogger(__name__)

GLOBAL_SENTINEL = "__global__"
INDEX_VERSION = 1


@dataclass
class IndexEntry:
    path: str
    packs: List[str]
    last_synced: str

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "packs": list(self.packs), "lastSynced": self.last_synced}


@dataclass
class IndexData:
    index_version: int = INDEX_VERSION
    projects: List[IndexEntry] = field(default_factory=list)

    def entry(self, scope_key: str) -> IndexEntry | None:
        for e in self.projects:
            if e.path == scope_key:
                return e
        return None

    def projects_with_pack(self, pack_id: str) -> List[IndexEntry]:
        """Entries that list ``pack_id``. Stale entries are not filtered."""
        return [e for e in self.projects if pack_id in e.packs]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "indexVersion": self.index_version,
            "projects": [e.to_dict() for e in sorted(self.projects, key=lambda e: e.path)],
        }


class ReferenceIndex:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> IndexData:
        """Return the index; a missing or empty file is an empty index.

        Raises:
            ReferenceIndexUnreadable: The file exists but cannot be parsed.
        """
        if not self.path.exists():
            return IndexData()
        try:
            raw = read_yaml(self.path, default={}, raise_on_error=True)
        except (OSError, yaml.YAMLError) as exc:
            raise ReferenceIndexUnreadable(
                f"Cannot read reference index {self.path}: {exc}", context={"path": str(self.path)}
            ) from exc
        if not isinstance(raw, dict):
            raise ReferenceIndexUnreadable(
                f"Reference index {self.path} is not a mapping", context={"path": str(self.path)}
            )
        entries: List[IndexEntry] = []
        for item in raw.get("projects") or []:
            if not isinstance(item, dict) or not item.get("path"):
                raise ReferenceIndexUnreadable(
                    f"Malformed entry in reference index {self.path}: {item!r}",
                    context={"path": str(self.path)},
                )
            entries.append(
                IndexEntry(
                    path=str(item["path"]),
                    packs=sorted(str(p) for p in item.get("packs") or []),
                    last_synced=str(item.get("lastSynced") or ""),
                )
            )
        return IndexData(index_version=int(raw.get("indexVersion") or INDEX_VERSION), projects=entries)

    def save(self, data: IndexData) -> None:
        try:
            write_yaml(self.path, data.to_dict(), sort_keys=False)
        except OSError as exc:
            raise StatePersistenceFailure(
                f"Cannot write reference index {self.path}: {exc}", path=str(self.path)
            ) from exc

    # ---------- mutations (pure over IndexData) ----------

    @staticmethod
    def upsert(data: IndexData, scope_key: str, pack_ids: Iterable[str]) -> None:
        """Record the packs a scope uses; a scope with no packs is dropped."""
        packs = sorted(set(pack_ids))
        data.projects = [e for e in data.projects if e.path != scope_key]
        if packs:
            stamp = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
            data.projects.append(IndexEntry(path=scope_key, packs=packs, last_synced=stamp))

    @staticmethod
    def remove(data: IndexData, scope_key: str) -> None:
        data.projects = [e for e in data.projects if e.path != scope_key]

    @staticmethod
    def remove_pack(data: IndexData, pack_id: str) -> None:
        """Drop ``pack_id`` from every entry, pruning entries left empty."""
        for e in data.projects:
            e.packs = [p for p in e.packs if p != pack_id]
        data.projects = [e for e in data.projects if e.packs]

    @staticmethod
    def prune_stale(data: IndexData) -> List[str]:
        """Remove entries for project directories that no longer exist.

        The global sentinel is never pruned. Returns the pruned paths.
        """
        pruned: List[str] = []
        kept: List[IndexEntry] = []
        for e in data.projects:
            if e.path != GLOBAL_SENTINEL and not Path(e.path).exists():
                pruned.append(e.path)
            else:
                kept.append(e)
        data.projects = kept
        if pruned:
            logger.info("Pruned stale index entries: %s", ", ".join(pruned))
        return pruned


__all__ = ["GLOBAL_SENTINEL", "IndexData", "IndexEntry", "ReferenceIndex"]
