"""The set of packs available to a sync run.

``RegistryFile`` persists where each installed external pack lives
(``~/.packsync/registry.yaml``); ``PackRegistry`` is the loaded, immutable
view threaded into the sync engine. A pack whose manifest fails to load is
recorded in ``PackRegistry.errors`` and does not affect any other pack.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml

from packsync.core.exceptions import InvalidConfiguration, StatePersistenceFailure
from packsync.core.utils.io import read_yaml, write_yaml

from .builtin import builtin_packs
from .manifest import load_manifest
from .model import Pack

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryEntry:
    id: str
    source: str
    path: Path
    ref: Optional[str] = None
    local: bool = False
    commit: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "path": str(self.path),
            "local": self.local,
        }
        if self.ref:
            data["ref"] = self.ref
        if self.commit:
            data["commit"] = self.commit
        return data

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "RegistryEntry":
        return cls(
            id=str(raw["id"]),
            source=str(raw.get("source") or raw["path"]),
            path=Path(str(raw["path"])).expanduser(),
            ref=raw.get("ref") or None,
            local=bool(raw.get("local", False)),
            commit=raw.get("commit") or None,
        )


class RegistryFile:
    """YAML list of installed external packs."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> List[RegistryEntry]:
        try:
            data = read_yaml(self.path, default={}, raise_on_error=True) if self.path.exists() else {}
        except (OSError, yaml.YAMLError) as exc:
            raise InvalidConfiguration(f"Cannot read pack registry {self.path}: {exc}") from exc
        entries: List[RegistryEntry] = []
        for raw in (data or {}).get("packs") or []:
            if not isinstance(raw, dict) or "id" not in raw or "path" not in raw:
                logger.warning("Skipping malformed registry entry in %s: %r", self.path, raw)
                continue
            entries.append(RegistryEntry.from_dict(raw))
        return entries

    def save(self, entries: Iterable[RegistryEntry]) -> None:
        payload = {"packs": [e.to_dict() for e in sorted(entries, key=lambda e: e.id)]}
        try:
            write_yaml(self.path, payload, sort_keys=False)
        except OSError as exc:
            raise StatePersistenceFailure(
                f"Cannot write pack registry: {exc}", path=str(self.path)
            ) from exc

    def get(self, pack_id: str) -> Optional[RegistryEntry]:
        for entry in self.load():
            if entry.id == pack_id:
                return entry
        return None

    def upsert(self, entry: RegistryEntry) -> None:
        entries = [e for e in self.load() if e.id != entry.id]
        entries.append(entry)
        self.save(entries)

    def remove(self, pack_id: str) -> bool:
        entries = self.load()
        kept = [e for e in entries if e.id != pack_id]
        if len(kept) == len(entries):
            return False
        self.save(kept)
        return True


@dataclass(frozen=True)
class PackRegistry:
    packs: Dict[str, Pack] = field(default_factory=dict)
    errors: Dict[str, InvalidConfiguration] = field(default_factory=dict)
    entries: Dict[str, RegistryEntry] = field(default_factory=dict)

    @classmethod
    def of(cls, packs: Iterable[Pack]) -> "PackRegistry":
        return cls(packs={p.id: p for p in packs})

    def get(self, pack_id: str) -> Optional[Pack]:
        return self.packs.get(pack_id)

    @property
    def ids(self) -> List[str]:
        return sorted(self.packs)


def load_registry(registry_file: RegistryFile, *, include_builtin: bool = True) -> PackRegistry:
    """Load builtin packs plus every pack listed in ``registry_file``."""
    packs: Dict[str, Pack] = {}
    errors: Dict[str, InvalidConfiguration] = {}
    entries: Dict[str, RegistryEntry] = {}

    if include_builtin:
        for pack in builtin_packs():
            packs[pack.id] = pack

    for entry in registry_file.load():
        entries[entry.id] = entry
        if entry.id in packs:
            errors[entry.id] = InvalidConfiguration(
                f"Pack id '{entry.id}' is reserved by a builtin pack", pack_id=entry.id
            )
            continue
        try:
            packs[entry.id] = load_manifest(entry.path, expected_id=entry.id)
        except InvalidConfiguration as exc:
            logger.warning("Pack %s failed to load: %s", entry.id, exc)
            errors[entry.id] = exc

    return PackRegistry(packs=packs, errors=errors, entries=entries)


__all__ = ["RegistryEntry", "RegistryFile", "PackRegistry", "load_registry"]
