"""Pinned pack refs (``packsync.lock.yaml``)."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Mapping

import yaml

from packsync.core.exceptions import InvalidConfiguration, StatePersistenceFailure
from packsync.core.utils.io import read_yaml, write_yaml

_COMMIT_RE = re.compile(r"^[0-9a-f]{7,64}$")


def is_commit_sha(value: str) -> bool:
    return bool(_COMMIT_RE.match(value))


class Lockfile:
    """``{pack_id: pinned_ref}`` for the packs a scope uses."""

    def __init__(self, path: Path, pins: Mapping[str, str] | None = None) -> None:
        self.path = Path(path)
        self.pins: Dict[str, str] = dict(pins or {})

    @property
    def exists(self) -> bool:
        return self.path.exists()

    @classmethod
    def load(cls, path: Path) -> "Lockfile":
        path = Path(path)
        if not path.exists():
            return cls(path)
        try:
            raw = read_yaml(path, default={}, raise_on_error=True)
        except (OSError, yaml.YAMLError) as exc:
            raise InvalidConfiguration(f"Cannot read lockfile {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise InvalidConfiguration(f"Lockfile {path} must be a mapping of pack id to ref")
        return cls(path, {str(k): str(v) for k, v in raw.items()})

    def pin(self, pack_id: str, ref: str) -> None:
        self.pins[pack_id] = ref

    def get(self, pack_id: str) -> str | None:
        return self.pins.get(pack_id)

    def save(self) -> None:
        try:
            write_yaml(self.path, dict(sorted(self.pins.items())))
        except OSError as exc:
            raise StatePersistenceFailure(f"Cannot write lockfile {self.path}: {exc}", path=str(self.path)) from exc


__all__ = ["Lockfile", "is_commit_sha"]
