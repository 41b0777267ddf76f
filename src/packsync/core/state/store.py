"""Persisted convergence state for one scope."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from packsync import __version__
from packsync.core.exceptions import StatePersistenceFailure
from packsync.core.utils.io import read_json, write_json_atomic

from .artifacts import ArtifactRecord

logger = logging.getLogger(__name__)


@dataclass
class SyncState:
    """What packsync last converged a scope to.

    JSON layout::

        {"configuredPacks": [...], "packArtifacts": {id: record},
         "excludedComponents": {id: [...]}, "resolvedValues": {...},
         "toolVersion": "...", "configuredAt": "..."}
    """

    configured_packs: List[str] = field(default_factory=list)
    pack_artifacts: Dict[str, ArtifactRecord] = field(default_factory=dict)
    excluded_components: Dict[str, List[str]] = field(default_factory=dict)
    resolved_values: Dict[str, str] = field(default_factory=dict)
    tool_version: Optional[str] = None
    configured_at: Optional[str] = None

    # ---------- queries ----------

    def artifacts(self, pack_id: str) -> Optional[ArtifactRecord]:
        return self.pack_artifacts.get(pack_id)

    def excluded(self, pack_id: str) -> List[str]:
        return list(self.excluded_components.get(pack_id, []))

    # ---------- mutation ----------

    def record_pack(self, pack_id: str) -> None:
        if pack_id not in self.configured_packs:
            self.configured_packs.append(pack_id)
            self.configured_packs.sort()

    def set_artifacts(self, pack_id: str, record: ArtifactRecord) -> None:
        self.pack_artifacts[pack_id] = record

    def set_excluded(self, pack_id: str, component_ids: Iterable[str]) -> None:
        ids = sorted(set(component_ids))
        if ids:
            self.excluded_components[pack_id] = ids
        else:
            self.excluded_components.pop(pack_id, None)

    def remove_pack(self, pack_id: str) -> None:
        if pack_id in self.configured_packs:
            self.configured_packs.remove(pack_id)
        self.pack_artifacts.pop(pack_id, None)
        self.excluded_components.pop(pack_id, None)

    def normalize(self) -> None:
        """Make ``configured_packs`` and ``pack_artifacts`` keys agree."""
        for pack_id in list(self.pack_artifacts):
            if pack_id not in self.configured_packs:
                del self.pack_artifacts[pack_id]
        for pack_id in self.configured_packs:
            self.pack_artifacts.setdefault(pack_id, ArtifactRecord())
        for pack_id in list(self.excluded_components):
            if pack_id not in self.configured_packs:
                del self.excluded_components[pack_id]
        self.configured_packs = sorted(set(self.configured_packs))

    # ---------- serialization ----------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "configuredPacks": list(self.configured_packs),
            "packArtifacts": {pid: rec.to_dict() for pid, rec in sorted(self.pack_artifacts.items())},
            "excludedComponents": {pid: list(ids) for pid, ids in sorted(self.excluded_components.items())},
            "resolvedValues": dict(sorted(self.resolved_values.items())),
            "toolVersion": self.tool_version,
            "configuredAt": self.configured_at,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SyncState":
        artifacts = {
            str(pid): ArtifactRecord.from_dict(rec)
            for pid, rec in (raw.get("packArtifacts") or {}).items()
            if isinstance(rec, dict)
        }
        return cls(
            configured_packs=sorted(str(p) for p in raw.get("configuredPacks") or []),
            pack_artifacts=artifacts,
            excluded_components={
                str(pid): [str(c) for c in ids]
                for pid, ids in (raw.get("excludedComponents") or {}).items()
            },
            resolved_values={str(k): str(v) for k, v in (raw.get("resolvedValues") or {}).items()},
            tool_version=raw.get("toolVersion"),
            configured_at=raw.get("configuredAt"),
        )

    @classmethod
    def load(cls, path: Path) -> "SyncState":
        """Load state from ``path``; a missing file is an empty state.

        Raises:
            StatePersistenceFailure: The file exists but cannot be parsed.
        """
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            raw = read_json(path)
        except (OSError, json.JSONDecodeError) as exc:
            raise StatePersistenceFailure(f"Cannot read state file {path}: {exc}", path=str(path)) from exc
        if not isinstance(raw, dict):
            raise StatePersistenceFailure(f"State file {path} is not a JSON object", path=str(path))
        return cls.from_dict(raw)

    def save(self, path: Path, **json_opts: Any) -> None:
        """Atomically persist the state. The write is the run's commit point."""
        self.normalize()
        self.tool_version = __version__
        self.configured_at = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
        try:
            write_json_atomic(path, self.to_dict(), **json_opts)
        except OSError as exc:
            raise StatePersistenceFailure(f"Cannot write state file {path}: {exc}", path=str(path)) from exc
        logger.debug("Saved state %s (%d packs)", path, len(self.configured_packs))


__all__ = ["SyncState"]
