"""Persisted state: artifact records, per-scope state, reference index, lockfile."""
from __future__ import annotations

from .artifacts import ArtifactDiff, ArtifactRecord, McpServerRef, diff_records
from .index import GLOBAL_SENTINEL, IndexData, ReferenceIndex
from .lockfile import Lockfile
from .store import SyncState

__all__ = [
    "ArtifactDiff",
    "ArtifactRecord",
    "McpServerRef",
    "diff_records",
    "GLOBAL_SENTINEL",
    "IndexData",
    "ReferenceIndex",
    "Lockfile",
    "SyncState",
]
