"""Convergence of a scope to its pack selection."""
from __future__ import annotations

from .engine import ConvergenceEngine, SyncRequest
from .executor import ComponentExecutor
from .fetcher import FetchResult, PackFetcher
from .ignore import IgnoreFile
from .refcount import ResourceRefCounter
from .report import Operation, SyncPlan, SyncReport
from .scope import SyncScope

__all__ = [
    "ConvergenceEngine",
    "SyncRequest",
    "ComponentExecutor",
    "FetchResult",
    "PackFetcher",
    "IgnoreFile",
    "ResourceRefCounter",
    "Operation",
    "SyncPlan",
    "SyncReport",
    "SyncScope",
]
