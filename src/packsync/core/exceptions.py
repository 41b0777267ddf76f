from __future__ import annotations

from typing import Any, Dict, Mapping, Sequence


class PacksyncError(Exception):
    """Base exception for packsync."""

    context: Dict[str, Any]

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        if context is not None:
            # Store a shallow copy to avoid accidental mutation.
            self.context = dict(context)
        else:
            self.context = {}

    def to_json_error(self) -> Dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {
            "message": str(self),
            "code": self.__class__.__name__,
            "context": self.context,
        }


class InvalidConfiguration(PacksyncError, ValueError):
    """Raised for a malformed pack manifest or an unknown component dependency.

    Fatal for the pack being loaded only.
    """

    def __init__(
        self,
        message: str = "",
        *,
        pack_id: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        ctx = dict(context or {})
        if pack_id:
            ctx["pack_id"] = pack_id
        PacksyncError.__init__(self, message, context=ctx)
        ValueError.__init__(self, message)
        self.pack_id = pack_id


class DependencyCycleError(InvalidConfiguration):
    """Raised when a pack's component dependencies are not acyclic."""

    def __init__(self, cycle: Sequence[str], *, pack_id: str | None = None) -> None:
        self.cycle = list(cycle)
        path = " -> ".join([*self.cycle, self.cycle[0]]) if self.cycle else ""
        super().__init__(
            f"Circular component dependency: {path}",
            pack_id=pack_id,
            context={"cycle": self.cycle},
        )


class LockAcquisitionFailure(PacksyncError, RuntimeError):
    """Raised when another packsync process holds the process lock."""

    def __init__(self, lock_path: str) -> None:
        message = f"Another packsync instance is running (lock file: {lock_path})"
        PacksyncError.__init__(self, message, context={"lock_path": lock_path})
        RuntimeError.__init__(self, message)
        self.lock_path = lock_path


class ArtifactApplyFailure(PacksyncError):
    """A single artifact could not be applied or removed.

    Never unwinds a sync run: the engine records it in the report and moves on.
    """

    def __init__(
        self,
        message: str,
        *,
        pack_id: str | None = None,
        artifact: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        ctx = dict(context or {})
        if pack_id:
            ctx["pack_id"] = pack_id
        if artifact:
            ctx["artifact"] = artifact
        super().__init__(message, context=ctx)
        self.pack_id = pack_id
        self.artifact = artifact


class ArtifactConflictError(ArtifactApplyFailure):
    """Two packs in one scope claim the same concrete artifact."""


class StatePersistenceFailure(PacksyncError, OSError):
    """Raised when sync state or the reference index cannot be read back or written."""

    def __init__(self, message: str = "", *, path: str | None = None) -> None:
        ctx = {"path": path} if path else {}
        PacksyncError.__init__(self, message, context=ctx)
        OSError.__init__(self, message)
        self.path = path


class PackFetchError(PacksyncError, RuntimeError):
    """A git operation on a pack checkout failed."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        ctx = {"path": path} if path else {}
        PacksyncError.__init__(self, message, context=ctx)
        RuntimeError.__init__(self, message)
        self.path = path


class ReferenceIndexUnreadable(PacksyncError):
    """The cross-scope reference index (or a scope's state) could not be read.

    Callers degrade to treating shared resources as still needed.
    """


__all__ = [
    "PacksyncError",
    "InvalidConfiguration",
    "DependencyCycleError",
    "LockAcquisitionFailure",
    "ArtifactApplyFailure",
    "ArtifactConflictError",
    "StatePersistenceFailure",
    "PackFetchError",
    "ReferenceIndexUnreadable",
]
