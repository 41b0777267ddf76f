"""Sync plans and run reports."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from packsync.core.exceptions import ArtifactApplyFailure, ArtifactConflictError, InvalidConfiguration
from packsync.core.packs.model import McpServerAction, Pack, TemplateContribution
from packsync.core.state.artifacts import ARTIFACT_KINDS, ArtifactDiff, ArtifactRecord, McpServerRef
from packsync.core.state.store import SyncState

from .scope import SyncScope

ADD = "add"
UPDATE = "update"
REMOVE = "remove"
RUN = "run"
REPAIR = "repair"
KEEP = "keep"


@dataclass(frozen=True)
class Operation:
    """One artifact-level change, planned or applied."""

    pack_id: str
    action: str
    kind: str
    item: str

    def describe(self) -> str:
        return f"{self.action} {self.kind} {self.item} ({self.pack_id})"

    def to_dict(self) -> Dict[str, str]:
        return {"pack": self.pack_id, "action": self.action, "kind": self.kind, "item": self.item}


def _label(item: Any) -> str:
    return item.name if isinstance(item, McpServerRef) else str(item)


@dataclass
class PackPayload:
    """Concrete content behind a desired record's artifact names."""

    mcp_servers: Dict[str, McpServerAction] = field(default_factory=dict)
    files: Dict[str, Tuple[bytes, bool]] = field(default_factory=dict)
    hook_events: Dict[str, str] = field(default_factory=dict)
    settings: Dict[str, Any] = field(default_factory=dict)
    shell: Dict[str, str] = field(default_factory=dict)
    templates: Dict[str, TemplateContribution] = field(default_factory=dict)


@dataclass
class PackPlan:
    pack_id: str
    action: str
    previous: Optional[ArtifactRecord]
    desired: ArtifactRecord
    diff: ArtifactDiff
    pack: Optional[Pack] = None
    payload: PackPayload = field(default_factory=PackPayload)
    excluded: List[str] = field(default_factory=list)
    added_dependencies: List[str] = field(default_factory=list)
    failures: List[ArtifactApplyFailure] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        """Some component could not be planned; removals are held back."""
        return bool(self.failures)

    def operations(self) -> List[Operation]:
        ops: List[Operation] = []
        for kind in ARTIFACT_KINDS:
            delta = self.diff.delta(kind)
            if not self.partial:
                ops.extend(Operation(self.pack_id, REMOVE, kind, _label(i)) for i in delta.removed)
            ops.extend(Operation(self.pack_id, ADD, kind, _label(i)) for i in delta.added)
            ops.extend(Operation(self.pack_id, UPDATE, kind, _label(i)) for i in delta.updated)
        ops.extend(Operation(self.pack_id, RUN, "shell", key.split(":", 1)[1]) for key in self.diff.shell_runs)
        return ops


@dataclass
class SyncPlan:
    scope: SyncScope
    state: SyncState
    packs: List[PackPlan] = field(default_factory=list)
    removals: List[PackPlan] = field(default_factory=list)
    held: List[str] = field(default_factory=list)
    values: Dict[str, str] = field(default_factory=dict)
    errors: List[InvalidConfiguration] = field(default_factory=list)
    conflicts: List[ArtifactConflictError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def desired_ids(self) -> List[str]:
        return [p.pack_id for p in self.packs]

    def operations(self) -> List[Operation]:
        ops: List[Operation] = []
        for pp in self.removals:
            ops.extend(pp.operations())
        for pp in self.packs:
            ops.extend(pp.operations())
        return ops


@dataclass
class SyncReport:
    scope: str
    dry_run: bool = False
    operations: List[Operation] = field(default_factory=list)
    failures: List[ArtifactApplyFailure] = field(default_factory=list)
    errors: List[InvalidConfiguration] = field(default_factory=list)
    conflicts: List[ArtifactConflictError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    configured_packs: List[str] = field(default_factory=list)

    @classmethod
    def from_plan(cls, plan: SyncPlan, *, dry_run: bool) -> "SyncReport":
        report = cls(
            scope=plan.scope.label,
            dry_run=dry_run,
            errors=list(plan.errors),
            conflicts=list(plan.conflicts),
            warnings=list(plan.warnings),
        )
        for pp in [*plan.removals, *plan.packs]:
            report.failures.extend(pp.failures)
        if dry_run:
            report.operations = plan.operations()
            report.configured_packs = sorted(plan.desired_ids + plan.held)
        return report

    def record(self, pack_id: str, action: str, kind: str, item: Any) -> None:
        self.operations.append(Operation(pack_id, action, kind, _label(item)))

    @property
    def changed(self) -> bool:
        return any(op.action != KEEP for op in self.operations)

    @property
    def succeeded(self) -> bool:
        """No pack-level error and no artifact failure (conflicts count as failures)."""
        return not (self.errors or self.failures or self.conflicts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope,
            "dryRun": self.dry_run,
            "configuredPacks": list(self.configured_packs),
            "operations": [op.to_dict() for op in self.operations],
            "failures": [f.to_json_error() for f in self.failures],
            "conflicts": [c.to_json_error() for c in self.conflicts],
            "errors": [e.to_json_error() for e in self.errors],
            "warnings": list(self.warnings),
        }


__all__ = [
    "ADD",
    "UPDATE",
    "REMOVE",
    "RUN",
    "REPAIR",
    "KEEP",
    "Operation",
    "PackPayload",
    "PackPlan",
    "SyncPlan",
    "SyncReport",
]
