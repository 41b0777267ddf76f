"""Per (scope, pack) artifact ledger and the field-by-field diff between two.

Every side effect a pack has on a scope is recorded in an
:class:`ArtifactRecord`. The sync engine diffs the stored record against the
record it would produce now and applies only the delta.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Tuple


@dataclass(frozen=True, order=True)
class McpServerRef:
    name: str
    scope: str = "local"

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "scope": self.scope}


# Attribute name -> (JSON key, artifact key prefix)
ARTIFACT_KINDS: Dict[str, Tuple[str, str]] = {
    "mcp_servers": ("mcpServers", "mcp"),
    "files": ("files", "file"),
    "template_sections": ("templateSections", "section"),
    "hook_commands": ("hookCommands", "hook"),
    "settings_keys": ("settingsKeys", "settings"),
    "packages": ("packages", "package"),
    "plugins": ("plugins", "plugin"),
    "ignore_entries": ("ignoreEntries", "ignore"),
}

# Kinds that several packs may legitimately need at once. A duplicate claim
# is folded into the first claimant instead of being reported as a conflict.
SHARED_KINDS = frozenset({"packages", "plugins", "ignore_entries"})

# Kinds whose removal needs a cross-scope reference check.
GLOBAL_RESOURCE_KINDS = frozenset({"packages", "plugins"})

SHELL_PREFIX = "shell"


def artifact_key(kind: str, item: Any) -> str:
    """Stable identity of one artifact, e.g. ``file:.claude/hooks/lint.sh``."""
    prefix = ARTIFACT_KINDS[kind][1]
    name = item.name if isinstance(item, McpServerRef) else str(item)
    return f"{prefix}:{name}"


def shell_key(component_id: str) -> str:
    return f"{SHELL_PREFIX}:{component_id}"


@dataclass
class ArtifactRecord:
    mcp_servers: List[McpServerRef] = field(default_factory=list)
    files: List[str] = field(default_factory=list)
    template_sections: List[str] = field(default_factory=list)
    hook_commands: List[str] = field(default_factory=list)
    settings_keys: List[str] = field(default_factory=list)
    packages: List[str] = field(default_factory=list)
    plugins: List[str] = field(default_factory=list)
    ignore_entries: List[str] = field(default_factory=list)
    checksums: Dict[str, str] = field(default_factory=dict)

    def items(self, kind: str) -> List[Any]:
        return list(getattr(self, kind))

    def iter_artifacts(self) -> Iterator[Tuple[str, Any]]:
        for kind in ARTIFACT_KINDS:
            for item in getattr(self, kind):
                yield kind, item

    def add(self, kind: str, item: Any) -> None:
        current = getattr(self, kind)
        if item not in current:
            current.append(item)

    def discard(self, kind: str, item: Any) -> None:
        current = getattr(self, kind)
        if item in current:
            current.remove(item)
        self.checksums.pop(artifact_key(kind, item), None)

    def copy(self) -> "ArtifactRecord":
        return ArtifactRecord(
            **{kind: list(getattr(self, kind)) for kind in ARTIFACT_KINDS},
            checksums=dict(self.checksums),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for kind, (json_key, _) in ARTIFACT_KINDS.items():
            values = getattr(self, kind)
            if kind == "mcp_servers":
                data[json_key] = [ref.to_dict() for ref in values]
            else:
                data[json_key] = list(values)
        data["checksums"] = dict(sorted(self.checksums.items()))
        return data

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ArtifactRecord":
        kwargs: Dict[str, Any] = {}
        for kind, (json_key, _) in ARTIFACT_KINDS.items():
            values = raw.get(json_key) or []
            if kind == "mcp_servers":
                kwargs[kind] = [
                    McpServerRef(name=str(v["name"]), scope=str(v.get("scope") or "local"))
                    for v in values
                    if isinstance(v, Mapping) and v.get("name")
                ]
            else:
                kwargs[kind] = [str(v) for v in values]
        checksums = raw.get("checksums") or {}
        kwargs["checksums"] = {str(k): str(v) for k, v in checksums.items()}
        return cls(**kwargs)


@dataclass
class KindDelta:
    added: List[Any] = field(default_factory=list)
    removed: List[Any] = field(default_factory=list)
    updated: List[Any] = field(default_factory=list)


@dataclass
class ArtifactDiff:
    deltas: Dict[str, KindDelta] = field(default_factory=dict)
    shell_runs: List[str] = field(default_factory=list)

    def delta(self, kind: str) -> KindDelta:
        return self.deltas.setdefault(kind, KindDelta())


def diff_records(old: ArtifactRecord | None, new: ArtifactRecord) -> ArtifactDiff:
    """Compare two records field by field.

    ``updated`` holds artifacts present in both whose checksum changed.
    ``shell_runs`` holds shell checksum keys that are new or changed; removed
    shell actions produce nothing because they cannot be undone.
    """
    previous = old or ArtifactRecord()
    diff = ArtifactDiff()
    for kind in ARTIFACT_KINDS:
        before = getattr(previous, kind)
        after = getattr(new, kind)
        delta = diff.delta(kind)
        delta.added = [i for i in after if i not in before]
        delta.removed = [i for i in before if i not in after]
        for item in after:
            if item in before:
                key = artifact_key(kind, item)
                if key in new.checksums and previous.checksums.get(key) != new.checksums[key]:
                    delta.updated.append(item)

    prefix = f"{SHELL_PREFIX}:"
    for key, digest in new.checksums.items():
        if key.startswith(prefix) and previous.checksums.get(key) != digest:
            diff.shell_runs.append(key)
    return diff


__all__ = [
    "ARTIFACT_KINDS",
    "SHARED_KINDS",
    "GLOBAL_RESOURCE_KINDS",
    "McpServerRef",
    "ArtifactRecord",
    "ArtifactDiff",
    "KindDelta",
    "artifact_key",
    "shell_key",
    "diff_records",
]
