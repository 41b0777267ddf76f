"""Pack and component data structures.

Every pack, whether compiled into packsync or loaded from a ``pack.yaml``
checkout, is normalized into the same :class:`Pack` value at load time. The
``source`` tag is informational only; nothing downstream branches on it.
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

OFFICIAL_MARKETPLACE = "claude-plugins-official"
OFFICIAL_MARKETPLACE_REPO = "anthropics/claude-plugins-official"


class ComponentType(str, Enum):
    REMOTE_SERVICE = "remote-service"
    PLUGIN = "plugin"
    PACKAGE = "package"
    FILE_COPY = "file-copy"
    SETTINGS_FRAGMENT = "settings-fragment"
    IGNORE_ENTRIES = "ignore-entries"
    SHELL_ACTION = "shell-action"


class CopyFileType(str, Enum):
    SKILL = "skill"
    HOOK = "hook"
    COMMAND = "command"
    GENERIC = "generic"

    @property
    def subdirectory(self) -> str:
        """Directory under the scope's ``.claude`` dir that receives the file."""
        return {
            CopyFileType.SKILL: "skills",
            CopyFileType.HOOK: "hooks",
            CopyFileType.COMMAND: "commands",
            CopyFileType.GENERIC: "",
        }[self]


# ---------------------------------------------------------------------------
# Install actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class McpServerAction:
    name: str
    command: str = ""
    args: Tuple[str, ...] = ()
    env: Tuple[Tuple[str, str], ...] = ()
    url: str = ""
    scope: Optional[str] = None

    @property
    def is_http(self) -> bool:
        return bool(self.url) or self.command == "http"

    def resolved_scope(self, *, global_scope: bool) -> str:
        """MCP registration scope: ``user`` for the global scope, else declared or ``local``."""
        if global_scope:
            return "user"
        return self.scope or "local"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "command": self.command,
            "args": list(self.args),
            "env": dict(self.env),
            "url": self.url,
            "scope": self.scope,
        }


@dataclass(frozen=True)
class PluginAction:
    name: str

    @property
    def bare_name(self) -> str:
        return self.name.split("@", 1)[0]

    @property
    def marketplace_repo(self) -> str:
        """Marketplace repo for ``name@repo`` refs; bare names use the official one."""
        if "@" not in self.name:
            return OFFICIAL_MARKETPLACE_REPO
        token = self.name.split("@", 1)[1]
        if token == OFFICIAL_MARKETPLACE:
            return OFFICIAL_MARKETPLACE_REPO
        return token


@dataclass(frozen=True)
class PackageAction:
    name: str


@dataclass(frozen=True)
class CopyFileAction:
    source: Path
    destination: str
    file_type: CopyFileType = CopyFileType.GENERIC


@dataclass(frozen=True)
class SettingsFragmentAction:
    fragment: Dict[str, Any] = field(default_factory=dict, hash=False, compare=True)


@dataclass(frozen=True)
class IgnoreEntriesAction:
    entries: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ShellAction:
    command: str


InstallAction = Union[
    McpServerAction,
    PluginAction,
    PackageAction,
    CopyFileAction,
    SettingsFragmentAction,
    IgnoreEntriesAction,
    ShellAction,
]


# ---------------------------------------------------------------------------
# Components, templates, prompts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Component:
    id: str
    type: ComponentType
    action: InstallAction
    display_name: str = ""
    description: str = ""
    dependencies: Tuple[str, ...] = ()
    is_required: bool = False
    hook_event: Optional[str] = None

    @property
    def label(self) -> str:
        return self.display_name or self.id


@dataclass(frozen=True)
class TemplateContribution:
    section_id: str
    version: str
    content: str
    placeholders: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PromptDefinition:
    key: str
    label: str = ""
    default: Optional[str] = None


# ---------------------------------------------------------------------------
# Pack
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompiledSource:
    """Pack defined in Python and shipped with packsync."""

    kind: str = "compiled"


@dataclass(frozen=True)
class ExternalSource:
    """Pack loaded from a ``pack.yaml`` manifest on disk."""

    manifest_path: Path
    kind: str = "external"

    @property
    def root(self) -> Path:
        return self.manifest_path.parent


PackSource = Union[CompiledSource, ExternalSource]


@dataclass(frozen=True)
class Pack:
    id: str
    display_name: str
    version: str
    source: PackSource = field(default_factory=CompiledSource)
    description: str = ""
    components: Tuple[Component, ...] = ()
    templates: Tuple[TemplateContribution, ...] = ()
    prompts: Tuple[PromptDefinition, ...] = ()

    def component(self, component_id: str) -> Optional[Component]:
        for c in self.components:
            if c.id == component_id:
                return c
        return None

    @property
    def component_ids(self) -> List[str]:
        return [c.id for c in self.components]


def fingerprint(payload: Any) -> str:
    """Stable sha256 of a JSON-serializable payload (or raw bytes)."""
    if isinstance(payload, bytes):
        data = payload
    else:
        data = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")
    return hashlib.sha256(data).hexdigest()


__all__ = [
    "ComponentType",
    "CopyFileType",
    "McpServerAction",
    "PluginAction",
    "PackageAction",
    "CopyFileAction",
    "SettingsFragmentAction",
    "IgnoreEntriesAction",
    "ShellAction",
    "InstallAction",
    "Component",
    "TemplateContribution",
    "PromptDefinition",
    "CompiledSource",
    "ExternalSource",
    "PackSource",
    "Pack",
    "fingerprint",
    "OFFICIAL_MARKETPLACE",
    "OFFICIAL_MARKETPLACE_REPO",
]
