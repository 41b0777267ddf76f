"""Typed view of a Claude ``settings.json`` document.

``hooks`` and ``enabledPlugins`` get structured access; every other
top-level key lives in ``extra`` and round-trips unchanged. Key paths use
dot notation with a single split: ``env.FOO``, ``permissions.defaultMode``,
``enabledPlugins.name@market``, ``alwaysThinkingEnabled``.
"""
from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from packsync.core.exceptions import StatePersistenceFailure
from packsync.core.utils.io import read_json, write_json_atomic

HOOKS_KEY = "hooks"
PLUGINS_KEY = "enabledPlugins"

_MISSING = object()


def split_key_path(key_path: str) -> Tuple[str, Optional[str]]:
    head, _, tail = key_path.partition(".")
    return head, (tail or None)


def fragment_key_paths(fragment: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a settings fragment into ``{key_path: value}``.

    Objects are flattened one level (``{"env": {"A": "1"}}`` -> ``env.A``);
    scalars, arrays and empty objects stay whole. ``hooks`` is excluded since
    hook entries are tracked by command.
    """
    paths: Dict[str, Any] = {}
    for key, value in fragment.items():
        if key == HOOKS_KEY:
            continue
        if isinstance(value, dict) and value:
            for sub, sub_value in value.items():
                paths[f"{key}.{sub}"] = sub_value
        else:
            paths[key] = value
    return paths


def fragment_hooks(fragment: Dict[str, Any]) -> List[Tuple[str, str]]:
    """``(event, command)`` pairs declared under a fragment's ``hooks`` key."""
    pairs: List[Tuple[str, str]] = []
    for event, groups in (fragment.get(HOOKS_KEY) or {}).items():
        for group in groups or []:
            for entry in (group or {}).get("hooks") or []:
                command = (entry or {}).get("command")
                if command:
                    pairs.append((event, command))
    return pairs


class Settings:
    def __init__(
        self,
        hooks: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        enabled_plugins: Optional[Dict[str, bool]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.hooks: Dict[str, List[Dict[str, Any]]] = hooks or {}
        self.enabled_plugins: Dict[str, bool] = enabled_plugins or {}
        self.extra: Dict[str, Any] = extra or {}

    # ---------- hooks ----------

    @staticmethod
    def _group_commands(group: Dict[str, Any]) -> List[str]:
        return [e.get("command") for e in group.get("hooks") or [] if isinstance(e, dict) and e.get("command")]

    def hook_commands(self, event: Optional[str] = None) -> List[str]:
        events = [event] if event else list(self.hooks)
        out: List[str] = []
        for ev in events:
            for group in self.hooks.get(ev, []):
                out.extend(self._group_commands(group))
        return out

    def add_hook(self, event: str, command: str) -> bool:
        """Add a command hook for ``event``; duplicates (by command) are skipped."""
        groups = self.hooks.setdefault(event, [])
        if any(command in self._group_commands(g) for g in groups):
            return False
        groups.append({"hooks": [{"type": "command", "command": command}]})
        return True

    def remove_hook(self, command: str) -> bool:
        """Remove every hook entry running ``command``; prune emptied groups and events."""
        removed = False
        for event in list(self.hooks):
            kept_groups = []
            for group in self.hooks[event]:
                entries = group.get("hooks") or []
                kept = [e for e in entries if not (isinstance(e, dict) and e.get("command") == command)]
                if len(kept) != len(entries):
                    removed = True
                    if not kept:
                        continue
                    group = {**group, "hooks": kept}
                kept_groups.append(group)
            if kept_groups:
                self.hooks[event] = kept_groups
            else:
                del self.hooks[event]
        return removed

    # ---------- key paths ----------

    def _container(self, head: str) -> Any:
        if head == PLUGINS_KEY:
            return self.enabled_plugins
        if head == HOOKS_KEY:
            return self.hooks
        return self.extra.get(head, _MISSING)

    def has(self, key_path: str) -> bool:
        return self.get(key_path, _MISSING) is not _MISSING

    def get(self, key_path: str, default: Any = None) -> Any:
        head, tail = split_key_path(key_path)
        container = self._container(head)
        if tail is None:
            if head in (PLUGINS_KEY, HOOKS_KEY):
                return container if container else default
            return default if container is _MISSING else container
        if isinstance(container, dict) and tail in container:
            return container[tail]
        return default

    def set(self, key_path: str, value: Any) -> None:
        head, tail = split_key_path(key_path)
        if head == PLUGINS_KEY:
            if tail is None:
                self.enabled_plugins = dict(value or {})
            else:
                self.enabled_plugins[tail] = bool(value)
            return
        if tail is None:
            self.extra[head] = copy.deepcopy(value)
            return
        parent = self.extra.get(head)
        if not isinstance(parent, dict):
            parent = {}
            self.extra[head] = parent
        parent[tail] = copy.deepcopy(value)

    def remove_key(self, key_path: str) -> bool:
        """Remove a key path; an object emptied by the removal is dropped too."""
        head, tail = split_key_path(key_path)
        if head == PLUGINS_KEY:
            if tail is None:
                had = bool(self.enabled_plugins)
                self.enabled_plugins = {}
                return had
            return self.enabled_plugins.pop(tail, _MISSING) is not _MISSING
        if head == HOOKS_KEY:
            if tail is None:
                had = bool(self.hooks)
                self.hooks = {}
                return had
            return self.hooks.pop(tail, _MISSING) is not _MISSING
        if tail is None:
            return self.extra.pop(head, _MISSING) is not _MISSING
        parent = self.extra.get(head)
        if not isinstance(parent, dict) or tail not in parent:
            return False
        del parent[tail]
        if not parent:
            del self.extra[head]
        return True

    # ---------- serialization ----------

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Settings":
        hooks = raw.get(HOOKS_KEY)
        plugins = raw.get(PLUGINS_KEY)
        extra = {k: v for k, v in raw.items() if k not in (HOOKS_KEY, PLUGINS_KEY)}
        if hooks is not None and not isinstance(hooks, dict):
            raise ValueError("'hooks' must be an object")
        if plugins is not None and not isinstance(plugins, dict):
            raise ValueError("'enabledPlugins' must be an object")
        return cls(
            hooks=copy.deepcopy(hooks) if hooks else {},
            enabled_plugins=dict(plugins) if plugins else {},
            extra=copy.deepcopy(extra),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = copy.deepcopy(self.extra)
        if self.hooks:
            data[HOOKS_KEY] = copy.deepcopy(self.hooks)
        if self.enabled_plugins:
            data[PLUGINS_KEY] = dict(self.enabled_plugins)
        return data

    @classmethod
    def load(cls, path: Path) -> "Settings":
        """Load a settings file; a missing file yields empty settings.

        Raises:
            ValueError: The file is not a JSON object with well-formed typed keys.
        """
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            raw = read_json(path)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{path.name} is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise ValueError(f"{path.name} must contain a JSON object")
        return cls.from_dict(raw)

    def save(self, path: Path, **json_opts: Any) -> None:
        try:
            write_json_atomic(path, self.to_dict(), **json_opts)
        except OSError as exc:
            raise StatePersistenceFailure(f"Cannot write {path}: {exc}", path=str(path)) from exc


__all__ = [
    "HOOKS_KEY",
    "PLUGINS_KEY",
    "Settings",
    "fragment_hooks",
    "fragment_key_paths",
    "split_key_path",
]
