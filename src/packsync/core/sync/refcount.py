"""Reference check before removing shared global resources.

Packages and plugins are installed machine-wide, so removing one because a
single scope stopped using it could break every other scope. Before such a
removal the counter looks for any other consumer:

1. another pack recorded in the global state that owns the resource
2. any other scope in the reference index using a pack whose current manifest
   declares the resource

Whenever the answer cannot be determined (unreadable index or global state,
a pack that no longer loads) the resource is treated as still needed.
"""
from __future__ import annotations

import logging
from pathlib import Path

from packsync.core.exceptions import ReferenceIndexUnreadable, StatePersistenceFailure
from packsync.core.packs.model import PackageAction, PluginAction
from packsync.core.packs.registry import PackRegistry
from packsync.core.state.index import GLOBAL_SENTINEL, ReferenceIndex
from packsync.core.state.store import SyncState

logger = logging.getLogger(__name__)


def _same_resource(kind: str, a: str, b: str) -> bool:
    if kind == "plugins":
        return PluginAction(a).bare_name == PluginAction(b).bare_name
    return a == b


class ResourceRefCounter:
    def __init__(self, registry: PackRegistry, *, index: ReferenceIndex, global_state_file: Path) -> None:
        self.registry = registry
        self.index = index
        self.global_state_file = Path(global_state_file)

    def is_still_needed(self, kind: str, name: str, *, scope_key: str, pack_id: str) -> bool:
        """True when a consumer other than (``scope_key``, ``pack_id``) may need the resource.

        ``kind`` is ``"packages"`` or ``"plugins"``.
        """
        return self._owned_globally(kind, name, scope_key=scope_key, pack_id=pack_id) or self._declared_elsewhere(
            kind, name, scope_key=scope_key, pack_id=pack_id
        )

    def _owned_globally(self, kind: str, name: str, *, scope_key: str, pack_id: str) -> bool:
        try:
            state = SyncState.load(self.global_state_file)
        except StatePersistenceFailure as exc:
            logger.warning("Keeping %s '%s': global state unreadable (%s)", kind, name, exc)
            return True

        for other in state.configured_packs:
            if scope_key == GLOBAL_SENTINEL and other == pack_id:
                continue
            record = state.artifacts(other)
            if record is None:
                continue
            if any(_same_resource(kind, name, owned) for owned in record.items(kind)):
                logger.debug("%s '%s' still owned by global pack %s", kind, name, other)
                return True
        return False

    def _declared_elsewhere(self, kind: str, name: str, *, scope_key: str, pack_id: str) -> bool:
        try:
            data = self.index.load()
        except ReferenceIndexUnreadable as exc:
            logger.warning("Keeping %s '%s': %s", kind, name, exc)
            return True

        pruned = ReferenceIndex.prune_stale(data)
        if pruned:
            try:
                self.index.save(data)
            except StatePersistenceFailure as exc:
                logger.warning("Could not persist pruned index entries: %s", exc)

        for entry in data.projects:
            if entry.path == scope_key:
                continue
            for other in entry.packs:
                if self._pack_declares(other, kind, name):
                    logger.debug("%s '%s' still needed by %s (pack %s)", kind, name, entry.path, other)
                    return True
        return False

    def _pack_declares(self, pack_id: str, kind: str, name: str) -> bool:
        pack = self.registry.get(pack_id)
        if pack is None:
            logger.info("Pack '%s' not loadable; assuming it still needs %s '%s'", pack_id, kind, name)
            return True
        action_type = PluginAction if kind == "plugins" else PackageAction
        return any(
            isinstance(c.action, action_type) and _same_resource(kind, name, c.action.name)
            for c in pack.components
        )


__all__ = ["ResourceRefCounter"]
