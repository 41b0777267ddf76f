"""``sync --lock``, ``sync --update`` and ``pack update`` support."""
from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Iterable, List, Optional

from packsync.core.exceptions import InvalidConfiguration, PackFetchError
from packsync.core.packs.manifest import load_manifest
from packsync.core.packs.registry import RegistryFile
from packsync.core.state.lockfile import Lockfile

from .fetcher import PackFetcher

logger = logging.getLogger(__name__)

# Pin written for local packs, whose content is not commit-addressed.
LOCAL_PIN = "local"


def checkout_locked(lockfile: Lockfile, registry_file: RegistryFile, fetcher: PackFetcher) -> List[str]:
    """Check out every pinned pack at its locked commit.

    Local packs are skipped. Any failure aborts with the full list of packs
    that could not be pinned, so a locked sync never runs half-pinned.

    Raises:
        InvalidConfiguration: The lockfile does not exist.
        PackFetchError: One or more packs could not be checked out.
    """
    if not lockfile.exists:
        raise InvalidConfiguration(
            f"No lockfile found at {lockfile.path}. Run 'packsync sync' first to create one."
        )
    entries = {e.id: e for e in registry_file.load()}
    messages: List[str] = []
    failed: List[str] = []
    for pack_id, pin in sorted(lockfile.pins.items()):
        if pin == LOCAL_PIN:
            messages.append(f"{pack_id}: local pack (not pinned)")
            continue
        entry = entries.get(pack_id)
        if entry is None:
            logger.warning("Locked pack %s is not installed", pack_id)
            failed.append(pack_id)
            continue
        try:
            fetcher.checkout(entry.path, pin)
        except PackFetchError as exc:
            logger.warning("Locked checkout failed for %s: %s", pack_id, exc)
            failed.append(pack_id)
            continue
        messages.append(f"{pack_id}: checked out {pin[:7]}")

    if failed:
        raise PackFetchError(
            f"Failed to check out locked commits for: {', '.join(failed)}. "
            "Sync aborted to prevent inconsistent configuration."
        )
    return messages


def update_packs(
    registry_file: RegistryFile, fetcher: PackFetcher, pack_ids: Optional[Iterable[str]] = None
) -> List[str]:
    """Fetch the latest commit of git packs and record it in the registry.

    ``pack_ids`` limits the update to those packs; by default every installed
    pack is considered. A pack whose updated manifest no longer loads keeps
    its previous registry entry.

    Raises:
        InvalidConfiguration: A requested pack is not installed.
    """
    entries = registry_file.load()
    wanted = None if pack_ids is None else set(pack_ids)
    if wanted is not None:
        missing = sorted(wanted - {e.id for e in entries})
        if missing:
            raise InvalidConfiguration(
                f"Pack '{missing[0]}' is not installed", pack_id=missing[0], context={"missing": missing}
            )
    messages: List[str] = []
    updated = []
    for entry in entries:
        if wanted is not None and entry.id not in wanted:
            updated.append(entry)
            continue
        if entry.local:
            messages.append(f"{entry.id}: local pack (skipped)")
            updated.append(entry)
            continue
        try:
            result = fetcher.update(entry.path, entry.ref)
        except PackFetchError as exc:
            messages.append(f"{entry.id}: {exc}")
            updated.append(entry)
            continue
        if result is None:
            messages.append(f"{entry.id}: already up to date")
            updated.append(entry)
            continue
        try:
            load_manifest(entry.path, expected_id=entry.id)
        except InvalidConfiguration as exc:
            logger.warning("Updated pack %s has an invalid manifest: %s", entry.id, exc)
            messages.append(f"{entry.id}: updated but manifest is invalid: {exc}")
            updated.append(entry)
            continue
        messages.append(f"{entry.id}: updated ({result.commit[:7]})")
        updated.append(replace(entry, commit=result.commit))
    if entries:
        registry_file.save(updated)
    return messages


def write_lockfile(path: Path, registry_file: RegistryFile, pack_ids: Iterable[str]) -> List[str]:
    """Pin the configured external packs at their current commits.

    Builtin packs are never pinned. Returns warnings for packs whose commit
    moved away from the previous pin.
    """
    previous = Lockfile.load(path)
    entries = {e.id: e for e in registry_file.load()}
    lockfile = Lockfile(path)
    warnings: List[str] = []
    for pack_id in sorted(set(pack_ids)):
        entry = entries.get(pack_id)
        if entry is None:
            continue
        pin = LOCAL_PIN if entry.local else entry.commit
        if not pin:
            continue
        old = previous.get(pack_id)
        if old and old != pin:
            warnings.append(f"Pack '{pack_id}' is at {pin[:7]} but the lockfile expected {old[:7]}")
        lockfile.pin(pack_id, pin)

    if lockfile.pins or previous.exists:
        lockfile.save()
    return warnings


__all__ = ["LOCAL_PIN", "checkout_locked", "update_packs", "write_lockfile"]
