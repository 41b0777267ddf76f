from __future__ import annotations

import argparse
import sys
from typing import List

from packsync.cli import OutputFormatter, add_json_flag, get_registry_file, get_shell
from packsync.core.config import SyncConfig
from packsync.core.exceptions import InvalidConfiguration
from packsync.core.state.index import ReferenceIndex
from packsync.core.sync import PackFetcher
from packsync.core.utils.io import acquire_process_lock

SUMMARY = "Uninstall an external pack that no scope uses any more"


def register_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("pack_id", help="Id of the installed pack")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Remove even if the reference index lists scopes using it",
    )
    add_json_flag(parser)


def _scopes_using(config: SyncConfig, pack_id: str) -> List[str]:
    """Scopes the reference index lists as using ``pack_id``.

    Raises:
        ReferenceIndexUnreadable: The index exists but cannot be parsed.
    """
    index = ReferenceIndex(config.index_path)
    data = index.load()
    ReferenceIndex.prune_stale(data)
    return [e.path for e in data.projects_with_pack(pack_id)]


def remove_pack(pack_id: str, config: SyncConfig, *, force: bool = False) -> bool:
    """Delete the pack's checkout and registry entry.

    Returns whether a checkout directory was deleted (local packs keep theirs).
    """
    registry_file = get_registry_file(config)
    entry = registry_file.get(pack_id)
    if entry is None:
        raise InvalidConfiguration(f"Pack '{pack_id}' is not installed", pack_id=pack_id)
    if not force:
        users = _scopes_using(config, pack_id)
        if users:
            raise InvalidConfiguration(
                f"Pack '{pack_id}' is still configured in: {', '.join(users)}. "
                "Remove it there with 'packsync sync' first, or pass --force.",
                pack_id=pack_id,
                context={"scopes": users},
            )

    deleted = False
    if not entry.local:
        fetcher = PackFetcher(get_shell(config), config.packs_dir)
        fetcher.remove(entry.path)
        deleted = True
    registry_file.remove(pack_id)
    return deleted


def main(args: argparse.Namespace) -> int:
    out = OutputFormatter(json_mode=getattr(args, "json", False))
    try:
        config = SyncConfig()
        with acquire_process_lock(config.lock_path):
            deleted = remove_pack(args.pack_id, config, force=args.force)
    except Exception as exc:
        out.error(exc, error_code="pack_remove_error")
        return 1

    if out.json_mode:
        out.json_output({"id": args.pack_id, "removed": True, "checkoutDeleted": deleted})
    else:
        out.text(f"Removed pack {args.pack_id}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    register_args(parser)
    sys.exit(main(parser.parse_args()))
