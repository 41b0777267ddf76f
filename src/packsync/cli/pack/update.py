"""
packsync pack update command.

SUMMARY: Fetch the latest commit of one or every external pack
"""

from __future__ import annotations

import argparse
import sys

from packsync.cli import OutputFormatter, add_json_flag, get_registry_file, get_shell
from packsync.core.config import SyncConfig
from packsync.core.sync import PackFetcher
from packsync.core.sync.lockfile_ops import update_packs
from packsync.core.utils.io import acquire_process_lock

SUMMARY = "Fetch the latest commit of one or every external pack"


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    parser.add_argument("pack_id", nargs="?", help="Pack to update (default: all installed packs)")
    add_json_flag(parser)


def main(args: argparse.Namespace) -> int:
    out = OutputFormatter(json_mode=getattr(args, "json", False))
    pack_ids = [args.pack_id] if args.pack_id else None
    try:
        config = SyncConfig()
        registry_file = get_registry_file(config)
        with acquire_process_lock(config.lock_path):
            messages = update_packs(registry_file, PackFetcher(get_shell(config), config.packs_dir), pack_ids)
    except Exception as exc:
        out.error(exc, error_code="pack_update_error")
        return 1

    if out.json_mode:
        out.json_output({"messages": messages})
    elif not messages:
        out.text("No external packs installed.")
    else:
        for message in messages:
            out.text(message)
        out.text("Run 'packsync sync' in each project to apply the changes.")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    register_args(parser)
    sys.exit(main(parser.parse_args()))
