"""
packsync pack add command.

SUMMARY: Install an external pack from a git URL or a local directory
"""

from __future__ import annotations

import argparse
import shutil
import sys
from pathlib import Path

from packsync.cli import OutputFormatter, add_json_flag, get_registry_file, get_shell
from packsync.core.config import SyncConfig
from packsync.core.exceptions import InvalidConfiguration
from packsync.core.packs import RegistryEntry, builtin_packs, load_manifest
from packsync.core.sync import PackFetcher
from packsync.core.utils.io import acquire_process_lock

SUMMARY = "Install an external pack from a git URL or a local directory"


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    parser.add_argument("source", help="git URL or path to a directory containing pack.yaml")
    parser.add_argument("--ref", help="Branch or tag to check out (git sources only)")
    add_json_flag(parser)


def _is_local(source: str) -> bool:
    return Path(source).expanduser().is_dir()


def _checkout_name(url: str) -> str:
    name = url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name or "pack"


def _reject_builtin(pack_id: str) -> None:
    if pack_id in {p.id for p in builtin_packs()}:
        raise InvalidConfiguration(f"Pack id '{pack_id}' is reserved by a builtin pack", pack_id=pack_id)


def add_local(source: str, config: SyncConfig) -> RegistryEntry:
    path = Path(source).expanduser().resolve()
    pack = load_manifest(path)
    _reject_builtin(pack.id)
    entry = RegistryEntry(id=pack.id, source=str(path), path=path, local=True)
    get_registry_file(config).upsert(entry)
    return entry


def add_git(url: str, ref: str | None, config: SyncConfig) -> RegistryEntry:
    """Clone ``url``, then move the checkout to ``packs_dir/<manifest id>``."""
    fetcher = PackFetcher(get_shell(config), config.packs_dir)
    staged = fetcher.fetch(url, f".staging-{_checkout_name(url)}", ref)
    try:
        pack = load_manifest(staged.path)
        _reject_builtin(pack.id)
        target = fetcher.checkout_path(pack.id)
        fetcher.remove(target)
        shutil.move(str(staged.path), str(target))
    except Exception:
        fetcher.remove(staged.path)
        raise
    entry = RegistryEntry(id=pack.id, source=url, path=target, ref=ref, local=False, commit=staged.commit)
    get_registry_file(config).upsert(entry)
    return entry


def main(args: argparse.Namespace) -> int:
    out = OutputFormatter(json_mode=getattr(args, "json", False))
    try:
        config = SyncConfig()
        with acquire_process_lock(config.lock_path):
            if _is_local(args.source):
                if args.ref:
                    out.warning("--ref is ignored for local packs")
                entry = add_local(args.source, config)
            else:
                entry = add_git(args.source, args.ref, config)
    except Exception as exc:
        out.error(exc, error_code="pack_add_error")
        return 1

    if out.json_mode:
        out.json_output({"pack": entry.to_dict()})
    else:
        where = "local" if entry.local else (entry.commit or "")[:7]
        out.text(f"Added pack {entry.id} ({where}) from {entry.source}")
        out.text(f"Run 'packsync sync --pack {entry.id}' to configure it.")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    register_args(parser)
    sys.exit(main(parser.parse_args()))
