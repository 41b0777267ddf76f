"""
packsync sync command.

SUMMARY: Converge a project (or the global scope) to its selected packs
"""

from __future__ import annotations

import argparse
import contextlib
from typing import Dict, List, Optional, Tuple

from packsync.cli import (
    OutputFormatter,
    add_dry_run_flag,
    add_scope_flags,
    get_pack_registry,
    get_registry_file,
    get_scope,
    get_shell,
    parse_assignments,
)
from packsync.core.config import SyncConfig
from packsync.core.exceptions import InvalidConfiguration
from packsync.core.packs import PackRegistry
from packsync.core.state.index import ReferenceIndex
from packsync.core.state.lockfile import Lockfile
from packsync.core.sync import (
    ComponentExecutor,
    ConvergenceEngine,
    PackFetcher,
    ResourceRefCounter,
    SyncReport,
    SyncRequest,
    SyncScope,
)
from packsync.core.sync.lockfile_ops import checkout_locked, update_packs, write_lockfile
from packsync.core.sync.report import KEEP
from packsync.core.utils.io import acquire_process_lock

SUMMARY = "Converge a project (or the global scope) to its selected packs"


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    parser.add_argument(
        "--pack",
        dest="packs",
        action="append",
        metavar="ID",
        help="Pack to configure (repeatable); replaces the current selection",
    )
    parser.add_argument(
        "--all",
        action="store_true",
        help="Configure every available pack",
    )
    parser.add_argument(
        "--customize",
        action="store_true",
        help="Re-select components: only --exclude'd components are left out",
    )
    parser.add_argument(
        "--exclude",
        dest="excludes",
        action="append",
        metavar="COMPONENT",
        help="Component id to leave out (repeatable, implies --customize)",
    )
    lock_group = parser.add_mutually_exclusive_group()
    lock_group.add_argument(
        "--lock",
        action="store_true",
        help="Check out the commits pinned in the lockfile before syncing",
    )
    lock_group.add_argument(
        "--update",
        action="store_true",
        help="Fetch the latest version of every external pack before syncing",
    )
    parser.add_argument(
        "--set",
        dest="assignments",
        action="append",
        metavar="KEY=VALUE",
        help="Template value override (repeatable)",
    )
    parser.add_argument(
        "--ignore-failures",
        action="store_true",
        help="Exit 0 even when some artifacts failed to apply",
    )
    add_dry_run_flag(parser)
    add_scope_flags(parser)


def _selected_packs(args: argparse.Namespace, registry: PackRegistry) -> Optional[List[str]]:
    if args.all:
        return registry.ids
    if args.packs:
        return list(dict.fromkeys(args.packs))
    return None


def _exclusions(
    args: argparse.Namespace, pack_ids: List[str]
) -> Optional[Dict[str, List[str]]]:
    """Map ``--exclude`` component ids onto the packs that own them.

    Component ids are qualified (``pack.component``); an unqualified id is
    accepted when exactly one pack is selected.
    """
    if not (args.customize or args.excludes):
        return None
    exclusions: Dict[str, List[str]] = {pack_id: [] for pack_id in pack_ids}
    # Longest id first so "a.b" wins over "a" for "a.b.component".
    by_length = sorted(pack_ids, key=len, reverse=True)
    for component_id in args.excludes or []:
        owner = next((p for p in by_length if component_id.startswith(f"{p}.")), None)
        if owner is None and len(pack_ids) == 1:
            owner = pack_ids[0]
            component_id = f"{owner}.{component_id}"
        if owner is None:
            raise InvalidConfiguration(
                f"Cannot tell which pack component '{component_id}' belongs to; "
                "use the qualified id (pack.component)"
            )
        exclusions[owner].append(component_id)
    return exclusions


def _prepare_checkouts(
    args: argparse.Namespace, config: SyncConfig, scope: SyncScope, formatter: OutputFormatter
) -> List[str]:
    if not (args.lock or args.update):
        return []
    registry_file = get_registry_file(config)
    fetcher = PackFetcher(get_shell(config), config.packs_dir)
    if args.lock:
        messages = checkout_locked(Lockfile.load(scope.lockfile_path), registry_file, fetcher)
    else:
        messages = update_packs(registry_file, fetcher)
    for message in messages:
        formatter.text(f"  {message}")
    return messages


def _print_report(report: SyncReport, formatter: OutputFormatter) -> None:
    heading = "Planned changes" if report.dry_run else "Changes"
    formatter.text(f"{heading} for {report.scope}:")
    active = [op for op in report.operations if op.action != KEEP]
    if not active:
        formatter.text("  (nothing to do)")
    for op in active:
        formatter.text(f"  {op.describe()}")
    for op in report.operations:
        if op.action == KEEP:
            formatter.text(f"  kept {op.kind} {op.item} (still used elsewhere)")
    for error in report.errors:
        formatter.warning(str(error))
    for conflict in report.conflicts:
        formatter.warning(str(conflict))
    for failure in report.failures:
        formatter.warning(str(failure))
    for message in report.warnings:
        formatter.warning(message)
    if report.configured_packs:
        formatter.text_kv("Configured packs", ", ".join(report.configured_packs))


def _run(
    args: argparse.Namespace, config: SyncConfig, formatter: OutputFormatter
) -> Tuple[SyncReport, List[str]]:
    scope = get_scope(args, config)
    values = parse_assignments(args.assignments)

    fetch_messages: List[str] = []
    if args.dry_run:
        if args.lock or args.update:
            formatter.warning("--lock/--update are skipped in a dry run")
    else:
        fetch_messages = _prepare_checkouts(args, config, scope, formatter)

    registry = get_pack_registry(config)
    packs = _selected_packs(args, registry)
    if args.customize or args.excludes:
        if packs is None:
            raise InvalidConfiguration("--customize/--exclude need --pack or --all")
    request = SyncRequest(
        packs=packs,
        exclusions=_exclusions(args, packs or []),
        values=values,
    )

    index = ReferenceIndex(config.index_path)
    engine = ConvergenceEngine(
        registry,
        scope,
        executor=ComponentExecutor(get_shell(config)),
        refcounter=ResourceRefCounter(
            registry,
            index=index,
            global_state_file=SyncScope.global_(config).state_file,
        ),
        index=index,
        json_opts=config.json_io,
        backups=config.backups_enabled,
    )

    plan = engine.plan(request)
    if args.dry_run:
        return SyncReport.from_plan(plan, dry_run=True), fetch_messages

    report = engine.apply(plan)
    if not (report.errors or report.failures or report.conflicts):
        report.warnings.extend(
            write_lockfile(scope.lockfile_path, get_registry_file(config), report.configured_packs)
        )
    return report, fetch_messages


def main(args: argparse.Namespace) -> int:
    """Sync the selected scope."""
    formatter = OutputFormatter(json_mode=getattr(args, "json", False))
    try:
        config = SyncConfig()
        lock = contextlib.nullcontext() if args.dry_run else acquire_process_lock(config.lock_path)
        with lock:
            report, fetch_messages = _run(args, config, formatter)
    except Exception as e:
        formatter.error(e, error_code="sync_error")
        return 1

    if formatter.json_mode:
        payload = report.to_dict()
        if fetch_messages:
            payload["packUpdates"] = fetch_messages
        formatter.json_output(payload)
    else:
        _print_report(report, formatter)

    if report.errors:
        return 1
    if (report.failures or report.conflicts) and not args.ignore_failures:
        return 1
    return 0


__all__ = ["SUMMARY", "register_args", "main"]
