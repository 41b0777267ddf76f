"""
packsync cleanup command.

SUMMARY: Find and delete backup files left by sync
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List

from packsync.cli import OutputFormatter, add_json_flag, add_project_flag, get_project_root
from packsync.core.config import SyncConfig
from packsync.core.utils.io import delete_backups, find_backups

SUMMARY = "Find and delete backup files left by sync"


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    parser.add_argument(
        "--force",
        action="store_true",
        help="Delete the backups (default: only list them)",
    )
    add_project_flag(parser)
    add_json_flag(parser)


def collect_backups(config: SyncConfig, project_root: Path) -> List[Path]:
    """Backups under the global Claude directory and the project, without duplicates."""
    roots = [config.global_claude_dir]
    if project_root.resolve() != config.home.resolve():
        roots.append(project_root)

    seen = set()
    unique: List[Path] = []
    for root in roots:
        for path in find_backups(root):
            key = path.resolve()
            if key in seen:
                continue
            seen.add(key)
            unique.append(path)
    return sorted(unique)


def main(args: argparse.Namespace) -> int:
    out = OutputFormatter(json_mode=getattr(args, "json", False))
    try:
        config = SyncConfig()
        backups = collect_backups(config, get_project_root(args))
        sizes = {p: p.stat().st_size for p in backups}
        failures = delete_backups(backups) if args.force else []
    except Exception as exc:
        out.error(exc, error_code="cleanup_error")
        return 1

    deleted = [p for p in backups if args.force and p not in failures]
    if out.json_mode:
        out.json_output(
            {
                "backups": [str(p) for p in backups],
                "deleted": [str(p) for p in deleted],
                "failed": [str(p) for p in failures],
            }
        )
        return 1 if failures else 0

    if not backups:
        out.text("No backup files found.")
        return 0
    out.text(f"Found {len(backups)} backup file(s):")
    for path in backups:
        out.text(f"  {path} ({sizes[path]} bytes)")
    if not args.force:
        out.text("Run 'packsync cleanup --force' to delete them.")
        return 0
    if failures:
        out.warning(f"Failed to delete {len(failures)} backup file(s).")
        return 1
    out.text(f"Deleted {len(deleted)} backup file(s).")
    return 0


__all__ = ["SUMMARY", "register_args", "main", "collect_backups"]
