"""Common CLI argument registration utilities."""
from __future__ import annotations

import argparse


def add_json_flag(parser: argparse.ArgumentParser) -> None:
    """Add --json flag for JSON output mode."""
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )


def add_project_flag(parser: argparse.ArgumentParser) -> None:
    """Add --project flag for project directory override."""
    parser.add_argument(
        "--project",
        type=str,
        help="Project directory (default: enclosing git repository or current directory)",
    )


def add_global_flag(parser: argparse.ArgumentParser) -> None:
    """Add --global flag selecting the global scope."""
    parser.add_argument(
        "--global",
        dest="global_scope",
        action="store_true",
        help="Operate on the global scope (~/.claude) instead of a project",
    )


def add_dry_run_flag(parser: argparse.ArgumentParser) -> None:
    """Add --dry-run flag."""
    parser.add_argument(
        "--dry-run",
        "-n",
        action="store_true",
        help="Show what would be done without making changes",
    )


def add_scope_flags(parser: argparse.ArgumentParser) -> None:
    """Add the flags every scope-aware command uses: --global, --project, --json."""
    add_global_flag(parser)
    add_project_flag(parser)
    add_json_flag(parser)


__all__ = [
    "add_json_flag",
    "add_project_flag",
    "add_global_flag",
    "add_dry_run_flag",
    "add_scope_flags",
]
