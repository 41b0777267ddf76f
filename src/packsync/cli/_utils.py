"""Shared CLI utility functions."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Dict, List, Optional

from packsync.core.config import SyncConfig
from packsync.core.exceptions import InvalidConfiguration
from packsync.core.packs import PackRegistry, RegistryFile, load_registry
from packsync.core.sync import SyncScope
from packsync.core.utils.paths import resolve_project_root
from packsync.core.utils.subprocess import ShellRunner


def get_project_root(args: argparse.Namespace) -> Path:
    """Project directory from ``--project`` or auto-detection."""
    explicit = getattr(args, "project", None)
    return resolve_project_root(Path(explicit) if explicit else None)


def get_scope(args: argparse.Namespace, config: SyncConfig) -> SyncScope:
    if getattr(args, "global_scope", False):
        return SyncScope.global_(config)
    return SyncScope.project(get_project_root(args), config)


def get_registry_file(config: SyncConfig) -> RegistryFile:
    return RegistryFile(config.registry_path)


def get_pack_registry(config: SyncConfig) -> PackRegistry:
    return load_registry(get_registry_file(config))


def get_shell(config: SyncConfig) -> ShellRunner:
    return ShellRunner(timeout=config.subprocess_timeout)


def parse_assignments(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Parse ``KEY=VALUE`` arguments.

    Raises:
        InvalidConfiguration: An argument has no ``=`` or an empty key.
    """
    values: Dict[str, str] = {}
    for raw in pairs or []:
        key, sep, value = raw.partition("=")
        key = key.strip()
        if not sep or not key:
            raise InvalidConfiguration(f"Expected KEY=VALUE, got '{raw}'")
        values[key] = value
    return values


__all__ = [
    "get_project_root",
    "get_scope",
    "get_registry_file",
    "get_pack_registry",
    "get_shell",
    "parse_assignments",
]
