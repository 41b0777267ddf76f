"""Configuration loading for packsync.

Bundled YAML defaults are overlaid by the user's ``~/.packsync/config`` files
and then by ``PACKSYNC_*`` environment variables.
"""
from __future__ import annotations

from .base import BaseDomainConfig
from .domains import SyncConfig
from .manager import ENV_PREFIX, ConfigManager

__all__ = ["BaseDomainConfig", "ConfigManager", "ENV_PREFIX", "SyncConfig"]
