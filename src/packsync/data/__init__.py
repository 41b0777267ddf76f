"""Bundled packsync resources (default config and schemas)."""
from __future__ import annotations

from importlib import resources
from pathlib import Path


def get_data_path(subpackage: str, filename: str = "") -> Path:
    """Absolute path to ``<subpackage>/<filename>`` inside ``packsync.data``.

    >>> get_data_path("config", "defaults.yaml")
    PosixPath('/path/to/packsync/data/config/defaults.yaml')
    """
    base = Path(str(resources.files("packsync.data") / subpackage))
    return base / filename if filename else base


__all__ = ["get_data_path"]
