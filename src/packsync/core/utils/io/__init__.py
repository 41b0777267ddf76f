"""I/O utilities for packsync.

This package provides safe, atomic file operations:
- Core: atomic writes, directory management, text I/O
- JSON: read/write with locking
- YAML: read/write
- Locking: the process-wide run lock
- Backup: timestamped copies before shared documents are rewritten
"""
from __future__ import annotations

from .backup import (
    backup_file,
    delete_backups,
    find_backups,
)
from .core import (
    PathLike,
    atomic_write,
    ensure_directory,
    ensure_parent_dir,
    read_lines,
    read_text,
    write_lines,
    write_text,
)
from .json import (
    read_json,
    write_json_atomic,
)
from .locking import (
    ProcessLock,
    acquire_process_lock,
)
from .yaml import (
    dump_yaml_string,
    iter_yaml_files,
    parse_yaml_string,
    read_yaml,
    write_yaml,
)

__all__ = [
    # core
    "PathLike",
    "ensure_parent_dir",
    "ensure_directory",
    "atomic_write",
    "read_text",
    "write_text",
    "read_lines",
    "write_lines",
    # json
    "read_json",
    "write_json_atomic",
    # yaml
    "read_yaml",
    "write_yaml",
    "parse_yaml_string",
    "dump_yaml_string",
    "iter_yaml_files",
    # locking
    "ProcessLock",
    "acquire_process_lock",
    # backup
    "backup_file",
    "find_backups",
    "delete_backups",
]
