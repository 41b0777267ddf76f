"""
packsync CLI package.

Provides the command-line interface with auto-discovery of commands
from ``commands/`` (top level) and domain subfolders (``pack/``).

Framework utilities for building CLI commands:
- _output: Output formatting (JSON/text modes)
- _args: Common argument registration helpers
- _utils: Shared CLI utilities
"""
from ._output import OutputFormatter, format_json
from ._args import (
    add_dry_run_flag,
    add_global_flag,
    add_json_flag,
    add_project_flag,
    add_scope_flags,
)
from ._utils import (
    get_pack_registry,
    get_project_root,
    get_registry_file,
    get_scope,
    get_shell,
    parse_assignments,
)

__all__ = [
    # Output formatting
    "OutputFormatter",
    "format_json",
    # Argument helpers
    "add_dry_run_flag",
    "add_global_flag",
    "add_json_flag",
    "add_project_flag",
    "add_scope_flags",
    # Utilities
    "get_pack_registry",
    "get_project_root",
    "get_registry_file",
    "get_scope",
    "get_shell",
    "parse_assignments",
]
