"""
packsync - converge Claude Code configuration from composable packs

packsync installs MCP servers, plugins, hooks, skills, commands, settings and
instruction sections declared by packs, and keeps every project (and the
global scope) in step with its pack selection on each run.
"""

__version__ = "1.0.0"
__all__ = ["__version__"]
