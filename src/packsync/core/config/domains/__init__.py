"""Domain-specific configuration accessors."""
from .sync import SyncConfig

__all__ = ["SyncConfig"]
