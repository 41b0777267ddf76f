"""Settings document model and key ownership ledger."""
from .model import Settings, fragment_hooks, fragment_key_paths
from .ownership import SettingsOwnership

__all__ = ["Settings", "SettingsOwnership", "fragment_hooks", "fragment_key_paths"]
