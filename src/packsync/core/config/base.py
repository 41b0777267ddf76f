"""Base class for domain-specific configuration accessors."""
from __future__ import annotations

from abc import ABC, abstractmethod
from functools import cached_property
from pathlib import Path
from typing import Any, Dict, Optional

from .manager import ConfigManager


class BaseDomainConfig(ABC):
    """Abstract base class for domain-specific configuration accessors.

    Usage:
        class MyConfig(BaseDomainConfig):
            def _config_section(self) -> str:
                return "mySection"

            @cached_property
            def my_setting(self) -> str:
                return self.section.get("mySetting", "default")
    """

    def __init__(self, home: Optional[Path] = None, *, manager: Optional[ConfigManager] = None) -> None:
        self._manager = manager or ConfigManager(home)
        self._config = self._manager.load_config()

    @property
    def home(self) -> Path:
        return self._manager.home

    @abstractmethod
    def _config_section(self) -> str:
        """Return the top-level config key for this domain."""
        ...

    @cached_property
    def section(self) -> Dict[str, Any]:
        """This domain's configuration section, or an empty dict."""
        return self._config.get(self._config_section(), {}) or {}

    def _get(self, section: str, key: str, default: Any) -> Any:
        value = (self._config.get(section) or {}).get(key)
        return default if value is None else value


__all__ = ["BaseDomainConfig"]
