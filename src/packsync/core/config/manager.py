"""Layered configuration loading for packsync."""
from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from packsync.core.utils.io import iter_yaml_files, read_yaml
from packsync.core.utils.merge import deep_merge as _deep_merge
from packsync.data import get_data_path

logger = logging.getLogger(__name__)

ENV_PREFIX = "PACKSYNC_"


class ConfigManager:
    """Load and merge packsync configuration.

    Configuration sources (highest to lowest priority):
    1. Environment variables: PACKSYNC_*
    2. User config: ~/.packsync/config/*.yaml (alphabetical order)
    3. Bundled defaults: packsync.data/config/*.yaml (alphabetical order)

    Environment keys use ``__`` between segments, e.g.
    ``PACKSYNC_logging__level=DEBUG``. Values are coerced to bool, int,
    float or JSON when they parse as such.
    """

    ARRAY_APPEND_MARKER = object()

    def __init__(self, home: Optional[Path] = None) -> None:
        self.home = Path(home) if home is not None else Path.home()
        self.core_config_dir = get_data_path("config")
        self._cfg: Optional[Dict[str, Any]] = None

    @property
    def user_config_dir(self) -> Path:
        # The user dir name itself may be overridden, so resolve it from the
        # bundled + env layers before reading the user's files.
        base = self._merge_directory({}, self.core_config_dir)
        self.apply_env_overrides(base, strict=False)
        user_dir = str((base.get("paths") or {}).get("user_dir") or ".packsync")
        return (self.home / user_dir).expanduser() / "config"

    def deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge dictionaries. Delegates to shared implementation."""
        return _deep_merge(base, override)

    def load_yaml(self, path: Path) -> Dict[str, Any]:
        # Fail closed: configuration must never silently ignore invalid YAML.
        data = read_yaml(path, default={}, raise_on_error=True)
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {path}")
        return data

    def _merge_directory(self, cfg: Dict[str, Any], directory: Path) -> Dict[str, Any]:
        for path in iter_yaml_files(directory):
            cfg = self.deep_merge(cfg, self.load_yaml(path))
        return cfg

    # ---------- environment overrides ----------

    def _as_bool(self, v: str) -> Optional[bool]:
        low = v.strip().lower()
        if low in {"true", "false"}:
            return low == "true"
        return None

    def _as_int(self, v: str) -> Optional[int]:
        if re.fullmatch(r"[-+]?\d+", v.strip() or " "):
            return int(v)
        return None

    def _as_float(self, v: str) -> Optional[float]:
        s = v.strip()
        if re.fullmatch(r"[-+]?\d*\.\d+", s) or re.fullmatch(r"[-+]?\d+\.\d*", s):
            return float(s)
        return None

    def _as_json(self, v: str) -> Optional[Any]:
        s = v.strip()
        if (s.startswith("{") and s.endswith("}")) or (s.startswith("[") and s.endswith("]")):
            try:
                return json.loads(s)
            except json.JSONDecodeError:
                return None
        return None

    def _coerce_type(self, value: str) -> Any:
        for caster in (self._as_bool, self._as_int, self._as_float, self._as_json):
            result = caster(value)
            if result is not None:
                return result
        return value.strip()

    def _parse_env_key(self, raw: str, *, strict: bool) -> List[Union[str, int, object]]:
        if not raw:
            return []
        segs = raw.split("__") if "__" in raw else [raw]
        processed: List[Union[str, int, object]] = []
        for seg in segs:
            if seg == "":
                if strict:
                    raise ValueError(f"Malformed {ENV_PREFIX}* key: empty segment in '{raw}'.")
                return []
            if seg.isdigit():
                processed.append(int(seg))
            elif seg.upper() == "APPEND":
                processed.append(self.ARRAY_APPEND_MARKER)
            else:
                processed.append(seg.lower())
        return processed

    def _iter_env_overrides(self, *, strict: bool) -> Iterator[Tuple[List[Any], Any]]:
        for key in sorted(os.environ.keys()):
            if not key.startswith(ENV_PREFIX):
                continue
            path = self._parse_env_key(key[len(ENV_PREFIX):], strict=strict)
            if not path:
                continue
            yield path, self._coerce_type(os.environ[key])

    def _set_nested(self, root: Dict[str, Any], path: List[Any], value: Any) -> None:
        cur: Any = root
        for part, nxt in zip(path, path[1:]):
            if isinstance(part, int) or part is self.ARRAY_APPEND_MARKER:
                raise ValueError("Invalid path: list index/APPEND may only appear at leaf")
            if not isinstance(cur, dict):
                raise ValueError("Path traverses non-dict container")
            key = {k.lower(): k for k in cur if isinstance(k, str)}.get(part, part)
            if key not in cur:
                cur[key] = [] if (isinstance(nxt, int) or nxt is self.ARRAY_APPEND_MARKER) else {}
            cur = cur[key]

        leaf = path[-1]
        if leaf is self.ARRAY_APPEND_MARKER:
            if not isinstance(cur, list):
                raise ValueError("APPEND requires list")
            cur.append(value)
        elif isinstance(leaf, int):
            if not isinstance(cur, list):
                raise ValueError("Index assignment requires list")
            while len(cur) <= leaf:
                cur.append(None)
            cur[leaf] = value
        else:
            if not isinstance(cur, dict):
                raise ValueError("Key assignment requires dict")
            key = {k.lower(): k for k in cur if isinstance(k, str)}.get(leaf, leaf)
            cur[key] = value

    def apply_env_overrides(self, cfg: Dict[str, Any], *, strict: bool) -> None:
        for path, typed_value in self._iter_env_overrides(strict=strict):
            self._set_nested(cfg, path, typed_value)

    # ---------- loading ----------

    def load_config(self) -> Dict[str, Any]:
        """Return the merged configuration (loaded once per manager)."""
        if self._cfg is None:
            cfg = self._merge_directory({}, self.core_config_dir)
            cfg = self._merge_directory(cfg, self.user_config_dir)
            self.apply_env_overrides(cfg, strict=True)
            self._cfg = cfg
            logger.debug("Loaded configuration for home %s", self.home)
        return self._cfg

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value by dot-notation key.

        Example:
            >>> manager.get('logging.level')
            'INFO'
            >>> manager.get('nonexistent.key', 'fallback')
            'fallback'
        """
        current: Any = self.load_config()
        for part in key.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current


__all__ = ["ConfigManager", "ENV_PREFIX"]
