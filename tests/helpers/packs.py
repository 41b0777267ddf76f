"""Pack fixtures written to disk the way ``pack add`` would find them."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml

from packsync.core.packs import PackRegistry, RegistryEntry, RegistryFile, load_manifest, load_registry


def write_pack(
    root: Path,
    pack_id: str,
    *,
    version: str = "1.0.0",
    components: Iterable[Dict[str, Any]] = (),
    templates: Iterable[Dict[str, Any]] = (),
    prompts: Iterable[Dict[str, Any]] = (),
    files: Optional[Mapping[str, str]] = None,
    **extra: Any,
) -> Path:
    """Write ``<root>/<pack_id>/pack.yaml`` plus any support ``files``; return the pack dir."""
    pack_dir = root / pack_id
    pack_dir.mkdir(parents=True, exist_ok=True)
    data: Dict[str, Any] = {
        "schemaVersion": 1,
        "id": pack_id,
        "displayName": pack_id.title(),
        "version": version,
        **extra,
    }
    if components:
        data["components"] = list(components)
    if templates:
        data["templates"] = list(templates)
    if prompts:
        data["prompts"] = list(prompts)
    (pack_dir / "pack.yaml").write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    for rel, content in (files or {}).items():
        path = pack_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return pack_dir


def register(registry_path: Path, *pack_dirs: Path) -> RegistryFile:
    """Record local pack directories in a registry file."""
    registry_file = RegistryFile(registry_path)
    for pack_dir in pack_dirs:
        pack = load_manifest(pack_dir)
        registry_file.upsert(RegistryEntry(id=pack.id, source=str(pack_dir), path=pack_dir, local=True))
    return registry_file


def registry_of(registry_path: Path, *pack_dirs: Path, include_builtin: bool = False) -> PackRegistry:
    return load_registry(register(registry_path, *pack_dirs), include_builtin=include_builtin)
