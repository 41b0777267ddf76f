"""Loading external packs from ``pack.yaml`` manifests.

A manifest is validated against the bundled ``pack.schema.yaml`` and then
normalized into a :class:`~packsync.core.packs.model.Pack`:

- short component ids (``node``) are prefixed with the pack id (``ios.node``),
  and so are dependency references;
- template and settings sources are read from the pack checkout;
- top-level ``ignoreEntries`` become a required ``<pack>.ignore-entries``
  component;
- the component dependency graph is checked for unknown ids and cycles.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from packsync.core.exceptions import InvalidConfiguration
from packsync.core.schemas import validate_payload_safe
from packsync.core.utils.io import read_text

from .model import (
    Component,
    ComponentType,
    CopyFileAction,
    CopyFileType,
    ExternalSource,
    IgnoreEntriesAction,
    InstallAction,
    McpServerAction,
    Pack,
    PackageAction,
    PluginAction,
    PromptDefinition,
    SettingsFragmentAction,
    ShellAction,
    TemplateContribution,
)
from .resolver import validate_component_graph

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "pack.yaml"
SCHEMA_NAME = "pack.schema.yaml"


def _qualify(pack_id: str, raw_id: str) -> str:
    return raw_id if raw_id.startswith(f"{pack_id}.") else f"{pack_id}.{raw_id}"


def _contained(root: Path, relative: str, *, pack_id: str, what: str) -> Path:
    """Resolve ``relative`` under ``root``; refuse paths that escape the pack."""
    candidate = (root / relative).resolve()
    base = root.resolve()
    if candidate != base and base not in candidate.parents:
        raise InvalidConfiguration(
            f"{what} '{relative}' escapes the pack directory",
            pack_id=pack_id,
            context={"path": relative},
        )
    return candidate


def _build_action(raw: Dict[str, Any], ctype: ComponentType, root: Path, pack_id: str) -> InstallAction:
    if ctype is ComponentType.REMOTE_SERVICE:
        server = raw["server"]
        return McpServerAction(
            name=server["name"],
            command=server.get("command", ""),
            args=tuple(server.get("args") or ()),
            env=tuple(sorted((server.get("env") or {}).items())),
            url=server.get("url", ""),
            scope=server.get("scope"),
        )
    if ctype is ComponentType.PLUGIN:
        return PluginAction(name=raw["plugin"])
    if ctype is ComponentType.PACKAGE:
        return PackageAction(name=raw["package"])
    if ctype is ComponentType.FILE_COPY:
        return CopyFileAction(
            source=_contained(root, raw["source"], pack_id=pack_id, what="Source"),
            destination=raw["destination"],
            file_type=CopyFileType(raw.get("fileType", "generic")),
        )
    if ctype is ComponentType.SETTINGS_FRAGMENT:
        if "settings" in raw:
            fragment = raw["settings"]
        else:
            path = _contained(root, raw["source"], pack_id=pack_id, what="Settings source")
            try:
                fragment = json.loads(read_text(path))
            except (OSError, json.JSONDecodeError) as exc:
                raise InvalidConfiguration(
                    f"Cannot read settings fragment {raw['source']}: {exc}", pack_id=pack_id
                ) from exc
        if not isinstance(fragment, dict):
            raise InvalidConfiguration("Settings fragment must be an object", pack_id=pack_id)
        return SettingsFragmentAction(fragment=fragment)
    if ctype is ComponentType.IGNORE_ENTRIES:
        return IgnoreEntriesAction(entries=tuple(raw["entries"]))
    return ShellAction(command=raw["command"])


def _build_component(raw: Dict[str, Any], root: Path, pack_id: str) -> Component:
    ctype = ComponentType(raw["type"])
    cid = _qualify(pack_id, raw["id"])
    action = _build_action(raw, ctype, root, pack_id)
    hook_event = raw.get("hookEvent")
    if hook_event and not (isinstance(action, CopyFileAction) and action.file_type is CopyFileType.HOOK):
        raise InvalidConfiguration(
            f"Component '{cid}' declares hookEvent but is not a hook file",
            pack_id=pack_id,
            context={"component": cid},
        )
    return Component(
        id=cid,
        type=ctype,
        action=action,
        display_name=raw.get("displayName", ""),
        description=raw.get("description", ""),
        dependencies=tuple(_qualify(pack_id, d) for d in raw.get("dependencies") or ()),
        is_required=bool(raw.get("isRequired", False)),
        hook_event=hook_event,
    )


def _build_template(raw: Dict[str, Any], root: Path, pack_id: str, version: str) -> TemplateContribution:
    section_id = raw["sectionId"]
    if section_id != pack_id and not section_id.startswith(f"{pack_id}."):
        raise InvalidConfiguration(
            f"Template section '{section_id}' must be '{pack_id}' or start with '{pack_id}.'",
            pack_id=pack_id,
            context={"section": section_id},
        )
    if "content" in raw:
        content = raw["content"]
    else:
        path = _contained(root, raw["source"], pack_id=pack_id, what="Template source")
        try:
            content = read_text(path)
        except OSError as exc:
            raise InvalidConfiguration(
                f"Cannot read template {raw['source']}: {exc}", pack_id=pack_id
            ) from exc
    return TemplateContribution(
        section_id=section_id,
        version=version,
        content=content.rstrip("\n"),
        placeholders=tuple(raw.get("placeholders") or ()),
    )


def parse_manifest(data: Any, *, manifest_path: Path) -> Pack:
    """Validate and normalize already-parsed manifest data."""
    errors = validate_payload_safe(data, SCHEMA_NAME)
    if errors:
        raw_id = data.get("id") if isinstance(data, dict) else None
        raise InvalidConfiguration(
            f"Invalid pack manifest {manifest_path}: {errors[0]}",
            pack_id=raw_id if isinstance(raw_id, str) else None,
            context={"errors": errors, "manifest": str(manifest_path)},
        )

    pack_id: str = data["id"]
    version: str = data["version"]
    root = manifest_path.parent

    components: List[Component] = [_build_component(c, root, pack_id) for c in data.get("components") or []]
    if data.get("ignoreEntries"):
        components.append(
            Component(
                id=f"{pack_id}.ignore-entries",
                type=ComponentType.IGNORE_ENTRIES,
                action=IgnoreEntriesAction(entries=tuple(data["ignoreEntries"])),
                display_name="Ignore entries",
                is_required=True,
            )
        )

    seen: Dict[str, int] = {}
    for c in components:
        seen[c.id] = seen.get(c.id, 0) + 1
    duplicates = sorted(cid for cid, n in seen.items() if n > 1)
    if duplicates:
        raise InvalidConfiguration(
            f"Duplicate component ids: {', '.join(duplicates)}",
            pack_id=pack_id,
            context={"components": duplicates},
        )

    validate_component_graph(components, pack_id=pack_id)

    templates = [_build_template(t, root, pack_id, version) for t in data.get("templates") or []]
    prompts = [
        PromptDefinition(key=p["key"], label=p.get("label", ""), default=p.get("default"))
        for p in data.get("prompts") or []
    ]

    return Pack(
        id=pack_id,
        display_name=data["displayName"],
        version=version,
        source=ExternalSource(manifest_path=manifest_path),
        description=data.get("description", ""),
        components=tuple(components),
        templates=tuple(templates),
        prompts=tuple(prompts),
    )


def load_manifest(path: Path, *, expected_id: Optional[str] = None) -> Pack:
    """Load ``pack.yaml`` (or the manifest inside a pack directory).

    Raises:
        InvalidConfiguration: The manifest is missing, unparsable, invalid, or
            its id does not match ``expected_id``.
    """
    manifest_path = Path(path)
    if manifest_path.is_dir():
        manifest_path = manifest_path / MANIFEST_FILENAME
    if not manifest_path.exists():
        raise InvalidConfiguration(
            f"Pack manifest not found: {manifest_path}", pack_id=expected_id
        )
    try:
        data = yaml.safe_load(read_text(manifest_path))
    except yaml.YAMLError as exc:
        raise InvalidConfiguration(
            f"Cannot parse {manifest_path}: {exc}", pack_id=expected_id
        ) from exc

    pack = parse_manifest(data, manifest_path=manifest_path)
    if expected_id is not None and pack.id != expected_id:
        raise InvalidConfiguration(
            f"Manifest at {manifest_path} declares id '{pack.id}', expected '{expected_id}'",
            pack_id=expected_id,
        )
    logger.debug("Loaded pack %s %s from %s", pack.id, pack.version, manifest_path)
    return pack


__all__ = ["MANIFEST_FILENAME", "load_manifest", "parse_manifest"]
