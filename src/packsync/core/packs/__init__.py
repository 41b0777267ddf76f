"""Pack model, manifest loading, dependency resolution and the registry."""
from __future__ import annotations

from .builtin import CORE_PACK_ID, builtin_packs
from .manifest import MANIFEST_FILENAME, load_manifest, parse_manifest
from .model import Component, ComponentType, Pack, TemplateContribution
from .registry import PackRegistry, RegistryEntry, RegistryFile, load_registry
from .resolver import ResolvedPlan, resolve, validate_component_graph

__all__ = [
    "CORE_PACK_ID",
    "builtin_packs",
    "MANIFEST_FILENAME",
    "load_manifest",
    "parse_manifest",
    "Component",
    "ComponentType",
    "Pack",
    "TemplateContribution",
    "PackRegistry",
    "RegistryEntry",
    "RegistryFile",
    "load_registry",
    "ResolvedPlan",
    "resolve",
    "validate_component_graph",
]
