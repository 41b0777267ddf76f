"""Packs compiled into packsync."""
from __future__ import annotations

from typing import List

from packsync import __version__

from .model import (
    CompiledSource,
    Component,
    ComponentType,
    IgnoreEntriesAction,
    Pack,
    TemplateContribution,
)
from .resolver import validate_component_graph

CORE_PACK_ID = "core"

_CORE_TEMPLATE = """\
## Working agreement

- Project: __REPO_NAME__
- Keep changes small and explain non-obvious decisions in the PR description.
- Run the project's tests before proposing a commit.
<!-- EDIT: add project-specific conventions below this section, outside the markers -->"""


def core_pack() -> Pack:
    """Baseline pack: a short working agreement and ignore rules for local files."""
    components = (
        Component(
            id="core.ignore-local",
            type=ComponentType.IGNORE_ENTRIES,
            action=IgnoreEntriesAction(
                entries=(
                    "*.local.*",
                    ".claude/.packsync-*",
                )
            ),
            display_name="Ignore machine-local Claude files",
            is_required=True,
        ),
    )
    validate_component_graph(components, pack_id=CORE_PACK_ID)
    return Pack(
        id=CORE_PACK_ID,
        display_name="Core",
        version=__version__,
        source=CompiledSource(),
        description="Working agreement section and local-file ignore rules",
        components=components,
        templates=(
            TemplateContribution(
                section_id=CORE_PACK_ID,
                version=__version__,
                content=_CORE_TEMPLATE,
                placeholders=("REPO_NAME",),
            ),
        ),
    )


def builtin_packs() -> List[Pack]:
    return [core_pack()]


__all__ = ["CORE_PACK_ID", "builtin_packs", "core_pack"]
