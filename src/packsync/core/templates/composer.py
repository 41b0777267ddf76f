"""Marker-delimited sections in the managed instructions document.

Sections look like::

    <!-- begin:ios v1.2.0 -->
    ...content...
    <!-- end:ios -->

Everything outside markers belongs to the user and is never rewritten. All
functions here are pure: text in, text out.
"""
from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from packsync.core.packs.model import TemplateContribution

from .engine import substitute

_BEGIN_RE = re.compile(r"^<!-- begin:(?P<id>\S+) v(?P<version>\S+) -->$")
_END_RE = re.compile(r"^<!-- end:(?P<id>\S+) -->$")


@dataclass(frozen=True)
class Section:
    identifier: str
    version: str
    content: str


@dataclass(frozen=True)
class SectionEdit:
    """Replace (``content`` set) or remove (``content`` None) one section."""

    identifier: str
    content: Optional[str] = None
    version: str = ""


@dataclass
class ComposeResult:
    content: str
    warnings: List[str] = field(default_factory=list)


class SectionState(str, Enum):
    FRESH = "fresh"
    OUTDATED = "outdated"
    MISSING = "missing"
    UNPAIRED = "unpaired"


@dataclass(frozen=True)
class SectionStatus:
    identifier: str
    state: SectionState
    detail: str = ""


def begin_marker(identifier: str, version: str) -> str:
    return f"<!-- begin:{identifier} v{version} -->"


def end_marker(identifier: str) -> str:
    return f"<!-- end:{identifier} -->"


def _parse_begin(line: str) -> Optional[Tuple[str, str]]:
    m = _BEGIN_RE.match(line.strip())
    return (m.group("id"), m.group("version")) if m else None


def _parse_end(line: str) -> Optional[str]:
    m = _END_RE.match(line.strip())
    return m.group("id") if m else None


def parse_sections(text: str) -> List[Section]:
    """Return every properly closed section in document order."""
    sections: List[Section] = []
    current: Optional[Tuple[str, str]] = None
    body: List[str] = []
    for line in text.split("\n"):
        begin = _parse_begin(line)
        if begin is not None:
            current, body = begin, []
            continue
        end = _parse_end(line)
        if end is not None and current is not None and current[0] == end:
            sections.append(Section(identifier=current[0], version=current[1], content="\n".join(body)))
            current, body = None, []
            continue
        if current is not None:
            body.append(line)
    return sections


def unpaired_sections(text: str) -> List[str]:
    """Identifiers whose begin marker has no matching end marker."""
    open_ids: List[str] = []
    unpaired: List[str] = []
    for line in text.split("\n"):
        begin = _parse_begin(line)
        if begin is not None:
            if open_ids:
                unpaired.append(open_ids.pop())
            open_ids.append(begin[0])
            continue
        end = _parse_end(line)
        if end is not None and open_ids and open_ids[-1] == end:
            open_ids.pop()
    unpaired.extend(open_ids)
    return unpaired


def _block(identifier: str, content: str, version: str) -> List[str]:
    return [begin_marker(identifier, version), content, end_marker(identifier)]


def replace_section(text: str, identifier: str, content: str, version: str) -> str:
    """Replace a section's content and version, or append it when absent.

    Returns ``text`` unchanged when the section has an unpaired begin marker,
    since rewriting would swallow everything after it.
    """
    if identifier in unpaired_sections(text):
        return text

    out: List[str] = []
    skipping = False
    replaced = False
    for line in text.split("\n"):
        begin = _parse_begin(line)
        if begin is not None and begin[0] == identifier and not skipping:
            out.extend(_block(identifier, content, version)[:2])
            skipping = True
            replaced = True
            continue
        if skipping:
            if _parse_end(line) == identifier:
                out.append(end_marker(identifier))
                skipping = False
            continue
        out.append(line)

    if replaced:
        return "\n".join(out)

    base = text.rstrip("\n")
    block = "\n".join(_block(identifier, content, version))
    return f"{base}\n\n{block}\n" if base else f"{block}\n"


def remove_section(text: str, identifier: str) -> str:
    """Drop a section and at most one adjacent blank line.

    Returns ``text`` unchanged when the section is absent or unpaired.
    """
    if identifier in unpaired_sections(text):
        return text

    lines = text.split("\n")
    start = end = None
    for i, line in enumerate(lines):
        begin = _parse_begin(line)
        if start is None and begin is not None and begin[0] == identifier:
            start = i
        elif start is not None and _parse_end(line) == identifier:
            end = i
            break
    if start is None or end is None:
        return text

    # Prefer the blank separator written before the section by replace_section.
    if start > 0 and lines[start - 1].strip() == "":
        start -= 1
    elif end + 1 < len(lines) and lines[end + 1].strip() == "" and end + 1 < len(lines) - 1:
        end += 1
    return "\n".join(lines[:start] + lines[end + 1:])


def apply_edits(text: str, edits: Iterable[SectionEdit]) -> ComposeResult:
    """Apply replace/remove edits in order, collecting warnings for unpaired targets."""
    result = ComposeResult(content=text)
    for edit in edits:
        if edit.identifier in unpaired_sections(result.content):
            result.warnings.append(
                f"Section '{edit.identifier}' has a begin marker without an end marker; left unchanged"
            )
            continue
        if edit.content is None:
            result.content = remove_section(result.content, edit.identifier)
        else:
            result.content = replace_section(result.content, edit.identifier, edit.content, edit.version)
    return result


def render_contribution(contribution: TemplateContribution, values: Mapping[str, str]) -> str:
    return substitute(contribution.content, values)


def compose(contributions: Sequence[TemplateContribution], values: Mapping[str, str], user_content: str = "") -> str:
    """Build a fresh document: all sections in order, then any user text."""
    blocks = [
        "\n".join(_block(c.section_id, render_contribution(c, values), c.version)) for c in contributions
    ]
    body = "\n\n".join(blocks)
    user = user_content.strip("\n")
    if user.strip():
        body = f"{body}\n\n{user}" if body else user
    return f"{body}\n" if body else ""


def compose_or_update(
    existing: Optional[str],
    contributions: Sequence[TemplateContribution],
    values: Mapping[str, str],
) -> ComposeResult:
    """Render ``contributions`` into ``existing``.

    A document without managed sections is composed fresh, keeping the user's
    text as a trailing block. Otherwise each section is replaced in place (or
    appended), and unpaired targets are reported and left alone.
    """
    if not existing or not parse_sections(existing) and not unpaired_sections(existing):
        return ComposeResult(content=compose(contributions, values, existing or ""))
    edits = [
        SectionEdit(identifier=c.section_id, content=render_contribution(c, values), version=c.version)
        for c in contributions
    ]
    return apply_edits(existing, edits)


def content_hash(text: str) -> str:
    """sha256 of the whitespace-trimmed text, used for drift detection."""
    return hashlib.sha256(text.strip().encode("utf-8")).hexdigest()


def check_freshness(
    text: Optional[str],
    contributions: Sequence[TemplateContribution],
    values: Mapping[str, str],
) -> List[SectionStatus]:
    """Compare each expected section against the document on disk."""
    document = text or ""
    unpaired = set(unpaired_sections(document))
    present = {s.identifier: s for s in parse_sections(document)}
    statuses: List[SectionStatus] = []
    for c in contributions:
        if c.section_id in unpaired:
            statuses.append(SectionStatus(c.section_id, SectionState.UNPAIRED, "missing end marker"))
            continue
        section = present.get(c.section_id)
        if section is None:
            statuses.append(SectionStatus(c.section_id, SectionState.MISSING))
            continue
        if content_hash(section.content) != content_hash(render_contribution(c, values)):
            statuses.append(SectionStatus(c.section_id, SectionState.OUTDATED, "content differs"))
        elif section.version != c.version:
            statuses.append(
                SectionStatus(c.section_id, SectionState.OUTDATED, f"v{section.version} -> v{c.version}")
            )
        else:
            statuses.append(SectionStatus(c.section_id, SectionState.FRESH))
    return statuses


__all__ = [
    "Section",
    "SectionEdit",
    "SectionState",
    "SectionStatus",
    "ComposeResult",
    "begin_marker",
    "end_marker",
    "parse_sections",
    "unpaired_sections",
    "replace_section",
    "remove_section",
    "apply_edits",
    "compose",
    "compose_or_update",
    "content_hash",
    "check_freshness",
]
