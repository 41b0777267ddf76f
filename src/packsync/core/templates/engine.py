"""``__KEY__`` placeholder substitution."""
from __future__ import annotations

import logging
import re
from typing import Any, List, Mapping

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"__[A-Z][A-Z0-9_]*__")


def _is_edit_comment(line: str) -> bool:
    s = line.strip()
    return s.startswith("<!-- EDIT:") and s.endswith("-->")


def substitute(template: str, values: Mapping[str, str], *, strip_edit_comments: bool = True) -> str:
    """Replace ``__KEY__`` with ``values[KEY]``.

    ``<!-- EDIT: ... -->`` authoring hints are dropped. Placeholders without
    a value are left as-is and logged.
    """
    result = template
    for key, value in values.items():
        result = result.replace(f"__{key}__", value)

    if strip_edit_comments:
        result = "\n".join(line for line in result.split("\n") if not _is_edit_comment(line))

    unreplaced = find_unreplaced(result)
    if unreplaced:
        logger.warning("Unreplaced placeholders: %s", ", ".join(unreplaced))
    return result


def find_unreplaced(text: str) -> List[str]:
    """Distinct ``__KEY__`` tokens remaining in ``text``, in order of appearance."""
    return list(dict.fromkeys(PLACEHOLDER_RE.findall(text)))


def substitute_data(data: Any, values: Mapping[str, str]) -> Any:
    """Recursively substitute placeholders in every string of a JSON-like value."""
    if isinstance(data, str):
        return substitute(data, values, strip_edit_comments=False)
    if isinstance(data, list):
        return [substitute_data(v, values) for v in data]
    if isinstance(data, dict):
        return {k: substitute_data(v, values) for k, v in data.items()}
    return data


__all__ = ["PLACEHOLDER_RE", "find_unreplaced", "substitute", "substitute_data"]
