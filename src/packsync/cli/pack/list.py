from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, List

from packsync.cli import OutputFormatter, add_json_flag, get_pack_registry
from packsync.core.config import SyncConfig
from packsync.core.packs import PackRegistry
from packsync.core.packs.model import CompiledSource

SUMMARY = "List available packs (builtin and installed)"


def register_args(parser: argparse.ArgumentParser) -> None:
    add_json_flag(parser)


def _rows(registry: PackRegistry) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for pack_id in registry.ids:
        pack = registry.packs[pack_id]
        entry = registry.entries.get(pack_id)
        row: Dict[str, Any] = {
            "id": pack.id,
            "name": pack.display_name,
            "version": pack.version,
            "description": pack.description,
            "source": "builtin" if isinstance(pack.source, CompiledSource) else "external",
            "components": len(pack.components),
        }
        if entry is not None:
            row.update({"origin": entry.source, "local": entry.local, "ref": entry.ref, "commit": entry.commit})
        rows.append(row)
    for pack_id, error in sorted(registry.errors.items()):
        rows.append({"id": pack_id, "source": "external", "error": str(error)})
    return rows


def main(args: argparse.Namespace) -> int:
    out = OutputFormatter(json_mode=getattr(args, "json", False))
    try:
        rows = _rows(get_pack_registry(SyncConfig()))
    except Exception as exc:
        out.error(exc, error_code="pack_list_error")
        return 1

    if out.json_mode:
        out.json_output({"packs": rows, "count": len(rows)})
        return 0

    if not rows:
        out.text("No packs available")
        return 0
    for row in rows:
        if "error" in row:
            out.text(f"{row['id']}  (failed to load: {row['error']})")
            continue
        origin = row.get("origin") or row["source"]
        commit = f" @ {row['commit'][:7]}" if row.get("commit") else ""
        out.text(f"{row['id']}  v{row['version']}  {row['name']}  [{origin}{commit}]")
        if row["description"]:
            out.text(f"    {row['description']}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    register_args(parser)
    sys.exit(main(parser.parse_args()))
