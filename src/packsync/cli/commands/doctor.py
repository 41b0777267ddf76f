"""
packsync doctor command.

SUMMARY: Check a scope for drift from its configured packs
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Any, Dict, List

from packsync.cli import OutputFormatter, add_scope_flags, get_pack_registry, get_scope
from packsync.core.config import SyncConfig
from packsync.core.packs import PackRegistry, TemplateContribution
from packsync.core.settings import Settings
from packsync.core.state.store import SyncState
from packsync.core.sync import SyncScope
from packsync.core.templates.composer import SectionState, check_freshness, unpaired_sections
from packsync.core.utils.io import read_text

SUMMARY = "Check a scope for drift from its configured packs"

OK = "ok"
PROBLEM = "problem"


@dataclass
class Finding:
    check: str
    status: str
    detail: str

    def to_dict(self) -> Dict[str, str]:
        return {"check": self.check, "status": self.status, "detail": self.detail}


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    add_scope_flags(parser)


def _check_packs(state: SyncState, registry: PackRegistry) -> List[Finding]:
    findings: List[Finding] = []
    for pack_id, error in sorted(registry.errors.items()):
        findings.append(Finding("pack", PROBLEM, f"{pack_id}: {error}"))
    for pack_id in state.configured_packs:
        if registry.get(pack_id) is None and pack_id not in registry.errors:
            findings.append(Finding("pack", PROBLEM, f"{pack_id}: configured but not installed"))
    return findings


def _check_document(scope: SyncScope, state: SyncState, registry: PackRegistry) -> List[Finding]:
    contributions: List[TemplateContribution] = []
    for pack_id in state.configured_packs:
        pack = registry.get(pack_id)
        if pack is not None:
            contributions.extend(pack.templates)

    text = read_text(scope.document_file) if scope.document_file.exists() else None
    findings: List[Finding] = []
    for identifier in unpaired_sections(text or ""):
        findings.append(
            Finding("document", PROBLEM, f"section '{identifier}' has a begin marker without an end marker")
        )
    for status in check_freshness(text, contributions, state.resolved_values):
        if status.state is SectionState.FRESH:
            continue
        if status.state is SectionState.UNPAIRED:
            # Already reported above.
            continue
        detail = f"section '{status.identifier}' is {status.state.value}"
        if status.detail:
            detail = f"{detail} ({status.detail})"
        findings.append(Finding("document", PROBLEM, detail))
    return findings


def _check_artifacts(scope: SyncScope, state: SyncState) -> List[Finding]:
    findings: List[Finding] = []
    try:
        settings = Settings.load(scope.settings_file)
    except ValueError as exc:
        findings.append(Finding("settings", PROBLEM, str(exc)))
        settings = None

    for pack_id in state.configured_packs:
        record = state.artifacts(pack_id)
        if record is None:
            continue
        for recorded in record.files:
            if not scope.absolute(recorded).exists():
                findings.append(Finding("files", PROBLEM, f"{recorded} is missing (pack {pack_id})"))
        if settings is None:
            continue
        present = set(settings.hook_commands())
        for command in record.hook_commands:
            if command not in present:
                findings.append(Finding("hooks", PROBLEM, f"hook '{command}' is missing (pack {pack_id})"))
    return findings


def run_checks(scope: SyncScope, registry: PackRegistry) -> List[Finding]:
    """Every drift check for ``scope``; an empty list means healthy."""
    state = SyncState.load(scope.state_file)
    findings = _check_packs(state, registry)
    findings += _check_document(scope, state, registry)
    findings += _check_artifacts(scope, state)
    return findings


def main(args: argparse.Namespace) -> int:
    """Report drift without changing anything."""
    formatter = OutputFormatter(json_mode=getattr(args, "json", False))

    try:
        config = SyncConfig()
        scope = get_scope(args, config)
        findings = run_checks(scope, get_pack_registry(config))
    except Exception as e:
        formatter.error(e, error_code="doctor_error")
        return 1

    healthy = not findings
    if formatter.json_mode:
        payload: Dict[str, Any] = {
            "scope": scope.label,
            "healthy": healthy,
            "findings": [f.to_dict() for f in findings],
        }
        formatter.json_output(payload)
    else:
        formatter.text(f"Doctor report for {scope.label}:")
        if healthy:
            formatter.text("  All checks passed")
        for finding in findings:
            formatter.text(f"  [{finding.check}] {finding.detail}")
        if not healthy:
            formatter.text("Run 'packsync sync' to repair.")

    return 0 if healthy else 1


__all__ = ["SUMMARY", "register_args", "main", "run_checks", "Finding"]
