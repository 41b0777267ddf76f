"""Convergence engine.

One run makes a scope match its pack selection:

1. ``plan()`` loads the scope state, resolves each desired pack's components,
   computes the artifact record the pack should have now, settles
   cross-pack conflicts and diffs every record against the stored one.
   Planning reads files but changes nothing, which is what ``--dry-run``
   prints.
2. ``apply()`` removes what is no longer wanted, adds and updates what is
   new or changed, converges the settings document and the instructions
   document, runs new shell actions, then persists the state (the commit
   point) and the reference index.

Artifact failures never abort the run. A failed addition is left out of the
stored record and a failed removal stays in it, so the next run retries
exactly what did not happen.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from packsync.core.exceptions import (
    ArtifactApplyFailure,
    ArtifactConflictError,
    InvalidConfiguration,
    ReferenceIndexUnreadable,
)
from packsync.core.packs.model import (
    Component,
    CopyFileAction,
    CopyFileType,
    IgnoreEntriesAction,
    McpServerAction,
    Pack,
    PackageAction,
    PluginAction,
    SettingsFragmentAction,
    ShellAction,
    fingerprint,
)
from packsync.core.packs.registry import PackRegistry
from packsync.core.packs.resolver import resolve
from packsync.core.settings import Settings, SettingsOwnership, fragment_hooks, fragment_key_paths
from packsync.core.state.artifacts import (
    ARTIFACT_KINDS,
    GLOBAL_RESOURCE_KINDS,
    SHARED_KINDS,
    ArtifactRecord,
    McpServerRef,
    artifact_key,
    diff_records,
    shell_key,
)
from packsync.core.state.index import ReferenceIndex
from packsync.core.state.store import SyncState
from packsync.core.templates.composer import (
    SectionEdit,
    apply_edits,
    compose_or_update,
    parse_sections,
    render_contribution,
    unpaired_sections,
)
from packsync.core.templates.engine import substitute, substitute_data
from packsync.core.utils.io import backup_file, read_text, write_text

from .executor import ComponentExecutor
from .ignore import IgnoreFile
from .refcount import ResourceRefCounter
from .report import (
    ADD,
    KEEP,
    REMOVE,
    REPAIR,
    RUN,
    UPDATE,
    PackPayload,
    PackPlan,
    SyncPlan,
    SyncReport,
)
from .scope import SyncScope

logger = logging.getLogger(__name__)

STALE_OWNER = "(stale)"
DOCUMENT_OWNER = "(document)"


@dataclass
class SyncRequest:
    """What the caller wants the scope to converge to.

    ``packs`` of ``None`` re-syncs the currently configured packs.
    ``exclusions`` of ``None`` keeps each pack's previous exclusions.
    """

    packs: Optional[List[str]] = None
    exclusions: Optional[Dict[str, List[str]]] = None
    values: Dict[str, str] = field(default_factory=dict)


def _render_bytes(content: bytes, values: Dict[str, str]) -> bytes:
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError:
        return content
    return substitute(text, values, strip_edit_comments=False).encode("utf-8")


class _Workspace:
    """Shared documents edited in memory during ``apply`` and written once."""

    def __init__(self, scope: SyncScope) -> None:
        self.scope = scope
        self.settings_error: Optional[str] = None
        try:
            self.settings: Optional[Settings] = Settings.load(scope.settings_file)
        except ValueError as exc:
            self.settings = None
            self.settings_error = str(exc)
            logger.warning("Settings file %s is unreadable: %s", scope.settings_file, exc)
        self._settings_before = self.settings.to_dict() if self.settings is not None else None
        self.ownership = SettingsOwnership(scope.ledger_file)
        self._ledger_before = dict(self.ownership.entries)
        self.ignore = IgnoreFile(scope.ignore_file)

    def settings_failure(self, pack_id: str, artifact: str) -> ArtifactApplyFailure:
        return ArtifactApplyFailure(
            f"Cannot edit {self.scope.settings_file.name}: {self.settings_error}",
            pack_id=pack_id,
            artifact=artifact,
        )

    def flush(self, json_opts: Dict[str, Any], before_write: Callable[[Path], None]) -> bool:
        """Write the settings file and ledger if either changed."""
        changed = False
        if self.settings is not None and self.settings.to_dict() != self._settings_before:
            before_write(self.scope.settings_file)
            self.settings.save(self.scope.settings_file, **json_opts)
            changed = True
        if self.ownership.entries != self._ledger_before:
            self.ownership.save()
            changed = True
        return changed


class ConvergenceEngine:
    def __init__(
        self,
        registry: PackRegistry,
        scope: SyncScope,
        *,
        executor: ComponentExecutor,
        refcounter: Optional[ResourceRefCounter] = None,
        index: Optional[ReferenceIndex] = None,
        json_opts: Optional[Dict[str, Any]] = None,
        backups: bool = True,
    ) -> None:
        self.registry = registry
        self.scope = scope
        self.executor = executor
        self.refcounter = refcounter
        self.index = index
        self.json_opts = dict(json_opts or {})
        self.backups = backups

    def sync(self, request: SyncRequest) -> SyncReport:
        return self.apply(self.plan(request))

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan(self, request: SyncRequest) -> SyncPlan:
        """Compute desired records and their diffs without side effects.

        Raises:
            StatePersistenceFailure: The scope's state file is unreadable.
        """
        state = SyncState.load(self.scope.state_file)
        plan = SyncPlan(scope=self.scope, state=state)
        previous = set(state.configured_packs)
        requested = state.configured_packs if request.packs is None else request.packs

        desired: List[Pack] = []
        for pack_id in sorted(set(requested)):
            pack = self.registry.get(pack_id)
            if pack is None:
                error = self.registry.errors.get(pack_id) or InvalidConfiguration(
                    f"Unknown pack '{pack_id}'", pack_id=pack_id
                )
                plan.errors.append(error)
                if pack_id in previous:
                    plan.held.append(pack_id)
                continue
            desired.append(pack)

        plan.values = self._resolve_values(desired, state, request, plan.warnings)

        for pack in desired:
            try:
                pp = self._plan_pack(pack, state, request, plan.values, plan.warnings)
            except InvalidConfiguration as exc:
                logger.warning("Skipping pack %s: %s", pack.id, exc)
                plan.errors.append(exc)
                if pack.id in previous:
                    plan.held.append(pack.id)
                continue
            plan.packs.append(pp)

        self._settle_conflicts(plan)
        for pp in plan.packs:
            pp.diff = diff_records(pp.previous, pp.desired)

        keep = {pp.pack_id for pp in plan.packs} | set(plan.held)
        for pack_id in sorted(previous - keep):
            record = state.artifacts(pack_id) or ArtifactRecord()
            plan.removals.append(
                PackPlan(
                    pack_id=pack_id,
                    action=REMOVE,
                    previous=record,
                    desired=ArtifactRecord(),
                    diff=diff_records(record, ArtifactRecord()),
                    pack=self.registry.get(pack_id),
                )
            )

        logger.info(
            "Planned %s: %d pack(s), %d removal(s), %d operation(s)",
            self.scope.label,
            len(plan.packs),
            len(plan.removals),
            len(plan.operations()),
        )
        return plan

    def _resolve_values(
        self, packs: List[Pack], state: SyncState, request: SyncRequest, warnings: List[str]
    ) -> Dict[str, str]:
        """Builtins, then ``--set``, then previous values, then prompt defaults."""
        values: Dict[str, str] = {}
        for pack in packs:
            for prompt in pack.prompts:
                if prompt.default is not None:
                    values.setdefault(prompt.key, prompt.default)
        values.update(state.resolved_values)
        values.update(request.values)
        values.update(self.scope.builtin_values())
        for pack in packs:
            for prompt in pack.prompts:
                if prompt.key not in values:
                    warnings.append(
                        f"No value for {prompt.key} (pack {pack.id}); pass --set {prompt.key}=VALUE"
                    )
        return values

    def _exclusions(self, pack: Pack, state: SyncState, request: SyncRequest, warnings: List[str]) -> List[str]:
        from_request = request.exclusions is not None
        wanted = request.exclusions.get(pack.id, []) if from_request else state.excluded(pack.id)
        excluded: List[str] = []
        for component_id in wanted:
            component = pack.component(component_id)
            if component is None:
                if from_request:
                    warnings.append(f"Unknown component '{component_id}' in pack '{pack.id}' ignored")
                continue
            if component.is_required:
                warnings.append(f"Component '{component_id}' is required and cannot be excluded")
                continue
            excluded.append(component_id)
        return excluded

    def _plan_pack(
        self,
        pack: Pack,
        state: SyncState,
        request: SyncRequest,
        values: Dict[str, str],
        warnings: List[str],
    ) -> PackPlan:
        excluded = self._exclusions(pack, state, request, warnings)
        selected = [cid for cid in pack.component_ids if cid not in excluded]
        resolved = resolve(pack.components, selected, pack_id=pack.id)
        added_ids = [c.id for c in resolved.added_dependencies]
        readded = [cid for cid in added_ids if cid in excluded]
        if readded:
            warnings.append(
                f"Excluded component(s) {', '.join(readded)} re-added as dependencies in pack '{pack.id}'"
            )
            excluded = [cid for cid in excluded if cid not in readded]

        previous = state.artifacts(pack.id) if pack.id in state.configured_packs else None
        pp = PackPlan(
            pack_id=pack.id,
            action=ADD if previous is None else UPDATE,
            previous=previous,
            desired=ArtifactRecord(),
            diff=diff_records(None, ArtifactRecord()),
            pack=pack,
            excluded=sorted(excluded),
            added_dependencies=added_ids,
        )
        for component in resolved.ordered:
            try:
                self._plan_component(pack, component, values, pp.desired, pp.payload)
            except ArtifactApplyFailure as exc:
                logger.warning("Cannot plan %s: %s", component.id, exc)
                pp.failures.append(exc)

        for contribution in pack.templates:
            rendered = render_contribution(contribution, values)
            pp.desired.add("template_sections", contribution.section_id)
            pp.desired.checksums[artifact_key("template_sections", contribution.section_id)] = fingerprint(
                {"version": contribution.version, "content": rendered}
            )
            pp.payload.templates[contribution.section_id] = contribution
        return pp

    def _plan_component(
        self,
        pack: Pack,
        component: Component,
        values: Dict[str, str],
        record: ArtifactRecord,
        payload: PackPayload,
    ) -> None:
        action = component.action
        if isinstance(action, McpServerAction):
            data = substitute_data(action.to_dict(), values)
            server = McpServerAction(
                name=data["name"],
                command=data["command"],
                args=tuple(data["args"]),
                env=tuple(sorted(data["env"].items())),
                url=data["url"],
                scope=data["scope"],
            )
            ref = McpServerRef(server.name, server.resolved_scope(global_scope=self.scope.is_global))
            record.add("mcp_servers", ref)
            record.checksums[artifact_key("mcp_servers", ref)] = fingerprint({**server.to_dict(), "scope": ref.scope})
            payload.mcp_servers[server.name] = server
        elif isinstance(action, PluginAction):
            record.add("plugins", action.name)
        elif isinstance(action, PackageAction):
            record.add("packages", action.name)
        elif isinstance(action, CopyFileAction):
            self._plan_files(pack, component, action, values, record, payload)
        elif isinstance(action, SettingsFragmentAction):
            fragment = substitute_data(action.fragment, values)
            for key_path, value in fragment_key_paths(fragment).items():
                record.add("settings_keys", key_path)
                record.checksums[artifact_key("settings_keys", key_path)] = fingerprint(value)
                payload.settings[key_path] = value
            for event, command in fragment_hooks(fragment):
                record.add("hook_commands", command)
                payload.hook_events[command] = event
        elif isinstance(action, IgnoreEntriesAction):
            for entry in action.entries:
                record.add("ignore_entries", entry)
        elif isinstance(action, ShellAction):
            command = substitute(action.command, values, strip_edit_comments=False)
            record.checksums[shell_key(component.id)] = fingerprint(command)
            payload.shell[component.id] = command

    def _plan_files(
        self,
        pack: Pack,
        component: Component,
        action: CopyFileAction,
        values: Dict[str, str],
        record: ArtifactRecord,
        payload: PackPayload,
    ) -> None:
        source = action.source
        if not source.exists():
            raise ArtifactApplyFailure(
                f"Pack source not found: {source}", pack_id=pack.id, artifact=component.id
            )
        subdir = action.file_type.subdirectory
        base = self.scope.claude_dir / subdir if subdir else self.scope.claude_dir
        target = Path(os.path.normpath(base / action.destination))

        if source.is_dir():
            pairs = [(f, target / f.relative_to(source)) for f in sorted(source.rglob("*")) if f.is_file()]
        else:
            pairs = [(source, target)]

        executable = action.file_type is CopyFileType.HOOK
        for src, dest in pairs:
            if not self.scope.contains(dest):
                raise ArtifactApplyFailure(
                    f"Destination '{action.destination}' escapes {self.scope.claude_dir}",
                    pack_id=pack.id,
                    artifact=component.id,
                )
            try:
                content = _render_bytes(src.read_bytes(), values)
            except OSError as exc:
                raise ArtifactApplyFailure(
                    f"Cannot read {src}: {exc}", pack_id=pack.id, artifact=component.id
                ) from exc
            relative = self.scope.relative(dest)
            record.add("files", relative)
            record.checksums[artifact_key("files", relative)] = fingerprint(content)
            payload.files[relative] = (content, executable)

        if component.hook_event and source.is_file():
            command = f"{self.scope.hook_command_prefix}{action.destination}"
            record.add("hook_commands", command)
            payload.hook_events[command] = component.hook_event

    def _settle_conflicts(self, plan: SyncPlan) -> None:
        """Give every artifact to its first claimant in sorted pack order.

        Duplicate claims on shared kinds fold silently into the first
        claimant; any other duplicate is a conflict dropped from the later pack.
        """
        claims: Dict[str, str] = {}
        for pp in plan.packs:
            for kind, item in list(pp.desired.iter_artifacts()):
                key = artifact_key(kind, item)
                owner = claims.setdefault(key, pp.pack_id)
                if owner == pp.pack_id:
                    continue
                pp.desired.discard(kind, item)
                if kind in SHARED_KINDS:
                    logger.debug("%s shared by %s and %s; recorded under %s", key, owner, pp.pack_id, owner)
                    continue
                plan.conflicts.append(
                    ArtifactConflictError(
                        f"{key} is claimed by packs '{owner}' and '{pp.pack_id}'; kept by '{owner}'",
                        pack_id=pp.pack_id,
                        artifact=key,
                        context={"owner": owner},
                    )
                )

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    def apply(self, plan: SyncPlan) -> SyncReport:
        """Execute ``plan`` and persist the result.

        Raises:
            StatePersistenceFailure: State, settings, ledger or index could not be written.
        """
        report = SyncReport.from_plan(plan, dry_run=False)
        state = plan.state
        ws = _Workspace(self.scope)
        shared = self._shared_claims(plan)
        removed_sections: List[Tuple[str, str]] = []
        kept: Dict[str, List[Tuple[str, Any]]] = {}

        for pp in plan.removals:
            failed = self._unapply(pp, ws, report, shared, removed_sections)
            if failed:
                remaining = ArtifactRecord()
                for kind, item in failed:
                    self._restore(remaining, pp, kind, item)
                state.set_artifacts(pp.pack_id, remaining)
                logger.warning("Pack %s stays configured: %d artifact(s) not removed", pp.pack_id, len(failed))
            else:
                state.remove_pack(pp.pack_id)
                logger.info("Removed pack %s from %s", pp.pack_id, self.scope.label)

        for pp in plan.packs:
            if pp.previous is not None and not pp.partial:
                kept[pp.pack_id] = self._unapply(pp, ws, report, shared, removed_sections)

        finals: Dict[str, ArtifactRecord] = {}
        for pp in plan.packs:
            final = pp.desired.copy()
            if pp.partial and pp.previous is not None:
                for kind, item in pp.previous.iter_artifacts():
                    if item not in getattr(final, kind):
                        self._restore(final, pp, kind, item)
            for kind, item in kept.get(pp.pack_id, []):
                self._restore(final, pp, kind, item)
            self._apply_additions(pp, final, ws, report)
            finals[pp.pack_id] = final

        self._converge_settings(plan, finals, ws, report)
        self._converge_document(plan, finals, removed_sections, report)
        for pp in plan.packs:
            self._run_shell_actions(pp, finals[pp.pack_id], report)

        for pp in plan.packs:
            state.record_pack(pp.pack_id)
            state.set_artifacts(pp.pack_id, finals[pp.pack_id])
            state.set_excluded(pp.pack_id, pp.excluded)
        state.resolved_values = dict(plan.values)

        ws.flush(self.json_opts, partial(self._backup, report=report))
        state.save(self.scope.state_file, **self.json_opts)
        self._update_index(state, report)

        report.configured_packs = list(state.configured_packs)
        logger.info(
            "Synced %s: %d operation(s), %d failure(s)",
            self.scope.label,
            len(report.operations),
            len(report.failures),
        )
        return report

    @staticmethod
    def _restore(record: ArtifactRecord, pp: PackPlan, kind: str, item: Any) -> None:
        """Put a previously recorded artifact back into ``record`` with its old checksum."""
        record.add(kind, item)
        key = artifact_key(kind, item)
        if pp.previous is not None and key in pp.previous.checksums:
            record.checksums[key] = pp.previous.checksums[key]

    @staticmethod
    def _revert(record: ArtifactRecord, pp: PackPlan, kind: str, item: Any, *, added: bool) -> None:
        """Undo a failed addition or update in the record so the next run retries it."""
        if added:
            record.discard(kind, item)
            return
        key = artifact_key(kind, item)
        old = pp.previous.checksums.get(key) if pp.previous is not None else None
        if old is None:
            record.checksums.pop(key, None)
        else:
            record.checksums[key] = old

    @staticmethod
    def _shared_claims(plan: SyncPlan) -> Dict[str, Set[Any]]:
        claims: Dict[str, Set[Any]] = {kind: set() for kind in SHARED_KINDS}
        for pp in plan.packs:
            for kind in SHARED_KINDS:
                claims[kind].update(getattr(pp.desired, kind))
        return claims

    def _unapply(
        self,
        pp: PackPlan,
        ws: _Workspace,
        report: SyncReport,
        shared: Dict[str, Set[Any]],
        removed_sections: List[Tuple[str, str]],
    ) -> List[Tuple[str, Any]]:
        """Remove every artifact in ``pp.diff``'s removal deltas; return those that failed."""
        executor = self.executor.for_pack(pp.pack_id)
        failed: List[Tuple[str, Any]] = []
        for kind in ARTIFACT_KINDS:
            for item in pp.diff.delta(kind).removed:
                try:
                    action = self._unapply_one(pp.pack_id, kind, item, executor, ws, shared, removed_sections)
                except ArtifactApplyFailure as exc:
                    logger.warning("Removal failed: %s", exc)
                    report.failures.append(exc)
                    failed.append((kind, item))
                    continue
                if action is not None:
                    report.record(pp.pack_id, action, kind, item)
        return failed

    def _unapply_one(
        self,
        pack_id: str,
        kind: str,
        item: Any,
        executor: ComponentExecutor,
        ws: _Workspace,
        shared: Dict[str, Set[Any]],
        removed_sections: List[Tuple[str, str]],
    ) -> Optional[str]:
        if kind == "mcp_servers":
            executor.remove_mcp_server(item.name, scope=item.scope)
        elif kind == "files":
            executor.remove_file(self.scope.absolute(item), stop_at=self.scope.claude_dir)
        elif kind == "template_sections":
            removed_sections.append((pack_id, item))
            return None
        elif kind == "hook_commands":
            if ws.settings is None:
                raise ws.settings_failure(pack_id, artifact_key(kind, item))
            if not ws.settings.remove_hook(item):
                return None
        elif kind == "settings_keys":
            if ws.settings is None:
                raise ws.settings_failure(pack_id, artifact_key(kind, item))
            if not ws.ownership.owns(item):
                logger.info("Leaving user-owned settings key %s", item)
                return None
            ws.settings.remove_key(item)
            ws.ownership.remove(item)
        elif kind in GLOBAL_RESOURCE_KINDS:
            if item in shared[kind]:
                return KEEP
            if self.refcounter is not None and self.refcounter.is_still_needed(
                kind, item, scope_key=self.scope.key, pack_id=pack_id
            ):
                logger.info("Keeping %s '%s': still needed elsewhere", kind, item)
                return KEEP
            if kind == "packages":
                executor.uninstall_package(item)
            else:
                executor.uninstall_plugin(item)
        elif kind == "ignore_entries":
            if item in shared[kind]:
                return None
            executor.remove_ignore_entry(ws.ignore, item)
        return REMOVE

    def _apply_additions(self, pp: PackPlan, final: ArtifactRecord, ws: _Workspace, report: SyncReport) -> None:
        executor = self.executor.for_pack(pp.pack_id)
        payload = pp.payload

        def attempt(kind: str, item: Any, added: bool, fn: Callable[[], None]) -> None:
            try:
                fn()
            except ArtifactApplyFailure as exc:
                logger.warning("Apply failed: %s", exc)
                report.failures.append(exc)
                self._revert(final, pp, kind, item, added=added)
                return
            report.record(pp.pack_id, ADD if added else UPDATE, kind, item)

        mcp = pp.diff.delta("mcp_servers")
        for ref in [*mcp.added, *mcp.updated]:
            if ref not in final.mcp_servers:
                continue
            server = payload.mcp_servers[ref.name]
            attempt("mcp_servers", ref, ref in mcp.added, partial(executor.add_mcp_server, server, scope=ref.scope))

        files = pp.diff.delta("files")
        for relative in final.files:
            if relative not in payload.files:
                continue
            content, executable = payload.files[relative]
            path = self.scope.absolute(relative)
            write = partial(executor.write_file, path, content, executable=executable)
            if relative in files.added or relative in files.updated:
                attempt("files", relative, relative in files.added, write)
            elif not path.exists():
                try:
                    write()
                except ArtifactApplyFailure as exc:
                    report.failures.append(exc)
                    continue
                report.record(pp.pack_id, REPAIR, "files", relative)

        for name in pp.diff.delta("packages").added:
            if name in final.packages:
                attempt("packages", name, True, partial(executor.install_package, name))

        for name in pp.diff.delta("plugins").added:
            if name in final.plugins:
                attempt("plugins", name, True, partial(executor.install_plugin, name))

        for entry in pp.diff.delta("ignore_entries").added:
            if entry in final.ignore_entries:
                attempt("ignore_entries", entry, True, partial(executor.add_ignore_entry, ws.ignore, entry))

    def _converge_settings(
        self, plan: SyncPlan, finals: Dict[str, ArtifactRecord], ws: _Workspace, report: SyncReport
    ) -> None:
        """Bring hooks and declared keys in line with the final records.

        Absent keys are written and recorded in the ownership ledger. A key
        already present is rewritten only when packsync owns it and the
        pack's value changed. Keys the ledger owns that no pack declares any
        more are removed.
        """
        for pp in plan.packs:
            final = finals[pp.pack_id]
            keys = pp.diff.delta("settings_keys")
            hooks = pp.diff.delta("hook_commands")
            version = pp.pack.version if pp.pack is not None else ""

            if ws.settings is None:
                for kind, added in (("settings_keys", keys.added), ("hook_commands", hooks.added)):
                    for item in added:
                        report.failures.append(ws.settings_failure(pp.pack_id, artifact_key(kind, item)))
                        final.discard(kind, item)
                continue

            for key_path in list(final.settings_keys):
                if key_path not in pp.payload.settings:
                    continue
                value = pp.payload.settings[key_path]
                if not ws.settings.has(key_path):
                    ws.settings.set(key_path, value)
                    ws.ownership.record(key_path, version)
                    action = ADD if key_path in keys.added else REPAIR
                    report.record(pp.pack_id, action, "settings_keys", key_path)
                elif ws.ownership.owns(key_path):
                    if ws.settings.get(key_path) != value and (key_path in keys.updated or key_path in keys.added):
                        ws.settings.set(key_path, value)
                        ws.ownership.record(key_path, version)
                        report.record(pp.pack_id, UPDATE, "settings_keys", key_path)
                else:
                    logger.info("Settings key %s is user-defined; leaving it unchanged", key_path)

            for command in list(final.hook_commands):
                event = pp.payload.hook_events.get(command)
                if event is None:
                    continue
                if ws.settings.add_hook(event, command):
                    action = ADD if command in hooks.added else REPAIR
                    report.record(pp.pack_id, action, "hook_commands", command)

        if ws.settings is None:
            return
        declared: Set[str] = set()
        for record in plan.state.pack_artifacts.values():
            declared.update(record.settings_keys)
        for final in finals.values():
            declared.update(final.settings_keys)
        for key_path in ws.ownership.stale_keys(declared):
            ws.settings.remove_key(key_path)
            ws.ownership.remove(key_path)
            report.record(STALE_OWNER, REMOVE, "settings_keys", key_path)

    def _converge_document(
        self,
        plan: SyncPlan,
        finals: Dict[str, ArtifactRecord],
        removed_sections: Iterable[Tuple[str, str]],
        report: SyncReport,
    ) -> None:
        contributions = [
            pp.payload.templates[section_id]
            for pp in plan.packs
            for section_id in finals[pp.pack_id].template_sections
            if section_id in pp.payload.templates
        ]
        removed = list(removed_sections)
        if not contributions and not removed:
            return

        path = self.scope.document_file
        existing = read_text(path) if path.exists() else None
        if existing is None or (not parse_sections(existing) and not unpaired_sections(existing)):
            result = compose_or_update(existing, contributions, plan.values)
        else:
            edits = [SectionEdit(identifier=section_id) for _, section_id in removed]
            edits.extend(
                SectionEdit(
                    identifier=c.section_id,
                    content=render_contribution(c, plan.values),
                    version=c.version,
                )
                for c in contributions
            )
            result = apply_edits(existing, edits)
        report.warnings.extend(result.warnings)

        if result.content == (existing or ""):
            return
        if existing is not None:
            self._backup(path, report)
        if existing is not None and not result.content.strip():
            path.unlink()
            logger.info("Removed %s (no content left)", path)
        else:
            write_text(path, result.content)
            logger.info("Wrote %s", path)

        recorded = False
        for pack_id, section_id in removed:
            report.record(pack_id, REMOVE, "template_sections", section_id)
            recorded = True
        for pp in plan.packs:
            delta = pp.diff.delta("template_sections")
            for section_id in [*delta.added, *delta.updated]:
                report.record(pp.pack_id, ADD if section_id in delta.added else UPDATE, "template_sections", section_id)
                recorded = True
        if not recorded:
            report.record(DOCUMENT_OWNER, REPAIR, "document", path.name)

    def _run_shell_actions(self, pp: PackPlan, final: ArtifactRecord, report: SyncReport) -> None:
        """Run shell actions that are new or whose command changed."""
        executor = self.executor.for_pack(pp.pack_id)
        for key in pp.diff.shell_runs:
            component_id = key.split(":", 1)[1]
            command = pp.payload.shell.get(component_id)
            if command is None:
                continue
            try:
                executor.run_shell(command, cwd=self.scope.root, component_id=component_id)
            except ArtifactApplyFailure as exc:
                logger.warning("Shell action failed: %s", exc)
                report.failures.append(exc)
                old = pp.previous.checksums.get(key) if pp.previous is not None else None
                if old is None:
                    final.checksums.pop(key, None)
                else:
                    final.checksums[key] = old
                continue
            report.record(pp.pack_id, RUN, "shell", component_id)

    def _backup(self, path: Path, report: SyncReport) -> None:
        """Keep a timestamped copy of a shared document about to be rewritten."""
        if not self.backups:
            return
        try:
            backup_file(path)
        except OSError as exc:
            logger.warning("Could not back up %s: %s", path, exc)
            report.warnings.append(f"Could not back up {path.name}: {exc}")

    def _update_index(self, state: SyncState, report: SyncReport) -> None:
        if self.index is None:
            return
        try:
            data = self.index.load()
        except ReferenceIndexUnreadable as exc:
            logger.warning("Reference index not updated: %s", exc)
            report.warnings.append(f"Reference index not updated: {exc}")
            return
        ReferenceIndex.upsert(data, self.scope.key, state.configured_packs)
        ReferenceIndex.prune_stale(data)
        self.index.save(data)


__all__ = ["ConvergenceEngine", "SyncRequest"]
