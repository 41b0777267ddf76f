"""Dependency ordering for a pack's components.

Components may only depend on components of the same pack. The selected set
is closed over its transitive dependencies, then ordered with Kahn's
algorithm so every component comes after everything it depends on. Ties are
broken by declaration order, which keeps the plan stable across runs.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set

from packsync.core.exceptions import DependencyCycleError, InvalidConfiguration

from .model import Component


@dataclass(frozen=True)
class ResolvedPlan:
    ordered: List[Component]
    added_dependencies: List[Component]


def _index(components: Sequence[Component]) -> Dict[str, Component]:
    return {c.id: c for c in components}


def _check_known(components: Sequence[Component], *, pack_id: Optional[str]) -> None:
    known = {c.id for c in components}
    for c in components:
        for dep in c.dependencies:
            if dep not in known:
                raise InvalidConfiguration(
                    f"Component '{c.id}' depends on unknown component '{dep}'",
                    pack_id=pack_id,
                    context={"component": c.id, "dependency": dep},
                )


def _find_cycle(components: Sequence[Component], remaining: Set[str]) -> List[str]:
    """Return one cycle among ``remaining`` ids, dependencies first.

    For ``A -> B -> C -> A`` (A depends on B, ...) this yields ``[C, B, A]``.
    """
    by_id = _index(components)
    order = [c.id for c in components if c.id in remaining]
    state: Dict[str, int] = {}  # 1 = on stack, 2 = done
    stack: List[str] = []

    def visit(node: str) -> Optional[List[str]]:
        state[node] = 1
        stack.append(node)
        for dep in by_id[node].dependencies:
            if dep not in remaining:
                continue
            if state.get(dep) == 1:
                cycle = stack[stack.index(dep):]
                return list(reversed(cycle))
            if dep not in state:
                found = visit(dep)
                if found:
                    return found
        stack.pop()
        state[node] = 2
        return None

    for start in order:
        if start not in state:
            found = visit(start)
            if found:
                return found
    return sorted(remaining)


def _topological(components: Sequence[Component], ids: Iterable[str]) -> List[Component]:
    wanted = set(ids)
    declared = [c for c in components if c.id in wanted]
    position = {c.id: i for i, c in enumerate(declared)}

    indegree: Dict[str, int] = {c.id: 0 for c in declared}
    dependents: Dict[str, List[str]] = {c.id: [] for c in declared}
    for c in declared:
        for dep in c.dependencies:
            if dep in wanted:
                indegree[c.id] += 1
                dependents[dep].append(c.id)

    ready = deque(sorted((cid for cid, n in indegree.items() if n == 0), key=position.__getitem__))
    ordered: List[str] = []
    while ready:
        cid = ready.popleft()
        ordered.append(cid)
        released = []
        for child in dependents[cid]:
            indegree[child] -= 1
            if indegree[child] == 0:
                released.append(child)
        # Keep the ready queue in declaration order.
        merged = sorted([*ready, *released], key=position.__getitem__)
        ready = deque(merged)

    if len(ordered) != len(declared):
        remaining = {cid for cid in indegree if cid not in set(ordered)}
        raise DependencyCycleError(_find_cycle(components, remaining))

    by_id = _index(declared)
    return [by_id[cid] for cid in ordered]


def validate_component_graph(components: Sequence[Component], *, pack_id: Optional[str] = None) -> None:
    """Fail when a dependency is unknown or the dependency graph has a cycle."""
    _check_known(components, pack_id=pack_id)
    try:
        _topological(components, [c.id for c in components])
    except DependencyCycleError as exc:
        raise DependencyCycleError(exc.cycle, pack_id=pack_id) from None


def resolve(
    components: Sequence[Component],
    selected_ids: Iterable[str],
    *,
    pack_id: Optional[str] = None,
) -> ResolvedPlan:
    """Return ``selected_ids`` plus transitive dependencies in install order.

    Raises:
        InvalidConfiguration: A selected id or a dependency is not in ``components``.
        DependencyCycleError: The induced subgraph is cyclic.
    """
    by_id = _index(components)
    selected = list(dict.fromkeys(selected_ids))
    for cid in selected:
        if cid not in by_id:
            raise InvalidConfiguration(
                f"Unknown component '{cid}'", pack_id=pack_id, context={"component": cid}
            )

    closure: Set[str] = set()
    pending = list(selected)
    while pending:
        cid = pending.pop()
        if cid in closure:
            continue
        closure.add(cid)
        for dep in by_id[cid].dependencies:
            if dep not in by_id:
                raise InvalidConfiguration(
                    f"Component '{cid}' depends on unknown component '{dep}'",
                    pack_id=pack_id,
                    context={"component": cid, "dependency": dep},
                )
            pending.append(dep)

    try:
        ordered = _topological(components, closure)
    except DependencyCycleError as exc:
        raise DependencyCycleError(exc.cycle, pack_id=pack_id) from None

    chosen = set(selected)
    added = [c for c in ordered if c.id not in chosen]
    return ResolvedPlan(ordered=ordered, added_dependencies=added)


__all__ = ["ResolvedPlan", "resolve", "validate_component_graph"]
