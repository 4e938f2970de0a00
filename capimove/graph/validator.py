"""Structural validation of an object graph.

Pure analysis: never touches an accessor, never mutates the graph, and is
safe to run speculatively.  Checks run in order:

(a) owner-edge cycles, found with an iterative DFS over an explicit
    visitation-state map;
(b) virtual nodes left over from discovery (unresolved references);
(c) orphans: nodes not reachable from any cluster root.  Reported only;
    they are moved as independent roots;
(d) objects already being deleted on the source.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum

from capimove.errors import GraphError
from capimove.graph.object_graph import ObjectGraph
from capimove.models.resources import ObjectIdentity
from capimove.observability.logging import get_logger

_logger = get_logger("graph.validator")


class _Visit(Enum):
    UNVISITED = 0
    IN_PROGRESS = 1
    DONE = 2


@dataclass
class ValidationReport:
    """Outcome of a successful validation."""

    graph: ObjectGraph
    orphans: list[ObjectIdentity] = field(default_factory=list)


def find_owner_cycles(graph: ObjectGraph) -> list[list[str]]:
    """Return every owner cycle found, each as the list of participating keys."""
    state = {node.key: _Visit.UNVISITED for node in graph}
    cycles: list[list[str]] = []

    for start in sorted(state):
        if state[start] is not _Visit.UNVISITED:
            continue
        state[start] = _Visit.IN_PROGRESS
        path = [start]
        stack = [iter(sorted(_owners(graph, start)))]
        while stack:
            owner = next(stack[-1], None)
            if owner is None:
                state[path.pop()] = _Visit.DONE
                stack.pop()
                continue
            owner_state = state.get(owner, _Visit.DONE)
            if owner_state is _Visit.IN_PROGRESS:
                cycles.append(path[path.index(owner) :])
            elif owner_state is _Visit.UNVISITED:
                state[owner] = _Visit.IN_PROGRESS
                path.append(owner)
                stack.append(iter(sorted(_owners(graph, owner))))
    return cycles


def _owners(graph: ObjectGraph, key: str) -> set[str]:
    node = graph.get(key)
    return node.owners if node is not None else set()


def find_orphans(graph: ObjectGraph) -> list[ObjectIdentity]:
    """Non-virtual nodes unreachable (through owner or soft edges) from any root."""
    # Edges are followed in both directions: whatever a cluster member needs,
    # and whatever depends on it, belongs to the same cluster.
    adjacent: dict[str, set[str]] = defaultdict(set)
    for node in graph:
        for target in node.owners | {ref.target for ref in node.soft_refs}:
            adjacent[node.key].add(target)
            adjacent[target].add(node.key)

    reached = {node.key for node in graph if node.root and not node.virtual}
    frontier = list(reached)
    while frontier:
        for other in adjacent[frontier.pop()] - reached:
            reached.add(other)
            frontier.append(other)
    return [node.identity for node in graph if not node.virtual and node.key not in reached]


def validate_graph(graph: ObjectGraph) -> ValidationReport:
    """Validate *graph*; raise GraphError with a diagnosis on the first failing check."""
    cycles = find_owner_cycles(graph)
    if cycles:
        members = sorted({key for cycle in cycles for key in cycle})
        identities = [graph.get(key).identity for key in members]  # type: ignore[union-attr]
        _logger.error("owner_cycle_detected", cycles=[[str(graph.get(k)) for k in cycle] for cycle in cycles])
        raise GraphError("ownership cycle detected", identities=identities)

    virtual = graph.virtual_nodes()
    if virtual:
        details = []
        for node in virtual:
            for referrer, field_path in graph.referrers(node.key):
                details.append(f"{referrer} {field_path} -> {node}")
        _logger.error("unresolved_references", references=details)
        raise GraphError(
            "unresolved references (" + "; ".join(details) + ")",
            identities=[node.identity for node in virtual],
        )

    orphans = find_orphans(graph)
    if orphans:
        _logger.warning("orphaned_objects", objects=[str(identity) for identity in orphans])

    deleting = [node.identity for node in graph if node.deleting]
    if deleting:
        raise GraphError("objects are being deleted on the source", identities=deleting)

    _logger.info("graph_validated", nodes=len(graph), orphans=len(orphans))
    return ValidationReport(graph=graph, orphans=orphans)
