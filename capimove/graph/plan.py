"""Move plan derivation.

A node's wave is one past the latest wave among its owners and soft
references, so every prerequisite lands strictly earlier.  A soft
reference to an object the referrer itself (transitively) owns can never
be satisfied first; it is deferred instead of treated as a cycle.
"""

from __future__ import annotations

from capimove.errors import GraphError
from capimove.graph.object_graph import ObjectGraph
from capimove.models.graph import Node
from capimove.models.plan import DeferredReference, MovePlan, Wave
from capimove.models.resources import ObjectIdentity
from capimove.observability.logging import get_logger

_logger = get_logger("graph.plan")


def _sort_key(node: Node) -> tuple[str, str, str, str]:
    identity = node.identity
    return (identity.gvk.group, identity.gvk.kind, identity.namespace, identity.name)


def find_deferred(graph: ObjectGraph) -> list[DeferredReference]:
    """Soft references whose target is owned, directly or not, by the referrer."""
    deferred = []
    for node in graph:
        for ref in node.soft_refs:
            if node.key in graph.ancestors(ref.target):
                target = graph.get(ref.target)
                assert target is not None
                deferred.append(
                    DeferredReference(source=node.identity, target=target.identity, field_path=ref.field_path)
                )
    return deferred


def compute_waves(
    graph: ObjectGraph,
    orphans: list[ObjectIdentity] | None = None,
    namespace: str = "",
    dry_run: bool = False,
) -> MovePlan:
    """Layer a validated graph into creation waves.

    Raises GraphError if the ordering edges (owners plus non-deferred soft
    references) still contain a cycle.
    """
    deferred = find_deferred(graph)
    skipped = {(d.source, d.field_path) for d in deferred}

    prerequisites: dict[str, set[str]] = {}
    for node in graph:
        needs = set(node.owners)
        needs.update(ref.target for ref in node.soft_refs if (node.identity, ref.field_path) not in skipped)
        needs.discard(node.key)
        prerequisites[node.key] = needs

    waves: list[Wave] = []
    placed: set[str] = set()
    pending = set(prerequisites)
    while pending:
        ready = [key for key in pending if prerequisites[key] <= placed]
        if not ready:
            stuck = sorted((graph.get(key) for key in pending), key=_sort_key)  # type: ignore[arg-type]
            _logger.error("ordering_cycle_detected", objects=[str(node) for node in stuck])
            raise GraphError("reference cycle prevents ordering", identities=[node.identity for node in stuck])
        nodes = sorted((graph.get(key) for key in ready), key=_sort_key)  # type: ignore[arg-type]
        waves.append(Wave(index=len(waves), nodes=tuple(nodes)))  # type: ignore[arg-type]
        placed.update(ready)
        pending.difference_update(ready)

    plan = MovePlan(
        waves=tuple(waves),
        orphans=tuple(orphans or ()),
        deferred=tuple(deferred),
        namespace=namespace,
        dry_run=dry_run,
    )
    _logger.info(
        "move_plan_computed",
        waves=len(plan.waves),
        nodes=plan.node_count,
        deferred=len(plan.deferred),
        dry_run=dry_run,
    )
    return plan
