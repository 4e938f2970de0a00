"""Move plan data structures."""

from __future__ import annotations

from dataclasses import dataclass

from capimove.models.graph import Node
from capimove.models.resources import ObjectIdentity


@dataclass(frozen=True)
class Wave:
    """Nodes whose owners and soft references are satisfied by earlier waves."""

    index: int
    nodes: tuple[Node, ...]

    @property
    def identities(self) -> list[ObjectIdentity]:
        return [node.identity for node in self.nodes]

    def __len__(self) -> int:
        return len(self.nodes)


@dataclass(frozen=True)
class DeferredReference:
    """A soft reference that cannot be satisfied before its referrer is created.

    The referenced object is owned (transitively) by the referrer, so it is
    created after the referrer and the reference is resolved by name only.
    """

    source: ObjectIdentity
    target: ObjectIdentity
    field_path: str


@dataclass(frozen=True)
class MovePlan:
    """Ordered waves computed once from a validated graph.

    Immutable during execution.
    """

    waves: tuple[Wave, ...]
    orphans: tuple[ObjectIdentity, ...] = ()
    deferred: tuple[DeferredReference, ...] = ()
    namespace: str = ""
    dry_run: bool = False

    @property
    def nodes(self) -> list[Node]:
        return [node for wave in self.waves for node in wave.nodes]

    @property
    def node_count(self) -> int:
        return sum(len(wave) for wave in self.waves)

    def wave_of(self, key: str) -> int | None:
        for wave in self.waves:
            if any(node.key == key for node in wave.nodes):
                return wave.index
        return None

    def deletion_waves(self) -> list[Wave]:
        """Waves in reverse creation order with global nodes removed."""
        result = []
        for wave in reversed(self.waves):
            nodes = tuple(node for node in wave.nodes if not node.is_global)
            if nodes:
                result.append(Wave(index=wave.index, nodes=nodes))
        return result
