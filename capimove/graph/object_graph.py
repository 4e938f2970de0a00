"""In-memory object graph.

Nodes are keyed by source UID.  A secondary index by
(group, kind, namespace, name) resolves field references, which carry
names rather than UIDs.
"""

from __future__ import annotations

from collections.abc import Iterator

from capimove.models.graph import OWNER_REFERENCES_FIELD, Node
from capimove.models.resources import ObjectIdentity


def virtual_key(identity: ObjectIdentity) -> str:
    """Synthetic key for a referenced object that carries no UID."""
    group, kind = identity.gvk.group_kind
    return f"virtual:{group}/{kind}/{identity.namespace}/{identity.name}"


class ObjectGraph:
    """Directed graph of nodes with owner and soft-reference edges.

    Edges point from a dependent to the node it needs (owner or referenced
    object).  ``dependents`` walks them in the opposite direction.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}
        self._by_name: dict[tuple[str, str, str, str], str] = {}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add(self, node: Node) -> None:
        if node.key in self._nodes:
            raise KeyError(f"Duplicate node key {node.key} ({node.identity})")
        self._nodes[node.key] = node
        self._by_name[_name_key(node.identity)] = node.key

    def ensure_virtual(self, key: str, identity: ObjectIdentity) -> Node:
        """Return the node for *key*, creating a virtual placeholder if missing."""
        node = self._nodes.get(key)
        if node is None:
            node = Node(key=key, identity=identity, virtual=True)
            self.add(node)
        return node

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, key: str) -> Node | None:
        return self._nodes.get(key)

    def find(self, identity: ObjectIdentity) -> Node | None:
        """Find a node by group, kind, namespace and name (version-agnostic)."""
        key = self._by_name.get(_name_key(identity))
        return self._nodes.get(key) if key is not None else None

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    def virtual_nodes(self) -> list[Node]:
        return [node for node in self._nodes.values() if node.virtual]

    def dependents(self, key: str) -> list[Node]:
        """Nodes that own or soft-reference *key*."""
        return [
            node
            for node in self._nodes.values()
            if key in node.owners or any(ref.target == key for ref in node.soft_refs)
        ]

    def referrers(self, key: str) -> list[tuple[Node, str]]:
        """``(node, field_path)`` for every edge pointing at *key*."""
        result = []
        for node in self._nodes.values():
            if key in node.owners:
                result.append((node, OWNER_REFERENCES_FIELD))
            for ref in node.soft_refs:
                if ref.target == key:
                    result.append((node, ref.field_path))
        return result

    def ancestors(self, key: str) -> set[str]:
        """Keys of every node reachable from *key* through owner edges."""
        seen: set[str] = set()
        stack = [key]
        while stack:
            node = self._nodes.get(stack.pop())
            if node is None:
                continue
            for owner in node.owners:
                if owner not in seen:
                    seen.add(owner)
                    stack.append(owner)
        return seen

    def __contains__(self, key: object) -> bool:
        return key in self._nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes.values()))

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return sum(len(node.owners) + len(node.soft_refs) for node in self._nodes.values())


def _name_key(identity: ObjectIdentity) -> tuple[str, str, str, str]:
    group, kind = identity.gvk.group_kind
    return (group, kind, identity.namespace, identity.name)
