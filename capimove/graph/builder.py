"""Object graph discovery.

Lists every movable kind on the source (concurrently, bounded), fetches the
credential secrets of each discovered cluster by name, then wires owner and
soft-reference edges in a single pass over the discovered set.  Any listing
failure aborts the build; partial graphs are never returned.
"""

from __future__ import annotations

import asyncio
from typing import Any

from capimove.accessor.base import ResourceAccessor
from capimove.errors import DiscoveryError, GraphError, NotFoundError
from capimove.graph.object_graph import ObjectGraph, virtual_key
from capimove.models.config import MoveConfig
from capimove.models.graph import OWNER_REFERENCES_FIELD, Node, SoftReference
from capimove.models.resources import GroupVersionKind, ObjectIdentity
from capimove.observability.logging import get_logger
from capimove.registry import (
    CREDENTIAL_SECRET_SUFFIXES,
    SECRET_KIND,
    KindSpec,
    MovableKindRegistry,
    extract_soft_refs,
)
from capimove.retry import RetryPolicy, call_with_retry

_logger = get_logger("graph.builder")


class GraphBuilder:
    """Builds a fresh ObjectGraph from one source accessor."""

    def __init__(
        self,
        accessor: ResourceAccessor,
        registry: MovableKindRegistry,
        config: MoveConfig | None = None,
    ) -> None:
        config = config or MoveConfig()
        self._accessor = accessor
        self._registry = registry
        self._policy = RetryPolicy.from_config(config.retry)
        self._concurrency = config.concurrency.discovery

    async def build(self, namespace: str = "") -> ObjectGraph:
        """Discover the objects of every cluster in *namespace* ("" for all)."""
        discovered = await self._discover_kinds(namespace)
        clusters = [(spec, obj) for spec, objects in discovered for obj in objects if spec.root]
        secrets = await self._discover_credentials(clusters, discovered)

        graph = self._assemble(discovered, secrets)
        _logger.info(
            "graph_built",
            namespace=namespace or "<all>",
            nodes=len(graph),
            edges=graph.edge_count,
            clusters=len(clusters),
        )
        return graph

    # ------------------------------------------------------------------
    # Discovery (concurrent, read-only)
    # ------------------------------------------------------------------

    async def _discover_kinds(self, namespace: str) -> list[tuple[KindSpec, list[dict[str, Any]]]]:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _list(spec: KindSpec) -> list[dict[str, Any]]:
            async with semaphore:
                return await call_with_retry(
                    lambda: self._accessor.list(spec, namespace if spec.namespaced else "", spec.selector),
                    self._policy,
                    accessor=self._accessor.name,
                    operation="list",
                    identity=spec.kind,
                )

        kinds = list(self._registry)
        results = await asyncio.gather(*(_list(spec) for spec in kinds), return_exceptions=True)

        failures = []
        discovered = []
        for spec, result in zip(kinds, results, strict=True):
            if isinstance(result, BaseException):
                _logger.error("list_failed", kind=str(spec.gvk), error=str(result))
                failures.append(f"{spec.kind}: {result}")
                continue
            _logger.debug("kind_listed", kind=str(spec.gvk), count=len(result))
            discovered.append((spec, result))
        if failures:
            raise DiscoveryError("listing movable kinds failed (" + "; ".join(failures) + ")")
        return discovered

    async def _discover_credentials(
        self,
        clusters: list[tuple[KindSpec, dict[str, Any]]],
        discovered: list[tuple[KindSpec, list[dict[str, Any]]]],
    ) -> list[tuple[dict[str, Any], dict[str, Any]]]:
        """Fetch ``<cluster>-<suffix>`` secrets; returns ``(secret, cluster)`` pairs."""
        already_listed = {
            _uid(obj)
            for spec, objects in discovered
            if spec.gvk.group_kind == SECRET_KIND.gvk.group_kind
            for obj in objects
        }
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _fetch(cluster: dict[str, Any], suffix: str) -> tuple[dict[str, Any], dict[str, Any]] | None:
            metadata = cluster.get("metadata", {})
            name = f"{metadata.get('name', '')}-{suffix}"
            async with semaphore:
                try:
                    secret = await call_with_retry(
                        lambda: self._accessor.get(SECRET_KIND, metadata.get("namespace", ""), name),
                        self._policy,
                        accessor=self._accessor.name,
                        operation="get",
                        identity=name,
                    )
                except NotFoundError:
                    return None
            return secret, cluster

        calls = [_fetch(cluster, suffix) for _, cluster in clusters for suffix in CREDENTIAL_SECRET_SUFFIXES]
        results = await asyncio.gather(*calls, return_exceptions=True)

        failures = [str(result) for result in results if isinstance(result, BaseException)]
        if failures:
            raise DiscoveryError("fetching cluster credential secrets failed (" + "; ".join(failures) + ")")
        return [
            result
            for result in results
            if result is not None and not isinstance(result, BaseException) and _uid(result[0]) not in already_listed
        ]

    # ------------------------------------------------------------------
    # Assembly (single-threaded)
    # ------------------------------------------------------------------

    def _assemble(
        self,
        discovered: list[tuple[KindSpec, list[dict[str, Any]]]],
        secrets: list[tuple[dict[str, Any], dict[str, Any]]],
    ) -> ObjectGraph:
        graph = ObjectGraph()
        specs: dict[str, KindSpec] = {}

        for spec, objects in discovered:
            for obj in objects:
                self._add_node(graph, spec, obj)
                specs[_uid(obj)] = spec
        implicit_owner: dict[str, str] = {}
        for secret, cluster in secrets:
            self._add_node(graph, SECRET_KIND, secret)
            specs[_uid(secret)] = SECRET_KIND
            implicit_owner[_uid(secret)] = _uid(cluster)

        for node in graph.nodes:
            obj = node.obj
            assert obj is not None
            self._wire_owners(graph, node, obj)
            if not node.owners and node.key in implicit_owner:
                node.owners.add(implicit_owner[node.key])
            self._wire_soft_refs(graph, node, specs[node.key], obj)
        return graph

    def _add_node(self, graph: ObjectGraph, spec: KindSpec, obj: dict[str, Any]) -> None:
        identity = ObjectIdentity.from_object(obj)
        if not identity.uid:
            raise DiscoveryError("discovered object has no uid", identities=[identity])
        existing = graph.get(identity.uid)
        if existing is not None:
            raise GraphError(
                "object discovered by more than one pass",
                identities=[existing.identity, identity],
            )
        graph.add(
            Node(
                key=identity.uid,
                identity=identity,
                obj=obj,
                is_global=spec.is_global,
                root=spec.root,
            )
        )

    def _wire_owners(self, graph: ObjectGraph, node: Node, obj: dict[str, Any]) -> None:
        for ref in obj.get("metadata", {}).get("ownerReferences") or []:
            uid = str(ref.get("uid", ""))
            if not uid:
                continue
            gvk = GroupVersionKind.from_api_version(str(ref.get("apiVersion", "")), str(ref.get("kind", "")))
            owner_spec = self._registry.lookup_gvk(gvk)
            namespace = node.identity.namespace if owner_spec is None or owner_spec.namespaced else ""
            owner_identity = ObjectIdentity(gvk=gvk, namespace=namespace, name=str(ref.get("name", "")), uid=uid)
            owner = graph.ensure_virtual(uid, owner_identity)
            if owner.virtual:
                _logger.debug("unresolved_owner", node=str(node), owner=str(owner_identity), field=OWNER_REFERENCES_FIELD)
            node.owners.add(uid)

    def _wire_soft_refs(self, graph: ObjectGraph, node: Node, spec: KindSpec, obj: dict[str, Any]) -> None:
        for field_path, ref in extract_soft_refs(spec, obj):
            gvk = GroupVersionKind.from_api_version(str(ref.get("apiVersion", "")), str(ref["kind"]))
            target_spec = self._registry.lookup_gvk(gvk)
            namespace = ""
            if target_spec is None or target_spec.namespaced:
                namespace = str(ref.get("namespace") or node.identity.namespace)
            identity = ObjectIdentity(gvk=gvk, namespace=namespace, name=str(ref["name"]))
            target = graph.find(identity)
            if target is None:
                _logger.debug("unresolved_soft_reference", node=str(node), target=str(identity), field=field_path)
                target = graph.ensure_virtual(virtual_key(identity), identity)
            node.soft_refs.append(SoftReference(target=target.key, field_path=field_path))


def _uid(obj: dict[str, Any]) -> str:
    return str(obj.get("metadata", {}).get("uid") or "")
