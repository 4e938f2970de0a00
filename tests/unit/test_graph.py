"""Tests for the movable-kind registry, object graph, graph builder and validator.

Covers discovery against the recording fake accessor (owner, soft-reference
and credential-secret wiring), failure handling during discovery, and every
validation check: owner cycles, unresolved references, orphans and objects
already being deleted.
"""

from __future__ import annotations

import pytest

from capimove.errors import AccessorError, DiscoveryError, GraphError
from capimove.graph.builder import GraphBuilder
from capimove.graph.object_graph import ObjectGraph, virtual_key
from capimove.graph.validator import find_orphans, find_owner_cycles, validate_graph
from capimove.models.config import MoveConfig, RetryConfig
from capimove.models.graph import OWNER_REFERENCES_FIELD, Node, SoftReference
from capimove.models.resources import GroupVersionKind, ObjectIdentity
from capimove.registry import (
    SECRET_KIND,
    KindSpec,
    MovableKindRegistry,
    default_registry,
    extract_soft_refs,
    get_field,
)
from tests.fakes import (
    INFRA,
    TEST_GROUP,
    BrokenAccessor,
    FakeAccessor,
    cluster_scenario,
    make_object,
    member_labels,
    owner_ref,
    scenario_registry,
)

_FAST = MoveConfig(retry=RetryConfig(max_attempts=2, backoff_base_seconds=0.0))


def _widget_identity(name: str) -> ObjectIdentity:
    return ObjectIdentity(GroupVersionKind("test.x-k8s.io", "v1", "Widget"), "default", name, uid=f"{name}-uid")


def _node(name: str, owners: tuple[str, ...] = (), root: bool = False) -> Node:
    identity = _widget_identity(name)
    return Node(key=identity.uid, identity=identity, obj={"metadata": {}}, owners=set(owners), root=root)


async def _build(*objects: dict) -> ObjectGraph:
    source = FakeAccessor("source")
    source.add(*objects)
    return await GraphBuilder(source, scenario_registry(), _FAST).build("default")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_duplicate_group_kind_rejected(self) -> None:
        spec = KindSpec(GroupVersionKind("test.x-k8s.io", "v1", "Widget"), "widgets")
        registry = MovableKindRegistry([spec])
        with pytest.raises(ValueError, match="already registered"):
            registry.register(KindSpec(GroupVersionKind("test.x-k8s.io", "v2", "Widget"), "widgets"))

    def test_lookup_is_version_agnostic(self) -> None:
        registry = scenario_registry()
        spec = registry.lookup_gvk(GroupVersionKind("cluster.x-k8s.io", "v1alpha4", "Cluster"))
        assert spec is not None
        assert spec.root

    def test_secret_resolves_without_registration(self) -> None:
        assert scenario_registry().lookup("", "Secret") is SECRET_KIND

    def test_unknown_kind_returns_none(self) -> None:
        assert scenario_registry().lookup("example.com", "Gadget") is None

    def test_default_registry_has_single_cluster_root(self) -> None:
        roots = default_registry().roots
        assert [spec.kind for spec in roots] == ["Cluster"]

    def test_global_scope(self) -> None:
        registry = scenario_registry()
        infra = registry.lookup("infrastructure.cluster.x-k8s.io", "InfraCluster")
        assert infra is not None and infra.is_global
        cluster_scoped = KindSpec(GroupVersionKind("x", "v1", "Thing"), "things", namespaced=False)
        assert cluster_scoped.is_global

    def test_get_field_walks_dotted_path(self) -> None:
        obj = {"spec": {"template": {"spec": {"infrastructureRef": {"name": "a"}}}}}
        assert get_field(obj, "spec.template.spec.infrastructureRef") == {"name": "a"}
        assert get_field(obj, "spec.missing.name") is None
        assert get_field({"spec": "scalar"}, "spec.name") is None

    def test_extract_soft_refs_skips_incomplete_references(self) -> None:
        spec = scenario_registry().lookup("cluster.x-k8s.io", "Cluster")
        assert spec is not None
        obj = make_object("Cluster", "c", spec={"infrastructureRef": {"kind": "InfraCluster"}})
        assert extract_soft_refs(spec, obj) == []


# ---------------------------------------------------------------------------
# Object graph
# ---------------------------------------------------------------------------


class TestObjectGraph:
    def test_duplicate_key_raises(self) -> None:
        graph = ObjectGraph()
        graph.add(_node("a"))
        with pytest.raises(KeyError):
            graph.add(_node("a"))

    def test_ensure_virtual_reuses_existing_node(self) -> None:
        graph = ObjectGraph()
        real = _node("a")
        graph.add(real)
        assert graph.ensure_virtual("a-uid", real.identity) is real
        placeholder = graph.ensure_virtual("missing", _widget_identity("missing"))
        assert placeholder.virtual
        assert graph.virtual_nodes() == [placeholder]

    def test_find_ignores_version_and_uid(self) -> None:
        graph = ObjectGraph()
        graph.add(_node("a"))
        probe = ObjectIdentity(GroupVersionKind("test.x-k8s.io", "v9", "Widget"), "default", "a")
        found = graph.find(probe)
        assert found is not None and found.key == "a-uid"

    def test_referrers_and_ancestors(self) -> None:
        graph = ObjectGraph()
        graph.add(_node("root"))
        graph.add(_node("mid", owners=("root-uid",)))
        leaf = _node("leaf", owners=("mid-uid",))
        leaf.soft_refs.append(SoftReference(target="root-uid", field_path="spec.ref"))
        graph.add(leaf)

        assert graph.ancestors("leaf-uid") == {"mid-uid", "root-uid"}
        assert sorted(field for _, field in graph.referrers("root-uid")) == [OWNER_REFERENCES_FIELD, "spec.ref"]
        assert {node.key for node in graph.dependents("root-uid")} == {"mid-uid", "leaf-uid"}
        assert graph.edge_count == 3


# ---------------------------------------------------------------------------
# Graph builder
# ---------------------------------------------------------------------------


class TestGraphBuilder:
    async def test_wires_owner_soft_and_credential_edges(self) -> None:
        infra, cluster, machine_deployment, secret = cluster_scenario()
        graph = await _build(infra, cluster, machine_deployment, secret)

        assert len(graph) == 4
        assert not graph.virtual_nodes()
        cluster_node = graph.get("c1-src")
        assert cluster_node is not None and cluster_node.root
        assert cluster_node.soft_refs == [SoftReference(target="c1-infra-src", field_path="spec.infrastructureRef")]
        md_node = graph.get("c1-md-src")
        assert md_node is not None and md_node.owners == {"c1-src"}
        # Credential secrets without owner references belong to their cluster.
        secret_node = graph.get("c1-secret-src")
        assert secret_node is not None and secret_node.owners == {"c1-src"}
        infra_node = graph.get("c1-infra-src")
        assert infra_node is not None and infra_node.is_global

    async def test_credential_secrets_fetched_by_name(self) -> None:
        source = FakeAccessor("source")
        source.add(*cluster_scenario())
        await GraphBuilder(source, scenario_registry(), _FAST).build("default")

        assert sorted(source.ops("get")) == sorted(
            f"c1-{suffix}" for suffix in ("kubeconfig", "ca", "etcd", "sa", "proxy")
        )

    async def test_label_selector_limits_discovery(self) -> None:
        infra, cluster, machine_deployment, _ = cluster_scenario()
        unrelated = make_object("MachineDeployment", "stray", uid="stray-uid")
        graph = await _build(infra, cluster, machine_deployment, unrelated)
        assert "stray-uid" not in graph

    async def test_namespace_scopes_discovery(self) -> None:
        source = FakeAccessor("source")
        source.add(*cluster_scenario("c1", "team-a"), *cluster_scenario("c2", "team-b"))
        graph = await GraphBuilder(source, scenario_registry(), _FAST).build("team-a")
        assert {node.identity.namespace for node in graph} == {"team-a"}

    async def test_unknown_owner_becomes_virtual(self) -> None:
        ghost = make_object("Cluster", "ghost", uid="ghost-uid")
        orphaned = make_object("MachineDeployment", "md", uid="md-uid", owners=(ghost,), labels=member_labels("ghost"))
        graph = await _build(orphaned)

        virtual = graph.virtual_nodes()
        assert [node.key for node in virtual] == ["ghost-uid"]
        assert virtual[0].identity.name == "ghost"

    async def test_unresolved_soft_reference_becomes_virtual(self) -> None:
        cluster = make_object(
            "Cluster",
            "c1",
            uid="c1-uid",
            spec={"infrastructureRef": {"apiVersion": INFRA, "kind": "InfraCluster", "name": "missing"}},
        )
        graph = await _build(cluster)
        identity = ObjectIdentity(
            GroupVersionKind("infrastructure.cluster.x-k8s.io", "v1beta1", "InfraCluster"), "default", "missing"
        )
        assert virtual_key(identity) in graph

    async def test_listing_failure_aborts_build(self) -> None:
        builder = GraphBuilder(BrokenAccessor("source"), scenario_registry(), _FAST)
        with pytest.raises(DiscoveryError, match="listing movable kinds failed"):
            await builder.build("default")

    async def test_transient_listing_failure_is_retried(self) -> None:
        source = FakeAccessor("source")
        source.add(*cluster_scenario())
        source.fail("list", "Cluster", AccessorError("etcd leader changed"))
        graph = await GraphBuilder(source, scenario_registry(), _FAST).build("default")
        assert source.ops("list").count("Cluster") == 2
        assert "c1-src" in graph

    async def test_credential_fetch_failure_aborts_build(self) -> None:
        source = FakeAccessor("source")
        source.add(*cluster_scenario())
        source.fail("get", "c1-ca", AccessorError("forbidden"), AccessorError("forbidden"))
        with pytest.raises(DiscoveryError, match="credential secrets"):
            await GraphBuilder(source, scenario_registry(), _FAST).build("default")

    async def test_object_without_uid_rejected(self) -> None:
        source = FakeAccessor("source")
        source.add(make_object("Widget", "w", api_version=TEST_GROUP, uid="w-uid"))
        next(iter(source.objects.values()))["metadata"]["uid"] = ""
        with pytest.raises(DiscoveryError, match="no uid"):
            await GraphBuilder(source, scenario_registry(), _FAST).build("default")

    async def test_build_is_read_only(self) -> None:
        source = FakeAccessor("source")
        source.add(*cluster_scenario())
        await GraphBuilder(source, scenario_registry(), _FAST).build("default")
        assert source.mutations == []


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class TestValidator:
    def test_owner_cycle_detected(self) -> None:
        graph = ObjectGraph()
        graph.add(_node("x", owners=("y-uid",)))
        graph.add(_node("y", owners=("x-uid",)))

        cycles = find_owner_cycles(graph)
        assert len(cycles) == 1
        assert sorted(cycles[0]) == ["x-uid", "y-uid"]
        with pytest.raises(GraphError, match="ownership cycle") as exc_info:
            validate_graph(graph)
        assert sorted(identity.name for identity in exc_info.value.identities) == ["x", "y"]

    def test_self_ownership_is_a_cycle(self) -> None:
        graph = ObjectGraph()
        graph.add(_node("x", owners=("x-uid",)))
        assert find_owner_cycles(graph) == [["x-uid"]]

    def test_diamond_is_not_a_cycle(self) -> None:
        graph = ObjectGraph()
        graph.add(_node("top", root=True))
        graph.add(_node("left", owners=("top-uid",)))
        graph.add(_node("right", owners=("top-uid",)))
        graph.add(_node("bottom", owners=("left-uid", "right-uid")))
        assert find_owner_cycles(graph) == []
        assert validate_graph(graph).orphans == []

    def test_deep_chain_does_not_recurse(self) -> None:
        graph = ObjectGraph()
        graph.add(_node("n0", root=True))
        for i in range(1, 5000):
            graph.add(_node(f"n{i}", owners=(f"n{i - 1}-uid",)))
        assert find_owner_cycles(graph) == []

    def test_virtual_node_reported_with_referrer_and_field(self) -> None:
        graph = ObjectGraph()
        graph.add(_node("child", owners=("gone-uid",)))
        graph.ensure_virtual("gone-uid", _widget_identity("gone"))
        with pytest.raises(GraphError) as exc_info:
            validate_graph(graph)
        assert "Widget/default/child metadata.ownerReferences -> Widget/default/gone" in exc_info.value.message
        assert [identity.name for identity in exc_info.value.identities] == ["gone"]

    def test_orphans_reported_not_rejected(self) -> None:
        graph = ObjectGraph()
        graph.add(_node("root", root=True))
        graph.add(_node("member", owners=("root-uid",)))
        graph.add(_node("loner"))

        report = validate_graph(graph)
        assert [identity.name for identity in report.orphans] == ["loner"]

    def test_soft_referenced_object_is_reachable(self) -> None:
        graph = ObjectGraph()
        root = _node("root", root=True)
        root.soft_refs.append(SoftReference(target="infra-uid", field_path="spec.infrastructureRef"))
        graph.add(root)
        graph.add(_node("infra"))
        assert find_orphans(graph) == []

    def test_object_being_deleted_rejected(self) -> None:
        graph = ObjectGraph()
        node = _node("doomed", root=True)
        node.obj = {"metadata": {"deletionTimestamp": "2026-01-01T00:00:00Z"}}
        graph.add(node)
        with pytest.raises(GraphError, match="being deleted"):
            validate_graph(graph)

    async def test_cycle_between_discovered_objects(self) -> None:
        x = make_object("Widget", "x", api_version=TEST_GROUP, uid="x-uid")
        y = make_object("Widget", "y", api_version=TEST_GROUP, uid="y-uid", owners=(x,))
        x["metadata"]["ownerReferences"] = [owner_ref(y)]
        graph = await _build(x, y)
        with pytest.raises(GraphError, match="ownership cycle"):
            validate_graph(graph)
