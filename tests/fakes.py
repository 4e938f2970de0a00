"""In-memory recording accessor and object factories shared by the test suites.

FakeAccessor stores objects keyed by (group, kind, namespace, name), assigns
fresh UIDs on create, records every call in order, and can be told to fail
specific operations a fixed number of times.
"""

from __future__ import annotations

import copy
import itertools
from typing import Any

from capimove.accessor.base import ResourceAccessor
from capimove.errors import AccessorError, AlreadyExistsError, NotFoundError
from capimove.models.resources import GroupVersionKind, ObjectIdentity
from capimove.registry import CLUSTER_NAME_LABEL, KindSpec, MovableKindRegistry

CAPI = "cluster.x-k8s.io/v1beta1"
INFRA = "infrastructure.cluster.x-k8s.io/v1beta1"
TEST_GROUP = "test.x-k8s.io/v1"

_Key = tuple[str, str, str, str]


def _key(api_version: str, kind: str, namespace: str, name: str) -> _Key:
    return (GroupVersionKind.from_api_version(api_version, kind).group, kind, namespace, name)


def _obj_key(obj: dict[str, Any]) -> _Key:
    metadata = obj.get("metadata", {})
    return _key(obj["apiVersion"], obj["kind"], metadata.get("namespace", ""), metadata["name"])


class FakeAccessor(ResourceAccessor):
    """Recording in-memory accessor."""

    def __init__(
        self,
        name: str = "fake",
        served: set[str] | None = None,
        journal: list[tuple[str, str, str]] | None = None,
    ) -> None:
        self._name = name
        self._served = served
        # Shared across accessors to assert cross-cluster ordering.
        self.journal = journal if journal is not None else []
        self.closed = False
        self.objects: dict[_Key, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self._failures: dict[tuple[str, str], list[Exception]] = {}
        self._uids = itertools.count(1)

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def add(self, *objs: dict[str, Any]) -> None:
        for obj in objs:
            stored = copy.deepcopy(obj)
            stored["metadata"].setdefault("uid", f"{self._name}-uid-{next(self._uids)}")
            self.objects[_obj_key(stored)] = stored

    def fail(self, operation: str, name: str, *errors: Exception) -> None:
        """Raise *errors* (one per call) from the next calls of *operation* on *name*."""
        self._failures.setdefault((operation, name), []).extend(errors)

    def find(self, kind: str, name: str, namespace: str = "default") -> dict[str, Any] | None:
        for key, obj in self.objects.items():
            if key[1] == kind and key[2] == namespace and key[3] == name:
                return obj
        return None

    def ops(self, operation: str) -> list[str]:
        return [target for op, target in self.calls if op == operation]

    @property
    def mutations(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[0] in ("create", "delete", "patch", "remove_finalizers")]

    def _record(self, operation: str, target: str) -> None:
        self.calls.append((operation, target))
        self.journal.append((self._name, operation, target))
        queued = self._failures.get((operation, target))
        if queued:
            raise queued.pop(0)

    # ------------------------------------------------------------------
    # ResourceAccessor
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    async def list(self, kind: KindSpec, namespace: str, selector: str | None) -> list[dict[str, Any]]:
        self._record("list", kind.kind)
        result = []
        for (group, obj_kind, obj_namespace, _), obj in self.objects.items():
            if (group, obj_kind) != kind.gvk.group_kind:
                continue
            if namespace and obj_namespace != namespace:
                continue
            if selector and not _matches(obj, selector):
                continue
            result.append(copy.deepcopy(obj))
        return result

    async def get(self, kind: KindSpec, namespace: str, name: str) -> dict[str, Any]:
        self._record("get", name)
        obj = self.objects.get((kind.gvk.group, kind.kind, namespace, name))
        if obj is None:
            raise NotFoundError(f"{kind.kind} {namespace}/{name} not found", operation="get")
        return copy.deepcopy(obj)

    async def create(self, kind: KindSpec, obj: dict[str, Any]) -> dict[str, Any]:
        self._record("create", obj["metadata"]["name"])
        key = _obj_key(obj)
        if key in self.objects:
            raise AlreadyExistsError(f"{kind.kind} {obj['metadata']['name']} already exists", operation="create")
        stored = copy.deepcopy(obj)
        assert "uid" not in stored["metadata"], "server-assigned uid must not be sent on create"
        stored["metadata"]["uid"] = f"{self._name}-uid-{next(self._uids)}"
        self.objects[key] = stored
        return copy.deepcopy(stored)

    async def delete(self, kind: KindSpec, identity: ObjectIdentity) -> None:
        self._record("delete", identity.name)
        key = (kind.gvk.group, kind.kind, identity.namespace, identity.name)
        if key not in self.objects:
            raise NotFoundError(f"{identity} not found", operation="delete")
        del self.objects[key]

    async def patch_annotations(
        self,
        kind: KindSpec,
        identity: ObjectIdentity,
        delta: dict[str, str | None],
    ) -> None:
        self._record("patch", identity.name)
        obj = self.objects.get((kind.gvk.group, kind.kind, identity.namespace, identity.name))
        if obj is None:
            raise NotFoundError(f"{identity} not found", operation="patch")
        annotations = obj["metadata"].setdefault("annotations", {})
        for key, value in delta.items():
            if value is None:
                annotations.pop(key, None)
            else:
                annotations[key] = value

    async def remove_finalizers(self, kind: KindSpec, identity: ObjectIdentity) -> None:
        self._record("remove_finalizers", identity.name)
        obj = self.objects.get((kind.gvk.group, kind.kind, identity.namespace, identity.name))
        if obj is None:
            raise NotFoundError(f"{identity} not found", operation="remove_finalizers")
        obj["metadata"].pop("finalizers", None)

    async def has_kind(self, kind: KindSpec) -> bool:
        self._record("discover", kind.kind)
        return self._served is None or kind.kind in self._served

    async def close(self) -> None:
        self.closed = True


class BrokenAccessor(FakeAccessor):
    """Accessor whose every list call fails."""

    async def list(self, kind: KindSpec, namespace: str, selector: str | None) -> list[dict[str, Any]]:
        self._record("list", kind.kind)
        raise AccessorError("connection refused", operation="list")


def _matches(obj: dict[str, Any], selector: str) -> bool:
    labels = obj.get("metadata", {}).get("labels") or {}
    for term in selector.split(","):
        key, _, value = term.partition("=")
        if key not in labels or (value and labels[key] != value):
            return False
    return True


# ---------------------------------------------------------------------------
# Object factories
# ---------------------------------------------------------------------------


def make_object(
    kind: str,
    name: str,
    namespace: str = "default",
    api_version: str = CAPI,
    uid: str | None = None,
    owners: tuple[dict[str, Any], ...] = (),
    labels: dict[str, str] | None = None,
    spec: dict[str, Any] | None = None,
    **metadata: Any,
) -> dict[str, Any]:
    meta: dict[str, Any] = {"name": name, "namespace": namespace, "labels": dict(labels or {}), **metadata}
    if uid:
        meta["uid"] = uid
    if owners:
        meta["ownerReferences"] = [owner_ref(owner) for owner in owners]
    return {"apiVersion": api_version, "kind": kind, "metadata": meta, "spec": dict(spec or {})}


def owner_ref(owner: dict[str, Any]) -> dict[str, Any]:
    return {
        "apiVersion": owner["apiVersion"],
        "kind": owner["kind"],
        "name": owner["metadata"]["name"],
        "uid": owner["metadata"]["uid"],
        "controller": True,
    }


def object_ref(obj: dict[str, Any], with_uid: bool = False) -> dict[str, Any]:
    ref = {
        "apiVersion": obj["apiVersion"],
        "kind": obj["kind"],
        "name": obj["metadata"]["name"],
        "namespace": obj["metadata"].get("namespace", ""),
    }
    if with_uid:
        ref["uid"] = obj["metadata"]["uid"]
    return ref


def member_labels(cluster: str) -> dict[str, str]:
    return {CLUSTER_NAME_LABEL: cluster}


def scenario_registry() -> MovableKindRegistry:
    """Cluster -> (soft) InfraCluster, MachineDeployment owned by Cluster, plus a generic Widget."""
    return MovableKindRegistry(
        [
            KindSpec(
                GroupVersionKind("cluster.x-k8s.io", "v1beta1", "Cluster"),
                "clusters",
                root=True,
                selector=None,
                soft_refs=("spec.infrastructureRef",),
            ),
            KindSpec(
                GroupVersionKind("infrastructure.cluster.x-k8s.io", "v1beta1", "InfraCluster"),
                "infraclusters",
                global_scope=True,
                selector=None,
            ),
            KindSpec(
                GroupVersionKind("cluster.x-k8s.io", "v1beta1", "MachineDeployment"),
                "machinedeployments",
            ),
            KindSpec(
                GroupVersionKind("test.x-k8s.io", "v1", "Widget"),
                "widgets",
                selector=None,
            ),
        ]
    )


def cluster_scenario(name: str = "c1", namespace: str = "default") -> list[dict[str, Any]]:
    """Cluster owning a MachineDeployment, soft-referencing a global InfraCluster, plus its kubeconfig Secret.

    Returns ``[infra, cluster, machine_deployment, secret]`` with source UIDs set.
    """
    infra = make_object("InfraCluster", f"{name}-infra", namespace, api_version=INFRA, uid=f"{name}-infra-src")
    cluster = make_object(
        "Cluster",
        name,
        namespace,
        uid=f"{name}-src",
        spec={"infrastructureRef": object_ref(infra, with_uid=True)},
    )
    machine_deployment = make_object(
        "MachineDeployment",
        f"{name}-md",
        namespace,
        uid=f"{name}-md-src",
        owners=(cluster,),
        labels=member_labels(name),
    )
    secret = make_object("Secret", f"{name}-kubeconfig", namespace, api_version="v1", uid=f"{name}-secret-src")
    secret.pop("spec")
    secret["data"] = {"value": "a3ViZWNvbmZpZw=="}
    return [infra, cluster, machine_deployment, secret]
