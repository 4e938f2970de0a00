"""Movable-kind registry and per-kind soft-reference rules.

The registry is the ordered list of kinds that make up a cluster's object
graph.  Each entry names the field paths holding object references that
must exist on the target before the object itself is created.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from capimove.models.resources import GroupVersionKind

CLUSTER_NAME_LABEL = "cluster.x-k8s.io/cluster-name"

# Secrets holding cluster access credentials are named "<cluster>-<suffix>".
CREDENTIAL_SECRET_SUFFIXES = ("kubeconfig", "ca", "etcd", "sa", "proxy")

_CLUSTER_API = "cluster.x-k8s.io"
_CONTROL_PLANE = "controlplane.cluster.x-k8s.io"
_BOOTSTRAP = "bootstrap.cluster.x-k8s.io"
_INFRASTRUCTURE = "infrastructure.cluster.x-k8s.io"
_V1BETA1 = "v1beta1"


@dataclass(frozen=True)
class KindSpec:
    """One movable kind.

    ``selector`` is the label selector used for discovery; ``None`` lists
    every object of the kind in the namespace.  ``soft_refs`` are dotted
    paths of object-reference fields.
    """

    gvk: GroupVersionKind
    plural: str
    namespaced: bool = True
    root: bool = False
    global_scope: bool = False
    selector: str | None = CLUSTER_NAME_LABEL
    soft_refs: tuple[str, ...] = ()

    @property
    def kind(self) -> str:
        return self.gvk.kind

    @property
    def is_global(self) -> bool:
        return self.global_scope or not self.namespaced


SECRET_KIND = KindSpec(
    gvk=GroupVersionKind(group="", version="v1", kind="Secret"),
    plural="secrets",
    selector=None,
)


def get_field(obj: dict[str, Any], path: str) -> Any:
    """Return the value at a dotted *path*, or None if any segment is missing."""
    current: Any = obj
    for segment in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(segment)
        if current is None:
            return None
    return current


def extract_soft_refs(spec: KindSpec, obj: dict[str, Any]) -> list[tuple[str, dict[str, Any]]]:
    """Return ``(field_path, reference)`` for every populated soft-reference field."""
    refs = []
    for path in spec.soft_refs:
        value = get_field(obj, path)
        if isinstance(value, dict) and value.get("kind") and value.get("name"):
            refs.append((path, value))
    return refs


class MovableKindRegistry:
    """Ordered set of movable kinds, looked up by group + kind."""

    def __init__(self, kinds: Iterable[KindSpec] = ()) -> None:
        self._kinds: list[KindSpec] = []
        self._by_group_kind: dict[tuple[str, str], KindSpec] = {}
        for spec in kinds:
            self.register(spec)

    def register(self, spec: KindSpec) -> None:
        key = spec.gvk.group_kind
        if key in self._by_group_kind:
            raise ValueError(f"Kind already registered: {spec.gvk}")
        self._kinds.append(spec)
        self._by_group_kind[key] = spec

    def lookup(self, group: str, kind: str) -> KindSpec | None:
        """Find a kind; credential Secrets resolve even when not registered."""
        spec = self._by_group_kind.get((group, kind))
        if spec is None and (group, kind) == SECRET_KIND.gvk.group_kind:
            return SECRET_KIND
        return spec

    def lookup_gvk(self, gvk: GroupVersionKind) -> KindSpec | None:
        return self.lookup(gvk.group, gvk.kind)

    @property
    def roots(self) -> list[KindSpec]:
        return [spec for spec in self._kinds if spec.root]

    def __iter__(self) -> Iterator[KindSpec]:
        return iter(self._kinds)

    def __len__(self) -> int:
        return len(self._kinds)


def default_registry() -> MovableKindRegistry:
    """Registry for the core Cluster API kinds plus the Docker infrastructure provider."""

    def gvk(group: str, kind: str) -> GroupVersionKind:
        return GroupVersionKind(group=group, version=_V1BETA1, kind=kind)

    machine_template_refs = (
        "spec.template.spec.infrastructureRef",
        "spec.template.spec.bootstrap.configRef",
    )
    return MovableKindRegistry(
        [
            KindSpec(
                gvk(_CLUSTER_API, "Cluster"),
                "clusters",
                root=True,
                selector=None,
                soft_refs=("spec.infrastructureRef", "spec.controlPlaneRef"),
            ),
            KindSpec(gvk(_INFRASTRUCTURE, "DockerCluster"), "dockerclusters", selector=None),
            KindSpec(
                gvk(_CONTROL_PLANE, "KubeadmControlPlane"),
                "kubeadmcontrolplanes",
                selector=None,
                soft_refs=("spec.machineTemplate.infrastructureRef",),
            ),
            KindSpec(gvk(_INFRASTRUCTURE, "DockerMachineTemplate"), "dockermachinetemplates", selector=None),
            KindSpec(gvk(_BOOTSTRAP, "KubeadmConfigTemplate"), "kubeadmconfigtemplates", selector=None),
            KindSpec(gvk(_CLUSTER_API, "MachineDeployment"), "machinedeployments", soft_refs=machine_template_refs),
            KindSpec(gvk(_CLUSTER_API, "MachineSet"), "machinesets", soft_refs=machine_template_refs),
            KindSpec(
                gvk(_CLUSTER_API, "Machine"),
                "machines",
                soft_refs=("spec.infrastructureRef", "spec.bootstrap.configRef"),
            ),
            KindSpec(gvk(_CLUSTER_API, "MachineHealthCheck"), "machinehealthchecks"),
            KindSpec(gvk(_BOOTSTRAP, "KubeadmConfig"), "kubeadmconfigs"),
            KindSpec(gvk(_INFRASTRUCTURE, "DockerMachine"), "dockermachines"),
        ]
    )
