"""Identity types for Kubernetes-style objects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class GroupVersionKind:
    """An API group, version and kind triple."""

    group: str
    version: str
    kind: str

    @classmethod
    def from_api_version(cls, api_version: str, kind: str) -> GroupVersionKind:
        """Split an ``apiVersion`` string (``group/version`` or ``v1``)."""
        group, _, version = api_version.rpartition("/")
        return cls(group=group, version=version, kind=kind)

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @property
    def group_kind(self) -> tuple[str, str]:
        """Version-agnostic key used when resolving references."""
        return (self.group, self.kind)

    def __str__(self) -> str:
        return f"{self.api_version}, Kind={self.kind}"


@dataclass(frozen=True)
class ObjectIdentity:
    """Full identity of one object on one cluster."""

    gvk: GroupVersionKind
    namespace: str
    name: str
    uid: str = ""

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> ObjectIdentity:
        metadata = obj.get("metadata", {})
        return cls(
            gvk=GroupVersionKind.from_api_version(str(obj.get("apiVersion", "")), str(obj.get("kind", ""))),
            namespace=str(metadata.get("namespace") or ""),
            name=str(metadata.get("name", "")),
            uid=str(metadata.get("uid") or ""),
        )

    def with_uid(self, uid: str) -> ObjectIdentity:
        return ObjectIdentity(gvk=self.gvk, namespace=self.namespace, name=self.name, uid=uid)

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.gvk.kind}/{self.namespace}/{self.name}"
        return f"{self.gvk.kind}/{self.name}"
