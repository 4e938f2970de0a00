"""Data structures for the object graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from capimove.models.resources import ObjectIdentity

OWNER_REFERENCES_FIELD = "metadata.ownerReferences"


@dataclass(frozen=True)
class SoftReference:
    """A field-level reference from one node to another."""

    target: str  # key of the referenced node
    field_path: str  # dotted path of the field holding the reference


@dataclass
class Node:
    """One discovered (or inferred) object.

    ``key`` is the source UID for discovered objects.  Virtual nodes created
    from a field reference have no UID and get a synthetic key.
    """

    key: str
    identity: ObjectIdentity
    obj: dict[str, Any] | None = None
    owners: set[str] = field(default_factory=set)
    soft_refs: list[SoftReference] = field(default_factory=list)
    virtual: bool = False
    is_global: bool = False
    root: bool = False

    @property
    def kind(self) -> str:
        return self.identity.gvk.kind

    @property
    def deleting(self) -> bool:
        if self.obj is None:
            return False
        return bool(self.obj.get("metadata", {}).get("deletionTimestamp"))

    def __str__(self) -> str:
        return str(self.identity)
