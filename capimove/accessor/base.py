"""Resource accessor contract.

ResourceAccessor -- ABC for typed list/get/create/delete/patch calls
                    against one cluster endpoint.  The move engine only
                    talks to clusters through this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from capimove.models.resources import ObjectIdentity
from capimove.registry import KindSpec


class ResourceAccessor(ABC):
    """Abstract base class for cluster access.

    Implementations raise ``NotFoundError`` / ``AlreadyExistsError`` for the
    corresponding API conditions and ``AccessorError`` for everything else.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable accessor identifier used in metrics and logs."""

    @abstractmethod
    async def list(self, kind: KindSpec, namespace: str, selector: str | None) -> list[dict[str, Any]]:
        """List objects of *kind*; ``namespace == ""`` means all namespaces."""

    @abstractmethod
    async def get(self, kind: KindSpec, namespace: str, name: str) -> dict[str, Any]:
        """Fetch one object."""

    @abstractmethod
    async def create(self, kind: KindSpec, obj: dict[str, Any]) -> dict[str, Any]:
        """Create *obj* and return it as stored, including ``metadata.uid``."""

    @abstractmethod
    async def delete(self, kind: KindSpec, identity: ObjectIdentity) -> None:
        """Delete the object named by *identity*."""

    @abstractmethod
    async def patch_annotations(
        self,
        kind: KindSpec,
        identity: ObjectIdentity,
        delta: dict[str, str | None],
    ) -> None:
        """Merge *delta* into the object's annotations; ``None`` removes a key."""

    @abstractmethod
    async def remove_finalizers(self, kind: KindSpec, identity: ObjectIdentity) -> None:
        """Clear ``metadata.finalizers`` so a delete completes without a controller."""

    @abstractmethod
    async def has_kind(self, kind: KindSpec) -> bool:
        """Return True if the cluster serves *kind*."""

    async def close(self) -> None:  # noqa: B027
        """Release connections.  Default is a no-op."""
