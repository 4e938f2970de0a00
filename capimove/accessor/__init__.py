"""Cluster access layer.

Exports:
    ResourceAccessor -- Abstract contract consumed by the move engine.

Submodules:
    kubernetes -- KubernetesAccessor, the kubernetes_asyncio implementation.
                  Not imported here so that callers supplying their own
                  accessor never load kubernetes_asyncio.
"""

from capimove.accessor.base import ResourceAccessor

__all__ = ["ResourceAccessor"]
