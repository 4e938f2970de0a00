"""High-level move client.

Usage::

    from capimove.client import MoveClient
    from capimove.models import Kubeconfig, MoveOptions

    client = MoveClient()
    plan = await client.move(
        MoveOptions(
            from_kubeconfig=Kubeconfig(path="mgmt.kubeconfig"),
            to_kubeconfig=Kubeconfig(path="target.kubeconfig"),
            namespace="team-a",
        )
    )

The accessor factory is injectable so tests (and other callers) can supply
their own ResourceAccessor implementation instead of a live cluster.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from capimove.accessor.base import ResourceAccessor
from capimove.models.config import MoveConfig
from capimove.models.options import Kubeconfig, MoveOptions
from capimove.models.plan import MovePlan
from capimove.move.coordinator import MoveCoordinator
from capimove.observability.logging import get_logger
from capimove.registry import MovableKindRegistry, default_registry

_logger = get_logger("client")

AccessorFactory = Callable[[Kubeconfig, str], Awaitable[ResourceAccessor]]


async def _default_accessor_factory(kubeconfig: Kubeconfig, name: str) -> ResourceAccessor:
    # Imported lazily so callers with their own factory never load kubernetes_asyncio.
    from capimove.accessor.kubernetes import KubernetesAccessor

    return await KubernetesAccessor.from_kubeconfig(kubeconfig, name)


class MoveClient:
    """Opens accessors for both clusters and runs a MoveCoordinator."""

    def __init__(
        self,
        config: MoveConfig | None = None,
        registry: MovableKindRegistry | None = None,
        accessor_factory: AccessorFactory | None = None,
    ) -> None:
        self.config = config or MoveConfig()
        self.registry = registry or default_registry()
        self._accessor_factory = accessor_factory or _default_accessor_factory

    async def move(self, options: MoveOptions, cancel_event: asyncio.Event | None = None) -> MovePlan:
        """Move every cluster in ``options.namespace`` ("" for all) to the target.

        With ``options.dry_run`` only the plan is computed and returned; the
        target kubeconfig is not opened.
        """
        if not options.dry_run and options.to_kubeconfig is None:
            raise ValueError("to_kubeconfig is required unless dry_run is set")

        source = await self._accessor_factory(options.from_kubeconfig, "source")
        target: ResourceAccessor | None = None
        try:
            if not options.dry_run:
                assert options.to_kubeconfig is not None
                target = await self._accessor_factory(options.to_kubeconfig, "target")
            coordinator = MoveCoordinator(
                source,
                target,
                registry=self.registry,
                config=self.config,
                cancel_event=cancel_event,
            )
            return await coordinator.run(namespace=options.namespace, dry_run=options.dry_run)
        finally:
            await self._close(source)
            if target is not None:
                await self._close(target)

    async def _close(self, accessor: ResourceAccessor) -> None:
        try:
            await accessor.close()
        except Exception as exc:
            _logger.debug("accessor_close_failed", accessor=accessor.name, error=str(exc))
