"""Reconciliation pause marker.

Pause and unpause are applied object by object; one failure never stops the
others from being attempted, and the report lists every failed identity.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field

from capimove.accessor.base import ResourceAccessor
from capimove.errors import NotFoundError
from capimove.models.graph import Node
from capimove.models.resources import ObjectIdentity
from capimove.observability.logging import get_logger
from capimove.registry import MovableKindRegistry
from capimove.retry import RetryPolicy, call_with_retry

_logger = get_logger("move.pause")


@dataclass
class PauseReport:
    """Per-identity outcome of a pause or unpause pass."""

    succeeded: list[ObjectIdentity] = field(default_factory=list)
    failed: dict[ObjectIdentity, str] = field(default_factory=dict)
    already_paused: list[ObjectIdentity] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class PauseController:
    """Sets and clears the pause annotation through an accessor."""

    def __init__(
        self,
        registry: MovableKindRegistry,
        policy: RetryPolicy,
        annotation: str,
        concurrency: int = 8,
    ) -> None:
        self._registry = registry
        self._policy = policy
        self._annotation = annotation
        self._concurrency = concurrency

    def is_paused(self, node: Node) -> bool:
        """True if *node*'s discovered object already carries the marker."""
        if node.obj is None:
            return False
        annotations = node.obj.get("metadata", {}).get("annotations") or {}
        return self._annotation in annotations

    async def pause(self, accessor: ResourceAccessor, nodes: Iterable[Node]) -> PauseReport:
        """Mark every non-global node as paused.

        Nodes discovered with the marker already set are not patched; they are
        listed in ``already_paused`` and must never be unpaused by a move.
        """
        pending: list[ObjectIdentity] = []
        already_paused: list[ObjectIdentity] = []
        for node in nodes:
            if node.is_global:
                continue
            if self.is_paused(node):
                already_paused.append(node.identity)
            else:
                pending.append(node.identity)
        report = await self._apply(accessor, pending, {self._annotation: "true"}, missing_ok=False)
        report.already_paused = already_paused
        if already_paused:
            _logger.info("already_paused", accessor=accessor.name, identities=[str(i) for i in already_paused])
        return report

    async def unpause(self, accessor: ResourceAccessor, identities: Iterable[ObjectIdentity]) -> PauseReport:
        """Clear the marker; objects that no longer exist count as unpaused."""
        return await self._apply(accessor, list(identities), {self._annotation: None}, missing_ok=True)

    async def _apply(
        self,
        accessor: ResourceAccessor,
        identities: list[ObjectIdentity],
        delta: dict[str, str | None],
        missing_ok: bool,
    ) -> PauseReport:
        operation = "pause" if delta[self._annotation] else "unpause"
        semaphore = asyncio.Semaphore(self._concurrency)
        report = PauseReport()

        async def _one(identity: ObjectIdentity) -> None:
            kind = self._registry.lookup_gvk(identity.gvk)
            if kind is None:
                report.failed[identity] = "kind is not registered"
                return
            async with semaphore:
                try:
                    await call_with_retry(
                        lambda: accessor.patch_annotations(kind, identity, delta),
                        self._policy,
                        accessor=accessor.name,
                        operation=operation,
                        identity=str(identity),
                    )
                except NotFoundError as exc:
                    if not missing_ok:
                        report.failed[identity] = str(exc)
                        return
                except Exception as exc:
                    report.failed[identity] = str(exc) or type(exc).__name__
                    return
            report.succeeded.append(identity)

        await asyncio.gather(*(_one(identity) for identity in identities))

        if report.failed:
            _logger.error(
                f"{operation}_incomplete",
                accessor=accessor.name,
                succeeded=len(report.succeeded),
                failed={str(identity): error for identity, error in report.failed.items()},
            )
        else:
            _logger.info(f"{operation}_complete", accessor=accessor.name, objects=len(report.succeeded))
        return report
