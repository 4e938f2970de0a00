"""Target-side creation and source-side deletion.

Creation walks one wave at a time: identity-bearing references are rewritten
through the translation table, then each object is created on the target.
An already-existing target object is reconciled into the table, so a re-run
after a partial failure picks up where it stopped.

Deletion runs only once every node has a target identity, in reverse wave
order (dependents before owners).  Global nodes stay on the source.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable, Iterable
from typing import Any

from capimove.accessor.base import ResourceAccessor
from capimove.errors import AlreadyExistsError, NotFoundError, RelocationError
from capimove.models.graph import Node
from capimove.models.plan import DeferredReference, MovePlan, Wave
from capimove.models.resources import ObjectIdentity
from capimove.models.state import MoveState
from capimove.move.translation import IdentityTranslationTable
from capimove.observability.logging import get_logger
from capimove.observability.metrics import objects_moved_total
from capimove.registry import KindSpec, MovableKindRegistry, get_field
from capimove.retry import RetryPolicy, call_with_retry

_logger = get_logger("move.relocator")

# Metadata assigned by the API server; never sent on create.
_SERVER_METADATA = (
    "uid",
    "resourceVersion",
    "creationTimestamp",
    "generation",
    "managedFields",
    "selfLink",
    "deletionTimestamp",
    "deletionGracePeriodSeconds",
)


class Relocator:
    """Creates waves on the target and deletes the originals from the source."""

    def __init__(
        self,
        registry: MovableKindRegistry,
        policy: RetryPolicy,
        concurrency: int = 8,
        pause_annotation: str = "cluster.x-k8s.io/paused",
    ) -> None:
        self._registry = registry
        self._policy = policy
        self._concurrency = concurrency
        self._pause_annotation = pause_annotation

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def prepare(
        self,
        node: Node,
        table: IdentityTranslationTable,
        deferred: Iterable[DeferredReference] = (),
    ) -> dict[str, Any]:
        """Return a create-ready copy of *node*'s object with references rewritten."""
        assert node.obj is not None
        obj = copy.deepcopy(node.obj)
        obj.pop("status", None)
        metadata = obj.setdefault("metadata", {})
        for key in _SERVER_METADATA:
            metadata.pop(key, None)
        if not node.is_global:
            # Arrives paused; unpaused once the whole graph is in place.
            annotations = metadata.get("annotations") or {}
            metadata["annotations"] = {**annotations, self._pause_annotation: "true"}

        for ref in metadata.get("ownerReferences") or []:
            source_uid = ref.get("uid")
            if not source_uid:
                continue
            target_uid = table.target_uid(source_uid)
            if target_uid is None:
                raise RelocationError(
                    f"owner {ref.get('kind')}/{ref.get('name')} has not been created on the target",
                    identities=[node.identity],
                )
            ref["uid"] = target_uid

        deferred_fields = {d.field_path for d in deferred if d.source == node.identity}
        for soft_ref in node.soft_refs:
            value = get_field(obj, soft_ref.field_path)
            if not isinstance(value, dict) or "uid" not in value:
                continue
            target_uid = table.target_uid(soft_ref.target)
            if soft_ref.field_path in deferred_fields or target_uid is None:
                # Resolved by name once the referenced object exists.
                value.pop("uid")
            else:
                value["uid"] = target_uid
        return obj

    async def create_wave(
        self,
        target: ResourceAccessor,
        wave: Wave,
        table: IdentityTranslationTable,
        deferred: Iterable[DeferredReference] = (),
    ) -> None:
        """Create every node of *wave* on *target* with bounded parallelism.

        Raises RelocationError naming every node whose create failed.
        """
        deferred = list(deferred)
        semaphore = asyncio.Semaphore(self._concurrency)
        failures: dict[ObjectIdentity, str] = {}

        async def _one(node: Node) -> None:
            async with semaphore:
                try:
                    await self._create(target, node, table, deferred)
                except Exception as exc:
                    failures[node.identity] = str(exc) or type(exc).__name__

        await asyncio.gather(*(_one(node) for node in wave.nodes))

        if failures:
            _logger.error(
                "wave_create_failed",
                wave=wave.index,
                failed={str(identity): error for identity, error in failures.items()},
            )
            raise RelocationError(
                f"creating wave {wave.index} failed",
                identities=list(failures),
                stage=MoveState.CREATING,
                migrated=table.migrated(),
            )
        _logger.info("wave_created", wave=wave.index, objects=len(wave))

    async def _create(
        self,
        target: ResourceAccessor,
        node: Node,
        table: IdentityTranslationTable,
        deferred: list[DeferredReference],
    ) -> None:
        kind = self._kind(node)
        body = self.prepare(node, table, deferred)
        try:
            created = await call_with_retry(
                lambda: target.create(kind, body),
                self._policy,
                accessor=target.name,
                operation="create",
                identity=str(node.identity),
            )
            outcome = "created"
        except AlreadyExistsError:
            identity = node.identity
            created = await call_with_retry(
                lambda: target.get(kind, identity.namespace, identity.name),
                self._policy,
                accessor=target.name,
                operation="get",
                identity=str(identity),
            )
            outcome = "reconciled"

        uid = str(created.get("metadata", {}).get("uid") or "")
        if not uid:
            raise RelocationError("target did not return a uid", identities=[node.identity])
        table.record(node.key, node.identity.with_uid(uid))
        if outcome == "created":
            objects_moved_total.labels(kind=node.kind).inc()
        _logger.debug(f"object_{outcome}", identity=str(node.identity), source_uid=node.key, target_uid=uid)

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete_source(
        self,
        source: ResourceAccessor,
        plan: MovePlan,
        table: IdentityTranslationTable,
        deleted: list[ObjectIdentity] | None = None,
        check_cancelled: Callable[[], None] | None = None,
    ) -> list[ObjectIdentity]:
        """Delete every non-global node from *source*, dependents first.

        Returns the deleted identities.  When *deleted* is given it is filled
        in as objects go, so the caller still knows what is gone if this
        raises.  *check_cancelled* runs before every wave after the first.
        Stops at the first wave with a failure; the error's ``remaining``
        lists what is still on the source.
        """
        missing = table.missing(node.key for node in plan.nodes)
        if missing:
            raise RelocationError(
                "refusing to delete: objects have no target identity",
                identities=[node.identity for node in plan.nodes if node.key in missing],
                stage=MoveState.DELETING,
                migrated=table.migrated(),
            )

        if deleted is None:
            deleted = []
        semaphore = asyncio.Semaphore(self._concurrency)
        waves = plan.deletion_waves()
        for position, wave in enumerate(waves):
            if position and check_cancelled is not None:
                check_cancelled()
            failures = await self._delete_wave(source, wave, semaphore, deleted)
            if failures:
                remaining = [
                    node.identity
                    for later in waves[position:]
                    for node in later.nodes
                    if node.identity not in deleted
                ]
                _logger.error(
                    "source_delete_failed",
                    wave=wave.index,
                    failed={str(identity): error for identity, error in failures.items()},
                    remaining=len(remaining),
                )
                raise RelocationError(
                    f"deleting wave {wave.index} from the source failed",
                    identities=list(failures),
                    stage=MoveState.DELETING,
                    migrated=table.migrated(),
                    remaining=remaining,
                )
            _logger.info("wave_deleted", wave=wave.index, objects=len(wave))
        return deleted

    async def _delete_wave(
        self,
        source: ResourceAccessor,
        wave: Wave,
        semaphore: asyncio.Semaphore,
        deleted: list[ObjectIdentity],
    ) -> dict[ObjectIdentity, str]:
        failures: dict[ObjectIdentity, str] = {}

        async def _one(node: Node) -> None:
            async with semaphore:
                try:
                    await self._delete(source, node)
                except Exception as exc:
                    failures[node.identity] = str(exc) or type(exc).__name__
                    return
            deleted.append(node.identity)

        await asyncio.gather(*(_one(node) for node in wave.nodes))
        return failures

    async def _delete(self, source: ResourceAccessor, node: Node) -> None:
        kind = self._kind(node)
        identity = node.identity
        try:
            # Paused controllers will never release their finalizers.
            await call_with_retry(
                lambda: source.remove_finalizers(kind, identity),
                self._policy,
                accessor=source.name,
                operation="remove_finalizers",
                identity=str(identity),
            )
            await call_with_retry(
                lambda: source.delete(kind, identity),
                self._policy,
                accessor=source.name,
                operation="delete",
                identity=str(identity),
            )
        except NotFoundError:
            _logger.debug("object_already_gone", identity=str(identity))
            return
        _logger.debug("object_deleted", identity=str(identity))

    def _kind(self, node: Node) -> KindSpec:
        kind = self._registry.lookup_gvk(node.identity.gvk)
        if kind is None:
            raise RelocationError("kind is not registered", identities=[node.identity])
        return kind
