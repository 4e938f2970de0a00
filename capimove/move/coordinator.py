"""Move coordinator: the top-level state machine.

    BUILDING -> VALIDATING -> PAUSING -> CREATING -> DELETING -> UNPAUSING -> DONE
                                  \\__________ any failure __________/
                                               ABORTED

Each transition fires only when the previous component call succeeded.  Any
failure moves to ABORTED, makes a best-effort attempt to unpause whatever
was paused on the source (and the target copies of anything already
deleted from it), then re-raises with the stage reached and the identities
already migrated attached.  Target-side creations are never rolled back.
Objects that were paused before the move started are never unpaused.

A dry run stops after VALIDATING and never mutates either cluster.  The
cancellation event is checked between waves and between phases, never in
the middle of a single object's operation.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable

from capimove.accessor.base import ResourceAccessor
from capimove.errors import AccessorError, CancellationError, GraphError, MoveError, PauseError, RelocationError
from capimove.graph.builder import GraphBuilder
from capimove.graph.object_graph import ObjectGraph
from capimove.graph.plan import compute_waves
from capimove.graph.validator import validate_graph
from capimove.models.config import MoveConfig
from capimove.models.graph import Node
from capimove.models.plan import MovePlan
from capimove.models.resources import ObjectIdentity
from capimove.models.state import MoveState
from capimove.move.pause import PauseController
from capimove.move.relocator import Relocator
from capimove.move.translation import IdentityTranslationTable
from capimove.observability.logging import get_logger, move_context
from capimove.observability.metrics import moves_total, phase_duration_seconds
from capimove.registry import KindSpec, MovableKindRegistry, default_registry
from capimove.retry import RetryPolicy, call_with_retry

_logger = get_logger("move.coordinator")


class MoveCoordinator:
    """Runs one move between a source and a target accessor.

    A coordinator instance is single-use: the translation table and pause
    bookkeeping belong to exactly one ``run``.

    Args:
        source:       Accessor for the cluster objects are moved from.
        target:       Accessor for the cluster objects are moved to.  May be
                      None for dry runs.
        registry:     Movable kinds; defaults to ``default_registry()``.
        config:       Retry, concurrency and pause settings.
        cancel_event: Set by the caller to request a stop.
    """

    def __init__(
        self,
        source: ResourceAccessor,
        target: ResourceAccessor | None,
        registry: MovableKindRegistry | None = None,
        config: MoveConfig | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self._source = source
        self._target = target
        self._registry = registry or default_registry()
        self._config = config or MoveConfig()
        self._cancel_event = cancel_event or asyncio.Event()

        policy = RetryPolicy.from_config(self._config.retry)
        self._policy = policy
        self._builder = GraphBuilder(source, self._registry, self._config)
        self._pause = PauseController(
            self._registry,
            policy,
            annotation=self._config.pause.annotation,
            concurrency=self._config.concurrency.wave,
        )
        self._relocator = Relocator(
            self._registry,
            policy,
            concurrency=self._config.concurrency.wave,
            pause_annotation=self._config.pause.annotation,
        )

        self._state = MoveState.BUILDING
        self._state_entered = time.monotonic()
        self.history: list[MoveState] = []
        self._paused: list[ObjectIdentity] = []
        self._already_paused: set[ObjectIdentity] = set()
        self._deleted: list[ObjectIdentity] = []
        self._plan: MovePlan | None = None
        self._table: IdentityTranslationTable | None = None
        self._started = False

    @property
    def state(self) -> MoveState:
        return self._state

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self, namespace: str = "", dry_run: bool = False) -> MovePlan:
        """Execute the move (or only plan it when *dry_run*)."""
        if self._started:
            raise RuntimeError("MoveCoordinator.run() may only be called once")
        self._started = True
        if not dry_run and self._target is None:
            raise ValueError("a target accessor is required unless dry_run is set")

        with move_context(namespace, dry_run):
            self._transition(MoveState.BUILDING)
            try:
                plan = await self._run(namespace, dry_run)
            except MoveError as exc:
                exc.stage = self._state
                if self._table is not None:
                    exc.migrated = self._table.migrated()
                await self._abort(exc)
                raise
            except Exception as exc:
                await self._abort(exc)
                raise
            finally:
                # The table never outlives the run.
                self._table = None

        moves_total.labels(outcome="dry_run" if dry_run else "success").inc()
        return plan

    async def _run(self, namespace: str, dry_run: bool) -> MovePlan:
        graph = await self._builder.build(namespace)
        self._check_cancelled()

        self._transition(MoveState.VALIDATING)
        report = validate_graph(graph)
        plan = compute_waves(graph, orphans=report.orphans, namespace=namespace, dry_run=dry_run)
        if dry_run:
            self._transition(MoveState.DONE)
            return plan

        await self._preflight(graph)
        self._check_cancelled()

        self._plan = plan
        self._transition(MoveState.PAUSING)
        pause_report = await self._pause.pause(self._source, plan.nodes)
        self._paused = list(pause_report.succeeded)
        self._already_paused = set(pause_report.already_paused)
        if not pause_report.ok:
            raise PauseError("pausing source objects failed", identities=list(pause_report.failed))
        self._check_cancelled()

        self._transition(MoveState.CREATING)
        self._table = IdentityTranslationTable()
        for wave in plan.waves:
            self._check_cancelled()
            await self._relocator.create_wave(self._target_accessor, wave, self._table, plan.deferred)
        missing = self._table.missing(node.key for node in plan.nodes)
        if missing:
            raise RelocationError(
                "objects missing from the target after creation",
                identities=[node.identity for node in plan.nodes if node.key in missing],
            )
        self._check_cancelled()

        self._transition(MoveState.DELETING)
        await self._relocator.delete_source(
            self._source,
            plan,
            self._table,
            deleted=self._deleted,
            check_cancelled=self._check_cancelled,
        )
        self._paused = []
        self._check_cancelled()

        self._transition(MoveState.UNPAUSING)
        unpause_report = await self._pause.unpause(self._target_accessor, self._moved(plan.nodes))
        if not unpause_report.ok:
            raise PauseError("unpausing target objects failed", identities=list(unpause_report.failed))

        self._transition(MoveState.DONE)
        _logger.info("move_completed", namespace=namespace or "<all>", objects=plan.node_count, waves=len(plan.waves))
        return plan

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def _target_accessor(self) -> ResourceAccessor:
        assert self._target is not None
        return self._target

    async def _preflight(self, graph: ObjectGraph) -> None:
        """Fail before any mutation if the target does not serve a kind in the graph."""
        target = self._target_accessor
        kinds = {self._registry.lookup_gvk(node.identity.gvk) for node in graph}
        unsupported = []
        for kind in sorted((k for k in kinds if k is not None), key=lambda k: (k.gvk.group, k.kind)):
            try:
                served = await call_with_retry(
                    lambda kind=kind: target.has_kind(kind),
                    self._policy,
                    accessor=target.name,
                    operation="discover",
                    identity=str(kind.gvk),
                )
            except AccessorError as exc:
                raise GraphError(
                    f"checking whether the target cluster serves {kind.gvk} failed: {exc}",
                    identities=self._of_kinds(graph, [kind]),
                ) from exc
            if not served:
                unsupported.append(kind)
        if unsupported:
            raise GraphError(
                "target cluster does not serve: " + ", ".join(str(kind.gvk) for kind in unsupported),
                identities=self._of_kinds(graph, unsupported),
            )

    def _of_kinds(self, graph: ObjectGraph, kinds: list[KindSpec]) -> list[ObjectIdentity]:
        return [node.identity for node in graph if self._registry.lookup_gvk(node.identity.gvk) in kinds]

    def _moved(self, nodes: Iterable[Node]) -> list[ObjectIdentity]:
        """Target identities of the moved *nodes* that the move itself paused."""
        assert self._table is not None
        moved = []
        for node in nodes:
            if node.is_global or node.identity in self._already_paused:
                continue
            target_identity = self._table.lookup(node.key)
            if target_identity is not None:
                moved.append(target_identity)
        return moved

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise CancellationError("move cancelled by operator", stage=self._state)

    def _transition(self, state: MoveState) -> None:
        now = time.monotonic()
        if self.history:
            phase_duration_seconds.labels(phase=self._state.value).observe(now - self._state_entered)
        _logger.info("move_state", state=state.value, previous=self._state.value if self.history else None)
        self._state = state
        self._state_entered = now
        self.history.append(state)

    async def _abort(self, exc: BaseException) -> None:
        stage = self._state
        self._transition(MoveState.ABORTED)
        outcome = "cancelled" if isinstance(exc, CancellationError) else "aborted"
        moves_total.labels(outcome=outcome).inc()
        migrated = self._table.migrated() if self._table is not None else []
        _logger.error(
            "move_aborted",
            stage=stage.value,
            error=str(exc),
            migrated=[str(identity) for identity in migrated],
        )

        # Best effort: restore the source to working order.
        if self._paused:
            report = await self._pause.unpause(self._source, self._paused)
            if not report.ok:
                _logger.error(
                    "abort_unpause_incomplete",
                    accessor=self._source.name,
                    still_paused=[str(identity) for identity in report.failed],
                )

        # Objects already gone from the source are out of reach of a re-run;
        # hand their target copies to the target controllers now.
        if self._deleted and self._plan is not None and self._table is not None:
            deleted = set(self._deleted)
            report = await self._pause.unpause(
                self._target_accessor,
                self._moved(node for node in self._plan.nodes if node.identity in deleted),
            )
            if not report.ok:
                _logger.error(
                    "abort_unpause_incomplete",
                    accessor=self._target_accessor.name,
                    still_paused=[str(identity) for identity in report.failed],
                )
