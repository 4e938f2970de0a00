"""Error taxonomy for move runs and accessor calls.

Structural errors (DiscoveryError, GraphError) are raised before any
mutation and a move can simply be re-run.  Execution errors (PauseError,
RelocationError, CancellationError) leave both clusters in an inspectable
intermediate state; ``migrated`` lists what already exists on the target.
"""

from __future__ import annotations

from collections.abc import Iterable

from capimove.models.resources import ObjectIdentity
from capimove.models.state import MoveState


class AccessorError(Exception):
    """A resource accessor call failed.  Retryable unless a subclass says otherwise."""

    retryable = True

    def __init__(self, message: str, operation: str = "", status: int | None = None) -> None:
        super().__init__(message)
        self.operation = operation
        self.status = status


class AlreadyExistsError(AccessorError):
    """Create was rejected because the object already exists."""

    retryable = False


class NotFoundError(AccessorError):
    """The object does not exist."""

    retryable = False


class MoveError(Exception):
    """Base class for every error surfaced by a move run."""

    default_stage = MoveState.BUILDING

    def __init__(
        self,
        message: str,
        identities: Iterable[ObjectIdentity] = (),
        stage: MoveState | None = None,
        migrated: Iterable[ObjectIdentity] = (),
    ) -> None:
        super().__init__(message)
        self.message = message
        self.identities = list(identities)
        self.stage = stage or self.default_stage
        self.migrated = list(migrated)

    def __str__(self) -> str:
        text = f"[{self.stage}] {self.message}"
        if self.identities:
            text += ": " + ", ".join(str(identity) for identity in self.identities)
        return text


class DiscoveryError(MoveError):
    """Listing objects on the source failed."""

    default_stage = MoveState.BUILDING


class GraphError(MoveError):
    """The object graph is structurally invalid (cycle, unresolved reference)."""

    default_stage = MoveState.VALIDATING


class PauseError(MoveError):
    """One or more objects could not be paused or unpaused."""

    default_stage = MoveState.PAUSING


class RelocationError(MoveError):
    """Create or delete failed after exhausting retries."""

    default_stage = MoveState.CREATING

    def __init__(
        self,
        message: str,
        identities: Iterable[ObjectIdentity] = (),
        stage: MoveState | None = None,
        migrated: Iterable[ObjectIdentity] = (),
        remaining: Iterable[ObjectIdentity] = (),
    ) -> None:
        super().__init__(message, identities=identities, stage=stage, migrated=migrated)
        # Source objects not yet deleted when a delete phase aborts.
        self.remaining = list(remaining)


class CancellationError(MoveError):
    """The operator requested a stop."""

    default_stage = MoveState.BUILDING
