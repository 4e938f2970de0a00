"""Move coordinator states."""

from __future__ import annotations

from enum import StrEnum


class MoveState(StrEnum):
    """States of a single move run.

    ``DONE`` and ``ABORTED`` are terminal.
    """

    BUILDING = "building"
    VALIDATING = "validating"
    PAUSING = "pausing"
    CREATING = "creating"
    DELETING = "deleting"
    UNPAUSING = "unpausing"
    DONE = "done"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (MoveState.DONE, MoveState.ABORTED)
