"""Move execution: pause, relocate, delete, unpause.

Exports:
    MoveCoordinator          -- State machine sequencing a full move run.
    PauseController          -- Sets/clears the reconciliation-pause marker.
    Relocator                -- Wave creation on the target, reverse-order
                                deletion on the source.
    IdentityTranslationTable -- Source UID -> target identity for one run.
"""

from capimove.move.coordinator import MoveCoordinator
from capimove.move.pause import PauseController, PauseReport
from capimove.move.relocator import Relocator
from capimove.move.translation import IdentityTranslationTable

__all__ = [
    "IdentityTranslationTable",
    "MoveCoordinator",
    "PauseController",
    "PauseReport",
    "Relocator",
]
