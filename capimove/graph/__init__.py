"""Object graph discovery, validation and move-plan derivation.

Builds the graph of movable objects from the source cluster's declared
configuration (ownerReferences plus per-kind reference fields), checks it
for structural problems, and layers it into creation waves.
"""

from capimove.graph.builder import GraphBuilder
from capimove.graph.object_graph import ObjectGraph
from capimove.graph.plan import compute_waves
from capimove.graph.validator import ValidationReport, validate_graph

__all__ = [
    "GraphBuilder",
    "ObjectGraph",
    "ValidationReport",
    "compute_waves",
    "validate_graph",
]
