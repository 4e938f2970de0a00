"""Prometheus metrics for move runs and accessor calls."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

moves_total = Counter(
    "capimove_moves_total",
    "Move runs by outcome",
    ["outcome"],  # success | dry_run | aborted | cancelled
)

phase_duration_seconds = Histogram(
    "capimove_phase_duration_seconds",
    "Wall-clock duration of each move phase",
    ["phase"],
    buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0),
)

accessor_calls_total = Counter(
    "capimove_accessor_calls_total",
    "Accessor calls by accessor, operation and outcome",
    ["accessor", "operation", "outcome"],
)

accessor_retries_total = Counter(
    "capimove_accessor_retries_total",
    "Accessor calls retried after a transient failure",
    ["accessor", "operation"],
)

objects_moved_total = Counter(
    "capimove_objects_moved_total",
    "Objects created on the target cluster",
    ["kind"],
)
