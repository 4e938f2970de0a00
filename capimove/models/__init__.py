"""Core data structures for capimove."""

from capimove.models.config import (
    ConcurrencyConfig,
    LogConfig,
    MoveConfig,
    PauseConfig,
    RetryConfig,
)
from capimove.models.graph import Node, SoftReference
from capimove.models.options import Kubeconfig, MoveOptions
from capimove.models.plan import DeferredReference, MovePlan, Wave
from capimove.models.resources import GroupVersionKind, ObjectIdentity
from capimove.models.state import MoveState

__all__ = [
    "ConcurrencyConfig",
    "DeferredReference",
    "GroupVersionKind",
    "Kubeconfig",
    "LogConfig",
    "MoveConfig",
    "MoveOptions",
    "MovePlan",
    "MoveState",
    "Node",
    "ObjectIdentity",
    "PauseConfig",
    "RetryConfig",
    "SoftReference",
    "Wave",
]
