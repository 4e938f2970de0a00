"""Shared fixtures for capimove integration tests.

Provides a source/target pair of recording fake accessors sharing one call
journal, pre-populated with a small cluster graph, and a coordinator factory
configured for zero backoff so retry scenarios run instantly.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from capimove.models.config import ConcurrencyConfig, MoveConfig, RetryConfig
from capimove.move.coordinator import MoveCoordinator
from tests.fakes import FakeAccessor, cluster_scenario, scenario_registry


@pytest.fixture
def journal() -> list[tuple[str, str, str]]:
    """Ordered ``(accessor, operation, target)`` log across both clusters."""
    return []


@pytest.fixture
def source(journal: list[tuple[str, str, str]]) -> FakeAccessor:
    accessor = FakeAccessor("source", journal=journal)
    accessor.add(*cluster_scenario())
    return accessor


@pytest.fixture
def target(journal: list[tuple[str, str, str]]) -> FakeAccessor:
    return FakeAccessor("target", journal=journal)


@pytest.fixture
def move_config() -> MoveConfig:
    return MoveConfig(
        retry=RetryConfig(max_attempts=3, backoff_base_seconds=0.0, backoff_max_seconds=0.0, call_timeout_seconds=5.0),
        concurrency=ConcurrencyConfig(discovery=2, wave=4),
    )


@pytest.fixture
def make_coordinator(
    source: FakeAccessor,
    target: FakeAccessor,
    move_config: MoveConfig,
) -> Callable[..., MoveCoordinator]:
    """Build a coordinator over the shared fixtures; keyword overrides win."""

    def _make(**overrides: object) -> MoveCoordinator:
        kwargs: dict[str, object] = {
            "source": source,
            "target": target,
            "registry": scenario_registry(),
            "config": move_config,
            "cancel_event": asyncio.Event(),
        }
        kwargs.update(overrides)
        return MoveCoordinator(**kwargs)  # type: ignore[arg-type]

    return _make
