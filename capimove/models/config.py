"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class RetryConfig:
    """Retry and deadline policy for every accessor call."""

    max_attempts: int = 5
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 10.0
    backoff_factor: float = 2.0
    call_timeout_seconds: float = 30.0


@dataclass
class ConcurrencyConfig:
    """Per-phase concurrency limits."""

    discovery: int = 4
    wave: int = 8


@dataclass
class PauseConfig:
    """Reconciliation-pause marker."""

    annotation: str = "cluster.x-k8s.io/paused"


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class MoveConfig:
    """Top-level capimove configuration."""

    retry: RetryConfig = field(default_factory=RetryConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    pause: PauseConfig = field(default_factory=PauseConfig)
    log: LogConfig = field(default_factory=LogConfig)
