"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from capimove.models.config import (
    ConcurrencyConfig,
    LogConfig,
    MoveConfig,
    PauseConfig,
    RetryConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"CAPIMOVE_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    valid = {"json", "console"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log format: {value}. Must be one of {valid}")
    return value.lower()


def _validate_annotation(value: str) -> str:
    if not value or " " in value:
        raise ValueError(f"Invalid pause annotation: {value!r}")
    return value


def load_config() -> MoveConfig:
    """Load configuration from CAPIMOVE_* environment variables."""
    return MoveConfig(
        retry=RetryConfig(
            max_attempts=_env_int("MAX_ATTEMPTS", 5, min_val=1, max_val=9),
            backoff_base_seconds=_env_float("BACKOFF_BASE_SECONDS", 0.5, min_val=0.0),
            backoff_max_seconds=_env_float("BACKOFF_MAX_SECONDS", 10.0, min_val=0.0),
            backoff_factor=_env_float("BACKOFF_FACTOR", 2.0, min_val=1.0),
            call_timeout_seconds=_env_float("CALL_TIMEOUT_SECONDS", 30.0, min_val=1.0),
        ),
        concurrency=ConcurrencyConfig(
            discovery=_env_int("DISCOVERY_CONCURRENCY", 4, min_val=1, max_val=64),
            wave=_env_int("WAVE_CONCURRENCY", 8, min_val=1, max_val=64),
        ),
        pause=PauseConfig(
            annotation=_validate_annotation(_env("PAUSE_ANNOTATION", "cluster.x-k8s.io/paused")),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )
