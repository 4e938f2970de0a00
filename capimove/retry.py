"""Bounded exponential backoff around accessor calls.

Every call carries an explicit deadline; deadline expiry counts as a
retryable failure.  NotFound and AlreadyExists are never retried: they are
answers, not failures.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from capimove.errors import AccessorError, AlreadyExistsError, NotFoundError
from capimove.models.config import RetryConfig
from capimove.observability.metrics import accessor_calls_total, accessor_retries_total

_log = structlog.get_logger(component="retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt ceiling, backoff curve and per-call deadline."""

    max_attempts: int = 5
    base_delay: float = 0.5
    max_delay: float = 10.0
    factor: float = 2.0
    timeout: float = 30.0

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.backoff_base_seconds,
            max_delay=config.backoff_max_seconds,
            factor=config.backoff_factor,
            timeout=config.call_timeout_seconds,
        )

    def delay(self, attempt: int) -> float:
        """Sleep before retry number *attempt* (1-based)."""
        return min(self.max_delay, self.base_delay * self.factor ** (attempt - 1))


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, AccessorError):
        return exc.retryable
    return isinstance(exc, TimeoutError | OSError)


def _outcome(exc: BaseException) -> str:
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, AlreadyExistsError):
        return "already_exists"
    if isinstance(exc, TimeoutError):
        return "timeout"
    return "error"


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    accessor: str,
    operation: str,
    identity: str = "",
) -> T:
    """Await ``fn()`` under *policy*.

    Raises the last exception once the attempt ceiling is reached, or
    immediately for non-retryable errors.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            result = await asyncio.wait_for(fn(), timeout=policy.timeout)
        except Exception as exc:
            accessor_calls_total.labels(accessor=accessor, operation=operation, outcome=_outcome(exc)).inc()
            if not is_retryable(exc):
                raise
            if attempt >= policy.max_attempts:
                _log.error(
                    "accessor_retries_exhausted",
                    accessor=accessor,
                    operation=operation,
                    identity=identity,
                    attempts=attempt,
                    error=str(exc) or type(exc).__name__,
                )
                raise
            delay = policy.delay(attempt)
            accessor_retries_total.labels(accessor=accessor, operation=operation).inc()
            _log.warning(
                "accessor_call_retry",
                accessor=accessor,
                operation=operation,
                identity=identity,
                attempt=attempt,
                delay_seconds=delay,
                error=str(exc) or type(exc).__name__,
            )
            await asyncio.sleep(delay)
            continue
        accessor_calls_total.labels(accessor=accessor, operation=operation, outcome="ok").inc()
        return result
