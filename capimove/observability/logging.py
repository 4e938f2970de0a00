"""structlog setup for capimove.

Log lines go to stderr so that stdout carries only the move plan printed by
the CLI.  Every line emitted during a move carries the run context bound by
``move_context``: a short run id, the namespace and the dry-run flag.
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from capimove.models.config import LogConfig


def setup_logging(config: LogConfig | None = None) -> None:
    """Configure structlog from *config* (JSON by default, console for humans)."""
    config = config or LogConfig()
    log_level = getattr(logging, config.level.upper(), logging.INFO)
    renderer: structlog.typing.Processor
    if config.format == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


@contextmanager
def move_context(namespace: str, dry_run: bool) -> Iterator[str]:
    """Bind the run context for every log line emitted inside the block; yields the run id."""
    run_id = uuid.uuid4().hex[:8]
    with structlog.contextvars.bound_contextvars(
        run_id=run_id,
        namespace=namespace or "<all>",
        dry_run=dry_run,
    ):
        yield run_id


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]
