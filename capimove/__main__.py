"""Entry point for `python -m capimove`.

Usage:
    python -m capimove move --to-kubeconfig target.kubeconfig
    uv run python -m capimove move --dry-run
"""

from __future__ import annotations

from capimove.cli import cli

cli()
